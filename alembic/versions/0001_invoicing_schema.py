"""invoicing schema

Revision ID: 0001_invoicing_schema
Revises:
Create Date: 2024-01-10 09:00:00

"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision = '0001_invoicing_schema'
down_revision = None
branch_labels = None
depends_on = None

INVOICE_STATUSES = ('DRAFT', 'PENDING', 'SENT', 'PARTIALLY_PAID', 'PAID', 'OVERDUE', 'CANCELLED')
PAYMENT_METHODS = ('CASH', 'BANK_TRANSFER', 'UPI', 'CHEQUE', 'CARD', 'OTHER')
DISCOUNT_TYPES = ('PERCENTAGE', 'FIXED')


def _timestamps():
    return [
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    ]


def upgrade() -> None:
    op.create_table(
        'customers',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('code', sa.String(20), nullable=False, unique=True),
        sa.Column('name', sa.String(200), nullable=False),
        sa.Column('email', sa.String(100)),
        sa.Column('phone', sa.String(50)),
        sa.Column('address', sa.Text()),
        sa.Column('city', sa.String(100)),
        sa.Column('state', sa.String(100)),
        sa.Column('pincode', sa.String(10)),
        sa.Column('gst_number', sa.String(15)),
        sa.Column('pan_number', sa.String(10)),
        sa.Column('payment_terms_days', sa.Integer(), nullable=False, server_default='30'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        *_timestamps(),
    )
    op.create_index('ix_customers_name', 'customers', ['name'])

    op.create_table(
        'hsn_codes',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('code', sa.String(20), nullable=False),
        sa.Column('description', sa.Text()),
        sa.Column('tax_rate', sa.Numeric(5, 2), nullable=False, server_default='0'),
        *_timestamps(),
    )
    op.create_index('ix_hsn_codes_code', 'hsn_codes', ['code'], unique=True)

    op.create_table(
        'invoices',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('invoice_number', sa.String(50), nullable=False),
        sa.Column('customer_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('customers.id'), nullable=False),
        sa.Column('status', sa.Enum(*INVOICE_STATUSES, name='invoicestatus'), nullable=False),
        sa.Column('issue_date', sa.Date(), nullable=False, server_default=sa.text('CURRENT_DATE')),
        sa.Column('due_date', sa.Date(), nullable=False),
        sa.Column('tax_rate', sa.Numeric(5, 2)),
        sa.Column('discount_type', sa.Enum(*DISCOUNT_TYPES, name='discounttype'), nullable=False),
        sa.Column('discount_rate', sa.Numeric(5, 2), nullable=False, server_default='0'),
        sa.Column('discount_amount', sa.Numeric(12, 2), nullable=False, server_default='0'),
        sa.Column('subtotal', sa.Numeric(12, 2), nullable=False, server_default='0'),
        sa.Column('tax_amount', sa.Numeric(12, 2), nullable=False, server_default='0'),
        sa.Column('round_off', sa.Numeric(12, 2), nullable=False, server_default='0'),
        sa.Column('total_amount', sa.Numeric(12, 2), nullable=False, server_default='0'),
        sa.Column('amount_paid', sa.Numeric(12, 2), nullable=False, server_default='0'),
        sa.Column('notes', sa.Text()),
        sa.Column('terms', sa.Text()),
        sa.Column('shipping_address', sa.Text()),
        sa.Column('delivery_note', sa.String(100)),
        sa.Column('delivery_note_date', sa.Date()),
        sa.Column('other_reference', sa.String(100)),
        sa.Column('buyers_order_no', sa.String(100)),
        sa.Column('buyers_order_date', sa.Date()),
        sa.Column('dispatch_doc_no', sa.String(100)),
        sa.Column('dispatched_through', sa.String(100)),
        sa.Column('destination', sa.String(200)),
        sa.Column('bill_of_lading', sa.String(100)),
        sa.Column('motor_vehicle_no', sa.String(50)),
        sa.Column('terms_of_delivery', sa.Text()),
        sa.Column('cancellation_reason', sa.Text()),
        sa.Column('cancelled_at', sa.DateTime(timezone=True)),
        sa.Column('version', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('created_by', sa.String(64)),
        sa.Column('updated_by', sa.String(64)),
        *_timestamps(),
        sa.UniqueConstraint('invoice_number', name='uq_invoices_invoice_number'),
    )
    op.create_index('ix_invoices_customer_id', 'invoices', ['customer_id'])
    op.create_index('ix_invoices_status', 'invoices', ['status'])

    op.create_table(
        'invoice_items',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('invoice_id', postgresql.UUID(as_uuid=True),
                  sa.ForeignKey('invoices.id', ondelete='CASCADE'), nullable=False),
        sa.Column('position', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('description', sa.String(500), nullable=False),
        sa.Column('hsn_code', sa.String(20)),
        sa.Column('quantity', sa.Numeric(12, 3), nullable=False),
        sa.Column('unit_price', sa.Numeric(12, 2), nullable=False),
        sa.Column('discount', sa.Numeric(5, 2), nullable=False, server_default='0'),
        sa.Column('tax_rate', sa.Numeric(5, 2), nullable=False, server_default='0'),
        sa.Column('amount', sa.Numeric(12, 2), nullable=False),
        sa.Column('tax_amount', sa.Numeric(12, 2), nullable=False, server_default='0'),
    )
    op.create_index('ix_invoice_items_invoice_id', 'invoice_items', ['invoice_id'])

    op.create_table(
        'invoice_payments',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('invoice_id', postgresql.UUID(as_uuid=True),
                  sa.ForeignKey('invoices.id', ondelete='CASCADE'), nullable=False),
        sa.Column('amount', sa.Numeric(12, 2), nullable=False),
        sa.Column('method', sa.Enum(*PAYMENT_METHODS, name='paymentmethod'), nullable=False),
        sa.Column('reference', sa.String(100)),
        sa.Column('paid_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('notes', sa.Text()),
        sa.Column('recorded_by', sa.String(64)),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.CheckConstraint('amount > 0', name='ck_invoice_payments_amount_positive'),
    )
    op.create_index('ix_invoice_payments_invoice_id', 'invoice_payments', ['invoice_id'])

    op.create_table(
        'invoice_sequences',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('prefix', sa.String(10), nullable=False),
        sa.Column('period', sa.String(6), nullable=False),
        sa.Column('current_value', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.UniqueConstraint('prefix', 'period', name='uq_invoice_sequences_prefix_period'),
    )


def downgrade() -> None:
    op.drop_table('invoice_sequences')
    op.drop_index('ix_invoice_payments_invoice_id', table_name='invoice_payments')
    op.drop_table('invoice_payments')
    op.drop_index('ix_invoice_items_invoice_id', table_name='invoice_items')
    op.drop_table('invoice_items')
    op.drop_index('ix_invoices_status', table_name='invoices')
    op.drop_index('ix_invoices_customer_id', table_name='invoices')
    op.drop_table('invoices')
    op.drop_index('ix_hsn_codes_code', table_name='hsn_codes')
    op.drop_table('hsn_codes')
    op.drop_index('ix_customers_name', table_name='customers')
    op.drop_table('customers')
    sa.Enum(name='paymentmethod').drop(op.get_bind(), checkfirst=True)
    sa.Enum(name='discounttype').drop(op.get_bind(), checkfirst=True)
    sa.Enum(name='invoicestatus').drop(op.get_bind(), checkfirst=True)
