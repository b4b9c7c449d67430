from factory_erp.database.database import Base
from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, UniqueConstraint, CheckConstraint, Numeric, Enum, Date, Text
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from sqlalchemy.dialects.postgresql import UUID
from uuid import uuid4
from decimal import Decimal
from factory_erp.common.mixins import TimestampMixin, AuditMixin
from factory_erp.modules.taxes.calculator import LineItemTaxResolver, TaxBreakdown
import enum


class InvoiceStatus(str, enum.Enum):
    DRAFT = "DRAFT"                     # Being prepared, not yet issued
    PENDING = "PENDING"                 # Issued, awaiting payment
    SENT = "SENT"                       # Delivered to the customer
    PARTIALLY_PAID = "PARTIALLY_PAID"
    PAID = "PAID"
    OVERDUE = "OVERDUE"                 # Set by the external overdue sweep
    CANCELLED = "CANCELLED"


class PaymentMethod(str, enum.Enum):
    CASH = "CASH"
    BANK_TRANSFER = "BANK_TRANSFER"
    UPI = "UPI"
    CHEQUE = "CHEQUE"
    CARD = "CARD"
    OTHER = "OTHER"


class DiscountType(str, enum.Enum):
    PERCENTAGE = "percentage"
    FIXED = "fixed"


class Invoice(Base, TimestampMixin, AuditMixin):
    __tablename__ = "invoices"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    invoice_number = Column(String(50), nullable=False)
    customer_id = Column(UUID(as_uuid=True), ForeignKey("customers.id"), nullable=False, index=True)

    status = Column(Enum(InvoiceStatus), nullable=False, default=InvoiceStatus.DRAFT, index=True)

    # Dates
    issue_date = Column(Date, nullable=False, server_default=func.current_date())
    due_date = Column(Date, nullable=False)

    # Default rate for items sent without one
    tax_rate = Column(Numeric(5, 2), nullable=True)

    # Totals (calculated)
    discount_type = Column(Enum(DiscountType), nullable=False, default=DiscountType.PERCENTAGE)
    discount_rate = Column(Numeric(5, 2), nullable=False, default=0)
    discount_amount = Column(Numeric(12, 2), nullable=False, default=0)
    subtotal = Column(Numeric(12, 2), nullable=False, default=0)
    tax_amount = Column(Numeric(12, 2), nullable=False, default=0)
    round_off = Column(Numeric(12, 2), nullable=False, default=0)
    total_amount = Column(Numeric(12, 2), nullable=False, default=0)
    amount_paid = Column(Numeric(12, 2), nullable=False, default=0)

    # Content
    notes = Column(Text, nullable=True)
    terms = Column(Text, nullable=True)
    shipping_address = Column(Text, nullable=True)

    # Transport and delivery details
    delivery_note = Column(String(100), nullable=True)
    delivery_note_date = Column(Date, nullable=True)
    other_reference = Column(String(100), nullable=True)
    buyers_order_no = Column(String(100), nullable=True)
    buyers_order_date = Column(Date, nullable=True)
    dispatch_doc_no = Column(String(100), nullable=True)
    dispatched_through = Column(String(100), nullable=True)
    destination = Column(String(200), nullable=True)
    bill_of_lading = Column(String(100), nullable=True)
    motor_vehicle_no = Column(String(50), nullable=True)
    terms_of_delivery = Column(Text, nullable=True)

    cancellation_reason = Column(Text, nullable=True)
    cancelled_at = Column(DateTime(timezone=True), nullable=True)

    # Optimistic concurrency counter, bumped on every flush of the row
    version = Column(Integer, nullable=False, default=1)

    # Relationships
    customer = relationship("Customer")
    items = relationship(
        "InvoiceItem", back_populates="invoice", cascade="all, delete-orphan",
        order_by="InvoiceItem.position"
    )
    payments = relationship(
        "Payment", back_populates="invoice", cascade="all, delete-orphan",
        order_by="Payment.paid_at"
    )

    __table_args__ = (
        UniqueConstraint("invoice_number", name="uq_invoices_invoice_number"),
    )

    __mapper_args__ = {"version_id_col": version}

    @property
    def balance_due(self) -> Decimal:
        return Decimal(self.total_amount or 0) - Decimal(self.amount_paid or 0)

    @property
    def customer_name(self):
        return self.customer.name if self.customer else None

    @property
    def tax_breakdown(self) -> TaxBreakdown:
        """HSN/rate groups with the CGST/SGST split, derived from the stored items"""
        resolver = LineItemTaxResolver()
        return resolver.breakdown(resolver.resolve(self.items), Decimal(self.tax_amount or 0))


class InvoiceItem(Base):
    __tablename__ = "invoice_items"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    invoice_id = Column(UUID(as_uuid=True), ForeignKey("invoices.id", ondelete="CASCADE"), nullable=False, index=True)
    position = Column(Integer, nullable=False, default=0)

    description = Column(String(500), nullable=False)
    hsn_code = Column(String(20), nullable=True)
    quantity = Column(Numeric(12, 3), nullable=False)
    unit_price = Column(Numeric(12, 2), nullable=False)
    discount = Column(Numeric(5, 2), nullable=False, default=0)   # percentage
    tax_rate = Column(Numeric(5, 2), nullable=False, default=0)   # effective rate
    amount = Column(Numeric(12, 2), nullable=False)               # after item discount, before tax
    tax_amount = Column(Numeric(12, 2), nullable=False, default=0)

    invoice = relationship("Invoice", back_populates="items")


class Payment(Base):
    """Append-only ledger entry"""
    __tablename__ = "invoice_payments"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    invoice_id = Column(UUID(as_uuid=True), ForeignKey("invoices.id", ondelete="CASCADE"), nullable=False, index=True)

    amount = Column(Numeric(12, 2), nullable=False)
    method = Column(Enum(PaymentMethod), nullable=False)
    reference = Column(String(100), nullable=True)  # UTR, cheque number, etc.
    paid_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    notes = Column(Text, nullable=True)
    recorded_by = Column(String(64), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    invoice = relationship("Invoice", back_populates="payments")

    __table_args__ = (
        CheckConstraint("amount > 0", name="ck_invoice_payments_amount_positive"),
    )


class InvoiceSequence(Base):
    """Per-period numbering counter, locked while a number is allocated"""
    __tablename__ = "invoice_sequences"

    id = Column(Integer, primary_key=True, autoincrement=True)
    prefix = Column(String(10), nullable=False)
    period = Column(String(6), nullable=False)   # YYYYMM
    current_value = Column(Integer, nullable=False, default=0)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    __table_args__ = (
        UniqueConstraint("prefix", "period", name="uq_invoice_sequences_prefix_period"),
    )
