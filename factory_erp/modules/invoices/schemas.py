from pydantic import BaseModel, Field, field_validator, model_validator
from decimal import Decimal
from typing import Optional, List
from uuid import UUID
from datetime import date, datetime

from factory_erp.modules.customers.schemas import CustomerForInvoice
from factory_erp.modules.invoices.models import InvoiceStatus, PaymentMethod, DiscountType
from factory_erp.modules.invoices.state_machine import INITIAL_STATES
from factory_erp.modules.taxes.schemas import TaxBreakdownOut


# Invoice Item Schemas
class InvoiceItemCreate(BaseModel):
    description: str = Field(..., min_length=1, max_length=500)
    hsn_code: Optional[str] = Field(None, max_length=20, description="HSN/SAC code used to group taxes")
    quantity: Decimal = Field(..., gt=0, description="Quantity must be greater than 0")
    unit_price: Decimal = Field(..., ge=0, description="Unit price before tax")
    discount: Decimal = Field(Decimal('0'), ge=0, le=100, description="Item discount in percent")
    tax_rate: Optional[Decimal] = Field(
        None, ge=0, le=100,
        description="GST rate in percent; defaults to the HSN code's rate, then the invoice rate"
    )

    @field_validator('hsn_code')
    @classmethod
    def strip_hsn(cls, v):
        if v is None:
            return v
        v = v.strip()
        return v or None


class InvoiceItemOut(BaseModel):
    id: UUID
    position: int
    description: str
    hsn_code: Optional[str]
    quantity: Decimal
    unit_price: Decimal
    discount: Decimal
    tax_rate: Decimal
    amount: Decimal
    tax_amount: Decimal

    class Config:
        from_attributes = True


class TransportDetails(BaseModel):
    """Delivery and dispatch references printed on the tax invoice"""
    delivery_note: Optional[str] = Field(None, max_length=100)
    delivery_note_date: Optional[date] = None
    other_reference: Optional[str] = Field(None, max_length=100)
    buyers_order_no: Optional[str] = Field(None, max_length=100)
    buyers_order_date: Optional[date] = None
    dispatch_doc_no: Optional[str] = Field(None, max_length=100)
    dispatched_through: Optional[str] = Field(None, max_length=100)
    destination: Optional[str] = Field(None, max_length=200)
    bill_of_lading: Optional[str] = Field(None, max_length=100)
    motor_vehicle_no: Optional[str] = Field(None, max_length=50)
    terms_of_delivery: Optional[str] = None


TRANSPORT_FIELDS = tuple(TransportDetails.model_fields.keys())


# Invoice Schemas
class InvoiceCreate(TransportDetails):
    customer_id: UUID
    issue_date: date = Field(default_factory=date.today)
    due_date: date
    status: InvoiceStatus = InvoiceStatus.DRAFT
    items: List[InvoiceItemCreate] = Field(..., min_length=1, description="At least one item is required")
    discount_type: DiscountType = DiscountType.PERCENTAGE
    discount_value: Decimal = Field(Decimal('0'), ge=0, description="Percentage or fixed amount, per discount_type")
    round_off: Decimal = Field(Decimal('0'), description="Manual signed adjustment to the total")
    tax_rate: Optional[Decimal] = Field(None, ge=0, le=100, description="Default rate for items without one")
    notes: Optional[str] = None
    terms: Optional[str] = None
    shipping_address: Optional[str] = None

    @model_validator(mode='after')
    def validate_dates(self):
        if self.due_date < self.issue_date:
            raise ValueError('Due date cannot be before the issue date')
        return self

    @field_validator('status')
    @classmethod
    def validate_initial_status(cls, v):
        if v not in INITIAL_STATES:
            raise ValueError('A new invoice must start as DRAFT or PENDING')
        return v


class InvoiceUpdate(TransportDetails):
    customer_id: Optional[UUID] = None
    issue_date: Optional[date] = None
    due_date: Optional[date] = None
    status: Optional[InvoiceStatus] = None
    items: Optional[List[InvoiceItemCreate]] = Field(None, min_length=1)
    discount_type: Optional[DiscountType] = None
    discount_value: Optional[Decimal] = Field(None, ge=0)
    round_off: Optional[Decimal] = None
    tax_rate: Optional[Decimal] = Field(None, ge=0, le=100)
    notes: Optional[str] = None
    terms: Optional[str] = None
    shipping_address: Optional[str] = None

    @model_validator(mode='after')
    def validate_dates(self):
        if self.due_date and self.issue_date and self.due_date < self.issue_date:
            raise ValueError('Due date cannot be before the issue date')
        return self


class InvoiceOut(BaseModel):
    id: UUID
    invoice_number: str
    customer_id: UUID
    customer_name: Optional[str] = None
    status: InvoiceStatus
    issue_date: date
    due_date: date
    tax_rate: Optional[Decimal] = None
    discount_type: DiscountType
    discount_rate: Decimal
    discount_amount: Decimal
    subtotal: Decimal
    tax_amount: Decimal
    round_off: Decimal
    total_amount: Decimal
    amount_paid: Decimal
    balance_due: Decimal
    version: int
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class PaymentOut(BaseModel):
    id: UUID
    invoice_id: UUID
    amount: Decimal
    method: PaymentMethod
    reference: Optional[str]
    paid_at: datetime
    notes: Optional[str]
    recorded_by: Optional[str] = None
    created_at: datetime

    class Config:
        from_attributes = True


class InvoiceDetail(InvoiceOut, TransportDetails):
    """Invoice with customer, items, payments and the HSN tax breakdown"""
    customer: CustomerForInvoice
    items: List[InvoiceItemOut]
    payments: List[PaymentOut] = []
    tax_breakdown: TaxBreakdownOut
    notes: Optional[str] = None
    terms: Optional[str] = None
    shipping_address: Optional[str] = None
    cancellation_reason: Optional[str] = None
    cancelled_at: Optional[datetime] = None
    created_by: Optional[str] = None
    updated_by: Optional[str] = None

    class Config:
        from_attributes = True


# Search and filter schemas
class InvoiceFilters(BaseModel):
    status: Optional[InvoiceStatus] = None
    customer_id: Optional[UUID] = None
    date_from: Optional[date] = None
    date_to: Optional[date] = None
    search: Optional[str] = Field(None, description="Search in invoice number or notes")


class InvoiceStatusCount(BaseModel):
    status: InvoiceStatus
    count: int


class InvoiceListStats(BaseModel):
    """Amounts over every invoice matching the filters, not just the page"""
    total_amount: Decimal
    paid_amount: Decimal
    pending_amount: Decimal
    overdue_amount: Decimal


class InvoiceList(BaseModel):
    invoices: List[InvoiceOut]
    total: int
    limit: int
    offset: int
    applied_filters: Optional[InvoiceFilters] = None
    stats: InvoiceListStats
    counts_by_status: List[InvoiceStatusCount] = Field(default_factory=list)


class InvoiceSummaryStats(BaseModel):
    total_invoices: int
    total_amount: Decimal
    total_tax: Decimal
    paid_amount: Decimal
    pending_amount: Decimal
    overdue_amount: Decimal
    cancelled_count: int
    counts_by_status: List[InvoiceStatusCount]


# Payment Schemas
class PaymentCreate(BaseModel):
    amount: Decimal = Field(..., gt=0, description="Amount must be greater than 0")
    method: PaymentMethod
    reference: Optional[str] = Field(None, max_length=100)
    paid_at: Optional[datetime] = None
    notes: Optional[str] = None


class PaymentResult(BaseModel):
    payment: PaymentOut
    invoice: InvoiceDetail


class InvoiceCancelRequest(BaseModel):
    reason: Optional[str] = Field(None, max_length=500)


class NextInvoiceNumber(BaseModel):
    next_number: str
    prefix: str
    period: str
    current_sequence: int


# Preview (compute totals without saving)
class InvoicePreviewRequest(BaseModel):
    items: List[InvoiceItemCreate] = Field(..., min_length=1)
    discount_type: DiscountType = DiscountType.PERCENTAGE
    discount_value: Decimal = Field(Decimal('0'), ge=0)
    round_off: Decimal = Decimal('0')
    tax_rate: Optional[Decimal] = Field(None, ge=0, le=100)


class InvoiceLinePreview(BaseModel):
    position: int
    description: str
    hsn_code: Optional[str]
    quantity: Decimal
    unit_price: Decimal
    discount: Decimal
    tax_rate: Decimal
    amount: Decimal
    tax_amount: Decimal

    class Config:
        from_attributes = True


class InvoicePreviewOut(BaseModel):
    lines: List[InvoiceLinePreview]
    discount_type: DiscountType
    discount_rate: Decimal
    subtotal: Decimal
    discount_amount: Decimal
    tax_amount: Decimal
    round_off: Decimal
    total_amount: Decimal
    suggested_round_off: Decimal
    breakdown: TaxBreakdownOut

    class Config:
        from_attributes = True
