"""
Invoice financial engine

- Tax invoices built from line items with per-HSN CGST/SGST breakdown
- Sequential numbering per calendar month (INV + YYYYMM + NNNN)
- Payment ledger with partial payments
- Status state machine and mutation guard (edit, cancel, delete)

Roles:
- ADMIN/MANAGER/ACCOUNTANT: create, update, record payments, cancel
- ADMIN/MANAGER: delete
- everyone: read

Tables:
- invoices, invoice_items, invoice_payments, invoice_sequences
"""

from .models import Invoice, InvoiceItem, Payment, InvoiceSequence, InvoiceStatus, PaymentMethod
from .schemas import InvoiceCreate, InvoiceUpdate, InvoiceDetail, PaymentCreate, PaymentOut
from .service import InvoiceService
from .payments import InvoicePaymentService
from .router import router

__all__ = [
    "Invoice", "InvoiceItem", "Payment", "InvoiceSequence", "InvoiceStatus", "PaymentMethod",
    "InvoiceCreate", "InvoiceUpdate", "InvoiceDetail", "PaymentCreate", "PaymentOut",
    "InvoiceService", "InvoicePaymentService",
    "router"
]
