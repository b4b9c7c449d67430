from fastapi import APIRouter, Depends, status, Query, Body
from typing import List, Optional
from uuid import UUID
from datetime import date

from factory_erp.core.config import settings
from factory_erp.dependencies.dbDependecies import db_dependency
from factory_erp.modules.auth.dependencies import AuthDependencies, BILLING_ROLES, DELETE_ROLES, READ_ROLES
from factory_erp.modules.auth.schemas import AuthContext
from factory_erp.modules.invoices.models import InvoiceStatus
from factory_erp.modules.invoices.payments import InvoicePaymentService
from factory_erp.modules.invoices.service import InvoiceService
from factory_erp.modules.invoices.schemas import (
    InvoiceCreate, InvoiceUpdate, InvoiceDetail, InvoiceList, InvoiceFilters,
    InvoiceSummaryStats, InvoiceCancelRequest, NextInvoiceNumber,
    InvoicePreviewRequest, InvoicePreviewOut,
    PaymentCreate, PaymentOut, PaymentResult
)
from factory_erp.modules.taxes.schemas import TaxBreakdownOut

router = APIRouter(prefix="/invoices", tags=["Invoices"])


@router.post("/", response_model=InvoiceDetail, status_code=status.HTTP_201_CREATED)
def create_invoice(
    invoice_data: InvoiceCreate,
    db: db_dependency,
    auth_context: AuthContext = Depends(AuthDependencies.require_role(BILLING_ROLES))
):
    """
    Create a tax invoice

    The invoice number is allocated from the issue date's month
    (e.g. INV2024010007). Items without a tax rate take the HSN code's default
    rate, then the invoice's `tax_rate`.
    """
    service = InvoiceService(db)
    return service.create_invoice(invoice_data, auth_context.user_id)


@router.get("/", response_model=InvoiceList)
def list_invoices(
    db: db_dependency,
    limit: int = Query(settings.DEFAULT_PAGE_SIZE, ge=1, le=settings.MAX_PAGE_SIZE),
    offset: int = Query(0, ge=0),
    start_date: Optional[date] = Query(None, description="Issue date from (YYYY-MM-DD)"),
    end_date: Optional[date] = Query(None, description="Issue date to (YYYY-MM-DD)"),
    customer_id: Optional[UUID] = Query(None, description="Filter by customer"),
    status: Optional[InvoiceStatus] = Query(None, description="Invoice status"),
    search: Optional[str] = Query(None, description="Search by number or notes"),
    auth_context: AuthContext = Depends(AuthDependencies.require_role(READ_ROLES))
):
    """
    List invoices with filters

    Includes total, paid, pending and overdue amounts over every matching
    invoice, and the count per status.
    """
    service = InvoiceService(db)
    filters = InvoiceFilters(
        status=status,
        customer_id=customer_id,
        date_from=start_date,
        date_to=end_date,
        search=search
    )
    return service.get_invoices(filters, limit, offset)


@router.get("/summary/stats", response_model=InvoiceSummaryStats)
def get_invoice_summary(
    db: db_dependency,
    auth_context: AuthContext = Depends(AuthDependencies.require_role(READ_ROLES))
):
    service = InvoiceService(db)
    return service.get_summary_stats()


@router.get("/next-number", response_model=NextInvoiceNumber)
def get_next_invoice_number(
    db: db_dependency,
    issue_date: Optional[date] = Query(None, description="Defaults to today"),
    auth_context: AuthContext = Depends(AuthDependencies.require_role(BILLING_ROLES))
):
    """
    Preview the next invoice number

    The number is not reserved; creating the invoice may still get a later one.
    """
    service = InvoiceService(db)
    return service.get_next_invoice_number(issue_date)


@router.post("/preview", response_model=InvoicePreviewOut)
def preview_invoice_totals(
    preview: InvoicePreviewRequest,
    db: db_dependency,
    auth_context: AuthContext = Depends(AuthDependencies.require_role(BILLING_ROLES))
):
    """
    Compute totals and the GST breakdown without saving

    `suggested_round_off` is the adjustment that would make the total a whole
    amount; it is never applied automatically.
    """
    service = InvoiceService(db)
    return InvoicePreviewOut.model_validate(service.preview_totals(preview))


@router.get("/{invoice_id}", response_model=InvoiceDetail)
def get_invoice(
    invoice_id: UUID,
    db: db_dependency,
    auth_context: AuthContext = Depends(AuthDependencies.require_role(READ_ROLES))
):
    service = InvoiceService(db)
    return service.get_invoice_by_id(invoice_id)


@router.get("/{invoice_id}/tax-breakdown", response_model=TaxBreakdownOut)
def get_invoice_tax_breakdown(
    invoice_id: UUID,
    db: db_dependency,
    auth_context: AuthContext = Depends(AuthDependencies.require_role(READ_ROLES))
):
    """
    CGST/SGST breakdown grouped by HSN code and rate
    """
    service = InvoiceService(db)
    invoice = service.get_invoice_by_id(invoice_id)
    return TaxBreakdownOut.model_validate(invoice.tax_breakdown)


@router.patch("/{invoice_id}", response_model=InvoiceDetail)
def update_invoice(
    invoice_id: UUID,
    invoice_update: InvoiceUpdate,
    db: db_dependency,
    auth_context: AuthContext = Depends(AuthDependencies.require_role(BILLING_ROLES))
):
    """
    Update an invoice

    Sending `items` replaces the whole item set and recomputes the totals.
    Paid and cancelled invoices cannot be modified.
    """
    service = InvoiceService(db)
    return service.update_invoice(invoice_id, invoice_update, auth_context.user_id)


@router.post("/{invoice_id}/payments", response_model=PaymentResult, status_code=status.HTTP_201_CREATED)
def add_payment(
    invoice_id: UUID,
    payment_data: PaymentCreate,
    db: db_dependency,
    auth_context: AuthContext = Depends(AuthDependencies.require_role(BILLING_ROLES))
):
    """
    Record a payment

    Moves the invoice to PARTIALLY_PAID or PAID. A payment larger than the
    remaining balance is rejected with the balance in the error.
    """
    service = InvoicePaymentService(db)
    payment, invoice = service.add_payment(
        invoice_id,
        amount=payment_data.amount,
        method=payment_data.method,
        reference=payment_data.reference,
        notes=payment_data.notes,
        paid_at=payment_data.paid_at,
        user_id=auth_context.user_id,
    )
    return {"payment": payment, "invoice": InvoiceService(db).get_invoice_by_id(invoice.id)}


@router.get("/{invoice_id}/payments", response_model=List[PaymentOut])
def list_invoice_payments(
    invoice_id: UUID,
    db: db_dependency,
    auth_context: AuthContext = Depends(AuthDependencies.require_role(READ_ROLES))
):
    service = InvoicePaymentService(db)
    return service.list_payments(invoice_id)


@router.post("/{invoice_id}/cancel", response_model=InvoiceDetail)
def cancel_invoice(
    invoice_id: UUID,
    db: db_dependency,
    cancel_data: Optional[InvoiceCancelRequest] = Body(None),
    auth_context: AuthContext = Depends(AuthDependencies.require_role(BILLING_ROLES))
):
    """
    Cancel an invoice

    Paid invoices cannot be cancelled. Payments already recorded on a
    partially paid invoice are kept.
    """
    service = InvoiceService(db)
    reason = cancel_data.reason if cancel_data else None
    return service.cancel_invoice(invoice_id, reason, auth_context.user_id)


@router.delete("/{invoice_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_invoice(
    invoice_id: UUID,
    db: db_dependency,
    auth_context: AuthContext = Depends(AuthDependencies.require_role(DELETE_ROLES))
):
    """
    Delete an invoice

    Only invoices without payments can be deleted.
    """
    service = InvoiceService(db)
    service.delete_invoice(invoice_id)
