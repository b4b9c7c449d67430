from sqlalchemy.orm import Session, selectinload
from sqlalchemy.orm.exc import StaleDataError
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy import or_, desc, func, case
from datetime import datetime, timezone
from decimal import Decimal
from typing import List, Optional
from uuid import UUID
import logging

from factory_erp.common.exceptions import (
    ConflictError, EngineError, InvoiceValidationError, NotFoundError, StorageError
)
from factory_erp.common.money import ZERO, round_money, to_decimal
from factory_erp.core.config import settings
from factory_erp.modules.customers.service import CustomerDirectory
from factory_erp.modules.invoices.guards import MutationGuard
from factory_erp.modules.invoices.models import (
    DiscountType, Invoice, InvoiceItem, InvoiceStatus
)
from factory_erp.modules.invoices.schemas import (
    InvoiceCreate, InvoiceFilters, InvoicePreviewRequest, InvoiceUpdate, TRANSPORT_FIELDS
)
from factory_erp.modules.invoices.sequence import SequenceAllocator
from factory_erp.modules.invoices.state_machine import (
    request_manual_status, status_after_payment, transition
)
from factory_erp.modules.invoices.totals import InvoiceTotals, build_totals
from factory_erp.modules.taxes.calculator import LineItemTaxResolver
from factory_erp.modules.taxes.service import HSNService

logger = logging.getLogger(__name__)

# Fields copied as-is from create/update payloads
PLAIN_FIELDS = ("notes", "terms", "shipping_address") + TRANSPORT_FIELDS

# Changing any of these recomputes the totals
FINANCIAL_FIELDS = ("items", "discount_type", "discount_value", "round_off", "tax_rate")


def is_number_conflict(error: IntegrityError) -> bool:
    text = str(getattr(error, "orig", error)).lower()
    return "invoice_number" in text or "invoice_sequences" in text


class InvoiceService:
    def __init__(self, db: Session):
        self.db = db

    def _resolver(self, default_tax_rate=None) -> LineItemTaxResolver:
        return LineItemTaxResolver(
            default_tax_rate=default_tax_rate,
            rate_lookup=HSNService(self.db).default_rate,
        )

    def _lock_invoice(self, invoice_id: UUID) -> Invoice:
        invoice = (
            self.db.query(Invoice)
            .filter(Invoice.id == invoice_id)
            .with_for_update()
            .populate_existing()
            .first()
        )
        if not invoice:
            raise NotFoundError("Invoice not found", invoice_id=str(invoice_id))
        return invoice

    @staticmethod
    def _apply_totals(invoice: Invoice, totals: InvoiceTotals) -> None:
        """Write the aggregate and replace the whole item set."""
        invoice.discount_type = totals.discount_type
        invoice.discount_rate = totals.discount_rate
        invoice.discount_amount = totals.discount_amount
        invoice.subtotal = totals.subtotal
        invoice.tax_amount = totals.tax_amount
        invoice.round_off = totals.round_off
        invoice.total_amount = totals.total_amount
        invoice.items = [
            InvoiceItem(
                position=line.position,
                description=line.description,
                hsn_code=line.hsn_code,
                quantity=line.quantity,
                unit_price=line.unit_price,
                discount=line.discount,
                tax_rate=line.tax_rate,
                amount=line.amount,
                tax_amount=line.tax_amount,
            )
            for line in totals.lines
        ]

    def create_invoice(self, invoice_data: InvoiceCreate, user_id: Optional[str] = None) -> Invoice:
        """
        Create an invoice with a freshly allocated number.

        Totals are computed once up front; the number allocation and the
        insert run as one transaction that is retried from scratch when the
        number or the period counter hits a unique constraint.
        """
        CustomerDirectory(self.db).require_billable_customer(invoice_data.customer_id)
        totals = build_totals(
            invoice_data.items,
            self._resolver(invoice_data.tax_rate),
            discount_type=invoice_data.discount_type,
            discount_value=invoice_data.discount_value,
            round_off=invoice_data.round_off,
        )

        max_attempts = settings.INVOICE_NUMBER_MAX_RETRIES
        for attempt in range(1, max_attempts + 1):
            try:
                invoice_number = SequenceAllocator(self.db).next_number(invoice_data.issue_date)
                invoice = Invoice(
                    invoice_number=invoice_number,
                    customer_id=invoice_data.customer_id,
                    status=invoice_data.status,
                    issue_date=invoice_data.issue_date,
                    due_date=invoice_data.due_date,
                    tax_rate=invoice_data.tax_rate,
                    amount_paid=ZERO,
                    created_by=user_id,
                    updated_by=user_id,
                    **{name: getattr(invoice_data, name) for name in PLAIN_FIELDS},
                )
                self._apply_totals(invoice, totals)
                self.db.add(invoice)
                self.db.commit()

                logger.info(
                    f"Invoice {invoice_number} created: subtotal {totals.subtotal}, "
                    f"tax {totals.tax_amount}, total {totals.total_amount}"
                )
                return self.get_invoice_by_id(invoice.id)

            except IntegrityError as e:
                self.db.rollback()
                if not is_number_conflict(e):
                    logger.error(f"Integrity error creating invoice: {e}", exc_info=True)
                    raise StorageError("Could not create invoice")
                if attempt == max_attempts:
                    logger.error(f"Invoice number allocation failed after {attempt} attempts")
                    raise ConflictError(
                        "Could not allocate a unique invoice number, please retry", attempts=attempt
                    )
                logger.warning(f"Invoice number conflict (attempt {attempt}/{max_attempts}), retrying")
            except EngineError:
                self.db.rollback()
                raise
            except SQLAlchemyError as e:
                self.db.rollback()
                logger.error(f"Error creating invoice: {e}", exc_info=True)
                raise StorageError("Could not create invoice")

    def update_invoice(self, invoice_id: UUID, invoice_update: InvoiceUpdate, user_id: Optional[str] = None) -> Invoice:
        """
        Update header fields, replace items, or move the status manually.

        Items are replaced as a whole and the totals recomputed; on an invoice
        with payments the new total must still cover what was paid, and the
        status is derived again from the ledger.
        """
        changes = invoice_update.model_dump(exclude_unset=True)
        try:
            invoice = self._lock_invoice(invoice_id)
            MutationGuard.ensure_can_update(invoice)

            if changes.get("customer_id") and changes["customer_id"] != invoice.customer_id:
                CustomerDirectory(self.db).require_billable_customer(changes["customer_id"])
                invoice.customer_id = changes["customer_id"]

            issue_date = changes.get("issue_date") or invoice.issue_date
            due_date = changes.get("due_date") or invoice.due_date
            if due_date < issue_date:
                raise InvoiceValidationError("Due date cannot be before the issue date", field="due_date")
            invoice.issue_date = issue_date
            invoice.due_date = due_date

            for name in PLAIN_FIELDS:
                if name in changes:
                    setattr(invoice, name, changes[name])

            if any(changes.get(name) is not None for name in FINANCIAL_FIELDS):
                self._recompute(invoice, invoice_update)

            if changes.get("status") is not None:
                request_manual_status(invoice, invoice_update.status)

            invoice.touch(user_id)
            self.db.commit()
            logger.info(f"Invoice {invoice.invoice_number} updated ({', '.join(sorted(changes)) or 'no changes'})")
            return self.get_invoice_by_id(invoice_id)

        except EngineError:
            self.db.rollback()
            raise
        except StaleDataError:
            self.db.rollback()
            raise ConflictError("Invoice was modified concurrently, please retry", invoice_id=str(invoice_id))
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Error updating invoice {invoice_id}: {e}", exc_info=True)
            raise StorageError("Could not update invoice")

    def _recompute(self, invoice: Invoice, invoice_update: InvoiceUpdate) -> None:
        if invoice_update.tax_rate is not None:
            invoice.tax_rate = invoice_update.tax_rate

        # Stored items already carry their effective rate
        items = invoice_update.items if invoice_update.items is not None else list(invoice.items)

        discount_type = invoice_update.discount_type or invoice.discount_type
        if invoice_update.discount_value is not None:
            discount_value = invoice_update.discount_value
        elif discount_type == DiscountType.PERCENTAGE:
            discount_value = invoice.discount_rate
        else:
            discount_value = invoice.discount_amount

        round_off = invoice_update.round_off if invoice_update.round_off is not None else invoice.round_off

        totals = build_totals(
            items,
            self._resolver(invoice.tax_rate),
            discount_type=discount_type,
            discount_value=discount_value,
            round_off=round_off,
        )
        MutationGuard.ensure_total_covers_payments(invoice, totals.total_amount)
        self._apply_totals(invoice, totals)

        paid = Decimal(invoice.amount_paid or 0)
        if paid > 0:
            transition(
                invoice,
                status_after_payment(invoice.status, paid, totals.total_amount, settings.MONEY_TOLERANCE),
            )

    def cancel_invoice(self, invoice_id: UUID, reason: Optional[str] = None, user_id: Optional[str] = None) -> Invoice:
        """Cancel an unpaid or partially paid invoice; recorded payments stay on the ledger"""
        try:
            invoice = self._lock_invoice(invoice_id)
            MutationGuard.ensure_can_cancel(invoice)

            transition(invoice, InvoiceStatus.CANCELLED)
            invoice.cancellation_reason = reason
            invoice.cancelled_at = datetime.now(timezone.utc)
            invoice.touch(user_id)

            self.db.commit()
            logger.info(f"Invoice {invoice.invoice_number} cancelled: {reason or 'no reason given'}")
            return self.get_invoice_by_id(invoice_id)

        except EngineError:
            self.db.rollback()
            raise
        except StaleDataError:
            self.db.rollback()
            raise ConflictError("Invoice was modified concurrently, please retry", invoice_id=str(invoice_id))
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Error cancelling invoice {invoice_id}: {e}", exc_info=True)
            raise StorageError("Could not cancel invoice")

    def delete_invoice(self, invoice_id: UUID) -> None:
        try:
            invoice = self._lock_invoice(invoice_id)
            MutationGuard.ensure_can_delete(invoice)
            number = invoice.invoice_number
            self.db.delete(invoice)
            self.db.commit()
            logger.info(f"Invoice {number} deleted")
        except EngineError:
            self.db.rollback()
            raise
        except StaleDataError:
            self.db.rollback()
            raise ConflictError("Invoice was modified concurrently, please retry", invoice_id=str(invoice_id))
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Error deleting invoice {invoice_id}: {e}", exc_info=True)
            raise StorageError("Could not delete invoice")

    def get_invoice_by_id(self, invoice_id: UUID) -> Invoice:
        invoice = (
            self.db.query(Invoice)
            .options(
                selectinload(Invoice.customer),
                selectinload(Invoice.items),
                selectinload(Invoice.payments),
            )
            .filter(Invoice.id == invoice_id)
            .first()
        )
        if not invoice:
            raise NotFoundError("Invoice not found", invoice_id=str(invoice_id))
        return invoice

    def _filter_conditions(self, filters: InvoiceFilters, include_status: bool = True) -> List:
        conditions = []
        if include_status and filters.status:
            conditions.append(Invoice.status == filters.status)
        if filters.customer_id:
            conditions.append(Invoice.customer_id == filters.customer_id)
        if filters.date_from:
            conditions.append(Invoice.issue_date >= filters.date_from)
        if filters.date_to:
            conditions.append(Invoice.issue_date <= filters.date_to)
        if filters.search:
            conditions.append(or_(
                Invoice.invoice_number.ilike(f"%{filters.search}%"),
                Invoice.notes.ilike(f"%{filters.search}%"),
            ))
        return conditions

    def _amount_stats(self, conditions: List) -> dict:
        balance = Invoice.total_amount - Invoice.amount_paid
        open_statuses = [s for s in InvoiceStatus if s not in (InvoiceStatus.PAID, InvoiceStatus.CANCELLED)]
        row = self.db.query(
            func.coalesce(func.sum(case((Invoice.status != InvoiceStatus.CANCELLED, Invoice.total_amount), else_=0)), 0),
            func.coalesce(func.sum(Invoice.amount_paid), 0),
            func.coalesce(func.sum(case((Invoice.status.in_(open_statuses), balance), else_=0)), 0),
            func.coalesce(func.sum(case((Invoice.status == InvoiceStatus.OVERDUE, balance), else_=0)), 0),
            func.coalesce(func.sum(case((Invoice.status != InvoiceStatus.CANCELLED, Invoice.tax_amount), else_=0)), 0),
        ).filter(*conditions).one()
        total_amount, paid_amount, pending_amount, overdue_amount, total_tax = (round_money(v) for v in row)
        return {
            "total_amount": total_amount,
            "paid_amount": paid_amount,
            "pending_amount": pending_amount,
            "overdue_amount": overdue_amount,
            "total_tax": total_tax,
        }

    def _counts_by_status(self, conditions: List) -> List[dict]:
        rows = (
            self.db.query(Invoice.status, func.count(Invoice.id))
            .filter(*conditions)
            .group_by(Invoice.status)
            .all()
        )
        counts = {status_value: count for status_value, count in rows}
        return [{"status": s, "count": counts.get(s, 0)} for s in InvoiceStatus]

    def get_invoices(self, filters: InvoiceFilters, limit: int = 20, offset: int = 0) -> dict:
        """Invoices matching the filters, plus amounts and counts over the whole match"""
        conditions = self._filter_conditions(filters)
        query = (
            self.db.query(Invoice)
            .options(selectinload(Invoice.customer))
            .filter(*conditions)
            .order_by(desc(Invoice.issue_date), desc(Invoice.invoice_number))
        )
        total = query.count()
        invoices = query.offset(offset).limit(limit).all()

        stats = self._amount_stats(conditions)
        stats.pop("total_tax")

        return {
            "invoices": invoices,
            "total": total,
            "limit": limit,
            "offset": offset,
            "applied_filters": filters,
            "stats": stats,
            # Counts ignore the status filter so every badge stays meaningful
            "counts_by_status": self._counts_by_status(self._filter_conditions(filters, include_status=False)),
        }

    def get_summary_stats(self) -> dict:
        stats = self._amount_stats([])
        counts = self._counts_by_status([])
        cancelled = next(c["count"] for c in counts if c["status"] == InvoiceStatus.CANCELLED)
        return {
            "total_invoices": sum(c["count"] for c in counts),
            "cancelled_count": cancelled,
            "counts_by_status": counts,
            **stats,
        }

    def get_next_invoice_number(self, issue_date=None) -> dict:
        return SequenceAllocator(self.db).preview_number(issue_date)

    def preview_totals(self, preview: InvoicePreviewRequest) -> InvoiceTotals:
        """Compute totals and the tax breakdown without saving anything"""
        return build_totals(
            preview.items,
            self._resolver(preview.tax_rate),
            discount_type=preview.discount_type,
            discount_value=to_decimal(preview.discount_value),
            round_off=preview.round_off,
        )
