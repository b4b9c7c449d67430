from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError
from sqlalchemy.exc import SQLAlchemyError
from datetime import datetime, timezone
from decimal import Decimal
from typing import List, Optional
from uuid import UUID
import logging

from factory_erp.common.exceptions import (
    ConflictError, EngineError, InvoiceValidationError, NotFoundError, OverpaymentError, StorageError
)
from factory_erp.common.money import round_money
from factory_erp.core.config import settings
from factory_erp.modules.invoices.guards import MutationGuard
from factory_erp.modules.invoices.models import Invoice, Payment, PaymentMethod
from factory_erp.modules.invoices.state_machine import status_after_payment, transition

logger = logging.getLogger(__name__)


class InvoicePaymentService:
    """Payment ledger: append payments and keep ``amount_paid`` and status in step"""

    def __init__(self, db: Session):
        self.db = db

    def _lock_invoice(self, invoice_id: UUID) -> Invoice:
        # Lock the invoice row alone; joined eager loads cannot be combined with FOR UPDATE
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

    def add_payment(
        self,
        invoice_id: UUID,
        amount: Decimal,
        method: PaymentMethod,
        reference: Optional[str] = None,
        notes: Optional[str] = None,
        paid_at: Optional[datetime] = None,
        user_id: Optional[str] = None,
    ):
        """
        Record a payment against an invoice.

        The read of ``amount_paid`` and the write of the new value happen
        under the invoice row lock, and the version counter rejects the flush
        if another writer got in anyway. Returns ``(payment, invoice)``.
        """
        amount = round_money(amount)
        if amount <= 0:
            raise InvoiceValidationError("Payment amount must be greater than 0", field="amount")

        try:
            invoice = self._lock_invoice(invoice_id)
            MutationGuard.ensure_can_record_payment(invoice)

            current_paid = Decimal(invoice.amount_paid or 0)
            total = Decimal(invoice.total_amount)
            if current_paid + amount > total + settings.MONEY_TOLERANCE:
                raise OverpaymentError(amount, remaining_balance=total - current_paid)

            payment = Payment(
                invoice_id=invoice.id,
                amount=amount,
                method=method,
                reference=reference,
                notes=notes,
                paid_at=paid_at or datetime.now(timezone.utc),
                recorded_by=user_id,
            )
            self.db.add(payment)

            invoice.amount_paid = current_paid + amount
            transition(
                invoice,
                status_after_payment(invoice.status, invoice.amount_paid, total, settings.MONEY_TOLERANCE),
            )
            invoice.touch(user_id)

            self.db.commit()
            self.db.refresh(payment)
            self.db.refresh(invoice)

            logger.info(
                f"Payment of {amount} ({method.value}) recorded on invoice {invoice.invoice_number}; "
                f"paid {invoice.amount_paid} of {invoice.total_amount}, status {invoice.status.value}"
            )
            return payment, invoice

        except EngineError:
            self.db.rollback()
            raise
        except StaleDataError:
            self.db.rollback()
            logger.warning(f"Concurrent modification while recording payment on invoice {invoice_id}")
            raise ConflictError(
                "Invoice was modified concurrently, please retry", invoice_id=str(invoice_id)
            )
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Error recording payment on invoice {invoice_id}: {e}", exc_info=True)
            raise StorageError("Could not record payment")

    def list_payments(self, invoice_id: UUID) -> List[Payment]:
        exists = self.db.query(Invoice.id).filter(Invoice.id == invoice_id).first()
        if not exists:
            raise NotFoundError("Invoice not found", invoice_id=str(invoice_id))
        return (
            self.db.query(Payment)
            .filter(Payment.invoice_id == invoice_id)
            .order_by(Payment.paid_at, Payment.created_at)
            .all()
        )
