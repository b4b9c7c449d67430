from decimal import Decimal

from factory_erp.common.exceptions import InvalidStateTransition
from factory_erp.modules.invoices.models import Invoice, InvoiceStatus


class MutationGuard:
    """Which operations the invoice's current status and ledger allow"""

    @staticmethod
    def ensure_can_update(invoice: Invoice) -> None:
        if invoice.status == InvoiceStatus.PAID:
            raise InvalidStateTransition("A paid invoice cannot be modified", current_status=invoice.status)
        if invoice.status == InvoiceStatus.CANCELLED:
            raise InvalidStateTransition("A cancelled invoice cannot be modified", current_status=invoice.status)

    @staticmethod
    def ensure_total_covers_payments(invoice: Invoice, new_total: Decimal) -> None:
        paid = Decimal(invoice.amount_paid or 0)
        if new_total < paid:
            raise InvalidStateTransition(
                f"New total {new_total} is below the amount already paid ({paid})",
                current_status=invoice.status,
                amount_paid=str(paid),
                new_total=str(new_total),
            )

    @staticmethod
    def ensure_can_delete(invoice: Invoice) -> None:
        if invoice.status == InvoiceStatus.PAID:
            raise InvalidStateTransition("A paid invoice cannot be deleted", current_status=invoice.status)
        if Decimal(invoice.amount_paid or 0) > 0:
            raise InvalidStateTransition(
                "An invoice with recorded payments cannot be deleted",
                current_status=invoice.status,
                amount_paid=str(invoice.amount_paid),
            )

    @staticmethod
    def ensure_can_cancel(invoice: Invoice) -> None:
        if invoice.status == InvoiceStatus.PAID:
            raise InvalidStateTransition("A paid invoice cannot be cancelled", current_status=invoice.status)
        if invoice.status == InvoiceStatus.CANCELLED:
            raise InvalidStateTransition("Invoice is already cancelled", current_status=invoice.status)

    @staticmethod
    def ensure_can_record_payment(invoice: Invoice) -> None:
        if invoice.status == InvoiceStatus.CANCELLED:
            raise InvalidStateTransition(
                "Payments cannot be recorded on a cancelled invoice", current_status=invoice.status
            )
        if invoice.status == InvoiceStatus.PAID:
            raise InvalidStateTransition("Invoice is already fully paid", current_status=invoice.status)
