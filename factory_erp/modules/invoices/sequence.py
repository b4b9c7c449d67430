from datetime import date
from typing import Optional
from sqlalchemy import func
from sqlalchemy.orm import Session
import logging

from factory_erp.core.config import settings
from factory_erp.modules.invoices.models import Invoice, InvoiceSequence

logger = logging.getLogger(__name__)

SEQUENCE_WIDTH = 4


def period_key(issue_date: date) -> str:
    return issue_date.strftime("%Y%m")


def format_number(prefix: str, period: str, value: int) -> str:
    # Widens past 9999 instead of rolling over
    return f"{prefix}{period}{value:0{SEQUENCE_WIDTH}d}"


class SequenceAllocator:
    """
    Allocates invoice numbers ``PREFIX + YYYYMM + NNNN`` per calendar month.

    The counter row for the period is locked (``SELECT ... FOR UPDATE``) for
    the rest of the caller's transaction, so concurrent allocations queue
    behind each other. The highest number already stored for the period is
    also taken into account, which keeps numbers created before the counter
    existed from being issued twice.
    """

    def __init__(self, db: Session, prefix: Optional[str] = None):
        self.db = db
        self.prefix = (prefix or settings.INVOICE_NUMBER_PREFIX).upper()

    def _highest_issued(self, period: str) -> int:
        stem = f"{self.prefix}{period}"
        # Longest first so widened numbers (5+ digits) sort above 9999
        rows = (
            self.db.query(Invoice.invoice_number)
            .filter(Invoice.invoice_number.like(f"{stem}%"))
            .order_by(func.length(Invoice.invoice_number).desc(), Invoice.invoice_number.desc())
            .limit(20)
            .all()
        )
        for (number,) in rows:
            suffix = number[len(stem):]
            if suffix.isdigit():
                return int(suffix)
        return 0

    def _counter(self, period: str, lock: bool) -> Optional[InvoiceSequence]:
        query = self.db.query(InvoiceSequence).filter(
            InvoiceSequence.prefix == self.prefix,
            InvoiceSequence.period == period,
        )
        if lock:
            query = query.with_for_update()
        return query.first()

    def next_number(self, issue_date: Optional[date] = None) -> str:
        """
        Consume and return the next number for the issue date's period.

        Must run inside the transaction that stores the invoice; a concurrent
        first allocation for a new period surfaces as an IntegrityError on
        ``uq_invoice_sequences_prefix_period`` and is retried by the caller.
        """
        period = period_key(issue_date or date.today())
        counter = self._counter(period, lock=True)
        if counter is None:
            counter = InvoiceSequence(prefix=self.prefix, period=period, current_value=0)
            self.db.add(counter)
            self.db.flush()

        value = max(counter.current_value, self._highest_issued(period)) + 1
        counter.current_value = value
        self.db.flush()

        number = format_number(self.prefix, period, value)
        logger.debug(f"Allocated invoice number {number}")
        return number

    def preview_number(self, issue_date: Optional[date] = None) -> dict:
        """Next number for the period without consuming it."""
        period = period_key(issue_date or date.today())
        counter = self._counter(period, lock=False)
        current = max(counter.current_value if counter else 0, self._highest_issued(period))
        return {
            "next_number": format_number(self.prefix, period, current + 1),
            "prefix": self.prefix,
            "period": period,
            "current_sequence": current,
        }
