"""
Invoice lifecycle.

All status changes go through :func:`transition`, which checks the table
below. Payments move an invoice toward PARTIALLY_PAID/PAID, the cancel
operation moves it to CANCELLED, and update may move it along the manual
edges (DRAFT -> PENDING -> SENT, and OVERDUE for the external overdue sweep).
"""
from decimal import Decimal
from typing import Dict, FrozenSet

from factory_erp.common.exceptions import InvalidStateTransition
from factory_erp.modules.invoices.models import InvoiceStatus

S = InvoiceStatus

TRANSITIONS: Dict[InvoiceStatus, FrozenSet[InvoiceStatus]] = {
    S.DRAFT: frozenset({S.PENDING, S.SENT, S.PARTIALLY_PAID, S.PAID, S.OVERDUE, S.CANCELLED}),
    S.PENDING: frozenset({S.SENT, S.PARTIALLY_PAID, S.PAID, S.OVERDUE, S.CANCELLED}),
    S.SENT: frozenset({S.PARTIALLY_PAID, S.PAID, S.OVERDUE, S.CANCELLED}),
    S.PARTIALLY_PAID: frozenset({S.PAID, S.OVERDUE, S.CANCELLED}),
    S.OVERDUE: frozenset({S.PARTIALLY_PAID, S.PAID, S.CANCELLED}),
    S.PAID: frozenset(),
    S.CANCELLED: frozenset(),
}

TERMINAL = frozenset({S.PAID, S.CANCELLED})
INITIAL_STATES = frozenset({S.DRAFT, S.PENDING})

# Targets a caller may request through update; the rest are event-driven
MANUAL_TARGETS = frozenset({S.PENDING, S.SENT, S.OVERDUE})


def can_transition(current: InvoiceStatus, target: InvoiceStatus) -> bool:
    return target in TRANSITIONS[current]


def transition(invoice, target: InvoiceStatus) -> None:
    current = invoice.status
    if current == target:
        return
    if not can_transition(current, target):
        raise InvalidStateTransition(
            f"Cannot change invoice status from {current.value} to {target.value}",
            current_status=current,
            target_status=target.value,
        )
    invoice.status = target


def request_manual_status(invoice, target: InvoiceStatus) -> None:
    """Status change asked for explicitly by a user through update."""
    if target == invoice.status:
        return
    if target not in MANUAL_TARGETS:
        raise InvalidStateTransition(
            f"Status {target.value} cannot be set manually",
            current_status=invoice.status,
            target_status=target.value,
        )
    transition(invoice, target)


def status_after_payment(
    current: InvoiceStatus, amount_paid: Decimal, total_amount: Decimal, tolerance: Decimal
) -> InvoiceStatus:
    """Status implied by the ledger; unchanged while nothing has been paid."""
    if amount_paid <= 0:
        return current
    if amount_paid >= total_amount - tolerance:
        return S.PAID
    return S.PARTIALLY_PAID
