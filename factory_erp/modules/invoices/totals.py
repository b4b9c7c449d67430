"""
Invoice aggregate: subtotal, discount, tax, round-off and grand total.

    subtotal        = sum(item.amount)
    tax_amount      = round2(sum(unrounded item tax))
    discount_amount = round2(subtotal * rate / 100)  or the fixed value
    total_amount    = subtotal - discount_amount + tax_amount + round_off

The invoice-level discount does not reduce the tax base, so the HSN groups'
taxable values always add up to ``subtotal``.
"""
from dataclasses import dataclass, field
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, List, Optional

from factory_erp.common.exceptions import BusinessRuleViolation, InvoiceValidationError
from factory_erp.common.money import HUNDRED, ZERO, round_money, round_quantity, round_rate, sum_money, to_decimal
from factory_erp.core.config import settings
from factory_erp.modules.invoices.models import DiscountType
from factory_erp.modules.taxes.calculator import LineItemTaxResolver, ResolvedLine, TaxBreakdown


@dataclass
class InvoiceTotals:
    lines: List[ResolvedLine] = field(default_factory=list)
    discount_type: DiscountType = DiscountType.PERCENTAGE
    discount_rate: Decimal = ZERO
    subtotal: Decimal = ZERO
    discount_amount: Decimal = ZERO
    tax_amount: Decimal = ZERO
    round_off: Decimal = ZERO
    total_amount: Decimal = ZERO
    breakdown: Optional[TaxBreakdown] = None

    @property
    def suggested_round_off(self) -> Decimal:
        """Adjustment that would bring the total to the nearest whole unit."""
        unrounded = self.total_amount - self.round_off
        return unrounded.quantize(Decimal('1'), rounding=ROUND_HALF_UP) - unrounded


def resolve_discount(subtotal: Decimal, discount_type: DiscountType, discount_value: Any):
    """Return ``(rate, amount)`` for the invoice-level discount."""
    value = to_decimal(discount_value)
    if value < 0:
        raise InvoiceValidationError("Discount cannot be negative", field="discount_value")

    if discount_type == DiscountType.PERCENTAGE:
        value = round_rate(value)
        if value > HUNDRED:
            raise InvoiceValidationError(
                "Discount percentage must be between 0 and 100", field="discount_value"
            )
        return value, round_money(subtotal * value / HUNDRED)

    amount = round_money(value)
    if amount > subtotal:
        raise BusinessRuleViolation(
            f"Discount of {amount} exceeds the subtotal of {subtotal}",
            discount_amount=str(amount), subtotal=str(subtotal),
        )
    rate = (amount * HUNDRED / subtotal).quantize(Decimal('0.01'), rounding=ROUND_HALF_UP) if subtotal else ZERO
    return rate, amount


def build_totals(
    items: List[Any],
    resolver: LineItemTaxResolver,
    discount_type: DiscountType = DiscountType.PERCENTAGE,
    discount_value: Any = None,
    round_off: Any = None,
) -> InvoiceTotals:
    if not items:
        raise InvoiceValidationError("An invoice needs at least one item", field="items")

    for position, item in enumerate(items):
        if round_quantity(item.quantity) <= 0:
            raise InvoiceValidationError("Quantity must be greater than 0", field=f"items.{position}.quantity")
        if to_decimal(item.unit_price) < 0:
            raise InvoiceValidationError("Unit price cannot be negative", field=f"items.{position}.unit_price")
        discount = to_decimal(getattr(item, "discount", None))
        if discount < 0 or discount > HUNDRED:
            raise InvoiceValidationError(
                "Item discount must be between 0 and 100", field=f"items.{position}.discount"
            )

    round_off = round_money(round_off)
    if abs(round_off) > settings.INVOICE_MAX_ROUND_OFF:
        raise InvoiceValidationError(
            f"Round-off cannot exceed {settings.INVOICE_MAX_ROUND_OFF} in either direction",
            field="round_off",
        )

    lines = resolver.resolve(items)
    for line in lines:
        if line.tax_rate < 0 or line.tax_rate > HUNDRED:
            raise InvoiceValidationError(
                "Tax rate must be between 0 and 100", field=f"items.{line.position}.tax_rate"
            )

    subtotal = round_money(sum_money(line.amount for line in lines))
    tax_amount = round_money(sum_money(line.tax for line in lines))
    discount_rate, discount_amount = resolve_discount(subtotal, discount_type, discount_value)
    total_amount = subtotal - discount_amount + tax_amount + round_off

    if total_amount < 0:
        raise BusinessRuleViolation(
            "Invoice total cannot be negative", total_amount=str(total_amount)
        )

    return InvoiceTotals(
        lines=lines,
        discount_type=discount_type,
        discount_rate=discount_rate,
        subtotal=subtotal,
        discount_amount=discount_amount,
        tax_amount=tax_amount,
        round_off=round_off,
        total_amount=total_amount,
        breakdown=resolver.breakdown(lines, tax_amount),
    )
