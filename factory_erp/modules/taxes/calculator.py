"""
GST calculation for invoice line items.

Each line's taxable ``amount`` is ``quantity * unit_price`` less the line's
own discount percentage, rounded to the cent. Tax is accumulated unrounded
per line and rounded once at the invoice level; the HSN breakdown splits
every group's rate into equal central (CGST) and state (SGST) halves.

Inputs are brought to their stored scale first (quantity 3 places, price and
rates 2), so a line resolved again from its stored item gives the same
amount. Stored items carry their ``amount``, which is used as is.
"""

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple

from factory_erp.common.money import (
    HUNDRED, ZERO, percent_of, round_money, round_quantity, round_rate, sum_money, to_decimal
)

RateLookup = Callable[[Optional[str]], Optional[Decimal]]


@dataclass(frozen=True)
class ResolvedLine:
    """A line item after tax resolution"""
    position: int
    description: str
    hsn_code: Optional[str]
    quantity: Decimal
    unit_price: Decimal
    discount: Decimal
    tax_rate: Decimal
    gross_amount: Decimal   # quantity * unit_price, unrounded
    amount: Decimal         # taxable value after line discount, rounded
    tax: Decimal            # unrounded, summed at invoice level

    @property
    def tax_amount(self) -> Decimal:
        return round_money(self.tax)


@dataclass
class TaxGroup:
    """Derived HSN/rate bucket used for the side-by-side CGST/SGST report"""
    hsn_code: Optional[str]
    tax_rate: Decimal
    taxable_value: Decimal = ZERO
    item_count: int = 0

    @property
    def central_rate(self) -> Decimal:
        return self.tax_rate / 2

    @property
    def state_rate(self) -> Decimal:
        return self.tax_rate / 2

    @property
    def central_amount(self) -> Decimal:
        return round_money(percent_of(self.taxable_value, self.central_rate))

    @property
    def state_amount(self) -> Decimal:
        return round_money(percent_of(self.taxable_value, self.state_rate))

    @property
    def total_tax(self) -> Decimal:
        return self.central_amount + self.state_amount


@dataclass
class TaxBreakdown:
    groups: List[TaxGroup] = field(default_factory=list)
    tax_amount: Decimal = ZERO

    @property
    def taxable_value(self) -> Decimal:
        return sum_money(g.taxable_value for g in self.groups)

    @property
    def central_total(self) -> Decimal:
        return sum_money(g.central_amount for g in self.groups)

    @property
    def state_total(self) -> Decimal:
        return sum_money(g.state_amount for g in self.groups)

    @property
    def rounding_difference(self) -> Decimal:
        """Invoice tax minus the split totals; non-zero only when halving rounds."""
        return self.tax_amount - (self.central_total + self.state_total)


class LineItemTaxResolver:
    """Resolve line amounts and tax rates, and group lines by HSN code and rate"""

    def __init__(self, default_tax_rate: Any = None, rate_lookup: Optional[RateLookup] = None):
        self.default_tax_rate = round_rate(default_tax_rate) if default_tax_rate is not None else ZERO
        self.rate_lookup = rate_lookup

    def effective_rate(self, item: Any) -> Decimal:
        """
        Explicit item rate first, then the HSN registry default for the
        item's code, then the invoice default.
        """
        rate = getattr(item, "tax_rate", None)
        if rate is not None:
            return round_rate(rate)
        hsn_code = getattr(item, "hsn_code", None)
        if hsn_code and self.rate_lookup is not None:
            registry_rate = self.rate_lookup(hsn_code)
            if registry_rate is not None:
                return round_rate(registry_rate)
        return self.default_tax_rate

    @staticmethod
    def line_amount(quantity: Any, unit_price: Any, discount: Any = None) -> Decimal:
        gross = to_decimal(quantity) * to_decimal(unit_price)
        discount_pct = to_decimal(discount)
        return round_money(gross * (HUNDRED - discount_pct) / HUNDRED)

    def resolve_item(self, item: Any, position: int = 0) -> ResolvedLine:
        quantity = round_quantity(item.quantity)
        unit_price = round_money(item.unit_price)
        discount = round_rate(getattr(item, "discount", None))
        rate = self.effective_rate(item)
        stored_amount = getattr(item, "amount", None)
        if stored_amount is not None:
            amount = round_money(stored_amount)
        else:
            amount = self.line_amount(quantity, unit_price, discount)
        return ResolvedLine(
            position=position,
            description=getattr(item, "description", "") or "",
            hsn_code=(getattr(item, "hsn_code", None) or None),
            quantity=quantity,
            unit_price=unit_price,
            discount=discount,
            tax_rate=rate,
            gross_amount=quantity * unit_price,
            amount=amount,
            tax=percent_of(amount, rate),
        )

    def resolve(self, items: Iterable[Any]) -> List[ResolvedLine]:
        return [self.resolve_item(item, position) for position, item in enumerate(items)]

    @staticmethod
    def group(lines: Iterable[ResolvedLine]) -> List[TaxGroup]:
        """Group by (hsn_code, tax_rate) keeping first-seen order."""
        grouped: Dict[Tuple[Optional[str], Decimal], TaxGroup] = {}
        for line in lines:
            # normalize() so 18 and 18.00 share a bucket
            key = (line.hsn_code, line.tax_rate.normalize())
            if key not in grouped:
                grouped[key] = TaxGroup(hsn_code=line.hsn_code, tax_rate=line.tax_rate)
            grouped[key].taxable_value += line.amount
            grouped[key].item_count += 1
        return list(grouped.values())

    def breakdown(self, lines: List[ResolvedLine], tax_amount: Optional[Decimal] = None) -> TaxBreakdown:
        if tax_amount is None:
            tax_amount = round_money(sum_money(line.tax for line in lines))
        return TaxBreakdown(groups=self.group(lines), tax_amount=tax_amount)
