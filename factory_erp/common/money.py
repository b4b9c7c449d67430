"""
Decimal helpers for monetary values.

Amounts are kept with two fractional digits; rounding is commercial
(ROUND_HALF_UP) and is applied only where a value is stored or shown.
"""
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Iterable

CENT = Decimal('0.01')
QUANTITY_STEP = Decimal('0.001')
ZERO = Decimal('0.00')
HUNDRED = Decimal('100')


def to_decimal(value: Any) -> Decimal:
    """Convert ints, floats, strings or Decimals without binary float noise."""
    if value is None:
        return Decimal('0')
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def round_money(value: Any) -> Decimal:
    return to_decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def sum_money(values: Iterable[Any]) -> Decimal:
    total = Decimal('0')
    for value in values:
        total += to_decimal(value)
    return total


def percent_of(base: Any, rate: Any) -> Decimal:
    """Unrounded ``base * rate / 100``."""
    return to_decimal(base) * to_decimal(rate) / HUNDRED


def round_quantity(value: Any) -> Decimal:
    """Quantities are stored with three fractional digits."""
    return to_decimal(value).quantize(QUANTITY_STEP, rounding=ROUND_HALF_UP)


def round_rate(value: Any) -> Decimal:
    """Percentages (tax and discount rates) are stored with two fractional digits."""
    return to_decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)
