"""
Currency arithmetic.

Amounts are summed as Decimal and rounded once, after summation, to 2 places
with half-up rounding. Negative row amounts are treated as data corruption and
clamped to zero before summing.
"""

from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any, Iterable, Optional

TWO_PLACES = Decimal("0.01")
ZERO = Decimal("0")


def to_decimal(value: Any) -> Decimal:
    """Best-effort conversion; None, blanks and garbage become 0."""
    if value is None:
        return ZERO
    if isinstance(value, bool):
        return ZERO
    if isinstance(value, Decimal):
        result = value
    elif isinstance(value, (int, float)):
        result = Decimal(str(value))
    else:
        try:
            text = str(value).strip().replace(",", "")
            result = Decimal(text) if text else ZERO
        except InvalidOperation:
            return ZERO
    # inf and nan are garbage too
    return result if result.is_finite() else ZERO


def round2(value: Any) -> Decimal:
    return to_decimal(value).quantize(TWO_PLACES, rounding=ROUND_HALF_UP)


def sum_amounts(values: Iterable[Any]) -> Decimal:
    """Clamp each amount at zero, sum, then round once."""
    total = ZERO
    for value in values:
        amount = to_decimal(value)
        if amount > 0:
            total += amount
    return round2(total)


def sum_signed(values: Iterable[Any]) -> Decimal:
    """Plain rounded sum, for ledgers where sign carries meaning."""
    total = ZERO
    for value in values:
        total += to_decimal(value)
    return round2(total)


def safe_ratio(numerator: Any, denominator: Any) -> Decimal:
    """numerator / denominator, or 0 when the denominator is 0."""
    denom = to_decimal(denominator)
    if denom == 0:
        return ZERO
    return to_decimal(numerator) / denom


def as_float(value: Optional[Decimal]) -> float:
    return float(value or 0)
