"""
Values -- Exact money arithmetic for item and transaction amounts.

Responsibility:
    Parses stored amount strings, sums them without floating point, applies
    tax and rounds to two decimal places. Every amount the kernel writes
    passes through format_amount(), so stored text is always canonical
    ("12.50", never "12.5" or "-0.00").

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.

Invariants enforced:
    NON_NEGATIVE_AMOUNT (checked by callers using the values computed here).
    CRITICAL: No floats anywhere. parse_amount() rejects float input.

Failure modes:
    - InvalidAmountError on text that is not a decimal number.
    - TypeError when a float is passed in.
"""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Iterable

from inventory_kernel.exceptions import InvalidAmountError

MONEY_DECIMAL_PLACES = 2
DEFAULT_ROUNDING = ROUND_HALF_UP

ZERO = Decimal("0")
_QUANTUM = Decimal(1).scaleb(-MONEY_DECIMAL_PLACES)

AmountLike = str | Decimal | int | None


def parse_amount(value: AmountLike) -> Decimal:
    """
    Convert a stored amount to Decimal.

    None, empty and whitespace-only strings are treated as zero, matching
    how blank price fields behave in the item records. Currency symbols and
    thousands separators are tolerated ("$1,234.50").

    Raises:
        TypeError: If value is a float.
        InvalidAmountError: If value is not a finite decimal number.
    """
    if value is None:
        return ZERO
    if isinstance(value, bool) or isinstance(value, float):
        raise TypeError(f"Amounts must not be floats or bools, got {value!r}")
    if isinstance(value, Decimal):
        result = value
    elif isinstance(value, int):
        result = Decimal(value)
    else:
        text = value.strip().replace(",", "").replace("$", "")
        if not text:
            return ZERO
        try:
            result = Decimal(text)
        except InvalidOperation:
            raise InvalidAmountError(value) from None
    if not result.is_finite():
        raise InvalidAmountError(str(value), "not a finite number")
    return result


def round_money(value: Decimal) -> Decimal:
    """Round to two decimal places using ROUND_HALF_UP."""
    return value.quantize(_QUANTUM, rounding=DEFAULT_ROUNDING)


def sum_amounts(values: Iterable[AmountLike]) -> Decimal:
    """Exact sum of amounts. Blank entries count as zero."""
    total = ZERO
    for value in values:
        total += parse_amount(value)
    return total


def compute_tax(subtotal: Decimal, rate_pct: Decimal | None) -> Decimal:
    """
    Tax on a subtotal for a percentage rate, rounded to cents.

    A missing rate means no tax.
    """
    if rate_pct is None:
        return round_money(ZERO)
    return round_money(subtotal * parse_amount(rate_pct) / Decimal(100))


def format_amount(value: AmountLike) -> str:
    """Canonical two-decimal text for storage. Normalizes negative zero."""
    rounded = round_money(parse_amount(value))
    if rounded == ZERO:
        rounded = abs(rounded)
    return f"{rounded:.{MONEY_DECIMAL_PLACES}f}"


def is_blank(value: AmountLike) -> bool:
    """True when an amount field holds no value at all."""
    return value is None or (isinstance(value, str) and not value.strip())
