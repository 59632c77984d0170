"""
Decimal Math Utilities for Municipal Tax Calculations.

Every figure the engine produces (add-backs, factor percentages,
jurisdiction taxable income) flows through these helpers so that the
same inputs always produce the same, bit-exact output.

Numeric contract:
- Money is quantized to pennies (0.01) with ROUND_HALF_UP
- Percentages on a 0..100 scale are quantized to 0.0001 with ROUND_HALF_UP
- Ratios (0..1 scale, e.g. variance) are quantized to 0.0001 with ROUND_HALF_UP

Why Decimal?
- Float: 0.1 + 0.2 = 0.30000000000000004
- Decimal: 0.1 + 0.2 = 0.3

A $0.01 drift between a UI preview and the backend recomputation of the
same filing shows up as a diff in audit tooling, so floats never enter
the arithmetic.
"""

from decimal import Decimal, ROUND_HALF_UP, InvalidOperation
from typing import Iterable, Optional, Union
import logging

logger = logging.getLogger(__name__)

# Type alias for values that can be converted to Decimal
Numeric = Union[int, float, str, Decimal]

MONEY_PLACES = Decimal("0.01")        # Round to pennies
PERCENT_PLACES = Decimal("0.0001")    # 4 decimal places on the 0..100 scale
RATIO_PLACES = Decimal("0.0001")      # 4 decimal places on the 0..1 scale

ZERO = Decimal("0")
HUNDRED = Decimal("100")


def to_decimal(value: Optional[Numeric]) -> Decimal:
    """
    Convert a numeric value to Decimal.

    None is treated as zero (absent inputs contribute nothing).

    Args:
        value: Value to convert (int, float, str, Decimal or None)

    Returns:
        Decimal representation

    Examples:
        >>> to_decimal(100)
        Decimal('100')
        >>> to_decimal(100.50)
        Decimal('100.5')
        >>> to_decimal(None)
        Decimal('0')
    """
    if value is None:
        return ZERO
    if isinstance(value, Decimal):
        return value
    if isinstance(value, float):
        # Convert float to string first to preserve representation
        return Decimal(str(value))
    return Decimal(value)


def money(value: Optional[Numeric]) -> Decimal:
    """
    Convert value to money (rounded to pennies, half-up).

    Examples:
        >>> money(100.995)
        Decimal('101.00')
        >>> money(100.994)
        Decimal('100.99')
    """
    return to_decimal(value).quantize(MONEY_PLACES, rounding=ROUND_HALF_UP)


def percentage(value: Optional[Numeric]) -> Decimal:
    """
    Quantize a 0..100 percentage to 4 decimal places.

    Examples:
        >>> percentage("18.75")
        Decimal('18.7500')
        >>> percentage("33.333333")
        Decimal('33.3333')
    """
    return to_decimal(value).quantize(PERCENT_PLACES, rounding=ROUND_HALF_UP)


def ratio(value: Optional[Numeric]) -> Decimal:
    """Quantize a 0..1 ratio to 4 decimal places."""
    return to_decimal(value).quantize(RATIO_PLACES, rounding=ROUND_HALF_UP)


def non_negative(value: Optional[Numeric]) -> Decimal:
    """
    Treat absent or negative inputs as zero.

    Examples:
        >>> non_negative(-250)
        Decimal('0')
        >>> non_negative("1250.50")
        Decimal('1250.50')
    """
    d = to_decimal(value)
    return d if d > ZERO else ZERO


def add(*values: Optional[Numeric]) -> Decimal:
    """
    Add values left to right with Decimal precision.

    Summation order is the argument order, which keeps repeated
    computations over the same fields bit-identical.

    Examples:
        >>> add(100.10, 200.20, 300.30)
        Decimal('600.60')
    """
    result = ZERO
    for v in values:
        result += to_decimal(v)
    return result


def sum_money(values: Iterable[Optional[Numeric]]) -> Decimal:
    """Sum monetary values in iteration order, rounded to pennies."""
    return money(add(*values))


def divide(a: Numeric, b: Numeric, default: Optional[Numeric] = None) -> Decimal:
    """
    Divide a by b with Decimal precision.

    Args:
        a: Dividend
        b: Divisor
        default: Value to return if division by zero (None raises error)

    Returns:
        Quotient as Decimal

    Raises:
        InvalidOperation: If b is zero and no default provided
    """
    b_dec = to_decimal(b)
    if b_dec == 0:
        if default is not None:
            return to_decimal(default)
        raise InvalidOperation("Division by zero")
    return to_decimal(a) / b_dec


def percent_of(part: Numeric, whole: Numeric) -> Decimal:
    """
    Express part as a percentage of whole on the 0..100 scale.

    A zero denominator yields 0; this is the defined convention for
    factors with nothing reported everywhere, not a suppressed error.

    Examples:
        >>> percent_of(1500000, 10000000)
        Decimal('15.0000')
        >>> percent_of(100, 0)
        Decimal('0.0000')
    """
    return percentage(divide(to_decimal(part) * HUNDRED, whole, default=ZERO))


def apply_percentage(amount: Numeric, pct: Numeric) -> Decimal:
    """
    Apply a 0..100 percentage to a money amount.

    Examples:
        >>> apply_percentage(575000, "40.715")
        Decimal('234111.25')
    """
    return money(to_decimal(amount) * to_decimal(pct) / HUNDRED)


def min_decimal(*values: Numeric) -> Decimal:
    return min(to_decimal(v) for v in values)


def max_decimal(*values: Numeric) -> Decimal:
    return max(to_decimal(v) for v in values)
