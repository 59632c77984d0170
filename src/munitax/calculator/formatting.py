"""
Display formatting and parsing for reconciliation and apportionment figures.

Text <-> Decimal conversion used by entry screens and by the
breakdown rendering, kept beside the math so both sides agree on
rounding.
"""

from dataclasses import dataclass
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Optional, Tuple

from .decimal_math import HUNDRED, ZERO, Numeric, money, to_decimal

THOUSAND = Decimal("1000")
MILLION = Decimal("1000000")

# Confidence bands for extracted field values
HIGH_CONFIDENCE = Decimal("0.9")
MEDIUM_CONFIDENCE = Decimal("0.7")


@dataclass(frozen=True)
class ConfidenceDisplay:
    """Formatted confidence score with its badge variant."""
    formatted: str
    label: str
    badge_variant: str  # "success" | "warning" | "danger"


def _places(decimals: int) -> Decimal:
    return Decimal(1).scaleb(-decimals)


def _fixed(value: Decimal, decimals: int) -> Decimal:
    return value.quantize(_places(decimals), rounding=ROUND_HALF_UP)


def format_currency(amount: Optional[Numeric], show_sign: bool = False) -> str:
    """
    Format amount as US currency.

    Examples:
        >>> format_currency(1234.56)
        '$1,234.56'
        >>> format_currency(-50)
        '-$50.00'
        >>> format_currency(75000, show_sign=True)
        '+$75,000.00'
    """
    value = money(amount)
    formatted = f"${abs(value):,.2f}"
    if value < 0:
        return f"-{formatted}"
    if show_sign and value > 0:
        return f"+{formatted}"
    return formatted


def format_percentage(value: Optional[Numeric], decimals: int = 1) -> str:
    """
    Format a 0..1 ratio as a percentage string.

    Examples:
        >>> format_percentage(0.255)
        '25.5%'
        >>> format_percentage(None)
        '0.0%'
    """
    pct = _fixed(to_decimal(value) * HUNDRED, decimals)
    return f"{pct:.{decimals}f}%"


def format_number(value: Optional[Numeric], decimals: int = 2) -> str:
    """Format with comma separators, e.g. 1,234.56."""
    if value is None:
        return "0"
    return f"{_fixed(to_decimal(value), decimals):,.{decimals}f}"


def parse_currency(text: Optional[str]) -> Decimal:
    """
    Parse a currency string, stripping $, commas and whitespace.

    Unparseable text yields 0 rather than an error, matching manual
    entry fields that may be blank or partially typed.

    Examples:
        >>> parse_currency("$1,234.56")
        Decimal('1234.56')
        >>> parse_currency("abc")
        Decimal('0')
    """
    if not text:
        return ZERO
    cleaned = "".join(ch for ch in text if ch not in "$," and not ch.isspace())
    try:
        parsed = Decimal(cleaned)
    except InvalidOperation:
        return ZERO
    return parsed if parsed.is_finite() else ZERO


def parse_percentage(text: Optional[str]) -> Decimal:
    """
    Parse "42.5%" into the ratio 0.425. Unparseable text yields 0.
    """
    if not text:
        return ZERO
    cleaned = text.replace("%", "").replace(",", "").strip()
    try:
        parsed = Decimal(cleaned)
    except InvalidOperation:
        return ZERO
    return parsed / HUNDRED if parsed.is_finite() else ZERO


def confidence_level(score: Optional[Numeric]) -> Tuple[str, str]:
    """
    Bucket an extraction confidence score.

    Returns:
        (label, badge_variant): High/success at >= 0.9, Medium/warning at
        >= 0.7, Low/danger otherwise, N/A/warning when score is missing.
    """
    if score is None:
        return ("N/A", "warning")
    value = to_decimal(score)
    if value >= HIGH_CONFIDENCE:
        return ("High", "success")
    if value >= MEDIUM_CONFIDENCE:
        return ("Medium", "warning")
    return ("Low", "danger")


def format_confidence_score(score: Optional[Numeric]) -> ConfidenceDisplay:
    label, badge = confidence_level(score)
    if score is None:
        return ConfidenceDisplay(formatted="N/A", label=label, badge_variant=badge)
    pct = _fixed(to_decimal(score) * HUNDRED, 0)
    return ConfidenceDisplay(formatted=f"{pct}%", label=label, badge_variant=badge)


def abbreviate_number(value: Optional[Numeric]) -> str:
    """
    Abbreviate large numbers.

    Examples:
        >>> abbreviate_number(1500000)
        '1.5M'
        >>> abbreviate_number(-12300)
        '-12.3K'
        >>> abbreviate_number(950)
        '950'
    """
    if value is None:
        return "0"
    d = to_decimal(value)
    sign = "-" if d < 0 else ""
    magnitude = abs(d)
    if magnitude >= MILLION:
        return f"{sign}{_fixed(magnitude / MILLION, 1)}M"
    if magnitude >= THOUSAND:
        return f"{sign}{_fixed(magnitude / THOUSAND, 1)}K"
    return f"{sign}{_fixed(magnitude, 0)}"


def truncate_text(text: Optional[str], max_length: int = 50) -> str:
    if not text:
        return ""
    if len(text) <= max_length:
        return text
    return f"{text[:max_length]}..."
