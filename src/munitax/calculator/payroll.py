"""Payroll factor helpers: remote-employee allocation, partial-year proration, per-state shares."""

import logging
from decimal import Decimal
from typing import Dict, Mapping

from munitax.calculator.decimal_math import ZERO, Numeric, money, to_decimal
from munitax.validation.errors import ValidationError

logger = logging.getLogger(__name__)

MONTHS_PER_YEAR = Decimal("12")


def allocate_remote_employee_payroll(salary: Numeric, local_days: int, total_days: int) -> Decimal:
    """
    Allocate a remote employee's salary to the jurisdiction by days worked there.

    Args:
        salary: Annual salary
        local_days: Days worked in the jurisdiction
        total_days: Total days worked

    Returns:
        salary x local_days / total_days, rounded to pennies (0 when total_days <= 0)

    Examples:
        >>> allocate_remote_employee_payroll(100000, 60, 240)
        Decimal('25000.00')
    """
    if total_days <= 0:
        return money(ZERO)
    if local_days < 0 or local_days > total_days:
        raise ValidationError("local_days", f"Must be between 0 and {total_days}", local_days)

    allocation = money(to_decimal(salary) * Decimal(local_days) / Decimal(total_days))
    logger.debug(f"Remote payroll allocation: salary={salary} days={local_days}/{total_days} -> {allocation}")
    return allocation


def prorate_partial_year(amount: Numeric, months: int) -> Decimal:
    """
    Prorate an annual amount for partial-year employment.

    Raises:
        ValidationError: months outside 0..12

    Examples:
        >>> prorate_partial_year(60000, 6)
        Decimal('30000.00')
    """
    if months < 0 or months > 12:
        raise ValidationError("months", "Months worked must be between 0 and 12", months)
    return money(to_decimal(amount) * Decimal(months) / MONTHS_PER_YEAR)


def payroll_shares(payroll_by_state: Mapping[str, Numeric]) -> Dict[str, Decimal]:
    """
    Each state's share of total payroll as an unrounded ratio.

    States with zero or negative payroll get no share and are left out.
    Returns an empty dict when there is no positive payroll to divide by.
    """
    amounts = {state: to_decimal(v) for state, v in payroll_by_state.items()}
    amounts = {state: amount for state, amount in amounts.items() if amount > 0}
    total = sum(amounts.values(), ZERO)
    if total == 0:
        return {}
    return {state: amount / total for state, amount in amounts.items()}
