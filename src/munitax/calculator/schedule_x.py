"""
Schedule X reconciliation calculator.

Computes the auto-calculated add-backs, the add-back and deduction
totals, adjusted municipal income and the federal-to-municipal variance.

All operations are pure and total: absent or negative inputs to the
auto-calculations are treated as zero, and none of them raise for
numeric reasons. Only an unknown auto-calculation field raises
(InputError), because that is a caller bug rather than a tax outcome.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Callable, Dict, Optional, Tuple

from munitax.calculator.decimal_math import (
    ZERO,
    Numeric,
    add,
    max_decimal,
    min_decimal,
    money,
    non_negative,
    ratio,
    sum_money,
    to_decimal,
)
from munitax.config.rule_config_loader import RuleParameters
from munitax.models.schedule_x import AddBacks, Deductions, ReconciliationInput
from munitax.validation.errors import InputError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class VarianceResult:
    """Federal vs adjusted municipal income variance (variance_pct is a 0..1 ratio)."""
    has_variance: bool
    variance_pct: Decimal

    def to_dict(self) -> Dict[str, Any]:
        return {"has_variance": self.has_variance, "variance_pct": str(self.variance_pct)}


@dataclass(frozen=True)
class ReconciliationResult:
    """
    Schedule X totals. Derived entirely from a ReconciliationInput;
    recompute rather than edit.
    """
    federal_taxable_income: Decimal
    total_add_backs: Decimal
    total_deductions: Decimal
    adjusted_municipal_income: Decimal
    variance: VarianceResult

    def to_dict(self) -> Dict[str, Any]:
        return {
            "federal_taxable_income": str(self.federal_taxable_income),
            "total_add_backs": str(self.total_add_backs),
            "total_deductions": str(self.total_deductions),
            "adjusted_municipal_income": str(self.adjusted_municipal_income),
            "variance": self.variance.to_dict(),
        }


@dataclass(frozen=True)
class CharitableContributionResult:
    """Charitable contribution 10% limitation with carryforward."""
    contributions: Decimal
    prior_year_carryforward: Decimal
    ten_percent_limit: Decimal
    current_year_deduction: Decimal
    new_carryforward: Decimal
    add_back: Decimal


@dataclass(frozen=True)
class AutoCalculationResult:
    """Calculated add-back with a preparer-facing explanation."""
    field: str
    value: Decimal
    explanation: str
    details: Dict[str, Decimal] = field(default_factory=dict)


class ScheduleXCalculator:
    """
    Reconciles federal taxable income to adjusted municipal income.

    Usage:
        calc = ScheduleXCalculator()
        result = calc.reconcile(recon_input)
    """

    def __init__(self, rules: Optional[RuleParameters] = None):
        self.rules = rules or RuleParameters()
        self._auto_calculations: Dict[str, Tuple[Callable[..., AutoCalculationResult], Tuple[str, ...]]] = {
            "meals_and_entertainment": (
                self._auto_meals, ("federal_meals_deduction",)),
            "expenses_on_intangible_income": (
                self._auto_intangible, ("interest_income", "dividends", "capital_gains")),
            "related_party_excess": (
                self._auto_related_party, ("paid_amount", "fair_market_value")),
            "capital_loss_excess": (
                self._auto_capital_loss, ("capital_losses", "capital_gains")),
            "charitable_contribution_excess": (
                self._auto_charitable,
                ("contributions", "taxable_income_before_contributions", "prior_year_carryforward")),
        }

    # =========================================================================
    # AUTO-CALCULATED ADD-BACKS
    # =========================================================================

    def calculate_meals_add_back(self, federal_meals_deduction: Optional[Numeric]) -> Decimal:
        """
        Meals and entertainment add-back.

        Federal allows 50% of meals; the municipality allows 0%, so the
        full pre-haircut expense (federal deduction x 2) is added back.

        Examples:
            >>> ScheduleXCalculator().calculate_meals_add_back(7500)
            Decimal('15000.00')
        """
        return money(non_negative(federal_meals_deduction) * self.rules.meals_multiplier)

    def calculate_5_percent_rule(
        self,
        interest: Optional[Numeric],
        dividends: Optional[Numeric],
        capital_gains: Optional[Numeric] = None,
    ) -> Decimal:
        """
        Presumed expenses attributable to non-taxable intangible income.

        (interest + dividends + capital gains) x 5%. A preparer may replace
        this with documented actual expenses when those are greater.

        Examples:
            >>> ScheduleXCalculator().calculate_5_percent_rule(20000, 15000)
            Decimal('1750.00')
        """
        total = add(non_negative(interest), non_negative(dividends), non_negative(capital_gains))
        return money(total * self.rules.intangible_expense_rate)

    def calculate_related_party_excess(
        self,
        paid: Optional[Numeric],
        fair_market_value: Optional[Numeric],
    ) -> Decimal:
        """
        Related-party payments above fair market value.

        Only overpayment is adjusted: a bargain purchase (paid < FMV)
        yields zero, never a negative add-back.
        """
        excess = non_negative(paid) - non_negative(fair_market_value)
        return money(max_decimal(ZERO, excess))

    def calculate_capital_loss_excess(
        self,
        losses: Optional[Numeric],
        gains: Optional[Numeric],
    ) -> Decimal:
        excess = non_negative(losses) - non_negative(gains)
        return money(max_decimal(ZERO, excess))

    def calculate_charitable_contribution(
        self,
        contributions: Optional[Numeric],
        taxable_income_before_contributions: Optional[Numeric],
        prior_year_carryforward: Optional[Numeric] = None,
    ) -> CharitableContributionResult:
        """
        Charitable contributions under the 10% of taxable income limit.

        The add-back is driven by this year's contributions only; the
        prior-year carryforward competes for the same limit and determines
        the current-year deduction and the amount carried forward.

        Args:
            contributions: Contributions made this year
            taxable_income_before_contributions: Taxable income before the charitable deduction
            prior_year_carryforward: Unused contributions carried in from prior years

        Returns:
            CharitableContributionResult
        """
        current = non_negative(contributions)
        carryforward = non_negative(prior_year_carryforward)
        limit = money(non_negative(taxable_income_before_contributions) * self.rules.charitable_limit_rate)

        available = current + carryforward
        return CharitableContributionResult(
            contributions=money(current),
            prior_year_carryforward=money(carryforward),
            ten_percent_limit=limit,
            current_year_deduction=money(min_decimal(available, limit)),
            new_carryforward=money(max_decimal(ZERO, available - limit)),
            add_back=money(max_decimal(ZERO, current - limit)),
        )

    def calculate_charitable_contribution_excess(
        self,
        contributions: Optional[Numeric],
        taxable_income_before_contributions: Optional[Numeric],
        prior_year_carryforward: Optional[Numeric] = None,
    ) -> Decimal:
        """
        max(0, contributions - 10% x income before contributions).

        prior_year_carryforward is accepted so callers can pass the full
        picture; it changes the carryforward and deduction (see
        calculate_charitable_contribution) but never the add-back.
        """
        return self.calculate_charitable_contribution(
            contributions, taxable_income_before_contributions, prior_year_carryforward
        ).add_back

    # =========================================================================
    # TOTALS
    # =========================================================================

    def total_add_backs(self, add_backs: AddBacks) -> Decimal:
        """Sum of all 20 add-back lines, in declaration order."""
        return sum_money(amount for _, amount in add_backs.items())

    def total_deductions(self, deductions: Deductions) -> Decimal:
        """Sum of all 7 deduction lines, in declaration order."""
        return sum_money(amount for _, amount in deductions.items())

    def adjusted_municipal_income(
        self,
        federal_taxable_income: Numeric,
        total_add_backs: Numeric,
        total_deductions: Numeric,
    ) -> Decimal:
        """federal + total add-backs - total deductions."""
        return money(to_decimal(federal_taxable_income) + to_decimal(total_add_backs) - to_decimal(total_deductions))

    def check_variance(
        self,
        federal_taxable_income: Numeric,
        adjusted_municipal_income: Numeric,
        threshold: Optional[Numeric] = None,
    ) -> VarianceResult:
        """
        Flag a large swing between federal and adjusted municipal income.

        variance_pct = |adjusted - federal| / |federal| as a ratio. A zero
        federal figure cannot be divided by and is reported as no variance.

        Args:
            federal_taxable_income: Federal taxable income
            adjusted_municipal_income: Adjusted municipal income
            threshold: Ratio above which has_variance is set (default 0.20)

        Returns:
            VarianceResult
        """
        federal = to_decimal(federal_taxable_income)
        if federal == 0:
            return VarianceResult(has_variance=False, variance_pct=ratio(ZERO))

        limit = self.rules.variance_threshold if threshold is None else to_decimal(threshold)
        variance = ratio(abs(to_decimal(adjusted_municipal_income) - federal) / abs(federal))
        return VarianceResult(has_variance=variance > limit, variance_pct=variance)

    def reconcile(self, recon_input: ReconciliationInput) -> ReconciliationResult:
        """Run the full Schedule X reconciliation."""
        federal = money(recon_input.federal_taxable_income)
        total_add_backs = self.total_add_backs(recon_input.add_backs)
        total_deductions = self.total_deductions(recon_input.deductions)
        adjusted = self.adjusted_municipal_income(federal, total_add_backs, total_deductions)

        logger.debug(
            f"Schedule X: federal={federal} add_backs={total_add_backs} "
            f"deductions={total_deductions} adjusted={adjusted}"
        )

        return ReconciliationResult(
            federal_taxable_income=federal,
            total_add_backs=total_add_backs,
            total_deductions=total_deductions,
            adjusted_municipal_income=adjusted,
            variance=self.check_variance(federal, adjusted),
        )

    # =========================================================================
    # AUTO-CALCULATION DISPATCH
    # =========================================================================

    def auto_calculate(self, field_name: str, **inputs: Any) -> AutoCalculationResult:
        """
        Auto-calculate an add-back line from its worksheet inputs.

        Supported fields and their inputs:
            meals_and_entertainment: federal_meals_deduction
            expenses_on_intangible_income: interest_income, dividends, capital_gains
            related_party_excess: paid_amount, fair_market_value
            capital_loss_excess: capital_losses, capital_gains
            charitable_contribution_excess: contributions,
                taxable_income_before_contributions, prior_year_carryforward

        Raises:
            InputError: Unknown field, or an input the field does not take
        """
        if field_name not in self._auto_calculations:
            raise InputError("auto-calculation field", field_name, sorted(self._auto_calculations))

        handler, accepted = self._auto_calculations[field_name]
        for name in inputs:
            if name not in accepted:
                raise InputError(f"input for {field_name}", name, list(accepted))
        return handler(**inputs)

    def _auto_meals(self, federal_meals_deduction=None) -> AutoCalculationResult:
        federal = money(non_negative(federal_meals_deduction))
        value = self.calculate_meals_add_back(federal)
        return AutoCalculationResult(
            field="meals_and_entertainment",
            value=value,
            explanation=(
                f"Federal deducted ${federal:,.2f} (50% of ${value:,.2f} total meals expense). "
                f"Municipal allows 0% deduction, so add back the full ${value:,.2f}."
            ),
            details={"federal_deduction": federal, "total_meals_expense": value},
        )

    def _auto_intangible(self, interest_income=None, dividends=None, capital_gains=None) -> AutoCalculationResult:
        interest = money(non_negative(interest_income))
        divs = money(non_negative(dividends))
        gains = money(non_negative(capital_gains))
        total = interest + divs + gains
        value = self.calculate_5_percent_rule(interest, divs, gains)
        if total == 0:
            explanation = "No intangible income to apply the 5% rule to."
        else:
            explanation = (
                f"5% rule: intangible income ${total:,.2f} (interest ${interest:,.2f} + "
                f"dividends ${divs:,.2f} + capital gains ${gains:,.2f}) x 5% = ${value:,.2f} add-back."
            )
        return AutoCalculationResult(
            field="expenses_on_intangible_income",
            value=value,
            explanation=explanation,
            details={"total_intangible_income": total},
        )

    def _auto_related_party(self, paid_amount=None, fair_market_value=None) -> AutoCalculationResult:
        paid = money(non_negative(paid_amount))
        fmv = money(non_negative(fair_market_value))
        value = self.calculate_related_party_excess(paid, fmv)
        if value == 0:
            explanation = f"No excess: paid ${paid:,.2f} does not exceed fair market value ${fmv:,.2f}."
        else:
            explanation = f"Related-party excess: paid ${paid:,.2f} - fair market value ${fmv:,.2f} = ${value:,.2f}."
        return AutoCalculationResult(
            field="related_party_excess",
            value=value,
            explanation=explanation,
            details={"paid_amount": paid, "fair_market_value": fmv},
        )

    def _auto_capital_loss(self, capital_losses=None, capital_gains=None) -> AutoCalculationResult:
        losses = money(non_negative(capital_losses))
        gains = money(non_negative(capital_gains))
        value = self.calculate_capital_loss_excess(losses, gains)
        return AutoCalculationResult(
            field="capital_loss_excess",
            value=value,
            explanation=f"Capital losses ${losses:,.2f} - capital gains ${gains:,.2f}, floored at zero = ${value:,.2f}.",
            details={"capital_losses": losses, "capital_gains": gains},
        )

    def _auto_charitable(
        self,
        contributions=None,
        taxable_income_before_contributions=None,
        prior_year_carryforward=None,
    ) -> AutoCalculationResult:
        result = self.calculate_charitable_contribution(
            contributions, taxable_income_before_contributions, prior_year_carryforward
        )
        if result.add_back > 0:
            explanation = (
                f"Contributions ${result.contributions:,.2f} exceed the 10% limit (${result.ten_percent_limit:,.2f}). "
                f"Add back ${result.add_back:,.2f}; carry forward ${result.new_carryforward:,.2f}."
            )
        else:
            explanation = (
                f"Contributions ${result.contributions:,.2f} within the 10% limit (${result.ten_percent_limit:,.2f}). "
                f"Deduct ${result.current_year_deduction:,.2f}; carry forward ${result.new_carryforward:,.2f}."
            )
        return AutoCalculationResult(
            field="charitable_contribution_excess",
            value=result.add_back,
            explanation=explanation,
            details={
                "ten_percent_limit": result.ten_percent_limit,
                "current_year_deduction": result.current_year_deduction,
                "new_carryforward": result.new_carryforward,
            },
        )
