"""
Schedule Y apportionment factor calculator.

Factor percentages (0..100 scale, 4 decimal places):
- Property: (local owned + local rent x 8) / (everywhere owned + everywhere rent x 8)
- Payroll:  local payroll / everywhere payroll
- Sales:    local sales (throwback included) / everywhere sales

A zero denominator yields 0. A negative everywhere figure, or a result
outside 0..100, raises ValidationError for that factor only. Local
exceeding everywhere is reported as a warning.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Dict, List, Optional, Tuple

from munitax.calculator.decimal_math import (
    HUNDRED,
    ZERO,
    Numeric,
    percent_of,
    percentage,
    to_decimal,
)
from munitax.config.rule_config_loader import RuleParameters
from munitax.models.apportionment import PayrollFactor, PropertyFactor, SalesFactor
from munitax.models.elections import ApportionmentFormula, parse_election
from munitax.validation.errors import ValidationError, ValidationWarning

logger = logging.getLogger(__name__)

THREE = Decimal("3")

# Weights in (property, payroll, sales) order. The three-factor formula
# is not listed: it divides the sum by 3 exactly, and its 0.3333 weights
# are for display only.
FORMULA_WEIGHTS: Dict[ApportionmentFormula, Tuple[Decimal, Decimal, Decimal]] = {
    ApportionmentFormula.FOUR_FACTOR_DOUBLE_WEIGHTED_SALES: (Decimal("0.25"), Decimal("0.25"), Decimal("0.50")),
    ApportionmentFormula.SINGLE_SALES_FACTOR: (ZERO, ZERO, Decimal("1")),
}

FACTOR_NAMES = ("property", "payroll", "sales")


@dataclass(frozen=True)
class FactorContribution:
    factor: str
    percentage: Decimal
    weight: Decimal
    contribution: Decimal


@dataclass(frozen=True)
class FormulaBreakdown:
    """How each factor contributes to the final apportionment percentage."""
    formula: ApportionmentFormula
    components: Tuple[FactorContribution, ...]
    total_weight: Decimal
    final_percentage: Decimal

    def to_dict(self) -> Dict[str, Any]:
        return {
            "formula": self.formula.value,
            "components": [
                {
                    "factor": c.factor,
                    "percentage": str(c.percentage),
                    "weight": str(c.weight),
                    "contribution": str(c.contribution),
                }
                for c in self.components
            ],
            "total_weight": str(self.total_weight),
            "final_percentage": str(self.final_percentage),
        }


@dataclass(frozen=True)
class FormulaComparison:
    """Traditional (double-weighted sales) vs single-sales apportionment."""
    traditional_percentage: Decimal
    single_sales_percentage: Decimal
    recommended_formula: ApportionmentFormula
    difference: Decimal


def _check_range(field: str, pct: Decimal) -> Decimal:
    if pct < ZERO or pct > HUNDRED:
        raise ValidationError(field, f"Percentage {pct} is outside 0..100", pct)
    return pct


def _check_everywhere(field: str, value: Decimal) -> None:
    if value < ZERO:
        raise ValidationError(field, "Everywhere amount cannot be negative", value)


def _warn_local_exceeds(
    warnings: Optional[List[ValidationWarning]],
    field: str,
    local: Decimal,
    everywhere: Decimal,
) -> None:
    if local > everywhere:
        logger.warning(f"{field}: local {local} exceeds everywhere {everywhere}")
        if warnings is not None:
            warnings.append(ValidationWarning(
                field=field,
                message=f"Local amount ({local}) exceeds everywhere amount ({everywhere})",
            ))


class ApportionmentCalculator:
    """
    Computes property, payroll and sales factors and combines them.

    Each factor method accepts an optional warnings list; non-fatal
    findings are appended to it.
    """

    def __init__(self, rules: Optional[RuleParameters] = None):
        self.rules = rules or RuleParameters()

    # =========================================================================
    # FACTORS
    # =========================================================================

    def capitalized_property_values(self, f: PropertyFactor) -> Tuple[Decimal, Decimal]:
        """
        Owned property plus rented property capitalized at 8x annual rent.

        Examples:
            $1,000,000 owned + $100,000/yr rent -> $1,800,000
        """
        multiplier = self.rules.rent_capitalization_multiplier
        local = to_decimal(f.local_value) + to_decimal(f.local_rent_annual) * multiplier
        everywhere = to_decimal(f.everywhere_value) + to_decimal(f.everywhere_rent_annual) * multiplier
        return local, everywhere

    def property_factor_percent(
        self,
        f: PropertyFactor,
        warnings: Optional[List[ValidationWarning]] = None,
    ) -> Decimal:
        _check_everywhere("property.everywhere_value", to_decimal(f.everywhere_value))
        _check_everywhere("property.everywhere_rent_annual", to_decimal(f.everywhere_rent_annual))
        local, everywhere = self.capitalized_property_values(f)
        _warn_local_exceeds(warnings, "property", local, everywhere)
        return _check_range("property", percent_of(local, everywhere))

    def payroll_factor_percent(
        self,
        f: PayrollFactor,
        warnings: Optional[List[ValidationWarning]] = None,
    ) -> Decimal:
        local = to_decimal(f.local_payroll)
        everywhere = to_decimal(f.everywhere_payroll)
        _check_everywhere("payroll.everywhere_payroll", everywhere)
        _warn_local_exceeds(warnings, "payroll", local, everywhere)
        return _check_range("payroll", percent_of(local, everywhere))

    def sales_factor_percent(
        self,
        f: SalesFactor,
        warnings: Optional[List[ValidationWarning]] = None,
    ) -> Decimal:
        """Sales factor; local_sales must already include any throwback."""
        local = to_decimal(f.local_sales)
        everywhere = to_decimal(f.everywhere_sales)
        _check_everywhere("sales.everywhere_sales", everywhere)
        _warn_local_exceeds(warnings, "sales", local, everywhere)
        return _check_range("sales", percent_of(local, everywhere))

    # =========================================================================
    # FORMULAS
    # =========================================================================

    def combined_apportionment(
        self,
        formula: Any,
        property_pct: Numeric,
        payroll_pct: Numeric,
        sales_pct: Numeric,
    ) -> Decimal:
        """
        Combine factor percentages under the elected formula.

        THREE_FACTOR_EQUAL_WEIGHTED:       (property + payroll + sales) / 3
        FOUR_FACTOR_DOUBLE_WEIGHTED_SALES: property x .25 + payroll x .25 + sales x .50
        SINGLE_SALES_FACTOR:               sales

        Raises:
            InputError: Unknown formula
            ValidationError: A factor percentage outside 0..100
        """
        formula = parse_election(ApportionmentFormula, formula)
        p = _check_range("property", to_decimal(property_pct))
        py = _check_range("payroll", to_decimal(payroll_pct))
        s = _check_range("sales", to_decimal(sales_pct))

        if formula is ApportionmentFormula.THREE_FACTOR_EQUAL_WEIGHTED:
            combined = (p + py + s) / THREE
        else:
            wp, wpy, ws = FORMULA_WEIGHTS[formula]
            combined = p * wp + py * wpy + s * ws

        return percentage(combined)

    def formula_breakdown(
        self,
        formula: Any,
        property_pct: Numeric,
        payroll_pct: Numeric,
        sales_pct: Numeric,
    ) -> FormulaBreakdown:
        """Per-factor weight and weighted contribution for an elected formula."""
        formula = parse_election(ApportionmentFormula, formula)
        values = (to_decimal(property_pct), to_decimal(payroll_pct), to_decimal(sales_pct))
        final = self.combined_apportionment(formula, *values)

        components = []
        for name, value, weight in zip(FACTOR_NAMES, values, self._weights(formula)):
            if formula is ApportionmentFormula.THREE_FACTOR_EQUAL_WEIGHTED:
                contribution = percentage(value / THREE)
            else:
                contribution = percentage(value * weight)
            components.append(FactorContribution(
                factor=name,
                percentage=percentage(value),
                weight=weight,
                contribution=contribution,
            ))

        return FormulaBreakdown(
            formula=formula,
            components=tuple(components),
            total_weight=Decimal("1"),
            final_percentage=final,
        )

    def compare_formulas(
        self,
        property_pct: Numeric,
        payroll_pct: Numeric,
        sales_pct: Numeric,
    ) -> FormulaComparison:
        """
        Compare the traditional four-factor formula with single-sales.

        The lower percentage is recommended; a tie keeps the traditional formula.
        """
        traditional = self.combined_apportionment(
            ApportionmentFormula.FOUR_FACTOR_DOUBLE_WEIGHTED_SALES, property_pct, payroll_pct, sales_pct
        )
        single = self.combined_apportionment(
            ApportionmentFormula.SINGLE_SALES_FACTOR, property_pct, payroll_pct, sales_pct
        )
        recommended = (
            ApportionmentFormula.SINGLE_SALES_FACTOR
            if single < traditional
            else ApportionmentFormula.FOUR_FACTOR_DOUBLE_WEIGHTED_SALES
        )
        return FormulaComparison(
            traditional_percentage=traditional,
            single_sales_percentage=single,
            recommended_formula=recommended,
            difference=percentage(abs(traditional - single)),
        )

    def uses_factor(self, formula: ApportionmentFormula, factor: str) -> bool:
        """Whether the formula gives the named factor any weight."""
        index = FACTOR_NAMES.index(factor)
        return self._weights(formula)[index] != ZERO

    @staticmethod
    def _weights(formula: ApportionmentFormula) -> Tuple[Decimal, Decimal, Decimal]:
        if formula is ApportionmentFormula.THREE_FACTOR_EQUAL_WEIGHTED:
            third = percentage(Decimal("1") / THREE)
            return (third, third, third)
        return FORMULA_WEIGHTS[formula]
