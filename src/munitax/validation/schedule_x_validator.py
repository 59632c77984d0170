"""
Schedule X reconciliation checks for preparers.

Checks (all non-fatal, returned as ValidationWarning):
- "Other" add-back and deduction lines need a description
- Negative amounts on any add-back or deduction line
- Guaranteed payments reported by a non-partnership
- Federal taxable income off the federal return by more than the
  configured tolerance ($100 by default)
- Adjusted municipal income past the variance threshold
- Officer compensation above half of net income (INFO)
"""

from __future__ import annotations

from decimal import Decimal
from typing import List, Optional

from munitax.calculator.decimal_math import Numeric, money, to_decimal
from munitax.calculator.schedule_x import ScheduleXCalculator
from munitax.config.rule_config_loader import RuleParameters
from munitax.models.schedule_x import EntityType, ReconciliationInput
from munitax.validation.errors import ValidationWarning, WarningSeverity


class ScheduleXValidator:
    """
    Preparer-facing checks on a Schedule X reconciliation.

    Every finding is a warning; validate() never raises and never stops
    the reconciliation from being computed.
    """

    def __init__(self, rules: Optional[RuleParameters] = None):
        self.rules = rules or RuleParameters()
        self._calculator = ScheduleXCalculator(self.rules)

    def validate(
        self,
        recon_input: ReconciliationInput,
        entity_type: Optional[EntityType] = None,
        expected_federal_income: Optional[Numeric] = None,
        officer_compensation: Optional[Numeric] = None,
        net_income: Optional[Numeric] = None,
    ) -> List[ValidationWarning]:
        issues: List[ValidationWarning] = []
        add_backs = recon_input.add_backs
        deductions = recon_input.deductions

        # "Other" lines need a description once they carry an amount
        if add_backs.other_add_backs != 0 and not (add_backs.other_add_backs_description or "").strip():
            issues.append(ValidationWarning(
                "add_backs.other_add_backs_description",
                "Description is required when other add-backs is non-zero.",
            ))
        if deductions.other_deductions != 0 and not (deductions.other_deductions_description or "").strip():
            issues.append(ValidationWarning(
                "deductions.other_deductions_description",
                "Description is required when other deductions is non-zero.",
            ))

        for name, amount in add_backs.items():
            if amount < 0:
                issues.append(ValidationWarning(f"add_backs.{name}", "Add-back amounts cannot be negative."))
        for name, amount in deductions.items():
            if amount < 0:
                issues.append(ValidationWarning(f"deductions.{name}", "Deduction amounts cannot be negative."))

        if (
            entity_type is not None
            and EntityType(entity_type) is not EntityType.PARTNERSHIP
            and add_backs.guaranteed_payments != 0
        ):
            issues.append(ValidationWarning(
                "add_backs.guaranteed_payments",
                "Guaranteed payments apply to partnerships only; confirm the entity type.",
            ))

        if expected_federal_income is not None:
            difference = abs(to_decimal(recon_input.federal_taxable_income) - to_decimal(expected_federal_income))
            if difference > self.rules.federal_income_tolerance:
                issues.append(ValidationWarning(
                    "federal_taxable_income",
                    f"Federal taxable income differs from the federal return by ${money(difference):,.2f}.",
                ))

        result = self._calculator.reconcile(recon_input)
        if result.variance.has_variance:
            issues.append(ValidationWarning(
                "adjusted_municipal_income",
                f"Adjusted municipal income differs from federal taxable income by "
                f"{result.variance.variance_pct * 100:.1f}%; review the adjustments.",
            ))

        if officer_compensation is not None and net_income is not None:
            warning = self.check_officer_compensation(officer_compensation, net_income)
            if warning is not None:
                issues.append(warning)

        return issues

    def check_officer_compensation(
        self,
        officer_compensation: Numeric,
        net_income: Numeric,
    ) -> Optional[ValidationWarning]:
        """Informational flag when officer pay exceeds 50% of net income (skipped for net income <= 0)."""
        income = to_decimal(net_income)
        if income <= 0:
            return None
        compensation = to_decimal(officer_compensation)
        if compensation <= income * self.rules.officer_compensation_threshold:
            return None
        share = compensation / income * Decimal("100")
        return ValidationWarning(
            "officer_compensation",
            f"Officer compensation is {share:.1f}% of net income; document reasonableness.",
            severity=WarningSeverity.INFO,
        )
