"""
Filing engine: Schedule X reconciliation plus Schedule Y apportionment.

Orchestration order:
1. Reconcile federal taxable income to adjusted municipal income
2. Source every sale (throwback, throwout, service cascade)
3. Compute property, payroll and sales factors from the adjusted sales
4. Combine under the elected formula
5. Apply the percentage to adjusted municipal income

Reconciliation always completes. A factor that fails validation is
reported in `errors` and leaves its percentage as None; the combined
percentage is None only when the elected formula weights that factor.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple, Union

from munitax.calculator.apportionment import (
    FACTOR_NAMES,
    ApportionmentCalculator,
    FormulaBreakdown,
    FormulaComparison,
)
from munitax.calculator.decimal_math import ZERO, apply_percentage, money, to_decimal
from munitax.calculator.schedule_x import ReconciliationResult, ScheduleXCalculator
from munitax.calculator.sourcing import (
    SourcedTransaction,
    SourcingComparison,
    SourcingResolver,
    compare_sourcing_methods,
    pro_rata_percentage,
    sales_denominator,
)
from munitax.config.rule_config_loader import RuleParameters, get_rule_parameters
from munitax.config.settings import MunicipalTaxSettings, get_settings
from munitax.models.apportionment import AffiliatedGroup, ApportionmentFactors, SaleTransaction, SalesFactor
from munitax.models.elections import Elections
from munitax.models.nexus import NexusStatus
from munitax.models.schedule_x import EntityType, ReconciliationInput
from munitax.services.logging_config import CalculationLogger, filing_id_var
from munitax.validation.errors import ValidationError, ValidationWarning
from munitax.validation.schedule_x_validator import ScheduleXValidator

logger = logging.getLogger(__name__)


def _str(value: Optional[Decimal]) -> Optional[str]:
    return None if value is None else str(value)


@dataclass(frozen=True)
class FilingBreakdown:
    """
    Complete result of one filing computation.

    Identical inputs always produce an identical breakdown (and an
    identical to_dict()), so results can be diffed for audit.
    """
    filing_id: Optional[str]
    jurisdiction: str
    tax_year: int
    elections: Elections
    reconciliation: ReconciliationResult

    # Factors (None when the factor failed validation)
    property_factor_pct: Optional[Decimal]
    payroll_factor_pct: Optional[Decimal]
    sales_factor_pct: Optional[Decimal]

    # Sales factor inputs after sourcing
    sales_numerator: Decimal
    sales_denominator: Decimal
    throwback_adjustment: Decimal
    throwout_adjustment: Decimal
    sourced_transactions: Tuple[SourcedTransaction, ...] = ()
    sourcing_comparison: Optional[SourcingComparison] = None

    # Combination
    final_apportionment_pct: Optional[Decimal] = None
    formula_breakdown: Optional[FormulaBreakdown] = None
    formula_comparison: Optional[FormulaComparison] = None
    jurisdiction_taxable_income: Optional[Decimal] = None

    warnings: Tuple[ValidationWarning, ...] = ()
    errors: Tuple[ValidationError, ...] = field(default=())

    @property
    def adjusted_municipal_income(self) -> Decimal:
        return self.reconciliation.adjusted_municipal_income

    @property
    def is_complete(self) -> bool:
        return self.final_apportionment_pct is not None

    def to_dict(self) -> Dict[str, Any]:
        """Serializable form with Decimals as strings, in a fixed key order."""
        comparison = self.sourcing_comparison
        formulas = self.formula_comparison
        return {
            "filing_id": self.filing_id,
            "jurisdiction": self.jurisdiction,
            "tax_year": self.tax_year,
            "elections": self.elections.to_dict(),
            "reconciliation": self.reconciliation.to_dict(),
            "factors": {
                "property": _str(self.property_factor_pct),
                "payroll": _str(self.payroll_factor_pct),
                "sales": _str(self.sales_factor_pct),
            },
            "sales": {
                "numerator": str(self.sales_numerator),
                "denominator": str(self.sales_denominator),
                "throwback_adjustment": str(self.throwback_adjustment),
                "throwout_adjustment": str(self.throwout_adjustment),
                "transactions": [t.to_dict() for t in self.sourced_transactions],
            },
            "sourcing_comparison": None if comparison is None else {
                "finnigan_denominator": str(comparison.finnigan_denominator),
                "joyce_denominator": str(comparison.joyce_denominator),
                "finnigan_percentage": str(comparison.finnigan_percentage),
                "joyce_percentage": str(comparison.joyce_percentage),
                "recommendation": comparison.recommendation.value,
                "difference": str(comparison.difference),
            },
            "formula": self.elections.formula.value,
            "final_apportionment_pct": _str(self.final_apportionment_pct),
            "formula_breakdown": None if self.formula_breakdown is None else self.formula_breakdown.to_dict(),
            "formula_comparison": None if formulas is None else {
                "traditional_percentage": str(formulas.traditional_percentage),
                "single_sales_percentage": str(formulas.single_sales_percentage),
                "recommended_formula": formulas.recommended_formula.value,
                "difference": str(formulas.difference),
            },
            "jurisdiction_taxable_income": _str(self.jurisdiction_taxable_income),
            "warnings": [w.to_dict() for w in self.warnings],
            "errors": [e.to_dict() for e in self.errors],
        }


class FilingEngine:
    """
    Computes a FilingBreakdown from reconciliation inputs, factors,
    elections, a nexus snapshot and the sale transactions.

    Settings and rule parameters are read once at construction; every
    computation then works from that same snapshot.
    """

    def __init__(
        self,
        settings: Optional[MunicipalTaxSettings] = None,
        rules: Optional[RuleParameters] = None,
    ):
        self.settings = settings or get_settings()
        self.rules = rules or get_rule_parameters(self.settings.tax_year)
        self.schedule_x = ScheduleXCalculator(self.rules)
        self.apportionment = ApportionmentCalculator(self.rules)
        self.validator = ScheduleXValidator(self.rules)

    def compute_filing_breakdown(
        self,
        recon_input: ReconciliationInput,
        factors: ApportionmentFactors,
        elections: Union[Elections, Mapping[str, Any], None] = None,
        nexus: Optional[NexusStatus] = None,
        transactions: Optional[Sequence[SaleTransaction]] = None,
        affiliated_group: Optional[AffiliatedGroup] = None,
        entity_type: Optional[EntityType] = None,
        filing_id: Optional[str] = None,
        jurisdiction: Optional[str] = None,
        expected_federal_income: Optional[Decimal] = None,
    ) -> FilingBreakdown:
        """
        Run the full computation.

        Args:
            recon_input: Federal taxable income and Schedule X lines
            factors: Property, payroll and caller-reported sales figures
            elections: Elections snapshot or a raw mapping of election values
            nexus: Nexus snapshot (defaults to no nexus outside the jurisdiction)
            transactions: Sales to source; defaults to factors.sales.transactions.
                When any transactions are present, their sourced total replaces
                factors.sales.local_sales as the numerator.
            affiliated_group: Per-entity sales for the Finnigan/Joyce denominator
            entity_type: Used by the Schedule X validator
            filing_id: Correlation id for the audit log
            jurisdiction: Overrides settings.jurisdiction_state
            expected_federal_income: Federal return figure to cross-check against

        Raises:
            InputError: Malformed election value (before any calculation)
        """
        if not isinstance(elections, Elections):
            elections = Elections.from_dict(dict(elections or {}))
        nexus = nexus or NexusStatus()
        jurisdiction = (jurisdiction or self.settings.jurisdiction_state).strip().upper()
        txns = tuple(transactions) if transactions is not None else factors.sales.transactions

        token = filing_id_var.set(filing_id)
        try:
            audit = CalculationLogger(filing_id)
            audit.start_calculation(jurisdiction, self.rules.tax_year, elections.to_dict())
            return self._compute(
                audit, recon_input, factors, elections, nexus, txns,
                affiliated_group, entity_type, filing_id, jurisdiction, expected_federal_income,
            )
        finally:
            filing_id_var.reset(token)

    def _compute(
        self,
        audit: CalculationLogger,
        recon_input: ReconciliationInput,
        factors: ApportionmentFactors,
        elections: Elections,
        nexus: NexusStatus,
        txns: Tuple[SaleTransaction, ...],
        affiliated_group: Optional[AffiliatedGroup],
        entity_type: Optional[EntityType],
        filing_id: Optional[str],
        jurisdiction: str,
        expected_federal_income: Optional[Decimal],
    ) -> FilingBreakdown:
        warnings: List[ValidationWarning] = []
        errors: List[ValidationError] = []

        # Step 1: Schedule X
        step = audit.log_step("reconciliation")
        reconciliation = self.schedule_x.reconcile(recon_input)
        warnings.extend(self.validator.validate(
            recon_input,
            entity_type=entity_type,
            expected_federal_income=expected_federal_income,
        ))
        audit.complete_step("reconciliation", step, adjusted=reconciliation.adjusted_municipal_income)
        audit.log_reconciliation(
            reconciliation.federal_taxable_income,
            reconciliation.total_add_backs,
            reconciliation.total_deductions,
            reconciliation.adjusted_municipal_income,
        )

        # Step 2: sourcing
        step = audit.log_step("sourcing", transactions=len(txns))
        local_property, everywhere_property = self.apportionment.capitalized_property_values(factors.property)
        pro_rata = pro_rata_percentage([
            (local_property, everywhere_property),
            (factors.payroll.local_payroll, factors.payroll.everywhere_payroll),
            (factors.sales.local_sales, factors.sales.everywhere_sales),
        ])
        resolver = SourcingResolver(jurisdiction, elections, nexus, factors.payroll.payroll_by_state, pro_rata)

        sourced: Tuple[SourcedTransaction, ...] = ()
        throwout = money(ZERO)
        if txns:
            sourcing = resolver.resolve_all(txns)
            sourced = sourcing.transactions
            numerator = sourcing.numerator
            throwback = sourcing.throwback_adjustment
            throwout = sourcing.throwout_adjustment
            fallback_denominator = factors.sales.everywhere_sales or sourcing.total_sales
        else:
            numerator = money(factors.sales.local_sales)
            throwback = money(factors.sales.throwback_adjustment)
            fallback_denominator = factors.sales.everywhere_sales

        comparison: Optional[SourcingComparison] = None
        if affiliated_group is not None:
            base_denominator = sales_denominator(affiliated_group, elections.sourcing_method)
            comparison = compare_sourcing_methods(numerator, affiliated_group)
        else:
            base_denominator = money(fallback_denominator)
        denominator = money(to_decimal(base_denominator) - throwout)
        audit.complete_step(
            "sourcing", step,
            numerator=numerator, denominator=denominator, throwback=throwback, throwout=throwout,
        )

        # Step 3: factors
        step = audit.log_step("factors")
        adjusted_sales = SalesFactor(
            local_sales=numerator,
            everywhere_sales=denominator,
            throwback_adjustment=throwback,
        )
        pcts: Dict[str, Optional[Decimal]] = {}
        calculations = (
            ("property", self.apportionment.property_factor_percent, factors.property),
            ("payroll", self.apportionment.payroll_factor_percent, factors.payroll),
            ("sales", self.apportionment.sales_factor_percent, adjusted_sales),
        )
        for name, calculate, factor in calculations:
            try:
                pcts[name] = calculate(factor, warnings)
            except ValidationError as e:
                audit.log_validation_error(e.field, e.message, e.value)
                errors.append(e)
                pcts[name] = None
        audit.complete_step("factors", step)
        audit.log_factors(pcts["property"], pcts["payroll"], pcts["sales"])

        # Step 4: combine
        formula = elections.formula
        final_pct: Optional[Decimal] = None
        breakdown: Optional[FormulaBreakdown] = None
        failed = [name for name in FACTOR_NAMES if pcts[name] is None]
        if not any(self.apportionment.uses_factor(formula, name) for name in failed):
            # Unweighted failed factors contribute nothing
            values = [pcts[name] if pcts[name] is not None else ZERO for name in FACTOR_NAMES]
            breakdown = self.apportionment.formula_breakdown(formula, *values)
            final_pct = breakdown.final_percentage

        formula_comparison: Optional[FormulaComparison] = None
        if not failed:
            formula_comparison = self.apportionment.compare_formulas(
                pcts["property"], pcts["payroll"], pcts["sales"]
            )

        # Step 5: jurisdiction income
        taxable: Optional[Decimal] = None
        if final_pct is not None:
            taxable = apply_percentage(reconciliation.adjusted_municipal_income, final_pct)

        audit.log_warnings(warnings)
        audit.log_result(formula.value, final_pct, taxable, len(warnings), len(errors))

        return FilingBreakdown(
            filing_id=filing_id,
            jurisdiction=jurisdiction,
            tax_year=self.rules.tax_year,
            elections=elections,
            reconciliation=reconciliation,
            property_factor_pct=pcts["property"],
            payroll_factor_pct=pcts["payroll"],
            sales_factor_pct=pcts["sales"],
            sales_numerator=numerator,
            sales_denominator=denominator,
            throwback_adjustment=throwback,
            throwout_adjustment=throwout,
            sourced_transactions=sourced,
            sourcing_comparison=comparison,
            final_apportionment_pct=final_pct,
            formula_breakdown=breakdown,
            formula_comparison=formula_comparison,
            jurisdiction_taxable_income=taxable,
            warnings=tuple(warnings),
            errors=tuple(errors),
        )


def compute_filing_breakdown(
    recon_input: ReconciliationInput,
    factors: ApportionmentFactors,
    elections: Union[Elections, Mapping[str, Any], None] = None,
    nexus: Optional[NexusStatus] = None,
    transactions: Optional[Sequence[SaleTransaction]] = None,
    **kwargs: Any,
) -> FilingBreakdown:
    """Module-level shortcut using default settings and rule parameters."""
    return FilingEngine().compute_filing_breakdown(
        recon_input, factors, elections, nexus, transactions, **kwargs
    )
