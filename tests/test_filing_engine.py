"""
Tests for the filing engine (reconciliation plus apportionment).

Tests verify:
1. End-to-end jurisdiction taxable income
2. Throwback elections flowing through to the sales factor
3. Failed factors leave reconciliation intact
4. Identical inputs give identical output
"""

import json
from decimal import Decimal

import pytest

from munitax import FilingEngine, compute_filing_breakdown
from munitax.models import (
    AddBacks,
    AffiliatedGroup,
    ApportionmentFactors,
    Elections,
    PayrollFactor,
    PropertyFactor,
    ReconciliationInput,
    SaleTransaction,
    SaleType,
    SalesFactor,
)
from munitax.validation.errors import InputError


def _transactions():
    return [
        SaleTransaction(transaction_id="T-1", amount=Decimal("100000"), sale_type=SaleType.TANGIBLE_GOODS,
                        origin_state="OH", destination_state="CA"),
        SaleTransaction(transaction_id="T-2", amount=Decimal("100000"), sale_type=SaleType.TANGIBLE_GOODS,
                        origin_state="OH", destination_state="NY"),
    ]


def _factors_without_sales():
    return ApportionmentFactors(
        property=PropertyFactor(local_value=Decimal("200000"), everywhere_value=Decimal("1000000")),
        payroll=PayrollFactor(local_payroll=Decimal("400000"), everywhere_payroll=Decimal("1000000")),
    )


class TestEndToEnd:
    """End-to-end filing computations."""

    def test_reference_filing(self, engine, sample_reconciliation, sample_factors, oh_nexus):
        """Test 20/40/60 factors under double-weighted sales on $575,000."""
        result = engine.compute_filing_breakdown(sample_reconciliation, sample_factors, Elections(), oh_nexus, [])
        assert result.adjusted_municipal_income == Decimal("575000.00")
        assert result.property_factor_pct == Decimal("20.0000")
        assert result.payroll_factor_pct == Decimal("40.0000")
        assert result.sales_factor_pct == Decimal("60.0000")
        assert result.final_apportionment_pct == Decimal("45.0000")
        assert result.jurisdiction_taxable_income == Decimal("258750.00")
        assert result.errors == ()
        assert result.is_complete

    def test_three_factor(self, engine, sample_reconciliation, sample_factors):
        """Test equal-weighted formula."""
        elections = Elections(formula="THREE_FACTOR_EQUAL_WEIGHTED")
        result = engine.compute_filing_breakdown(sample_reconciliation, sample_factors, elections)
        assert result.final_apportionment_pct == Decimal("40.0000")
        assert result.jurisdiction_taxable_income == Decimal("230000.00")

    def test_raw_election_mapping(self, engine, sample_reconciliation, sample_factors):
        """Test elections may be given as a plain mapping."""
        result = engine.compute_filing_breakdown(
            sample_reconciliation, sample_factors, {"formula": "single_sales_factor"}
        )
        assert result.final_apportionment_pct == Decimal("60.0000")

    def test_malformed_election(self, engine, sample_reconciliation, sample_factors):
        """Test malformed election is rejected before any calculation."""
        with pytest.raises(InputError):
            engine.compute_filing_breakdown(sample_reconciliation, sample_factors, {"throwback": "MAYBE"})

    def test_module_shortcut_uses_settings(self, sample_reconciliation, sample_factors):
        """Test the shortcut defaults to the configured jurisdiction."""
        result = compute_filing_breakdown(sample_reconciliation, sample_factors)
        assert result.jurisdiction == "OH"
        assert result.tax_year == 2025


class TestSalesSourcing:
    """Throwback elections through the full pipeline."""

    def test_throwback(self, engine, sample_reconciliation, oh_nexus):
        """Test thrown-back sale enters the numerator, denominator unchanged."""
        result = engine.compute_filing_breakdown(
            sample_reconciliation, _factors_without_sales(), Elections(throwback="THROWBACK"), oh_nexus,
            _transactions(),
        )
        assert result.sales_numerator == Decimal("100000.00")
        assert result.sales_denominator == Decimal("200000.00")
        assert result.throwback_adjustment == Decimal("100000.00")
        assert result.sales_factor_pct == Decimal("50.0000")
        assert result.sourced_transactions[0].throwback_applied is True

    def test_throwout(self, engine, sample_reconciliation, oh_nexus):
        """Test thrown-out sale leaves the denominator."""
        result = engine.compute_filing_breakdown(
            sample_reconciliation, _factors_without_sales(), Elections(throwback="THROWOUT"), oh_nexus,
            _transactions(),
        )
        assert result.sales_numerator == Decimal("0.00")
        assert result.sales_denominator == Decimal("100000.00")
        assert result.throwout_adjustment == Decimal("100000.00")

    def test_none(self, engine, sample_reconciliation, oh_nexus):
        """Test nowhere income stays in the denominator only."""
        result = engine.compute_filing_breakdown(
            sample_reconciliation, _factors_without_sales(), Elections(throwback="NONE"), oh_nexus,
            _transactions(),
        )
        assert result.sales_numerator == Decimal("0.00")
        assert result.sales_denominator == Decimal("200000.00")

    def test_reported_everywhere_sales_preferred(self, engine, sample_reconciliation, oh_nexus):
        """Test caller-reported everywhere sales is used as the base denominator."""
        factors = _factors_without_sales().model_copy(
            update={"sales": SalesFactor(everywhere_sales=Decimal("400000"))}
        )
        result = engine.compute_filing_breakdown(
            sample_reconciliation, factors, Elections(), oh_nexus, _transactions()
        )
        assert result.sales_denominator == Decimal("400000.00")
        assert result.sales_factor_pct == Decimal("25.0000")

    def test_transactions_default_to_sales_factor(self, engine, sample_reconciliation, oh_nexus):
        """Test transactions on the sales factor are sourced when none are passed."""
        factors = _factors_without_sales().model_copy(
            update={"sales": SalesFactor(transactions=tuple(_transactions()))}
        )
        result = engine.compute_filing_breakdown(sample_reconciliation, factors, Elections(), oh_nexus)
        assert len(result.sourced_transactions) == 2

    def test_affiliated_group_denominator(self, engine, sample_reconciliation, oh_nexus):
        """Test Joyce denominator and the sourcing comparison."""
        group = AffiliatedGroup(
            entity_sales={"parent": Decimal("800000"), "sub": Decimal("200000")},
            entity_nexus={"parent": True, "sub": False},
        )
        result = engine.compute_filing_breakdown(
            sample_reconciliation, _factors_without_sales(), Elections(sourcing_method="JOYCE"), oh_nexus,
            _transactions(), affiliated_group=group,
        )
        assert result.sales_denominator == Decimal("800000.00")
        assert result.sourcing_comparison.finnigan_denominator == Decimal("1000000.00")

    def test_jurisdiction_override(self, engine, sample_reconciliation, oh_nexus):
        """Test numerator computed for another jurisdiction."""
        result = engine.compute_filing_breakdown(
            sample_reconciliation, _factors_without_sales(), Elections(), oh_nexus, _transactions(),
            jurisdiction="ny",
        )
        assert result.jurisdiction == "NY"
        assert result.sales_numerator == Decimal("100000.00")


class TestFailures:
    """Factor failures and warnings."""

    def test_failed_factor_keeps_reconciliation(self, engine, sample_reconciliation):
        """Test a negative denominator fails only its factor."""
        factors = ApportionmentFactors(
            property=PropertyFactor(everywhere_value=Decimal("-1")),
            sales=SalesFactor(local_sales=Decimal("30"), everywhere_sales=Decimal("100")),
        )
        result = engine.compute_filing_breakdown(sample_reconciliation, factors, Elections())
        assert result.property_factor_pct is None
        assert result.reconciliation.adjusted_municipal_income == Decimal("575000.00")
        assert result.final_apportionment_pct is None
        assert result.jurisdiction_taxable_income is None
        assert [e.field for e in result.errors] == ["property.everywhere_value"]

    def test_unused_failed_factor(self, engine, sample_reconciliation):
        """Test single-sales still completes when property fails."""
        factors = ApportionmentFactors(
            property=PropertyFactor(everywhere_value=Decimal("-1")),
            sales=SalesFactor(local_sales=Decimal("30"), everywhere_sales=Decimal("100")),
        )
        result = engine.compute_filing_breakdown(
            sample_reconciliation, factors, Elections(formula="SINGLE_SALES_FACTOR")
        )
        assert result.final_apportionment_pct == Decimal("30.0000")
        assert result.jurisdiction_taxable_income == Decimal("172500.00")
        assert len(result.errors) == 1
        assert result.formula_comparison is None

    def test_warnings_collected(self, engine, sample_factors):
        """Test validator and factor warnings are returned with the result."""
        recon = ReconciliationInput(
            federal_taxable_income=Decimal("100000"),
            add_backs=AddBacks(other_add_backs=Decimal("500")),
        )
        factors = sample_factors.model_copy(
            update={"payroll": PayrollFactor(local_payroll=Decimal("100"), everywhere_payroll=Decimal("100"))}
        )
        result = engine.compute_filing_breakdown(recon, factors, Elections())
        assert "add_backs.other_add_backs_description" in [w.field for w in result.warnings]
        assert result.is_complete


class TestDeterminism:
    """Identical inputs give byte-identical output."""

    def test_idempotent(self, engine, sample_reconciliation, sample_factors, oh_nexus):
        """Test two runs serialize identically."""
        args = (sample_reconciliation, sample_factors, Elections(), oh_nexus, _transactions())
        first = json.dumps(engine.compute_filing_breakdown(*args, filing_id="F-1").to_dict())
        second = json.dumps(engine.compute_filing_breakdown(*args, filing_id="F-1").to_dict())
        assert first == second

    def test_to_dict_key_order(self, engine, sample_reconciliation, sample_factors):
        """Test stable top-level key order."""
        data = engine.compute_filing_breakdown(sample_reconciliation, sample_factors).to_dict()
        assert list(data) == [
            "filing_id", "jurisdiction", "tax_year", "elections", "reconciliation", "factors", "sales",
            "sourcing_comparison", "formula", "final_apportionment_pct", "formula_breakdown",
            "formula_comparison", "jurisdiction_taxable_income", "warnings", "errors",
        ]
        assert data["final_apportionment_pct"] == "45.0000"

    def test_new_engine_same_result(self, settings, rules, sample_reconciliation, sample_factors):
        """Test separate engine instances agree."""
        a = FilingEngine(settings, rules).compute_filing_breakdown(sample_reconciliation, sample_factors)
        b = FilingEngine(settings, rules).compute_filing_breakdown(sample_reconciliation, sample_factors)
        assert a.to_dict() == b.to_dict()
