"""
Tests for the Schedule X reconciliation calculator.

Tests verify:
1. Auto-calculated add-backs (meals, 5% rule, related party, capital loss, charitable)
2. Totals sum every line in declaration order
3. Adjusted municipal income and variance
4. Auto-calculation dispatch by field name
"""

from decimal import Decimal

import pytest

from munitax.calculator.schedule_x import ScheduleXCalculator
from munitax.models import ADD_BACK_FIELDS, DEDUCTION_FIELDS, AddBacks, Deductions, ReconciliationInput
from munitax.validation.errors import InputError


@pytest.fixture
def calc():
    return ScheduleXCalculator()


class TestAutoCalculations:
    """Tests for the five auto-calculated add-backs."""

    def test_meals_doubles_federal_deduction(self, calc):
        """Test meals add-back restores the full pre-haircut expense."""
        assert calc.calculate_meals_add_back(Decimal("7500")) == Decimal("15000.00")

    def test_meals_negative_or_absent_is_zero(self, calc):
        """Test negative and None inputs count as zero."""
        assert calc.calculate_meals_add_back(None) == Decimal("0")
        assert calc.calculate_meals_add_back(-100) == Decimal("0")

    def test_five_percent_rule(self, calc):
        """Test interest $20,000 + dividends $15,000 gives $1,750."""
        assert calc.calculate_5_percent_rule(20000, 15000) == Decimal("1750.00")

    def test_five_percent_rule_with_capital_gains(self, calc):
        """Test capital gains join the intangible income base."""
        assert calc.calculate_5_percent_rule(20000, 15000, 5000) == Decimal("2000.00")

    def test_related_party_overpayment(self, calc):
        """Test only the excess over fair market value is added back."""
        assert calc.calculate_related_party_excess(12000, 10000) == Decimal("2000.00")

    def test_related_party_bargain_purchase_is_zero(self, calc):
        """Test paying below fair market value never yields a negative add-back."""
        assert calc.calculate_related_party_excess(5000, 10000) == Decimal("0")

    def test_capital_loss_excess(self, calc):
        """Test losses beyond gains are added back, floored at zero."""
        assert calc.calculate_capital_loss_excess(30000, 10000) == Decimal("20000.00")
        assert calc.calculate_capital_loss_excess(10000, 30000) == Decimal("0")


class TestCharitableContribution:
    """Tests for the 10% charitable limit and carryforward."""

    def test_excess_over_limit(self, calc):
        """Test contributions above 10% of income are added back."""
        assert calc.calculate_charitable_contribution_excess(15000, 100000) == Decimal("5000.00")

    def test_within_limit(self, calc):
        """Test contributions inside the limit produce no add-back."""
        assert calc.calculate_charitable_contribution_excess(8000, 100000) == Decimal("0")

    def test_carryforward_does_not_change_add_back(self, calc):
        """Test prior-year carryforward affects deduction and carryforward only."""
        with_cf = calc.calculate_charitable_contribution(8000, 100000, prior_year_carryforward=5000)
        assert with_cf.add_back == Decimal("0")
        assert with_cf.current_year_deduction == Decimal("10000.00")
        assert with_cf.new_carryforward == Decimal("3000.00")

    def test_negative_income_limit_is_zero(self, calc):
        """Test a loss year leaves no room under the limit."""
        result = calc.calculate_charitable_contribution(2000, -50000)
        assert result.ten_percent_limit == Decimal("0.00")
        assert result.add_back == Decimal("2000.00")
        assert result.new_carryforward == Decimal("2000.00")


class TestTotals:
    """Tests for add-back and deduction totals."""

    def test_field_counts(self):
        """Test 20 add-back lines and 7 deduction lines."""
        assert len(ADD_BACK_FIELDS) == 20
        assert len(DEDUCTION_FIELDS) == 7

    def test_total_add_backs_all_fields(self, calc):
        """Test every add-back field contributes to the total."""
        add_backs = AddBacks(**{name: Decimal(i + 1) for i, name in enumerate(ADD_BACK_FIELDS)})
        assert calc.total_add_backs(add_backs) == Decimal(sum(range(1, 21)))

    @pytest.mark.parametrize("field_name", ADD_BACK_FIELDS)
    def test_total_add_backs_additive(self, calc, field_name):
        """Test raising any one field by delta raises the total by exactly delta."""
        base = AddBacks(depreciation_adjustment=Decimal("1000"))
        bumped_value = getattr(base, field_name) + Decimal("123.45")
        bumped = base.model_copy(update={field_name: bumped_value})
        assert calc.total_add_backs(bumped) - calc.total_add_backs(base) == Decimal("123.45")

    def test_total_deductions(self, calc):
        """Test every deduction field contributes to the total."""
        deductions = Deductions(**{name: Decimal("100") for name in DEDUCTION_FIELDS})
        assert calc.total_deductions(deductions) == Decimal("700.00")

    def test_empty_totals_are_zero(self, calc):
        """Test defaulted lines sum to zero."""
        assert calc.total_add_backs(AddBacks()) == Decimal("0")
        assert calc.total_deductions(Deductions()) == Decimal("0")

    def test_negative_lines_are_summed_as_entered(self, calc):
        """Test totals do not floor individual lines."""
        add_backs = AddBacks(depreciation_adjustment=Decimal("-500"), penalties_and_fines=Decimal("800"))
        assert calc.total_add_backs(add_backs) == Decimal("300.00")


class TestReconciliation:
    """Tests for adjusted municipal income and variance."""

    def test_reference_scenario(self, calc, sample_reconciliation):
        """Test $500,000 federal plus $75,000 add-backs gives $575,000."""
        result = calc.reconcile(sample_reconciliation)
        assert result.total_add_backs == Decimal("75000.00")
        assert result.total_deductions == Decimal("0.00")
        assert result.adjusted_municipal_income == Decimal("575000.00")

    def test_adjusted_with_deductions(self, calc):
        """Test deductions reduce adjusted income."""
        recon = ReconciliationInput(
            federal_taxable_income=Decimal("100000"),
            add_backs=AddBacks(penalties_and_fines=Decimal("5000")),
            deductions=Deductions(interest_income=Decimal("20000")),
        )
        assert calc.reconcile(recon).adjusted_municipal_income == Decimal("85000.00")

    def test_variance_below_threshold(self, calc):
        """Test 15% swing is not flagged."""
        result = calc.check_variance(500000, 575000)
        assert result.has_variance is False
        assert result.variance_pct == Decimal("0.1500")

    def test_variance_above_threshold(self, calc):
        """Test 30% swing is flagged."""
        result = calc.check_variance(100000, 70000)
        assert result.has_variance is True
        assert result.variance_pct == Decimal("0.3000")

    def test_variance_custom_threshold(self, calc):
        """Test explicit threshold overrides the default."""
        assert calc.check_variance(500000, 575000, threshold="0.10").has_variance is True

    def test_variance_zero_federal(self, calc):
        """Test zero federal income reports no variance instead of dividing by zero."""
        result = calc.check_variance(0, 50000)
        assert result.has_variance is False
        assert result.variance_pct == Decimal("0")

    def test_reconcile_is_deterministic(self, calc, sample_reconciliation):
        """Test identical input yields identical output."""
        assert calc.reconcile(sample_reconciliation).to_dict() == calc.reconcile(sample_reconciliation).to_dict()


class TestAutoCalculate:
    """Tests for auto-calculation dispatch."""

    def test_meals(self, calc):
        """Test meals dispatch with explanation."""
        result = calc.auto_calculate("meals_and_entertainment", federal_meals_deduction=7500)
        assert result.value == Decimal("15000.00")
        assert "$15,000.00" in result.explanation

    def test_intangible(self, calc):
        """Test 5% rule dispatch."""
        result = calc.auto_calculate("expenses_on_intangible_income", interest_income=20000, dividends=15000)
        assert result.value == Decimal("1750.00")
        assert result.details["total_intangible_income"] == Decimal("35000.00")

    def test_related_party(self, calc):
        """Test related-party dispatch floors at zero."""
        result = calc.auto_calculate("related_party_excess", paid_amount=5000, fair_market_value=10000)
        assert result.value == Decimal("0")
        assert "No excess" in result.explanation

    def test_capital_loss(self, calc):
        """Test capital loss dispatch."""
        assert calc.auto_calculate("capital_loss_excess", capital_losses=30000, capital_gains=10000).value == Decimal("20000.00")

    def test_charitable(self, calc):
        """Test charitable dispatch reports carryforward details."""
        result = calc.auto_calculate(
            "charitable_contribution_excess",
            contributions=15000,
            taxable_income_before_contributions=100000,
        )
        assert result.value == Decimal("5000.00")
        assert result.details["new_carryforward"] == Decimal("5000.00")

    def test_unknown_field(self, calc):
        """Test unknown field is rejected."""
        with pytest.raises(InputError):
            calc.auto_calculate("depreciation_adjustment")

    def test_unknown_input(self, calc):
        """Test input not taken by the field is rejected."""
        with pytest.raises(InputError):
            calc.auto_calculate("meals_and_entertainment", dividends=100)
