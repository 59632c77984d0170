"""
Schedule X - Reconciliation of Federal to Municipal Taxable Income

Business filers start from federal taxable income (Form 1120 line 30,
Form 1065 line 23, Form 1120-S line 21) and reconcile it to the income
the municipality taxes.

Add-backs (20 lines) restore expenses that were deducted federally but
are not allowed locally, for example:
- Meals and entertainment (50% federal, 0% municipal)
- State, local and foreign income taxes
- Penalties, fines and political contributions
- Expenses attributable to non-taxable intangible income (5% rule)

Deductions (7 lines) remove income that is taxable federally but exempt
locally:
- Interest income, dividends, capital gains
- Municipal bond interest from other jurisdictions
- Section 179 recapture and depletion differences

Each "other" catch-all line requires a description whenever it carries
an amount. Missing descriptions are reported as warnings; they never
stop the reconciliation.
"""

from decimal import Decimal
from enum import Enum
from typing import Iterator, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field

ZERO = Decimal("0")


class EntityType(str, Enum):
    """Business entity type (drives conditional lines such as guaranteed payments)."""
    C_CORP = "C-CORP"
    S_CORP = "S-CORP"
    PARTNERSHIP = "PARTNERSHIP"
    SOLE_PROPRIETORSHIP = "SOLE_PROPRIETORSHIP"


# Summation order is the declaration order below; keep these in sync.
ADD_BACK_FIELDS: Tuple[str, ...] = (
    "depreciation_adjustment",
    "amortization_adjustment",
    "income_and_state_taxes",
    "guaranteed_payments",
    "meals_and_entertainment",
    "related_party_excess",
    "penalties_and_fines",
    "political_contributions",
    "officer_life_insurance",
    "capital_loss_excess",
    "federal_tax_refunds",
    "expenses_on_intangible_income",
    "section_179_excess",
    "bonus_depreciation",
    "bad_debt_reserve_increase",
    "charitable_contribution_excess",
    "domestic_production_activities",
    "stock_compensation_adjustment",
    "inventory_method_change",
    "other_add_backs",
)

DEDUCTION_FIELDS: Tuple[str, ...] = (
    "interest_income",
    "dividends",
    "capital_gains",
    "section_179_recapture",
    "municipal_bond_interest",
    "depletion_difference",
    "other_deductions",
)


def _amount(description: str):
    return Field(default=ZERO, description=description)


class AddBacks(BaseModel):
    """
    Schedule X add-backs: expenses deducted federally but not allowed
    for municipal purposes. Absent lines default to zero.
    """
    model_config = ConfigDict(frozen=True, extra="forbid")

    # Depreciation and amortization
    depreciation_adjustment: Decimal = _amount("Book depreciation vs MACRS difference")
    amortization_adjustment: Decimal = _amount("Book vs tax amortization of intangibles")

    # Taxes and owner payments
    income_and_state_taxes: Decimal = _amount("State, local and foreign income taxes")
    guaranteed_payments: Decimal = _amount("Form 1065 guaranteed payments (partnerships only)")

    # Non-deductible expenses
    meals_and_entertainment: Decimal = _amount("Meals add-back (federal 50% deduction x 2)")
    related_party_excess: Decimal = _amount("Related-party payments above fair market value")
    penalties_and_fines: Decimal = _amount("Government penalties and fines")
    political_contributions: Decimal = _amount("Campaign and political contributions")
    officer_life_insurance: Decimal = _amount("Officer life insurance premiums (corporation beneficiary)")

    # Capital and refunds
    capital_loss_excess: Decimal = _amount("Capital losses in excess of capital gains")
    federal_tax_refunds: Decimal = _amount("Prior year federal tax refunds")

    # Intangible income (5% rule)
    expenses_on_intangible_income: Decimal = _amount("Expenses attributable to non-taxable intangible income")

    # Accelerated cost recovery
    section_179_excess: Decimal = _amount("Section 179 expense over the municipal limit")
    bonus_depreciation: Decimal = _amount("Federal bonus depreciation")

    # Reserves, contributions and timing differences
    bad_debt_reserve_increase: Decimal = _amount("Bad debt reserve method increase")
    charitable_contribution_excess: Decimal = _amount("Charitable contributions over the 10% limit")
    domestic_production_activities: Decimal = _amount("Domestic production activities deduction (Section 199)")
    stock_compensation_adjustment: Decimal = _amount("Book vs tax stock compensation")
    inventory_method_change: Decimal = _amount("Section 481(a) inventory method adjustment")

    # Catch-all
    other_add_backs: Decimal = _amount("Other add-backs (description required)")
    other_add_backs_description: Optional[str] = Field(
        default=None,
        description="Required when other_add_backs is non-zero"
    )

    def items(self) -> Iterator[Tuple[str, Decimal]]:
        """(field, amount) pairs in summation order."""
        for name in ADD_BACK_FIELDS:
            yield name, getattr(self, name)


class Deductions(BaseModel):
    """
    Schedule X deductions: income taxable federally but exempt for
    municipal purposes. Absent lines default to zero.
    """
    model_config = ConfigDict(frozen=True, extra="forbid")

    # Intangible income
    interest_income: Decimal = _amount("Non-taxable interest income")
    dividends: Decimal = _amount("Qualified and ordinary dividends")
    capital_gains: Decimal = _amount("Net capital gains")

    # Recapture and depletion
    section_179_recapture: Decimal = _amount("Recaptured Section 179 deduction")
    municipal_bond_interest: Decimal = _amount("Cross-jurisdiction municipal bond interest")
    depletion_difference: Decimal = _amount("Percentage vs cost depletion difference")

    # Catch-all
    other_deductions: Decimal = _amount("Other deductions (description required)")
    other_deductions_description: Optional[str] = Field(
        default=None,
        description="Required when other_deductions is non-zero"
    )

    def items(self) -> Iterator[Tuple[str, Decimal]]:
        """(field, amount) pairs in summation order."""
        for name in DEDUCTION_FIELDS:
            yield name, getattr(self, name)


class ReconciliationInput(BaseModel):
    """Federal taxable income plus the itemized Schedule X adjustments."""
    model_config = ConfigDict(frozen=True, extra="forbid")

    federal_taxable_income: Decimal = Field(
        default=ZERO,
        description="Federal taxable income before reconciliation"
    )
    add_backs: AddBacks = Field(default_factory=AddBacks)
    deductions: Deductions = Field(default_factory=Deductions)
