"""
Schedule Y - Business Apportionment Inputs

Multi-state businesses apportion adjusted municipal income using
property, payroll and sales factors. Each factor is the ratio of the
amount located in the taxing jurisdiction ("local") to the amount
everywhere.

Property factor: owned property at average value plus rented property
capitalized at 8x annual rent.
Payroll factor: W-2 wages, salaries and other compensation.
Sales factor: gross receipts, after sourcing and throwback.

Transactions are immutable inputs; the sourcing resolver reads them and
never writes back.
"""

from decimal import Decimal
from enum import Enum
from typing import Dict, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator

ZERO = Decimal("0")


class SaleType(str, Enum):
    """Type of receipt, which determines how a sale is sourced."""
    TANGIBLE_GOODS = "TANGIBLE_GOODS"  # Destination state, subject to throwback
    SERVICES = "SERVICES"              # Service sourcing cascade
    RENTAL_INCOME = "RENTAL_INCOME"    # Property location
    INTEREST = "INTEREST"
    ROYALTIES = "ROYALTIES"
    OTHER = "OTHER"

    @property
    def requires_service_sourcing(self) -> bool:
        return self is SaleType.SERVICES

    @property
    def is_property_based(self) -> bool:
        return self is SaleType.RENTAL_INCOME


def _state_code(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    value = value.strip().upper()
    return value or None


class SaleTransaction(BaseModel):
    """A single reported sale."""
    model_config = ConfigDict(frozen=True, extra="forbid")

    transaction_id: Optional[str] = Field(default=None, description="Caller's reference for the sale")
    amount: Decimal = Field(default=ZERO, description="Gross receipt amount")
    sale_type: SaleType = Field(default=SaleType.TANGIBLE_GOODS)
    origin_state: Optional[str] = Field(default=None, description="State the sale shipped from / property location")
    destination_state: Optional[str] = Field(default=None, description="State the goods were delivered to")
    customer_location: Optional[str] = Field(default=None, description="State where the customer receives the benefit")

    @field_validator("origin_state", "destination_state", "customer_location")
    @classmethod
    def _normalize_state(cls, v: Optional[str]) -> Optional[str]:
        return _state_code(v)


class PropertyFactor(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    local_value: Decimal = Field(default=ZERO, description="Owned property in the jurisdiction (average value)")
    everywhere_value: Decimal = Field(default=ZERO, description="Owned property everywhere (average value)")
    local_rent_annual: Decimal = Field(default=ZERO, description="Annual rent paid for property in the jurisdiction")
    everywhere_rent_annual: Decimal = Field(default=ZERO, description="Annual rent paid everywhere")


class PayrollFactor(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    local_payroll: Decimal = Field(default=ZERO, description="Compensation paid in the jurisdiction")
    everywhere_payroll: Decimal = Field(default=ZERO, description="Compensation paid everywhere")
    payroll_by_state: Dict[str, Decimal] = Field(
        default_factory=dict,
        description="Per-state payroll, used for cost-of-performance service sourcing"
    )

    @field_validator("payroll_by_state")
    @classmethod
    def _normalize_states(cls, v: Dict[str, Decimal]) -> Dict[str, Decimal]:
        # Keys that collide once normalized ("oh", "OH") are summed
        normalized: Dict[str, Decimal] = {}
        for state, amount in v.items():
            code = _state_code(state)
            normalized[code] = normalized.get(code, ZERO) + amount
        return normalized


class SalesFactor(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    local_sales: Decimal = Field(default=ZERO, description="Sales sourced to the jurisdiction, throwback included")
    everywhere_sales: Decimal = Field(default=ZERO, description="Sales everywhere")
    throwback_adjustment: Decimal = Field(default=ZERO, description="Portion of local_sales added by throwback")
    transactions: Tuple[SaleTransaction, ...] = Field(default=())


class ApportionmentFactors(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    property: PropertyFactor = Field(default_factory=PropertyFactor)
    payroll: PayrollFactor = Field(default_factory=PayrollFactor)
    sales: SalesFactor = Field(default_factory=SalesFactor)


class AffiliatedGroup(BaseModel):
    """Per-entity sales and nexus for a group filing under a sourcing election."""
    model_config = ConfigDict(frozen=True, extra="forbid")

    entity_sales: Dict[str, Decimal] = Field(default_factory=dict)
    entity_nexus: Dict[str, bool] = Field(default_factory=dict)

    def has_nexus(self, entity_id: str) -> bool:
        return self.entity_nexus.get(entity_id, False)
