"""
Filing elections for apportionment.

Elections are set once per filing and are read-only to every calculator.
Each enum mirrors the values accepted on the apportionment worksheet;
anything else is rejected with InputError before a calculation starts.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Type, TypeVar

from munitax.validation.errors import InputError

E = TypeVar("E", bound=Enum)


class SourcingMethodElection(str, Enum):
    """Treatment of affiliated-group sales in the sales factor denominator."""
    FINNIGAN = "FINNIGAN"  # All affiliated group sales, regardless of nexus
    JOYCE = "JOYCE"        # Only sales of entities with nexus


class ThrowbackElection(str, Enum):
    """Treatment of sales shipped to states where the seller lacks nexus."""
    THROWBACK = "THROWBACK"  # Add to origin-state numerator
    THROWOUT = "THROWOUT"    # Remove from denominator
    NONE = "NONE"            # Denominator only ("nowhere income")


class ServiceSourcingMethod(str, Enum):
    """Entry point of the service revenue sourcing cascade."""
    MARKET_BASED = "MARKET_BASED"                # Customer location
    COST_OF_PERFORMANCE = "COST_OF_PERFORMANCE"  # Where the work is performed (payroll)
    PRO_RATA = "PRO_RATA"                        # Average of usable factors


class ApportionmentFormula(str, Enum):
    """Factor weighting formula."""
    THREE_FACTOR_EQUAL_WEIGHTED = "THREE_FACTOR_EQUAL_WEIGHTED"
    FOUR_FACTOR_DOUBLE_WEIGHTED_SALES = "FOUR_FACTOR_DOUBLE_WEIGHTED_SALES"
    SINGLE_SALES_FACTOR = "SINGLE_SALES_FACTOR"


ELECTION_DESCRIPTIONS: Dict[Enum, Dict[str, str]] = {
    SourcingMethodElection.JOYCE: {
        "label": "Joyce (Separate Accounting)",
        "description": "Include only sales of entities with nexus in the denominator",
        "example": "Parent has nexus ($5M sales), subsidiary has none ($3M sales) -> denominator = $5M",
    },
    SourcingMethodElection.FINNIGAN: {
        "label": "Finnigan (Combined Reporting)",
        "description": "Include all affiliated group sales in the denominator regardless of nexus",
        "example": "Parent has nexus ($5M sales), subsidiary has none ($3M sales) -> denominator = $8M",
    },
    ThrowbackElection.THROWBACK: {
        "label": "Throwback",
        "description": "Sales to no-nexus states are thrown back to the origin state",
        "example": "Ship $100K goods from OH to CA (no CA nexus) -> $100K added to OH numerator",
    },
    ThrowbackElection.THROWOUT: {
        "label": "Throwout",
        "description": "Sales to no-nexus states are excluded from the denominator",
        "example": "Ship $100K goods from OH to CA (no CA nexus) -> $100K removed from denominator",
    },
    ThrowbackElection.NONE: {
        "label": "None",
        "description": "Sales to no-nexus states included in denominator only",
        "example": "Ship $100K goods from OH to CA (no CA nexus) -> $100K in denominator, $0 in OH numerator",
    },
    ServiceSourcingMethod.MARKET_BASED: {
        "label": "Market-Based Sourcing",
        "description": "Source service revenue to where the customer receives the benefit",
        "example": "OH office performs work for NY customer -> 100% sourced to NY",
    },
    ServiceSourcingMethod.COST_OF_PERFORMANCE: {
        "label": "Cost-of-Performance",
        "description": "Source service revenue to where the work is performed",
        "example": "OH office (70% payroll), CA office (30% payroll) -> 70% OH, 30% CA",
    },
    ServiceSourcingMethod.PRO_RATA: {
        "label": "Pro-Rata",
        "description": "Source service revenue proportionally based on state factors",
        "example": "Service revenue split based on property, payroll, or sales factors",
    },
    ApportionmentFormula.THREE_FACTOR_EQUAL_WEIGHTED: {
        "label": "Three-Factor (Equal Weighted)",
        "description": "Property, payroll and sales each weighted one third",
        "example": "(20% + 40% + 60%) / 3 = 40%",
    },
    ApportionmentFormula.FOUR_FACTOR_DOUBLE_WEIGHTED_SALES: {
        "label": "Four-Factor (Double-Weighted Sales)",
        "description": "Property 25%, payroll 25%, sales 50%",
        "example": "20% x 0.25 + 40% x 0.25 + 60% x 0.50 = 45%",
    },
    ApportionmentFormula.SINGLE_SALES_FACTOR: {
        "label": "Single Sales Factor",
        "description": "Sales factor only; property and payroll are ignored",
        "example": "Sales factor 60% -> apportionment 60%",
    },
}


def parse_election(enum_cls: Type[E], value: Any) -> E:
    """
    Coerce a raw election value (enum member or string) into enum_cls.

    Raises:
        InputError: If the value is not a member of enum_cls
    """
    if isinstance(value, enum_cls):
        return value
    if isinstance(value, str):
        normalized = value.strip().upper()
        try:
            return enum_cls(normalized)
        except ValueError:
            pass
    raise InputError(enum_cls.__name__, value, [m.value for m in enum_cls])


def describe_election(election: Enum) -> Dict[str, str]:
    """Label, description and worked example for an election value."""
    return dict(ELECTION_DESCRIPTIONS[election])


@dataclass(frozen=True)
class Elections:
    """
    Immutable snapshot of a filing's elections.

    Raw strings are accepted and normalized; an unknown value raises
    InputError at construction so no calculation ever sees it.
    """
    sourcing_method: SourcingMethodElection = SourcingMethodElection.FINNIGAN
    throwback: ThrowbackElection = ThrowbackElection.THROWBACK
    service_sourcing: ServiceSourcingMethod = ServiceSourcingMethod.MARKET_BASED
    formula: ApportionmentFormula = ApportionmentFormula.FOUR_FACTOR_DOUBLE_WEIGHTED_SALES

    def __post_init__(self):
        object.__setattr__(self, "sourcing_method", parse_election(SourcingMethodElection, self.sourcing_method))
        object.__setattr__(self, "throwback", parse_election(ThrowbackElection, self.throwback))
        object.__setattr__(self, "service_sourcing", parse_election(ServiceSourcingMethod, self.service_sourcing))
        object.__setattr__(self, "formula", parse_election(ApportionmentFormula, self.formula))

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Elections":
        known = {"sourcing_method", "throwback", "service_sourcing", "formula"}
        unknown = set(data) - known
        if unknown:
            raise InputError("election", sorted(unknown)[0], sorted(known))
        return cls(**data)

    def to_dict(self) -> Dict[str, str]:
        return {
            "sourcing_method": self.sourcing_method.value,
            "throwback": self.throwback.value,
            "service_sourcing": self.service_sourcing.value,
            "formula": self.formula.value,
        }
