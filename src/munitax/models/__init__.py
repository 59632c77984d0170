"""Input records, elections and nexus snapshot for the municipal tax engine."""

from .schedule_x import (
    ADD_BACK_FIELDS,
    DEDUCTION_FIELDS,
    AddBacks,
    Deductions,
    EntityType,
    ReconciliationInput,
)
from .apportionment import (
    AffiliatedGroup,
    ApportionmentFactors,
    PayrollFactor,
    PropertyFactor,
    SaleTransaction,
    SaleType,
    SalesFactor,
)
from .elections import (
    ApportionmentFormula,
    Elections,
    ServiceSourcingMethod,
    SourcingMethodElection,
    ThrowbackElection,
    describe_election,
    parse_election,
)
from .nexus import NexusReason, NexusStatus

__all__ = [
    "ADD_BACK_FIELDS",
    "DEDUCTION_FIELDS",
    "AddBacks",
    "Deductions",
    "EntityType",
    "ReconciliationInput",
    "AffiliatedGroup",
    "ApportionmentFactors",
    "PayrollFactor",
    "PropertyFactor",
    "SaleTransaction",
    "SaleType",
    "SalesFactor",
    "ApportionmentFormula",
    "Elections",
    "ServiceSourcingMethod",
    "SourcingMethodElection",
    "ThrowbackElection",
    "describe_election",
    "parse_election",
    "NexusReason",
    "NexusStatus",
]
