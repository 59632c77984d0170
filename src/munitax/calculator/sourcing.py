"""
Sales sourcing and nexus resolution for the Schedule Y sales factor.

Three decisions feed the sales factor:

1. Group denominator (SourcingMethodElection), computed once per group:
   - FINNIGAN: every affiliated entity's sales
   - JOYCE: only sales of entities with nexus

2. Throwback (ThrowbackElection), per destination-sourced sale whose
   destination lacks nexus and differs from its origin:
   - THROWBACK: full amount added to the origin state's numerator
   - THROWOUT: removed from the everywhere denominator
   - NONE: stays in the denominator only ("nowhere income")

3. Service revenue cascade (ServiceSourcingMethod), SERVICES sales only:
   market-based (customer location) -> cost-of-performance (payroll by
   state) -> pro-rata (average of usable factors). The cascade starts at
   the elected method; each later step runs only when the one before it
   lacks data.

The resolver reads transactions, elections and a nexus snapshot; it
never mutates any of them.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from decimal import ROUND_DOWN, Decimal
from types import MappingProxyType
from typing import Any, Callable, Dict, Iterable, Mapping, Optional, Sequence, Tuple

from munitax.calculator.decimal_math import (
    HUNDRED,
    MONEY_PLACES,
    ZERO,
    Numeric,
    add,
    money,
    percent_of,
    percentage,
    sum_money,
    to_decimal,
)
from munitax.calculator.payroll import payroll_shares
from munitax.models.apportionment import AffiliatedGroup, SaleTransaction
from munitax.models.elections import (
    Elections,
    ServiceSourcingMethod,
    SourcingMethodElection,
    ThrowbackElection,
    parse_election,
)
from munitax.models.nexus import NexusStatus

logger = logging.getLogger(__name__)

EVERYWHERE_ELSE = "EVERYWHERE_ELSE"

# Ordered cascade for service revenue
SERVICE_CASCADE: Tuple[ServiceSourcingMethod, ...] = (
    ServiceSourcingMethod.MARKET_BASED,
    ServiceSourcingMethod.COST_OF_PERFORMANCE,
    ServiceSourcingMethod.PRO_RATA,
)

# Method labels for non-service sales
DESTINATION = "DESTINATION"
PROPERTY_LOCATION = "PROPERTY_LOCATION"


@dataclass(frozen=True)
class SourcedTransaction:
    """
    Sourcing outcome for one sale.

    sourced_amount/sourced_state: where the sale lands (for prorated
    services, the jurisdiction's share). numerator_amount is what enters
    the jurisdiction's sales numerator; denominator_adjustment is what
    leaves the everywhere denominator (negative for throwout).
    """
    transaction: SaleTransaction
    sourced_amount: Decimal
    sourced_state: Optional[str]
    throwback_applied: bool
    method: str
    numerator_amount: Decimal = ZERO
    denominator_adjustment: Decimal = ZERO
    allocations: Mapping[str, Decimal] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "transaction_id": self.transaction.transaction_id,
            "sale_type": self.transaction.sale_type.value,
            "amount": str(money(self.transaction.amount)),
            "sourced_amount": str(self.sourced_amount),
            "sourced_state": self.sourced_state,
            "throwback_applied": self.throwback_applied,
            "method": self.method,
            "numerator_amount": str(self.numerator_amount),
            "denominator_adjustment": str(self.denominator_adjustment),
            "allocations": {state: str(amount) for state, amount in sorted(self.allocations.items())},
        }


@dataclass(frozen=True)
class SalesSourcingResult:
    """Aggregate of all sourced transactions for the jurisdiction."""
    transactions: Tuple[SourcedTransaction, ...]
    numerator: Decimal
    throwback_adjustment: Decimal
    throwout_adjustment: Decimal
    total_sales: Decimal


@dataclass(frozen=True)
class SourcingComparison:
    """Finnigan vs Joyce apportionment for the same numerator."""
    finnigan_denominator: Decimal
    joyce_denominator: Decimal
    finnigan_percentage: Decimal
    joyce_percentage: Decimal
    recommendation: SourcingMethodElection
    difference: Decimal


# =============================================================================
# GROUP DENOMINATOR (FINNIGAN / JOYCE)
# =============================================================================

def sales_denominator(group: AffiliatedGroup, election: Any) -> Decimal:
    """
    Everywhere-sales denominator for an affiliated group.

    Raises:
        InputError: Unknown election
    """
    election = parse_election(SourcingMethodElection, election)
    entities = sorted(group.entity_sales)
    if election is SourcingMethodElection.JOYCE:
        entities = [e for e in entities if group.has_nexus(e)]

    denominator = sum_money(group.entity_sales[e] for e in entities)
    logger.info(f"{election.value} denominator: {denominator} ({len(entities)} entities)")
    return denominator


def compare_sourcing_methods(numerator: Numeric, group: AffiliatedGroup) -> SourcingComparison:
    """
    Compare Finnigan and Joyce apportionment and recommend the lower.

    Examples:
        numerator $1.5M, Finnigan $10M, Joyce $8M -> 15.0000% vs 18.7500%,
        Finnigan recommended
    """
    finnigan = sales_denominator(group, SourcingMethodElection.FINNIGAN)
    joyce = sales_denominator(group, SourcingMethodElection.JOYCE)
    finnigan_pct = percent_of(numerator, finnigan)
    joyce_pct = percent_of(numerator, joyce)

    recommendation = (
        SourcingMethodElection.FINNIGAN if finnigan_pct < joyce_pct else SourcingMethodElection.JOYCE
    )
    logger.info(
        f"Sourcing comparison: Finnigan={finnigan_pct}%, Joyce={joyce_pct}%, "
        f"recommendation={recommendation.value}"
    )
    return SourcingComparison(
        finnigan_denominator=finnigan,
        joyce_denominator=joyce,
        finnigan_percentage=finnigan_pct,
        joyce_percentage=joyce_pct,
        recommendation=recommendation,
        difference=percentage(abs(joyce_pct - finnigan_pct)),
    )


def pro_rata_percentage(factor_pairs: Iterable[Tuple[Numeric, Numeric]]) -> Optional[Decimal]:
    """
    Average percentage of the factors that have a usable (positive) denominator.

    Args:
        factor_pairs: (local, everywhere) per factor

    Returns:
        Average on the 0..100 scale, or None if no factor is usable
    """
    usable = [percent_of(local, everywhere) for local, everywhere in factor_pairs if to_decimal(everywhere) > 0]
    if not usable:
        return None
    return percentage(add(*usable) / Decimal(len(usable)))


# =============================================================================
# PER-TRANSACTION RESOLVER
# =============================================================================

class SourcingResolver:
    """
    Resolves each sale to a state under one filing's elections and nexus snapshot.

    Args:
        jurisdiction: State whose numerator is being computed
        elections: Filing elections
        nexus: Nexus snapshot (the jurisdiction itself always counts as nexus)
        payroll_by_state: Per-state payroll for cost-of-performance sourcing
        pro_rata_pct: Average usable factor percentage for pro-rata sourcing
    """

    def __init__(
        self,
        jurisdiction: str,
        elections: Elections,
        nexus: NexusStatus,
        payroll_by_state: Optional[Mapping[str, Numeric]] = None,
        pro_rata_pct: Optional[Numeric] = None,
    ):
        self.jurisdiction = jurisdiction.strip().upper()
        self.elections = elections
        self.nexus = nexus
        self._shares = payroll_shares(payroll_by_state or {})
        self.pro_rata_pct = None if pro_rata_pct is None else to_decimal(pro_rata_pct)
        self._service_steps: Dict[ServiceSourcingMethod, Callable[[SaleTransaction], Optional[Dict[str, Decimal]]]] = {
            ServiceSourcingMethod.MARKET_BASED: self._market_based,
            ServiceSourcingMethod.COST_OF_PERFORMANCE: self._cost_of_performance,
            ServiceSourcingMethod.PRO_RATA: self._pro_rata,
        }

    def has_nexus(self, state: Optional[str]) -> bool:
        if not state:
            return False
        return state == self.jurisdiction or self.nexus.has_nexus_in(state)

    def resolve(self, txn: SaleTransaction) -> SourcedTransaction:
        if txn.sale_type.requires_service_sourcing:
            return self._resolve_service(txn)
        if txn.sale_type.is_property_based:
            return self._resolve_property(txn)
        return self._resolve_destination(txn)

    def resolve_all(self, transactions: Sequence[SaleTransaction]) -> SalesSourcingResult:
        sourced = tuple(self.resolve(t) for t in transactions)
        throwback = add(*(
            s.numerator_amount for s in sourced if s.throwback_applied
        ))
        throwout = add(*(-s.denominator_adjustment for s in sourced))
        return SalesSourcingResult(
            transactions=sourced,
            numerator=sum_money(s.numerator_amount for s in sourced),
            throwback_adjustment=money(throwback),
            throwout_adjustment=money(throwout),
            total_sales=sum_money(t.amount for t in transactions),
        )

    # -------------------------------------------------------------------------
    # Destination-based sales (tangible goods and other receipts)
    # -------------------------------------------------------------------------

    def _resolve_destination(self, txn: SaleTransaction) -> SourcedTransaction:
        amount = money(txn.amount)
        origin = txn.origin_state
        destination = txn.destination_state or origin

        if destination == origin or self.has_nexus(destination):
            return self._sourced(txn, amount, destination, DESTINATION)

        election = self.elections.throwback
        if election is ThrowbackElection.THROWBACK:
            if not origin:
                logger.warning(f"No origin to throw back {amount} shipped to {destination}; left as nowhere income")
                return self._sourced(txn, amount, destination, DESTINATION)
            logger.info(f"Throwing back {amount} from {destination} to {origin} (no nexus)")
            return self._sourced(txn, amount, origin, DESTINATION, throwback_applied=True)

        if election is ThrowbackElection.THROWOUT:
            logger.info(f"Throwing out {amount} shipped to {destination} (no nexus)")
            return SourcedTransaction(
                transaction=txn,
                sourced_amount=money(ZERO),
                sourced_state=None,
                throwback_applied=False,
                method=DESTINATION,
                numerator_amount=money(ZERO),
                denominator_adjustment=-amount,
                allocations=MappingProxyType({}),
            )

        # NONE: denominator only
        return self._sourced(txn, amount, destination, DESTINATION)

    def _resolve_property(self, txn: SaleTransaction) -> SourcedTransaction:
        state = txn.origin_state or txn.destination_state
        return self._sourced(txn, money(txn.amount), state, PROPERTY_LOCATION)

    def _sourced(
        self,
        txn: SaleTransaction,
        amount: Decimal,
        state: Optional[str],
        method: str,
        throwback_applied: bool = False,
    ) -> SourcedTransaction:
        allocations = {state: amount} if state else {}
        return SourcedTransaction(
            transaction=txn,
            sourced_amount=amount,
            sourced_state=state,
            throwback_applied=throwback_applied,
            method=method,
            numerator_amount=amount if state == self.jurisdiction else money(ZERO),
            denominator_adjustment=money(ZERO),
            allocations=MappingProxyType(allocations),
        )

    # -------------------------------------------------------------------------
    # Service revenue cascade
    # -------------------------------------------------------------------------

    def _resolve_service(self, txn: SaleTransaction) -> SourcedTransaction:
        start = SERVICE_CASCADE.index(self.elections.service_sourcing)
        for method in SERVICE_CASCADE[start:]:
            allocations = self._service_steps[method](txn)
            if allocations is None:
                logger.debug(f"{method.value} lacks data for {txn.transaction_id or 'transaction'}, falling back")
                continue

            local = allocations.get(self.jurisdiction, money(ZERO))
            if len(allocations) == 1:
                state, sourced = next(iter(allocations.items()))
            else:
                state, sourced = self.jurisdiction, local
            return SourcedTransaction(
                transaction=txn,
                sourced_amount=sourced,
                sourced_state=state,
                throwback_applied=False,
                method=method.value,
                numerator_amount=local,
                denominator_adjustment=money(ZERO),
                allocations=MappingProxyType(allocations),
            )

        # Pro-rata always produces an allocation, so the cascade cannot fall through.
        raise AssertionError("service sourcing cascade produced no allocation")

    def _market_based(self, txn: SaleTransaction) -> Optional[Dict[str, Decimal]]:
        if not txn.customer_location:
            return None
        return {txn.customer_location: money(txn.amount)}

    def _cost_of_performance(self, txn: SaleTransaction) -> Optional[Dict[str, Decimal]]:
        if not self._shares:
            return None
        amount = money(txn.amount)
        sign = Decimal(-1) if amount < 0 else Decimal(1)
        magnitude = abs(amount)

        # Largest-remainder rounding: truncate every share to pennies, then hand
        # the leftover pennies to the largest truncated fractions (ties by state).
        exact = {state: magnitude * share for state, share in self._shares.items()}
        allocations = {
            state: value.quantize(MONEY_PLACES, rounding=ROUND_DOWN) for state, value in exact.items()
        }
        leftover = int((magnitude - add(*allocations.values())) / MONEY_PLACES)
        by_fraction = sorted(exact, key=lambda state: (allocations[state] - exact[state], state))
        for state in by_fraction[:leftover]:
            allocations[state] += MONEY_PLACES
        return {state: sign * allocations[state] for state in sorted(allocations)}

    def _pro_rata(self, txn: SaleTransaction) -> Dict[str, Decimal]:
        amount = money(txn.amount)
        pct = self.pro_rata_pct
        if pct is None:
            logger.warning("No usable apportionment factors for pro-rata sourcing, using 0%")
            pct = ZERO
        pct = min(max(pct, ZERO), HUNDRED)
        local = money(amount * pct / HUNDRED)
        return {self.jurisdiction: local, EVERYWHERE_ELSE: amount - local}

