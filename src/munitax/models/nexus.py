"""
Nexus snapshot consumed by the sourcing resolver.

Nexus determination itself happens elsewhere; the engine only reads a
point-in-time copy taken before a calculation starts.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Any, Dict, List, Mapping, Optional


class NexusReason(str, Enum):
    """Why a business does or does not have nexus in a state."""
    PHYSICAL_PRESENCE = "PHYSICAL_PRESENCE"      # Office, warehouse, property
    EMPLOYEE_PRESENCE = "EMPLOYEE_PRESENCE"      # Full-time, part-time, remote
    ECONOMIC_NEXUS = "ECONOMIC_NEXUS"            # Sales or transaction thresholds
    FACTOR_PRESENCE = "FACTOR_PRESENCE"          # Property, payroll or sales factor presence
    AFFILIATE_NEXUS = "AFFILIATE_NEXUS"          # Affiliate or subsidiary
    CLICK_THROUGH_NEXUS = "CLICK_THROUGH_NEXUS"  # In-state referrers
    PL_86_272_PROTECTED = "PL_86_272_PROTECTED"  # Solicitation of tangible goods only
    NO_NEXUS = "NO_NEXUS"


def _state(code: str) -> str:
    return code.strip().upper()


@dataclass(frozen=True)
class NexusStatus:
    """
    Immutable nexus snapshot keyed by two-letter state code.

    States absent from the map are treated as lacking nexus.
    """
    has_nexus: Mapping[str, bool] = field(default_factory=dict)
    reason_by_state: Mapping[str, NexusReason] = field(default_factory=dict)

    def __post_init__(self):
        object.__setattr__(
            self, "has_nexus",
            MappingProxyType({_state(k): bool(v) for k, v in self.has_nexus.items()}),
        )
        object.__setattr__(
            self, "reason_by_state",
            MappingProxyType({_state(k): NexusReason(v) for k, v in self.reason_by_state.items()}),
        )

    def has_nexus_in(self, state: Optional[str]) -> bool:
        if not state:
            return False
        return self.has_nexus.get(_state(state), False)

    def reason_for(self, state: str) -> Optional[NexusReason]:
        reason = self.reason_by_state.get(_state(state))
        if reason is None and not self.has_nexus_in(state):
            return NexusReason.NO_NEXUS
        return reason

    @property
    def nexus_states(self) -> List[str]:
        return sorted(s for s, v in self.has_nexus.items() if v)

    @property
    def non_nexus_states(self) -> List[str]:
        return sorted(s for s, v in self.has_nexus.items() if not v)

    @classmethod
    def from_states(cls, *states: str, reason: NexusReason = NexusReason.PHYSICAL_PRESENCE) -> "NexusStatus":
        """Snapshot where every listed state has nexus for the same reason."""
        return cls(
            has_nexus={s: True for s in states},
            reason_by_state={s: reason for s in states},
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "nexus_states": self.nexus_states,
            "non_nexus_states": self.non_nexus_states,
            "reason_by_state": {s: r.value for s, r in sorted(self.reason_by_state.items())},
        }
