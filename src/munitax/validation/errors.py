"""
Error taxonomy for the reconciliation and apportionment engine.

- ValidationWarning: non-fatal, collected and returned with the result
- ValidationError: fatal to one computation (e.g. a single factor)
- InputError: malformed election or field name, rejected before any math
"""

from __future__ import annotations

from dataclasses import dataclass, asdict
from enum import Enum
from typing import Any, Dict, Optional


class WarningSeverity(str, Enum):
    """Severity of a collected validation warning."""
    WARNING = "warning"    # Needs preparer attention, result still produced
    INFO = "info"          # Informational only


@dataclass(frozen=True)
class ValidationWarning:
    field: str
    message: str
    severity: WarningSeverity = WarningSeverity.WARNING

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["severity"] = self.severity.value
        return data


class MunicipalTaxError(Exception):
    """Base exception for engine errors."""
    pass


class ValidationError(MunicipalTaxError):
    """Raised when an input makes a computation meaningless (e.g. a factor outside 0..100)."""

    def __init__(self, field: str, message: str, value: Optional[Any] = None):
        self.field = field
        self.message = message
        self.value = value
        super().__init__(f"{field}: {message}")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "field": self.field,
            "message": self.message,
            "value": None if self.value is None else str(self.value),
        }


class InputError(MunicipalTaxError):
    """Raised when an election or field name is not one the engine knows."""

    def __init__(self, name: str, value: Any, allowed: Optional[list] = None):
        self.name = name
        self.value = value
        self.allowed = allowed or []
        message = f"Invalid {name}: {value!r}"
        if self.allowed:
            message += f" (expected one of {', '.join(self.allowed)})"
        super().__init__(message)
