"""Validation errors and warnings for the municipal tax engine."""

from .errors import (
    InputError,
    MunicipalTaxError,
    ValidationError,
    ValidationWarning,
    WarningSeverity,
)

__all__ = [
    "InputError",
    "MunicipalTaxError",
    "ValidationError",
    "ValidationWarning",
    "WarningSeverity",
]
