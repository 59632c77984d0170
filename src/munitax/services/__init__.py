"""Ambient services for the municipal tax engine."""

from .logging_config import (
    CalculationLogger,
    configure_from_settings,
    configure_logging,
    filing_id_var,
    get_logger,
)

__all__ = [
    "CalculationLogger",
    "configure_from_settings",
    "configure_logging",
    "filing_id_var",
    "get_logger",
]
