"""Configuration for the municipal tax engine."""

from .settings import MunicipalTaxSettings, get_settings
from .rule_config_loader import (
    RuleConfigLoader,
    RuleParameters,
    clear_config_cache,
    get_config_loader,
    get_rule_parameters,
)

__all__ = [
    "MunicipalTaxSettings",
    "get_settings",
    "RuleConfigLoader",
    "RuleParameters",
    "clear_config_cache",
    "get_config_loader",
    "get_rule_parameters",
]
