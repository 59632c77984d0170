"""
Rule Parameter Loader.

Loads municipal rule parameters from YAML files, enabling:
- Annual updates without code changes
- Environment-specific overrides
- Audit trail of parameter changes

Calculators never read the loader directly. They receive a frozen
RuleParameters snapshot, built once before a computation starts, so a
parameter change can never be observed half way through a filing.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field, fields
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

logger = logging.getLogger(__name__)

# Default config directory
CONFIG_DIR = Path(__file__).parent / "parameters"

ENV_PREFIX = "MUNITAX_"


@dataclass
class ConfigMetadata:
    """Metadata about a rule parameter file."""
    version: str
    tax_year: int
    effective_date: str
    source: str  # "municipal", "state", "custom"
    references: List[str] = field(default_factory=list)
    last_updated: str = ""
    updated_by: str = ""
    notes: str = ""


@dataclass
class ConfigChange:
    """Record of a parameter change."""
    parameter: str
    old_value: Any
    new_value: Any
    changed_at: str
    changed_by: str
    reason: str


@dataclass(frozen=True)
class RuleParameters:
    """
    Immutable snapshot of the rule parameters for one tax year.

    Defaults equal the packaged 2025 values, so calculators constructed
    without a snapshot behave identically to a loaded 2025 file.
    """

    tax_year: int = 2025

    # Schedule X auto-calculations
    meals_multiplier: Decimal = Decimal("2")
    intangible_expense_rate: Decimal = Decimal("0.05")
    charitable_limit_rate: Decimal = Decimal("0.10")

    # Schedule X validation
    variance_threshold: Decimal = Decimal("0.20")
    federal_income_tolerance: Decimal = Decimal("100.00")
    officer_compensation_threshold: Decimal = Decimal("0.50")

    # Schedule Y property factor
    rent_capitalization_multiplier: Decimal = Decimal("8")

    @classmethod
    def from_config(cls, config: Dict[str, Any], tax_year: int) -> "RuleParameters":
        """Build a snapshot from a loaded parameter dictionary, ignoring unknown keys."""
        values: Dict[str, Any] = {"tax_year": tax_year}
        for f in fields(cls):
            if f.name == "tax_year" or f.name not in config:
                continue
            raw = config[f.name]
            try:
                values[f.name] = Decimal(str(raw))
            except InvalidOperation:
                raise ValueError(f"Rule parameter {f.name} is not numeric: {raw!r}")
        return cls(**values)


class RuleConfigLoader:
    """
    Loads and manages municipal rule parameters from YAML files.

    Features:
    - File discovery by tax year (municipal_<year>.yaml)
    - Environment variable overrides (MUNITAX_<year>_<PARAM>)
    - Configuration validation
    - Change tracking
    """

    REQUIRED_PARAMETERS = (
        "meals_multiplier",
        "intangible_expense_rate",
        "charitable_limit_rate",
        "variance_threshold",
        "rent_capitalization_multiplier",
    )

    def __init__(self, config_dir: Optional[Path] = None):
        """
        Initialize the loader.

        Args:
            config_dir: Directory containing YAML parameter files.
                       Defaults to the packaged parameters directory.
        """
        self.config_dir = Path(config_dir) if config_dir else CONFIG_DIR
        self._configs: Dict[int, Dict[str, Any]] = {}
        self._metadata: Dict[int, ConfigMetadata] = {}
        self._changes: List[ConfigChange] = []

    def load_config(self, tax_year: int) -> Dict[str, Any]:
        """
        Load parameters for a specific tax year.

        Args:
            tax_year: The tax year to load (e.g., 2025)

        Returns:
            Dictionary of rule parameters
        """
        if tax_year in self._configs:
            return self._configs[tax_year]

        config = self._load_from_file(tax_year)
        config = self._apply_env_overrides(config, tax_year)
        self._validate_config(config, tax_year)

        self._configs[tax_year] = config
        return config

    def _load_from_file(self, tax_year: int) -> Dict[str, Any]:
        config: Dict[str, Any] = {}

        year_file = self.config_dir / f"municipal_{tax_year}.yaml"
        if not year_file.exists():
            logger.warning(f"No rule parameter file for tax year {tax_year}, using defaults")
            return config

        logger.info(f"Loading rule parameters from {year_file}")
        with open(year_file, "r") as f:
            year_config = yaml.safe_load(f)
        if year_config:
            if "_metadata" in year_config:
                self._metadata[tax_year] = ConfigMetadata(**year_config.pop("_metadata"))
            config.update(year_config)
        return config

    def _apply_env_overrides(self, config: Dict[str, Any], tax_year: int) -> Dict[str, Any]:
        # Environment variables like MUNITAX_2025_VARIANCE_THRESHOLD=0.25
        prefix = f"{ENV_PREFIX}{tax_year}_"

        for key, value in os.environ.items():
            if not key.startswith(prefix):
                continue
            param_name = key[len(prefix):].lower()
            try:
                Decimal(value)
            except InvalidOperation:
                logger.warning(f"Could not parse env override: {key}={value}")
                continue
            config[param_name] = value
            logger.info(f"Applied env override: {param_name}={value}")

        return config

    def _validate_config(self, config: Dict[str, Any], tax_year: int) -> None:
        missing = [p for p in self.REQUIRED_PARAMETERS if p not in config]
        if missing:
            logger.warning(f"Missing rule parameters for {tax_year}, defaults apply: {missing}")

    def get_rule_parameters(self, tax_year: int) -> RuleParameters:
        """Build the immutable snapshot calculators consume."""
        return RuleParameters.from_config(self.load_config(tax_year), tax_year)

    def get_metadata(self, tax_year: int) -> Optional[ConfigMetadata]:
        self.load_config(tax_year)  # Ensure loaded
        return self._metadata.get(tax_year)

    def record_change(
        self,
        parameter: str,
        old_value: Any,
        new_value: Any,
        reason: str,
        changed_by: str = "system",
    ) -> None:
        """Record a parameter change for audit purposes."""
        change = ConfigChange(
            parameter=parameter,
            old_value=old_value,
            new_value=new_value,
            changed_at=datetime.now(timezone.utc).isoformat(),
            changed_by=changed_by,
            reason=reason,
        )
        self._changes.append(change)
        logger.info(f"Rule parameter change recorded: {parameter} {old_value} -> {new_value}")

    def get_change_history(self) -> List[ConfigChange]:
        return self._changes.copy()

    def compare_years(self, year1: int, year2: int) -> Dict[str, Dict[str, Any]]:
        """
        Compare parameters between two tax years.

        Returns:
            Dictionary with 'added', 'removed', 'changed' keys
        """
        config1 = self.load_config(year1)
        config2 = self.load_config(year2)

        keys1 = set(config1.keys())
        keys2 = set(config2.keys())

        return {
            "added": {k: config2[k] for k in keys2 - keys1},
            "removed": {k: config1[k] for k in keys1 - keys2},
            "changed": {
                k: {"old": config1[k], "new": config2[k]}
                for k in keys1 & keys2
                if config1[k] != config2[k]
            },
        }


# Global singleton
_config_loader: Optional[RuleConfigLoader] = None


def get_config_loader() -> RuleConfigLoader:
    """Get the global loader instance."""
    global _config_loader
    if _config_loader is None:
        from .settings import get_settings
        _config_loader = RuleConfigLoader(get_settings().rule_parameters_dir)
    return _config_loader


@lru_cache(maxsize=10)
def get_rule_parameters(tax_year: int) -> RuleParameters:
    """
    Convenience accessor for a year's rule parameter snapshot.

    Example:
        >>> get_rule_parameters(2025).rent_capitalization_multiplier
        Decimal('8')
    """
    return get_config_loader().get_rule_parameters(tax_year)


def clear_config_cache() -> None:
    """Clear cached parameters (useful for testing)."""
    get_rule_parameters.cache_clear()
    global _config_loader
    _config_loader = None
