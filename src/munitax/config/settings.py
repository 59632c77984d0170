"""Engine settings using Pydantic Settings.

Values come from MUNITAX_* environment variables (or a .env file).
Per-year rule parameters live in YAML, see rule_config_loader.
"""

import logging
from functools import lru_cache
from pathlib import Path
from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)

VALID_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


class MunicipalTaxSettings(BaseSettings):
    """Settings for the reconciliation and apportionment engine."""

    model_config = SettingsConfigDict(
        env_prefix="MUNITAX_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Filing defaults
    jurisdiction_state: str = Field(default="OH", description="State whose numerator is computed")
    tax_year: int = Field(default=2025, description="Default tax year for rule parameters")

    # Rule parameters
    rule_parameters_dir: Optional[Path] = Field(
        default=None,
        description="Directory with municipal_<year>.yaml files (defaults to the packaged set)"
    )

    # Logging
    log_level: str = Field(default="INFO", description="Root log level")
    log_json: bool = Field(default=False, description="Emit JSON formatted logs")
    log_file: Optional[Path] = Field(default=None, description="Optional JSON log file")

    @field_validator("jurisdiction_state")
    @classmethod
    def _upper_state(cls, v: str) -> str:
        v = v.strip().upper()
        if len(v) != 2 or not v.isalpha():
            raise ValueError(f"jurisdiction_state must be a two-letter state code, got {v!r}")
        return v

    @field_validator("log_level")
    @classmethod
    def _known_level(cls, v: str) -> str:
        v = v.upper()
        if v not in VALID_LOG_LEVELS:
            raise ValueError(f"log_level must be one of {', '.join(VALID_LOG_LEVELS)}")
        return v


@lru_cache
def get_settings() -> MunicipalTaxSettings:
    """
    Get cached engine settings instance.

    Returns:
        MunicipalTaxSettings: Cached settings loaded from environment.
    """
    return MunicipalTaxSettings()
