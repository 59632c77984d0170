"""
Tests for settings and the YAML rule parameter loader.

Tests verify:
1. Packaged 2025 parameters match the built-in defaults
2. Environment overrides (MUNITAX_<year>_<PARAM>)
3. Settings from MUNITAX_* environment variables
"""

from dataclasses import FrozenInstanceError
from decimal import Decimal

import pytest
from pydantic import ValidationError as PydanticValidationError

from munitax.config import (
    MunicipalTaxSettings,
    RuleConfigLoader,
    RuleParameters,
    get_rule_parameters,
    get_settings,
)


class TestPackagedParameters:
    """Tests for the shipped municipal_2025.yaml."""

    def test_2025_matches_defaults(self):
        """Test loaded 2025 snapshot equals the built-in defaults."""
        assert RuleConfigLoader().get_rule_parameters(2025) == RuleParameters()

    def test_metadata(self):
        """Test metadata block is parsed and not treated as a parameter."""
        loader = RuleConfigLoader()
        metadata = loader.get_metadata(2025)
        assert metadata is not None
        assert metadata.tax_year == 2025
        assert "_metadata" not in loader.load_config(2025)

    def test_values(self):
        """Test key parameter values."""
        params = get_rule_parameters(2025)
        assert params.meals_multiplier == Decimal("2")
        assert params.intangible_expense_rate == Decimal("0.05")
        assert params.rent_capitalization_multiplier == Decimal("8")
        assert params.federal_income_tolerance == Decimal("100.00")

    def test_missing_year_uses_defaults(self, tmp_path):
        """Test a year with no file falls back to defaults."""
        params = RuleConfigLoader(tmp_path).get_rule_parameters(2030)
        assert params.tax_year == 2030
        assert params.variance_threshold == Decimal("0.20")


class TestCustomParameters:
    """Tests for custom parameter directories and overrides."""

    def test_custom_file(self, tmp_path):
        """Test parameters are read from a custom directory."""
        (tmp_path / "municipal_2026.yaml").write_text("variance_threshold: '0.25'\nunknown_key: 1\n")
        params = RuleConfigLoader(tmp_path).get_rule_parameters(2026)
        assert params.variance_threshold == Decimal("0.25")
        assert params.meals_multiplier == Decimal("2")

    def test_non_numeric_parameter(self, tmp_path):
        """Test a non-numeric rate is rejected."""
        (tmp_path / "municipal_2026.yaml").write_text("meals_multiplier: two\n")
        with pytest.raises(ValueError):
            RuleConfigLoader(tmp_path).get_rule_parameters(2026)

    def test_env_override(self, monkeypatch):
        """Test MUNITAX_<year>_<PARAM> overrides the file value."""
        monkeypatch.setenv("MUNITAX_2025_VARIANCE_THRESHOLD", "0.30")
        params = RuleConfigLoader().get_rule_parameters(2025)
        assert params.variance_threshold == Decimal("0.30")

    def test_env_override_ignores_garbage(self, monkeypatch):
        """Test non-numeric overrides are skipped."""
        monkeypatch.setenv("MUNITAX_2025_VARIANCE_THRESHOLD", "lots")
        assert RuleConfigLoader().get_rule_parameters(2025).variance_threshold == Decimal("0.20")

    def test_compare_years(self, tmp_path):
        """Test year-over-year comparison."""
        (tmp_path / "municipal_2025.yaml").write_text("meals_multiplier: 2\nvariance_threshold: '0.20'\n")
        (tmp_path / "municipal_2026.yaml").write_text("meals_multiplier: 2\nvariance_threshold: '0.25'\n")
        diff = RuleConfigLoader(tmp_path).compare_years(2025, 2026)
        assert diff["changed"] == {"variance_threshold": {"old": "0.20", "new": "0.25"}}
        assert diff["added"] == {}

    def test_change_history(self):
        """Test changes are recorded for audit."""
        loader = RuleConfigLoader()
        loader.record_change("variance_threshold", "0.20", "0.25", reason="Ordinance update")
        history = loader.get_change_history()
        assert len(history) == 1
        assert history[0].changed_by == "system"

    def test_snapshot_is_frozen(self):
        """Test calculators cannot mutate the snapshot."""
        params = RuleParameters()
        with pytest.raises(FrozenInstanceError):
            params.meals_multiplier = Decimal("3")


class TestSettings:
    """Tests for MUNITAX_* settings."""

    def test_defaults(self, monkeypatch):
        """Test default jurisdiction and year."""
        monkeypatch.delenv("MUNITAX_JURISDICTION_STATE", raising=False)
        settings = MunicipalTaxSettings()
        assert settings.jurisdiction_state == "OH"
        assert settings.tax_year == 2025

    def test_env(self, monkeypatch):
        """Test environment variables populate settings."""
        monkeypatch.setenv("MUNITAX_JURISDICTION_STATE", "pa")
        monkeypatch.setenv("MUNITAX_LOG_LEVEL", "debug")
        settings = get_settings()
        assert settings.jurisdiction_state == "PA"
        assert settings.log_level == "DEBUG"

    def test_invalid_state(self):
        """Test jurisdiction must be a two-letter code."""
        with pytest.raises(PydanticValidationError):
            MunicipalTaxSettings(jurisdiction_state="Ohio")

    def test_invalid_log_level(self):
        """Test unknown log level is rejected."""
        with pytest.raises(PydanticValidationError):
            MunicipalTaxSettings(log_level="LOUD")

    def test_cached(self):
        """Test get_settings returns the same instance."""
        assert get_settings() is get_settings()
