"""Pytest configuration and fixtures for test suite."""

import os
import sys
from decimal import Decimal
from pathlib import Path

import pytest

# Set test environment BEFORE any other imports
os.environ.setdefault("MUNITAX_JURISDICTION_STATE", "OH")
os.environ.setdefault("MUNITAX_LOG_LEVEL", "WARNING")

# Add src to path for imports
src_path = Path(__file__).parent.parent / "src"
if str(src_path) not in sys.path:
    sys.path.insert(0, str(src_path))


def _reset_config_caches():
    """Reset cached settings and rule parameters."""
    from munitax.config import clear_config_cache, get_settings
    clear_config_cache()
    get_settings.cache_clear()


@pytest.fixture(autouse=True)
def reset_config():
    """Reset configuration caches before and after each test."""
    _reset_config_caches()
    yield
    _reset_config_caches()


@pytest.fixture
def rules():
    """Default rule parameter snapshot (2025 values)."""
    from munitax.config import RuleParameters
    return RuleParameters()


@pytest.fixture
def settings():
    """Engine settings for the OH jurisdiction."""
    from munitax.config import MunicipalTaxSettings
    return MunicipalTaxSettings(jurisdiction_state="OH", tax_year=2025)


@pytest.fixture
def engine(settings, rules):
    """Filing engine wired to explicit settings and rules."""
    from munitax.calculator import FilingEngine
    return FilingEngine(settings=settings, rules=rules)


# =============================================================================
# SAMPLE INPUTS
# =============================================================================

@pytest.fixture
def sample_reconciliation():
    """Federal income $500,000 with depreciation, meals and state tax add-backs."""
    from munitax.models import AddBacks, ReconciliationInput
    return ReconciliationInput(
        federal_taxable_income=Decimal("500000"),
        add_backs=AddBacks(
            depreciation_adjustment=Decimal("50000"),
            meals_and_entertainment=Decimal("15000"),
            income_and_state_taxes=Decimal("10000"),
        ),
    )


@pytest.fixture
def sample_factors():
    """Property 20%, payroll 40%, sales 60% before sourcing."""
    from munitax.models import ApportionmentFactors, PayrollFactor, PropertyFactor, SalesFactor
    return ApportionmentFactors(
        property=PropertyFactor(local_value=Decimal("200000"), everywhere_value=Decimal("1000000")),
        payroll=PayrollFactor(local_payroll=Decimal("400000"), everywhere_payroll=Decimal("1000000")),
        sales=SalesFactor(local_sales=Decimal("600000"), everywhere_sales=Decimal("1000000")),
    )


@pytest.fixture
def oh_nexus():
    """Nexus in OH and NY only."""
    from munitax.models import NexusStatus
    return NexusStatus.from_states("OH", "NY")
