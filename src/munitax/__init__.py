"""Municipal income reconciliation (Schedule X) and apportionment (Schedule Y) engine."""

__version__ = "0.1.0"

# Loading the calculator package first fixes the import order between the
# calculators and the Schedule X validator that the filing engine uses.
from munitax.calculator import FilingBreakdown, FilingEngine, compute_filing_breakdown  # noqa: E402

__all__ = ["FilingBreakdown", "FilingEngine", "compute_filing_breakdown", "__version__"]
