from .decimal_math import money, percentage, ratio, percent_of, apply_percentage
from .schedule_x import (
    ScheduleXCalculator,
    ReconciliationResult,
    VarianceResult,
    CharitableContributionResult,
    AutoCalculationResult,
)
from .apportionment import ApportionmentCalculator, FormulaBreakdown, FormulaComparison
from .payroll import allocate_remote_employee_payroll, prorate_partial_year, payroll_shares
from .sourcing import (
    SourcingResolver,
    SourcedTransaction,
    SalesSourcingResult,
    SourcingComparison,
    sales_denominator,
    compare_sourcing_methods,
    pro_rata_percentage,
)
# Imported last: the filing engine pulls in the Schedule X validator,
# which itself depends on the modules above.
from .filing_engine import FilingEngine, FilingBreakdown, compute_filing_breakdown

__all__ = [
    "money",
    "percentage",
    "ratio",
    "percent_of",
    "apply_percentage",
    "ScheduleXCalculator",
    "ReconciliationResult",
    "VarianceResult",
    "CharitableContributionResult",
    "AutoCalculationResult",
    "ApportionmentCalculator",
    "FormulaBreakdown",
    "FormulaComparison",
    "allocate_remote_employee_payroll",
    "prorate_partial_year",
    "payroll_shares",
    "SourcingResolver",
    "SourcedTransaction",
    "SalesSourcingResult",
    "SourcingComparison",
    "sales_denominator",
    "compare_sourcing_methods",
    "pro_rata_percentage",
    "FilingEngine",
    "FilingBreakdown",
    "compute_filing_breakdown",
]
