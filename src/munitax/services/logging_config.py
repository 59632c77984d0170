"""
Logging Configuration for the Municipal Tax Engine.

Provides structured logging with:
- JSON formatting for production
- Human-readable formatting for development
- Calculation-specific logging for filing audit trails

Logging is observational only: nothing logged here feeds back into a
result, so two runs with identical inputs still produce identical
breakdowns regardless of log level.
"""

import logging
import json
import sys
import time
from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional, Dict, Any, List
from pathlib import Path
from contextvars import ContextVar

# Context variable for correlating every log line of one filing computation
filing_id_var: ContextVar[Optional[str]] = ContextVar('filing_id', default=None)


class JsonFormatter(logging.Formatter):
    """
    JSON log formatter for structured logging.

    Outputs logs as JSON objects for easy parsing by log aggregators.
    """

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

        filing_id = filing_id_var.get()
        if filing_id:
            log_data["filing_id"] = filing_id

        if hasattr(record, 'extra_data'):
            log_data.update(record.extra_data)

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_data, default=str)


class ReadableFormatter(logging.Formatter):
    """
    Human-readable log formatter for development.
    """

    COLORS = {
        'DEBUG': '\033[36m',     # Cyan
        'INFO': '\033[32m',      # Green
        'WARNING': '\033[33m',   # Yellow
        'ERROR': '\033[31m',     # Red
        'CRITICAL': '\033[35m',  # Magenta
        'RESET': '\033[0m',
    }

    def format(self, record: logging.LogRecord) -> str:
        color = self.COLORS.get(record.levelname, self.COLORS['RESET'])
        reset = self.COLORS['RESET']

        timestamp = datetime.now().strftime('%H:%M:%S.%f')[:-3]
        level = f"{color}{record.levelname:8s}{reset}"

        message = f"{timestamp} {level} [{record.name}] {record.getMessage()}"

        if hasattr(record, 'extra_data') and record.extra_data:
            extras = ' | '.join(f"{k}={v}" for k, v in record.extra_data.items())
            message += f" | {extras}"

        return message


class ContextLogger(logging.LoggerAdapter):
    """
    Logger adapter that merges its bound context into every record's extra_data.
    """

    def process(self, msg: str, kwargs: Dict) -> tuple:
        extra = kwargs.get('extra', {})

        filing_id = filing_id_var.get()
        if filing_id:
            extra['filing_id'] = filing_id

        if 'extra_data' not in extra:
            extra['extra_data'] = {}
        extra['extra_data'].update(
            {k: v for k, v in self.extra.items() if v is not None}
        )

        kwargs['extra'] = extra
        return msg, kwargs


def configure_logging(
    level: str = "INFO",
    json_output: bool = False,
    log_file: Optional[Path] = None
) -> None:
    """
    Configure application logging.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        json_output: If True, output JSON formatted logs
        log_file: Optional file path for log output
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(level)

    root_logger.handlers.clear()

    formatter = JsonFormatter() if json_output else ReadableFormatter()

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    if log_file:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(JsonFormatter())  # Always JSON for files
        root_logger.addHandler(file_handler)


def configure_from_settings(settings=None) -> None:
    """Configure logging from MUNITAX_LOG_* settings."""
    if settings is None:
        from munitax.config.settings import get_settings
        settings = get_settings()
    configure_logging(
        level=settings.log_level,
        json_output=settings.log_json,
        log_file=settings.log_file,
    )


def get_logger(name: str, **extra) -> ContextLogger:
    """
    Get a context-aware logger.

    Args:
        name: Logger name (typically __name__)
        **extra: Additional context to include in all logs

    Returns:
        ContextLogger instance
    """
    return ContextLogger(logging.getLogger(name), extra)


class CalculationLogger:
    """
    Audit logger for one filing computation.

    Records:
    - Filing inputs (jurisdiction, elections)
    - Step-by-step computation with timings
    - Reconciliation totals and factor percentages
    - Final result, warnings and validation errors
    """

    def __init__(self, filing_id: Optional[str] = None):
        self.logger = get_logger("munitax.calculation", filing_id=filing_id)
        self.filing_id = filing_id
        self._start_time: Optional[float] = None
        self._step_times: Dict[str, int] = {}

    def start_calculation(self, jurisdiction: str, tax_year: int, elections: Dict[str, str]) -> None:
        self._start_time = time.time()
        self.logger.info(
            "Starting filing computation",
            extra={'extra_data': {
                'jurisdiction': jurisdiction,
                'tax_year': tax_year,
                **elections,
            }}
        )

    def log_step(self, step_name: str, **data) -> float:
        """
        Log a calculation step.

        Returns:
            Start time to pass to complete_step
        """
        step_start = time.time()
        self.logger.debug(
            f"Calculation step: {step_name}",
            extra={'extra_data': {'step': step_name, **data}}
        )
        return step_start

    def complete_step(self, step_name: str, step_start: float, **result) -> None:
        duration_ms = int((time.time() - step_start) * 1000)
        self._step_times[step_name] = duration_ms
        self.logger.debug(
            f"Completed step: {step_name}",
            extra={'extra_data': {'step': step_name, 'duration_ms': duration_ms, **result}}
        )

    def log_reconciliation(
        self,
        federal_taxable_income: Decimal,
        total_add_backs: Decimal,
        total_deductions: Decimal,
        adjusted_municipal_income: Decimal
    ) -> None:
        self.logger.info(
            "Reconciliation calculated",
            extra={'extra_data': {
                'federal_taxable_income': federal_taxable_income,
                'total_add_backs': total_add_backs,
                'total_deductions': total_deductions,
                'adjusted_municipal_income': adjusted_municipal_income,
            }}
        )

    def log_factors(
        self,
        property_pct: Optional[Decimal],
        payroll_pct: Optional[Decimal],
        sales_pct: Optional[Decimal]
    ) -> None:
        self.logger.info(
            "Apportionment factors calculated",
            extra={'extra_data': {
                'property_pct': property_pct,
                'payroll_pct': payroll_pct,
                'sales_pct': sales_pct,
            }}
        )

    def log_result(
        self,
        formula: str,
        apportionment_pct: Optional[Decimal],
        jurisdiction_taxable_income: Optional[Decimal],
        warning_count: int,
        error_count: int
    ) -> None:
        duration_ms = int((time.time() - self._start_time) * 1000) if self._start_time else 0

        self.logger.info(
            "Filing computation complete",
            extra={'extra_data': {
                'formula': formula,
                'apportionment_pct': apportionment_pct,
                'jurisdiction_taxable_income': jurisdiction_taxable_income,
                'warnings': warning_count,
                'errors': error_count,
                'duration_ms': duration_ms,
                'step_times': self._step_times,
            }}
        )

    def log_warnings(self, warnings: List[Any]) -> None:
        for w in warnings:
            self.logger.warning(
                w.message,
                extra={'extra_data': {'field': w.field, 'severity': w.severity.value}}
            )

    def log_validation_error(self, field: str, error: str, value: Any = None) -> None:
        self.logger.error(
            f"Validation failed: {field}",
            extra={'extra_data': {
                'field': field,
                'error': error,
                'value': value,
            }}
        )
