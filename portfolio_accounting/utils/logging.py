# portfolio_accounting/utils/logging.py
"""
Logging configuration for the portfolio accounting engine.

This module provides centralized logging setup with:
- Environment-based log levels
- Calculation ID on every record (see utils/context.py)
- JSON format option for log aggregation

The engine itself never calls setup_logging(); the host application does,
once, at startup. Library modules only use logging.getLogger(__name__).

Usage:
    from portfolio_accounting.utils import setup_logging

    setup_logging()

Log Levels:
    DEBUG   - Per-instrument details, lot matching, rate lookups
    INFO    - Run summaries (instruments processed, totals)
    WARNING - Fallback rates, excluded instruments, non-convergent XIRR
    ERROR   - Unexpected failures

Environment Configuration:
    LOG_LEVEL=DEBUG
    LOG_FORMAT=json
"""

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any

from portfolio_accounting.config import settings
from portfolio_accounting.utils.context import get_calculation_id

# =============================================================================
# CONSTANTS
# =============================================================================

DEFAULT_TEXT_FORMAT = "%(asctime)s | %(levelname)-8s | %(calculation_id)s | %(name)s | %(message)s"
DEFAULT_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

NO_CALCULATION_ID = "-"

# Standard LogRecord attributes, never copied into the JSON "extra" object
_STANDARD_ATTRS = {
    "name", "msg", "args", "created", "filename", "funcName",
    "levelname", "levelno", "lineno", "module", "msecs",
    "pathname", "process", "processName", "relativeCreated",
    "stack_info", "exc_info", "exc_text", "thread", "threadName",
    "calculation_id", "message", "taskName",
}


# =============================================================================
# CALCULATION ID FILTER
# =============================================================================

class CalculationIdFilter(logging.Filter):
    """
    Logging filter that adds the calculation ID to log records.

    Access in format string: %(calculation_id)s
    """

    def filter(self, record: logging.LogRecord) -> bool:
        record.calculation_id = get_calculation_id() or NO_CALCULATION_ID
        return True


# =============================================================================
# JSON FORMATTER
# =============================================================================

class JsonFormatter(logging.Formatter):
    """
    JSON formatter for structured logging.

    Output format:
    {
        "timestamp": "2024-01-15T10:30:00.123Z",
        "level": "WARNING",
        "logger": "portfolio_accounting.services.currency",
        "calculation_id": "3f2a9c1b7d4e",
        "message": "Using fallback rate for ARS on 2024-01-13",
        "extra": { ... }
    }
    """

    def format(self, record: logging.LogRecord) -> str:
        log_entry: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "calculation_id": getattr(record, "calculation_id", NO_CALCULATION_ID),
            "message": record.getMessage(),
        }

        if record.exc_info:
            log_entry["exception"] = self.formatException(record.exc_info)

        extra = {}
        for key, value in record.__dict__.items():
            if key in _STANDARD_ATTRS:
                continue
            try:
                json.dumps(value)
                extra[key] = value
            except (TypeError, ValueError):
                extra[key] = str(value)

        if extra:
            log_entry["extra"] = extra

        return json.dumps(log_entry)


# =============================================================================
# SETUP FUNCTION
# =============================================================================

def setup_logging(
        level: str | None = None,
        log_format: str | None = None,
        stream: Any = None,
) -> None:
    """
    Configure application-wide logging with calculation ID support.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL).
               Defaults to settings.log_level.
        log_format: 'text' or 'json'. Defaults to settings.log_format.
        stream: Output stream (defaults to stdout)
    """
    log_level_str = level or settings.log_level
    log_level = _get_log_level(log_level_str)
    format_type = (log_format or settings.log_format).lower()

    if format_type == "json":
        formatter: logging.Formatter = JsonFormatter()
    else:
        formatter = logging.Formatter(
            fmt=DEFAULT_TEXT_FORMAT,
            datefmt=DEFAULT_DATE_FORMAT,
        )

    handler = logging.StreamHandler(stream or sys.stdout)
    handler.setFormatter(formatter)
    handler.addFilter(CalculationIdFilter())

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)
    root_logger.handlers.clear()
    root_logger.addHandler(handler)

    logging.getLogger(__name__).info(
        f"Logging configured: level={log_level_str}, format={format_type}",
        extra={"config": {"level": log_level_str, "format": format_type}},
    )


# =============================================================================
# HELPER FUNCTIONS
# =============================================================================

def _get_log_level(level_str: str) -> int:
    """
    Convert string log level to logging constant.

    Raises:
        ValueError: If level_str is not a valid log level
    """
    level_str = level_str.upper().strip()

    level_mapping = {
        "DEBUG": logging.DEBUG,
        "INFO": logging.INFO,
        "WARNING": logging.WARNING,
        "WARN": logging.WARNING,
        "ERROR": logging.ERROR,
        "CRITICAL": logging.CRITICAL,
    }

    if level_str not in level_mapping:
        valid_levels = ", ".join(level_mapping.keys())
        raise ValueError(
            f"Invalid log level: '{level_str}'. "
            f"Valid levels are: {valid_levels}"
        )

    return level_mapping[level_str]


def get_logger(name: str) -> logging.Logger:
    """Get a logger with the given name (calculation ID added by the filter)."""
    return logging.getLogger(name)
