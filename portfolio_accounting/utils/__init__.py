# portfolio_accounting/utils/__init__.py
"""
Utility modules for the portfolio accounting engine.

This package contains cross-cutting utilities:
- logging: Logging configuration with calculation ID support
- context: Calculation context (calculation ID per aggregation run)
- date_utils: Date helpers (date/datetime reduction, day counts)

Usage:
    from portfolio_accounting.utils import setup_logging, get_logger
    from portfolio_accounting.utils import calculation_scope, get_calculation_id
    from portfolio_accounting.utils.date_utils import to_date
"""

from portfolio_accounting.utils.context import (
    calculation_scope,
    clear_calculation_id,
    get_calculation_context,
    get_calculation_id,
    set_calculation_id,
)
from portfolio_accounting.utils.logging import setup_logging, get_logger

__all__ = [
    # Logging
    "setup_logging",
    "get_logger",
    # Context
    "calculation_scope",
    "get_calculation_id",
    "set_calculation_id",
    "clear_calculation_id",
    "get_calculation_context",
]
