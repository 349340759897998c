# portfolio_accounting/services/analytics/__init__.py
"""
Return calculations.

Architecture:
    analytics/
    ├── __init__.py              # This file - package exports
    ├── types.py                 # SignedFlow
    └── returns.py               # XIRR solver and XNPV

Usage:
    from portfolio_accounting.services.analytics import calculate_xirr, SignedFlow

    rate = calculate_xirr([
        SignedFlow(date(2023, 1, 1), Decimal("-1000")),
        SignedFlow(date(2024, 1, 1), Decimal("1100")),
    ])
"""

from portfolio_accounting.services.analytics.returns import calculate_xirr, xnpv
from portfolio_accounting.services.analytics.types import SignedFlow

__all__ = [
    "calculate_xirr",
    "xnpv",
    "SignedFlow",
]
