# portfolio_accounting/services/__init__.py
"""
Service layer for the accounting engine.

Services:
- Have NO knowledge of storage or transport
- Raise domain-specific exceptions
- Receive their inputs (snapshot, as_of) as parameters
- Are easily testable via dependency injection

Usage:
    from portfolio_accounting.services import SnapshotLoader, PortfolioAggregator

    snapshot = SnapshotLoader().load(repository, user_id="u-1", as_of=as_of)
    stats = PortfolioAggregator().aggregate(snapshot, as_of)

Architecture:
    services/
    ├── __init__.py                  # This file - main exports
    ├── exceptions.py                # Domain exceptions
    ├── constants.py                 # Business constants and limits
    ├── protocols.py                 # LedgerRepository interface
    ├── snapshot.py                  # Raw rows → LedgerSnapshot
    ├── currency.py                  # CurrencyNormalizer
    ├── analytics/                   # Return calculations
    │   ├── types.py                 # SignedFlow
    │   └── returns.py               # XIRR, XNPV
    └── valuation/                   # Portfolio statistics
        ├── service.py               # PortfolioAggregator
        ├── types.py                 # Result data types
        ├── fifo.py                  # FIFO lot matching
        ├── flows.py                 # Signed flows for XIRR
        └── calculators.py           # Point-in-time calculations
"""

from portfolio_accounting.services.analytics import SignedFlow, calculate_xirr, xnpv
from portfolio_accounting.services.currency import (
    CurrencyNormalizer,
    FXRateResult,
    RateSource,
    RateTable,
)
from portfolio_accounting.services.exceptions import (
    FXRateError,
    FXRateNotFoundError,
    InstrumentNotFoundError,
    InvalidExchangeRateError,
    InvalidRecordError,
    InventoryError,
    InventoryInconsistencyError,
    NotFoundError,
    ServiceError,
    ValidationError,
)
from portfolio_accounting.services.protocols import LedgerRepository
from portfolio_accounting.services.snapshot import SnapshotLoader
from portfolio_accounting.services.valuation import (
    AggregateStatistics,
    FIFOLotMatcher,
    PortfolioAggregator,
    to_signed_flow,
)

__all__ = [
    # ==========================================================================
    # Services
    # ==========================================================================
    "PortfolioAggregator",
    "AggregateStatistics",
    "SnapshotLoader",
    "LedgerRepository",
    # Currency
    "CurrencyNormalizer",
    "FXRateResult",
    "RateSource",
    "RateTable",
    # Lots and returns
    "FIFOLotMatcher",
    "to_signed_flow",
    "SignedFlow",
    "calculate_xirr",
    "xnpv",

    # ==========================================================================
    # Exceptions
    # ==========================================================================
    "ServiceError",
    "ValidationError",
    "InvalidRecordError",
    "NotFoundError",
    "InstrumentNotFoundError",
    "FXRateError",
    "FXRateNotFoundError",
    "InvalidExchangeRateError",
    "InventoryError",
    "InventoryInconsistencyError",
]
