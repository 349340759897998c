# portfolio_accounting/services/valuation/__init__.py
"""
Valuation Service Package.

This package turns a ledger snapshot into portfolio statistics:
- FIFO lot matching (open/closed lots, realized gains)
- Current prices and market values
- Cashflow buckets, upcoming payments
- Personal, consolidated and theoretical XIRR

Usage:
    from portfolio_accounting.services.valuation import PortfolioAggregator

    aggregator = PortfolioAggregator()
    stats = aggregator.aggregate(snapshot, as_of=date(2024, 6, 30))

Architecture:
    valuation/
    ├── __init__.py              # This file - package exports
    ├── types.py                 # Result data classes
    ├── fifo.py                  # FIFOLotMatcher
    ├── flows.py                 # Signed cash flows for XIRR
    ├── calculators.py           # Point-in-time calculators
    └── service.py               # PortfolioAggregator (orchestrator)

Data Flow:
    Transactions → CurrencyNormalizer → PositionCalculator → HoldingPosition
    HoldingPosition + PriceRecords → ValueCalculator → market value
    Cashflows → CashflowCalculator → CashflowBuckets, UpcomingPayment
    Transactions + Cashflows → flows → YieldCalculator → XIRR
    Everything → PortfolioAggregator → AggregateStatistics
"""

from portfolio_accounting.services.valuation.calculators import (
    CashflowCalculator,
    PositionCalculator,
    RealizedPnLCalculator,
    UnrealizedPnLCalculator,
    ValueCalculator,
    YieldCalculator,
    apply_quote_convention,
)
from portfolio_accounting.services.valuation.fifo import FIFOLotMatcher
from portfolio_accounting.services.valuation.flows import (
    cashflow_to_signed_flow,
    to_signed_flow,
)
from portfolio_accounting.services.valuation.service import PortfolioAggregator
from portfolio_accounting.services.valuation.types import (
    AggregateStatistics,
    BreakdownEntry,
    CashflowBuckets,
    ClosedLot,
    FIFOResult,
    HoldingPosition,
    InstrumentFailure,
    InstrumentValuation,
    OpenLot,
    PnLResult,
    PortfolioPnL,
    PriceResult,
    UpcomingPayment,
)

__all__ = [
    # Main service
    "PortfolioAggregator",
    # Lot matching
    "FIFOLotMatcher",
    # Flows
    "to_signed_flow",
    "cashflow_to_signed_flow",
    # Calculators
    "PositionCalculator",
    "ValueCalculator",
    "UnrealizedPnLCalculator",
    "RealizedPnLCalculator",
    "CashflowCalculator",
    "YieldCalculator",
    "apply_quote_convention",
    # Types
    "OpenLot",
    "ClosedLot",
    "FIFOResult",
    "HoldingPosition",
    "PriceResult",
    "PnLResult",
    "InstrumentValuation",
    "CashflowBuckets",
    "BreakdownEntry",
    "UpcomingPayment",
    "PortfolioPnL",
    "InstrumentFailure",
    "AggregateStatistics",
]
