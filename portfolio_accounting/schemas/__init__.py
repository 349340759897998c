# portfolio_accounting/schemas/__init__.py
"""
Boundary schemas: raw ledger rows in, validated domain records out.
"""

from portfolio_accounting.schemas.ledger import (
    CashflowRecord,
    ExchangeRateRecord,
    InstrumentRecord,
    LedgerRecord,
    PriceObservation,
    TransactionRecord,
)

__all__ = [
    "LedgerRecord",
    "InstrumentRecord",
    "TransactionRecord",
    "CashflowRecord",
    "ExchangeRateRecord",
    "PriceObservation",
]
