# tests/conftest.py
"""
Pytest configuration and fixtures.

This module provides shared fixtures for all tests:
- Settings fixture (no .env, deterministic policy)
- Factories for domain records (transactions, cashflows, instruments)
- A sample ARS rate history
- An in-memory LedgerRepository
"""

from datetime import date
from decimal import Decimal
from typing import Any, Callable, Iterable

import pytest

from portfolio_accounting.config import QuoteConvention, Settings
from portfolio_accounting.models import (
    Cashflow,
    CashflowStatus,
    CashflowType,
    Instrument,
    RatePoint,
    Transaction,
    TransactionType,
)


# =============================================================================
# SETTINGS
# =============================================================================

@pytest.fixture
def test_settings() -> Settings:
    """Engine settings independent of the environment."""
    return Settings(
        _env_file=None,
        environment="test",
        reference_currency="USD",
        fx_fallback_days=10,
        default_fx_rates={"ARS": Decimal("1200")},
        price_freshness_days=7,
        quote_conventions={
            "ON": QuoteConvention.PER_HUNDRED,
            "CORPORATE_BOND": QuoteConvention.PER_HUNDRED,
        },
        upcoming_payments_limit=200,
        projected_past_is_collected=True,
    )


# =============================================================================
# RECORD FACTORIES
# =============================================================================

@pytest.fixture
def make_transaction() -> Callable[..., Transaction]:
    """Factory for transactions with sensible defaults."""
    counter = {"n": 0}

    def _make(
            type: TransactionType = TransactionType.BUY,
            quantity: str = "100",
            price: str = "10",
            commission: str = "0",
            on: date = date(2024, 1, 1),
            currency: str = "USD",
            instrument_id: str = "inst-1",
            id: str | None = None,
            **extra: Any,
    ) -> Transaction:
        counter["n"] += 1
        return Transaction(
            id=id or f"txn-{counter['n']}",
            instrument_id=instrument_id,
            date=on,
            type=type,
            quantity=Decimal(quantity),
            price=Decimal(price),
            commission=Decimal(commission),
            currency=currency,
            **extra,
        )

    return _make


@pytest.fixture
def make_cashflow() -> Callable[..., Cashflow]:
    """Factory for cashflows with sensible defaults."""
    counter = {"n": 0}

    def _make(
            amount: str = "10",
            on: date = date(2024, 6, 1),
            type: CashflowType = CashflowType.INTEREST,
            status: CashflowStatus = CashflowStatus.PAID,
            currency: str = "USD",
            instrument_id: str = "inst-1",
            id: str | None = None,
    ) -> Cashflow:
        counter["n"] += 1
        return Cashflow(
            id=id or f"cf-{counter['n']}",
            instrument_id=instrument_id,
            date=on,
            amount=Decimal(amount),
            currency=currency,
            type=type,
            status=status,
        )

    return _make


@pytest.fixture
def stock_instrument() -> Instrument:
    """A USD stock with a stored last price."""
    return Instrument(
        id="inst-1",
        ticker="AAPL",
        name="Apple Inc.",
        type="STOCK",
        market="NASDAQ",
        currency="USD",
        last_price=Decimal("12"),
        last_price_date=date(2024, 6, 28),
    )


@pytest.fixture
def bond_instrument() -> Instrument:
    """A USD corporate bond (ON) quoted per 100 nominal."""
    return Instrument(
        id="inst-2",
        ticker="YMCXO",
        name="YPF 2026",
        type="ON",
        market="BYMA",
        currency="USD",
        last_price=Decimal("98.50"),
        last_price_date=date(2024, 6, 28),
    )


@pytest.fixture
def ars_rates() -> list[RatePoint]:
    """ARS per USD on business days of early January 2024 (gap on the 8th)."""
    return [
        RatePoint(date(2024, 1, 2), Decimal("1000")),
        RatePoint(date(2024, 1, 3), Decimal("1010")),
        RatePoint(date(2024, 1, 4), Decimal("1020")),
        RatePoint(date(2024, 1, 5), Decimal("1030")),
        RatePoint(date(2024, 1, 9), Decimal("1050")),
    ]


# =============================================================================
# IN-MEMORY REPOSITORY
# =============================================================================

class InMemoryLedgerRepository:
    """
    LedgerRepository backed by lists of raw rows.

    Records every price query so tests can check the freshness bound.
    """

    def __init__(
            self,
            instruments: Iterable[dict] = (),
            transactions: Iterable[dict] = (),
            cashflows: Iterable[dict] = (),
            rates: Iterable[dict] = (),
            prices: Iterable[dict] = (),
    ):
        self.instruments = list(instruments)
        self.transactions = list(transactions)
        self.cashflows = list(cashflows)
        self.rates = list(rates)
        self.prices = list(prices)
        self.price_queries: list[tuple[list[str], date]] = []

    def get_instruments(self, user_id: str) -> list[dict]:
        return self.instruments

    def get_transactions(self, user_id: str) -> list[dict]:
        return self.transactions

    def get_cashflows(self, user_id: str) -> list[dict]:
        return self.cashflows

    def get_exchange_rates(self, reference_currency: str) -> list[dict]:
        return self.rates

    def get_recent_prices(self, instrument_ids: Iterable[str], since: date) -> list[dict]:
        ids = list(instrument_ids)
        self.price_queries.append((ids, since))
        return [
            p for p in self.prices
            if str(p["instrument_id"]) in ids and p["date"] >= since
        ]


@pytest.fixture
def repository_factory() -> Callable[..., InMemoryLedgerRepository]:
    return InMemoryLedgerRepository
