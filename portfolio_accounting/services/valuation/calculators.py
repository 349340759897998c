# portfolio_accounting/services/valuation/calculators.py
"""
Point-in-time valuation calculators.

Each calculator follows the Single Responsibility Principle:
- PositionCalculator: Normalizes transactions and runs FIFO lot matching
- ValueCalculator: Resolves the current unit price (freshness, FX, quoting)
- UnrealizedPnLCalculator: Calculates unrealized P&L
- RealizedPnLCalculator: Calculates realized P&L from closed lots
- CashflowCalculator: Splits cashflows into collected/pending buckets
- YieldCalculator: Personal XIRR and theoretical yield

Design Principles:
- Each calculator does ONE thing well
- No I/O: everything comes from the snapshot and the normalizer
- Receives all dependencies explicitly
- Returns structured result objects
- Uses Decimal for ALL financial calculations

Usage:
    normalizer = CurrencyNormalizer.from_points("USD", snapshot.rates)
    position = PositionCalculator(normalizer).calculate(instrument, transactions)
    price = ValueCalculator(normalizer).resolve_price(instrument, prices, as_of)
"""

from __future__ import annotations

import dataclasses
import logging
from datetime import date, timedelta
from decimal import Decimal
from typing import Callable, Iterable, Sequence

from portfolio_accounting.config import QuoteConvention
from portfolio_accounting.models import (
    Cashflow,
    CashflowStatus,
    CashflowType,
    Instrument,
    PriceRecord,
    Transaction,
)
from portfolio_accounting.services.analytics import SignedFlow, calculate_xirr
from portfolio_accounting.services.constants import (
    IRR_MAX_ITERATIONS,
    IRR_TOLERANCE,
    PAR_QUOTE_DIVISOR,
    PAR_QUOTE_THRESHOLD,
    PRICE_FRESHNESS_DAYS,
    PROJECTED_PAST_IS_COLLECTED,
    ZERO,
)
from portfolio_accounting.services.currency import CurrencyNormalizer, FXRateResult
from portfolio_accounting.services.valuation.fifo import FIFOLotMatcher, order_transactions
from portfolio_accounting.services.valuation.flows import theoretical_flows
from portfolio_accounting.services.valuation.types import (
    CashflowBuckets,
    ClosedLot,
    HoldingPosition,
    PnLResult,
    PriceResult,
    UpcomingPayment,
)

logger = logging.getLogger(__name__)


def _fx_warning(label: str, fx: FXRateResult) -> str | None:
    """Describe a non-exact rate, None for exact ones."""
    if fx.is_exact_match:
        return None
    if fx.actual_date is None:
        return (
            f"{label}: {fx.currency}/{fx.reference_currency} used configured "
            f"default rate {fx.rate}"
        )
    return (
        f"{label}: {fx.currency}/{fx.reference_currency} rate from "
        f"{fx.actual_date} used for {fx.date} ({fx.source.value})"
    )


# =============================================================================
# POSITION CALCULATOR
# =============================================================================

class PositionCalculator:
    """
    Builds a HoldingPosition from one instrument's transactions.

    Each transaction's price and commission are converted at the rate of
    the transaction's own date, then FIFO matching runs on the converted
    records. Gains on closed lots therefore include the FX effect between
    buy and sell dates.
    """

    def __init__(
            self,
            normalizer: CurrencyNormalizer,
            matcher: FIFOLotMatcher | None = None,
    ) -> None:
        self._normalizer = normalizer
        self._matcher = matcher or FIFOLotMatcher()

    def calculate(
            self,
            instrument: Instrument,
            transactions: Sequence[Transaction],
    ) -> HoldingPosition:
        """
        Normalize and match one instrument's transactions.

        Raises:
            FXRateNotFoundError: A transaction currency has no usable rate
            InvalidExchangeRateError: A resolved rate is not positive
            InventoryInconsistencyError: A SELL exceeds the open quantity
        """
        warnings: list[str] = []
        normalized: list[Transaction] = []

        for txn in order_transactions(transactions):
            fx = self._normalizer.get_rate(txn.currency, txn.date)
            warning = _fx_warning(f"{instrument.ticker} transaction {txn.id}", fx)
            if warning:
                warnings.append(warning)

            normalized.append(
                dataclasses.replace(
                    txn,
                    price=fx.convert(txn.price),
                    commission=fx.convert(txn.commission),
                    currency=self._normalizer.reference_currency,
                )
            )

        lots = self._matcher.match(normalized, instrument_id=instrument.id)

        return HoldingPosition(
            instrument=instrument,
            transactions=normalized,
            lots=lots,
            warnings=warnings,
        )


# =============================================================================
# VALUE CALCULATOR
# =============================================================================

def apply_quote_convention(price: Decimal, convention: QuoteConvention) -> Decimal:
    """
    Turn a quoted price into a price per unit held.

    PER_HUNDRED divides by 100. PER_HUNDRED_ABOVE_PAR only divides prices
    above PAR_QUOTE_THRESHOLD, for feeds that quote some bonds per unit and
    others per 100 nominal.
    """
    if convention == QuoteConvention.PER_HUNDRED:
        return price / PAR_QUOTE_DIVISOR
    if convention == QuoteConvention.PER_HUNDRED_ABOVE_PAR and price > PAR_QUOTE_THRESHOLD:
        return price / PAR_QUOTE_DIVISOR
    return price


class ValueCalculator:
    """
    Resolves the current unit price of an instrument.

    Price selection:
        1. Most recent PriceRecord dated within freshness_days before as_of
        2. Instrument.last_price (dated last_price_date, or as_of if unknown)
        3. Unavailable (market value unknown)

    The quoting convention of the instrument type is applied to the quote
    as published, then the result is converted at the rate of the price's
    own date.
    """

    def __init__(
            self,
            normalizer: CurrencyNormalizer,
            quote_convention_for: Callable[[str], QuoteConvention] | None = None,
            freshness_days: int = PRICE_FRESHNESS_DAYS,
    ) -> None:
        """
        Initialize with normalizer and pricing policy.

        Args:
            normalizer: Converts prices into the reference currency
            quote_convention_for: Maps an instrument type to its convention
                                  (PER_UNIT for everything if omitted)
            freshness_days: Max age of a usable PriceRecord
        """
        self._normalizer = normalizer
        self._convention_for = quote_convention_for or (lambda _: QuoteConvention.PER_UNIT)
        self._freshness_days = freshness_days

    def select_price_record(
            self,
            records: Iterable[PriceRecord],
            as_of: date,
    ) -> PriceRecord | None:
        """Most recent record within the freshness window (None if none)."""
        oldest = as_of - timedelta(days=self._freshness_days)
        best: PriceRecord | None = None
        for record in records:
            if not (oldest <= record.date <= as_of):
                continue
            if best is None or record.date >= best.date:
                best = record
        return best

    def resolve_price(
            self,
            instrument: Instrument,
            records: Iterable[PriceRecord],
            as_of: date,
    ) -> PriceResult:
        """
        Current unit price in the reference currency.

        Raises:
            FXRateNotFoundError: The price currency has no usable rate
            InvalidExchangeRateError: The resolved rate is not positive
        """
        record = self.select_price_record(records, as_of)

        if record is not None:
            native_price = record.price
            native_currency = record.currency
            price_date = record.date
            source = "price_record"
        elif instrument.last_price is not None:
            native_price = instrument.last_price
            native_currency = instrument.currency
            price_date = instrument.last_price_date or as_of
            source = "last_price"
        else:
            return PriceResult(
                price=None,
                native_price=None,
                native_currency=None,
                price_date=None,
                source="unavailable",
                warnings=(f"No price data available for {instrument.ticker}",),
            )

        warnings: list[str] = []
        fx = self._normalizer.get_rate(native_currency, min(price_date, as_of))
        warning = _fx_warning(f"{instrument.ticker} price", fx)
        if warning:
            warnings.append(warning)

        price = fx.convert(
            apply_quote_convention(native_price, self._convention_for(instrument.type))
        )

        return PriceResult(
            price=price,
            native_price=native_price,
            native_currency=native_currency,
            price_date=price_date,
            source=source,
            warnings=tuple(warnings),
        )

    @staticmethod
    def market_value(quantity: Decimal, price: PriceResult) -> Decimal | None:
        """quantity × price, None if the price is unknown."""
        if price.price is None:
            return None
        return quantity * price.price


# =============================================================================
# UNREALIZED P&L CALCULATOR
# =============================================================================

class UnrealizedPnLCalculator:
    """
    Calculates unrealized P&L (paper gains/losses) on open lots.

    Formula:
        unrealized = market_value - cost_basis
        unrealized_return = unrealized / cost_basis

    Note:
        Returns None for amount/ratio if market value is unknown.
    """

    def calculate(
            self,
            cost_basis: Decimal,
            market_value: Decimal | None,
    ) -> tuple[Decimal | None, Decimal | None]:
        """
        Calculate unrealized P&L.

        Returns:
            Tuple of (amount, ratio) - both None if value unknown
        """
        if market_value is None:
            return None, None

        unrealized = market_value - cost_basis

        if cost_basis == ZERO:
            return unrealized, None

        return unrealized, unrealized / cost_basis


# =============================================================================
# REALIZED P&L CALCULATOR
# =============================================================================

class RealizedPnLCalculator:
    """
    Calculates realized P&L from FIFO closed lots.

    Formula:
        realized = Σ closed_lot.realized_gain
        realized_return = realized / Σ closed_lot.cost_basis

    Note:
        - Always returns a concrete Decimal for amount (0 if no sales)
        - Returns None for the ratio if nothing was sold
    """

    def calculate(
            self,
            closed_lots: Sequence[ClosedLot],
    ) -> tuple[Decimal, Decimal | None]:
        if not closed_lots:
            return ZERO, None

        realized = sum((lot.realized_gain for lot in closed_lots), ZERO)
        cost = sum((lot.cost_basis for lot in closed_lots), ZERO)

        if cost == ZERO:
            return realized, None

        return realized, realized / cost


def calculate_pnl(
        position: HoldingPosition,
        market_value: Decimal | None,
) -> PnLResult:
    """Unrealized and realized P&L for one position."""
    unrealized, unrealized_return = UnrealizedPnLCalculator().calculate(
        position.cost_basis, market_value if position.has_position else ZERO
    )
    realized, realized_return = RealizedPnLCalculator().calculate(position.lots.closed_lots)
    return PnLResult(
        unrealized_amount=unrealized,
        unrealized_return=unrealized_return,
        realized_amount=realized,
        realized_return=realized_return,
    )


# =============================================================================
# CASHFLOW CALCULATOR
# =============================================================================

class CashflowCalculator:
    """
    Classifies cashflows into collected/pending capital and interest.

    Collected:
        - PAID cashflows, whatever their date
        - PROJECTED cashflows dated on or before as_of, when
          projected_past_is_collected is set (issuers report payments late)

    Pending:
        - Every other PROJECTED cashflow

    AMORTIZATION is capital, INTEREST is interest.
    """

    def __init__(
            self,
            normalizer: CurrencyNormalizer,
            projected_past_is_collected: bool = PROJECTED_PAST_IS_COLLECTED,
    ) -> None:
        self._normalizer = normalizer
        self._projected_past_is_collected = projected_past_is_collected

    def is_collected(self, cashflow: Cashflow, as_of: date) -> bool:
        if cashflow.status == CashflowStatus.PAID:
            return True
        return self._projected_past_is_collected and cashflow.date <= as_of

    def calculate(self, cashflows: Iterable[Cashflow], as_of: date) -> CashflowBuckets:
        """
        Sum cashflows into buckets (reference currency).

        Raises:
            FXRateNotFoundError: A cashflow currency has no usable rate
        """
        buckets = CashflowBuckets()

        for cf in cashflows:
            fx = self._normalizer.rate_for_timeline(cf.currency, cf.date, as_of)
            amount = fx.convert(cf.amount)
            collected = self.is_collected(cf, as_of)

            if cf.type == CashflowType.AMORTIZATION:
                if collected:
                    buckets.capital_collected += amount
                else:
                    buckets.capital_pending += amount
            else:
                if collected:
                    buckets.interest_collected += amount
                else:
                    buckets.interest_pending += amount

        return buckets

    def upcoming(
            self,
            instrument: Instrument,
            cashflows: Iterable[Cashflow],
            as_of: date,
    ) -> list[UpcomingPayment]:
        """PROJECTED cashflows dated after as_of, ascending by date."""
        payments = [
            UpcomingPayment(
                cashflow_id=cf.id,
                date=cf.date,
                amount=cf.amount,
                currency=cf.currency,
                normalized_amount=self._normalizer.normalize_at_latest(cf.amount, cf.currency),
                type=cf.type,
                instrument_id=instrument.id,
                ticker=instrument.ticker,
                name=instrument.name,
            )
            for cf in cashflows
            if cf.status == CashflowStatus.PROJECTED and cf.date > as_of
        ]
        payments.sort(key=lambda p: p.date)
        return payments


# =============================================================================
# YIELD CALCULATOR
# =============================================================================

class YieldCalculator:
    """
    XIRR-based yields.

    - personal_xirr: the investor's actual flows (buys, sells, cashflows)
    - theoretical_yield: buying the position at market value on as_of and
      receiving every projected cashflow after as_of
    """

    def __init__(
            self,
            normalizer: CurrencyNormalizer,
            max_iterations: int = IRR_MAX_ITERATIONS,
            tolerance: float = IRR_TOLERANCE,
    ) -> None:
        self._normalizer = normalizer
        self._max_iterations = max_iterations
        self._tolerance = tolerance

    def xirr(self, flows: Sequence[SignedFlow]) -> Decimal | None:
        return calculate_xirr(
            flows,
            max_iterations=self._max_iterations,
            tolerance=self._tolerance,
        )

    def theoretical_yield(
            self,
            market_value: Decimal | None,
            cashflows: Iterable[Cashflow],
            as_of: date,
    ) -> Decimal | None:
        """None if nothing is held, the price is unknown, or no flows follow."""
        if market_value is None or market_value <= ZERO:
            return None
        flows = theoretical_flows(market_value, cashflows, self._normalizer, as_of)
        return self.xirr(flows)
