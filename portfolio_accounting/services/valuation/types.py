# portfolio_accounting/services/valuation/types.py
"""
Internal data types for the valuation services.

These dataclasses are the engine's results. They are NOT Pydantic schemas;
input validation lives in portfolio_accounting/schemas/.

Design Principles:
- Immutable where possible (frozen=True for value objects)
- Use Decimal for ALL financial values (never float)
- Amounts are in the reference currency unless a field says "native"
- Ratios are decimals (0.05 = 5%); formatting is the caller's job
- Optional fields use None, not sentinel values
- Warnings accumulate for data quality tracking

Type Hierarchy:
    OpenLot / ClosedLot      - FIFO lot matcher output units
    FIFOResult               - Lots for one instrument
    HoldingPosition          - Normalized transactions + lots for one instrument
    PriceResult              - Current unit price with provenance
    PnLResult                - Unrealized + Realized P&L for one instrument
    InstrumentValuation      - Everything known about one instrument
    CashflowBuckets          - Collected/pending capital and interest
    BreakdownEntry           - One row of the portfolio breakdown
    UpcomingPayment          - One projected future cashflow
    PortfolioPnL             - Realized/unrealized totals
    InstrumentFailure        - Instrument excluded from the aggregate
    AggregateStatistics      - The aggregator's complete output
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import TYPE_CHECKING

from portfolio_accounting.models import CashflowType, RejectedRecord
from portfolio_accounting.services.constants import ZERO

if TYPE_CHECKING:
    from portfolio_accounting.models import Instrument, Transaction


# =============================================================================
# LOTS
# =============================================================================

@dataclass(frozen=True)
class OpenLot:
    """
    Remaining part of one BUY that has not been sold.

    Attributes:
        transaction_id: The BUY this lot comes from
        date: Acquisition date
        quantity: Units still held
        price: Unit buy price
        commission: Share of the BUY commission that belongs to the
                    remaining units
        original_quantity: Units bought by the BUY
    """

    transaction_id: str
    date: date
    quantity: Decimal
    price: Decimal
    commission: Decimal
    original_quantity: Decimal

    @property
    def cost_basis(self) -> Decimal:
        """quantity × price + commission."""
        return self.quantity * self.price + self.commission


@dataclass(frozen=True)
class ClosedLot:
    """
    Units of one BUY matched against one SELL.

    A SELL that spans several BUY lots produces one ClosedLot per lot.

    Formula:
        realized_gain = (quantity × sell_price - sell_commission)
                        - (quantity × buy_price + buy_commission)
    """

    buy_transaction_id: str
    sell_transaction_id: str
    buy_date: date
    sell_date: date
    quantity: Decimal
    buy_price: Decimal
    buy_commission: Decimal
    sell_price: Decimal
    sell_commission: Decimal

    @property
    def cost_basis(self) -> Decimal:
        return self.quantity * self.buy_price + self.buy_commission

    @property
    def proceeds(self) -> Decimal:
        return self.quantity * self.sell_price - self.sell_commission

    @property
    def realized_gain(self) -> Decimal:
        return self.proceeds - self.cost_basis


@dataclass(frozen=True)
class FIFOResult:
    """
    Output of the FIFO lot matcher for one instrument.

    Invariant:
        open_quantity + closed_quantity == sum of BUY quantities
    """

    open_lots: tuple[OpenLot, ...] = ()
    closed_lots: tuple[ClosedLot, ...] = ()

    @property
    def open_quantity(self) -> Decimal:
        return sum((lot.quantity for lot in self.open_lots), ZERO)

    @property
    def closed_quantity(self) -> Decimal:
        return sum((lot.quantity for lot in self.closed_lots), ZERO)

    @property
    def open_cost_basis(self) -> Decimal:
        return sum((lot.cost_basis for lot in self.open_lots), ZERO)

    @property
    def realized_gain(self) -> Decimal:
        return sum((lot.realized_gain for lot in self.closed_lots), ZERO)

    @property
    def realized_cost_basis(self) -> Decimal:
        return sum((lot.cost_basis for lot in self.closed_lots), ZERO)


# =============================================================================
# POSITION
# =============================================================================

@dataclass
class HoldingPosition:
    """
    One instrument after normalization and lot matching.

    Attributes:
        instrument: Instrument metadata
        transactions: Transactions converted to the reference currency,
                      in matching order
        lots: FIFO matcher output
        warnings: FX fallbacks used while normalizing
    """

    instrument: Instrument
    transactions: list[Transaction]
    lots: FIFOResult
    warnings: list[str] = field(default_factory=list)

    @property
    def quantity(self) -> Decimal:
        return self.lots.open_quantity

    @property
    def has_position(self) -> bool:
        """True if there are units currently held."""
        return self.quantity > ZERO

    @property
    def cost_basis(self) -> Decimal:
        return self.lots.open_cost_basis


# =============================================================================
# PRICE
# =============================================================================

@dataclass(frozen=True)
class PriceResult:
    """
    Current unit price of an instrument in the reference currency.

    Attributes:
        price: Unit price after FX and quoting convention (None if unknown)
        native_price: Price as published
        native_currency: Currency of the published price
        price_date: Date of the published price
        source: "price_record" | "last_price" | "unavailable"
        warnings: Why the price is missing or approximate
    """

    price: Decimal | None
    native_price: Decimal | None
    native_currency: str | None
    price_date: date | None
    source: str
    warnings: tuple[str, ...] = ()

    @property
    def is_available(self) -> bool:
        return self.price is not None


# =============================================================================
# PROFIT & LOSS
# =============================================================================

@dataclass(frozen=True)
class PnLResult:
    """
    Profit and Loss for one instrument.

    Attributes:
        unrealized_amount: market value - open cost basis (None if no price)
        unrealized_return: unrealized / open cost basis (None if unknown)
        realized_amount: Sum of closed-lot gains (0 if nothing sold)
        realized_return: realized / closed cost basis (None if nothing sold)
    """

    unrealized_amount: Decimal | None
    unrealized_return: Decimal | None
    realized_amount: Decimal
    realized_return: Decimal | None

    @property
    def total_amount(self) -> Decimal | None:
        if self.unrealized_amount is None:
            return None
        return self.unrealized_amount + self.realized_amount


# =============================================================================
# INSTRUMENT VALUATION
# =============================================================================

@dataclass
class InstrumentValuation:
    """
    Complete, enriched view of one instrument.

    Attributes:
        quantity: Units held (sum of open lots)
        current_price: Unit price in reference currency (None if unknown)
        market_value: quantity × current_price (None if price unknown)
        cost_basis: Cost of the open lots (FIFO, commissions included)
        realized_cost_basis: Cost of the closed lots
        theoretical_yield: XIRR of buying the position at market value
                           now and receiving the projected cashflows
        personal_xirr: XIRR of the investor's actual flows
        has_complete_data: False when price or FX data was missing
    """

    instrument_id: str
    ticker: str
    name: str | None
    type: str
    market: str | None
    currency: str
    quantity: Decimal
    current_price: Decimal | None
    price_date: date | None
    price_source: str
    market_value: Decimal | None
    cost_basis: Decimal
    realized_cost_basis: Decimal
    pnl: PnLResult
    theoretical_yield: Decimal | None
    personal_xirr: Decimal | None
    open_lots: tuple[OpenLot, ...] = ()
    closed_lots: tuple[ClosedLot, ...] = ()
    transaction_count: int = 0
    warnings: list[str] = field(default_factory=list)
    has_complete_data: bool = True

    @property
    def has_position(self) -> bool:
        return self.quantity > ZERO


# =============================================================================
# CASHFLOWS
# =============================================================================

@dataclass
class CashflowBuckets:
    """
    Cashflows split by kind and by collected/pending.

    All amounts in the reference currency: collected ones at the rate of
    their own date, pending ones at the latest known rate.
    """

    capital_collected: Decimal = ZERO
    capital_pending: Decimal = ZERO
    interest_collected: Decimal = ZERO
    interest_pending: Decimal = ZERO

    @property
    def total_collected(self) -> Decimal:
        return self.capital_collected + self.interest_collected

    @property
    def total_pending(self) -> Decimal:
        """Total still receivable (capital + interest)."""
        return self.capital_pending + self.interest_pending

    def add(self, other: CashflowBuckets) -> None:
        self.capital_collected += other.capital_collected
        self.capital_pending += other.capital_pending
        self.interest_collected += other.interest_collected
        self.interest_pending += other.interest_pending


@dataclass(frozen=True)
class UpcomingPayment:
    """
    A PROJECTED cashflow dated after the as-of date.

    Attributes:
        amount: Amount in the cashflow's own currency
        normalized_amount: Amount in the reference currency (latest rate)
    """

    cashflow_id: str
    date: date
    amount: Decimal
    currency: str
    normalized_amount: Decimal
    type: CashflowType
    instrument_id: str
    ticker: str
    name: str | None


# =============================================================================
# PORTFOLIO
# =============================================================================

@dataclass(frozen=True)
class BreakdownEntry:
    """
    One instrument in the portfolio breakdown.

    Attributes:
        value: Market value in reference currency (0 if closed/unpriced)
        xirr: Personal XIRR (None if not computable)
        theoretical_yield: Yield at current market price (None if unknown)
        percentage: value / total breakdown value (decimal)
    """

    instrument_id: str
    ticker: str
    name: str | None
    type: str
    value: Decimal
    xirr: Decimal | None
    theoretical_yield: Decimal | None
    percentage: Decimal


@dataclass(frozen=True)
class PortfolioPnL:
    """
    Realized and unrealized totals.

    Formulas:
        realized_return = realized_amount / realized_cost_basis
        unrealized_return = unrealized_amount / unrealized_cost_basis
        (None when the denominator is 0)

    Unrealized figures only include instruments with units held and a
    known price.
    """

    realized_amount: Decimal
    realized_cost_basis: Decimal
    realized_return: Decimal | None
    unrealized_amount: Decimal
    unrealized_cost_basis: Decimal
    unrealized_return: Decimal | None

    @property
    def total_amount(self) -> Decimal:
        return self.realized_amount + self.unrealized_amount


@dataclass(frozen=True)
class InstrumentFailure:
    """
    An instrument excluded from the aggregate.

    Attributes:
        error_type: Exception class name (e.g. "InventoryInconsistencyError")
        message: Human-readable reason
    """

    instrument_id: str
    ticker: str | None
    error_type: str
    message: str


@dataclass
class AggregateStatistics:
    """
    The aggregator's complete output for one user.

    Attributes:
        capital_invested: Cost basis of currently open positions only
        total_receivable: capital_pending + interest_pending
        roi: (collected + pending - invested) / invested, 0 if nothing invested
        consolidated_xirr: XIRR over every instrument's flows (None if not
                           computable)
        portfolio_breakdown: Sorted by value, descending
        upcoming_payments: Ascending by date, capped at the configured limit
        failed_instruments: Instruments excluded because of FX,
                            inventory or record errors
        rejected_records: Collaborator rows excluded at the boundary

    Note:
        Totals are computed over the instruments that did not fail. Check
        has_complete_data before presenting totals as exact.
    """

    as_of: date
    reference_currency: str
    instruments: list[InstrumentValuation]
    capital_invested: Decimal
    cashflows: CashflowBuckets
    roi: Decimal
    consolidated_xirr: Decimal | None
    portfolio_breakdown: list[BreakdownEntry]
    upcoming_payments: list[UpcomingPayment]
    pnl: PortfolioPnL
    total_current_value: Decimal
    total_transactions: int
    failed_instruments: list[InstrumentFailure] = field(default_factory=list)
    rejected_records: list[RejectedRecord] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    @property
    def capital_collected(self) -> Decimal:
        return self.cashflows.capital_collected

    @property
    def capital_pending(self) -> Decimal:
        return self.cashflows.capital_pending

    @property
    def interest_collected(self) -> Decimal:
        return self.cashflows.interest_collected

    @property
    def interest_pending(self) -> Decimal:
        return self.cashflows.interest_pending

    @property
    def total_receivable(self) -> Decimal:
        return self.cashflows.total_pending

    @property
    def next_payment(self) -> UpcomingPayment | None:
        return self.upcoming_payments[0] if self.upcoming_payments else None

    @property
    def total_instruments(self) -> int:
        """Instruments considered, failed ones included."""
        return len(self.instruments) + len(self.failed_instruments)

    @property
    def excluded_count(self) -> int:
        return len(self.failed_instruments)

    @property
    def has_complete_data(self) -> bool:
        return (
            not self.failed_instruments
            and not self.rejected_records
            and all(v.has_complete_data for v in self.instruments)
        )
