# portfolio_accounting/models.py
"""
Domain records consumed by the accounting engine.

These are the validated, immutable shapes that cross the engine boundary.
Raw collaborator rows are turned into these by the Pydantic schemas in
portfolio_accounting/schemas/ (see SnapshotLoader); nothing inside the
engine accepts untyped dicts.

All money and quantity fields are Decimal. Dates are calendar dates.
"""
import enum
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal


class TransactionType(str, enum.Enum):
    BUY = "BUY"
    SELL = "SELL"


class CashflowType(str, enum.Enum):
    INTEREST = "INTEREST"
    AMORTIZATION = "AMORTIZATION"


class CashflowStatus(str, enum.Enum):
    PAID = "PAID"
    PROJECTED = "PROJECTED"


class InstrumentType(str, enum.Enum):
    """Instrument types known to the ledger. Unknown types are kept as plain strings."""
    STOCK = "STOCK"
    CEDEAR = "CEDEAR"
    ETF = "ETF"
    ON = "ON"  # obligación negociable (corporate bond, quoted per 100)
    CORPORATE_BOND = "CORPORATE_BOND"
    TREASURY = "TREASURY"
    BONO = "BONO"
    CRYPTO = "CRYPTO"
    OTHER = "OTHER"


@dataclass(frozen=True)
class Instrument:
    """
    Instrument metadata.

    last_price / last_price_date / currency are the instrument's stored
    quote, used when no recent PriceRecord exists.
    """

    id: str
    ticker: str
    name: str | None
    type: str
    market: str | None
    currency: str
    last_price: Decimal | None = None
    last_price_date: date | None = None


@dataclass(frozen=True)
class Transaction:
    """One BUY or SELL execution, in its native currency."""

    id: str
    instrument_id: str
    date: date
    type: TransactionType
    quantity: Decimal
    price: Decimal
    commission: Decimal
    currency: str
    created_at: datetime | None = None

    @property
    def gross_amount(self) -> Decimal:
        """quantity × price, before commission."""
        return self.quantity * self.price


@dataclass(frozen=True)
class Cashflow:
    """One scheduled or realized payment (interest or amortization)."""

    id: str
    instrument_id: str
    date: date
    amount: Decimal
    currency: str
    type: CashflowType
    status: CashflowStatus


@dataclass(frozen=True)
class RatePoint:
    """
    One exchange-rate observation.

    rate = native-currency units per one reference-currency unit
    (e.g. 1050 for ARS when the reference is USD).
    """

    date: date
    rate: Decimal


@dataclass(frozen=True)
class PriceRecord:
    """A market price observation for an instrument."""

    instrument_id: str
    date: date
    price: Decimal
    currency: str


@dataclass(frozen=True)
class RejectedRecord:
    """A collaborator row that failed boundary validation."""

    record_kind: str
    record_id: str | None
    reason: str


@dataclass(frozen=True)
class LedgerSnapshot:
    """
    Immutable input of one aggregation run.

    Attributes:
        instruments: Instrument metadata keyed by id
        transactions: All BUY/SELL records of the user
        cashflows: All PAID/PROJECTED cashflows of the user
        rates: Rate history per native currency (any order)
        prices: Recent price observations (any order)
        rejected: Rows the boundary excluded, reported in the statistics
    """

    instruments: dict[str, Instrument]
    transactions: tuple[Transaction, ...] = ()
    cashflows: tuple[Cashflow, ...] = ()
    rates: dict[str, tuple[RatePoint, ...]] = field(default_factory=dict)
    prices: tuple[PriceRecord, ...] = ()
    rejected: tuple[RejectedRecord, ...] = ()

    def transactions_for(self, instrument_id: str) -> list[Transaction]:
        return [t for t in self.transactions if t.instrument_id == instrument_id]

    def cashflows_for(self, instrument_id: str) -> list[Cashflow]:
        return [c for c in self.cashflows if c.instrument_id == instrument_id]
