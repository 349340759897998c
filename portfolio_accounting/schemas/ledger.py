# portfolio_accounting/schemas/ledger.py
"""
Pydantic schemas for ledger records.

These schemas define what a raw collaborator row must look like before it
is allowed into a LedgerSnapshot. Rows may be dicts or ORM objects
(from_attributes), and may use either snake_case names or the camelCase
names of the ledger store (investmentId, createdAt, lastPrice, ...).

Validation layers:
- Field constraints: type, numeric limits, finiteness
- Field validators: normalization (uppercase, trim, datetime → date)
- to_domain(): conversion into the engine's frozen dataclasses

IMPORTANT: All financial values use Decimal for precision.
NaN and Infinity are rejected here; the engine never sees them.
"""

import datetime as dt
from decimal import Decimal

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

from portfolio_accounting.models import (
    Cashflow,
    CashflowStatus,
    CashflowType,
    Instrument,
    PriceRecord,
    RatePoint,
    Transaction,
    TransactionType,
)
from portfolio_accounting.schemas.validators import (
    coerce_date,
    normalize_code,
    normalize_ticker,
    validate_currency,
    validate_optional_date,
)


# =============================================================================
# BASE SCHEMA
# =============================================================================

class LedgerRecord(BaseModel):
    """Common configuration for every ledger row."""

    model_config = ConfigDict(
        frozen=True,
        from_attributes=True,
        populate_by_name=True,
        coerce_numbers_to_str=True,
        allow_inf_nan=False,
        str_strip_whitespace=True,
        extra="ignore",
    )


# =============================================================================
# INSTRUMENT
# =============================================================================

class InstrumentRecord(LedgerRecord):
    """Instrument metadata row."""

    id: str = Field(..., min_length=1)
    ticker: str = Field(..., description="Market symbol", examples=["YPFDD", "AL30D"])
    name: str | None = None
    type: str = Field(default="OTHER", examples=["ON", "CEDEAR", "TREASURY"])
    market: str | None = None
    currency: str = Field(default="USD", description="Currency of last_price")
    last_price: Decimal | None = Field(
        default=None,
        ge=0,
        validation_alias=AliasChoices("last_price", "lastPrice"),
    )
    last_price_date: dt.date | None = Field(
        default=None,
        validation_alias=AliasChoices("last_price_date", "lastPriceDate"),
    )

    @field_validator("ticker")
    @classmethod
    def normalize_ticker_field(cls, v: str) -> str:
        return normalize_ticker(v)

    @field_validator("type", mode="before")
    @classmethod
    def normalize_type(cls, v: object) -> object:
        return normalize_code(v) or "OTHER"

    @field_validator("currency")
    @classmethod
    def validate_currency_field(cls, v: str) -> str:
        return validate_currency(v)

    @field_validator("last_price_date", mode="before")
    @classmethod
    def coerce_last_price_date(cls, v: object) -> object:
        return coerce_date(v)

    @field_validator("last_price_date")
    @classmethod
    def validate_last_price_date(cls, v: dt.date | None) -> dt.date | None:
        return validate_optional_date(v, "last_price_date")

    def to_domain(self) -> Instrument:
        return Instrument(
            id=self.id,
            ticker=self.ticker,
            name=self.name,
            type=self.type,
            market=self.market,
            currency=self.currency,
            last_price=self.last_price,
            last_price_date=self.last_price_date,
        )


# =============================================================================
# TRANSACTION
# =============================================================================

class TransactionRecord(LedgerRecord):
    """
    BUY/SELL row.

    A missing type is read as BUY and a missing commission as 0, which is
    how the ledger store writes manual entries.
    """

    id: str = Field(..., min_length=1)
    instrument_id: str = Field(
        ...,
        min_length=1,
        validation_alias=AliasChoices("instrument_id", "investmentId", "investment_id"),
    )
    date: dt.date
    type: TransactionType = TransactionType.BUY
    quantity: Decimal = Field(..., gt=0, description="Units traded (must be positive)")
    price: Decimal = Field(..., ge=0, description="Unit price in currency")
    commission: Decimal = Field(default=Decimal("0"), ge=0)
    currency: str
    created_at: dt.datetime | None = Field(
        default=None,
        validation_alias=AliasChoices("created_at", "createdAt"),
    )

    @field_validator("date", mode="before")
    @classmethod
    def coerce_trade_date(cls, v: object) -> object:
        return coerce_date(v)

    @field_validator("type", mode="before")
    @classmethod
    def normalize_type(cls, v: object) -> object:
        return normalize_code(v) or TransactionType.BUY

    @field_validator("commission", mode="before")
    @classmethod
    def default_commission(cls, v: object) -> object:
        return Decimal("0") if v is None else v

    @field_validator("currency")
    @classmethod
    def validate_currency_field(cls, v: str) -> str:
        return validate_currency(v)

    def to_domain(self) -> Transaction:
        return Transaction(
            id=self.id,
            instrument_id=self.instrument_id,
            date=self.date,
            type=self.type,
            quantity=self.quantity,
            price=self.price,
            commission=self.commission,
            currency=self.currency,
            created_at=self.created_at,
        )


# =============================================================================
# CASHFLOW
# =============================================================================

class CashflowRecord(LedgerRecord):
    """Interest or amortization row, PAID or PROJECTED."""

    id: str = Field(..., min_length=1)
    instrument_id: str = Field(
        ...,
        min_length=1,
        validation_alias=AliasChoices("instrument_id", "investmentId", "investment_id"),
    )
    date: dt.date
    amount: Decimal = Field(..., description="Signed: inflows positive, clawbacks negative")
    currency: str
    type: CashflowType
    status: CashflowStatus

    @field_validator("date", mode="before")
    @classmethod
    def coerce_payment_date(cls, v: object) -> object:
        return coerce_date(v)

    @field_validator("type", "status", mode="before")
    @classmethod
    def normalize_codes(cls, v: object) -> object:
        return normalize_code(v)

    @field_validator("currency")
    @classmethod
    def validate_currency_field(cls, v: str) -> str:
        return validate_currency(v)

    def to_domain(self) -> Cashflow:
        return Cashflow(
            id=self.id,
            instrument_id=self.instrument_id,
            date=self.date,
            amount=self.amount,
            currency=self.currency,
            type=self.type,
            status=self.status,
        )


# =============================================================================
# EXCHANGE RATE
# =============================================================================

class ExchangeRateRecord(LedgerRecord):
    """
    One rate observation: `rate` units of `currency` per reference unit.

    Zero and negative rates are rejected here so they can never reach a
    division. The ledger store keeps one untagged `{date, value}` series per
    currency pair, so `currency` may be missing; SnapshotLoader assigns it.
    """

    currency: str | None = Field(
        default=None,
        validation_alias=AliasChoices("currency", "from_currency", "fromCurrency"),
    )
    date: dt.date
    rate: Decimal = Field(
        ...,
        gt=0,
        validation_alias=AliasChoices("rate", "value"),
    )

    @field_validator("date", mode="before")
    @classmethod
    def coerce_rate_date(cls, v: object) -> object:
        return coerce_date(v)

    @field_validator("currency")
    @classmethod
    def validate_currency_field(cls, v: str | None) -> str | None:
        return None if v is None else validate_currency(v)

    def to_domain(self) -> RatePoint:
        return RatePoint(date=self.date, rate=self.rate)


# =============================================================================
# PRICE
# =============================================================================

class PriceObservation(LedgerRecord):
    """Market price row for an instrument."""

    instrument_id: str = Field(
        ...,
        min_length=1,
        validation_alias=AliasChoices("instrument_id", "investmentId", "investment_id"),
    )
    date: dt.date
    price: Decimal = Field(..., ge=0)
    currency: str

    @field_validator("date", mode="before")
    @classmethod
    def coerce_price_date(cls, v: object) -> object:
        return coerce_date(v)

    @field_validator("currency")
    @classmethod
    def validate_currency_field(cls, v: str) -> str:
        return validate_currency(v)

    def to_domain(self) -> PriceRecord:
        return PriceRecord(
            instrument_id=self.instrument_id,
            date=self.date,
            price=self.price,
            currency=self.currency,
        )
