# portfolio_accounting/services/exceptions.py
"""
Service layer exceptions.

These exceptions represent domain-specific errors and contain NO transport
knowledge. Callers (a web layer, a report job) decide how to present them.

Exception Hierarchy:
    ServiceError (base)
    ├── ValidationError
    │   └── InvalidRecordError
    ├── NotFoundError
    │   └── InstrumentNotFoundError
    ├── FXRateError
    │   ├── FXRateNotFoundError
    │   └── InvalidExchangeRateError
    └── InventoryError
        └── InventoryInconsistencyError

Recovery policy:
    The PortfolioAggregator catches FXRateError, InventoryError,
    InstrumentNotFoundError and ValidationError per instrument and reports
    the instrument as failed; everything else propagates to the caller.
"""

from datetime import date
from decimal import Decimal


class ServiceError(Exception):
    """
    Base exception for all service layer errors.

    Attributes:
        message: Human-readable error description
    """

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(self.message)

    def __str__(self) -> str:
        return self.message


# =============================================================================
# VALIDATION ERRORS
# =============================================================================


class ValidationError(ServiceError):
    """
    Raised when input validation fails.

    This is for programmatic validation errors (invalid parameters, values of
    the wrong type), NOT for ledger record validation which is handled
    by Pydantic at the boundary.

    Attributes:
        field: The field that failed validation (optional)
    """

    def __init__(self, message: str, field: str | None = None) -> None:
        self.field = field
        super().__init__(message)


class InvalidRecordError(ValidationError):
    """
    Raised when a ledger record cannot be turned into a domain record.

    Attributes:
        record_kind: "transaction", "cashflow", "exchange_rate", "price", "instrument"
        record_id: Identifier of the offending record (if it had one)
        reason: Validation message(s)
    """

    def __init__(
            self,
            record_kind: str,
            record_id: str | None,
            reason: str,
    ) -> None:
        self.record_kind = record_kind
        self.record_id = record_id
        self.reason = reason
        super().__init__(
            f"Invalid {record_kind} record {record_id or '<no id>'}: {reason}"
        )


# =============================================================================
# NOT FOUND ERRORS
# =============================================================================


class NotFoundError(ServiceError):
    """
    Base exception for resource not found errors.

    Attributes:
        resource_type: Type of resource (e.g., "Instrument")
        resource_id: Identifier of the resource
    """

    def __init__(
            self,
            message: str,
            resource_type: str | None = None,
            resource_id: int | str | None = None,
    ) -> None:
        self.resource_type = resource_type
        self.resource_id = resource_id
        super().__init__(message)


class InstrumentNotFoundError(NotFoundError):
    """
    Raised when a transaction or cashflow references an unknown instrument.

    Attributes:
        instrument_id: ID of the instrument that was not found
    """

    def __init__(self, instrument_id: str) -> None:
        self.instrument_id = instrument_id
        super().__init__(
            f"Instrument {instrument_id} not found",
            resource_type="Instrument",
            resource_id=instrument_id,
        )


# =============================================================================
# FX RATE ERRORS
# =============================================================================


class FXRateError(ServiceError):
    """
    Base exception for FX rate errors.

    Attributes:
        currency: The native currency being normalized
        reference_currency: The normalization target
    """

    def __init__(
            self,
            message: str,
            currency: str | None = None,
            reference_currency: str | None = None,
    ) -> None:
        self.currency = currency
        self.reference_currency = reference_currency
        super().__init__(message)


class FXRateNotFoundError(FXRateError):
    """
    Raised when no rate can be resolved for a currency.

    Only happens when the currency has no rate history at all AND no
    default rate is configured for it. The engine never assumes a rate of 1.

    Attributes:
        date: The date for which the rate was requested
    """

    def __init__(
            self,
            currency: str,
            reference_currency: str,
            rate_date: date | None,
            message: str | None = None
    ) -> None:
        self.date = rate_date
        msg = message or (
            f"No FX rate found for {currency}/{reference_currency} on {rate_date} "
            f"and no default rate configured"
        )
        super().__init__(msg, currency=currency, reference_currency=reference_currency)


class InvalidExchangeRateError(FXRateError):
    """
    Raised when a rate that would be divided by is zero or negative.

    Such a rate is an upstream data error; dividing by it would silently
    produce nonsense (or crash), so it is rejected.

    Attributes:
        rate: The offending rate
        date: Date of the offending rate point (None for configured defaults)
    """

    def __init__(
            self,
            currency: str,
            rate: Decimal,
            rate_date: date | None = None,
            reference_currency: str | None = None,
    ) -> None:
        self.rate = rate
        self.date = rate_date
        where = f" on {rate_date}" if rate_date else ""
        super().__init__(
            f"Non-positive FX rate {rate} for {currency}{where}",
            currency=currency,
            reference_currency=reference_currency,
        )


# =============================================================================
# INVENTORY ERRORS
# =============================================================================


class InventoryError(ServiceError):
    """
    Base exception for lot-matching errors.

    Attributes:
        instrument_id: Instrument whose ledger is inconsistent
    """

    def __init__(self, message: str, instrument_id: str | None = None) -> None:
        self.instrument_id = instrument_id
        super().__init__(message)


class InventoryInconsistencyError(InventoryError):
    """
    Raised when a SELL exceeds the quantity held in open lots.

    The ledger is missing a BUY (or the SELL is duplicated); matching
    cannot continue without going negative.

    Attributes:
        transaction_id: The SELL that could not be fully matched
        requested_quantity: Quantity of the SELL
        unmatched_quantity: Part of the SELL with no open lot behind it
    """

    def __init__(
            self,
            instrument_id: str | None,
            transaction_id: str | None,
            requested_quantity: Decimal,
            unmatched_quantity: Decimal,
    ) -> None:
        self.transaction_id = transaction_id
        self.requested_quantity = requested_quantity
        self.unmatched_quantity = unmatched_quantity
        super().__init__(
            f"SELL {transaction_id or '<no id>'} of {requested_quantity} exceeds open "
            f"quantity for instrument {instrument_id or '<unknown>'} by {unmatched_quantity}",
            instrument_id=instrument_id,
        )
