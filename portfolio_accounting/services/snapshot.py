# portfolio_accounting/services/snapshot.py
"""
Snapshot loading: raw ledger rows → immutable LedgerSnapshot.

This is the only place the engine touches collaborator data. Every row is
validated with the schemas in portfolio_accounting/schemas/; a row that
fails is recorded as a RejectedRecord and left out, so one malformed row
never takes down the whole aggregation.

Usage:
    loader = SnapshotLoader()
    snapshot = loader.load(repository, user_id="u-1", as_of=date(2024, 6, 30))

    # or, without a repository
    snapshot = loader.build(instruments=rows, transactions=rows, ...)
"""

from __future__ import annotations

import logging
from collections import defaultdict
from datetime import date, timedelta
from typing import Any, Iterable, Mapping, TypeVar

from pydantic import ValidationError as PydanticValidationError

from portfolio_accounting.config import Settings, settings as default_settings
from portfolio_accounting.models import (
    Cashflow,
    Instrument,
    LedgerSnapshot,
    PriceRecord,
    RatePoint,
    RejectedRecord,
    Transaction,
)
from portfolio_accounting.schemas.ledger import (
    CashflowRecord,
    ExchangeRateRecord,
    InstrumentRecord,
    LedgerRecord,
    PriceObservation,
    TransactionRecord,
)
from portfolio_accounting.services.exceptions import InvalidRecordError
from portfolio_accounting.services.protocols import LedgerRepository, RawRecord

logger = logging.getLogger(__name__)

SchemaT = TypeVar("SchemaT", bound=LedgerRecord)


def _record_id(raw: RawRecord) -> str | None:
    """Best-effort id of a raw row, for rejection reports."""
    value = raw.get("id") if isinstance(raw, Mapping) else getattr(raw, "id", None)
    return None if value is None else str(value)


def _describe(error: PydanticValidationError) -> str:
    return "; ".join(
        f"{'.'.join(str(part) for part in e['loc']) or 'record'}: {e['msg']}"
        for e in error.errors()
    )


class SnapshotLoader:
    """
    Validates raw rows and assembles a LedgerSnapshot.

    Attributes:
        _settings: Supplies the reference currency and price freshness window
    """

    def __init__(self, config: Settings | None = None, strict: bool = False) -> None:
        """
        Args:
            config: Reference currency and price freshness window
            strict: Raise InvalidRecordError on the first bad row instead of
                    collecting it in snapshot.rejected
        """
        self._settings = config or default_settings
        self._strict = strict

    def load(
            self,
            repository: LedgerRepository,
            user_id: str,
            as_of: date,
            rate_currency: str | None = None,
    ) -> LedgerSnapshot:
        """
        Fetch and validate everything one aggregation needs.

        Args:
            repository: Source of raw rows
            user_id: Owner of the ledger
            as_of: Valuation date; bounds the price query
            rate_currency: Currency of rate rows that carry none (see build)

        Returns:
            LedgerSnapshot (rejected rows listed in snapshot.rejected)
        """
        instruments = list(repository.get_instruments(user_id))
        instrument_ids = [i for i in map(_record_id, instruments) if i is not None]
        since = as_of - timedelta(days=self._settings.price_freshness_days)

        return self.build(
            instruments=instruments,
            transactions=repository.get_transactions(user_id),
            cashflows=repository.get_cashflows(user_id),
            rates=repository.get_exchange_rates(self._settings.reference_currency),
            prices=repository.get_recent_prices(instrument_ids, since),
            rate_currency=rate_currency,
        )

    def build(
            self,
            instruments: Iterable[RawRecord] = (),
            transactions: Iterable[RawRecord] = (),
            cashflows: Iterable[RawRecord] = (),
            rates: Iterable[RawRecord] = (),
            prices: Iterable[RawRecord] = (),
            rate_currency: str | None = None,
    ) -> LedgerSnapshot:
        """
        Validate raw rows into a snapshot.

        Rate rows without a currency belong to rate_currency; when it is not
        given, to the only non-reference currency in default_fx_rates. If
        neither applies the rows are rejected.
        """
        rejected: list[RejectedRecord] = []

        instrument_records = self._validate_all("instrument", InstrumentRecord, instruments, rejected)
        transaction_records = self._validate_all("transaction", TransactionRecord, transactions, rejected)
        cashflow_records = self._validate_all("cashflow", CashflowRecord, cashflows, rejected)
        rate_records = self._validate_all("exchange_rate", ExchangeRateRecord, rates, rejected)
        price_records = self._validate_all("price", PriceObservation, prices, rejected)

        instrument_map: dict[str, Instrument] = {}
        for record in instrument_records:
            instrument_map[record.id] = record.to_domain()

        series_currency = rate_currency or self._default_rate_currency()
        rate_points: dict[str, list[RatePoint]] = defaultdict(list)
        for record in rate_records:
            currency = record.currency or series_currency
            if currency is None:
                reason = f"currency: missing on rate dated {record.date} and no series currency given"
                if self._strict:
                    raise InvalidRecordError("exchange_rate", None, reason)
                rejected.append(RejectedRecord("exchange_rate", None, reason))
                continue
            rate_points[currency.strip().upper()].append(record.to_domain())

        txns: list[Transaction] = [r.to_domain() for r in transaction_records]
        cfs: list[Cashflow] = [r.to_domain() for r in cashflow_records]
        price_list: list[PriceRecord] = [r.to_domain() for r in price_records]

        if rejected:
            logger.warning(
                f"Rejected {len(rejected)} ledger records: "
                + ", ".join(f"{r.record_kind}:{r.record_id}" for r in rejected[:10])
                + (" ..." if len(rejected) > 10 else "")
            )

        logger.debug(
            f"Snapshot built: {len(instrument_map)} instruments, {len(txns)} transactions, "
            f"{len(cfs)} cashflows, {sum(len(p) for p in rate_points.values())} rates, "
            f"{len(price_list)} prices"
        )

        return LedgerSnapshot(
            instruments=instrument_map,
            transactions=tuple(txns),
            cashflows=tuple(cfs),
            rates={currency: tuple(points) for currency, points in rate_points.items()},
            prices=tuple(price_list),
            rejected=tuple(rejected),
        )

    def _default_rate_currency(self) -> str | None:
        """The only non-reference currency with a configured default, if any."""
        candidates = [
            currency for currency in self._settings.default_fx_rates
            if currency != self._settings.reference_currency
        ]
        return candidates[0] if len(candidates) == 1 else None

    def _validate_all(
            self,
            kind: str,
            schema: type[SchemaT],
            rows: Iterable[Any],
            rejected: list[RejectedRecord],
    ) -> list[SchemaT]:
        valid: list[SchemaT] = []
        for raw in rows:
            try:
                valid.append(schema.model_validate(raw))
            except PydanticValidationError as e:
                if self._strict:
                    raise InvalidRecordError(kind, _record_id(raw), _describe(e)) from e
                rejected.append(
                    RejectedRecord(
                        record_kind=kind,
                        record_id=_record_id(raw),
                        reason=_describe(e),
                    )
                )
        return valid
