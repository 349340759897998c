# portfolio_accounting/services/protocols.py
"""
Protocol interfaces for service dependency injection.

Using typing.Protocol enables structural subtyping:
- Existing classes satisfy protocols without modification
- Test mocks work without explicit inheritance
- Clear documentation of required interfaces

The engine never talks to a database. A LedgerRepository is whatever the
caller has (ORM session wrapper, API client, fixture) that can hand back
raw rows; SnapshotLoader validates them into a LedgerSnapshot.
"""

from __future__ import annotations

from datetime import date
from typing import Any, Iterable, Protocol

# One raw row: a mapping or an object with matching attributes
RawRecord = Any


class LedgerRepository(Protocol):
    """Interface required by SnapshotLoader."""

    def get_instruments(self, user_id: str) -> Iterable[RawRecord]:
        """Instruments the user has transactions or cashflows for."""
        ...

    def get_transactions(self, user_id: str) -> Iterable[RawRecord]:
        ...

    def get_cashflows(self, user_id: str) -> Iterable[RawRecord]:
        ...

    def get_exchange_rates(self, reference_currency: str) -> Iterable[RawRecord]:
        """
        Every known rate into the reference currency, any order.

        Rows are `{currency, date, rate}`, or `{date, value}` for a store that
        keeps a single untagged series (see SnapshotLoader.build).
        """
        ...

    def get_recent_prices(
        self,
        instrument_ids: Iterable[str],
        since: date,
    ) -> Iterable[RawRecord]:
        """Price observations dated on or after since."""
        ...

