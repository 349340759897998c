# portfolio_accounting/services/currency.py
"""
Currency normalization over an immutable exchange-rate snapshot.

This module handles:
- Building a sorted, read-only rate table per native currency
- Resolving the rate for a date with a tiered fallback policy
- Converting native amounts into the reference currency

=============================================================================
RATE CONVENTION (IMPORTANT!)
=============================================================================

A rate is the number of NATIVE currency units per ONE reference unit:

    currency = "ARS", reference = "USD", rate = 1050

    Meaning: 1 USD = 1050 ARS

Conversion formula:
    reference_amount = native_amount ÷ rate

=============================================================================
FALLBACK TIERS
=============================================================================

    1. EXACT     - a rate exists for the requested day
    2. FALLBACK  - nearest earlier rate within max_fallback_days
    3. LATEST    - most recent rate known for the currency (any date)
    4. DEFAULT   - configured default for the currency
    (none)       - FXRateNotFoundError; a rate of 1 is never assumed

Tier 2 searches strictly backward: a rate published after the requested
day is never used for it, except through tier 3.

Design Principles:
- Pure: no I/O, no clock, no shared mutable state
- Financial Precision: Decimal for every rate and amount
- Fatal on bad data: a non-positive rate raises instead of dividing

Usage:
    normalizer = CurrencyNormalizer.from_points(
        reference_currency="USD",
        rates={"ARS": rate_points},
        default_rates={"ARS": Decimal("1200")},
    )

    usd = normalizer.normalize(Decimal("105000"), "ARS", date(2024, 3, 4))
    result = normalizer.get_rate("ARS", date(2024, 3, 4))
    if not result.is_exact_match:
        ...
"""

from __future__ import annotations

import enum
import logging
from bisect import bisect_right
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal

from portfolio_accounting.models import RatePoint
from portfolio_accounting.services.constants import FX_FALLBACK_DAYS, ONE, ZERO
from portfolio_accounting.services.exceptions import (
    FXRateNotFoundError,
    InvalidExchangeRateError,
)
from portfolio_accounting.utils.date_utils import days_between, to_date

logger = logging.getLogger(__name__)


# =============================================================================
# RATE TABLE
# =============================================================================

@dataclass(frozen=True)
class RateTable:
    """
    Sorted, immutable rate history for one native currency.

    Built once per aggregation run; lookups are binary searches.
    When the source contains several points for one day, the last one wins.
    """

    currency: str
    dates: tuple[date, ...]
    rates: tuple[Decimal, ...]

    @classmethod
    def from_points(cls, currency: str, points: Iterable[RatePoint]) -> RateTable:
        by_day: dict[date, Decimal] = {}
        for point in points:
            by_day[to_date(point.date)] = point.rate

        ordered = sorted(by_day.items())
        return cls(
            currency=currency.upper(),
            dates=tuple(d for d, _ in ordered),
            rates=tuple(r for _, r in ordered),
        )

    def __len__(self) -> int:
        return len(self.dates)

    def on_or_before(self, target_date: date) -> RatePoint | None:
        """Latest point dated on or before target_date."""
        index = bisect_right(self.dates, target_date) - 1
        if index < 0:
            return None
        return RatePoint(date=self.dates[index], rate=self.rates[index])

    def latest(self) -> RatePoint | None:
        """Most recent point in the table."""
        if not self.dates:
            return None
        return RatePoint(date=self.dates[-1], rate=self.rates[-1])


# =============================================================================
# RESULT DATA CLASSES
# =============================================================================

class RateSource(str, enum.Enum):
    """Which fallback tier produced a rate."""

    IDENTITY = "identity"  # native == reference
    EXACT = "exact"
    FALLBACK = "fallback"
    LATEST = "latest"
    DEFAULT = "default"


@dataclass(frozen=True)
class FXRateResult:
    """Result of a rate lookup."""

    currency: str
    reference_currency: str
    date: date | None  # requested day (None for "latest" lookups)
    rate: Decimal
    source: RateSource
    actual_date: date | None = None  # day the rate is from (None for defaults)

    @property
    def is_exact_match(self) -> bool:
        return self.source in (RateSource.IDENTITY, RateSource.EXACT)

    def convert(self, amount: Decimal) -> Decimal:
        """
        Convert a native amount into the reference currency.

        Raises:
            InvalidExchangeRateError: If the rate is zero or negative
        """
        if self.source is RateSource.IDENTITY:
            return amount
        if self.rate <= ZERO:
            raise InvalidExchangeRateError(
                currency=self.currency,
                rate=self.rate,
                rate_date=self.actual_date,
                reference_currency=self.reference_currency,
            )
        return amount / self.rate


# =============================================================================
# CURRENCY NORMALIZER
# =============================================================================

class CurrencyNormalizer:
    """
    Converts (amount, currency, date) into the reference currency.

    Attributes:
        reference_currency: Target currency of every conversion
        max_fallback_days: Backward search window for missing days

    Example:
        normalizer = CurrencyNormalizer.from_points("USD", {"ARS": points})
        normalizer.normalize(Decimal("1000"), "ARS", date(2024, 1, 15))
    """

    def __init__(
            self,
            reference_currency: str,
            tables: Mapping[str, RateTable] | None = None,
            default_rates: Mapping[str, Decimal] | None = None,
            max_fallback_days: int = FX_FALLBACK_DAYS,
    ) -> None:
        """
        Initialize the normalizer.

        Args:
            reference_currency: ISO code amounts are converted into
            tables: Rate tables keyed by native currency
            default_rates: Last-resort rate per native currency
            max_fallback_days: Days to search backward for a missing rate
        """
        if max_fallback_days < 0:
            raise ValueError("max_fallback_days cannot be negative")

        self._reference = reference_currency.strip().upper()
        self._tables: dict[str, RateTable] = {
            currency.strip().upper(): table for currency, table in (tables or {}).items()
        }
        self._defaults: dict[str, Decimal] = {
            currency.strip().upper(): rate for currency, rate in (default_rates or {}).items()
        }
        self._max_fallback_days = max_fallback_days

    @classmethod
    def from_points(
            cls,
            reference_currency: str,
            rates: Mapping[str, Iterable[RatePoint]] | None = None,
            default_rates: Mapping[str, Decimal] | None = None,
            max_fallback_days: int = FX_FALLBACK_DAYS,
    ) -> CurrencyNormalizer:
        """Build the normalizer (and its rate tables) from raw rate points."""
        tables = {
            currency: RateTable.from_points(currency, points)
            for currency, points in (rates or {}).items()
        }
        return cls(
            reference_currency=reference_currency,
            tables=tables,
            default_rates=default_rates,
            max_fallback_days=max_fallback_days,
        )

    @property
    def reference_currency(self) -> str:
        return self._reference

    @property
    def max_fallback_days(self) -> int:
        return self._max_fallback_days

    # =========================================================================
    # PUBLIC METHODS
    # =========================================================================

    def is_reference(self, currency: str) -> bool:
        return currency.strip().upper() == self._reference

    def get_rate(self, currency: str, target_date: date | datetime) -> FXRateResult:
        """
        Resolve the rate for a currency on a given day.

        Args:
            currency: Native currency code
            target_date: Day the amount belongs to

        Returns:
            FXRateResult with the rate and the tier that produced it

        Raises:
            FXRateNotFoundError: No history and no default for the currency
        """
        code = currency.strip().upper()
        day = to_date(target_date)

        if code == self._reference:
            return FXRateResult(
                currency=code,
                reference_currency=self._reference,
                date=day,
                rate=ONE,
                source=RateSource.IDENTITY,
                actual_date=day,
            )

        table = self._tables.get(code)
        if table is not None:
            point = table.on_or_before(day)
            if point is not None:
                lag = days_between(point.date, day)
                if lag == 0:
                    return self._result(code, day, point, RateSource.EXACT)
                if lag <= self._max_fallback_days:
                    logger.debug(
                        f"Using fallback rate for {code} on {day}: actual date = {point.date}"
                    )
                    return self._result(code, day, point, RateSource.FALLBACK)

        return self._latest_or_default(code, day)

    def latest_rate(self, currency: str) -> FXRateResult:
        """
        Most recent rate known for a currency (or its default).

        Used for amounts that have no historical rate yet: future cashflows
        and current market prices.
        """
        code = currency.strip().upper()
        if code == self._reference:
            return FXRateResult(
                currency=code,
                reference_currency=self._reference,
                date=None,
                rate=ONE,
                source=RateSource.IDENTITY,
            )

        table = self._tables.get(code)
        point = table.latest() if table is not None else None
        if point is not None:
            return self._result(code, None, point, RateSource.LATEST)

        return self._default(code, None)

    def normalize(
            self,
            amount: Decimal,
            currency: str,
            target_date: date | datetime,
    ) -> Decimal:
        """
        Convert an amount at the rate of its own day.

        Raises:
            FXRateNotFoundError: No rate could be resolved
            InvalidExchangeRateError: The resolved rate is not positive
        """
        if self.is_reference(currency):
            return amount
        return self.get_rate(currency, target_date).convert(amount)

    def normalize_at_latest(self, amount: Decimal, currency: str) -> Decimal:
        """Convert an amount at the latest known rate."""
        if self.is_reference(currency):
            return amount
        return self.latest_rate(currency).convert(amount)

    def rate_for_timeline(
            self,
            currency: str,
            target_date: date,
            as_of: date,
    ) -> FXRateResult:
        """
        Historical rate for past days, latest rate for future days.

        A payment dated after as_of has no historical rate yet.
        """
        if target_date <= as_of:
            return self.get_rate(currency, target_date)
        return self.latest_rate(currency)

    # =========================================================================
    # PRIVATE HELPERS
    # =========================================================================

    def _latest_or_default(self, code: str, day: date) -> FXRateResult:
        table = self._tables.get(code)
        point = table.latest() if table is not None else None
        if point is not None:
            logger.warning(
                f"No {code} rate within {self._max_fallback_days} days of {day}; "
                f"using latest known rate from {point.date}"
            )
            return self._result(code, day, point, RateSource.LATEST)
        return self._default(code, day)

    def _default(self, code: str, day: date | None) -> FXRateResult:
        default = self._defaults.get(code)
        if default is None:
            raise FXRateNotFoundError(code, self._reference, day)

        logger.warning(f"No {code} rate history; using configured default {default}")
        return FXRateResult(
            currency=code,
            reference_currency=self._reference,
            date=day,
            rate=default,
            source=RateSource.DEFAULT,
        )

    def _result(
            self,
            code: str,
            day: date | None,
            point: RatePoint,
            source: RateSource,
    ) -> FXRateResult:
        return FXRateResult(
            currency=code,
            reference_currency=self._reference,
            date=day,
            rate=point.rate,
            source=source,
            actual_date=point.date,
        )
