# tests/services/test_currency.py
"""
Unit tests for CurrencyNormalizer.

Test Coverage:
- RateTable: sorting, same-day duplicates, binary search
- get_rate: exact, fallback window, latest, default, missing
- normalize / normalize_at_latest: division convention, identity
- rate_for_timeline: past vs future dates
- Invalid rates
"""

import logging
from datetime import date, datetime
from decimal import Decimal

import pytest

from portfolio_accounting.models import RatePoint
from portfolio_accounting.services.currency import (
    CurrencyNormalizer,
    FXRateResult,
    RateSource,
    RateTable,
)
from portfolio_accounting.services.exceptions import (
    FXRateNotFoundError,
    InvalidExchangeRateError,
)


@pytest.fixture
def normalizer(ars_rates) -> CurrencyNormalizer:
    """USD normalizer with ARS history and no defaults."""
    return CurrencyNormalizer.from_points("USD", {"ARS": ars_rates})


# =============================================================================
# RATE TABLE TESTS
# =============================================================================

class TestRateTable:
    """Tests for the immutable rate table."""

    def test_points_are_sorted(self):
        table = RateTable.from_points("ars", [
            RatePoint(date(2024, 1, 5), Decimal("3")),
            RatePoint(date(2024, 1, 1), Decimal("1")),
            RatePoint(date(2024, 1, 3), Decimal("2")),
        ])

        assert table.currency == "ARS"
        assert table.dates == (date(2024, 1, 1), date(2024, 1, 3), date(2024, 1, 5))
        assert table.rates == (Decimal("1"), Decimal("2"), Decimal("3"))

    def test_last_point_for_a_day_wins(self):
        table = RateTable.from_points("ARS", [
            RatePoint(date(2024, 1, 1), Decimal("1")),
            RatePoint(date(2024, 1, 1), Decimal("2")),
        ])

        assert len(table) == 1
        assert table.latest().rate == Decimal("2")

    def test_on_or_before(self, ars_rates):
        table = RateTable.from_points("ARS", ars_rates)

        assert table.on_or_before(date(2024, 1, 3)).rate == Decimal("1010")
        assert table.on_or_before(date(2024, 1, 8)).date == date(2024, 1, 5)
        assert table.on_or_before(date(2024, 1, 1)) is None

    def test_empty_table(self):
        table = RateTable.from_points("ARS", [])

        assert len(table) == 0
        assert table.latest() is None
        assert table.on_or_before(date(2024, 1, 1)) is None


# =============================================================================
# GET RATE TESTS
# =============================================================================

class TestGetRate:
    """Tests for the fallback tiers."""

    def test_exact_match(self, normalizer):
        result = normalizer.get_rate("ARS", date(2024, 1, 4))

        assert result.rate == Decimal("1020")
        assert result.source == RateSource.EXACT
        assert result.is_exact_match
        assert result.actual_date == date(2024, 1, 4)

    def test_fallback_within_window(self, normalizer):
        """Missing on the 8th, the 5th (3 days earlier) is used."""
        result = normalizer.get_rate("ARS", date(2024, 1, 8))

        assert result.rate == Decimal("1030")
        assert result.source == RateSource.FALLBACK
        assert not result.is_exact_match
        assert result.actual_date == date(2024, 1, 5)
        assert result.date == date(2024, 1, 8)

    def test_fallback_never_looks_forward(self, normalizer):
        """Before the first point there is no backward rate: latest tier."""
        result = normalizer.get_rate("ARS", date(2023, 12, 20))

        assert result.source == RateSource.LATEST
        assert result.actual_date == date(2024, 1, 9)

    def test_beyond_window_uses_latest(self, normalizer, caplog):
        """Eleven days after the last point falls through to the latest rate."""
        with caplog.at_level(logging.WARNING):
            result = normalizer.get_rate("ARS", date(2024, 1, 20))

        assert result.rate == Decimal("1050")
        assert result.source == RateSource.LATEST
        assert "using latest known rate" in caplog.text

    def test_window_boundary_is_inclusive(self, normalizer):
        """Ten days after the last point is still a fallback."""
        result = normalizer.get_rate("ARS", date(2024, 1, 19))

        assert result.source == RateSource.FALLBACK

    def test_custom_window(self, ars_rates):
        narrow = CurrencyNormalizer.from_points("USD", {"ARS": ars_rates}, max_fallback_days=2)

        assert narrow.get_rate("ARS", date(2024, 1, 8)).source == RateSource.LATEST
        assert narrow.get_rate("ARS", date(2024, 1, 7)).source == RateSource.FALLBACK

    def test_default_when_no_history(self, caplog):
        normalizer = CurrencyNormalizer.from_points(
            "USD", {}, default_rates={"ARS": Decimal("1200")}
        )

        with caplog.at_level(logging.WARNING):
            result = normalizer.get_rate("ARS", date(2024, 1, 1))

        assert result.rate == Decimal("1200")
        assert result.source == RateSource.DEFAULT
        assert result.actual_date is None
        assert "configured default" in caplog.text

    def test_missing_without_default_raises(self):
        """A rate of 1 is never assumed."""
        normalizer = CurrencyNormalizer.from_points("USD", {})

        with pytest.raises(FXRateNotFoundError) as exc_info:
            normalizer.get_rate("EUR", date(2024, 1, 1))

        assert exc_info.value.currency == "EUR"
        assert exc_info.value.reference_currency == "USD"

    def test_reference_currency_is_identity(self, normalizer):
        result = normalizer.get_rate("usd", date(2024, 1, 1))

        assert result.source == RateSource.IDENTITY
        assert result.rate == Decimal("1")

    def test_accepts_datetime(self, normalizer):
        result = normalizer.get_rate("ARS", datetime(2024, 1, 4, 15, 30))

        assert result.source == RateSource.EXACT

    def test_currency_code_is_case_insensitive(self, normalizer):
        assert normalizer.get_rate(" ars ", date(2024, 1, 4)).rate == Decimal("1020")


# =============================================================================
# NORMALIZE TESTS
# =============================================================================

class TestNormalize:
    """Tests for amount conversion."""

    def test_divides_by_rate(self, normalizer):
        """1020 ARS per USD: 102000 ARS is 100 USD."""
        result = normalizer.normalize(Decimal("102000"), "ARS", date(2024, 1, 4))

        assert result == Decimal("100")

    def test_reference_amount_unchanged(self, normalizer):
        amount = Decimal("123.456789")

        assert normalizer.normalize(amount, "USD", date(2024, 1, 4)) == amount

    def test_reference_amount_unchanged_without_any_rates(self):
        normalizer = CurrencyNormalizer("USD")

        assert normalizer.normalize(Decimal("5"), "USD", date(2024, 1, 1)) == Decimal("5")

    def test_normalize_at_latest(self, normalizer):
        assert normalizer.normalize_at_latest(Decimal("10500"), "ARS") == Decimal("10")

    def test_latest_falls_back_to_default(self):
        normalizer = CurrencyNormalizer("USD", default_rates={"ARS": Decimal("1200")})

        assert normalizer.normalize_at_latest(Decimal("2400"), "ARS") == Decimal("2")

    def test_rate_for_timeline_past_uses_history(self, normalizer):
        result = normalizer.rate_for_timeline("ARS", date(2024, 1, 3), as_of=date(2024, 1, 9))

        assert result.rate == Decimal("1010")

    def test_rate_for_timeline_future_uses_latest(self, normalizer):
        result = normalizer.rate_for_timeline("ARS", date(2024, 3, 1), as_of=date(2024, 1, 9))

        assert result.source == RateSource.LATEST
        assert result.rate == Decimal("1050")


# =============================================================================
# INVALID RATE TESTS
# =============================================================================

class TestInvalidRates:
    """Non-positive rates are fatal, never divided by."""

    @pytest.mark.parametrize("rate", [Decimal("0"), Decimal("-5")])
    def test_non_positive_rate_raises(self, rate):
        normalizer = CurrencyNormalizer.from_points(
            "USD", {"ARS": [RatePoint(date(2024, 1, 1), rate)]}
        )

        with pytest.raises(InvalidExchangeRateError) as exc_info:
            normalizer.normalize(Decimal("100"), "ARS", date(2024, 1, 1))

        assert exc_info.value.rate == rate

    def test_identity_result_never_divides(self):
        result = FXRateResult(
            currency="USD",
            reference_currency="USD",
            date=None,
            rate=Decimal("1"),
            source=RateSource.IDENTITY,
        )

        assert result.convert(Decimal("7")) == Decimal("7")

    def test_negative_fallback_window_rejected(self):
        with pytest.raises(ValueError):
            CurrencyNormalizer("USD", max_fallback_days=-1)
