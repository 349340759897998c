# tests/test_config.py
"""
Tests for engine settings.

Test Coverage:
- Defaults
- Normalization of currency codes and instrument types
- Rejection of invalid default rates
- quote_convention_for lookups
"""

from decimal import Decimal

import pytest
from pydantic import ValidationError

from portfolio_accounting.config import QuoteConvention, Settings


class TestDefaults:
    """Tests for the default accounting policy."""

    def test_defaults(self, monkeypatch):
        for name in ("REFERENCE_CURRENCY", "FX_FALLBACK_DAYS", "DEFAULT_FX_RATES"):
            monkeypatch.delenv(name, raising=False)

        settings = Settings(_env_file=None)

        assert settings.reference_currency == "USD"
        assert settings.fx_fallback_days == 10
        assert settings.default_fx_rates == {"ARS": Decimal("1200")}
        assert settings.price_freshness_days == 7
        assert settings.upcoming_payments_limit == 200
        assert settings.projected_past_is_collected is True

    def test_reads_environment(self, monkeypatch):
        monkeypatch.setenv("REFERENCE_CURRENCY", "eur")
        monkeypatch.setenv("DEFAULT_FX_RATES", '{"usd": "1.08"}')
        monkeypatch.setenv("FX_FALLBACK_DAYS", "5")

        settings = Settings(_env_file=None)

        assert settings.reference_currency == "EUR"
        assert settings.default_fx_rates == {"USD": Decimal("1.08")}
        assert settings.fx_fallback_days == 5


class TestValidation:
    """Tests for settings validators."""

    @pytest.mark.parametrize("rate", ["0", "-1", "NaN"])
    def test_non_positive_default_rate_rejected(self, rate):
        with pytest.raises(ValidationError):
            Settings(_env_file=None, default_fx_rates={"ARS": rate})

    def test_reference_currency_cannot_have_default(self):
        with pytest.raises(ValidationError) as exc_info:
            Settings(_env_file=None, reference_currency="ARS", default_fx_rates={"ars": "1200"})

        assert "reference currency" in str(exc_info.value)

    def test_negative_fallback_window_rejected(self):
        with pytest.raises(ValidationError):
            Settings(_env_file=None, fx_fallback_days=-1)


class TestQuoteConventions:
    """Tests for quote_convention_for."""

    def test_configured_types(self, test_settings):
        assert test_settings.quote_convention_for("ON") == QuoteConvention.PER_HUNDRED
        assert test_settings.quote_convention_for(" corporate_bond ") == QuoteConvention.PER_HUNDRED

    def test_unknown_type_is_per_unit(self, test_settings):
        assert test_settings.quote_convention_for("STOCK") == QuoteConvention.PER_UNIT
        assert test_settings.quote_convention_for(None) == QuoteConvention.PER_UNIT

    def test_override(self):
        settings = Settings(
            _env_file=None,
            quote_conventions={"treasury": "PER_HUNDRED_ABOVE_PAR"},
        )

        assert settings.quote_convention_for("TREASURY") == QuoteConvention.PER_HUNDRED_ABOVE_PAR
        assert settings.quote_convention_for("ON") == QuoteConvention.PER_UNIT
