# tests/services/test_calculators.py
"""
Unit tests for valuation calculators.

These tests verify the pure calculation logic on hand-built records.

Test Coverage:
- to_signed_flow: sign and commission convention
- PositionCalculator: per-date FX normalization before FIFO
- ValueCalculator: price selection, freshness, FX, quoting conventions
- UnrealizedPnLCalculator / RealizedPnLCalculator
- CashflowCalculator: buckets, report-lag policy, upcoming payments
- YieldCalculator: theoretical yield
"""

from datetime import date
from decimal import Decimal

import pytest

from portfolio_accounting.config import QuoteConvention
from portfolio_accounting.models import (
    CashflowStatus,
    CashflowType,
    Instrument,
    PriceRecord,
    RatePoint,
    TransactionType,
)
from portfolio_accounting.services.currency import CurrencyNormalizer
from portfolio_accounting.services.exceptions import FXRateNotFoundError
from portfolio_accounting.services.valuation.calculators import (
    CashflowCalculator,
    PositionCalculator,
    RealizedPnLCalculator,
    UnrealizedPnLCalculator,
    ValueCalculator,
    YieldCalculator,
    apply_quote_convention,
)
from portfolio_accounting.services.valuation.flows import (
    cashflow_to_signed_flow,
    to_signed_flow,
)

BUY = TransactionType.BUY
SELL = TransactionType.SELL
AS_OF = date(2024, 6, 30)


@pytest.fixture
def usd_normalizer() -> CurrencyNormalizer:
    return CurrencyNormalizer("USD")


@pytest.fixture
def ars_normalizer() -> CurrencyNormalizer:
    """ARS history: 1000 on Jan 2, 1200 on Jun 28."""
    return CurrencyNormalizer.from_points(
        "USD",
        {
            "ARS": [
                RatePoint(date(2024, 1, 2), Decimal("1000")),
                RatePoint(date(2024, 6, 28), Decimal("1200")),
            ]
        },
    )


def per_type(mapping):
    return lambda instrument_type: mapping.get(instrument_type, QuoteConvention.PER_UNIT)


# =============================================================================
# SIGNED FLOWS
# =============================================================================

class TestSignedFlows:
    """Tests for the single flow convention."""

    def test_buy_is_negative_including_commission(self, make_transaction):
        flow = to_signed_flow(make_transaction(BUY, "10", "100", "5", on=date(2024, 1, 2)))

        assert flow.date == date(2024, 1, 2)
        assert flow.amount == Decimal("-1005")

    def test_sell_is_positive_net_of_commission(self, make_transaction):
        flow = to_signed_flow(make_transaction(SELL, "10", "120", "5"))

        assert flow.amount == Decimal("1195")

    def test_past_cashflow_at_historical_rate(self, make_cashflow, ars_normalizer):
        cf = make_cashflow("100000", on=date(2024, 1, 2), currency="ARS")

        flow = cashflow_to_signed_flow(cf, ars_normalizer, AS_OF)

        assert flow.amount == Decimal("100")

    def test_future_cashflow_at_latest_rate(self, make_cashflow, ars_normalizer):
        cf = make_cashflow(
            "120000", on=date(2025, 1, 2), currency="ARS",
            status=CashflowStatus.PROJECTED,
        )

        flow = cashflow_to_signed_flow(cf, ars_normalizer, AS_OF)

        assert flow.amount == Decimal("100")


# =============================================================================
# POSITION CALCULATOR
# =============================================================================

class TestPositionCalculator:
    """Tests for normalization + FIFO."""

    def test_usd_position(self, usd_normalizer, stock_instrument, make_transaction):
        position = PositionCalculator(usd_normalizer).calculate(
            stock_instrument,
            [
                make_transaction(BUY, "100", "10", "5", on=date(2024, 1, 1)),
                make_transaction(SELL, "40", "12", "2", on=date(2024, 4, 10)),
            ],
        )

        assert position.quantity == Decimal("60")
        assert position.cost_basis == Decimal("603")
        assert position.lots.realized_gain == Decimal("76")
        assert position.has_position
        assert position.warnings == []

    def test_each_transaction_uses_its_own_date(self, ars_normalizer, stock_instrument, make_transaction):
        """Bought at 1000 ARS/USD, sold at 1200: the FX move is part of the gain."""
        position = PositionCalculator(ars_normalizer).calculate(
            stock_instrument,
            [
                make_transaction(BUY, "10", "10000", "1000", on=date(2024, 1, 2), currency="ARS"),
                make_transaction(SELL, "10", "12000", on=date(2024, 6, 28), currency="ARS"),
            ],
        )

        closed = position.lots.closed_lots[0]
        assert closed.buy_price == Decimal("10")
        assert closed.buy_commission == Decimal("1")
        assert closed.sell_price == Decimal("10")
        assert closed.realized_gain == Decimal("-1")
        assert all(t.currency == "USD" for t in position.transactions)

    def test_fallback_rate_adds_warning(self, ars_normalizer, stock_instrument, make_transaction):
        position = PositionCalculator(ars_normalizer).calculate(
            stock_instrument,
            [make_transaction(BUY, "1", "1000", on=date(2024, 1, 5), currency="ARS")],
        )

        assert len(position.warnings) == 1
        assert "2024-01-02" in position.warnings[0]

    def test_missing_rate_propagates(self, usd_normalizer, stock_instrument, make_transaction):
        with pytest.raises(FXRateNotFoundError):
            PositionCalculator(usd_normalizer).calculate(
                stock_instrument,
                [make_transaction(BUY, "1", "10", currency="EUR")],
            )


# =============================================================================
# VALUE CALCULATOR
# =============================================================================

class TestQuoteConvention:
    """Tests for apply_quote_convention."""

    def test_per_unit_unchanged(self):
        assert apply_quote_convention(Decimal("98.5"), QuoteConvention.PER_UNIT) == Decimal("98.5")

    def test_per_hundred_always_divides(self):
        assert apply_quote_convention(Decimal("1.5"), QuoteConvention.PER_HUNDRED) == Decimal("0.015")

    def test_above_par_heuristic(self):
        convention = QuoteConvention.PER_HUNDRED_ABOVE_PAR

        assert apply_quote_convention(Decimal("98.5"), convention) == Decimal("0.985")
        assert apply_quote_convention(Decimal("2.0"), convention) == Decimal("2.0")
        assert apply_quote_convention(Decimal("0.97"), convention) == Decimal("0.97")


class TestValueCalculator:
    """Tests for price resolution."""

    def test_recent_price_record_preferred(self, usd_normalizer, stock_instrument):
        calc = ValueCalculator(usd_normalizer)

        price = calc.resolve_price(
            stock_instrument,
            [PriceRecord("inst-1", date(2024, 6, 27), Decimal("13"), "USD")],
            AS_OF,
        )

        assert price.price == Decimal("13")
        assert price.source == "price_record"
        assert price.price_date == date(2024, 6, 27)

    def test_most_recent_record_wins(self, usd_normalizer, stock_instrument):
        calc = ValueCalculator(usd_normalizer)

        price = calc.resolve_price(
            stock_instrument,
            [
                PriceRecord("inst-1", date(2024, 6, 29), Decimal("14"), "USD"),
                PriceRecord("inst-1", date(2024, 6, 25), Decimal("13"), "USD"),
            ],
            AS_OF,
        )

        assert price.price == Decimal("14")

    def test_stale_record_falls_back_to_last_price(self, usd_normalizer, stock_instrument):
        calc = ValueCalculator(usd_normalizer, freshness_days=7)

        price = calc.resolve_price(
            stock_instrument,
            [PriceRecord("inst-1", date(2024, 6, 1), Decimal("99"), "USD")],
            AS_OF,
        )

        assert price.price == Decimal("12")
        assert price.source == "last_price"

    def test_record_after_as_of_ignored(self, usd_normalizer, stock_instrument):
        calc = ValueCalculator(usd_normalizer)

        price = calc.resolve_price(
            stock_instrument,
            [PriceRecord("inst-1", date(2024, 7, 2), Decimal("99"), "USD")],
            AS_OF,
        )

        assert price.source == "last_price"

    def test_no_price_at_all(self, usd_normalizer):
        instrument = Instrument("x", "NOPX", None, "STOCK", None, "USD")

        price = ValueCalculator(usd_normalizer).resolve_price(instrument, [], AS_OF)

        assert not price.is_available
        assert price.source == "unavailable"
        assert "NOPX" in price.warnings[0]
        assert ValueCalculator.market_value(Decimal("10"), price) is None

    def test_price_converted_at_its_date(self, ars_normalizer):
        instrument = Instrument("x", "GGAL", None, "STOCK", None, "ARS", Decimal("6000"), date(2024, 6, 28))

        price = ValueCalculator(ars_normalizer).resolve_price(instrument, [], AS_OF)

        assert price.price == Decimal("5")
        assert price.native_price == Decimal("6000")
        assert price.native_currency == "ARS"

    def test_bond_quoted_per_hundred(self, usd_normalizer, bond_instrument):
        calc = ValueCalculator(usd_normalizer, quote_convention_for=per_type({"ON": QuoteConvention.PER_HUNDRED}))

        price = calc.resolve_price(bond_instrument, [], AS_OF)

        assert price.price == Decimal("0.985")
        assert calc.market_value(Decimal("1000"), price) == Decimal("985")

    def test_high_per_unit_price_not_rescaled(self, usd_normalizer):
        """A stock at 450 stays 450: only configured types are per 100."""
        instrument = Instrument("x", "SPY", None, "ETF", None, "USD", Decimal("450"), date(2024, 6, 28))
        calc = ValueCalculator(usd_normalizer, quote_convention_for=per_type({"ON": QuoteConvention.PER_HUNDRED}))

        assert calc.resolve_price(instrument, [], AS_OF).price == Decimal("450")

    def test_par_threshold_checked_on_native_quote(self, ars_normalizer):
        """ARS 1200 per 100 nominal is 12 ARS per unit, 0.01 USD at 1200."""
        instrument = Instrument("x", "TX26", None, "TREASURY", None, "ARS", Decimal("1200"), date(2024, 6, 28))
        calc = ValueCalculator(
            ars_normalizer,
            quote_convention_for=per_type({"TREASURY": QuoteConvention.PER_HUNDRED_ABOVE_PAR}),
        )

        price = calc.resolve_price(instrument, [], AS_OF)

        assert price.price == Decimal("0.01")
        assert price.native_price == Decimal("1200")

    def test_par_quote_below_threshold_kept_per_unit(self, usd_normalizer):
        instrument = Instrument("x", "AL30D", None, "TREASURY", None, "USD", Decimal("1.02"), date(2024, 6, 28))
        calc = ValueCalculator(
            usd_normalizer,
            quote_convention_for=per_type({"TREASURY": QuoteConvention.PER_HUNDRED_ABOVE_PAR}),
        )

        assert calc.resolve_price(instrument, [], AS_OF).price == Decimal("1.02")


# =============================================================================
# P&L CALCULATORS
# =============================================================================

class TestUnrealizedPnLCalculator:
    """Tests for UnrealizedPnLCalculator."""

    def test_gain(self):
        amount, ratio = UnrealizedPnLCalculator().calculate(Decimal("603"), Decimal("720"))

        assert amount == Decimal("117")
        assert ratio == Decimal("117") / Decimal("603")

    def test_unknown_value(self):
        assert UnrealizedPnLCalculator().calculate(Decimal("603"), None) == (None, None)

    def test_zero_cost_basis(self):
        amount, ratio = UnrealizedPnLCalculator().calculate(Decimal("0"), Decimal("10"))

        assert amount == Decimal("10")
        assert ratio is None


class TestRealizedPnLCalculator:
    """Tests for RealizedPnLCalculator."""

    def test_no_sales(self):
        assert RealizedPnLCalculator().calculate([]) == (Decimal("0"), None)

    def test_realized_ratio(self, usd_normalizer, stock_instrument, make_transaction):
        position = PositionCalculator(usd_normalizer).calculate(
            stock_instrument,
            [
                make_transaction(BUY, "100", "10", "5"),
                make_transaction(SELL, "40", "12", "2", on=date(2024, 4, 10)),
            ],
        )

        amount, ratio = RealizedPnLCalculator().calculate(position.lots.closed_lots)

        assert amount == Decimal("76")
        assert ratio == Decimal("76") / Decimal("402")


# =============================================================================
# CASHFLOW CALCULATOR
# =============================================================================

class TestCashflowCalculator:
    """Tests for cashflow buckets and upcoming payments."""

    def test_buckets(self, usd_normalizer, make_cashflow):
        calc = CashflowCalculator(usd_normalizer)

        buckets = calc.calculate(
            [
                make_cashflow("10", on=date(2024, 3, 1), type=CashflowType.INTEREST),
                make_cashflow("100", on=date(2024, 3, 1), type=CashflowType.AMORTIZATION),
                make_cashflow("8", on=date(2024, 9, 1), type=CashflowType.INTEREST,
                              status=CashflowStatus.PROJECTED),
                make_cashflow("100", on=date(2024, 9, 1), type=CashflowType.AMORTIZATION,
                              status=CashflowStatus.PROJECTED),
            ],
            AS_OF,
        )

        assert buckets.interest_collected == Decimal("10")
        assert buckets.capital_collected == Decimal("100")
        assert buckets.interest_pending == Decimal("8")
        assert buckets.capital_pending == Decimal("100")
        assert buckets.total_collected == Decimal("110")
        assert buckets.total_pending == Decimal("108")

    def test_past_projected_counts_as_collected(self, usd_normalizer, make_cashflow):
        cf = make_cashflow("10", on=date(2024, 6, 1), status=CashflowStatus.PROJECTED)

        buckets = CashflowCalculator(usd_normalizer).calculate([cf], AS_OF)

        assert buckets.interest_collected == Decimal("10")
        assert buckets.interest_pending == Decimal("0")

    def test_projected_on_as_of_is_collected(self, usd_normalizer, make_cashflow):
        cf = make_cashflow("10", on=AS_OF, status=CashflowStatus.PROJECTED)

        assert CashflowCalculator(usd_normalizer).is_collected(cf, AS_OF)

    def test_policy_can_be_disabled(self, usd_normalizer, make_cashflow):
        cf = make_cashflow("10", on=date(2024, 6, 1), status=CashflowStatus.PROJECTED)

        buckets = CashflowCalculator(usd_normalizer, projected_past_is_collected=False).calculate(
            [cf], AS_OF
        )

        assert buckets.interest_pending == Decimal("10")

    def test_paid_future_dated_is_collected(self, usd_normalizer, make_cashflow):
        cf = make_cashflow("10", on=date(2024, 8, 1), status=CashflowStatus.PAID)

        assert CashflowCalculator(usd_normalizer).is_collected(cf, AS_OF)

    def test_upcoming_only_future_projected(self, usd_normalizer, bond_instrument, make_cashflow):
        cashflows = [
            make_cashflow("5", on=date(2024, 12, 1), status=CashflowStatus.PROJECTED, id="dec"),
            make_cashflow("5", on=date(2024, 9, 1), status=CashflowStatus.PROJECTED, id="sep"),
            make_cashflow("5", on=date(2024, 6, 1), status=CashflowStatus.PROJECTED, id="jun"),
            make_cashflow("5", on=date(2024, 10, 1), status=CashflowStatus.PAID, id="paid"),
        ]

        upcoming = CashflowCalculator(usd_normalizer).upcoming(bond_instrument, cashflows, AS_OF)

        assert [p.cashflow_id for p in upcoming] == ["sep", "dec"]
        assert upcoming[0].ticker == "YMCXO"

    def test_upcoming_normalized_at_latest(self, ars_normalizer, bond_instrument, make_cashflow):
        cf = make_cashflow("12000", on=date(2024, 9, 1), currency="ARS", status=CashflowStatus.PROJECTED)

        payment = CashflowCalculator(ars_normalizer).upcoming(bond_instrument, [cf], AS_OF)[0]

        assert payment.amount == Decimal("12000")
        assert payment.currency == "ARS"
        assert payment.normalized_amount == Decimal("10")


# =============================================================================
# YIELD CALCULATOR
# =============================================================================

class TestYieldCalculator:
    """Tests for theoretical yield."""

    def test_theoretical_yield(self, usd_normalizer, make_cashflow):
        """Pay 985 today, receive 1050 in one year: about 6.6%."""
        cashflows = [
            make_cashflow("1050", on=date(2025, 6, 30), type=CashflowType.AMORTIZATION,
                          status=CashflowStatus.PROJECTED),
            make_cashflow("30", on=date(2024, 3, 1)),
        ]

        result = YieldCalculator(usd_normalizer).theoretical_yield(Decimal("985"), cashflows, AS_OF)

        assert result is not None
        assert float(result) == pytest.approx(1050 / 985 - 1, abs=1e-5)

    def test_no_future_cashflows(self, usd_normalizer):
        assert YieldCalculator(usd_normalizer).theoretical_yield(Decimal("985"), [], AS_OF) is None

    def test_unknown_or_zero_value(self, usd_normalizer, make_cashflow):
        cashflows = [make_cashflow("10", on=date(2025, 1, 1), status=CashflowStatus.PROJECTED)]
        calc = YieldCalculator(usd_normalizer)

        assert calc.theoretical_yield(None, cashflows, AS_OF) is None
        assert calc.theoretical_yield(Decimal("0"), cashflows, AS_OF) is None
