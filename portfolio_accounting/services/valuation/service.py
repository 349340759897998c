# portfolio_accounting/services/valuation/service.py
"""
Portfolio Aggregator - Main orchestrator for portfolio statistics.

This is the single entry point for the accounting engine:
- aggregate(): Complete statistics for one user's ledger snapshot
- value_instrument(): Enriched valuation of a single instrument

Design Principles:
- Pure: works on an immutable LedgerSnapshot, no I/O, no clock
- Explicit time: every call takes as_of
- Deterministic: instruments are processed in id order
- Failure isolation: an instrument with FX, inventory or record errors is
  reported in failed_instruments and left out of the totals; other errors
  propagate
- Composable: Uses specialized calculators for each task

Usage:
    from portfolio_accounting.services.valuation import PortfolioAggregator

    aggregator = PortfolioAggregator()
    stats = aggregator.aggregate(snapshot, as_of=date(2024, 6, 30))

    stats.consolidated_xirr
    stats.portfolio_breakdown
    stats.failed_instruments
"""

from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Sequence

from portfolio_accounting.config import Settings, settings as default_settings
from portfolio_accounting.models import (
    Cashflow,
    Instrument,
    LedgerSnapshot,
    PriceRecord,
    Transaction,
)
from portfolio_accounting.services.analytics import SignedFlow
from portfolio_accounting.services.constants import ZERO
from portfolio_accounting.services.currency import CurrencyNormalizer
from portfolio_accounting.services.exceptions import (
    FXRateError,
    InstrumentNotFoundError,
    InventoryError,
    ValidationError,
)
from portfolio_accounting.services.valuation.calculators import (
    CashflowCalculator,
    PositionCalculator,
    ValueCalculator,
    YieldCalculator,
    calculate_pnl,
)
from portfolio_accounting.services.valuation.flows import personal_flows
from portfolio_accounting.services.valuation.types import (
    AggregateStatistics,
    BreakdownEntry,
    CashflowBuckets,
    InstrumentFailure,
    InstrumentValuation,
    PortfolioPnL,
    UpcomingPayment,
)
from portfolio_accounting.utils.context import calculation_scope

logger = logging.getLogger(__name__)


@dataclass
class _InstrumentOutcome:
    """Per-instrument intermediates the portfolio totals are built from."""

    valuation: InstrumentValuation
    flows: list[SignedFlow]
    buckets: CashflowBuckets
    upcoming: list[UpcomingPayment]


class PortfolioAggregator:
    """
    Computes portfolio statistics from a ledger snapshot.

    One aggregator can serve many snapshots; per-run state (the currency
    normalizer and the calculators bound to it) is built inside aggregate().

    Attributes:
        _settings: Accounting policy (reference currency, FX fallback,
                   price freshness, quoting conventions, XIRR solver)
    """

    def __init__(self, config: Settings | None = None) -> None:
        """
        Initialize the aggregator.

        Args:
            config: Accounting policy. Defaults to the environment settings.
        """
        self._settings = config or default_settings

    # =========================================================================
    # PUBLIC API
    # =========================================================================

    def build_normalizer(self, snapshot: LedgerSnapshot) -> CurrencyNormalizer:
        """Currency normalizer over the snapshot's rate history."""
        return CurrencyNormalizer.from_points(
            reference_currency=self._settings.reference_currency,
            rates=snapshot.rates,
            default_rates=self._settings.default_fx_rates,
            max_fallback_days=self._settings.fx_fallback_days,
        )

    def aggregate(self, snapshot: LedgerSnapshot, as_of: date) -> AggregateStatistics:
        """
        Compute every statistic for one snapshot.

        Args:
            snapshot: Validated, immutable ledger data
            as_of: Valuation date; separates collected from pending and
                   historical from latest-rate conversion

        Returns:
            AggregateStatistics (totals exclude failed instruments)
        """
        with calculation_scope(as_of=as_of.isoformat()):
            normalizer = self.build_normalizer(snapshot)

            txns_by_instrument: dict[str, list[Transaction]] = defaultdict(list)
            for txn in snapshot.transactions:
                txns_by_instrument[txn.instrument_id].append(txn)

            cfs_by_instrument: dict[str, list[Cashflow]] = defaultdict(list)
            for cf in snapshot.cashflows:
                cfs_by_instrument[cf.instrument_id].append(cf)

            prices_by_instrument: dict[str, list[PriceRecord]] = defaultdict(list)
            for price in snapshot.prices:
                prices_by_instrument[price.instrument_id].append(price)

            instrument_ids = sorted(set(txns_by_instrument) | set(cfs_by_instrument))

            logger.info(
                f"Aggregating {len(instrument_ids)} instruments, "
                f"{len(snapshot.transactions)} transactions, "
                f"{len(snapshot.cashflows)} cashflows as of {as_of}"
            )

            outcomes: list[_InstrumentOutcome] = []
            failures: list[InstrumentFailure] = []

            for instrument_id in instrument_ids:
                instrument = snapshot.instruments.get(instrument_id)
                try:
                    if instrument is None:
                        raise InstrumentNotFoundError(instrument_id)
                    outcomes.append(
                        self._evaluate(
                            normalizer,
                            instrument,
                            txns_by_instrument.get(instrument_id, []),
                            cfs_by_instrument.get(instrument_id, []),
                            prices_by_instrument.get(instrument_id, []),
                            as_of,
                        )
                    )
                except (
                        FXRateError,
                        InventoryError,
                        InstrumentNotFoundError,
                        ValidationError,
                ) as e:
                    logger.warning(
                        f"Excluding instrument {instrument_id} from aggregate: {e}"
                    )
                    failures.append(
                        InstrumentFailure(
                            instrument_id=instrument_id,
                            ticker=instrument.ticker if instrument else None,
                            error_type=type(e).__name__,
                            message=str(e),
                        )
                    )

            stats = self._combine(
                normalizer=normalizer,
                outcomes=outcomes,
                failures=failures,
                snapshot=snapshot,
                as_of=as_of,
            )

            logger.info(
                f"Aggregate complete: {len(stats.instruments)} instruments valued, "
                f"{len(failures)} failed, {len(snapshot.rejected)} records rejected, "
                f"capital invested {stats.capital_invested:.2f} {stats.reference_currency}"
            )

            return stats

    def value_instrument(
            self,
            snapshot: LedgerSnapshot,
            instrument_id: str,
            as_of: date,
    ) -> InstrumentValuation:
        """
        Enriched valuation of one instrument.

        Raises:
            InstrumentNotFoundError: Unknown instrument id
            FXRateError: A required rate is missing or invalid
            InventoryInconsistencyError: A SELL exceeds the open quantity
            ValidationError: A transaction has a non-positive quantity or a
                             negative commission
        """
        instrument = snapshot.instruments.get(instrument_id)
        if instrument is None:
            raise InstrumentNotFoundError(instrument_id)

        outcome = self._evaluate(
            self.build_normalizer(snapshot),
            instrument,
            snapshot.transactions_for(instrument_id),
            snapshot.cashflows_for(instrument_id),
            [p for p in snapshot.prices if p.instrument_id == instrument_id],
            as_of,
        )
        return outcome.valuation

    # =========================================================================
    # PRIVATE HELPERS
    # =========================================================================

    def _evaluate(
            self,
            normalizer: CurrencyNormalizer,
            instrument: Instrument,
            transactions: Sequence[Transaction],
            cashflows: Sequence[Cashflow],
            prices: Sequence[PriceRecord],
            as_of: date,
    ) -> _InstrumentOutcome:
        """Value one instrument. FX and inventory errors propagate."""
        position = PositionCalculator(normalizer).calculate(instrument, transactions)
        value_calc = ValueCalculator(
            normalizer,
            quote_convention_for=self._settings.quote_convention_for,
            freshness_days=self._settings.price_freshness_days,
        )
        cashflow_calc = CashflowCalculator(
            normalizer,
            projected_past_is_collected=self._settings.projected_past_is_collected,
        )
        yield_calc = YieldCalculator(
            normalizer,
            max_iterations=self._settings.xirr_max_iterations,
            tolerance=self._settings.xirr_tolerance,
        )

        warnings = list(position.warnings)
        complete = True

        if position.has_position:
            price = value_calc.resolve_price(instrument, prices, as_of)
            warnings.extend(price.warnings)
            market_value = value_calc.market_value(position.quantity, price)
            if market_value is None:
                complete = False
        else:
            price = None
            market_value = ZERO

        flows = personal_flows(position.transactions, cashflows, normalizer, as_of)
        buckets = cashflow_calc.calculate(cashflows, as_of)
        upcoming = cashflow_calc.upcoming(instrument, cashflows, as_of)

        theoretical = None
        if position.has_position:
            theoretical = yield_calc.theoretical_yield(market_value, cashflows, as_of)

        valuation = InstrumentValuation(
            instrument_id=instrument.id,
            ticker=instrument.ticker,
            name=instrument.name,
            type=instrument.type,
            market=instrument.market,
            currency=instrument.currency,
            quantity=position.quantity,
            current_price=price.price if price else None,
            price_date=price.price_date if price else None,
            price_source=price.source if price else "not_held",
            market_value=market_value,
            cost_basis=position.cost_basis,
            realized_cost_basis=position.lots.realized_cost_basis,
            pnl=calculate_pnl(position, market_value),
            theoretical_yield=theoretical,
            personal_xirr=yield_calc.xirr(flows),
            open_lots=position.lots.open_lots,
            closed_lots=position.lots.closed_lots,
            transaction_count=len(transactions),
            warnings=warnings,
            has_complete_data=complete,
        )

        return _InstrumentOutcome(
            valuation=valuation,
            flows=flows,
            buckets=buckets,
            upcoming=upcoming,
        )

    def _combine(
            self,
            normalizer: CurrencyNormalizer,
            outcomes: list[_InstrumentOutcome],
            failures: list[InstrumentFailure],
            snapshot: LedgerSnapshot,
            as_of: date,
    ) -> AggregateStatistics:
        """Portfolio totals over the instruments that did not fail."""
        valuations = [o.valuation for o in outcomes]

        capital_invested = sum(
            (v.cost_basis for v in valuations if v.has_position), ZERO
        )
        total_current_value = sum(
            (v.market_value for v in valuations if v.has_position and v.market_value is not None),
            ZERO,
        )

        buckets = CashflowBuckets()
        for outcome in outcomes:
            buckets.add(outcome.buckets)

        if capital_invested > ZERO:
            roi = (buckets.total_collected + buckets.total_pending - capital_invested) / capital_invested
        else:
            roi = ZERO

        all_flows = [flow for o in outcomes for flow in o.flows]
        yield_calc = YieldCalculator(
            normalizer,
            max_iterations=self._settings.xirr_max_iterations,
            tolerance=self._settings.xirr_tolerance,
        )
        consolidated_xirr = yield_calc.xirr(all_flows)

        upcoming = sorted(
            (payment for o in outcomes for payment in o.upcoming),
            key=lambda p: (p.date, p.ticker, p.cashflow_id),
        )[: self._settings.upcoming_payments_limit]

        warnings = [w for v in valuations for w in v.warnings]
        if snapshot.rejected:
            warnings.append(f"{len(snapshot.rejected)} ledger records rejected at load")

        return AggregateStatistics(
            as_of=as_of,
            reference_currency=normalizer.reference_currency,
            instruments=valuations,
            capital_invested=capital_invested,
            cashflows=buckets,
            roi=roi,
            consolidated_xirr=consolidated_xirr,
            portfolio_breakdown=self._breakdown(valuations),
            upcoming_payments=upcoming,
            pnl=self._portfolio_pnl(valuations),
            total_current_value=total_current_value,
            total_transactions=sum(v.transaction_count for v in valuations),
            failed_instruments=failures,
            rejected_records=list(snapshot.rejected),
            warnings=warnings,
        )

    @staticmethod
    def _breakdown(valuations: list[InstrumentValuation]) -> list[BreakdownEntry]:
        """
        Per-instrument value and XIRR, largest value first.

        Instruments with no value and no XIRR are left out.
        """
        rows = []
        for v in valuations:
            value = v.market_value if v.has_position and v.market_value is not None else ZERO
            if value > ZERO or (v.personal_xirr is not None and v.personal_xirr != ZERO):
                rows.append((v, value))

        total = sum((value for _, value in rows), ZERO)
        rows.sort(key=lambda row: (-row[1], row[0].ticker, row[0].instrument_id))

        return [
            BreakdownEntry(
                instrument_id=v.instrument_id,
                ticker=v.ticker,
                name=v.name,
                type=v.type,
                value=value,
                xirr=v.personal_xirr,
                theoretical_yield=v.theoretical_yield,
                percentage=value / total if total > ZERO else ZERO,
            )
            for v, value in rows
        ]

    @staticmethod
    def _portfolio_pnl(valuations: list[InstrumentValuation]) -> PortfolioPnL:
        realized = sum((v.pnl.realized_amount for v in valuations), ZERO)
        realized_cost = sum((v.realized_cost_basis for v in valuations), ZERO)

        priced = [
            v for v in valuations
            if v.has_position and v.pnl.unrealized_amount is not None
        ]
        unrealized = sum((v.pnl.unrealized_amount for v in priced), ZERO)
        unrealized_cost = sum((v.cost_basis for v in priced), ZERO)

        return PortfolioPnL(
            realized_amount=realized,
            realized_cost_basis=realized_cost,
            realized_return=realized / realized_cost if realized_cost > ZERO else None,
            unrealized_amount=unrealized,
            unrealized_cost_basis=unrealized_cost,
            unrealized_return=unrealized / unrealized_cost if unrealized_cost > ZERO else None,
        )
