# portfolio_accounting/services/valuation/flows.py
"""
Signed cash-flow construction.

Every XIRR input in the engine (per instrument, consolidated, theoretical)
is built here so the sign convention cannot drift between them:

    BUY       → -(quantity × price + commission)   money put in
    SELL      → +(quantity × price - commission)   money back
    Cashflow  → +amount                             coupon / amortization
    Purchase  → -market_value                       theoretical entry

Amounts are in the reference currency.
"""

from datetime import date
from decimal import Decimal
from typing import Iterable

from portfolio_accounting.models import (
    Cashflow,
    CashflowStatus,
    Transaction,
    TransactionType,
)
from portfolio_accounting.services.analytics.types import SignedFlow
from portfolio_accounting.services.currency import CurrencyNormalizer


def to_signed_flow(transaction: Transaction) -> SignedFlow:
    """
    Signed flow of a transaction already normalized to the reference currency.
    """
    if transaction.type == TransactionType.BUY:
        amount = -(transaction.gross_amount + transaction.commission)
    else:
        amount = transaction.gross_amount - transaction.commission
    return SignedFlow(date=transaction.date, amount=amount)


def cashflow_to_signed_flow(
        cashflow: Cashflow,
        normalizer: CurrencyNormalizer,
        as_of: date,
) -> SignedFlow:
    """
    Signed flow of a cashflow.

    Past-dated cashflows use the rate of their own date; future ones the
    latest known rate.
    """
    fx = normalizer.rate_for_timeline(cashflow.currency, cashflow.date, as_of)
    return SignedFlow(date=cashflow.date, amount=fx.convert(cashflow.amount))


def personal_flows(
        transactions: Iterable[Transaction],
        cashflows: Iterable[Cashflow],
        normalizer: CurrencyNormalizer,
        as_of: date,
) -> list[SignedFlow]:
    """
    The investor's own flows for one instrument.

    Args:
        transactions: Normalized transactions
        cashflows: Native-currency cashflows (PAID and PROJECTED)
        normalizer: Converts cashflow amounts
        as_of: Splits historical from latest-rate conversion
    """
    flows = [to_signed_flow(txn) for txn in transactions]
    flows.extend(cashflow_to_signed_flow(cf, normalizer, as_of) for cf in cashflows)
    return flows


def theoretical_flows(
        market_value: Decimal,
        cashflows: Iterable[Cashflow],
        normalizer: CurrencyNormalizer,
        as_of: date,
) -> list[SignedFlow]:
    """
    Flows of buying the whole position at market value on as_of.

    Only PROJECTED cashflows after as_of are received; they are converted
    at the latest known rate.
    """
    flows = [SignedFlow(date=as_of, amount=-market_value)]
    for cf in cashflows:
        if cf.status == CashflowStatus.PROJECTED and cf.date > as_of:
            flows.append(
                SignedFlow(
                    date=cf.date,
                    amount=normalizer.normalize_at_latest(cf.amount, cf.currency),
                )
            )
    return flows
