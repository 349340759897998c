# portfolio_accounting/services/analytics/types.py
"""
Data types for return calculations.

Architecture:
    - SignedFlow: One dated, signed amount in the reference currency
"""

from dataclasses import dataclass
from datetime import date
from decimal import Decimal


@dataclass(frozen=True)
class SignedFlow:
    """
    A dated cash movement from the investor's point of view.

    Attributes:
        date: When the money moved
        amount: Positive = money back to the investor (sale, coupon,
                amortization), Negative = money put in (purchase)

    Note:
        The XIRR root does not depend on the sign convention as long as it
        is applied consistently; every stream in this engine is built with
        valuation.flows so per-instrument and consolidated inputs agree.
    """

    date: date
    amount: Decimal
