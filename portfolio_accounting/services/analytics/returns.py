# portfolio_accounting/services/analytics/returns.py
"""
Money-weighted return (XIRR) for irregularly dated cash flows.

XIRR solves:
    Σ CF_i / (1 + r)^((d_i - d_0) / 365) = 0

where d_0 is the earliest flow date.

Solver:
    1. Newton-Raphson from several initial guesses (0.1, 0.05, 0.01, -0.1, 0.2)
    2. Bisection on [-99%, +1000%] if no guess converges
    3. None if neither finds a root

"No result" is a normal outcome (an instrument still held has only
outflows), so degenerate input returns None instead of raising. Only a
malformed date is an error.

Precision Note (Decimal vs Float):
    The solver operates in float for performance (exponentials in every
    iteration). The result is converted back to Decimal with 8 decimal
    places, which is far below any meaningful difference in an annual rate.
"""

import logging
import math
from datetime import date
from decimal import Decimal, ROUND_HALF_UP
from typing import Sequence

from portfolio_accounting.services.analytics.types import SignedFlow
from portfolio_accounting.services.constants import (
    CALENDAR_DAYS_PER_YEAR,
    IRR_BISECTION_ITERATIONS,
    IRR_INITIAL_GUESSES,
    IRR_LOWER_BOUND,
    IRR_MAX_ITERATIONS,
    IRR_TOLERANCE,
    IRR_UPPER_BOUND,
    RATE_PRECISION,
)
from portfolio_accounting.services.exceptions import ValidationError

logger = logging.getLogger(__name__)

# (years since first flow, amount)
_Flow = tuple[float, float]


# =============================================================================
# NET PRESENT VALUE
# =============================================================================

def xnpv(rate: float, cash_flows: Sequence[SignedFlow]) -> float:
    """
    Net present value of dated flows at an annual rate.

    Flows are discounted to the earliest flow date.

    Args:
        rate: Annual discount rate as decimal (0.1 = 10%), must be > -1
        cash_flows: Dated signed flows

    Returns:
        NPV as float (0.0 for an empty list)
    """
    if rate <= -1:
        raise ValueError(f"Rate must be greater than -1, got {rate}")
    if not cash_flows:
        return 0.0
    return _npv(_prepare(cash_flows), rate)


def _prepare(cash_flows: Sequence[SignedFlow]) -> list[_Flow]:
    """Validate dates and convert to (years, amount) pairs."""
    for cf in cash_flows:
        if not isinstance(cf.date, date):
            raise ValidationError(
                f"Cash flow date must be a date, got {cf.date!r}",
                field="date",
            )

    base_date = min(cf.date for cf in cash_flows)
    return [
        (
            (cf.date - base_date).days / CALENDAR_DAYS_PER_YEAR,
            float(cf.amount),
        )
        for cf in sorted(cash_flows, key=lambda x: x.date)
    ]


def _npv(flows: list[_Flow], rate: float) -> float:
    return sum(amount / (1 + rate) ** years for years, amount in flows)


def _npv_and_derivative(flows: list[_Flow], rate: float) -> tuple[float, float]:
    npv = 0.0
    derivative = 0.0
    for years, amount in flows:
        discount = (1 + rate) ** years
        npv += amount / discount
        # d/dr [CF / (1+r)^t] = -t * CF / (1+r)^(t+1)
        derivative -= years * amount / (discount * (1 + rate))
    return npv, derivative


# =============================================================================
# XIRR
# =============================================================================

def calculate_xirr(
        cash_flows: Sequence[SignedFlow],
        max_iterations: int = IRR_MAX_ITERATIONS,
        tolerance: float = IRR_TOLERANCE,
) -> Decimal | None:
    """
    Calculate Extended Internal Rate of Return (XIRR).

    Args:
        cash_flows: Dated signed flows (any order)
        max_iterations: Newton-Raphson iterations per initial guess
        tolerance: Convergence tolerance on |NPV|

    Returns:
        XIRR as decimal (e.g., 0.18 = 18%), or None if:
        - fewer than 2 flows
        - flows are not of mixed sign
        - an amount is NaN/Infinity
        - no root was found

    Raises:
        ValidationError: If a flow date is not a date

    Example:
        flows = [
            SignedFlow(date(2023, 1, 1), Decimal("-1000")),
            SignedFlow(date(2024, 1, 1), Decimal("1100")),
        ]
        calculate_xirr(flows)  # Decimal("0.10000000")
    """
    if len(cash_flows) < 2:
        return None

    flows = _prepare(cash_flows)

    if not all(math.isfinite(amount) for _, amount in flows):
        logger.warning("XIRR skipped: non-finite cash flow amount")
        return None

    has_positive = any(amount > 0 for _, amount in flows)
    has_negative = any(amount < 0 for _, amount in flows)
    if not (has_positive and has_negative):
        logger.debug("XIRR requires both positive and negative cash flows")
        return None

    for guess in IRR_INITIAL_GUESSES:
        rate = _newton_raphson(flows, guess, max_iterations, tolerance)
        if rate is not None:
            return _to_decimal(rate)

    rate = _bisection(flows, IRR_LOWER_BOUND, IRR_UPPER_BOUND, tolerance)
    if rate is not None:
        logger.debug(f"XIRR converged by bisection at {rate:.8f}")
        return _to_decimal(rate)

    logger.warning(
        f"XIRR did not converge ({len(flows)} flows, "
        f"{max_iterations} iterations per guess, bisection failed)"
    )
    return None


def _newton_raphson(
        flows: list[_Flow],
        guess: float,
        max_iterations: int,
        tolerance: float,
) -> float | None:
    rate = guess

    for _ in range(max_iterations):
        try:
            npv, derivative = _npv_and_derivative(flows, rate)
        except (OverflowError, ZeroDivisionError):
            return None

        if not (math.isfinite(npv) and math.isfinite(derivative)):
            return None

        if abs(npv) < tolerance:
            return rate

        if derivative == 0:
            return None

        rate = rate - npv / derivative

        # Keep the iterate inside the domain of (1 + r)^t
        if rate < IRR_LOWER_BOUND:
            rate = IRR_LOWER_BOUND
        elif rate > IRR_UPPER_BOUND:
            rate = IRR_UPPER_BOUND

    return None


def _bisection(
        flows: list[_Flow],
        low: float,
        high: float,
        tolerance: float,
) -> float | None:
    try:
        f_low = _npv(flows, low)
        f_high = _npv(flows, high)
    except (OverflowError, ZeroDivisionError):
        return None

    if not (math.isfinite(f_low) and math.isfinite(f_high)):
        return None
    if f_low * f_high > 0:
        return None

    for _ in range(IRR_BISECTION_ITERATIONS):
        mid = (low + high) / 2
        f_mid = _npv(flows, mid)

        if abs(f_mid) < tolerance or (high - low) / 2 < 1e-12:
            return mid

        if (f_mid < 0) == (f_low < 0):
            low, f_low = mid, f_mid
        else:
            high = mid

    return None


def _to_decimal(rate: float) -> Decimal:
    return Decimal(str(rate)).quantize(RATE_PRECISION, rounding=ROUND_HALF_UP)
