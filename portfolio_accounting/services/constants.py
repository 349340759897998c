# portfolio_accounting/services/constants.py
"""
Centralized constants for the portfolio accounting services.

Single source of truth for the numeric conventions shared by the
normalizer, the lot matcher, the XIRR solver and the aggregator.
Tunable policy (fallback windows, report-lag policy) lives in
config.Settings instead; the values here are the defaults those settings
start from, plus fixed conventions that are not meant to be configured.

Usage:
    from portfolio_accounting.services.constants import (
        CALENDAR_DAYS_PER_YEAR,
        IRR_MAX_ITERATIONS,
        ZERO,
    )
"""

from decimal import Decimal


# =============================================================================
# FINANCIAL CALENDAR CONSTANTS
# =============================================================================

# Day-count basis for XIRR (actual/365)
CALENDAR_DAYS_PER_YEAR: int = 365


# =============================================================================
# FX FALLBACK SETTINGS
# =============================================================================

# Maximum days to look back when a rate is missing for the requested day.
# Rate series skip weekends, holidays and scraper outages.
FX_FALLBACK_DAYS: int = 10


# =============================================================================
# PRICE SETTINGS
# =============================================================================

# Price records older than this are ignored in favour of the instrument's
# stored last price
PRICE_FRESHNESS_DAYS: int = 7

# Legacy heuristic for par-quoted instruments: a price above this is read as
# "per 100 nominal". Only applied with QuoteConvention.PER_HUNDRED_ABOVE_PAR.
PAR_QUOTE_THRESHOLD: Decimal = Decimal("2.0")

# Divisor for prices quoted per 100 nominal
PAR_QUOTE_DIVISOR: Decimal = Decimal("100")


# =============================================================================
# IRR/XIRR CALCULATION SETTINGS
# =============================================================================

# Maximum Newton-Raphson iterations per initial guess
IRR_MAX_ITERATIONS: int = 100

# Convergence tolerance on |NPV(r)|
IRR_TOLERANCE: float = 1e-6

# Initial guesses tried in order before falling back to bisection
IRR_INITIAL_GUESSES: tuple[float, ...] = (0.1, 0.05, 0.01, -0.1, 0.2)

# Bisection bracket: -99% to +1000% annualized
IRR_LOWER_BOUND: float = -0.99
IRR_UPPER_BOUND: float = 10.0

# Maximum bisection halvings (bracket width shrinks below 1e-15)
IRR_BISECTION_ITERATIONS: int = 200


# =============================================================================
# AGGREGATION SETTINGS
# =============================================================================

# A PROJECTED cashflow dated on/before the as-of date counts as collected.
PROJECTED_PAST_IS_COLLECTED: bool = True


# =============================================================================
# DECIMAL PRECISION CONSTANTS
# =============================================================================

# Rates returned by the XIRR solver: 8 decimal places
RATE_PRECISION: Decimal = Decimal("0.00000001")


# =============================================================================
# UTILITY CONSTANTS
# =============================================================================

# Type-safe zero for Decimal comparisons
ZERO: Decimal = Decimal("0")

ONE: Decimal = Decimal("1")
