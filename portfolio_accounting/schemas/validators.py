# portfolio_accounting/schemas/validators.py
"""
Reusable validation functions for Pydantic schemas.

This module provides:
- Currency code validation and normalization
- Ticker normalization
- Date coercion (timestamps from the ledger store become calendar dates)
- Enum-style code normalization

These validators ensure consistent input handling across all record schemas.
"""

import re
from datetime import date, datetime

# =============================================================================
# CONSTANTS
# =============================================================================

# Currency: ISO 4217 format (3 uppercase letters)
CURRENCY_PATTERN = re.compile(r'^[A-Z]{3}$')

TICKER_MAX_LENGTH = 32


# =============================================================================
# CURRENCY VALIDATION
# =============================================================================

def validate_currency(value: str) -> str:
    """
    Validate and normalize a currency code.

    Args:
        value: Raw currency input (e.g., "usd", "ARS")

    Returns:
        Normalized currency (uppercase, trimmed)

    Raises:
        ValueError: If currency format is invalid
    """
    if not value:
        raise ValueError("Currency cannot be empty")

    normalized = value.strip().upper()

    if not CURRENCY_PATTERN.match(normalized):
        raise ValueError(
            f"Invalid currency format: '{normalized}'. "
            "Currency must be a 3-letter ISO code (e.g., USD, ARS)"
        )

    return normalized


# =============================================================================
# TICKER VALIDATION
# =============================================================================

def normalize_ticker(value: str) -> str:
    """
    Normalize a ticker symbol.

    Local tickers (YPFDD, AL30D, GD35) are accepted as-is apart from case
    and whitespace; only empty and overlong values are rejected.

    Raises:
        ValueError: If ticker is empty or too long
    """
    normalized = value.strip().upper() if value else ""
    if not normalized:
        raise ValueError("Ticker cannot be empty")
    if len(normalized) > TICKER_MAX_LENGTH:
        raise ValueError(f"Ticker cannot exceed {TICKER_MAX_LENGTH} characters")
    return normalized


# =============================================================================
# DATE / CODE COERCION
# =============================================================================

def coerce_date(value: object) -> object:
    """
    Reduce datetimes to their calendar date.

    Ledger stores hand back timestamps for day-level fields. Anything else
    passes through to Pydantic's own date parsing.
    """
    if isinstance(value, datetime):
        return value.date()
    return value


def normalize_code(value: object) -> object:
    """Uppercase and trim string codes (transaction type, status, ...)."""
    if isinstance(value, str):
        return value.strip().upper()
    return value


def validate_optional_date(value: date | None, field_name: str = "Date") -> date | None:
    """Reject implausibly old dates (usually a zero timestamp)."""
    if value is not None and value.year < 1900:
        raise ValueError(f"{field_name} is before 1900: {value}")
    return value
