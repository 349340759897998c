# portfolio_accounting/config.py
"""
Engine configuration using Pydantic Settings.

Loads configuration from environment variables with validation:
- ENVIRONMENT: Runtime mode (development, test, production)
- REFERENCE_CURRENCY: Currency every amount is normalized into
- FX_FALLBACK_DAYS: Backward search window for missing exchange rates
- DEFAULT_FX_RATES: Last-resort rates per currency (JSON object)

Configuration is validated on first use. Invalid configuration
will raise a ValueError with a descriptive message.

Usage:
    from portfolio_accounting.config import settings

    normalizer = CurrencyNormalizer.from_points(
        reference_currency=settings.reference_currency,
        ...
    )
"""
from decimal import Decimal
from enum import Enum
from pathlib import Path
from typing import Literal

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


_PROJECT_ROOT = Path(__file__).resolve().parent.parent
_ENV_FILE = _PROJECT_ROOT / ".env"


class QuoteConvention(str, Enum):
    """
    How a market price for an instrument type is quoted.

    PER_UNIT:              price is per unit held
    PER_HUNDRED:           price is per 100 nominal (percentage of par)
    PER_HUNDRED_ABOVE_PAR: legacy feeds that mix both; prices above
                           PAR_QUOTE_THRESHOLD are read as per 100
    """

    PER_UNIT = "PER_UNIT"
    PER_HUNDRED = "PER_HUNDRED"
    PER_HUNDRED_ABOVE_PAR = "PER_HUNDRED_ABOVE_PAR"


class Settings(BaseSettings):
    """
    Engine settings loaded from environment variables.

    Environment variables:
        - ENVIRONMENT: Runtime environment (development, test, production)
        - LOG_LEVEL: Logging level (default: "INFO")
        - LOG_FORMAT: "text" or "json" (default: "text")
        - REFERENCE_CURRENCY: Normalization target (default: "USD")

    Accounting policy (optional, with defaults matching the ledger's history):
        - FX_FALLBACK_DAYS: Days to search backward for a rate (default: 10)
        - DEFAULT_FX_RATES: {"ARS": "1200"} style JSON object
        - PRICE_FRESHNESS_DAYS: Max age of a price record (default: 7)
        - UPCOMING_PAYMENTS_LIMIT: Page size for upcoming payments (default: 200)
        - PROJECTED_PAST_IS_COLLECTED: Report-lag policy (default: True)
        - QUOTE_CONVENTIONS: {"ON": "PER_HUNDRED"} style JSON object
    """

    environment: Literal["development", "test", "production"] = Field(
        default="development",
        description="Runtime environment (development, test, production)"
    )

    log_level: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)"
    )
    log_format: Literal["text", "json"] = Field(
        default="text",
        description="Log output format"
    )

    # =========================================================================
    # CURRENCY NORMALIZATION
    # =========================================================================
    reference_currency: str = Field(
        default="USD",
        min_length=3,
        max_length=3,
        description="ISO code every amount is normalized into"
    )
    fx_fallback_days: int = Field(
        default=10,
        ge=0,
        le=366,
        description="Days to search backward when a rate is missing"
    )
    default_fx_rates: dict[str, Decimal] = Field(
        default={"ARS": Decimal("1200")},
        description="Rate used when a currency has no history at all"
    )

    # =========================================================================
    # PRICES
    # =========================================================================
    price_freshness_days: int = Field(
        default=7,
        ge=0,
        description="Price records older than this fall back to last_price"
    )
    quote_conventions: dict[str, QuoteConvention] = Field(
        default={
            "ON": QuoteConvention.PER_HUNDRED,
            "CORPORATE_BOND": QuoteConvention.PER_HUNDRED,
        },
        description="Quoting convention per instrument type"
    )

    # =========================================================================
    # AGGREGATION POLICY
    # =========================================================================
    upcoming_payments_limit: int = Field(
        default=200,
        ge=1,
        le=10_000,
        description="Maximum upcoming payments returned"
    )
    projected_past_is_collected: bool = Field(
        default=True,
        description="Treat PROJECTED cashflows dated on/before as-of as collected"
    )

    # =========================================================================
    # XIRR SOLVER
    # =========================================================================
    xirr_max_iterations: int = Field(default=100, ge=1, le=10_000)
    xirr_tolerance: float = Field(default=1e-6, gt=0)

    model_config = SettingsConfigDict(
        env_file=str(_ENV_FILE) if _ENV_FILE.exists() else None,
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    @field_validator("reference_currency")
    @classmethod
    def normalize_reference_currency(cls, v: str) -> str:
        """Normalize currency: trim whitespace and uppercase."""
        return v.strip().upper()

    @field_validator("default_fx_rates")
    @classmethod
    def validate_default_rates(cls, v: dict[str, Decimal]) -> dict[str, Decimal]:
        """Default rates are divisors, so they must be strictly positive."""
        normalized: dict[str, Decimal] = {}
        for currency, rate in v.items():
            if not rate.is_finite() or rate <= 0:
                raise ValueError(
                    f"Default FX rate for {currency} must be a positive number, got {rate}"
                )
            normalized[currency.strip().upper()] = rate
        return normalized

    @field_validator("quote_conventions")
    @classmethod
    def normalize_instrument_types(
            cls,
            v: dict[str, QuoteConvention],
    ) -> dict[str, QuoteConvention]:
        return {key.strip().upper(): value for key, value in v.items()}

    @model_validator(mode="after")
    def validate_reference_not_defaulted(self) -> "Settings":
        """
        The reference currency never needs a rate.

        A default for it would be silently ignored, which usually means the
        configuration was written for a different reference currency.
        """
        if self.reference_currency in self.default_fx_rates:
            raise ValueError(
                f"DEFAULT_FX_RATES contains the reference currency "
                f"{self.reference_currency}; remove it or change REFERENCE_CURRENCY"
            )
        return self

    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.environment == "production"

    @property
    def is_test(self) -> bool:
        """Check if running in test environment."""
        return self.environment == "test"

    def quote_convention_for(self, instrument_type: str | None) -> QuoteConvention:
        """Quoting convention for an instrument type (PER_UNIT if unknown)."""
        if not instrument_type:
            return QuoteConvention.PER_UNIT
        return self.quote_conventions.get(
            instrument_type.strip().upper(), QuoteConvention.PER_UNIT
        )


# Create single instance
settings = Settings()
