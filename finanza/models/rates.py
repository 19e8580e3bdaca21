"""
Currency and Rate Table Models

A rate table maps a currency code to "units of base currency per 1 unit of
that currency". The base currency always maps to exactly 1.

CRITICAL: A RateTable is never edited in place. A refresh builds a new
table and swaps it in as a whole, or keeps the old one.
"""

from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator


class Currency(str, Enum):
    """Currencies the application can display."""
    TRY = "TRY"
    USD = "USD"
    EUR = "EUR"
    GBP = "GBP"
    CAD = "CAD"


class Theme(str, Enum):
    LIGHT = "light"
    DARK = "dark"


CURRENCY_SYMBOLS: dict[str, str] = {
    "TRY": "₺",
    "USD": "$",
    "EUR": "€",
    "GBP": "£",
    "CAD": "C$",
}

# Table the application starts with before the first refresh
DEFAULT_RATES: dict[str, Decimal] = {
    "TRY": Decimal("1"),
    "USD": Decimal("34"),
    "EUR": Decimal("37"),
    "GBP": Decimal("44"),
    "CAD": Decimal("25"),
}

# Per-currency values used when a fetched answer does not mention a currency
FALLBACK_RATES: dict[str, Decimal] = {
    "USD": Decimal("34.2"),
    "EUR": Decimal("37.1"),
    "GBP": Decimal("44.5"),
    "CAD": Decimal("25.1"),
}


def currency_symbol(code: str) -> str:
    """Symbol for a currency code, falling back to '$' like the UI always has."""
    return CURRENCY_SYMBOLS.get(code.upper(), "$")


class RateTable(BaseModel):
    """
    Immutable exchange rate table.

    rates[code] = base-currency units per 1 unit of `code`.
    """
    model_config = ConfigDict(frozen=True)

    base_currency: str = Field(
        default=Currency.TRY.value,
        min_length=3,
        max_length=3,
    )
    rates: dict[str, Decimal] = Field(
        ...,
        description="Currency code -> base units per 1 unit"
    )
    fetched_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        description="When the rates were obtained"
    )
    sources: list[str] = Field(
        default_factory=list,
        description="Where the rates came from (grounding URIs)"
    )

    @model_validator(mode='before')
    @classmethod
    def normalize_rates(cls, data):
        """Uppercase codes and make sure the base currency maps to 1."""
        if not isinstance(data, dict):
            return data
        base = str(data.get("base_currency") or Currency.TRY.value).upper()
        try:
            rates = {
                str(code).upper(): Decimal(str(value))
                for code, value in (data.get("rates") or {}).items()
            }
        except InvalidOperation as e:
            raise ValueError(f"Rate table contains a non-numeric rate: {e}")
        if base in rates and rates[base] != Decimal("1"):
            raise ValueError(f"Base currency {base} must map to 1, got {rates[base]}")
        rates[base] = Decimal("1")
        for code, value in rates.items():
            if not value.is_finite() or value <= 0:
                raise ValueError(f"Rate for {code} must be positive, got {value}")
        return {**data, "base_currency": base, "rates": rates}

    @classmethod
    def default(cls, base_currency: str = Currency.TRY.value) -> "RateTable":
        return cls(base_currency=base_currency, rates=dict(DEFAULT_RATES))

    def rate_for(self, code: Optional[str]) -> Decimal:
        """Rate for a currency; unknown currencies convert at 1."""
        if not code:
            return Decimal("1")
        return self.rates.get(code.upper(), Decimal("1"))


class RateFetchResult(BaseModel):
    """What the external rate source returned, before sanity checks."""

    rates: dict[str, Decimal]
    sources: list[str] = Field(default_factory=list)
    fallback_currencies: list[str] = Field(
        default_factory=list,
        description="Currencies filled from FALLBACK_RATES"
    )
