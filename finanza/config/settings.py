"""
Configuration Management for Finanza

Uses pydantic-settings for type-safe configuration from environment variables.

DESIGN DECISION: All configuration is centralized here.
Every external dependency (Gemini, Google Sheets, the local data file)
is visible in one place and validated at startup.
"""

from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class GeminiSettings(BaseSettings):
    """Gemini LLM configuration."""

    model_config = SettingsConfigDict(
        env_prefix="GEMINI_",
        env_file=".env",
        extra="ignore"
    )

    api_key: str = Field(
        ...,
        description="Gemini API key"
    )
    model_name: str = Field(
        default="gemini-1.5-pro",
        description="Model used for receipts, chat and rate lookups"
    )
    fast_model_name: str = Field(
        default="gemini-1.5-flash",
        description="Model used for grounded search answers"
    )
    max_tokens: int = Field(
        default=2048,
        ge=100,
        le=8192,
        description="Maximum tokens in response"
    )
    temperature: float = Field(
        default=0.2,
        ge=0.0,
        le=1.0,
        description="Model temperature (lower = more deterministic)"
    )
    language: Literal["en", "tr"] = Field(
        default="en",
        description="Language the assistant answers in"
    )


class GoogleSheetsSettings(BaseSettings):
    """Google Sheets storage configuration."""

    model_config = SettingsConfigDict(
        env_prefix="GOOGLE_SHEETS_",
        env_file=".env",
        extra="ignore"
    )

    credentials_path: str = Field(
        ...,
        description="Path to Google service account credentials JSON"
    )
    spreadsheet_id: str = Field(
        ...,
        description="ID of the Google Sheets spreadsheet to use"
    )
    store_sheet_name: str = Field(
        default="Store",
        description="Name of the key/value sheet holding the data blobs"
    )
    audit_sheet_name: str = Field(
        default="AuditLog",
        description="Name of the sheet for audit logs"
    )

    @field_validator('credentials_path')
    @classmethod
    def validate_credentials_path(cls, v: str) -> str:
        """Warn if credentials file doesn't exist (it might be mounted later)."""
        if not Path(v).exists():
            import warnings
            warnings.warn(
                f"Google credentials file not found at {v}. "
                "Make sure it exists before running the application."
            )
        return v


class StorageSettings(BaseSettings):
    """Where the key/value blobs and the audit log live."""

    model_config = SettingsConfigDict(
        env_prefix="STORAGE_",
        env_file=".env",
        extra="ignore"
    )

    backend: Literal["local", "google_sheets"] = Field(
        default="local",
        description="Key/value store backend"
    )
    data_path: Path = Field(
        default=Path("data/finanza.json"),
        description="JSON file used by the local backend"
    )
    audit_log_path: Path = Field(
        default=Path("data/audit.jsonl"),
        description="JSON-lines file for audit events (local backend)"
    )


class CurrencySettings(BaseSettings):
    """Base currency and exchange-rate refresh configuration."""

    model_config = SettingsConfigDict(
        env_prefix="CURRENCY_",
        env_file=".env",
        extra="ignore"
    )

    base_currency: str = Field(
        default="TRY",
        min_length=3,
        max_length=3,
        description="Currency every stored amount is expressed in"
    )
    default_display_currency: str = Field(
        default="TRY",
        min_length=3,
        max_length=3,
        description="Display currency for new users"
    )
    refresh_interval_seconds: int = Field(
        default=3600,
        ge=60,
        description="How often the rate table is refreshed"
    )
    sanity_currency: str = Field(
        default="USD",
        description="Currency whose fetched rate must exceed 1 for a table to be accepted"
    )

    @field_validator('base_currency', 'default_display_currency', 'sanity_currency')
    @classmethod
    def upper_code(cls, v: str) -> str:
        return v.upper()


class AppSettings(BaseSettings):
    """
    Main application settings.

    Loads configuration from environment variables and .env file.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    app_environment: str = Field(
        default="development",
        description="Application environment"
    )
    debug_mode: bool = Field(
        default=False,
        description="Enable debug mode"
    )

    # Dashboard
    bill_soon_threshold_days: int = Field(
        default=5,
        ge=0,
        description="Unpaid bills due within this many days are flagged as soon"
    )
    recent_transactions_limit: int = Field(
        default=50,
        ge=1,
        description="How many transactions the dashboard lists"
    )

    # Validation thresholds
    max_transaction_amount: float = Field(
        default=10_000_000.0,
        description="Amounts above this (base currency) are flagged for review"
    )

    # Receipt uploads
    max_upload_size_mb: int = Field(
        default=10,
        ge=1,
        le=50,
        description="Maximum receipt image size in MB"
    )

    @property
    def max_upload_size_bytes(self) -> int:
        """Get max upload size in bytes."""
        return self.max_upload_size_mb * 1024 * 1024


class Settings(BaseSettings):
    """
    Root settings container.

    Aggregates all sub-settings for easy access.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    # Sub-settings are loaded lazily so a partial configuration still works

    @property
    def gemini(self) -> GeminiSettings:
        return GeminiSettings()

    @property
    def google_sheets(self) -> GoogleSheetsSettings:
        return GoogleSheetsSettings()

    @property
    def storage(self) -> StorageSettings:
        return StorageSettings()

    @property
    def currency(self) -> CurrencySettings:
        return CurrencySettings()

    @property
    def app(self) -> AppSettings:
        return AppSettings()


@lru_cache()
def get_settings() -> Settings:
    """
    Get application settings (cached).

    Call get_settings.cache_clear() to reload if needed.
    """
    return Settings()


def validate_all_settings() -> dict[str, bool]:
    """
    Validate all settings are properly configured.

    Returns a dict of {setting_name: is_valid} plus "<name>_error"
    entries describing what failed. Useful for startup checks.
    """
    results = {}
    settings = get_settings()

    sections = ["gemini", "google_sheets", "storage", "currency", "app"]
    for name in sections:
        try:
            getattr(settings, name)
            results[name] = True
        except Exception as e:
            results[name] = False
            results[f"{name}_error"] = str(e)

    return results
