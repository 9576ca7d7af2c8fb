"""
Configuration Management for Family Ledger

Uses pydantic-settings for type-safe configuration from environment variables.

DESIGN DECISION: All configuration is centralized here and loaded once.
Services receive the settings object explicitly instead of reaching for
global state, so tests can inject their own thresholds.
"""

from functools import lru_cache
from pathlib import Path
from typing import Optional

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class GoogleSheetsSettings(BaseSettings):
    """Google Sheets document store configuration."""

    model_config = SettingsConfigDict(
        env_prefix="GOOGLE_SHEETS_",
        extra="ignore"
    )

    credentials_path: str = Field(
        ...,
        description="Path to Google service account credentials JSON"
    )
    spreadsheet_id: str = Field(
        ...,
        description="ID of the spreadsheet that holds the family documents"
    )
    audit_sheet_name: str = Field(
        default="AuditLog",
        description="Name of the worksheet for audit events"
    )

    @field_validator('credentials_path')
    @classmethod
    def validate_credentials_path(cls, v: str) -> str:
        """Warn if credentials file doesn't exist (but don't fail - might be mounted later)."""
        if not Path(v).exists():
            import warnings
            warnings.warn(
                f"Google credentials file not found at {v}. "
                "Make sure it exists before running the application."
            )
        return v


class LedgerSettings(BaseSettings):
    """
    Main ledger settings.

    Loads configuration from environment variables and .env file.
    """

    model_config = SettingsConfigDict(
        env_prefix="LEDGER_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    # Logging
    debug_mode: bool = Field(
        default=False,
        description="Enable debug logging"
    )

    # Budget thresholds (usage ratio of the monthly limit)
    warning_threshold: float = Field(
        default=0.7,
        gt=0.0,
        le=1.0,
        description="Usage ratio at which a profile budget check warns"
    )
    critical_threshold: float = Field(
        default=1.0,
        gt=0.0,
        description="Usage ratio at which a profile budget check is critical"
    )
    account_warning_threshold: float = Field(
        default=0.8,
        gt=0.0,
        le=1.0,
        description="Usage ratio at which the family dashboard warns"
    )

    # Display defaults
    default_currency: str = Field(
        default="VND",
        pattern="^(VND|USD)$",
        description="Currency used when no preference is stored"
    )
    default_language: str = Field(
        default="en",
        pattern="^(en|vi)$",
        description="Language used when no preference is stored"
    )

    # Storage
    store_backend: str = Field(
        default="memory",
        pattern="^(memory|google_sheets)$",
        description="Document store backend"
    )
    preferences_path: Optional[str] = Field(
        default=None,
        description="Path of the local preferences JSON file"
    )

    @model_validator(mode='after')
    def validate_thresholds(self) -> 'LedgerSettings':
        """Warning must trigger before critical."""
        if self.warning_threshold >= self.critical_threshold:
            raise ValueError("warning_threshold must be lower than critical_threshold")
        return self

    @property
    def resolved_preferences_path(self) -> Path:
        """Preferences file location, defaulting to ~/.family_ledger."""
        if self.preferences_path:
            return Path(self.preferences_path)
        return Path.home() / ".family_ledger" / "preferences.json"


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

    # Sub-settings load lazily so the in-memory backend runs without
    # Google credentials.

    @property
    def google_sheets(self) -> GoogleSheetsSettings:
        return GoogleSheetsSettings()

    @property
    def ledger(self) -> LedgerSettings:
        return LedgerSettings()


@lru_cache()
def get_settings() -> Settings:
    """
    Get application settings (cached).

    Uses LRU cache to ensure settings are only loaded once.
    Call get_settings.cache_clear() to reload if needed.
    """
    return Settings()


def validate_all_settings() -> dict[str, bool]:
    """
    Validate all settings are properly configured.

    Returns a dict of {setting_name: is_valid}.
    Useful for startup checks.
    """
    results = {}

    settings = get_settings()

    try:
        ledger = settings.ledger
        results["ledger"] = True
    except Exception as e:
        ledger = None
        results["ledger"] = False
        results["ledger_error"] = str(e)

    # Google Sheets is only required when selected as the backend
    if ledger is not None and ledger.store_backend == "google_sheets":
        try:
            _ = settings.google_sheets
            results["google_sheets"] = True
        except Exception as e:
            results["google_sheets"] = False
            results["google_sheets_error"] = str(e)

    return results
