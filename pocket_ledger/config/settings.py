"""
Configuration Management for Pocket Ledger

Settings come from environment variables (and an optional .env file)
through pydantic-settings.

DESIGN DECISION: Every tunable of the ledger lives in this module.
Storage credentials, budget thresholds and the transaction sync policy
are read and validated in one place.
"""

from decimal import Decimal
from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class GoogleSheetsSettings(BaseSettings):
    """Where the hosted ledger tables live."""

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
        description="ID of the Google Sheets spreadsheet to use"
    )

    # One worksheet per remote table
    accounts_sheet_name: str = Field(default="accounts")
    transactions_sheet_name: str = Field(default="transactions")
    budget_categories_sheet_name: str = Field(default="budget_categories")
    give_take_sheet_name: str = Field(default="give_take")
    categories_sheet_name: str = Field(default="categories")
    audit_sheet_name: str = Field(
        default="AuditLog",
        description="Name of the sheet for audit logs"
    )

    @field_validator('credentials_path')
    @classmethod
    def validate_credentials_path(cls, v: str) -> str:
        """A missing file only warns; deployments may mount it after import."""
        if not Path(v).exists():
            import warnings
            warnings.warn(
                f"Google credentials file not found at {v}. "
                "Make sure it exists before running the application."
            )
        return v

    def sheet_name_for(self, table: str) -> str:
        """Worksheet name for a ledger table."""
        return getattr(self, f"{table}_sheet_name")


class AppSettings(BaseSettings):
    """
    Ledger behaviour and runtime settings.

    Plain (unprefixed) environment variable names, e.g. LOG_LEVEL.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    # Environment
    app_environment: str = Field(
        default="development",
        description="Application environment"
    )
    debug_mode: bool = Field(
        default=False,
        description="Enable debug mode"
    )
    log_level: str = Field(
        default="INFO",
        description="Minimum level for the structured local log"
    )

    # Storage
    storage_backend: Literal["google_sheets", "memory"] = Field(
        default="google_sheets",
        description="Remote table store to use"
    )

    # Ledger defaults
    default_currency: str = Field(
        default="USD",
        min_length=3,
        max_length=3,
        description="Currency for new accounts when none is given"
    )

    # Budget status thresholds (percent of budget used)
    budget_warning_percent: Decimal = Field(
        default=Decimal("80"),
        ge=0,
        description="Usage at or above this is a warning"
    )
    budget_exceeded_percent: Decimal = Field(
        default=Decimal("100"),
        ge=0,
        description="Usage at or above this is exceeded"
    )

    # Consistency policy for adding a transaction
    transaction_sync_policy: Literal["rollback", "best_effort"] = Field(
        default="rollback",
        description=(
            "rollback: undo the transaction insert and balance change when a "
            "dependent update fails. best_effort: keep the insert and report "
            "dependent failures as warnings."
        )
    )

    @field_validator('log_level')
    @classmethod
    def normalize_log_level(cls, v: str) -> str:
        level = v.strip().upper()
        if level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"Unknown log level: {v}")
        return level

    @model_validator(mode='after')
    def validate_thresholds(self) -> 'AppSettings':
        if self.budget_warning_percent > self.budget_exceeded_percent:
            raise ValueError("Budget warning threshold cannot be above the exceeded threshold")
        return self


class Settings(BaseSettings):
    """
    Entry point for every settings section.

    Sections are built on access, so a missing Sheets setup does not
    stop the in-memory backend from starting.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    # Built per access so environment changes are picked up

    @property
    def google_sheets(self) -> GoogleSheetsSettings:
        return GoogleSheetsSettings()

    @property
    def app(self) -> AppSettings:
        return AppSettings()


@lru_cache()
def get_settings() -> Settings:
    """
    Cached settings container.

    get_settings.cache_clear() drops the cached container.
    """
    return Settings()


def validate_all_settings() -> dict[str, bool]:
    """
    Try to build each settings section.

    Returns {section: ok} plus "<section>_error" messages for failures.
    Meant for a startup health check.
    """
    results = {}

    settings = get_settings()

    try:
        _ = settings.google_sheets
        results["google_sheets"] = True
    except Exception as e:
        results["google_sheets"] = False
        results["google_sheets_error"] = str(e)

    try:
        _ = settings.app
        results["app"] = True
    except Exception as e:
        results["app"] = False
        results["app_error"] = str(e)

    return results
