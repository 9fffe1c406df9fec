"""
Vault Configuration

Settings come from the environment (and an optional .env file) through
pydantic-settings. Two sections exist: the Google Sheets backend and the
application itself.

DESIGN DECISION: Sections load lazily. Tests and local runs use the
in-memory store and never need Sheets credentials, so a missing Sheets
section only fails the code that actually talks to Sheets.
"""

import warnings
from functools import lru_cache
from pathlib import Path

from pydantic import Field, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class GoogleSheetsSettings(BaseSettings):
    """Google Sheets record store configuration."""

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
        description="ID of the spreadsheet holding all collections"
    )
    worksheet_rows: int = Field(
        default=1000,
        ge=10,
        description="Initial row count for newly created collection worksheets"
    )

    @field_validator('credentials_path')
    @classmethod
    def validate_credentials_path(cls, v: str) -> str:
        """Credentials are often mounted after start-up, so only warn."""
        if not Path(v).exists():
            warnings.warn(f"No service account file at {v} yet; Sheets calls will fail until it exists.")
        return v


class AppSettings(BaseSettings):
    """Application settings, read from `VAULT_*` variables."""

    model_config = SettingsConfigDict(
        env_prefix="VAULT_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    # Environment
    app_environment: str = Field(
        default="development",
        description="Deployment name, e.g. development or production"
    )
    debug_mode: bool = Field(
        default=False,
        description="Log at DEBUG whatever `log_level` says"
    )
    log_level: str = Field(
        default="INFO",
        description="Minimum level for structured logs"
    )

    # Analytics
    cache_ttl_seconds: int = Field(
        default=300,
        ge=0,
        description="How long a computed period summary stays fresh"
    )
    analytics_display_window: int = Field(
        default=4,
        ge=1,
        le=24,
        description="Number of periods shown on the analytics chart"
    )
    analytics_preload_window: int = Field(
        default=1,
        ge=0,
        le=12,
        description="Extra periods computed on each side of the display window"
    )

    # Dashboard
    recent_transactions_limit: int = Field(
        default=5,
        ge=1,
        le=50,
        description="How many recent expenses the dashboard lists"
    )
    upcoming_payment_days: int = Field(
        default=7,
        ge=1,
        le=90,
        description="How far ahead the dashboard looks for payments falling due"
    )

    @field_validator('log_level')
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        level = v.upper()
        if level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"Unknown log level: {v}")
        return level

    @property
    def effective_log_level(self) -> str:
        return "DEBUG" if self.debug_mode else self.log_level


class Settings(BaseSettings):
    """Entry point to every settings section."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    @property
    def google_sheets(self) -> GoogleSheetsSettings:
        return GoogleSheetsSettings()

    @property
    def app(self) -> AppSettings:
        return AppSettings()


@lru_cache()
def get_settings() -> Settings:
    """
    Process-wide settings, built on first use.

    Tests that change the environment call `get_settings.cache_clear()`.
    """
    return Settings()


_SECTIONS = ("google_sheets", "app")


def validate_all_settings() -> dict[str, bool]:
    """
    Start-up check of every settings section.

    Returns:
        {section: loaded?}, plus `{section}_error` with the reason for each
        section that failed to load
    """
    settings = get_settings()
    results: dict = {}
    for section in _SECTIONS:
        try:
            getattr(settings, section)
        except ValidationError as e:
            results[section] = False
            results[f"{section}_error"] = str(e)
        else:
            results[section] = True
    return results
