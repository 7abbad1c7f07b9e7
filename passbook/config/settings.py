"""
Configuration Management for Passbook

Uses pydantic-settings for type-safe configuration from environment variables.

DESIGN DECISION: All configuration is centralized here.
Services never read the environment themselves; the values below are
passed into their constructors by the orchestrator.
"""

from decimal import Decimal
from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import Field, ValidationInfo, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class LedgerSettings(BaseSettings):
    """Ledger behaviour."""

    model_config = SettingsConfigDict(
        env_prefix="PASSBOOK_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    monthly_allowance: Decimal = Field(
        default=Decimal("100.00"),
        ge=0,
        description="Allowance granted when a month is created explicitly"
    )
    default_page_size: int = Field(
        default=50,
        ge=1,
        le=100,
        description="Page size used when the caller does not ask for one"
    )
    max_page_size: int = Field(
        default=100,
        ge=1,
        description="Largest page a caller may request"
    )


class AuthSettings(BaseSettings):
    """PIN hashing, rate limiting and session configuration."""

    model_config = SettingsConfigDict(
        env_prefix="PASSBOOK_AUTH_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    # Rate limiting
    max_attempts: int = Field(
        default=5,
        ge=1,
        description="Failed attempts before remaining attempts are reported"
    )
    lockout_attempts: int = Field(
        default=10,
        ge=1,
        description="Failed attempts that trigger a lockout"
    )
    lockout_minutes: int = Field(
        default=30,
        ge=1,
        description="How long a lockout lasts"
    )
    attempt_window_minutes: int = Field(
        default=15,
        ge=1,
        description="Failed attempts are forgotten after this much quiet time"
    )

    # Sessions
    session_ttl_hours: int = Field(
        default=24,
        ge=1,
        description="Lifetime of an issued session token"
    )

    # Argon2id parameters (16 MiB keeps small serverless runtimes happy)
    argon_time_cost: int = Field(default=3, ge=1)
    argon_memory_cost_kib: int = Field(default=16 * 1024, ge=8)
    argon_parallelism: int = Field(default=1, ge=1)

    @field_validator("lockout_attempts")
    @classmethod
    def validate_lockout_attempts(cls, v: int, info: ValidationInfo) -> int:
        """Lockout must not trigger before the warning tier."""
        max_attempts = info.data.get("max_attempts")
        if max_attempts is not None and v < max_attempts:
            raise ValueError("lockout_attempts must be >= max_attempts")
        return v


class StorageSettings(BaseSettings):
    """Which key-value backend to use."""

    model_config = SettingsConfigDict(
        env_prefix="PASSBOOK_STORAGE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    backend: Literal["memory", "google_sheets"] = Field(
        default="memory",
        description="Key-value backend"
    )
    audit_retention_days: int = Field(
        default=400,
        ge=1,
        description="Days a persisted audit event lives before purge_expired() removes it"
    )


class GoogleSheetsSettings(BaseSettings):
    """Google Sheets storage configuration."""

    model_config = SettingsConfigDict(
        env_prefix="GOOGLE_SHEETS_",
        env_file=".env",
        env_file_encoding="utf-8",
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
    items_sheet_name: str = Field(
        default="Passbook",
        description="Name of the sheet holding the key-value items"
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

    # Sub-settings are loaded lazily so a missing Google Sheets
    # configuration does not break the in-memory backend.

    @property
    def ledger(self) -> LedgerSettings:
        return LedgerSettings()

    @property
    def auth(self) -> AuthSettings:
        return AuthSettings()

    @property
    def storage(self) -> StorageSettings:
        return StorageSettings()

    @property
    def google_sheets(self) -> GoogleSheetsSettings:
        return GoogleSheetsSettings()


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

    Returns a dict of {setting_name: is_valid}, plus a
    "<name>_error" entry for every section that failed.
    """
    results = {}
    settings = get_settings()

    def check(name: str) -> None:
        try:
            getattr(settings, name)
            results[name] = True
        except Exception as e:
            results[name] = False
            results[f"{name}_error"] = str(e)

    for name in ("ledger", "auth", "storage"):
        check(name)

    # Sheets credentials only matter when that backend is selected
    if results["storage"] and settings.storage.backend == "google_sheets":
        check("google_sheets")

    return results
