"""
Configuration Management for Ildang

Every knob is read from environment variables (or a .env file) through
pydantic-settings, one class per concern.

DESIGN DECISION: only ambient knobs live here (database location,
report defaults, logging, entry limits).
Financial constants such as the withholding rate are NOT configurable;
they are part of the aggregation contract.
"""

from functools import lru_cache

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class StoreSettings(BaseSettings):
    """Record store configuration."""
    
    model_config = SettingsConfigDict(
        env_prefix="ILDANG_STORE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )
    
    database_url: str = Field(
        default="sqlite:///ildang.db",
        description="SQLAlchemy URL of the local database"
    )
    echo: bool = Field(
        default=False,
        description="Echo SQL statements (debugging only)"
    )
    restore_chunk_size: int = Field(
        default=200,
        ge=1,
        le=10000,
        description="Records inserted per chunk during a backup restore"
    )
    
    @field_validator('database_url')
    @classmethod
    def validate_database_url(cls, v: str) -> str:
        """Only local SQLite databases are supported."""
        if not v.startswith("sqlite"):
            raise ValueError(
                f"Unsupported database URL: {v}. Ildang is local-first and only supports SQLite."
            )
        return v


class ReportSettings(BaseSettings):
    """Report and export configuration."""
    
    model_config = SettingsConfigDict(
        env_prefix="ILDANG_REPORT_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )
    
    default_payee_name: str = Field(
        default="홍길동",
        description="Payee name used when the user has not set one"
    )
    image_file_prefix: str = Field(
        default="노임청구서",
        description="File name prefix for exported report images"
    )
    backup_file_prefix: str = Field(
        default="ildang_backup",
        description="File name prefix for backup files"
    )


class AppSettings(BaseSettings):
    """Logging and entry-limit settings (ILDANG_*)."""
    
    model_config = SettingsConfigDict(
        env_prefix="ILDANG_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )
    
    # Logging
    log_level: str = Field(
        default="INFO",
        pattern="^(DEBUG|INFO|WARNING|ERROR|CRITICAL)$",
        description="Minimum level for local structured logs"
    )
    
    # Entry limits
    max_daily_amount: int = Field(
        default=10_000_000,
        ge=1,
        description="Largest single-day wage accepted without a warning"
    )
    future_date_tolerance_days: int = Field(
        default=31,
        ge=0,
        description="How many days ahead a work day may be recorded"
    )


class Settings(BaseSettings):
    """
    Entry point to every settings group.
    
    Each property builds its group afresh from the environment.
    """
    
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )
    
    @property
    def store(self) -> StoreSettings:
        return StoreSettings()
    
    @property
    def report(self) -> ReportSettings:
        return ReportSettings()
    
    @property
    def app(self) -> AppSettings:
        return AppSettings()


@lru_cache()
def get_settings() -> Settings:
    """
    The process-wide Settings instance.
    
    Call get_settings.cache_clear() to reload if needed.
    """
    return Settings()


def validate_all_settings() -> dict[str, bool]:
    """
    Check that every settings group loads.
    
    Returns a dict of {setting_name: is_valid}, with an
    additional "<name>_error" entry for each failure.
    """
    results = {}
    settings = get_settings()
    
    for name in ("store", "report", "app"):
        try:
            getattr(settings, name)
            results[name] = True
        except ValueError as e:
            results[name] = False
            results[f"{name}_error"] = str(e)
    
    return results
