"""Configuration package."""

from ildang.config.settings import (
    AppSettings,
    ReportSettings,
    Settings,
    StoreSettings,
    get_settings,
    validate_all_settings,
)

__all__ = [
    "AppSettings",
    "ReportSettings",
    "Settings",
    "StoreSettings",
    "get_settings",
    "validate_all_settings",
]
