"""Configuration package."""

from bookkeeper.config.settings import (
    ApiSettings,
    AppSettings,
    GeminiSettings,
    GoogleSheetsSettings,
    MindeeSettings,
    Settings,
    SupabaseSettings,
    get_settings,
    validate_all_settings,
)

__all__ = [
    "ApiSettings",
    "AppSettings",
    "GeminiSettings",
    "GoogleSheetsSettings",
    "MindeeSettings",
    "Settings",
    "SupabaseSettings",
    "get_settings",
    "validate_all_settings",
]
