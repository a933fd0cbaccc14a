"""Configuration package."""

from expense_sync.config.settings import (
    AppSettings,
    GoogleSheetsSettings,
    RemoteApiSettings,
    Settings,
    SyncSettings,
    get_settings,
    validate_all_settings,
)

__all__ = [
    "AppSettings",
    "GoogleSheetsSettings",
    "RemoteApiSettings",
    "Settings",
    "SyncSettings",
    "get_settings",
    "validate_all_settings",
]
