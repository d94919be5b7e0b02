"""Configuration package."""

from moneystack.config.settings import (
    AppSettings,
    EncryptionSettings,
    GoogleSheetsSettings,
    SessionSettings,
    Settings,
    get_settings,
    validate_all_settings,
)

__all__ = [
    "AppSettings",
    "EncryptionSettings",
    "GoogleSheetsSettings",
    "SessionSettings",
    "Settings",
    "get_settings",
    "validate_all_settings",
]
