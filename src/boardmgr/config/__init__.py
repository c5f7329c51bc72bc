"""Configuration for boardmgr instances."""

from .settings import (
    DEFAULT_INDEX_URL,
    LIBRARY_INDEX_SIGNATURE_URL,
    LIBRARY_INDEX_URL,
    Settings,
    SettingsError,
)

__all__ = [
    "DEFAULT_INDEX_URL",
    "LIBRARY_INDEX_URL",
    "LIBRARY_INDEX_SIGNATURE_URL",
    "Settings",
    "SettingsError",
]
