"""Configuration module for peerlog."""

from .settings import (
    CONFIG_ENV_VAR,
    CONFIG_FILE_NAME,
    DatabaseSettings,
    RetrySettings,
    Settings,
    find_config_file,
    load_settings,
)

__all__ = [
    "CONFIG_ENV_VAR",
    "CONFIG_FILE_NAME",
    "DatabaseSettings",
    "RetrySettings",
    "Settings",
    "find_config_file",
    "load_settings",
]
