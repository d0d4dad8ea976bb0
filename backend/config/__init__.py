"""
Configuration module for the walk-forward backend.

Provides settings management using pydantic-settings and the pydantic
models shared by the engine, services and API.
"""

from .settings import Settings, get_settings
from .paths import (
    APP_IDENTIFIER,
    resolve_app_data_dir,
    default_log_directory,
)

__all__ = [
    "Settings",
    "get_settings",
    "APP_IDENTIFIER",
    "resolve_app_data_dir",
    "default_log_directory",
]
