"""
Session Protocol Configuration Module

Settings schema, validators and the file/environment loader.
"""

from .loader import ConfigLoader, load_config_from_file
from .schema import (
    AppConfig,
    LoggingConfig,
    NetworkConfig,
    RecordsConfig,
    SessionConfig,
    create_default_config,
)

__all__ = [
    "ConfigLoader",
    "load_config_from_file",
    "AppConfig",
    "NetworkConfig",
    "SessionConfig",
    "RecordsConfig",
    "LoggingConfig",
    "create_default_config",
]
