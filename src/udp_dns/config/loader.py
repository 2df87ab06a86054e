"""Configuration loader for the session protocol.

Settings are layered: built-in defaults, then a YAML or JSON file, then
UDP_DNS_<SECTION>_<KEY> environment variables. The flat settings layout used
by earlier deployments (ServerIPAddress, ServerPortNumber, ...) is accepted
in the file as well.
"""

import json
import os
from dataclasses import asdict
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from .schema import (
    AppConfig,
    LoggingConfig,
    NetworkConfig,
    RecordsConfig,
    SessionConfig,
)

ENV_PREFIX = "UDP_DNS_"

SECTIONS = {
    "network": NetworkConfig,
    "session": SessionConfig,
    "records": RecordsConfig,
    "logging": LoggingConfig,
}

# Flat settings keys mapped to (section, key)
LEGACY_SETTINGS = {
    "ServerIPAddress": ("network", "server_address"),
    "ServerPortNumber": ("network", "server_port"),
    "ClientIPAddress": ("network", "client_address"),
    "ClientPortNumber": ("network", "client_port"),
}

_TRUE_WORDS = ("true", "yes", "on")
_FALSE_WORDS = ("false", "no", "off")
_NONE_WORDS = ("none", "null")


class ConfigLoader:
    """Configuration loader."""

    def __init__(self, config_file: Optional[str] = None):
        """Initialize configuration loader.

        Args:
            config_file: Optional YAML or JSON settings file
        """
        self.config_file = config_file
        self._config: Optional[AppConfig] = None

    def load_config(self) -> AppConfig:
        """Build the validated configuration.

        Raises:
            FileNotFoundError: If the settings file does not exist
            ValueError: If a value fails validation or a section is malformed
            yaml.YAMLError: If the settings file cannot be parsed
        """
        values = asdict(AppConfig())

        if self.config_file:
            from_file = self._normalize_legacy_settings(
                self._load_from_file(self.config_file)
            )
            values = self._merge_configs(values, from_file)

        values = self._apply_env_overrides(values)
        self._config = self._dict_to_config(values)
        return self._config

    def get_config(self) -> Optional[AppConfig]:
        """Configuration produced by the last load_config() call."""
        return self._config

    def _load_from_file(self, file_path: str) -> Dict[str, Any]:
        path = Path(file_path)
        if not path.is_file():
            raise FileNotFoundError(f"Configuration file not found: {file_path}")

        text = path.read_text(encoding="utf-8")

        # JSON files go through json for exact error messages; everything
        # else is parsed as YAML, which also accepts JSON documents
        if path.suffix.lower() == ".json":
            data = json.loads(text)
        else:
            data = yaml.safe_load(text)

        if data is None:
            return {}
        if not isinstance(data, dict):
            raise ValueError(f"Configuration file must contain a mapping: {file_path}")
        return data

    def _normalize_legacy_settings(self, file_config: Dict[str, Any]) -> Dict[str, Any]:
        """Move flat settings keys into their configuration sections."""
        result = {k: v for k, v in file_config.items() if k not in LEGACY_SETTINGS}

        for legacy_key, (section, key) in LEGACY_SETTINGS.items():
            if legacy_key not in file_config:
                continue
            section_dict = dict(result.get(section) or {})
            section_dict.setdefault(key, file_config[legacy_key])
            result[section] = section_dict

        return result

    def _dict_to_config(self, config_dict: Dict[str, Any]) -> AppConfig:
        """Instantiate every section, turning unknown keys into ValueError."""
        built = {}
        for name, section_cls in SECTIONS.items():
            values = config_dict.get(name) or {}
            if not isinstance(values, dict):
                raise ValueError(f"Configuration section {name} must be a mapping")
            try:
                built[name] = section_cls(**values)
            except TypeError as e:
                raise ValueError(f"Invalid {name} configuration: {e}") from e

        return AppConfig(**built)

    def _merge_configs(
        self, base: Dict[str, Any], override: Dict[str, Any]
    ) -> Dict[str, Any]:
        """Recursively overlay override onto base without mutating either."""
        merged = dict(base)
        for key, value in override.items():
            current = merged.get(key)
            if isinstance(current, dict) and isinstance(value, dict):
                merged[key] = self._merge_configs(current, value)
            else:
                merged[key] = value
        return merged

    def _apply_env_overrides(self, config_dict: Dict[str, Any]) -> Dict[str, Any]:
        """Apply UDP_DNS_<SECTION>_<KEY> variables.

        The first word after the prefix names the section and the rest is the
        key, so UDP_DNS_NETWORK_SERVER_PORT=33000 sets network.server_port.
        Variables naming an unknown section are ignored.
        """
        result = dict(config_dict)

        for env_key, env_value in os.environ.items():
            if not env_key.startswith(ENV_PREFIX):
                continue

            section, _, key = env_key[len(ENV_PREFIX) :].lower().partition("_")
            if not key or not isinstance(result.get(section), dict):
                continue

            result[section] = dict(result[section])
            result[section][key] = self._convert_env_value(env_value)

        return result

    def _convert_env_value(self, value: str) -> Any:
        """Interpret an environment string as bool, None, int or float."""
        word = value.strip().lower()
        if word in _TRUE_WORDS:
            return True
        if word in _FALSE_WORDS:
            return False
        if word in _NONE_WORDS:
            return None

        for cast in (int, float):
            try:
                return cast(value)
            except ValueError:
                continue

        return value


def load_config_from_file(config_file: Optional[str] = None) -> AppConfig:
    """Load configuration from an optional file plus the environment."""
    return ConfigLoader(config_file).load_config()
