"""
Configuration Validators

Predicates used by the configuration sections. Each returns a bool; the
sections turn a False into a ValueError naming the offending field.
"""

import ipaddress
from typing import Optional

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


def _is_int(value) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def validate_bind_address(address: str) -> bool:
    """True for a dotted IPv4 address, including the 0.0.0.0 wildcard."""
    if not isinstance(address, str) or not address:
        return False

    try:
        ipaddress.IPv4Address(address)
    except ValueError:
        return False
    return True


def validate_boolean(value) -> bool:
    return isinstance(value, bool)


def validate_file_path(path: str) -> bool:
    """True for a non-empty path string without NUL bytes."""
    return isinstance(path, str) and bool(path.strip()) and "\x00" not in path


def validate_optional_file_path(path: Optional[str]) -> bool:
    return path is None or validate_file_path(path)


def validate_log_level(level: str) -> bool:
    return isinstance(level, str) and level.upper() in LOG_LEVELS


def validate_positive_float(value: float) -> bool:
    return (isinstance(value, float) or _is_int(value)) and value > 0


def validate_positive_int(value: int) -> bool:
    return _is_int(value) and value > 0


def validate_port(port: int) -> bool:
    """True for a port a server can listen on (1-65535)."""
    return _is_int(port) and 1 <= port <= 65535


def validate_bind_port(port: int) -> bool:
    """Like validate_port, but 0 asks the OS for an ephemeral port."""
    return _is_int(port) and 0 <= port <= 65535
