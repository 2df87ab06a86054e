"""
Session Protocol Configuration Schema

Configuration for the client and server endpoints, the session rules, the
record file and logging. Every section validates itself on construction.
"""

from dataclasses import dataclass, field
from typing import Optional, Tuple

from .validators import (
    validate_bind_address,
    validate_bind_port,
    validate_boolean,
    validate_file_path,
    validate_log_level,
    validate_optional_file_path,
    validate_port,
    validate_positive_float,
    validate_positive_int,
)

MIN_BUFFER_SIZE = 1024


@dataclass
class NetworkConfig:
    """Endpoint configuration section."""

    server_address: str = "127.0.0.1"
    server_port: int = 32000
    client_address: str = "127.0.0.1"
    client_port: int = 32001
    buffer_size: int = MIN_BUFFER_SIZE
    receive_timeout: Optional[float] = None

    def __post_init__(self) -> None:
        """Validate network configuration."""
        if not validate_bind_address(self.server_address):
            raise ValueError(f"Invalid server address: {self.server_address}")

        if not validate_port(self.server_port):
            raise ValueError(f"Invalid server port: {self.server_port}")

        if not validate_bind_address(self.client_address):
            raise ValueError(f"Invalid client address: {self.client_address}")

        if not validate_bind_port(self.client_port):
            raise ValueError(f"Invalid client port: {self.client_port}")

        if not validate_positive_int(self.buffer_size) or (
            self.buffer_size < MIN_BUFFER_SIZE
        ):
            raise ValueError(
                f"Buffer size must be at least {MIN_BUFFER_SIZE}: {self.buffer_size}"
            )

        if self.receive_timeout is not None and not validate_positive_float(
            self.receive_timeout
        ):
            raise ValueError(
                f"Receive timeout must be positive: {self.receive_timeout}"
            )

    @property
    def server_endpoint(self) -> Tuple[str, int]:
        return (self.server_address, self.server_port)

    @property
    def client_endpoint(self) -> Tuple[str, int]:
        return (self.client_address, self.client_port)


@dataclass
class SessionConfig:
    """Session rules configuration section."""

    lookups_per_session: int = 4
    bind_to_client: bool = False

    def __post_init__(self) -> None:
        """Validate session configuration."""
        if not validate_positive_int(self.lookups_per_session):
            raise ValueError(
                f"Lookups per session must be positive: {self.lookups_per_session}"
            )

        if not validate_boolean(self.bind_to_client):
            raise ValueError(
                f"Bind to client must be boolean: {self.bind_to_client}"
            )


@dataclass
class RecordsConfig:
    """DNS record source configuration section."""

    file: str = "config/dns_records.json"

    def __post_init__(self) -> None:
        """Validate records configuration."""
        if not validate_file_path(self.file):
            raise ValueError(f"Invalid DNS records file path: {self.file}")


@dataclass
class LoggingConfig:
    """Logging configuration section."""

    level: str = "INFO"
    format: str = "console"
    file: Optional[str] = None
    max_size_mb: int = 10
    backup_count: int = 3
    colors: bool = True

    def __post_init__(self) -> None:
        """Validate logging configuration."""
        if not validate_log_level(self.level):
            raise ValueError(f"Invalid log level: {self.level}")

        if self.format not in ["console", "json"]:
            raise ValueError(f"Invalid log format: {self.format}")

        if not validate_optional_file_path(self.file):
            raise ValueError(f"Invalid log file path: {self.file}")

        if not validate_positive_int(self.max_size_mb):
            raise ValueError(f"Max size MB must be positive: {self.max_size_mb}")

        if not validate_positive_int(self.backup_count):
            raise ValueError(f"Backup count must be positive: {self.backup_count}")

        if not validate_boolean(self.colors):
            raise ValueError(f"Colors must be boolean: {self.colors}")


@dataclass
class AppConfig:
    """Main session protocol configuration."""

    network: NetworkConfig = field(default_factory=NetworkConfig)
    session: SessionConfig = field(default_factory=SessionConfig)
    records: RecordsConfig = field(default_factory=RecordsConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    def __post_init__(self) -> None:
        """Validate the entire configuration."""
        if self.network.client_endpoint == self.network.server_endpoint:
            raise ValueError("Client and server cannot bind the same endpoint")


def create_default_config() -> AppConfig:
    """Create a default configuration instance."""
    return AppConfig()
