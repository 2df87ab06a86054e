"""
Session Protocol Logging Module

This module provides structured logging for the client and server session
state machines: structlog configuration and protocol event logging.
"""

from .logger import (
    StructuredLogger,
    get_logger,
    log_exception,
    setup_logging,
)
from .protocol_logger import ProtocolLogger, format_address, format_content

__all__ = [
    # Core logging
    "StructuredLogger",
    "setup_logging",
    "get_logger",
    "log_exception",
    # Protocol events
    "ProtocolLogger",
    "format_address",
    "format_content",
]
