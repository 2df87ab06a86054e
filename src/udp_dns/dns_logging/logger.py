"""
Structured Logging Framework

structlog configured on top of the standard library: structlog loggers and
plain ``logging`` loggers (used by the transport and record store) end up in
the same handlers and are rendered by the same processor chain. The console
gets human readable or JSON output; the optional log file is always JSON.
"""

import logging
import logging.handlers
import sys
from pathlib import Path
from typing import List, Optional

import structlog

from ..config.schema import LoggingConfig

MEGABYTE = 1024 * 1024


class StructuredLogger:
    """Owns the root logger handlers and the structlog configuration."""

    def __init__(self, config: LoggingConfig):
        self.config = config
        self._configured = False
        self.logger = None

    def _shared_processors(self) -> List:
        """Processors applied to both structlog and foreign stdlib records."""
        chain = [
            structlog.stdlib.add_log_level,
            structlog.stdlib.add_logger_name,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
        ]
        if self.config.format == "json":
            chain.append(structlog.processors.format_exc_info)
        return chain

    def _get_renderer(self):
        if self.config.format == "json":
            return structlog.processors.JSONRenderer()
        return structlog.dev.ConsoleRenderer(colors=self.config.colors)

    def _build_formatter(self, renderer) -> structlog.stdlib.ProcessorFormatter:
        return structlog.stdlib.ProcessorFormatter(
            processors=[
                structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                renderer,
            ],
            foreign_pre_chain=self._shared_processors(),
        )

    def _build_handlers(self) -> List[logging.Handler]:
        console = logging.StreamHandler(sys.stdout)
        console.setFormatter(self._build_formatter(self._get_renderer()))
        handlers: List[logging.Handler] = [console]

        if self.config.file:
            log_path = Path(self.config.file)
            log_path.parent.mkdir(parents=True, exist_ok=True)

            rotating = logging.handlers.RotatingFileHandler(
                filename=str(log_path),
                maxBytes=self.config.max_size_mb * MEGABYTE,
                backupCount=self.config.backup_count,
                encoding="utf-8",
            )
            rotating.setFormatter(
                self._build_formatter(structlog.processors.JSONRenderer())
            )
            handlers.append(rotating)

        return handlers

    def configure(self) -> None:
        """Install handlers on the root logger and configure structlog.

        Existing root handlers are replaced. Calling this twice is a no-op.
        """
        if self._configured:
            return

        level = logging.getLevelName(self.config.level.upper())

        root = logging.getLogger()
        root.handlers.clear()
        root.setLevel(level)
        for handler in self._build_handlers():
            handler.setLevel(level)
            root.addHandler(handler)

        structlog.configure(
            processors=self._shared_processors()
            + [structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
            wrapper_class=structlog.stdlib.BoundLogger,
            logger_factory=structlog.stdlib.LoggerFactory(),
            cache_logger_on_first_use=True,
        )

        self._configured = True
        self.logger = structlog.get_logger("udp_dns")

    def get_logger(self, name: str = "udp_dns") -> structlog.stdlib.BoundLogger:
        self.configure()
        return structlog.get_logger(name)


_logger_instance: Optional[StructuredLogger] = None


def setup_logging(config: LoggingConfig) -> StructuredLogger:
    """Configure process-wide logging from the logging config section."""
    global _logger_instance
    _logger_instance = StructuredLogger(config)
    _logger_instance.configure()
    return _logger_instance


def get_logger(name: str = "udp_dns"):
    """Get a logger instance.

    Before setup_logging() is called this returns a logger using structlog's
    defaults, so library code can log without the application configuring
    anything.
    """
    if _logger_instance is None:
        return structlog.get_logger(name)

    return _logger_instance.get_logger(name)


def log_exception(logger, message: str, exc: Optional[BaseException] = None) -> None:
    """Log an error event carrying the exception's type, text and traceback.

    Falls back to the exception currently being handled when exc is None, and
    to a plain error event when there is none.
    """
    if exc is None:
        exc = sys.exc_info()[1]

    if exc is None:
        logger.error(message)
        return

    logger.error(
        message,
        exception_type=type(exc).__name__,
        exception_message=str(exc),
        exc_info=exc,
    )
