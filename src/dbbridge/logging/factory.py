"""Logger factory and configuration for dbbridge.

This module configures stdlib logging and structlog together and hands out
cached structured and performance loggers.

Classes:
    LoggerConfig: Configuration for the logging system
    LoggerFactory: Logger creation and configuration

Functions:
    configure_logging: Configure logging globally
    get_logger: Get a structured logger from the global factory
    get_performance_logger: Get a performance logger from the global factory

Example:
    >>> from dbbridge.logging import configure_logging, get_logger
    >>> configure_logging(level="DEBUG", format="text")
    >>> logger = get_logger("adapter.sqlite.local")
    >>> logger.info("Connected", path=":memory:")
"""

import logging
import logging.handlers
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional

import structlog

from ..config.models import LoggingConfig
from .performance import PerformanceLogger
from .structured import StructuredLogger


@dataclass
class LoggerConfig:
    """Configuration for the logging system.

    Attributes:
        level: Log level
        format: Log format (json, text)
        console_output: Enable console output
        file_path: Log file path, enables rotating file output when set
        max_file_size: Maximum file size before rotation
        backup_count: Number of backup files to keep
    """
    level: str = "INFO"
    format: str = "json"
    console_output: bool = True
    file_path: Optional[str] = None
    max_file_size: int = 10485760
    backup_count: int = 5


class LoggerFactory:
    """Factory for creating and configuring dbbridge loggers.

    Example:
        >>> factory = LoggerFactory()
        >>> factory.configure_from_config(LoggingConfig(level="DEBUG"))
        >>> logger = factory.get_logger("database.factory")
    """

    def __init__(self, config: Optional[LoggerConfig] = None) -> None:
        self.config = config or LoggerConfig()
        self.initialized = False
        self._loggers: Dict[str, StructuredLogger] = {}
        self._performance_loggers: Dict[str, PerformanceLogger] = {}
        self._handlers: list = []

    def configure_from_config(self, logging_config: LoggingConfig) -> None:
        """Configure factory from a ``LoggingConfig`` model."""
        self.config = LoggerConfig(
            level=logging_config.level,
            format=logging_config.format,
            console_output=logging_config.console_output,
            file_path=str(logging_config.file_path) if logging_config.file_path else None,
            max_file_size=logging_config.max_file_size,
            backup_count=logging_config.backup_count,
        )
        self._reconfigure()

    def configure_from_dict(self, config_dict: Dict[str, Any]) -> None:
        """Configure factory from a dictionary; unknown keys are ignored."""
        for key, value in config_dict.items():
            if hasattr(self.config, key):
                setattr(self.config, key, value)
        self._reconfigure()

    def _reconfigure(self) -> None:
        self.initialized = False
        self._configure_logging_system()

    def _configure_logging_system(self) -> None:
        if self.initialized:
            return
        self._configure_stdlib_logging()
        self._configure_structlog()
        self.initialized = True

    def _configure_stdlib_logging(self) -> None:
        level = getattr(logging, self.config.level.upper(), logging.INFO)
        root_logger = logging.getLogger()
        root_logger.setLevel(level)

        for handler in self._handlers:
            root_logger.removeHandler(handler)
            handler.close()
        self._handlers = []

        # structlog renders the final line, handlers only emit it
        formatter = logging.Formatter("%(message)s")

        if self.config.console_output:
            console_handler = logging.StreamHandler(sys.stderr)
            console_handler.setLevel(level)
            console_handler.setFormatter(formatter)
            self._handlers.append(console_handler)

        if self.config.file_path:
            file_path = Path(self.config.file_path)
            file_path.parent.mkdir(parents=True, exist_ok=True)
            file_handler = logging.handlers.RotatingFileHandler(
                filename=str(file_path),
                maxBytes=self.config.max_file_size,
                backupCount=self.config.backup_count,
                encoding="utf-8",
            )
            file_handler.setLevel(level)
            file_handler.setFormatter(formatter)
            self._handlers.append(file_handler)

        for handler in self._handlers:
            root_logger.addHandler(handler)

    def _configure_structlog(self) -> None:
        processors = [
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
        ]

        if self.config.format.lower() == "json":
            processors.append(structlog.processors.JSONRenderer(default=str))
        else:
            processors.append(structlog.dev.ConsoleRenderer(colors=False))

        structlog.configure(
            processors=processors,
            wrapper_class=structlog.stdlib.BoundLogger,
            logger_factory=structlog.stdlib.LoggerFactory(),
            context_class=dict,
            cache_logger_on_first_use=True,
        )

    def get_logger(self, name: str, *, level: Optional[str] = None) -> StructuredLogger:
        """Get or create a structured logger.

        Args:
            name: Logger name
            level: Override default log level

        Returns:
            StructuredLogger instance
        """
        cache_key = f"{name}_{level}"
        if cache_key not in self._loggers:
            self._loggers[cache_key] = StructuredLogger(name, level=level or self.config.level)
        return self._loggers[cache_key]

    def get_performance_logger(
        self,
        name: str,
        *,
        auto_log: bool = True,
        track_metrics: bool = True,
    ) -> PerformanceLogger:
        """Get or create a performance logger.

        Args:
            name: Logger name
            auto_log: Whether to log each timing
            track_metrics: Whether to keep aggregated metrics

        Returns:
            PerformanceLogger instance
        """
        cache_key = f"{name}_{auto_log}_{track_metrics}"
        if cache_key not in self._performance_loggers:
            self._performance_loggers[cache_key] = PerformanceLogger(
                name,
                auto_log=auto_log,
                track_metrics=track_metrics,
                logger=self.get_logger(f"perf.{name}"),
            )
        return self._performance_loggers[cache_key]

    def shutdown(self) -> None:
        """Release handlers and forget cached loggers."""
        root_logger = logging.getLogger()
        for handler in self._handlers:
            root_logger.removeHandler(handler)
            handler.close()
        self._handlers = []
        self._loggers.clear()
        self._performance_loggers.clear()
        self.initialized = False

    def __repr__(self) -> str:
        return (
            f"LoggerFactory("
            f"level={self.config.level!r}, "
            f"format={self.config.format!r}, "
            f"initialized={self.initialized})"
        )


_global_factory = LoggerFactory()


def configure_logging(
    *,
    level: str = "INFO",
    format: str = "json",
    console_output: bool = True,
    file_path: Optional[str] = None,
    **kwargs: Any,
) -> None:
    """Configure dbbridge logging globally.

    Until this is called, loggers use whatever structlog and stdlib
    configuration the host application has installed.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        format: Log format (json, text)
        console_output: Enable console output
        file_path: Rotating log file path
        **kwargs: Additional ``LoggerConfig`` fields
    """
    _global_factory.configure_from_dict({
        "level": level,
        "format": format,
        "console_output": console_output,
        "file_path": file_path,
        **kwargs,
    })


def get_logger(name: str, *, level: Optional[str] = None) -> StructuredLogger:
    """Get or create a structured logger using the global factory."""
    return _global_factory.get_logger(name, level=level)


def get_performance_logger(
    name: str,
    *,
    auto_log: bool = True,
    track_metrics: bool = True,
) -> PerformanceLogger:
    """Get or create a performance logger using the global factory.

    Example:
        >>> perf_logger = get_performance_logger("adapter.redis")
        >>> with perf_logger.measure("execute_query"):
        ...     ...
    """
    return _global_factory.get_performance_logger(
        name, auto_log=auto_log, track_metrics=track_metrics
    )


def get_factory() -> LoggerFactory:
    return _global_factory


def shutdown_logging() -> None:
    """Shut down the global logging factory."""
    _global_factory.shutdown()
