"""Structured logging implementation for dbbridge.

This module wraps structlog with a small amount of context management so
adapters can attach connection identity once and have it appear on every
event they emit.

Classes:
    LogContext: Per-logger context storage
    StructuredLogger: Main structured logging interface

Example:
    >>> logger = StructuredLogger("adapter.postgresql.local-pg")
    >>> with logger.context(operation="get_tables"):
    ...     logger.info("Introspecting", schema="public")
"""

import logging
from contextlib import contextmanager
from typing import Any, Dict, Generator

import structlog

from ..core.exceptions import ValidationError


class LogContext:
    """Context values merged into every event of the owning logger.

    Example:
        >>> context = LogContext()
        >>> context.set("connection_id", "local-pg")
        >>> context.get_all()
        {'connection_id': 'local-pg'}
    """

    def __init__(self) -> None:
        self._values: Dict[str, Any] = {}

    def set(self, key: str, value: Any) -> None:
        self._values[key] = value

    def get(self, key: str, default: Any = None) -> Any:
        return self._values.get(key, default)

    def get_all(self) -> Dict[str, Any]:
        return self._values.copy()

    def update(self, context: Dict[str, Any]) -> None:
        self._values.update(context)

    def clear(self) -> None:
        self._values.clear()


class StructuredLogger:
    """Structured logger with bound context.

    Attributes:
        name: Logger name

    Example:
        >>> logger = StructuredLogger("database.factory")
        >>> scoped = logger.bind(connection_id="local-pg")
        >>> scoped.info("Adapter created", engine="postgresql")
    """

    def __init__(self, name: str, *, level: str = "INFO") -> None:
        """Initialize structured logger.

        Args:
            name: Logger name (typically a dotted component path)
            level: Initial log level
        """
        self.name = name
        self._logger = structlog.get_logger(name)
        self._context = LogContext()

        self._stdlib_logger = logging.getLogger(name)
        self.set_level(level)

    @contextmanager
    def context(self, **context_data: Any) -> Generator[None, None, None]:
        """Temporarily add context data to every event.

        Args:
            **context_data: Context data to add

        Example:
            >>> with logger.context(operation="connect"):
            ...     logger.info("Opening pool")
        """
        old_context = self._context.get_all()
        try:
            self._context.update(context_data)
            yield
        finally:
            self._context.clear()
            self._context.update(old_context)

    def bind(self, **context_data: Any) -> "StructuredLogger":
        """Create a new logger carrying this logger's context plus ``context_data``."""
        bound_logger = StructuredLogger(self.name, level=self.get_level())
        bound_logger._context.update(self._context.get_all())
        bound_logger._context.update(context_data)
        return bound_logger

    def set_level(self, level: str) -> None:
        """Set logging level.

        Raises:
            ValidationError: If the level name is unknown
        """
        log_level = logging.getLevelName(level.upper()) if isinstance(level, str) else None
        if not isinstance(log_level, int):
            raise ValidationError(f"Unknown log level: {level}", code="UNKNOWN_LOG_LEVEL")
        self._stdlib_logger.setLevel(log_level)

    def get_level(self) -> str:
        return logging.getLevelName(self._stdlib_logger.getEffectiveLevel())

    def get_context(self) -> Dict[str, Any]:
        return self._context.get_all()

    def _event(self, kwargs: Dict[str, Any]) -> Dict[str, Any]:
        event_dict = self._context.get_all()
        event_dict.update(kwargs)
        return event_dict

    def debug(self, message: str, **kwargs: Any) -> None:
        self._logger.debug(message, **self._event(kwargs))

    def info(self, message: str, **kwargs: Any) -> None:
        self._logger.info(message, **self._event(kwargs))

    def warning(self, message: str, **kwargs: Any) -> None:
        self._logger.warning(message, **self._event(kwargs))

    def error(self, message: str, **kwargs: Any) -> None:
        self._logger.error(message, **self._event(kwargs))

    def critical(self, message: str, **kwargs: Any) -> None:
        self._logger.critical(message, **self._event(kwargs))

    def exception(self, message: str, **kwargs: Any) -> None:
        """Log an error with the active exception's traceback."""
        self._logger.error(message, exc_info=True, **self._event(kwargs))

    def __repr__(self) -> str:
        return f"StructuredLogger(name={self.name!r}, level={self.get_level()!r})"
