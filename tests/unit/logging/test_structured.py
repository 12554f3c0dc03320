"""Tests for structured logging module."""

from unittest.mock import Mock

import pytest
import structlog

from dbbridge.core.exceptions import ValidationError
from dbbridge.logging.structured import LogContext, StructuredLogger


class TestLogContext:
    """Test cases for LogContext class."""

    def test_context_initialization(self):
        """Test LogContext initializes correctly."""
        assert LogContext().get_all() == {}

    def test_set_and_get_context_value(self):
        """Test setting and getting context values."""
        context = LogContext()

        context.set("connection_id", "local-pg")
        context.set("attempt", 2)

        assert context.get("connection_id") == "local-pg"
        assert context.get("attempt") == 2
        assert context.get("missing") is None
        assert context.get("missing", "default") == "default"

    def test_get_all_returns_copy(self):
        """Test get_all does not expose internal storage."""
        context = LogContext()
        context.set("key", "value")

        snapshot = context.get_all()
        snapshot["key"] = "changed"

        assert context.get("key") == "value"

    def test_update_and_clear(self):
        """Test updating and clearing context."""
        context = LogContext()

        context.update({"a": 1, "b": 2})
        assert context.get_all() == {"a": 1, "b": 2}

        context.clear()
        assert context.get_all() == {}


class TestStructuredLogger:
    """Test cases for StructuredLogger class."""

    def _with_mock(self, logger: StructuredLogger) -> Mock:
        backend = Mock()
        logger._logger = backend
        return backend

    def test_logger_initialization(self):
        """Test StructuredLogger initializes correctly."""
        logger = StructuredLogger("adapter.sqlite.local", level="DEBUG")

        assert logger.name == "adapter.sqlite.local"
        assert logger.get_level() == "DEBUG"
        assert logger.get_context() == {}

    def test_invalid_level(self):
        """Test unknown level names are rejected."""
        with pytest.raises(ValidationError):
            StructuredLogger("test.level", level="LOUD")

    def test_kwargs_are_forwarded(self):
        """Test log calls pass keyword fields to structlog."""
        logger = StructuredLogger("test.forward")
        backend = self._with_mock(logger)

        logger.info("Connected", target="localhost:5432")

        backend.info.assert_called_once_with("Connected", target="localhost:5432")

    def test_context_manager_adds_fields_temporarily(self):
        """Test context() scopes extra fields."""
        logger = StructuredLogger("test.context")
        backend = self._with_mock(logger)

        with logger.context(operation="get_tables"):
            logger.debug("Introspecting")
        logger.debug("Done")

        assert backend.debug.call_args_list[0].kwargs == {"operation": "get_tables"}
        assert backend.debug.call_args_list[1].kwargs == {}

    def test_bind_creates_new_logger(self):
        """Test bind copies context into a new logger."""
        logger = StructuredLogger("test.bind")
        bound = logger.bind(connection_id="local-pg")

        assert bound is not logger
        assert bound.get_context() == {"connection_id": "local-pg"}
        assert logger.get_context() == {}

    def test_exception_includes_traceback(self):
        """Test exception() logs at error level with exc_info."""
        logger = StructuredLogger("test.exception")
        backend = self._with_mock(logger)

        try:
            raise RuntimeError("boom")
        except RuntimeError:
            logger.exception("Failed", step="connect")

        backend.error.assert_called_once_with("Failed", exc_info=True, step="connect")

    def test_events_reach_structlog(self):
        """Test the unmocked logger emits through the configured structlog pipeline."""
        logger = StructuredLogger("test.events").bind(connection_id="local-pg")

        with structlog.testing.capture_logs() as logs:
            logger.info("Connected", target="localhost:5432")
            logger.debug("Introspecting")

        assert logs == [
            {"event": "Connected", "connection_id": "local-pg", "target": "localhost:5432", "log_level": "info"},
            {"event": "Introspecting", "connection_id": "local-pg", "log_level": "debug"},
        ]
