"""Tests for performance logging module."""

import time
from unittest.mock import Mock

import pytest

from dbbridge.logging.performance import (
    DURATION_WINDOW,
    PerformanceLogger,
    PerformanceMetrics,
    TimingContext,
    TimingMetrics,
)


class TestTimingMetrics:
    """Test cases for TimingMetrics class."""

    def test_initialization(self):
        """Test TimingMetrics initializes incomplete."""
        metrics = TimingMetrics(operation="connect", start_time=time.perf_counter())

        assert not metrics.is_complete
        assert metrics.duration is None
        assert metrics.duration_ms is None
        assert metrics.success is True

    def test_completion(self):
        """Test completing timing metrics."""
        metrics = TimingMetrics("execute_query", time.perf_counter())
        time.sleep(0.001)

        metrics.complete(success=False, error="syntax error")

        assert metrics.is_complete
        assert metrics.duration > 0
        assert metrics.duration_ms == pytest.approx(metrics.duration * 1000)
        assert metrics.success is False
        assert metrics.error == "syntax error"


class TestPerformanceMetrics:
    """Test cases for PerformanceMetrics aggregation."""

    def _timing(self, duration: float, success: bool = True) -> TimingMetrics:
        timing = TimingMetrics("op", 0.0)
        timing.end_time = duration
        timing.duration = duration
        timing.success = success
        return timing

    def test_aggregation(self):
        """Test counters, extremes and averages."""
        metrics = PerformanceMetrics("op")

        metrics.add_timing(self._timing(0.1))
        metrics.add_timing(self._timing(0.3, success=False))

        assert metrics.total_calls == 2
        assert metrics.successful_calls == 1
        assert metrics.failed_calls == 1
        assert metrics.min_duration == 0.1
        assert metrics.max_duration == 0.3
        assert metrics.avg_duration == pytest.approx(0.2)
        assert metrics.error_rate == 50.0

    def test_incomplete_timing_ignored(self):
        """Test incomplete timings are not counted."""
        metrics = PerformanceMetrics("op")

        metrics.add_timing(TimingMetrics("op", time.perf_counter()))

        assert metrics.total_calls == 0
        assert metrics.avg_duration is None
        assert metrics.error_rate == 0.0

    def test_recent_durations_are_bounded(self):
        """Test only the latest window is kept while totals cover every call."""
        metrics = PerformanceMetrics("op")

        for _ in range(DURATION_WINDOW + 50):
            metrics.add_timing(self._timing(0.5))
        metrics.add_timing(self._timing(2.0))

        assert len(metrics._recent) == DURATION_WINDOW
        assert metrics.total_calls == DURATION_WINDOW + 51
        assert metrics.max_duration == 2.0
        assert metrics.median_duration == 0.5
        assert metrics.avg_duration == pytest.approx(metrics.total_duration / metrics.total_calls)


class TestTimingContext:
    """Test cases for TimingContext."""

    def test_measures_block(self):
        """Test the context records a duration."""
        with TimingContext("get_tables", auto_log=False) as timer:
            assert timer.elapsed_ms() >= 0

        assert timer.duration_ms is not None
        assert timer.elapsed_ms() == timer.duration_ms

    def test_elapsed_before_enter(self):
        """Test elapsed_ms is zero before the block starts."""
        assert TimingContext("noop").elapsed_ms() == 0.0

    def test_failure_logged_as_warning(self):
        """Test a raising block logs a warning with the error."""
        logger = Mock()

        with pytest.raises(ValueError):
            with TimingContext("connect", logger, {"connection_id": "x"}):
                raise ValueError("refused")

        logger.warning.assert_called_once()
        assert logger.warning.call_args.kwargs["error"] == "refused"
        assert logger.warning.call_args.kwargs["connection_id"] == "x"

    def test_success_logged_as_debug(self):
        """Test a successful block logs at debug level."""
        logger = Mock()

        with TimingContext("ping", logger):
            pass

        logger.debug.assert_called_once()
        assert logger.debug.call_args.kwargs["operation"] == "ping"


class TestPerformanceLogger:
    """Test cases for PerformanceLogger."""

    def test_measure_records_metrics(self):
        """Test measure() aggregates per operation."""
        perf = PerformanceLogger("adapter.sqlite", logger=Mock())

        with perf.measure("execute_query"):
            pass
        with pytest.raises(RuntimeError):
            with perf.measure("execute_query"):
                raise RuntimeError("fail")

        metrics = perf.get_metrics("execute_query")
        assert metrics.total_calls == 2
        assert metrics.failed_calls == 1

    def test_tracking_disabled(self):
        """Test no metrics are kept when tracking is off."""
        perf = PerformanceLogger("adapter.redis", track_metrics=False, logger=Mock())

        with perf.measure("ping"):
            pass

        assert perf.get_metrics("ping") is None

    def test_reset_metrics(self):
        """Test reset clears aggregates."""
        perf = PerformanceLogger("adapter.neo4j", logger=Mock())
        with perf.measure("connect"):
            pass

        perf.reset_metrics()

        assert perf.get_metrics("connect") is None
