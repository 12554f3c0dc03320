"""Performance logging for dbbridge operations.

This module times adapter operations (connects, statements, introspection)
and keeps per-operation aggregates so slow engines are easy to spot.

Classes:
    TimingMetrics: A single timing measurement
    PerformanceMetrics: Aggregated metrics for one operation name
    TimingContext: Context manager measuring one block
    PerformanceLogger: Main performance logging interface

Example:
    >>> perf_logger = PerformanceLogger("adapter.postgresql")
    >>> with perf_logger.measure("connect", connection_id="local-pg") as timer:
    ...     ...
    >>> timer.duration_ms
    12.5
"""

import statistics
import time
from collections import deque
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, Deque, Dict, Generator, Optional

from .structured import StructuredLogger

# Recent durations kept per operation for the median
DURATION_WINDOW = 1000


@dataclass
class TimingMetrics:
    """Metrics for a single timing measurement.

    Attributes:
        operation: Operation name
        start_time: ``perf_counter`` value at start
        end_time: ``perf_counter`` value at end
        duration: Duration in seconds
        metadata: Additional metadata
        success: Whether the operation succeeded
        error: Error message if it failed
    """
    operation: str
    start_time: float
    end_time: Optional[float] = None
    duration: Optional[float] = None
    metadata: Dict[str, Any] = field(default_factory=dict)
    success: bool = True
    error: Optional[str] = None

    def complete(self, success: bool = True, error: Optional[str] = None) -> None:
        self.end_time = time.perf_counter()
        self.duration = self.end_time - self.start_time
        self.success = success
        self.error = error

    @property
    def duration_ms(self) -> Optional[float]:
        return self.duration * 1000 if self.duration is not None else None

    @property
    def is_complete(self) -> bool:
        return self.end_time is not None


@dataclass
class PerformanceMetrics:
    """Aggregated performance metrics for an operation.

    Counters, extremes and the average cover every call. The median covers
    the last ``DURATION_WINDOW`` calls so long-lived adapters stay bounded.
    """
    operation: str
    total_calls: int = 0
    successful_calls: int = 0
    failed_calls: int = 0
    total_duration: float = 0.0
    min_duration: Optional[float] = None
    max_duration: Optional[float] = None
    _recent: Deque[float] = field(default_factory=lambda: deque(maxlen=DURATION_WINDOW), repr=False)

    def add_timing(self, timing: TimingMetrics) -> None:
        if not timing.is_complete or timing.duration is None:
            return

        self.total_calls += 1
        if timing.success:
            self.successful_calls += 1
        else:
            self.failed_calls += 1

        duration = timing.duration
        self.total_duration += duration
        self._recent.append(duration)

        if self.min_duration is None or duration < self.min_duration:
            self.min_duration = duration
        if self.max_duration is None or duration > self.max_duration:
            self.max_duration = duration

    @property
    def avg_duration(self) -> Optional[float]:
        return self.total_duration / self.total_calls if self.total_calls else None

    @property
    def median_duration(self) -> Optional[float]:
        return statistics.median(self._recent) if self._recent else None

    @property
    def error_rate(self) -> float:
        """Failed calls as a percentage (0-100)."""
        if self.total_calls == 0:
            return 0.0
        return (self.failed_calls / self.total_calls) * 100


class TimingContext:
    """Context manager for measuring operation timing.

    Example:
        >>> with TimingContext("execute_query") as timer:
        ...     run()
        >>> print(f"took {timer.duration_ms:.2f}ms")
    """

    def __init__(
        self,
        operation: str,
        logger: Optional[StructuredLogger] = None,
        metadata: Optional[Dict[str, Any]] = None,
        auto_log: bool = True,
    ) -> None:
        self.operation = operation
        self.logger = logger
        self.metadata = metadata or {}
        self.auto_log = auto_log
        self._timing: Optional[TimingMetrics] = None

    @property
    def timing(self) -> Optional[TimingMetrics]:
        return self._timing

    @property
    def duration(self) -> Optional[float]:
        return self._timing.duration if self._timing else None

    @property
    def duration_ms(self) -> Optional[float]:
        return self._timing.duration_ms if self._timing else None

    def elapsed_ms(self) -> float:
        """Milliseconds since the context was entered, complete or not."""
        if self._timing is None:
            return 0.0
        if self._timing.duration_ms is not None:
            return self._timing.duration_ms
        return (time.perf_counter() - self._timing.start_time) * 1000

    def __enter__(self) -> "TimingContext":
        self._timing = TimingMetrics(
            operation=self.operation,
            start_time=time.perf_counter(),
            metadata=self.metadata,
        )
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        if self._timing is None:
            return

        success = exc_type is None
        error = str(exc_val) if exc_val else None
        self._timing.complete(success=success, error=error)

        if self.logger and self.auto_log:
            if success:
                self.logger.debug(
                    "Operation timed",
                    operation=self.operation,
                    duration_ms=self._timing.duration_ms,
                    **self.metadata,
                )
            else:
                self.logger.warning(
                    "Timed operation failed",
                    operation=self.operation,
                    duration_ms=self._timing.duration_ms,
                    error=error,
                    **self.metadata,
                )


class PerformanceLogger:
    """Performance logging and aggregation.

    Example:
        >>> perf = PerformanceLogger("adapter.sqlite")
        >>> with perf.measure("get_tables"):
        ...     ...
        >>> perf.get_metrics("get_tables").total_calls
        1
    """

    def __init__(
        self,
        name: str,
        *,
        auto_log: bool = True,
        track_metrics: bool = True,
        logger: Optional[StructuredLogger] = None,
    ) -> None:
        self.name = name
        self.auto_log = auto_log
        self.track_metrics = track_metrics
        self.logger = logger or StructuredLogger(f"perf.{name}")
        self._metrics: Dict[str, PerformanceMetrics] = {}

    @contextmanager
    def measure(self, operation: str, **metadata: Any) -> Generator[TimingContext, None, None]:
        """Time a block and record it under ``operation``.

        Args:
            operation: Operation name
            **metadata: Additional fields logged with the timing

        Yields:
            TimingContext for the block
        """
        timer = TimingContext(operation, self.logger, metadata, self.auto_log)
        try:
            with timer:
                yield timer
        finally:
            if self.track_metrics and timer.timing is not None:
                self._record(timer.timing)

    def _record(self, timing: TimingMetrics) -> None:
        metrics = self._metrics.get(timing.operation)
        if metrics is None:
            metrics = self._metrics[timing.operation] = PerformanceMetrics(timing.operation)
        metrics.add_timing(timing)

    def get_metrics(self, operation: str) -> Optional[PerformanceMetrics]:
        return self._metrics.get(operation)

    def reset_metrics(self) -> None:
        self._metrics.clear()
