"""dbbridge structured logging.

Classes:
    StructuredLogger: Main structured logging interface
    PerformanceLogger: Operation timing and aggregation
    LoggerFactory: Logger creation and configuration

Example:
    >>> from dbbridge.logging import get_logger, get_performance_logger
    >>> logger = get_logger("adapter.postgresql.local-pg")
    >>> perf_logger = get_performance_logger("adapter.postgresql")
    >>> with perf_logger.measure("get_tables"):
    ...     ...
"""

from .factory import (
    LoggerConfig,
    LoggerFactory,
    configure_logging,
    get_factory,
    get_logger,
    get_performance_logger,
    shutdown_logging,
)
from .performance import PerformanceLogger, PerformanceMetrics, TimingContext, TimingMetrics
from .structured import LogContext, StructuredLogger

__all__ = [
    # Factory and configuration
    "LoggerConfig",
    "LoggerFactory",
    "configure_logging",
    "get_factory",
    "get_logger",
    "get_performance_logger",
    "shutdown_logging",
    # Performance logging
    "PerformanceLogger",
    "PerformanceMetrics",
    "TimingContext",
    "TimingMetrics",
    # Structured logging
    "LogContext",
    "StructuredLogger",
]
