"""dbbridge core infrastructure.

This package provides the foundational pieces shared by every adapter:
the component lifecycle base and the exception hierarchy.

Example:
    >>> from dbbridge.core import AsyncComponent
    >>> from dbbridge.core.exceptions import DatabaseConnectionError
"""

from .base import AsyncComponent, BaseComponent
from .exceptions import (
    AuthenticationError,
    ConfigurationError,
    ConnectionError,
    DatabaseConnectionError,
    DbBridgeException,
    ErrorCodes,
    QueryError,
    UnsupportedEngineError,
    ValidationError,
)

__all__ = [
    # Base classes
    "AsyncComponent",
    "BaseComponent",
    # Exceptions
    "AuthenticationError",
    "ConfigurationError",
    "ConnectionError",
    "DatabaseConnectionError",
    "DbBridgeException",
    "ErrorCodes",
    "QueryError",
    "UnsupportedEngineError",
    "ValidationError",
]
