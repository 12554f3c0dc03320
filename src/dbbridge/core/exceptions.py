"""dbbridge exception hierarchy.

This module defines the exception hierarchy used across dbbridge. Every
exception carries an error code, a context mapping and an optional cause so
callers can log and route failures without parsing messages.

Only lifecycle failures (connecting, configuration, unknown engines) are
raised to callers. Failures of query-shaped operations are folded into
``QueryResult.error`` by the adapters and never surface as exceptions.

Classes:
    DbBridgeException: Base exception for all dbbridge operations
    ConfigurationError: Configuration related errors
    ConnectionError: Database connection errors
    DatabaseConnectionError: Failed or missing connection
    AuthenticationError: Rejected credentials
    QueryError: Statement execution errors
    UnsupportedEngineError: Unknown engine tag

Example:
    >>> try:
    ...     await adapter.connect()
    ... except DatabaseConnectionError as e:
    ...     logger.error("Connection failed", error_code=e.code, context=e.context)
"""

from typing import Any, Dict, Optional


class DbBridgeException(Exception):
    """Base exception for all dbbridge operations.

    Attributes:
        code: Unique error code for categorization
        context: Additional context information about the error
        cause: Original exception that caused this error (if any)

    Example:
        >>> raise DbBridgeException(
        ...     "Operation failed",
        ...     code="OPERATION_FAILED",
        ...     context={"connection_id": "local-pg"}
        ... )
    """

    def __init__(
        self,
        message: str,
        *,
        code: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
        cause: Optional[BaseException] = None,
    ) -> None:
        """Initialize dbbridge exception.

        Args:
            message: Human-readable error description
            code: Unique error code for categorization (defaults to class name)
            context: Additional context information
            cause: Original exception that caused this error
        """
        super().__init__(message)
        self.code: str = code or self.__class__.__name__
        self.context: Dict[str, Any] = context or {}
        self.cause: Optional[BaseException] = cause

    @property
    def message(self) -> str:
        """Human-readable message without the error code prefix."""
        return super().__str__()

    def __str__(self) -> str:
        return f"{self.code}: {self.message}"

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}("
            f"message={self.message!r}, "
            f"code={self.code!r}, "
            f"context={self.context!r}, "
            f"cause={self.cause!r})"
        )

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for serialization.

        Returns:
            Dictionary representation of the exception
        """
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "code": self.code,
            "context": self.context,
            "cause": str(self.cause) if self.cause else None,
        }


class ConfigurationError(DbBridgeException):
    """Configuration is invalid, missing, or cannot be processed."""
    pass


class ValidationError(ConfigurationError):
    """Input data fails validation rules."""
    pass


class ConnectionError(DbBridgeException):
    """Base class for database connection issues."""
    pass


class DatabaseConnectionError(ConnectionError):
    """Unable to establish, or operate without, a database connection.

    Raised by ``connect()`` with a message prefixed by the engine name, and
    by any operation invoked on an adapter that is not connected.
    """
    pass


class AuthenticationError(DatabaseConnectionError):
    """Database rejected the supplied credentials.

    Raised by ``connect()`` in place of ``DatabaseConnectionError`` when the
    failure is classified as ``AUTH_FAILED``.
    """
    pass


class QueryError(DbBridgeException):
    """A statement or command could not be executed."""
    pass


class UnsupportedEngineError(ConfigurationError):
    """The requested engine tag has no registered adapter."""
    pass


class ErrorCodes:
    """Standard error codes for dbbridge exceptions."""

    # Configuration errors
    CONFIG_NOT_FOUND = "CONFIG_NOT_FOUND"
    CONFIG_INVALID = "CONFIG_INVALID"

    # Connection errors
    CONNECTION_FAILED = "CONNECTION_FAILED"
    CONNECTION_TIMEOUT = "CONNECTION_TIMEOUT"
    CONNECTION_REFUSED = "CONNECTION_REFUSED"
    AUTH_FAILED = "AUTH_FAILED"
    NOT_CONNECTED = "NOT_CONNECTED"

    # Engine errors
    UNSUPPORTED_ENGINE = "UNSUPPORTED_ENGINE"

    # Execution errors
    INVALID_COMMAND = "INVALID_COMMAND"

    # Lifecycle errors
    INIT_FAILED = "INIT_FAILED"

