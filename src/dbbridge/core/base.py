"""Base classes for dbbridge components.

This module provides the lifecycle base every adapter builds on: a generic
configured component plus an async variant with serialized initialization
and cleanup.

Classes:
    BaseComponent: Generic base class holding configuration and uptime
    AsyncComponent: Base class for components with async setup and teardown

Example:
    >>> class PostgreSQLAdapter(AsyncComponent[ConnectionConfig]):
    ...     async def _async_initialize(self) -> None:
    ...         self._pool = await asyncpg.create_pool(...)
"""

import asyncio
import time
from abc import ABC, abstractmethod
from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator, ClassVar, Generic, TypeVar

import structlog

from .exceptions import DbBridgeException, ErrorCodes, ValidationError

logger = structlog.get_logger(__name__)

T = TypeVar("T")


class BaseComponent(Generic[T], ABC):
    """Base class for all dbbridge components.

    Type Parameters:
        T: Type of configuration object this component accepts

    Attributes:
        component_name: Name of the component for logging and identification
    """

    component_name: ClassVar[str] = "BaseComponent"

    def __init__(self, config: T) -> None:
        """Initialize base component.

        Args:
            config: Configuration object for this component

        Raises:
            ValidationError: If configuration is missing
        """
        if config is None:
            raise ValidationError(
                "Configuration cannot be None",
                code="CONFIG_NULL",
                context={"component": self.component_name},
            )

        self._config: T = config
        self._initialized: bool = False
        self._creation_time: float = time.time()
        self._logger = structlog.get_logger(self.__class__.__name__)

    @property
    def config(self) -> T:
        return self._config

    @property
    def is_initialized(self) -> bool:
        return self._initialized

    @property
    def uptime(self) -> float:
        """Seconds since component creation."""
        return time.time() - self._creation_time

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}("
            f"name={self.component_name!r}, "
            f"initialized={self._initialized}, "
            f"uptime={self.uptime:.2f}s)"
        )


class AsyncComponent(BaseComponent[T]):
    """Base class for async-capable components.

    Initialization and cleanup are each guarded by a lock so concurrent
    callers cannot open or release the underlying resource twice.
    """

    def __init__(self, config: T) -> None:
        super().__init__(config)
        self._initialization_lock = asyncio.Lock()
        self._cleanup_lock = asyncio.Lock()

    async def initialize(self) -> None:
        """Initialize component asynchronously.

        Calling this on an initialized component is a no-op.

        Raises:
            DbBridgeException: If initialization fails. dbbridge exceptions
                raised by ``_async_initialize`` propagate unchanged; anything
                else is wrapped with code ``INIT_FAILED``.
        """
        async with self._initialization_lock:
            if self._initialized:
                return

            self._logger.debug("Initializing component", component=self.component_name)

            try:
                await self._async_initialize()
            except DbBridgeException as e:
                self._logger.error(
                    "Component initialization failed",
                    component=self.component_name,
                    error=e.message,
                    code=e.code,
                )
                raise
            except Exception as e:
                self._logger.error(
                    "Component initialization failed",
                    component=self.component_name,
                    error=str(e),
                )
                raise DbBridgeException(
                    f"Failed to initialize {self.component_name}",
                    code=ErrorCodes.INIT_FAILED,
                    context={"component": self.component_name},
                    cause=e,
                ) from e

            self._initialized = True
            self._logger.debug("Component initialized", component=self.component_name)

    async def cleanup(self) -> None:
        """Clean up component resources asynchronously.

        Cleanup failures are logged and not raised; the component is marked
        uninitialized either way.
        """
        async with self._cleanup_lock:
            if not self._initialized:
                return

            self._logger.debug("Cleaning up component", component=self.component_name)

            try:
                await self._async_cleanup()
            except Exception as e:
                self._logger.error(
                    "Component cleanup failed",
                    component=self.component_name,
                    error=str(e),
                )
            finally:
                self._initialized = False

    @abstractmethod
    async def _async_initialize(self) -> None:
        """Perform async initialization work."""

    async def _async_cleanup(self) -> None:
        """Perform async cleanup work."""

    @asynccontextmanager
    async def managed_lifecycle(self) -> AsyncGenerator["AsyncComponent[T]", None]:
        """Context manager for automatic lifecycle management.

        Yields:
            The initialized component

        Example:
            >>> async with adapter.managed_lifecycle() as live:
            ...     await live.execute_query("SELECT 1")
        """
        try:
            await self.initialize()
            yield self
        finally:
            await self.cleanup()

    async def __aenter__(self) -> "AsyncComponent[T]":
        await self.initialize()
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.cleanup()
