"""Adapter factory for dbbridge.

Keeps exactly one adapter instance per connection id for the life of the
process. Creating an adapter never connects it; callers decide when to
call ``connect()``.
"""

import asyncio
from typing import Dict, List, Optional

from ..config.models import ConnectionConfig
from ..core.exceptions import ConfigurationError, ErrorCodes
from ..logging import get_logger
from .protocols import DatabaseAdapter
from .registry import AdapterRegistry, get_adapter_registry


class AdapterFactory:
    """Creates and tracks adapters keyed by ``ConnectionConfig.id``.

    Example:
        >>> factory = AdapterFactory()
        >>> adapter = factory.create(config)
        >>> factory.create(config) is adapter
        True
    """

    def __init__(self, registry: Optional[AdapterRegistry] = None) -> None:
        self.logger = get_logger("database.factory")
        self._registry = registry or get_adapter_registry()
        self._adapters: Dict[str, DatabaseAdapter] = {}

    def create(self, config: ConnectionConfig) -> DatabaseAdapter:
        """Adapter for ``config.id``, constructing it on first request.

        A second call with the same id returns the existing instance even if
        the configuration differs; remove the adapter first to replace it.

        Raises:
            UnsupportedEngineError: If ``config.type`` has no adapter
            ConfigurationError: If the registered class does not provide the adapter members
        """
        existing = self._adapters.get(config.id)
        if existing is not None:
            return existing

        adapter_class = self._registry.get_adapter_class(config.type)
        adapter = adapter_class(config)
        if not isinstance(adapter, DatabaseAdapter):
            raise ConfigurationError(
                f"{adapter_class.__name__} does not implement the adapter interface",
                code=ErrorCodes.CONFIG_INVALID,
                context={"type": config.type.value, "connection_id": config.id},
            )
        self._adapters[config.id] = adapter

        self.logger.info(
            "Adapter created",
            connection_id=config.id,
            type=config.type.value,
            adapter_class=adapter_class.__name__,
        )
        return adapter

    def get(self, connection_id: str) -> Optional[DatabaseAdapter]:
        return self._adapters.get(connection_id)

    async def remove(self, connection_id: str) -> None:
        """Disconnect and forget an adapter. Disconnect failures are only logged."""
        adapter = self._adapters.pop(connection_id, None)
        if adapter is None:
            return
        try:
            await adapter.disconnect()
        except Exception as e:
            self.logger.warning(
                "Disconnect during removal failed", connection_id=connection_id, error=str(e)
            )
        self.logger.info("Adapter removed", connection_id=connection_id)

    async def disconnect_all(self) -> None:
        """Disconnect every adapter concurrently, then forget them all."""
        adapters = list(self._adapters.items())
        self._adapters.clear()
        if not adapters:
            return

        results = await asyncio.gather(
            *(adapter.disconnect() for _, adapter in adapters), return_exceptions=True
        )
        for (connection_id, _), result in zip(adapters, results):
            if isinstance(result, BaseException):
                self.logger.warning(
                    "Disconnect failed", connection_id=connection_id, error=str(result)
                )
        self.logger.info("All adapters disconnected", count=len(adapters))

    def get_connected_adapters(self) -> List[DatabaseAdapter]:
        return [adapter for adapter in self._adapters.values() if adapter.is_connected()]

    def __len__(self) -> int:
        return len(self._adapters)

    def __contains__(self, connection_id: object) -> bool:
        return connection_id in self._adapters


_factory: Optional[AdapterFactory] = None


def get_adapter_factory() -> AdapterFactory:
    """Process-wide adapter factory."""
    global _factory
    if _factory is None:
        _factory = AdapterFactory()
    return _factory


def reset_adapter_factory() -> None:
    """Drop the process-wide factory without disconnecting its adapters."""
    global _factory
    _factory = None
