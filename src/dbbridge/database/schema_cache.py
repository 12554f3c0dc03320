"""Time-bounded cache of schema metadata per connection and database."""

import time
from dataclasses import dataclass
from typing import Callable, Dict, Optional

from ..logging import get_logger
from .factory import AdapterFactory, get_adapter_factory
from .models import ColumnMetadata, SchemaMetadata, TableMetadata
from .protocols import DatabaseAdapter

DEFAULT_TTL = 60.0


@dataclass
class _Entry:
    metadata: SchemaMetadata
    stored_at: float


class SchemaMetadataCache:
    """Memoizes ``get_schema_metadata`` results for ``ttl`` seconds.

    Entries are keyed by ``"<connection_id>:<database or 'default'>"``. A
    failed lookup is never cached.

    Args:
        factory: Source of adapters (the process-wide factory by default)
        ttl: Entry lifetime in seconds
        clock: Monotonic time source
    """

    def __init__(
        self,
        factory: Optional[AdapterFactory] = None,
        ttl: float = DEFAULT_TTL,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.logger = get_logger("database.schema_cache")
        self._factory = factory
        self.ttl = ttl
        self._clock = clock
        self._entries: Dict[str, _Entry] = {}

    @property
    def factory(self) -> AdapterFactory:
        return self._factory or get_adapter_factory()

    @staticmethod
    def _key(connection_id: str, database: Optional[str]) -> str:
        return f"{connection_id}:{database or 'default'}"

    async def get_metadata(
        self, connection_id: str, database: Optional[str] = None
    ) -> Optional[SchemaMetadata]:
        """Cached metadata, refreshed from the adapter once older than the TTL.

        Returns:
            Metadata, or ``None`` when the adapter is missing, disconnected
            or the lookup fails
        """
        key = self._key(connection_id, database)
        entry = self._entries.get(key)
        if entry is not None and self._clock() - entry.stored_at < self.ttl:
            return entry.metadata

        adapter = self.factory.get(connection_id)
        if adapter is None or not adapter.is_connected():
            return None

        try:
            metadata = await self._load(adapter, database)
        except Exception as e:
            self.logger.warning(
                "Schema metadata lookup failed",
                connection_id=connection_id,
                database=database,
                error=str(e),
            )
            return None

        self._entries[key] = _Entry(metadata=metadata, stored_at=self._clock())
        return metadata

    async def _load(self, adapter: DatabaseAdapter, database: Optional[str]) -> SchemaMetadata:
        get_schema_metadata = getattr(adapter, "get_schema_metadata", None)
        if get_schema_metadata is not None:
            return await get_schema_metadata(database)

        tables = []
        for table in await adapter.get_tables(database):
            try:
                columns = await adapter.get_columns(table.name)
            except Exception as e:
                self.logger.debug("Column lookup failed", table=table.name, error=str(e))
                columns = table.columns
            tables.append(TableMetadata(
                name=table.name,
                schema=table.schema,
                columns=[ColumnMetadata(name=c.name, type=c.type) for c in columns],
            ))

        views = []
        get_views = getattr(adapter, "get_views", None)
        if get_views is not None:
            try:
                views = [
                    TableMetadata(name=view.name, schema=view.schema)
                    for view in await get_views(database)
                ]
            except Exception as e:
                self.logger.debug("View lookup failed", error=str(e))

        return SchemaMetadata(tables=tables, views=views)

    def invalidate(self, connection_id: str) -> None:
        prefix = f"{connection_id}:"
        for key in [k for k in self._entries if k.startswith(prefix)]:
            del self._entries[key]

    def invalidate_all(self) -> None:
        self._entries.clear()


_cache: Optional[SchemaMetadataCache] = None


def get_schema_cache() -> SchemaMetadataCache:
    """Process-wide schema metadata cache."""
    global _cache
    if _cache is None:
        _cache = SchemaMetadataCache()
    return _cache


def reset_schema_cache() -> None:
    global _cache
    _cache = None
