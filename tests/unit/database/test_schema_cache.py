"""Unit tests for the schema metadata cache."""

from unittest.mock import AsyncMock, MagicMock

import pytest

from dbbridge.database.factory import AdapterFactory
from dbbridge.database.models import Column, SchemaMetadata, Table, TableMetadata, View
from dbbridge.database.schema_cache import SchemaMetadataCache, get_schema_cache


class FakeClock:
    def __init__(self) -> None:
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


def _adapter(metadata=None, connected=True):
    adapter = MagicMock()
    adapter.is_connected.return_value = connected
    adapter.get_schema_metadata = AsyncMock(
        return_value=metadata or SchemaMetadata(tables=[TableMetadata(name="users")])
    )
    return adapter


def _factory(**adapters) -> AdapterFactory:
    factory = AdapterFactory()
    factory._adapters.update(adapters)
    return factory


class TestSchemaMetadataCache:
    """Test SchemaMetadataCache."""

    @pytest.mark.asyncio
    async def test_hit_within_ttl(self):
        clock = FakeClock()
        adapter = _adapter()
        cache = SchemaMetadataCache(_factory(pg=adapter), clock=clock)

        first = await cache.get_metadata("pg")
        clock.now += 59
        second = await cache.get_metadata("pg")

        assert first is second
        adapter.get_schema_metadata.assert_awaited_once_with(None)

    @pytest.mark.asyncio
    async def test_refresh_after_ttl(self):
        clock = FakeClock()
        adapter = _adapter()
        cache = SchemaMetadataCache(_factory(pg=adapter), clock=clock)

        await cache.get_metadata("pg")
        clock.now += 60
        await cache.get_metadata("pg")

        assert adapter.get_schema_metadata.await_count == 2

    @pytest.mark.asyncio
    async def test_keyed_by_database(self):
        adapter = _adapter()
        cache = SchemaMetadataCache(_factory(pg=adapter), clock=FakeClock())

        await cache.get_metadata("pg")
        await cache.get_metadata("pg", "analytics")
        await cache.get_metadata("pg", "")

        assert adapter.get_schema_metadata.await_count == 2

    @pytest.mark.asyncio
    async def test_missing_or_disconnected_adapter(self):
        cache = SchemaMetadataCache(_factory(idle=_adapter(connected=False)), clock=FakeClock())

        assert await cache.get_metadata("missing") is None
        assert await cache.get_metadata("idle") is None

    @pytest.mark.asyncio
    async def test_failure_not_cached(self):
        adapter = _adapter()
        adapter.get_schema_metadata.side_effect = [RuntimeError("timeout"), SchemaMetadata()]
        cache = SchemaMetadataCache(_factory(pg=adapter), clock=FakeClock())

        assert await cache.get_metadata("pg") is None
        assert await cache.get_metadata("pg") == SchemaMetadata()

    @pytest.mark.asyncio
    async def test_fallback_without_schema_metadata(self):
        """Test adapters lacking get_schema_metadata are assembled from primitives."""
        adapter = MagicMock(spec=["is_connected", "get_tables", "get_columns", "get_views"])
        adapter.is_connected.return_value = True
        adapter.get_tables = AsyncMock(return_value=[
            Table(name="a", columns=[Column(name="own", type="text")]),
            Table(name="b"),
        ])
        adapter.get_columns = AsyncMock(side_effect=[
            RuntimeError("denied"),
            [Column(name="id", type="int")],
        ])
        adapter.get_views = AsyncMock(side_effect=RuntimeError("no views"))
        cache = SchemaMetadataCache(_factory(x=adapter), clock=FakeClock())

        metadata = await cache.get_metadata("x")

        assert [c.name for c in metadata.tables[0].columns] == ["own"]
        assert [c.name for c in metadata.tables[1].columns] == ["id"]
        assert metadata.views == []

    @pytest.mark.asyncio
    async def test_fallback_views(self):
        adapter = MagicMock(spec=["is_connected", "get_tables", "get_columns", "get_views"])
        adapter.is_connected.return_value = True
        adapter.get_tables = AsyncMock(return_value=[])
        adapter.get_views = AsyncMock(return_value=[View(name="recent")])
        cache = SchemaMetadataCache(_factory(x=adapter), clock=FakeClock())

        metadata = await cache.get_metadata("x")

        assert [v.name for v in metadata.views] == ["recent"]

    @pytest.mark.asyncio
    async def test_invalidate_by_connection(self):
        pg, my = _adapter(), _adapter()
        cache = SchemaMetadataCache(_factory(pg=pg, pg2=my), clock=FakeClock())
        await cache.get_metadata("pg")
        await cache.get_metadata("pg", "other")
        await cache.get_metadata("pg2")

        cache.invalidate("pg")
        await cache.get_metadata("pg")
        await cache.get_metadata("pg2")

        assert pg.get_schema_metadata.await_count == 3
        assert my.get_schema_metadata.await_count == 1

    @pytest.mark.asyncio
    async def test_invalidate_all(self):
        adapter = _adapter()
        cache = SchemaMetadataCache(_factory(pg=adapter), clock=FakeClock())
        await cache.get_metadata("pg")

        cache.invalidate_all()
        await cache.get_metadata("pg")

        assert adapter.get_schema_metadata.await_count == 2

    @pytest.mark.asyncio
    async def test_real_sqlite_adapter(self, sqlite_config):
        factory = AdapterFactory()
        adapter = factory.create(sqlite_config)
        await adapter.connect()
        await adapter.execute_query("CREATE TABLE notes (id INTEGER PRIMARY KEY, body TEXT)")
        cache = SchemaMetadataCache(factory)

        metadata = await cache.get_metadata(sqlite_config.id)

        assert [t.name for t in metadata.tables] == ["notes"]
        assert [c.name for c in metadata.tables[0].columns] == ["id", "body"]
        await factory.disconnect_all()

    def test_global_cache(self):
        assert get_schema_cache() is get_schema_cache()
        assert get_schema_cache().ttl == 60.0
