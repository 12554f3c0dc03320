"""Unit tests for the adapter factory."""

from unittest.mock import AsyncMock

import pytest

from dbbridge.config.models import DatabaseType
from dbbridge.core import AsyncComponent
from dbbridge.core.exceptions import ConfigurationError, UnsupportedEngineError
from dbbridge.database.adapters.sqlite import SQLiteAdapter
from dbbridge.database.factory import AdapterFactory, get_adapter_factory
from dbbridge.database.protocols import DatabaseAdapter
from dbbridge.database.registry import AdapterRegistry


class TestAdapterFactory:
    """Test AdapterFactory."""

    def test_create_is_idempotent_per_id(self, sqlite_config, make_config):
        factory = AdapterFactory()

        adapter = factory.create(sqlite_config)
        again = factory.create(make_config("sqlite", id="local-sqlite", filename="other.db"))

        assert isinstance(adapter, SQLiteAdapter)
        assert again is adapter
        assert len(factory) == 1
        assert "local-sqlite" in factory

    def test_create_does_not_connect(self, sqlite_config):
        adapter = AdapterFactory().create(sqlite_config)

        assert not adapter.is_connected()

    def test_create_unsupported(self, sqlite_config):
        factory = AdapterFactory(registry=AdapterRegistry(paths={}))

        with pytest.raises(UnsupportedEngineError):
            factory.create(sqlite_config)
        assert factory.get(sqlite_config.id) is None

    def test_created_adapter_satisfies_protocol(self, sqlite_config):
        assert isinstance(AdapterFactory().create(sqlite_config), DatabaseAdapter)

    def test_create_rejects_incomplete_adapter_class(self, sqlite_config):
        """Test a registered component lacking adapter members is refused."""
        class _HalfAdapter(AsyncComponent):
            component_name = "HalfAdapter"

            async def _async_initialize(self):
                pass

            async def _async_cleanup(self):
                pass

        registry = AdapterRegistry(paths={})
        registry.register_adapter(DatabaseType.SQLITE, _HalfAdapter)
        factory = AdapterFactory(registry=registry)

        with pytest.raises(ConfigurationError) as exc_info:
            factory.create(sqlite_config)

        assert exc_info.value.message == "_HalfAdapter does not implement the adapter interface"
        assert sqlite_config.id not in factory

    def test_get_never_constructs(self):
        assert AdapterFactory().get("missing") is None

    @pytest.mark.asyncio
    async def test_remove_disconnects(self, sqlite_config):
        factory = AdapterFactory()
        adapter = factory.create(sqlite_config)
        await adapter.connect()

        await factory.remove(sqlite_config.id)

        assert not adapter.is_connected()
        assert factory.get(sqlite_config.id) is None

    @pytest.mark.asyncio
    async def test_remove_swallows_disconnect_error(self, sqlite_config):
        factory = AdapterFactory()
        adapter = factory.create(sqlite_config)
        adapter.disconnect = AsyncMock(side_effect=RuntimeError("socket closed"))

        await factory.remove(sqlite_config.id)

        adapter.disconnect.assert_awaited_once()
        assert factory.get(sqlite_config.id) is None

    @pytest.mark.asyncio
    async def test_create_after_remove_builds_new_adapter(self, sqlite_config, make_config):
        """Test a removed id gets a fresh adapter built from the new configuration."""
        factory = AdapterFactory()
        first = factory.create(sqlite_config)

        await factory.remove(sqlite_config.id)
        second = factory.create(make_config("sqlite", id=sqlite_config.id, filename="other.db"))

        assert second is not first
        assert second.config.filename == "other.db"
        assert factory.get(sqlite_config.id) is second
        assert len(factory) == 1

    @pytest.mark.asyncio
    async def test_remove_unknown_is_noop(self):
        await AdapterFactory().remove("missing")

    @pytest.mark.asyncio
    async def test_disconnect_all(self, make_config):
        factory = AdapterFactory()
        first = factory.create(make_config("sqlite", id="one"))
        second = factory.create(make_config("sqlite", id="two"))
        await first.connect()
        await second.connect()
        second.disconnect = AsyncMock(side_effect=RuntimeError("boom"))

        assert len(factory.get_connected_adapters()) == 2

        await factory.disconnect_all()

        assert not first.is_connected()
        second.disconnect.assert_awaited_once()
        assert len(factory) == 0
        assert factory.get_connected_adapters() == []
        await SQLiteAdapter.disconnect(second)

    @pytest.mark.asyncio
    async def test_connected_adapters(self, make_config):
        factory = AdapterFactory()
        live = factory.create(make_config("sqlite", id="live"))
        factory.create(make_config("sqlite", id="idle"))
        await live.connect()

        assert factory.get_connected_adapters() == [live]

        await factory.disconnect_all()

    def test_global_factory(self):
        assert get_adapter_factory() is get_adapter_factory()
