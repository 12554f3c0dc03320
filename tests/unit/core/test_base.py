"""Unit tests for dbbridge component base classes.

This module tests the component lifecycle shared by every adapter.
"""

import pytest

from dbbridge.core.base import AsyncComponent, BaseComponent
from dbbridge.core.exceptions import DbBridgeException, ErrorCodes, QueryError, ValidationError


# Test configuration class - NOT a test class (no Test prefix)
class ComponentTestConfig:
    """Test configuration for component testing."""
    def __init__(self, name: str = "test", value: int = 42):
        self.name = name
        self.value = value


class _TestableBaseComponent(BaseComponent[ComponentTestConfig]):
    component_name = "TestComponent"


class _TestableAsyncComponent(AsyncComponent[ComponentTestConfig]):
    component_name = "TestAsyncComponent"

    def __init__(self, config: ComponentTestConfig):
        super().__init__(config)
        self.initialize_calls = 0
        self.cleanup_calls = 0

    async def _async_initialize(self) -> None:
        self.initialize_calls += 1

    async def _async_cleanup(self) -> None:
        self.cleanup_calls += 1


class TestBaseComponent:
    """Test BaseComponent functionality."""

    def test_component_initialization(self):
        """Test basic component initialization."""
        config = ComponentTestConfig(name="test_component")
        component = _TestableBaseComponent(config)

        assert component.config is config
        assert not component.is_initialized
        assert component.uptime >= 0

    def test_component_none_config(self):
        """Test component rejects missing configuration."""
        with pytest.raises(ValidationError) as exc_info:
            _TestableBaseComponent(None)

        assert exc_info.value.code == "CONFIG_NULL"

    def test_repr(self):
        """Test component representation."""
        component = _TestableBaseComponent(ComponentTestConfig())

        assert "TestComponent" in repr(component)
        assert "initialized=False" in repr(component)


class TestAsyncComponent:
    """Test AsyncComponent functionality."""

    @pytest.mark.asyncio
    async def test_initialization(self):
        """Test async component initialization."""
        component = _TestableAsyncComponent(ComponentTestConfig())

        await component.initialize()

        assert component.is_initialized
        assert component.initialize_calls == 1

    @pytest.mark.asyncio
    async def test_double_initialization_is_noop(self):
        """Test second initialize does not reinitialize."""
        component = _TestableAsyncComponent(ComponentTestConfig())

        await component.initialize()
        await component.initialize()

        assert component.initialize_calls == 1

    @pytest.mark.asyncio
    async def test_cleanup(self):
        """Test async component cleanup."""
        component = _TestableAsyncComponent(ComponentTestConfig())

        await component.initialize()
        await component.cleanup()

        assert not component.is_initialized
        assert component.cleanup_calls == 1

    @pytest.mark.asyncio
    async def test_cleanup_without_init(self):
        """Test cleanup of an uninitialized component does nothing."""
        component = _TestableAsyncComponent(ComponentTestConfig())

        await component.cleanup()

        assert component.cleanup_calls == 0

    @pytest.mark.asyncio
    async def test_context_manager(self):
        """Test async component as context manager."""
        component = _TestableAsyncComponent(ComponentTestConfig())

        async with component as live:
            assert live is component
            assert component.is_initialized

        assert not component.is_initialized
        assert component.cleanup_calls == 1

    @pytest.mark.asyncio
    async def test_managed_lifecycle(self):
        """Test managed lifecycle context."""
        component = _TestableAsyncComponent(ComponentTestConfig())

        async with component.managed_lifecycle() as managed:
            assert managed is component
            assert component.is_initialized

        assert not component.is_initialized

    @pytest.mark.asyncio
    async def test_initialization_error_is_wrapped(self):
        """Test foreign initialization errors are wrapped with INIT_FAILED."""
        class FailingComponent(AsyncComponent[ComponentTestConfig]):
            component_name = "FailingComponent"

            async def _async_initialize(self) -> None:
                raise RuntimeError("Initialization failed")

        component = FailingComponent(ComponentTestConfig())

        with pytest.raises(DbBridgeException) as exc_info:
            await component.initialize()

        assert exc_info.value.code == ErrorCodes.INIT_FAILED
        assert isinstance(exc_info.value.cause, RuntimeError)
        assert not component.is_initialized

    @pytest.mark.asyncio
    async def test_initialization_error_passthrough(self):
        """Test dbbridge errors propagate unchanged."""
        error = QueryError("bad", code="X")

        class FailingComponent(AsyncComponent[ComponentTestConfig]):
            async def _async_initialize(self) -> None:
                raise error

        with pytest.raises(QueryError) as exc_info:
            await FailingComponent(ComponentTestConfig()).initialize()

        assert exc_info.value is error

    @pytest.mark.asyncio
    async def test_cleanup_error_is_swallowed(self):
        """Test cleanup failures are logged and the component still resets."""
        class BrokenCleanup(_TestableAsyncComponent):
            async def _async_cleanup(self) -> None:
                raise RuntimeError("cleanup failed")

        component = BrokenCleanup(ComponentTestConfig())
        await component.initialize()

        await component.cleanup()

        assert not component.is_initialized
