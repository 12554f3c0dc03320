"""Pytest configuration and shared fixtures.

This module provides pytest configuration and shared fixtures for all tests
in the dbbridge test suite.
"""

import logging
import tempfile
from pathlib import Path
from typing import Generator
from unittest.mock import MagicMock

import pytest
import structlog

from dbbridge.config.models import ConnectionConfig

# Configure test logging to suppress noise during tests
structlog.configure(
    processors=[structlog.testing.LogCapture()],
    wrapper_class=structlog.make_filtering_bound_logger(logging.DEBUG),
    logger_factory=structlog.testing.ReturnLoggerFactory(),
    cache_logger_on_first_use=False,
)


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Provide temporary directory for test files."""
    with tempfile.TemporaryDirectory() as temp_dir:
        yield Path(temp_dir)


@pytest.fixture
def mock_logger():
    """Mock structured logger for testing."""
    logger = MagicMock()
    logger.bind.return_value = logger
    return logger


@pytest.fixture
def make_config():
    """Build a ``ConnectionConfig`` with sensible defaults per engine."""
    def _make(type: str = "sqlite", id: str = "test-conn", **overrides) -> ConnectionConfig:
        data = {"id": id, "name": f"Test {type}", "type": type}
        if type == "sqlite":
            data["filename"] = ":memory:"
        else:
            data.update(host="localhost", database="testdb", username="tester", password="secret")
        data.update(overrides)
        return ConnectionConfig(**data)

    return _make


@pytest.fixture
def sqlite_config(make_config) -> ConnectionConfig:
    return make_config("sqlite", id="local-sqlite")


@pytest.fixture
def sample_settings_data() -> dict:
    """Sample settings document for testing."""
    return {
        "logging": {
            "level": "debug",
            "format": "text",
            "console_output": False,
        },
        "connections": {
            "local-pg": {
                "name": "Local Postgres",
                "type": "postgresql",
                "host": "localhost",
                "port": 5432,
                "database": "app",
                "username": "app",
                "password": "${DBBRIDGE_TEST_PASSWORD:fallback}",
            },
            "local-sqlite": {
                "name": "Local SQLite",
                "type": "sqlite",
                "filename": ":memory:",
            },
        },
    }


@pytest.fixture
def settings_file(temp_dir: Path, sample_settings_data: dict) -> Path:
    """Create temporary settings file."""
    import yaml

    path = temp_dir / "connections.yaml"
    with open(path, "w") as f:
        yaml.dump(sample_settings_data, f)
    return path


# Pytest markers for different test categories
def pytest_configure(config):
    """Configure pytest markers."""
    config.addinivalue_line(
        "markers", "unit: marks tests as unit tests (fast, isolated)"
    )
    config.addinivalue_line(
        "markers", "integration: marks tests as integration tests (slower, real dependencies)"
    )
    config.addinivalue_line(
        "markers", "database: marks tests requiring a database driver"
    )
    config.addinivalue_line(
        "markers", "slow: marks tests that take > 1 second"
    )


# Auto-mark tests based on their location
def pytest_collection_modifyitems(config, items):
    """Automatically mark tests based on their location."""
    for item in items:
        test_path = Path(item.fspath).relative_to(Path(config.rootdir) / "tests")

        if test_path.parts[0] == "unit":
            item.add_marker(pytest.mark.unit)
        elif test_path.parts[0] == "integration":
            item.add_marker(pytest.mark.integration)

        if "adapters" in test_path.parts or "database" in test_path.parts:
            item.add_marker(pytest.mark.database)


# Clean up between tests
@pytest.fixture(autouse=True)
def reset_globals():
    """Drop process-wide factory and cache instances between tests."""
    yield

    from dbbridge.database.factory import reset_adapter_factory
    from dbbridge.database.schema_cache import reset_schema_cache
    reset_adapter_factory()
    reset_schema_cache()
