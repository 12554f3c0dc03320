"""Unit tests for configuration models."""

import pydantic
import pytest

from dbbridge.config.models import BridgeSettings, ConnectionConfig, DatabaseType, LoggingConfig
from dbbridge.core.exceptions import ConfigurationError, ErrorCodes


class TestDatabaseType:
    """Test engine tags."""

    def test_fifteen_engines(self):
        """Test every supported engine has a tag."""
        assert len(DatabaseType) == 15
        assert DatabaseType("cockroachdb") is DatabaseType.COCKROACHDB

    def test_unknown_tag(self):
        """Test unknown tags are rejected."""
        with pytest.raises(ValueError):
            DatabaseType("db2")


class TestConnectionConfig:
    """Test ConnectionConfig validation and helpers."""

    def test_minimal(self):
        """Test minimal configuration."""
        config = ConnectionConfig(id="local", type="sqlite", filename=":memory:")

        assert config.type is DatabaseType.SQLITE
        assert config.ssl_enabled is False
        assert config.options == {}
        assert config.password_value is None

    def test_unknown_type_rejected(self):
        """Test type must be a known engine tag."""
        with pytest.raises(pydantic.ValidationError):
            ConnectionConfig(id="x", type="db2")

    def test_blank_id_rejected(self):
        """Test ids cannot be blank."""
        with pytest.raises(pydantic.ValidationError):
            ConnectionConfig(id="   ", type="redis")

    def test_extra_fields_forbidden(self):
        """Test unknown fields are rejected."""
        with pytest.raises(pydantic.ValidationError):
            ConnectionConfig(id="x", type="redis", pool_size=3)

    def test_frozen(self):
        """Test configs are immutable."""
        config = ConnectionConfig(id="x", type="redis")

        with pytest.raises(pydantic.ValidationError):
            config.type = DatabaseType.MONGODB

    def test_secrets_masked(self):
        """Test secrets are hidden unless requested."""
        config = ConnectionConfig(
            id="pg", type="postgresql", password="hunter2", connection_string="postgres://u:p@h/db"
        )

        assert config.password_value == "hunter2"
        assert "hunter2" not in repr(config)
        assert config.to_dict()["password"] == "***MASKED***"
        assert config.to_dict(mask_secrets=False)["password"] == "hunter2"
        assert config.to_dict()["type"] == "postgresql"

    def test_environment_resolution(self, monkeypatch):
        """Test ${VAR} and ${VAR:default} references."""
        monkeypatch.setenv("DBBRIDGE_HOST", "db.internal")
        monkeypatch.delenv("DBBRIDGE_PORT", raising=False)

        config = ConnectionConfig(
            id="pg", type="postgresql", host="${DBBRIDGE_HOST}", port="${DBBRIDGE_PORT:6543}"
        )

        assert config.host == "db.internal"
        assert config.port == 6543

    def test_blank_port_from_environment(self, monkeypatch):
        """Test an unset variable without default leaves the port unset."""
        monkeypatch.delenv("DBBRIDGE_PORT", raising=False)

        config = ConnectionConfig(id="pg", type="postgresql", port="${DBBRIDGE_PORT}")

        assert config.port is None

    def test_ssl_mapping(self):
        """Test ssl accepts a mapping."""
        config = ConnectionConfig(id="pg", type="postgresql", ssl={"rejectUnauthorized": False})

        assert config.ssl_enabled is True

    @pytest.mark.parametrize("kwargs,expected", [
        ({"type": "sqlite", "filename": "app.db"}, "app.db"),
        ({"type": "postgresql", "host": "h", "port": 5432}, "h:5432"),
        ({"type": "redis", "host": "cache"}, "cache"),
        ({"type": "dynamodb"}, "dynamodb"),
    ])
    def test_display_target(self, kwargs, expected):
        """Test log-safe target description."""
        assert ConnectionConfig(id="x", **kwargs).display_target == expected


class TestLoggingConfig:
    """Test LoggingConfig."""

    def test_level_normalized(self):
        """Test lowercase levels are accepted."""
        assert LoggingConfig(level="debug").level == "DEBUG"

    def test_invalid_format(self):
        """Test unknown formats are rejected."""
        with pytest.raises(pydantic.ValidationError):
            LoggingConfig(format="xml")


class TestBridgeSettings:
    """Test settings loading."""

    def test_from_file(self, settings_file, monkeypatch):
        """Test YAML settings with ids filled from keys."""
        monkeypatch.delenv("DBBRIDGE_TEST_PASSWORD", raising=False)

        settings = BridgeSettings.from_file(settings_file)

        assert settings.logging.level == "DEBUG"
        pg = settings.get_connection("local-pg")
        assert pg.id == "local-pg"
        assert pg.type is DatabaseType.POSTGRESQL
        assert pg.password_value == "fallback"
        assert settings.get_connection("missing") is None

    def test_missing_file(self, temp_dir):
        """Test missing files raise CONFIG_NOT_FOUND."""
        with pytest.raises(ConfigurationError) as exc_info:
            BridgeSettings.from_file(temp_dir / "nope.yaml")

        assert exc_info.value.code == ErrorCodes.CONFIG_NOT_FOUND

    def test_non_mapping_file(self, temp_dir):
        """Test a YAML list is rejected."""
        path = temp_dir / "list.yaml"
        path.write_text("- a\n- b\n")

        with pytest.raises(ConfigurationError) as exc_info:
            BridgeSettings.from_file(path)

        assert exc_info.value.code == ErrorCodes.CONFIG_INVALID

    def test_mismatched_id(self):
        """Test a connection whose id disagrees with its key."""
        with pytest.raises(pydantic.ValidationError):
            BridgeSettings.from_dict({
                "connections": {"a": {"id": "b", "type": "redis"}},
            })
