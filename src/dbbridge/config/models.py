"""Configuration models for dbbridge.

This module defines the Pydantic models used to describe database
connections and the logging setup. Models resolve ``${VAR}`` and
``${VAR:default}`` references against the environment and mask secrets when
serialized.

Classes:
    BaseConfig: Base configuration class
    DatabaseType: The fifteen supported engine tags
    ConnectionConfig: One logical database connection
    LoggingConfig: Logging configuration
    BridgeSettings: Logging plus a set of named connections

Example:
    >>> config = ConnectionConfig(
    ...     id="local-pg",
    ...     name="Local Postgres",
    ...     type="postgresql",
    ...     host="localhost",
    ...     database="app",
    ...     username="app",
    ...     password="${PGPASSWORD:secret}",
    ... )
    >>> config.type
    <DatabaseType.POSTGRESQL: 'postgresql'>
"""

import os
import re
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Literal, Optional, Union

import yaml
from pydantic import BaseModel, ConfigDict, Field, SecretStr, field_validator, model_validator

from ..core.exceptions import ConfigurationError, ErrorCodes

_ENV_PATTERN = re.compile(r"\$\{([^}]+)\}")


class DatabaseType(str, Enum):
    """Engine tags understood by the adapter registry."""

    SQLITE = "sqlite"
    POSTGRESQL = "postgresql"
    MYSQL = "mysql"
    MSSQL = "mssql"
    MONGODB = "mongodb"
    MARIADB = "mariadb"
    REDIS = "redis"
    COCKROACHDB = "cockroachdb"
    CASSANDRA = "cassandra"
    NEO4J = "neo4j"
    CLICKHOUSE = "clickhouse"
    DYNAMODB = "dynamodb"
    ELASTICSEARCH = "elasticsearch"
    FIRESTORE = "firestore"
    ORACLE = "oracle"


def _resolve_env(value: Any) -> Any:
    if isinstance(value, str):
        def replace_env_var(match: "re.Match[str]") -> str:
            var_spec = match.group(1)
            if ":" in var_spec:
                var_name, default = var_spec.split(":", 1)
            else:
                var_name, default = var_spec, ""
            return os.getenv(var_name, default)

        return _ENV_PATTERN.sub(replace_env_var, value)
    if isinstance(value, dict):
        return {k: _resolve_env(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_resolve_env(item) for item in value]
    return value


class BaseConfig(BaseModel):
    """Base configuration class with common functionality.

    Provides environment variable resolution and secret-aware
    serialization for all dbbridge configuration objects.
    """

    model_config = ConfigDict(
        validate_assignment=True,
        extra="forbid",
        populate_by_name=True,
    )

    @model_validator(mode="before")
    @classmethod
    def resolve_environment_variables(cls, values: Any) -> Any:
        """Resolve ``${VAR_NAME}`` and ``${VAR_NAME:default}`` references.

        Args:
            values: Raw configuration values

        Returns:
            Values with environment variables resolved
        """
        if isinstance(values, dict):
            return {key: _resolve_env(value) for key, value in values.items()}
        return values

    def to_dict(self, *, mask_secrets: bool = True) -> Dict[str, Any]:
        """Convert configuration to dictionary.

        Args:
            mask_secrets: Whether to mask secret values

        Returns:
            Dictionary representation of configuration
        """
        data = self.model_dump(mode="python")

        def convert(value: Any) -> Any:
            if isinstance(value, dict):
                return {k: convert(v) for k, v in value.items()}
            if isinstance(value, list):
                return [convert(item) for item in value]
            if isinstance(value, SecretStr):
                return "***MASKED***" if mask_secrets else value.get_secret_value()
            if isinstance(value, Enum):
                return value.value
            return value

        return convert(data)


class ConnectionConfig(BaseConfig):
    """Database connection configuration.

    ``id`` is the registry key and must be unique in the process. The model
    is frozen, so ``type`` cannot change after creation; derive a new config
    with ``model_copy(update=...)`` instead.

    Attributes:
        id: Unique connection identifier
        name: Display name
        type: Engine tag
        host: Server host
        port: Server port (engine default when omitted)
        database: Database, keyspace, index family or Redis db number
        username: Login name
        password: Login secret
        filename: SQLite database path
        connection_string: Engine-native DSN, used instead of host/port
        ssl: ``True`` for TLS without verification, or a mapping of options
        options: Engine-specific extras
        aws_region: DynamoDB region
        aws_access_key_id: DynamoDB access key
        aws_secret_access_key: DynamoDB secret key
        project_id: Firestore project
        service_account_key: Firestore service account JSON or file path
        neo4j_scheme: Bolt URI scheme for Neo4j
    """

    model_config = ConfigDict(
        validate_assignment=True,
        extra="forbid",
        populate_by_name=True,
        frozen=True,
    )

    id: str = Field(..., min_length=1, description="Unique connection identifier")
    name: str = Field("", description="Display name")
    type: DatabaseType = Field(..., description="Engine tag")
    host: Optional[str] = Field(None, description="Server host")
    port: Optional[int] = Field(None, ge=1, le=65535, description="Server port")
    database: str = Field("", description="Database name")
    username: Optional[str] = Field(None, description="Login name")
    password: Optional[SecretStr] = Field(None, description="Login secret")
    filename: Optional[str] = Field(None, description="SQLite database path")
    connection_string: Optional[SecretStr] = Field(None, description="Native DSN")
    ssl: Union[bool, Dict[str, Any]] = Field(False, description="TLS settings")
    options: Dict[str, Any] = Field(default_factory=dict, description="Engine extras")

    aws_region: Optional[str] = Field(None, description="DynamoDB region")
    aws_access_key_id: Optional[str] = Field(None, description="AWS access key id")
    aws_secret_access_key: Optional[SecretStr] = Field(None, description="AWS secret key")

    project_id: Optional[str] = Field(None, description="Firestore project id")
    service_account_key: Optional[SecretStr] = Field(
        None, description="Service account JSON or path to it"
    )

    neo4j_scheme: Optional[Literal["bolt", "bolt+s", "neo4j", "neo4j+s"]] = Field(
        None, description="Neo4j URI scheme"
    )

    @field_validator("id")
    @classmethod
    def validate_id(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("Connection id cannot be blank")
        return v.strip()

    @field_validator("host")
    @classmethod
    def validate_host(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return v
        v = v.strip()
        return v or None

    @field_validator("port", mode="before")
    @classmethod
    def coerce_blank_port(cls, v: Any) -> Any:
        # env substitution can leave an empty string behind
        if v == "":
            return None
        return v

    @property
    def password_value(self) -> Optional[str]:
        return self.password.get_secret_value() if self.password else None

    @property
    def connection_string_value(self) -> Optional[str]:
        return self.connection_string.get_secret_value() if self.connection_string else None

    @property
    def ssl_enabled(self) -> bool:
        return bool(self.ssl)

    @property
    def display_target(self) -> str:
        """Host-ish description for logs, never including credentials."""
        if self.type is DatabaseType.SQLITE:
            return self.filename or self.database
        if self.host:
            return f"{self.host}:{self.port}" if self.port else self.host
        return self.database or self.type.value


class LoggingConfig(BaseConfig):
    """Logging configuration.

    Attributes:
        level: Log level
        format: Log format (json, text)
        file_path: Log file path
        max_file_size: Maximum log file size in bytes
        backup_count: Number of rotated files to keep
        console_output: Enable console output
    """

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        "INFO", description="Logging level"
    )
    format: Literal["json", "text"] = Field("json", description="Log format")
    file_path: Optional[Path] = Field(None, description="Log file path")
    max_file_size: int = Field(10485760, gt=0, description="Max file size in bytes (10MB)")
    backup_count: int = Field(5, ge=0, description="Number of backup files")
    console_output: bool = Field(True, description="Enable console output")

    @field_validator("level", mode="before")
    @classmethod
    def normalize_level(cls, v: Any) -> Any:
        return v.upper() if isinstance(v, str) else v


class BridgeSettings(BaseConfig):
    """Logging configuration plus a set of named connections.

    Example:
        >>> settings = BridgeSettings.from_file("connections.yaml")
        >>> settings.get_connection("local-pg").type
        <DatabaseType.POSTGRESQL: 'postgresql'>
    """

    logging: LoggingConfig = Field(default_factory=LoggingConfig, description="Logging config")
    connections: Dict[str, ConnectionConfig] = Field(
        default_factory=dict, description="Connections keyed by id"
    )

    @model_validator(mode="before")
    @classmethod
    def fill_connection_ids(cls, values: Any) -> Any:
        # YAML files usually key connections by id and omit the id field
        if isinstance(values, dict) and isinstance(values.get("connections"), dict):
            filled = {}
            for key, conn in values["connections"].items():
                if isinstance(conn, dict) and "id" not in conn:
                    conn = {**conn, "id": key}
                filled[key] = conn
            values = {**values, "connections": filled}
        return values

    @field_validator("connections")
    @classmethod
    def validate_connection_keys(
        cls, v: Dict[str, ConnectionConfig]
    ) -> Dict[str, ConnectionConfig]:
        for key, conn in v.items():
            if conn.id != key:
                raise ValueError(f"Connection id '{conn.id}' doesn't match key '{key}'")
        return v

    def get_connection(self, connection_id: str) -> Optional[ConnectionConfig]:
        return self.connections.get(connection_id)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "BridgeSettings":
        return cls.model_validate(data)

    @classmethod
    def from_file(cls, path: Union[str, Path]) -> "BridgeSettings":
        """Load settings from a YAML file.

        Args:
            path: Path to the YAML document

        Returns:
            Validated settings

        Raises:
            ConfigurationError: If the file is missing or not a mapping
        """
        path = Path(path)
        if not path.exists():
            raise ConfigurationError(
                f"Configuration file not found: {path}",
                code=ErrorCodes.CONFIG_NOT_FOUND,
                context={"path": str(path)},
            )

        with path.open("r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}

        if not isinstance(data, dict):
            raise ConfigurationError(
                "Configuration file must contain a mapping",
                code=ErrorCodes.CONFIG_INVALID,
                context={"path": str(path)},
            )

        return cls.from_dict(data)
