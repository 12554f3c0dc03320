"""Adapter registry for dbbridge.

Maps engine tags to adapter classes. Built-in adapters are listed as
``"module:Class"`` paths and imported on first use, so a process only loads
the drivers of the engines it actually talks to.
"""

import importlib
from typing import Dict, List, Optional, Type, Union

from ..config.models import DatabaseType
from ..core import AsyncComponent
from ..core.exceptions import ConfigurationError, ErrorCodes, UnsupportedEngineError
from ..logging import get_logger
from .base import BaseAdapter

_ADAPTER_PACKAGE = "dbbridge.database.adapters"

BUILTIN_ADAPTERS: Dict[DatabaseType, str] = {
    DatabaseType.POSTGRESQL: f"{_ADAPTER_PACKAGE}.postgresql:PostgreSQLAdapter",
    DatabaseType.COCKROACHDB: f"{_ADAPTER_PACKAGE}.cockroachdb:CockroachDBAdapter",
    DatabaseType.MYSQL: f"{_ADAPTER_PACKAGE}.mysql:MySQLAdapter",
    DatabaseType.MARIADB: f"{_ADAPTER_PACKAGE}.mariadb:MariaDBAdapter",
    DatabaseType.SQLITE: f"{_ADAPTER_PACKAGE}.sqlite:SQLiteAdapter",
    DatabaseType.MSSQL: f"{_ADAPTER_PACKAGE}.mssql:MSSQLAdapter",
    DatabaseType.ORACLE: f"{_ADAPTER_PACKAGE}.oracle:OracleAdapter",
    DatabaseType.MONGODB: f"{_ADAPTER_PACKAGE}.mongodb:MongoDBAdapter",
    DatabaseType.FIRESTORE: f"{_ADAPTER_PACKAGE}.firestore:FirestoreAdapter",
    DatabaseType.REDIS: f"{_ADAPTER_PACKAGE}.redis:RedisAdapter",
    DatabaseType.DYNAMODB: f"{_ADAPTER_PACKAGE}.dynamodb:DynamoDBAdapter",
    DatabaseType.NEO4J: f"{_ADAPTER_PACKAGE}.neo4j:Neo4jAdapter",
    DatabaseType.CASSANDRA: f"{_ADAPTER_PACKAGE}.cassandra:CassandraAdapter",
    DatabaseType.CLICKHOUSE: f"{_ADAPTER_PACKAGE}.clickhouse:ClickHouseAdapter",
    DatabaseType.ELASTICSEARCH: f"{_ADAPTER_PACKAGE}.elasticsearch:ElasticsearchAdapter",
}


def _coerce_type(db_type: Union[DatabaseType, str]) -> DatabaseType:
    if isinstance(db_type, DatabaseType):
        return db_type
    try:
        return DatabaseType(db_type)
    except ValueError:
        raise UnsupportedEngineError(
            f"Unsupported database type: {db_type}",
            code=ErrorCodes.UNSUPPORTED_ENGINE,
            context={"type": db_type, "supported": [t.value for t in DatabaseType]},
        ) from None


class AdapterRegistry:
    """Registry of adapter classes keyed by engine tag.

    Example:
        >>> registry = AdapterRegistry()
        >>> registry.get_adapter_class("sqlite").__name__
        'SQLiteAdapter'
    """

    def __init__(self, paths: Optional[Dict[DatabaseType, str]] = None) -> None:
        self.logger = get_logger("database.registry")
        self._paths: Dict[DatabaseType, str] = dict(BUILTIN_ADAPTERS if paths is None else paths)
        self._classes: Dict[DatabaseType, Type[BaseAdapter]] = {}

    def register_adapter(
        self, db_type: Union[DatabaseType, str], adapter_class: Type[BaseAdapter]
    ) -> None:
        """Register or replace the adapter class for an engine.

        Args:
            db_type: Engine tag
            adapter_class: Class extending ``AsyncComponent``

        Raises:
            ConfigurationError: If the class is not a component
            UnsupportedEngineError: If the tag is unknown
        """
        db_type = _coerce_type(db_type)
        if not (isinstance(adapter_class, type) and issubclass(adapter_class, AsyncComponent)):
            raise ConfigurationError(
                f"Adapter class {getattr(adapter_class, '__name__', adapter_class)} must extend AsyncComponent",
                code=ErrorCodes.CONFIG_INVALID,
                context={"type": db_type.value},
            )

        existing = self._classes.get(db_type)
        if existing is not None and existing is not adapter_class:
            self.logger.warning(
                "Overriding adapter registration",
                type=db_type.value,
                existing_class=existing.__name__,
                new_class=adapter_class.__name__,
            )

        self._classes[db_type] = adapter_class
        self.logger.debug("Adapter registered", type=db_type.value, class_name=adapter_class.__name__)

    def get_adapter_class(self, db_type: Union[DatabaseType, str]) -> Type[BaseAdapter]:
        """Adapter class for an engine, importing its module on first use.

        Raises:
            UnsupportedEngineError: ``Unsupported database type: <tag>``
        """
        db_type = _coerce_type(db_type)
        cls = self._classes.get(db_type)
        if cls is not None:
            return cls

        path = self._paths.get(db_type)
        if path is None:
            raise UnsupportedEngineError(
                f"Unsupported database type: {db_type.value}",
                code=ErrorCodes.UNSUPPORTED_ENGINE,
                context={"type": db_type.value},
            )

        module_name, _, class_name = path.partition(":")
        module = importlib.import_module(module_name)
        cls = getattr(module, class_name)
        self._classes[db_type] = cls
        self.logger.debug("Adapter loaded", type=db_type.value, module=module_name)
        return cls

    def get_supported_types(self) -> List[DatabaseType]:
        return [t for t in DatabaseType if t in self._paths or t in self._classes]

    def is_type_supported(self, db_type: Union[DatabaseType, str]) -> bool:
        try:
            db_type = _coerce_type(db_type)
        except UnsupportedEngineError:
            return False
        return db_type in self._paths or db_type in self._classes


_registry: Optional[AdapterRegistry] = None


def get_adapter_registry() -> AdapterRegistry:
    """Process-wide adapter registry."""
    global _registry
    if _registry is None:
        _registry = AdapterRegistry()
    return _registry


def get_adapter_class(db_type: Union[DatabaseType, str]) -> Type[BaseAdapter]:
    return get_adapter_registry().get_adapter_class(db_type)


def register_adapter(db_type: Union[DatabaseType, str], adapter_class: Type[BaseAdapter]) -> None:
    get_adapter_registry().register_adapter(db_type, adapter_class)


def get_supported_types() -> List[DatabaseType]:
    return get_adapter_registry().get_supported_types()


def is_type_supported(db_type: Union[DatabaseType, str]) -> bool:
    return get_adapter_registry().is_type_supported(db_type)
