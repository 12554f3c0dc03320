"""Shared adapter base.

``BaseAdapter`` connects the component lifecycle to an engine's native
client and supplies the default behavior of every optional capability.
Composite operations (CRUD synthesis, schema metadata, the connection
probe) are delegated to :mod:`dbbridge.database.statements`; a concrete
adapter only has to open and close its client, run one statement, and
answer the introspection primitives.
"""

import asyncio
import ssl
from abc import abstractmethod
from typing import Any, Awaitable, Callable, ClassVar, Dict, List, Optional, Sequence, Union

from ..config.models import ConnectionConfig, DatabaseType
from ..core import AsyncComponent
from ..core.exceptions import (
    AuthenticationError,
    DatabaseConnectionError,
    DbBridgeException,
    ErrorCodes,
)
from ..logging import get_logger, get_performance_logger
from . import statements
from .models import (
    Column,
    Database,
    Index,
    QueryOptions,
    QueryPlan,
    QueryResult,
    Role,
    Schema,
    SchemaMetadata,
    StoredProcedure,
    Table,
    Trigger,
    User,
    View,
)


def error_text(error: BaseException) -> str:
    """Message for ``QueryResult.error`` without the error-code prefix."""
    if isinstance(error, DbBridgeException):
        return error.message
    return str(error) or type(error).__name__


def build_ssl_context(option: Union[bool, Dict[str, Any], None]) -> Optional[ssl.SSLContext]:
    """TLS context for a connection's ``ssl`` setting.

    ``True`` enables TLS without certificate verification. A mapping may
    carry ``ca``, ``cert``, ``key`` and ``rejectUnauthorized`` (or
    ``verify``); verification stays on unless one of those is false.
    """
    if not option:
        return None

    settings = option if isinstance(option, dict) else {}
    context = ssl.create_default_context(cafile=settings.get("ca") or settings.get("cafile"))
    if settings.get("cert"):
        context.load_cert_chain(settings["cert"], settings.get("key"))

    verify = settings.get("rejectUnauthorized", settings.get("verify", bool(settings)))
    if not verify:
        context.check_hostname = False
        context.verify_mode = ssl.CERT_NONE
    return context


class BaseAdapter(AsyncComponent[ConnectionConfig]):
    """Base class for engine adapters.

    Subclasses set ``engine`` and ``display_name`` and implement
    ``_open``, ``_close``, ``_execute`` and the introspection primitives.

    Attributes:
        engine: Engine tag served by the adapter
        display_name: Engine name used in connect errors
        test_query: Statement run by ``ping``
        not_connected_message: Message raised when used while disconnected
    """

    component_name = "BaseAdapter"

    engine: ClassVar[DatabaseType]
    display_name: ClassVar[str] = "database"
    test_query: ClassVar[str] = "SELECT 1"
    not_connected_message: ClassVar[str] = "Not connected to database"

    def __init__(self, config: ConnectionConfig) -> None:
        super().__init__(config)
        self.logger = get_logger(f"adapter.{self.engine.value}.{config.id}")
        self.perf_logger = get_performance_logger(f"adapter.{self.engine.value}")
        self._client: Any = None

    # Lifecycle

    async def connect(self) -> None:
        """Open the native client. No-op when already connected.

        Raises:
            DatabaseConnectionError: ``Failed to connect to <Engine>: <reason>``
            ConfigurationError: If the configuration cannot describe a connection
        """
        await self.initialize()

    async def disconnect(self) -> None:
        await self.cleanup()

    def is_connected(self) -> bool:
        return self._initialized and self._client is not None

    async def _async_initialize(self) -> None:
        try:
            with self.perf_logger.measure("connect", connection_id=self.config.id):
                await self._open()
        except DbBridgeException:
            await self._discard_partial()
            raise
        except Exception as e:
            await self._discard_partial()
            code = self._classify_connect_error(e)
            error_class = AuthenticationError if code == ErrorCodes.AUTH_FAILED else DatabaseConnectionError
            raise error_class(
                f"Failed to connect to {self.display_name}: {error_text(e)}",
                code=code,
                context={
                    "engine": self.engine.value,
                    "connection_id": self.config.id,
                    "host": self.config.host,
                },
                cause=e,
            ) from e

        self.logger.info("Connected", target=self.config.display_target)

    async def _async_cleanup(self) -> None:
        try:
            if self._client is not None:
                await self._close()
        finally:
            self._client = None
        self.logger.info("Disconnected")

    async def _discard_partial(self) -> None:
        if self._client is None:
            return
        try:
            await self._close()
        except Exception as e:
            self.logger.debug("Releasing partial connection failed", error=str(e))
        finally:
            self._client = None

    def _classify_connect_error(self, error: BaseException) -> str:
        if isinstance(error, (asyncio.TimeoutError, TimeoutError)):
            return ErrorCodes.CONNECTION_TIMEOUT
        if isinstance(error, ConnectionRefusedError):
            return ErrorCodes.CONNECTION_REFUSED
        return ErrorCodes.CONNECTION_FAILED

    def _require_client(self) -> Any:
        if self._client is None:
            raise DatabaseConnectionError(
                self.not_connected_message,
                code=ErrorCodes.NOT_CONNECTED,
                context={"engine": self.engine.value, "connection_id": self.config.id},
            )
        return self._client

    @abstractmethod
    async def _open(self) -> None:
        """Create the native client and store it in ``self._client``."""

    @abstractmethod
    async def _close(self) -> None:
        """Release ``self._client``."""

    # Execution

    async def execute_query(
        self, sql: str, params: Optional[Sequence[Any]] = None
    ) -> QueryResult:
        """Run one statement or command.

        Engine failures are returned as ``QueryResult.error`` with empty rows.

        Raises:
            DatabaseConnectionError: If the adapter is not connected
        """
        return await self._measured("execute_query", lambda: self._execute(sql, list(params or [])))

    async def _measured(
        self, operation: str, run: Callable[[], Awaitable[QueryResult]]
    ) -> QueryResult:
        """Run a query-shaped operation, timing it and folding errors into the result.

        Raises:
            DatabaseConnectionError: If the adapter is not connected
        """
        self._require_client()
        timer = None
        try:
            with self.perf_logger.measure(operation, connection_id=self.config.id) as timer:
                result = await run()
        except Exception as e:
            self.logger.warning(
                "Operation failed", operation=operation, error=error_text(e), error_type=type(e).__name__
            )
            return QueryResult.failure(error_text(e), timer.elapsed_ms() if timer else 0.0)

        result.execution_time = timer.duration_ms or 0.0
        return result

    def _unsupported(self, operation: str) -> QueryResult:
        self._require_client()
        return QueryResult.failure(f"{operation} is not supported by {self.display_name}")

    @abstractmethod
    async def _execute(self, sql: str, params: List[Any]) -> QueryResult:
        """Run ``sql`` natively; may raise, the caller folds errors into the result."""

    async def _rows(self, sql: str, params: Optional[Sequence[Any]] = None) -> List[Dict[str, Any]]:
        """Rows of an introspection query; an engine error yields no rows."""
        result = await self.execute_query(sql, params)
        if result.error:
            self.logger.warning("Introspection query failed", error=result.error)
        return result.rows

    async def ping(self) -> bool:
        result = await self.execute_query(self.test_query)
        return result.error is None

    async def test_connection(self) -> bool:
        """Probe the server, restoring the previous connection state. Never raises."""
        return await statements.probe_connection(self)

    # Dialect

    def escape_identifier(self, name: str) -> str:
        return statements.quote_with('"')(name)

    def get_placeholder(self, index: int) -> str:
        return f"${index}"

    def get_database_type(self) -> DatabaseType:
        return self.engine

    @property
    def sample_size(self) -> int:
        """Records sampled when inferring columns of schemaless data."""
        return int(self.config.options.get("sample_size", statements.DEFAULT_SAMPLE_SIZE))

    # Data access

    async def get_table_data(
        self, table: str, options: Optional[QueryOptions] = None
    ) -> QueryResult:
        sql, params = statements.build_select_params(
            table, statements.coerce_options(options), self.escape_identifier, self.get_placeholder
        )
        return await self.execute_query(sql, params)

    async def insert_row(self, table: str, data: Dict[str, Any]) -> QueryResult:
        if not data:
            return QueryResult.failure("insert_row requires at least one column")
        sql, params = statements.build_insert(
            table, data, self.escape_identifier, self.get_placeholder
        )
        return await self.execute_query(sql, params)

    async def update_row(
        self, table: str, data: Dict[str, Any], where: Dict[str, Any]
    ) -> QueryResult:
        if not data or not where:
            return QueryResult.failure("update_row requires data and at least one where condition")
        sql, params = statements.build_update(
            table, data, where, self.escape_identifier, self.get_placeholder
        )
        return await self.execute_query(sql, params)

    async def delete_row(self, table: str, where: Dict[str, Any]) -> QueryResult:
        if not where:
            return QueryResult.failure("delete_row requires at least one where condition")
        sql, params = statements.build_delete(
            table, where, self.escape_identifier, self.get_placeholder
        )
        return await self.execute_query(sql, params)

    # Transactions

    async def begin_transaction(self) -> QueryResult:
        return await self.execute_query("BEGIN")

    async def commit_transaction(self) -> QueryResult:
        return await self.execute_query("COMMIT")

    async def rollback_transaction(self) -> QueryResult:
        return await self.execute_query("ROLLBACK")

    # Introspection

    async def get_schema(self) -> Schema:
        tables = await self.get_tables()
        views = await self.get_views()
        return Schema(databases=[Database(name=self.config.database, tables=tables, views=views)])

    @abstractmethod
    async def get_tables(self, database: Optional[str] = None) -> List[Table]:
        ...

    @abstractmethod
    async def get_columns(self, table: str, schema: Optional[str] = None) -> List[Column]:
        ...

    @abstractmethod
    async def get_indexes(self, table: str, schema: Optional[str] = None) -> List[Index]:
        ...

    @abstractmethod
    async def get_primary_key(self, table: str, schema: Optional[str] = None) -> List[str]:
        ...

    @abstractmethod
    async def get_version(self) -> str:
        ...

    async def get_stored_procedures(self, database: Optional[str] = None) -> List[StoredProcedure]:
        return []

    async def get_triggers(
        self, table: Optional[str] = None, schema: Optional[str] = None
    ) -> List[Trigger]:
        return []

    async def get_views(self, database: Optional[str] = None) -> List[View]:
        return []

    async def get_view_definition(self, view_name: str, schema: Optional[str] = None) -> str:
        return ""

    async def get_users(self) -> List[User]:
        return []

    async def get_roles(self) -> List[Role]:
        return []

    async def get_databases(self) -> List[str]:
        return [self.config.database]

    async def get_schemas(self, database: Optional[str] = None) -> List[str]:
        return ["public"]

    async def explain_query(self, sql: str) -> QueryPlan:
        result = await self.execute_query(f"EXPLAIN {sql}")
        if result.error:
            return QueryPlan(plan=None, text_representation=result.error)
        return QueryPlan(plan=result.rows, text_representation=statements.render_plan_text(result.rows))

    async def get_schema_metadata(self, database: Optional[str] = None) -> SchemaMetadata:
        return await statements.collect_schema_metadata(self, database)
