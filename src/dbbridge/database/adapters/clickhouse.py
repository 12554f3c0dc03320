"""ClickHouse adapter built on clickhouse-connect's async HTTP client."""

import re
from typing import Any, Dict, List, Optional, Tuple

import clickhouse_connect
from clickhouse_connect.driver.exceptions import DatabaseError

from ...config.models import DatabaseType
from ...core.exceptions import ErrorCodes
from .. import statements
from ..base import BaseAdapter
from ..models import (
    Column,
    Database,
    Index,
    QueryPlan,
    QueryResult,
    Schema,
    Table,
    User,
    View,
)

_ROW_STATEMENT = re.compile(
    r"^\s*(SELECT|WITH|SHOW|DESCRIBE|DESC|EXPLAIN|EXISTS)\b", re.IGNORECASE
)
AUTH_FAILED_CODE = "516"
DEFAULT_DATABASE = "default"

quote = statements.quote_with("`")


def bind_params(sql: str, params: List[Any]) -> Tuple[str, Optional[Dict[str, Any]]]:
    """Turn ``?`` markers into clickhouse-connect ``%(pN)s`` bound parameters.

    Markers inside quoted strings and identifiers are left alone. With
    parameters present every literal ``%`` is doubled, as the driver formats
    the statement with Python's ``%`` operator.

    Example:
        >>> bind_params("SELECT * FROM t WHERE a = ? AND b LIKE 'x%'", [1])
        ("SELECT * FROM t WHERE a = %(p0)s AND b LIKE 'x%%'", {'p0': 1})
    """
    if not params:
        return sql, None

    out = []
    bound: Dict[str, Any] = {}
    open_quote = None
    escaped = False
    for char in sql:
        if open_quote:
            if escaped:
                escaped = False
            elif char == "\\":
                escaped = True
            elif char == open_quote:
                open_quote = None
            out.append("%%" if char == "%" else char)
        elif char in ("'", '"', "`"):
            open_quote = char
            out.append(char)
        elif char == "?":
            name = f"p{len(bound)}"
            bound[name] = params[len(bound)] if len(bound) < len(params) else None
            out.append(f"%({name})s")
        elif char == "%":
            out.append("%%")
        else:
            out.append(char)
    return "".join(out), bound


def clickhouse_type(value: Any) -> str:
    if value is None:
        return "Nullable(String)"
    if isinstance(value, bool):
        return "UInt8"
    if isinstance(value, int):
        return "Int64"
    if isinstance(value, float):
        return "Float64"
    if isinstance(value, (list, tuple)):
        return "Array(String)"
    return "String"


class ClickHouseAdapter(BaseAdapter):
    """ClickHouse adapter."""

    component_name = "ClickHouseAdapter"
    engine = DatabaseType.CLICKHOUSE
    display_name = "ClickHouse"

    @property
    def database(self) -> str:
        return self.config.database or DEFAULT_DATABASE

    async def _open(self) -> None:
        if self.config.connection_string_value:
            self._client = await clickhouse_connect.get_async_client(
                dsn=self.config.connection_string_value
            )
        else:
            self._client = await clickhouse_connect.get_async_client(
                host=self.config.host or "localhost",
                port=self.config.port or 8123,
                username=self.config.username or "default",
                password=self.config.password_value or "",
                database=self.database,
                secure=self.config.ssl_enabled,
                verify=isinstance(self.config.ssl, dict) and bool(self.config.ssl.get("verify", True)),
                connect_timeout=10,
            )
        await self._client.query("SELECT 1")

    async def _close(self) -> None:
        await self._client.close()

    def _classify_connect_error(self, error: BaseException) -> str:
        if isinstance(error, DatabaseError) and (
            AUTH_FAILED_CODE in str(error) or "Authentication failed" in str(error)
        ):
            return ErrorCodes.AUTH_FAILED
        return super()._classify_connect_error(error)

    async def _execute(self, sql: str, params: List[Any]) -> QueryResult:
        sql, parameters = bind_params(sql, params)

        if not _ROW_STATEMENT.match(sql):
            summary = await self._client.command(sql, parameters=parameters)
            written = getattr(summary, "written_rows", None)
            return QueryResult(affected_rows=written)

        result = await self._client.query(sql, parameters=parameters)
        names = list(result.column_names)
        rows = [dict(zip(names, values)) for values in result.result_rows]
        driver_types = list(result.column_types or [])
        columns = []
        for position, name in enumerate(names):
            if position < len(driver_types):
                type_name = driver_types[position].name
            else:
                type_name = clickhouse_type(rows[0][name]) if rows else "String"
            columns.append(Column(
                name=name,
                type=type_name,
                nullable=type_name.startswith("Nullable"),
                primary_key=False,
            ))
        return QueryResult(columns=columns, rows=rows, row_count=len(rows))

    def escape_identifier(self, name: str) -> str:
        return quote(name)

    def get_placeholder(self, index: int) -> str:
        return "?"

    # Data access

    async def update_row(
        self, table: str, data: Dict[str, Any], where: Dict[str, Any]
    ) -> QueryResult:
        if not data or not where:
            return QueryResult.failure("update_row requires data and at least one where condition")
        assignments, values = statements.build_assignments(data, quote, self.get_placeholder)
        condition, keys = statements.build_assignments(where, quote, self.get_placeholder, separator=" AND ")
        return await self.execute_query(
            f"ALTER TABLE {quote(table)} UPDATE {assignments} WHERE {condition}", values + keys
        )

    async def delete_row(self, table: str, where: Dict[str, Any]) -> QueryResult:
        if not where:
            return QueryResult.failure("delete_row requires at least one where condition")
        condition, keys = statements.build_assignments(where, quote, self.get_placeholder, separator=" AND ")
        return await self.execute_query(f"ALTER TABLE {quote(table)} DELETE WHERE {condition}", keys)

    async def begin_transaction(self) -> QueryResult:
        return self._unsupported("Transactions")

    async def commit_transaction(self) -> QueryResult:
        return self._unsupported("Transactions")

    async def rollback_transaction(self) -> QueryResult:
        return self._unsupported("Transactions")

    # Introspection

    async def get_schema(self) -> Schema:
        databases = []
        for name in await self.get_databases():
            databases.append(Database(
                name=name,
                tables=await self.get_tables(name),
                views=await self.get_views(name),
            ))
        return Schema(databases=databases)

    async def get_tables(self, database: Optional[str] = None) -> List[Table]:
        db = database or self.database
        rows = await self._rows(f"SHOW TABLES FROM {quote(db)}")
        tables = []
        for row in rows:
            name = str(row.get("name") or next(iter(row.values())))
            tables.append(Table(
                name=name,
                schema=db,
                columns=await self.get_columns(name, db),
                indexes=await self.get_indexes(name, db),
            ))
        return tables

    async def get_columns(self, table: str, schema: Optional[str] = None) -> List[Column]:
        target = f"{quote(schema)}.{quote(table)}" if schema else quote(table)
        rows = await self._rows(f"DESCRIBE TABLE {target}")
        keys = set(await self.get_primary_key(table, schema))
        return [
            Column(
                name=row["name"],
                type=row["type"],
                nullable=str(row["type"]).startswith("Nullable"),
                primary_key=row["name"] in keys,
                default_value=row.get("default_expression") or None,
            )
            for row in rows
        ]

    async def get_indexes(self, table: str, schema: Optional[str] = None) -> List[Index]:
        rows = await self._rows(
            "SELECT name, expr, type FROM system.data_skipping_indices WHERE database = ? AND table = ?",
            [schema or self.database, table],
        )
        return [
            Index(
                name=row["name"] or "unnamed",
                columns=[part.strip() for part in str(row["expr"]).split(",") if part.strip()],
            )
            for row in rows
        ]

    async def get_primary_key(self, table: str, schema: Optional[str] = None) -> List[str]:
        rows = await self._rows(
            "SELECT name FROM system.columns "
            "WHERE database = ? AND table = ? AND is_in_primary_key = 1 ORDER BY position",
            [schema or self.database, table],
        )
        return [row["name"] for row in rows]

    async def get_views(self, database: Optional[str] = None) -> List[View]:
        db = database or self.database
        rows = await self._rows(
            "SELECT name, as_select FROM system.tables "
            "WHERE database = ? AND engine IN ('View', 'MaterializedView') ORDER BY name",
            [db],
        )
        return [View(name=row["name"], schema=db, definition=row.get("as_select") or None) for row in rows]

    async def get_view_definition(self, view_name: str, schema: Optional[str] = None) -> str:
        rows = await self._rows(
            "SELECT as_select FROM system.tables WHERE database = ? AND name = ?",
            [schema or self.database, view_name],
        )
        return rows[0]["as_select"] if rows else ""

    async def get_users(self) -> List[User]:
        rows = await self._rows("SELECT name FROM system.users ORDER BY name")
        return [User(name=row["name"]) for row in rows]

    async def get_databases(self) -> List[str]:
        rows = await self._rows("SHOW DATABASES")
        return [str(row.get("name") or next(iter(row.values()))) for row in rows]

    async def get_schemas(self, database: Optional[str] = None) -> List[str]:
        return await self.get_databases()

    async def get_version(self) -> str:
        rows = await self._rows("SELECT version() AS version")
        return f"ClickHouse {rows[0]['version']}" if rows else "Unknown"

    async def explain_query(self, sql: str) -> QueryPlan:
        result = await self.execute_query(f"EXPLAIN plan = 1 {sql}")
        if result.error:
            return QueryPlan(plan=None, text_representation=result.error)
        return QueryPlan(plan=result.rows, text_representation=statements.render_plan_text(result.rows))
