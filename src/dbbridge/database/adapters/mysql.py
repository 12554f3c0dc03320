"""MySQL adapter built on an aiomysql connection pool."""

import json
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, List, Optional

import aiomysql

from ...config.models import ConnectionConfig, DatabaseType
from ...core.exceptions import ErrorCodes
from ..base import BaseAdapter, build_ssl_context
from ..models import (
    Column,
    ForeignKey,
    Index,
    QueryPlan,
    QueryResult,
    Role,
    StoredProcedure,
    Table,
    Trigger,
    User,
    View,
)
from ..statements import quote_with, render_plan_text
from ..types import MySqlFieldType

PRI_KEY_FLAG = 2

# Server error numbers
ER_ACCESS_DENIED = 1045
CR_CONN_HOST_ERROR = 2003


def to_format_style(sql: str) -> str:
    """Rewrite ``?`` placeholders to the driver's ``%s`` and escape literal ``%``.

    Question marks and percent signs inside quoted strings or quoted
    identifiers are left alone apart from the ``%`` doubling the driver's
    interpolation requires.
    """
    out = []
    quote = None
    for char in sql:
        if quote:
            if char == quote:
                quote = None
            out.append("%%" if char == "%" else char)
        elif char in ("'", '"', "`"):
            quote = char
            out.append(char)
        elif char == "?":
            out.append("%s")
        elif char == "%":
            out.append("%%")
        else:
            out.append(char)
    return "".join(out)


class MySQLAdapter(BaseAdapter):
    """MySQL adapter.

    The pool runs in autocommit mode. ``begin_transaction`` pins one pooled
    connection until the transaction is committed or rolled back.
    """

    component_name = "MySQLAdapter"
    engine = DatabaseType.MYSQL
    display_name = "MySQL"

    def __init__(self, config: ConnectionConfig) -> None:
        super().__init__(config)
        self._tx_connection: Optional[aiomysql.Connection] = None

    async def _open(self) -> None:
        self._client = await aiomysql.create_pool(
            host=self.config.host or "localhost",
            port=self.config.port or 3306,
            db=self.config.database or None,
            user=self.config.username or "",
            password=self.config.password_value or "",
            ssl=build_ssl_context(self.config.ssl),
            charset="utf8mb4",
            minsize=1,
            maxsize=10,
            connect_timeout=10,
            autocommit=True,
        )

    async def _close(self) -> None:
        await self._release_transaction()
        self._client.close()
        await self._client.wait_closed()

    def _classify_connect_error(self, error: BaseException) -> str:
        if isinstance(error, aiomysql.OperationalError) and error.args:
            if error.args[0] == ER_ACCESS_DENIED:
                return ErrorCodes.AUTH_FAILED
            if error.args[0] == CR_CONN_HOST_ERROR:
                return ErrorCodes.CONNECTION_REFUSED
        return super()._classify_connect_error(error)

    @asynccontextmanager
    async def _connection(self) -> AsyncIterator[aiomysql.Connection]:
        pool = self._require_client()
        if self._tx_connection is not None:
            yield self._tx_connection
        else:
            async with pool.acquire() as conn:
                yield conn

    async def _execute(self, sql: str, params: List[Any]) -> QueryResult:
        query = to_format_style(sql) if params else sql
        async with self._connection() as conn:
            async with conn.cursor(aiomysql.DictCursor) as cursor:
                await cursor.execute(query, params or None)
                if cursor.description is None:
                    return QueryResult(affected_rows=cursor.rowcount)
                rows = list(await cursor.fetchall())
                columns = self._result_columns(cursor)

        return QueryResult(columns=columns, rows=rows, row_count=len(rows))

    def _result_columns(self, cursor: Any) -> List[Column]:
        fields = getattr(getattr(cursor, "_result", None), "fields", None) or []
        flags = {field.name: getattr(field, "flags", 0) for field in fields}
        return [
            Column(
                name=desc[0],
                type=MySqlFieldType.from_code(desc[1]).type_name,
                primary_key=bool(flags.get(desc[0], 0) & PRI_KEY_FLAG),
            )
            for desc in cursor.description
        ]

    def escape_identifier(self, name: str) -> str:
        return quote_with("`")(name)

    def get_placeholder(self, index: int) -> str:
        return "?"

    # Transactions

    async def begin_transaction(self) -> QueryResult:
        pool = self._require_client()
        if self._tx_connection is None:
            self._tx_connection = await pool.acquire()
        result = await self.execute_query("BEGIN")
        if result.error:
            await self._release_transaction()
        return result

    async def commit_transaction(self) -> QueryResult:
        try:
            return await self.execute_query("COMMIT")
        finally:
            await self._release_transaction()

    async def rollback_transaction(self) -> QueryResult:
        try:
            return await self.execute_query("ROLLBACK")
        finally:
            await self._release_transaction()

    async def _release_transaction(self) -> None:
        connection, self._tx_connection = self._tx_connection, None
        if connection is not None and self._client is not None:
            self._client.release(connection)

    # Introspection

    async def get_tables(self, database: Optional[str] = None) -> List[Table]:
        db = database or self.config.database
        rows = await self._rows(
            """
            SELECT TABLE_NAME, TABLE_ROWS
            FROM information_schema.TABLES
            WHERE TABLE_SCHEMA = ? AND TABLE_TYPE = 'BASE TABLE'
            ORDER BY TABLE_NAME
            """,
            [db],
        )
        tables = []
        for row in rows:
            name = row["TABLE_NAME"]
            tables.append(Table(
                name=name,
                schema=db,
                columns=await self.get_columns(name, db),
                indexes=await self.get_indexes(name, db),
                foreign_keys=await self.get_foreign_keys(name, db),
                row_count=int(row["TABLE_ROWS"] or 0),
            ))
        return tables

    async def get_columns(self, table: str, schema: Optional[str] = None) -> List[Column]:
        rows = await self._rows(
            """
            SELECT COLUMN_NAME, DATA_TYPE, IS_NULLABLE, COLUMN_DEFAULT, COLUMN_KEY, EXTRA
            FROM information_schema.COLUMNS
            WHERE TABLE_SCHEMA = ? AND TABLE_NAME = ?
            ORDER BY ORDINAL_POSITION
            """,
            [schema or self.config.database, table],
        )
        return [
            Column(
                name=row["COLUMN_NAME"],
                type=row["DATA_TYPE"],
                nullable=row["IS_NULLABLE"] == "YES",
                primary_key=row["COLUMN_KEY"] == "PRI",
                default_value=row["COLUMN_DEFAULT"],
                auto_increment="auto_increment" in str(row["EXTRA"] or ""),
            )
            for row in rows
        ]

    async def get_indexes(self, table: str, schema: Optional[str] = None) -> List[Index]:
        rows = await self._rows(
            """
            SELECT
                INDEX_NAME,
                GROUP_CONCAT(COLUMN_NAME ORDER BY SEQ_IN_INDEX) AS columns,
                NOT NON_UNIQUE AS is_unique
            FROM information_schema.STATISTICS
            WHERE TABLE_SCHEMA = ? AND TABLE_NAME = ? AND INDEX_NAME != 'PRIMARY'
            GROUP BY INDEX_NAME, NON_UNIQUE
            ORDER BY INDEX_NAME
            """,
            [schema or self.config.database, table],
        )
        return [
            Index(
                name=row["INDEX_NAME"],
                columns=str(row["columns"] or "").split(","),
                unique=bool(row["is_unique"]),
            )
            for row in rows
        ]

    async def get_primary_key(self, table: str, schema: Optional[str] = None) -> List[str]:
        rows = await self._rows(
            """
            SELECT COLUMN_NAME
            FROM information_schema.KEY_COLUMN_USAGE
            WHERE TABLE_SCHEMA = ? AND TABLE_NAME = ? AND CONSTRAINT_NAME = 'PRIMARY'
            ORDER BY ORDINAL_POSITION
            """,
            [schema or self.config.database, table],
        )
        return [row["COLUMN_NAME"] for row in rows]

    async def get_foreign_keys(self, table: str, schema: Optional[str] = None) -> List[ForeignKey]:
        rows = await self._rows(
            """
            SELECT
                k.CONSTRAINT_NAME,
                k.COLUMN_NAME,
                k.REFERENCED_TABLE_NAME,
                k.REFERENCED_COLUMN_NAME,
                r.DELETE_RULE,
                r.UPDATE_RULE
            FROM information_schema.KEY_COLUMN_USAGE k
            LEFT JOIN information_schema.REFERENTIAL_CONSTRAINTS r
                ON r.CONSTRAINT_SCHEMA = k.TABLE_SCHEMA AND r.CONSTRAINT_NAME = k.CONSTRAINT_NAME
            WHERE k.TABLE_SCHEMA = ? AND k.TABLE_NAME = ? AND k.REFERENCED_TABLE_NAME IS NOT NULL
            ORDER BY k.CONSTRAINT_NAME, k.ORDINAL_POSITION
            """,
            [schema or self.config.database, table],
        )
        keys: Dict[str, ForeignKey] = {}
        for row in rows:
            name = row["CONSTRAINT_NAME"]
            if name not in keys:
                keys[name] = ForeignKey(
                    name=name,
                    columns=[],
                    referenced_table=row["REFERENCED_TABLE_NAME"],
                    referenced_columns=[],
                    on_delete=row.get("DELETE_RULE"),
                    on_update=row.get("UPDATE_RULE"),
                )
            keys[name].columns.append(row["COLUMN_NAME"])
            keys[name].referenced_columns.append(row["REFERENCED_COLUMN_NAME"])
        return list(keys.values())

    async def get_views(self, database: Optional[str] = None) -> List[View]:
        db = database or self.config.database
        rows = await self._rows(
            """
            SELECT TABLE_NAME, VIEW_DEFINITION
            FROM information_schema.VIEWS
            WHERE TABLE_SCHEMA = ?
            ORDER BY TABLE_NAME
            """,
            [db],
        )
        return [View(name=row["TABLE_NAME"], schema=db, definition=row["VIEW_DEFINITION"]) for row in rows]

    async def get_view_definition(self, view_name: str, schema: Optional[str] = None) -> str:
        rows = await self._rows(
            "SELECT VIEW_DEFINITION FROM information_schema.VIEWS WHERE TABLE_SCHEMA = ? AND TABLE_NAME = ?",
            [schema or self.config.database, view_name],
        )
        return (rows[0]["VIEW_DEFINITION"] or "") if rows else ""

    async def get_stored_procedures(self, database: Optional[str] = None) -> List[StoredProcedure]:
        rows = await self._rows(
            """
            SELECT ROUTINE_NAME, ROUTINE_SCHEMA, ROUTINE_TYPE, DATA_TYPE
            FROM information_schema.ROUTINES
            WHERE ROUTINE_SCHEMA = ?
            ORDER BY ROUTINE_NAME
            """,
            [database or self.config.database],
        )
        return [
            StoredProcedure(
                name=row["ROUTINE_NAME"],
                schema=row["ROUTINE_SCHEMA"],
                return_type=row["DATA_TYPE"] if row["ROUTINE_TYPE"] == "FUNCTION" else None,
            )
            for row in rows
        ]

    async def get_triggers(
        self, table: Optional[str] = None, schema: Optional[str] = None
    ) -> List[Trigger]:
        sql = """
            SELECT TRIGGER_NAME, EVENT_OBJECT_TABLE, EVENT_MANIPULATION, ACTION_TIMING, ACTION_STATEMENT
            FROM information_schema.TRIGGERS
            WHERE TRIGGER_SCHEMA = ?
        """
        params: List[Any] = [schema or self.config.database]
        if table:
            sql += " AND EVENT_OBJECT_TABLE = ?"
            params.append(table)
        sql += " ORDER BY TRIGGER_NAME"

        return [
            Trigger(
                name=row["TRIGGER_NAME"],
                table=row["EVENT_OBJECT_TABLE"],
                event=row["EVENT_MANIPULATION"],
                timing=row["ACTION_TIMING"],
                definition=self._trigger_definition(row),
                enabled=True,
            )
            for row in await self._rows(sql, params)
        ]

    def _trigger_definition(self, row: Dict[str, Any]) -> Optional[str]:
        return None

    async def get_users(self) -> List[User]:
        rows = await self._rows("SELECT User, Host FROM mysql.user ORDER BY User")
        return [User(name=f"{row['User']}@{row['Host']}", host=row["Host"], can_login=True) for row in rows]

    async def get_roles(self) -> List[Role]:
        rows = await self._rows(
            "SELECT DISTINCT User AS role_name FROM mysql.user "
            "WHERE account_locked = 'Y' AND password_expired = 'Y'"
        )
        return [Role(name=row["role_name"]) for row in rows]

    async def get_databases(self) -> List[str]:
        rows = await self._rows("SHOW DATABASES")
        return [row.get("Database") or next(iter(row.values())) for row in rows]

    async def get_schemas(self, database: Optional[str] = None) -> List[str]:
        return await self.get_databases()

    async def get_version(self) -> str:
        rows = await self._rows("SELECT VERSION() AS version")
        return rows[0]["version"] if rows else "Unknown"

    async def explain_query(self, sql: str) -> QueryPlan:
        result = await self.execute_query(f"EXPLAIN FORMAT=JSON {sql}")
        if not result.error and result.rows:
            first = result.rows[0]
            raw = first.get("EXPLAIN", next(iter(first.values()), None))
            try:
                plan = json.loads(raw) if isinstance(raw, str) else raw
            except ValueError:
                plan = None
            if plan is not None:
                return QueryPlan(
                    plan=plan,
                    text_representation=json.dumps(plan, indent=2, default=str),
                    estimated_cost=self._plan_cost(plan),
                )

        fallback = await self.execute_query(f"EXPLAIN {sql}")
        if fallback.error:
            return QueryPlan(plan=None, text_representation=fallback.error)
        return QueryPlan(plan=fallback.rows, text_representation=render_plan_text(fallback.rows))

    def _plan_cost(self, plan: Any) -> Optional[float]:
        try:
            return float(plan["query_block"]["cost_info"]["query_cost"])
        except (KeyError, TypeError, ValueError):
            return None
