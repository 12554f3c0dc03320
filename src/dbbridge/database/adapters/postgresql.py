"""PostgreSQL adapter built on an asyncpg connection pool."""

import json
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, List, Optional

import asyncpg

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
from ..statements import render_plan_text
from ..types import PgOid

COLUMNS_SQL = """
    SELECT
        c.column_name,
        c.data_type,
        c.is_nullable,
        c.column_default,
        CASE WHEN pk.column_name IS NOT NULL THEN true ELSE false END AS is_primary_key
    FROM information_schema.columns c
    LEFT JOIN (
        SELECT ku.column_name
        FROM information_schema.table_constraints tc
        JOIN information_schema.key_column_usage ku
            ON tc.constraint_name = ku.constraint_name
        WHERE tc.table_name = $1 AND tc.table_schema = $2 AND tc.constraint_type = 'PRIMARY KEY'
    ) pk ON c.column_name = pk.column_name
    WHERE c.table_name = $1 AND c.table_schema = $2
    ORDER BY c.ordinal_position
"""

INDEXES_SQL = """
    SELECT
        i.relname AS index_name,
        array_agg(a.attname ORDER BY array_position(ix.indkey, a.attnum)) AS columns,
        ix.indisunique AS is_unique
    FROM pg_class t
    JOIN pg_index ix ON t.oid = ix.indrelid
    JOIN pg_class i ON i.oid = ix.indexrelid
    JOIN pg_attribute a ON a.attrelid = t.oid AND a.attnum = ANY(ix.indkey)
    JOIN pg_namespace n ON n.oid = t.relnamespace
    WHERE t.relname = $1 AND n.nspname = $2 AND NOT ix.indisprimary
    GROUP BY i.relname, ix.indisunique
    ORDER BY i.relname
"""

PRIMARY_KEY_SQL = """
    SELECT ku.column_name
    FROM information_schema.table_constraints tc
    JOIN information_schema.key_column_usage ku
        ON tc.constraint_name = ku.constraint_name
    WHERE tc.table_name = $1 AND tc.table_schema = $2 AND tc.constraint_type = 'PRIMARY KEY'
    ORDER BY ku.ordinal_position
"""

FOREIGN_KEYS_SQL = """
    SELECT
        tc.constraint_name,
        kcu.column_name,
        ccu.table_name AS foreign_table_name,
        ccu.column_name AS foreign_column_name,
        rc.delete_rule,
        rc.update_rule
    FROM information_schema.table_constraints AS tc
    JOIN information_schema.key_column_usage AS kcu
        ON tc.constraint_name = kcu.constraint_name
    JOIN information_schema.constraint_column_usage AS ccu
        ON ccu.constraint_name = tc.constraint_name
    JOIN information_schema.referential_constraints AS rc
        ON rc.constraint_name = tc.constraint_name
    WHERE tc.constraint_type = 'FOREIGN KEY'
        AND tc.table_name = $1
        AND tc.table_schema = $2
"""

TRIGGERS_SQL = """
    SELECT
        trigger_name,
        event_object_table,
        event_manipulation,
        action_timing,
        action_statement
    FROM information_schema.triggers
    WHERE trigger_schema = $1
"""


def _affected_rows(status: Optional[str]) -> Optional[int]:
    """Row count from a command tag such as ``INSERT 0 3`` or ``UPDATE 2``."""
    if not status:
        return None
    last = status.rsplit(" ", 1)[-1]
    return int(last) if last.isdigit() else None


class PostgreSQLAdapter(BaseAdapter):
    """PostgreSQL adapter.

    Statements run on a pooled connection. Between ``begin_transaction`` and
    ``commit_transaction``/``rollback_transaction`` one connection is held
    so the transaction sees every statement issued through the adapter.
    """

    component_name = "PostgreSQLAdapter"
    engine = DatabaseType.POSTGRESQL
    display_name = "PostgreSQL"
    default_port = 5432
    default_schema = "public"

    def __init__(self, config: ConnectionConfig) -> None:
        super().__init__(config)
        self._tx_connection: Optional[asyncpg.Connection] = None

    async def _open(self) -> None:
        options: Dict[str, Any] = {
            "host": self.config.host or "localhost",
            "port": self.config.port or self.default_port,
            "database": self.config.database or None,
            "user": self.config.username,
            "password": self.config.password_value,
            "min_size": 1,
            "max_size": 10,
            "max_inactive_connection_lifetime": 30.0,
            "timeout": 10.0,
        }
        if self.config.connection_string_value:
            options["dsn"] = self.config.connection_string_value
        if self.config.ssl:
            options["ssl"] = build_ssl_context(self.config.ssl)

        self._client = await asyncpg.create_pool(**options)

    async def _close(self) -> None:
        await self._release_transaction()
        await self._client.close()

    def _classify_connect_error(self, error: BaseException) -> str:
        if isinstance(error, asyncpg.InvalidAuthorizationSpecificationError):
            return ErrorCodes.AUTH_FAILED
        return super()._classify_connect_error(error)

    @asynccontextmanager
    async def _connection(self) -> AsyncIterator[asyncpg.Connection]:
        pool = self._require_client()
        if self._tx_connection is not None:
            yield self._tx_connection
        else:
            async with pool.acquire() as conn:
                yield conn

    async def _execute(self, sql: str, params: List[Any]) -> QueryResult:
        async with self._connection() as conn:
            statement = await conn.prepare(sql)
            records = await statement.fetch(*params)
            attributes = statement.get_attributes()
            status = statement.get_statusmsg()

        columns = [
            Column(name=attr.name, type=PgOid.from_code(attr.type.oid).type_name)
            for attr in attributes
        ]
        rows = [dict(record) for record in records]
        return QueryResult(
            columns=columns,
            rows=rows,
            row_count=len(rows),
            affected_rows=_affected_rows(status),
        )

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
            await self._client.release(connection)

    # Introspection

    async def get_tables(self, database: Optional[str] = None) -> List[Table]:
        rows = await self._rows(
            """
            SELECT table_name
            FROM information_schema.tables
            WHERE table_schema = $1 AND table_type = 'BASE TABLE'
            ORDER BY table_name
            """,
            [self.default_schema],
        )
        tables = []
        for row in rows:
            name = row["table_name"]
            tables.append(Table(
                name=name,
                schema=self.default_schema,
                columns=await self.get_columns(name),
                indexes=await self.get_indexes(name),
                foreign_keys=await self.get_foreign_keys(name),
                row_count=await self._row_count(name),
            ))
        return tables

    async def _row_count(self, table: str) -> int:
        rows = await self._rows(f"SELECT COUNT(*)::int AS count FROM {self.escape_identifier(table)}")
        return int(rows[0]["count"] or 0) if rows else 0

    def _is_auto_increment(self, default: Any) -> bool:
        return "nextval" in str(default or "")

    async def get_columns(self, table: str, schema: Optional[str] = None) -> List[Column]:
        rows = await self._rows(COLUMNS_SQL, [table, schema or self.default_schema])
        return [
            Column(
                name=row["column_name"],
                type=row["data_type"],
                nullable=row["is_nullable"] == "YES",
                primary_key=bool(row["is_primary_key"]),
                default_value=row["column_default"],
                auto_increment=self._is_auto_increment(row["column_default"]),
            )
            for row in rows
        ]

    async def get_indexes(self, table: str, schema: Optional[str] = None) -> List[Index]:
        rows = await self._rows(INDEXES_SQL, [table, schema or self.default_schema])
        return [
            Index(name=row["index_name"], columns=list(row["columns"] or []), unique=bool(row["is_unique"]))
            for row in rows
        ]

    async def get_primary_key(self, table: str, schema: Optional[str] = None) -> List[str]:
        rows = await self._rows(PRIMARY_KEY_SQL, [table, schema or self.default_schema])
        return [row["column_name"] for row in rows]

    async def get_foreign_keys(self, table: str, schema: Optional[str] = None) -> List[ForeignKey]:
        keys: Dict[str, ForeignKey] = {}
        for row in await self._rows(FOREIGN_KEYS_SQL, [table, schema or self.default_schema]):
            name = row["constraint_name"]
            if name not in keys:
                keys[name] = ForeignKey(
                    name=name,
                    columns=[],
                    referenced_table=row["foreign_table_name"],
                    referenced_columns=[],
                    on_delete=row["delete_rule"],
                    on_update=row["update_rule"],
                )
            keys[name].columns.append(row["column_name"])
            keys[name].referenced_columns.append(row["foreign_column_name"])
        return list(keys.values())

    async def get_views(self, database: Optional[str] = None) -> List[View]:
        rows = await self._rows(
            """
            SELECT table_name, view_definition
            FROM information_schema.views
            WHERE table_schema = $1
            ORDER BY table_name
            """,
            [self.default_schema],
        )
        return [
            View(name=row["table_name"], schema=self.default_schema, definition=row["view_definition"])
            for row in rows
        ]

    async def get_view_definition(self, view_name: str, schema: Optional[str] = None) -> str:
        rows = await self._rows(
            "SELECT view_definition FROM information_schema.views WHERE table_name = $1 AND table_schema = $2",
            [view_name, schema or self.default_schema],
        )
        return (rows[0]["view_definition"] or "") if rows else ""

    async def get_stored_procedures(self, database: Optional[str] = None) -> List[StoredProcedure]:
        rows = await self._rows(
            """
            SELECT
                p.proname AS name,
                n.nspname AS schema,
                pg_get_function_result(p.oid) AS return_type,
                l.lanname AS language
            FROM pg_proc p
            JOIN pg_namespace n ON p.pronamespace = n.oid
            LEFT JOIN pg_language l ON p.prolang = l.oid
            WHERE n.nspname NOT IN ('pg_catalog', 'information_schema')
            ORDER BY p.proname
            """
        )
        return [
            StoredProcedure(
                name=row["name"],
                schema=row["schema"],
                return_type=row["return_type"],
                language=row["language"],
            )
            for row in rows
        ]

    async def get_triggers(
        self, table: Optional[str] = None, schema: Optional[str] = None
    ) -> List[Trigger]:
        sql = TRIGGERS_SQL
        params: List[Any] = [schema or self.default_schema]
        if table:
            sql += " AND event_object_table = $2"
            params.append(table)
        sql += " ORDER BY trigger_name"

        return [
            Trigger(
                name=row["trigger_name"],
                table=row["event_object_table"],
                event=row["event_manipulation"],
                timing=row["action_timing"],
                definition=self._trigger_definition(row),
                enabled=True,
            )
            for row in await self._rows(sql, params)
        ]

    def _trigger_definition(self, row: Dict[str, Any]) -> Optional[str]:
        return None

    async def get_users(self) -> List[User]:
        rows = await self._rows("SELECT usename, usesuper FROM pg_user ORDER BY usename")
        return [User(name=row["usename"], superuser=bool(row["usesuper"]), can_login=True) for row in rows]

    async def get_roles(self) -> List[Role]:
        rows = await self._rows(
            """
            SELECT rolname, rolsuper, rolcreaterole, rolcreatedb, rolcanlogin
            FROM pg_roles
            WHERE rolname NOT LIKE 'pg_%'
            ORDER BY rolname
            """
        )
        flags = (
            ("rolsuper", "SUPERUSER"),
            ("rolcreaterole", "CREATEROLE"),
            ("rolcreatedb", "CREATEDB"),
            ("rolcanlogin", "LOGIN"),
        )
        return [
            Role(name=row["rolname"], privileges=[label for key, label in flags if row.get(key)])
            for row in rows
        ]

    async def get_databases(self) -> List[str]:
        rows = await self._rows(
            "SELECT datname FROM pg_database WHERE datistemplate = false ORDER BY datname"
        )
        return [row["datname"] for row in rows]

    async def get_schemas(self, database: Optional[str] = None) -> List[str]:
        rows = await self._rows(
            """
            SELECT schema_name
            FROM information_schema.schemata
            WHERE schema_name NOT LIKE 'pg_%' AND schema_name != 'information_schema'
            ORDER BY schema_name
            """
        )
        return [row["schema_name"] for row in rows]

    async def get_version(self) -> str:
        rows = await self._rows("SELECT version()")
        return rows[0]["version"] if rows else "Unknown"

    async def explain_query(self, sql: str) -> QueryPlan:
        result = await self.execute_query(f"EXPLAIN (FORMAT JSON) {sql}")
        if not result.error and result.rows:
            first = result.rows[0]
            raw = first.get("QUERY PLAN", next(iter(first.values()), None))
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
            return float(plan[0]["Plan"]["Total Cost"])
        except (IndexError, KeyError, TypeError, ValueError):
            return None
