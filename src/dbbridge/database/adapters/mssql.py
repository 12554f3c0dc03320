"""SQL Server adapter built on aioodbc."""

import asyncio
import re
import uuid
from datetime import date, datetime, time
from decimal import Decimal
from typing import Any, Dict, List, Optional, Tuple

import aioodbc

from ...config.models import ConnectionConfig, DatabaseType
from ...core.exceptions import ErrorCodes
from .. import statements
from ..base import BaseAdapter
from ..models import (
    Column,
    ForeignKey,
    Index,
    QueryOptions,
    QueryPlan,
    QueryResult,
    Role,
    StoredProcedure,
    Table,
    Trigger,
    User,
    View,
)

DEFAULT_DRIVER = "ODBC Driver 18 for SQL Server"
DEFAULT_SCHEMA = "dbo"

_NUMBERED_PLACEHOLDER = re.compile(r"@p(\d+)", re.IGNORECASE)

_PYTHON_TYPE_NAMES = {
    str: "nvarchar",
    int: "int",
    float: "float",
    Decimal: "decimal",
    bool: "bit",
    datetime: "datetime",
    date: "date",
    time: "time",
    bytes: "varbinary",
    bytearray: "varbinary",
    uuid.UUID: "uniqueidentifier",
}


def to_qmark_style(sql: str, params: List[Any]) -> Tuple[str, List[Any]]:
    """Rewrite ``@pN`` placeholders to ODBC ``?`` markers.

    Parameters are reordered (and repeated) to follow the order in which the
    placeholders appear. Text inside quoted strings and bracketed
    identifiers is not touched.

    Example:
        >>> to_qmark_style("SELECT @p2, @p1", ["a", "b"])
        ('SELECT ?, ?', ['b', 'a'])
    """
    out: List[str] = []
    ordered: List[Any] = []
    pos = 0
    closing = None
    while pos < len(sql):
        char = sql[pos]
        if closing:
            out.append(char)
            if char == closing:
                closing = None
            pos += 1
            continue
        if char == "'":
            closing = "'"
        elif char == "[":
            closing = "]"
        elif char == "@":
            match = _NUMBERED_PLACEHOLDER.match(sql, pos)
            if match:
                ordered.append(params[int(match.group(1)) - 1])
                out.append("?")
                pos = match.end()
                continue
        out.append(char)
        pos += 1
    return "".join(out), ordered


def _odbc_value(value: Any) -> str:
    text = str(value)
    if any(char in text for char in ";{}="):
        return "{" + text.replace("}", "}}") + "}"
    return text


class MSSQLAdapter(BaseAdapter):
    """SQL Server adapter.

    Uses one ODBC connection in autocommit mode so session settings such
    as ``SHOWPLAN_XML`` and explicit transactions stay on the same session.
    Statements are serialized on that connection.
    """

    component_name = "MSSQLAdapter"
    engine = DatabaseType.MSSQL
    display_name = "SQL Server"

    def __init__(self, config: ConnectionConfig) -> None:
        super().__init__(config)
        self._lock = asyncio.Lock()

    def connection_string(self) -> str:
        """ODBC connection string for the configured server."""
        if self.config.connection_string_value:
            return self.config.connection_string_value

        options = self.config.options
        parts = {
            "DRIVER": "{" + options.get("driver", DEFAULT_DRIVER) + "}",
            "SERVER": f"{self.config.host or 'localhost'},{self.config.port or 1433}",
            "DATABASE": self.config.database,
            "UID": self.config.username,
            "PWD": self.config.password_value,
            "Encrypt": "yes" if self.config.ssl_enabled else "no",
            "TrustServerCertificate": "yes" if options.get("trust_server_certificate", True) else "no",
        }
        return ";".join(
            f"{key}={value if key == 'DRIVER' else _odbc_value(value)}"
            for key, value in parts.items()
            if value
        )

    async def _open(self) -> None:
        self._client = await aioodbc.connect(
            dsn=self.connection_string(), autocommit=True, timeout=10
        )

    async def _close(self) -> None:
        await self._client.close()

    def _classify_connect_error(self, error: BaseException) -> str:
        if getattr(error, "args", None) and error.args[0] == "28000":
            return ErrorCodes.AUTH_FAILED
        if getattr(error, "args", None) and error.args[0] == "HYT00":
            return ErrorCodes.CONNECTION_TIMEOUT
        return super()._classify_connect_error(error)

    async def _execute(self, sql: str, params: List[Any]) -> QueryResult:
        conn = self._require_client()
        if params:
            sql, params = to_qmark_style(sql, params)

        async with self._lock:
            async with conn.cursor() as cursor:
                await cursor.execute(sql, *params)
                if cursor.description is None:
                    return QueryResult(affected_rows=cursor.rowcount)
                description = cursor.description
                raw_rows = await cursor.fetchall()

        names = [desc[0] for desc in description]
        columns = [
            Column(
                name=desc[0],
                type=_PYTHON_TYPE_NAMES.get(desc[1], getattr(desc[1], "__name__", "unknown")),
                nullable=bool(desc[6]),
            )
            for desc in description
        ]
        rows = [dict(zip(names, row)) for row in raw_rows]
        return QueryResult(columns=columns, rows=rows, row_count=len(rows))

    def escape_identifier(self, name: str) -> str:
        return statements.quote_with("[", "]")(name)

    def get_placeholder(self, index: int) -> str:
        return f"@p{index}"

    async def get_table_data(
        self, table: str, options: Optional[QueryOptions] = None
    ) -> QueryResult:
        options = statements.coerce_options(options)
        sql = statements.build_select(
            table,
            QueryOptions(where=options.where, order_by=options.order_by),
            self.escape_identifier,
        )
        if options.limit or options.offset:
            if not options.order_by:
                sql += " ORDER BY (SELECT NULL)"
            sql += f" OFFSET {int(options.offset or 0)} ROWS"
            if options.limit:
                sql += f" FETCH NEXT {int(options.limit)} ROWS ONLY"
        return await self.execute_query(sql)

    async def begin_transaction(self) -> QueryResult:
        return await self.execute_query("BEGIN TRANSACTION")

    async def commit_transaction(self) -> QueryResult:
        return await self.execute_query("COMMIT TRANSACTION")

    async def rollback_transaction(self) -> QueryResult:
        return await self.execute_query("ROLLBACK TRANSACTION")

    # Introspection

    async def get_tables(self, database: Optional[str] = None) -> List[Table]:
        rows = await self._rows(
            """
            SELECT TABLE_NAME, TABLE_SCHEMA
            FROM INFORMATION_SCHEMA.TABLES
            WHERE TABLE_TYPE = 'BASE TABLE' AND TABLE_CATALOG = DB_NAME()
            ORDER BY TABLE_NAME
            """
        )
        tables = []
        for row in rows:
            name = row["TABLE_NAME"]
            schema = row.get("TABLE_SCHEMA") or DEFAULT_SCHEMA
            tables.append(Table(
                name=name,
                schema=schema,
                columns=await self.get_columns(name, schema),
                indexes=await self.get_indexes(name, schema),
                foreign_keys=await self.get_foreign_keys(name, schema),
                row_count=await self._row_count(name, schema),
            ))
        return tables

    async def _row_count(self, table: str, schema: str) -> int:
        rows = await self._rows(
            f"SELECT COUNT(*) AS count FROM {self.escape_identifier(schema)}.{self.escape_identifier(table)}"
        )
        return int(rows[0]["count"] or 0) if rows else 0

    async def get_columns(self, table: str, schema: Optional[str] = None) -> List[Column]:
        rows = await self._rows(
            """
            SELECT
                c.COLUMN_NAME,
                c.DATA_TYPE,
                c.IS_NULLABLE,
                c.COLUMN_DEFAULT,
                CASE WHEN pk.COLUMN_NAME IS NOT NULL THEN 1 ELSE 0 END AS IS_PRIMARY_KEY,
                COLUMNPROPERTY(OBJECT_ID(@p2 + '.' + @p1), c.COLUMN_NAME, 'IsIdentity') AS IS_IDENTITY
            FROM INFORMATION_SCHEMA.COLUMNS c
            LEFT JOIN (
                SELECT ku.COLUMN_NAME
                FROM INFORMATION_SCHEMA.TABLE_CONSTRAINTS tc
                JOIN INFORMATION_SCHEMA.KEY_COLUMN_USAGE ku
                    ON tc.CONSTRAINT_NAME = ku.CONSTRAINT_NAME
                WHERE tc.TABLE_NAME = @p1 AND tc.TABLE_SCHEMA = @p2 AND tc.CONSTRAINT_TYPE = 'PRIMARY KEY'
            ) pk ON c.COLUMN_NAME = pk.COLUMN_NAME
            WHERE c.TABLE_NAME = @p1 AND c.TABLE_SCHEMA = @p2
            ORDER BY c.ORDINAL_POSITION
            """,
            [table, schema or DEFAULT_SCHEMA],
        )
        return [
            Column(
                name=row["COLUMN_NAME"],
                type=row["DATA_TYPE"],
                nullable=row["IS_NULLABLE"] == "YES",
                primary_key=bool(row["IS_PRIMARY_KEY"]),
                default_value=row["COLUMN_DEFAULT"],
                auto_increment=bool(row["IS_IDENTITY"]),
            )
            for row in rows
        ]

    async def get_indexes(self, table: str, schema: Optional[str] = None) -> List[Index]:
        rows = await self._rows(
            """
            SELECT
                i.name AS INDEX_NAME,
                STRING_AGG(c.name, ',') WITHIN GROUP (ORDER BY ic.key_ordinal) AS COLUMNS,
                i.is_unique AS IS_UNIQUE
            FROM sys.indexes i
            JOIN sys.index_columns ic ON i.object_id = ic.object_id AND i.index_id = ic.index_id
            JOIN sys.columns c ON ic.object_id = c.object_id AND ic.column_id = c.column_id
            JOIN sys.tables t ON i.object_id = t.object_id
            JOIN sys.schemas s ON t.schema_id = s.schema_id
            WHERE t.name = @p1 AND s.name = @p2 AND i.is_primary_key = 0 AND i.type > 0
            GROUP BY i.name, i.is_unique
            ORDER BY i.name
            """,
            [table, schema or DEFAULT_SCHEMA],
        )
        return [
            Index(
                name=row["INDEX_NAME"],
                columns=str(row["COLUMNS"] or "").split(","),
                unique=bool(row["IS_UNIQUE"]),
            )
            for row in rows
        ]

    async def get_primary_key(self, table: str, schema: Optional[str] = None) -> List[str]:
        rows = await self._rows(
            """
            SELECT ku.COLUMN_NAME
            FROM INFORMATION_SCHEMA.TABLE_CONSTRAINTS tc
            JOIN INFORMATION_SCHEMA.KEY_COLUMN_USAGE ku
                ON tc.CONSTRAINT_NAME = ku.CONSTRAINT_NAME
            WHERE tc.TABLE_NAME = @p1 AND tc.TABLE_SCHEMA = @p2 AND tc.CONSTRAINT_TYPE = 'PRIMARY KEY'
            ORDER BY ku.ORDINAL_POSITION
            """,
            [table, schema or DEFAULT_SCHEMA],
        )
        return [row["COLUMN_NAME"] for row in rows]

    async def get_foreign_keys(self, table: str, schema: Optional[str] = None) -> List[ForeignKey]:
        rows = await self._rows(
            """
            SELECT
                fk.name AS CONSTRAINT_NAME,
                c.name AS COLUMN_NAME,
                rt.name AS REFERENCED_TABLE_NAME,
                rc.name AS REFERENCED_COLUMN_NAME,
                fk.delete_referential_action_desc AS DELETE_RULE,
                fk.update_referential_action_desc AS UPDATE_RULE
            FROM sys.foreign_keys fk
            JOIN sys.foreign_key_columns fkc ON fk.object_id = fkc.constraint_object_id
            JOIN sys.columns c ON fkc.parent_object_id = c.object_id AND fkc.parent_column_id = c.column_id
            JOIN sys.tables t ON fk.parent_object_id = t.object_id
            JOIN sys.tables rt ON fk.referenced_object_id = rt.object_id
            JOIN sys.columns rc ON fkc.referenced_object_id = rc.object_id AND fkc.referenced_column_id = rc.column_id
            JOIN sys.schemas s ON t.schema_id = s.schema_id
            WHERE t.name = @p1 AND s.name = @p2
            ORDER BY fk.name, fkc.constraint_column_id
            """,
            [table, schema or DEFAULT_SCHEMA],
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
                    on_delete=row["DELETE_RULE"],
                    on_update=row["UPDATE_RULE"],
                )
            keys[name].columns.append(row["COLUMN_NAME"])
            keys[name].referenced_columns.append(row["REFERENCED_COLUMN_NAME"])
        return list(keys.values())

    async def get_views(self, database: Optional[str] = None) -> List[View]:
        rows = await self._rows(
            """
            SELECT TABLE_NAME, TABLE_SCHEMA, VIEW_DEFINITION
            FROM INFORMATION_SCHEMA.VIEWS
            WHERE TABLE_CATALOG = DB_NAME()
            ORDER BY TABLE_NAME
            """
        )
        return [
            View(
                name=row["TABLE_NAME"],
                schema=row.get("TABLE_SCHEMA") or DEFAULT_SCHEMA,
                definition=row["VIEW_DEFINITION"],
            )
            for row in rows
        ]

    async def get_view_definition(self, view_name: str, schema: Optional[str] = None) -> str:
        rows = await self._rows(
            """
            SELECT VIEW_DEFINITION
            FROM INFORMATION_SCHEMA.VIEWS
            WHERE TABLE_NAME = @p1 AND TABLE_SCHEMA = @p2 AND TABLE_CATALOG = DB_NAME()
            """,
            [view_name, schema or DEFAULT_SCHEMA],
        )
        return (rows[0]["VIEW_DEFINITION"] or "") if rows else ""

    async def get_stored_procedures(self, database: Optional[str] = None) -> List[StoredProcedure]:
        rows = await self._rows(
            """
            SELECT ROUTINE_NAME, ROUTINE_SCHEMA, ROUTINE_TYPE, DATA_TYPE, ROUTINE_DEFINITION
            FROM INFORMATION_SCHEMA.ROUTINES
            WHERE ROUTINE_CATALOG = DB_NAME()
            ORDER BY ROUTINE_NAME
            """
        )
        return [
            StoredProcedure(
                name=row["ROUTINE_NAME"],
                schema=row["ROUTINE_SCHEMA"],
                definition=row.get("ROUTINE_DEFINITION"),
                return_type=row["DATA_TYPE"] if row["ROUTINE_TYPE"] == "FUNCTION" else None,
                language="T-SQL",
            )
            for row in rows
        ]

    async def get_triggers(
        self, table: Optional[str] = None, schema: Optional[str] = None
    ) -> List[Trigger]:
        sql = """
            SELECT
                tr.name AS trigger_name,
                OBJECT_NAME(tr.parent_id) AS table_name,
                te.type_desc AS event,
                CASE WHEN tr.is_instead_of_trigger = 1 THEN 'INSTEAD OF' ELSE 'AFTER' END AS timing,
                CASE WHEN tr.is_disabled = 0 THEN 1 ELSE 0 END AS is_enabled
            FROM sys.triggers tr
            JOIN sys.trigger_events te ON tr.object_id = te.object_id
            WHERE tr.parent_class_desc = 'OBJECT_OR_COLUMN'
        """
        params: List[Any] = []
        if table:
            sql += " AND OBJECT_NAME(tr.parent_id) = @p1"
            params.append(table)
        sql += " ORDER BY tr.name"

        return [
            Trigger(
                name=row["trigger_name"],
                table=row["table_name"],
                event=row["event"],
                timing=row["timing"],
                enabled=bool(row["is_enabled"]),
            )
            for row in await self._rows(sql, params)
        ]

    async def get_users(self) -> List[User]:
        rows = await self._rows(
            """
            SELECT name, type_desc
            FROM sys.database_principals
            WHERE type IN ('S', 'U', 'G') AND name NOT LIKE '##%' AND name != 'guest'
            ORDER BY name
            """
        )
        return [User(name=row["name"], can_login=True) for row in rows]

    async def get_roles(self) -> List[Role]:
        rows = await self._rows(
            "SELECT name FROM sys.database_principals WHERE type = 'R' AND is_fixed_role = 0 ORDER BY name"
        )
        return [Role(name=row["name"]) for row in rows]

    async def get_databases(self) -> List[str]:
        rows = await self._rows("SELECT name FROM sys.databases WHERE state_desc = 'ONLINE' ORDER BY name")
        return [row["name"] for row in rows]

    async def get_schemas(self, database: Optional[str] = None) -> List[str]:
        rows = await self._rows("SELECT SCHEMA_NAME FROM INFORMATION_SCHEMA.SCHEMATA ORDER BY SCHEMA_NAME")
        return [row["SCHEMA_NAME"] for row in rows]

    async def get_version(self) -> str:
        rows = await self._rows("SELECT @@VERSION AS version")
        return rows[0]["version"] if rows else "Unknown"

    async def explain_query(self, sql: str) -> QueryPlan:
        enabled = await self.execute_query("SET SHOWPLAN_XML ON")
        if enabled.error:
            return QueryPlan(plan=None, text_representation=enabled.error)
        try:
            result = await self.execute_query(sql)
        finally:
            await self.execute_query("SET SHOWPLAN_XML OFF")

        if result.error:
            return QueryPlan(plan=None, text_representation=result.error)
        plan_xml = str(next(iter(result.rows[0].values()), "")) if result.rows else ""
        return QueryPlan(plan=result.rows, text_representation=plan_xml)
