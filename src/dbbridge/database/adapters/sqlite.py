"""SQLite adapter built on aiosqlite."""

import re
from typing import Any, Dict, List, Optional

import aiosqlite

from ...config.models import DatabaseType
from ...core.exceptions import ConfigurationError, ErrorCodes
from ..base import BaseAdapter
from ..models import (
    Column,
    Database,
    ForeignKey,
    Index,
    QueryPlan,
    QueryResult,
    Schema,
    Table,
    Trigger,
    View,
)

_ROW_STATEMENT = re.compile(r"^\s*(SELECT|PRAGMA|WITH|EXPLAIN)\b", re.IGNORECASE)


def _value_type(value: Any) -> str:
    if value is None:
        return "NULL"
    if isinstance(value, bool) or isinstance(value, int):
        return "INTEGER"
    if isinstance(value, float):
        return "REAL"
    if isinstance(value, (bytes, bytearray, memoryview)):
        return "BLOB"
    return "TEXT"


def _plan_node(detail: str) -> Dict[str, Any]:
    node: Dict[str, Any] = {"detail": detail}
    if detail.startswith("SCAN"):
        node["Node Type"] = "Seq Scan"
    elif detail.startswith("SEARCH"):
        node["Node Type"] = "Index Scan"
    elif "USING COVERING INDEX" in detail:
        node["Node Type"] = "Index Only Scan"
    elif "TEMP B-TREE" in detail:
        node["Node Type"] = "Temp B-Tree"
    else:
        node["Node Type"] = detail.split(" ")[0] if detail else "Operation"

    match = re.match(r"(?:SCAN|SEARCH)\s+(?:TABLE\s+)?(\S+)", detail)
    if match:
        node["Relation Name"] = match.group(1)
    return node


class SQLiteAdapter(BaseAdapter):
    """SQLite adapter.

    The database file comes from ``filename`` or, failing that,
    ``database``; ``":memory:"`` opens a private in-memory database. The
    connection runs in autocommit mode so explicit ``BEGIN``/``COMMIT``
    statements control transactions.
    """

    component_name = "SQLiteAdapter"
    engine = DatabaseType.SQLITE
    display_name = "SQLite"

    async def _open(self) -> None:
        path = self.config.filename or self.config.database
        if not path:
            raise ConfigurationError(
                "SQLite requires a filename or database path",
                code=ErrorCodes.CONFIG_INVALID,
                context={"connection_id": self.config.id},
            )
        self._client = await aiosqlite.connect(path, isolation_level=None)

    async def _close(self) -> None:
        await self._client.close()

    async def _execute(self, sql: str, params: List[Any]) -> QueryResult:
        conn: aiosqlite.Connection = self._require_client()

        if _ROW_STATEMENT.match(sql):
            async with conn.execute(sql, params) as cursor:
                names = [d[0] for d in cursor.description or []]
                raw_rows = await cursor.fetchall()
            rows = [dict(zip(names, row)) for row in raw_rows]
            first = rows[0] if rows else {}
            columns = [Column(name=name, type=_value_type(first.get(name)) if rows else "TEXT") for name in names]
            return QueryResult(columns=columns, rows=rows, row_count=len(rows))

        before = conn.total_changes
        async with conn.execute(sql, params):
            pass
        return QueryResult(affected_rows=conn.total_changes - before)

    def get_placeholder(self, index: int) -> str:
        return "?"

    async def get_schema(self) -> Schema:
        tables = await self.get_tables()
        views = await self.get_views()
        return Schema(databases=[
            Database(name=self.config.database or "main", tables=tables, views=views)
        ])

    async def get_tables(self, database: Optional[str] = None) -> List[Table]:
        rows = await self._rows(
            "SELECT name FROM sqlite_master WHERE type='table' AND name NOT LIKE 'sqlite_%' ORDER BY name"
        )
        tables = []
        for row in rows:
            name = row["name"]
            tables.append(Table(
                name=name,
                columns=await self.get_columns(name),
                indexes=await self.get_indexes(name),
                foreign_keys=await self.get_foreign_keys(name),
                row_count=await self._row_count(name),
            ))
        return tables

    async def _row_count(self, table: str) -> int:
        rows = await self._rows(f"SELECT COUNT(*) AS count FROM {self.escape_identifier(table)}")
        return int(rows[0]["count"]) if rows else 0

    async def _table_sql(self, table: str) -> str:
        rows = await self._rows("SELECT sql FROM sqlite_master WHERE type='table' AND name = ?", [table])
        return (rows[0].get("sql") or "") if rows else ""

    async def get_columns(self, table: str, schema: Optional[str] = None) -> List[Column]:
        rows = await self._rows(f"PRAGMA table_info({self.escape_identifier(table)})")
        autoincrement = bool(re.search(r"AUTOINCREMENT", await self._table_sql(table), re.IGNORECASE)) if rows else False
        return [
            Column(
                name=row["name"],
                type=row.get("type") or "TEXT",
                nullable=row.get("notnull") == 0,
                primary_key=(row.get("pk") or 0) > 0,
                default_value=row.get("dflt_value"),
                auto_increment=autoincrement and (row.get("pk") or 0) > 0,
            )
            for row in rows
        ]

    async def get_indexes(self, table: str, schema: Optional[str] = None) -> List[Index]:
        indexes = []
        for row in await self._rows(f"PRAGMA index_list({self.escape_identifier(table)})"):
            info = await self._rows(f"PRAGMA index_info({self.escape_identifier(row['name'])})")
            indexes.append(Index(
                name=row["name"],
                columns=[r["name"] for r in info],
                unique=row.get("unique") == 1,
            ))
        return indexes

    async def get_primary_key(self, table: str, schema: Optional[str] = None) -> List[str]:
        return [c.name for c in await self.get_columns(table) if c.primary_key]

    async def get_foreign_keys(self, table: str) -> List[ForeignKey]:
        keys: Dict[int, ForeignKey] = {}
        for row in await self._rows(f"PRAGMA foreign_key_list({self.escape_identifier(table)})"):
            fk = keys.get(row["id"])
            if fk is None:
                fk = keys[row["id"]] = ForeignKey(
                    name=f"fk_{table}_{row['id']}",
                    columns=[],
                    referenced_table=row["table"],
                    referenced_columns=[],
                    on_delete=row.get("on_delete"),
                    on_update=row.get("on_update"),
                )
            fk.columns.append(row["from"])
            fk.referenced_columns.append(row["to"])
        return list(keys.values())

    async def get_views(self, database: Optional[str] = None) -> List[View]:
        rows = await self._rows("SELECT name, sql FROM sqlite_master WHERE type='view' ORDER BY name")
        return [View(name=row["name"], definition=row.get("sql")) for row in rows]

    async def get_view_definition(self, view_name: str, schema: Optional[str] = None) -> str:
        rows = await self._rows("SELECT sql FROM sqlite_master WHERE type='view' AND name = ?", [view_name])
        return (rows[0].get("sql") or "") if rows else ""

    async def get_triggers(
        self, table: Optional[str] = None, schema: Optional[str] = None
    ) -> List[Trigger]:
        sql = "SELECT name, tbl_name, sql FROM sqlite_master WHERE type='trigger'"
        params = []
        if table:
            sql += " AND tbl_name = ?"
            params.append(table)
        sql += " ORDER BY name"

        triggers = []
        for row in await self._rows(sql, params):
            text = row.get("sql") or ""
            if re.search(r"BEFORE", text, re.IGNORECASE):
                timing = "BEFORE"
            elif re.search(r"AFTER", text, re.IGNORECASE):
                timing = "AFTER"
            elif re.search(r"INSTEAD\s+OF", text, re.IGNORECASE):
                timing = "INSTEAD OF"
            else:
                timing = "UNKNOWN"

            event = "UNKNOWN"
            for candidate in ("INSERT", "UPDATE", "DELETE"):
                if re.search(candidate, text, re.IGNORECASE):
                    event = candidate
                    break

            triggers.append(Trigger(
                name=row["name"],
                table=row["tbl_name"],
                event=event,
                timing=timing,
                definition=text or None,
                enabled=True,
            ))
        return triggers

    async def get_version(self) -> str:
        rows = await self._rows("SELECT sqlite_version() AS version")
        return rows[0]["version"] if rows else "Unknown"

    async def get_databases(self) -> List[str]:
        return ["main"]

    async def get_schemas(self, database: Optional[str] = None) -> List[str]:
        return ["main"]

    async def explain_query(self, sql: str) -> QueryPlan:
        result = await self.execute_query(f"EXPLAIN QUERY PLAN {sql}")
        if result.error:
            return QueryPlan(plan=None, text_representation=result.error)
        details = [str(row.get("detail", "")) for row in result.rows]
        return QueryPlan(
            plan=[_plan_node(detail) for detail in details],
            text_representation="\n".join(details),
        )
