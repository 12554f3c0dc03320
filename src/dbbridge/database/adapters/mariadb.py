"""MariaDB adapter.

Shares the MySQL adapter's pool and result handling; the schema spans
every user database and a few catalog queries differ.
"""

import json
from typing import Any, Dict, List, Optional

from ...config.models import DatabaseType
from ..models import Database, Index, QueryPlan, Schema, StoredProcedure
from ..statements import render_plan_text
from .mysql import MySQLAdapter

SYSTEM_DATABASES = frozenset({"information_schema", "mysql", "performance_schema", "sys"})


class MariaDBAdapter(MySQLAdapter):
    """MariaDB adapter."""

    component_name = "MariaDBAdapter"
    engine = DatabaseType.MARIADB
    display_name = "MariaDB"

    async def get_schema(self) -> Schema:
        databases = []
        for name in await self.get_databases():
            if name.lower() in SYSTEM_DATABASES:
                continue
            databases.append(Database(
                name=name,
                tables=await self.get_tables(name),
                views=await self.get_views(name),
            ))
        return Schema(databases=databases)

    async def get_indexes(self, table: str, schema: Optional[str] = None) -> List[Index]:
        db = schema or self.config.database
        rows = await self._rows(
            f"SHOW INDEX FROM {self.escape_identifier(db)}.{self.escape_identifier(table)}"
        )
        indexes: Dict[str, Index] = {}
        for row in rows:
            name = row["Key_name"]
            if name == "PRIMARY":
                continue
            if name not in indexes:
                indexes[name] = Index(name=name, unique=int(row["Non_unique"]) == 0)
            indexes[name].columns.append(row["Column_name"])
        return list(indexes.values())

    async def get_primary_key(self, table: str, schema: Optional[str] = None) -> List[str]:
        rows = await self._rows(
            """
            SELECT COLUMN_NAME
            FROM information_schema.COLUMNS
            WHERE TABLE_SCHEMA = ? AND TABLE_NAME = ? AND COLUMN_KEY = 'PRI'
            ORDER BY ORDINAL_POSITION
            """,
            [schema or self.config.database, table],
        )
        return [row["COLUMN_NAME"] for row in rows]

    async def get_stored_procedures(self, database: Optional[str] = None) -> List[StoredProcedure]:
        rows = await self._rows(
            """
            SELECT ROUTINE_NAME, ROUTINE_SCHEMA, ROUTINE_TYPE, ROUTINE_DEFINITION
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
                definition=row["ROUTINE_DEFINITION"],
                return_type=row["ROUTINE_TYPE"],
            )
            for row in rows
        ]

    def _trigger_definition(self, row: Dict[str, Any]) -> Optional[str]:
        return row.get("ACTION_STATEMENT")

    async def get_version(self) -> str:
        return f"MariaDB {await super().get_version()}"

    async def explain_query(self, sql: str) -> QueryPlan:
        result = await self.execute_query(f"EXPLAIN FORMAT=JSON {sql}")
        if result.error:
            return QueryPlan(plan=None, text_representation=result.error)
        if not result.rows:
            return QueryPlan(plan=[], text_representation="")

        first = result.rows[0]
        raw = first.get("EXPLAIN", next(iter(first.values()), None))
        try:
            plan = json.loads(raw) if isinstance(raw, str) else raw
            return QueryPlan(plan=plan, text_representation=json.dumps(plan, indent=2, default=str))
        except ValueError:
            return QueryPlan(plan=result.rows, text_representation=render_plan_text(result.rows))
