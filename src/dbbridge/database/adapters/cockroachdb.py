"""CockroachDB adapter.

CockroachDB speaks the PostgreSQL wire protocol, so this reuses the
PostgreSQL adapter's pool and result handling and only swaps the catalog
queries that differ.
"""

import json
from typing import Any, Dict, List, Optional

from ...config.models import DatabaseType
from ..models import QueryPlan, Role, StoredProcedure, User
from ..statements import render_plan_text
from .postgresql import PostgreSQLAdapter


def _first_value(row: Dict[str, Any], *keys: str) -> Any:
    for key in keys:
        if row.get(key):
            return row[key]
    return next(iter(row.values()), None)


class CockroachDBAdapter(PostgreSQLAdapter):
    """CockroachDB adapter."""

    component_name = "CockroachDBAdapter"
    engine = DatabaseType.COCKROACHDB
    display_name = "CockroachDB"
    default_port = 26257

    def _is_auto_increment(self, default: Any) -> bool:
        text = str(default or "")
        return "unique_rowid" in text or "nextval" in text

    def _trigger_definition(self, row: Dict[str, Any]) -> Optional[str]:
        return row.get("action_statement")

    async def get_version(self) -> str:
        version = await super().get_version()
        return version if version.startswith("CockroachDB") else f"CockroachDB {version}"

    async def get_databases(self) -> List[str]:
        rows = await self._rows("SHOW DATABASES")
        return [_first_value(row, "database_name", "Database") for row in rows]

    async def get_schemas(self, database: Optional[str] = None) -> List[str]:
        rows = await self._rows(
            "SELECT schema_name FROM information_schema.schemata WHERE catalog_name = $1 ORDER BY schema_name",
            [database or self.config.database],
        )
        return [row["schema_name"] for row in rows]

    async def get_stored_procedures(self, database: Optional[str] = None) -> List[StoredProcedure]:
        rows = await self._rows(
            """
            SELECT routine_name, routine_schema, routine_type, routine_definition, external_language
            FROM information_schema.routines
            WHERE routine_schema = $1
            ORDER BY routine_name
            """,
            [self.default_schema],
        )
        return [
            StoredProcedure(
                name=row["routine_name"],
                schema=row["routine_schema"],
                definition=row["routine_definition"],
                return_type=row["routine_type"],
                language=row["external_language"],
            )
            for row in rows
        ]

    async def get_users(self) -> List[User]:
        rows = await self._rows("SHOW USERS")
        return [User(name=_first_value(row, "username", "user_name"), can_login=True) for row in rows]

    async def get_roles(self) -> List[Role]:
        rows = await self._rows("SHOW ROLES")
        return [Role(name=_first_value(row, "role_name", "username")) for row in rows]

    async def explain_query(self, sql: str) -> QueryPlan:
        result = await self.execute_query(f"EXPLAIN (FORMAT JSON) {sql}")
        if result.error:
            result = await self.execute_query(f"EXPLAIN {sql}")
            if result.error:
                return QueryPlan(plan=None, text_representation=result.error)
        if not result.rows:
            return QueryPlan(plan=[], text_representation="")

        raw = _first_value(result.rows[0], "info", "QUERY PLAN")
        try:
            plan = json.loads(raw) if isinstance(raw, str) else raw
            text = json.dumps(plan, indent=2, default=str)
        except ValueError:
            return QueryPlan(plan=result.rows, text_representation=render_plan_text(result.rows))
        return QueryPlan(plan=plan, text_representation=text)
