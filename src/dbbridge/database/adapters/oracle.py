"""Oracle adapter built on the python-oracledb asyncio pool."""

import uuid
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, List, Optional

import oracledb

from ...config.models import ConnectionConfig, DatabaseType
from ...core.exceptions import ErrorCodes
from .. import statements
from ..base import BaseAdapter, error_text
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
from ..types import OracleDbType

DEFAULT_PAGE_SIZE = 100

AUTH_ERROR_CODES = frozenset({"ORA-01017", "ORA-28000", "ORA-01005"})


def oracle_type_name(type_code: Any) -> str:
    """Name of a result column type; codes without a mapping become ``TYPE_<n>``."""
    resolved = OracleDbType.from_driver(type_code)
    if resolved is not OracleDbType.UNKNOWN:
        return resolved.type_name
    if type_code is None:
        return OracleDbType.UNKNOWN.type_name
    return f"TYPE_{getattr(type_code, 'num', type_code)}"


class OracleAdapter(BaseAdapter):
    """Oracle adapter.

    Introspection is scoped to the schema owned by the connecting user.
    Statements autocommit unless a transaction was opened with
    ``begin_transaction``, in which case they run on one pinned connection
    until ``commit_transaction`` or ``rollback_transaction``.
    """

    component_name = "OracleAdapter"
    engine = DatabaseType.ORACLE
    display_name = "Oracle"
    test_query = "SELECT 1 FROM DUAL"

    def __init__(self, config: ConnectionConfig) -> None:
        super().__init__(config)
        self._tx_connection: Optional[oracledb.AsyncConnection] = None

    @property
    def owner(self) -> str:
        return (self.config.username or "").upper()

    def dsn(self) -> str:
        return self.config.connection_string_value or (
            f"{self.config.host or 'localhost'}:{self.config.port or 1521}/{self.config.database}"
        )

    async def _open(self) -> None:
        self._client = oracledb.create_pool_async(
            user=self.config.username,
            password=self.config.password_value,
            dsn=self.dsn(),
            min=1,
            max=10,
            increment=1,
        )
        connection = await self._client.acquire()
        try:
            await connection.ping()
        finally:
            await self._client.release(connection)

    async def _close(self) -> None:
        await self._release_transaction()
        await self._client.close(force=True)

    def _classify_connect_error(self, error: BaseException) -> str:
        detail = error.args[0] if getattr(error, "args", None) else None
        if getattr(detail, "full_code", None) in AUTH_ERROR_CODES:
            return ErrorCodes.AUTH_FAILED
        return super()._classify_connect_error(error)

    @asynccontextmanager
    async def _connection(self) -> AsyncIterator[oracledb.AsyncConnection]:
        pool = self._require_client()
        if self._tx_connection is not None:
            yield self._tx_connection
        else:
            async with pool.acquire() as conn:
                conn.autocommit = True
                yield conn

    async def _execute(self, sql: str, params: List[Any]) -> QueryResult:
        async with self._connection() as conn:
            return await self._run(conn, sql, params)

    async def _run(self, conn: oracledb.AsyncConnection, sql: str, params: List[Any]) -> QueryResult:
        with conn.cursor() as cursor:
            await cursor.execute(sql, params)
            if cursor.description is None:
                return QueryResult(affected_rows=cursor.rowcount)
            description = cursor.description
            raw_rows = await cursor.fetchall()

        names = [desc[0] for desc in description]
        columns = [
            Column(name=desc[0], type=oracle_type_name(desc[1]), nullable=desc[6] is not False)
            for desc in description
        ]
        rows = [dict(zip(names, row)) for row in raw_rows]
        return QueryResult(columns=columns, rows=rows, row_count=len(rows))

    def get_placeholder(self, index: int) -> str:
        return f":p{index}"

    async def get_table_data(
        self, table: str, options: Optional[QueryOptions] = None
    ) -> QueryResult:
        options = statements.coerce_options(options)
        sql = statements.build_select(
            table,
            QueryOptions(where=options.where, order_by=options.order_by),
            self.escape_identifier,
        )
        sql += (
            f" OFFSET {int(options.offset or 0)} ROWS"
            f" FETCH NEXT {int(options.limit or DEFAULT_PAGE_SIZE)} ROWS ONLY"
        )
        return await self.execute_query(sql)

    # Transactions

    async def begin_transaction(self) -> QueryResult:
        pool = self._require_client()
        if self._tx_connection is None:
            self._tx_connection = await pool.acquire()
            self._tx_connection.autocommit = False
        result = await self.execute_query("SET TRANSACTION READ WRITE")
        if result.error:
            await self._release_transaction()
        return result

    async def commit_transaction(self) -> QueryResult:
        return await self._finish_transaction(commit=True)

    async def rollback_transaction(self) -> QueryResult:
        return await self._finish_transaction(commit=False)

    async def _finish_transaction(self, commit: bool) -> QueryResult:
        self._require_client()
        connection = self._tx_connection
        if connection is None:
            return QueryResult()
        try:
            if commit:
                await connection.commit()
            else:
                await connection.rollback()
        except Exception as e:
            self.logger.warning("Transaction end failed", error=error_text(e), commit=commit)
            return QueryResult.failure(error_text(e))
        finally:
            await self._release_transaction()
        return QueryResult()

    async def _release_transaction(self) -> None:
        connection, self._tx_connection = self._tx_connection, None
        if connection is not None and self._client is not None:
            await self._client.release(connection)

    # Introspection

    async def get_tables(self, database: Optional[str] = None) -> List[Table]:
        rows = await self._rows(
            "SELECT TABLE_NAME FROM ALL_TABLES WHERE OWNER = :owner ORDER BY TABLE_NAME",
            [self.owner],
        )
        tables = []
        for row in rows:
            name = row["TABLE_NAME"]
            tables.append(Table(
                name=name,
                schema=self.owner,
                columns=await self.get_columns(name),
                indexes=await self.get_indexes(name),
                foreign_keys=await self.get_foreign_keys(name),
            ))
        return tables

    async def get_columns(self, table: str, schema: Optional[str] = None) -> List[Column]:
        owner = (schema or self.owner).upper()
        rows = await self._rows(
            """
            SELECT COLUMN_NAME, DATA_TYPE, NULLABLE, DATA_DEFAULT, IDENTITY_COLUMN
            FROM ALL_TAB_COLUMNS
            WHERE TABLE_NAME = :tbl AND OWNER = :owner
            ORDER BY COLUMN_ID
            """,
            [table.upper(), owner],
        )
        primary_key = {name.upper() for name in await self.get_primary_key(table, schema)}
        return [
            Column(
                name=row["COLUMN_NAME"],
                type=row["DATA_TYPE"],
                nullable=row["NULLABLE"] == "Y",
                primary_key=row["COLUMN_NAME"].upper() in primary_key,
                default_value=row.get("DATA_DEFAULT"),
                auto_increment=row.get("IDENTITY_COLUMN") == "YES",
            )
            for row in rows
        ]

    async def get_indexes(self, table: str, schema: Optional[str] = None) -> List[Index]:
        rows = await self._rows(
            """
            SELECT i.INDEX_NAME, ic.COLUMN_NAME, i.UNIQUENESS
            FROM ALL_INDEXES i
            JOIN ALL_IND_COLUMNS ic ON i.INDEX_NAME = ic.INDEX_NAME AND i.OWNER = ic.INDEX_OWNER
            WHERE i.TABLE_NAME = :tbl AND i.OWNER = :owner
            ORDER BY i.INDEX_NAME, ic.COLUMN_POSITION
            """,
            [table.upper(), (schema or self.owner).upper()],
        )
        indexes: Dict[str, Index] = {}
        for row in rows:
            name = row["INDEX_NAME"]
            if name not in indexes:
                indexes[name] = Index(name=name, unique=row["UNIQUENESS"] == "UNIQUE")
            indexes[name].columns.append(row["COLUMN_NAME"])
        return list(indexes.values())

    async def get_primary_key(self, table: str, schema: Optional[str] = None) -> List[str]:
        rows = await self._rows(
            """
            SELECT cols.COLUMN_NAME
            FROM ALL_CONSTRAINTS cons
            JOIN ALL_CONS_COLUMNS cols
                ON cons.CONSTRAINT_NAME = cols.CONSTRAINT_NAME AND cons.OWNER = cols.OWNER
            WHERE cons.TABLE_NAME = :tbl AND cons.OWNER = :owner AND cons.CONSTRAINT_TYPE = 'P'
            ORDER BY cols.POSITION
            """,
            [table.upper(), (schema or self.owner).upper()],
        )
        return [row["COLUMN_NAME"] for row in rows]

    async def get_foreign_keys(self, table: str, schema: Optional[str] = None) -> List[ForeignKey]:
        rows = await self._rows(
            """
            SELECT
                a.CONSTRAINT_NAME,
                a.COLUMN_NAME,
                c_pk.TABLE_NAME AS REFERENCED_TABLE,
                b.COLUMN_NAME AS REFERENCED_COLUMN,
                c.DELETE_RULE
            FROM ALL_CONS_COLUMNS a
            JOIN ALL_CONSTRAINTS c ON a.CONSTRAINT_NAME = c.CONSTRAINT_NAME AND a.OWNER = c.OWNER
            JOIN ALL_CONSTRAINTS c_pk ON c.R_CONSTRAINT_NAME = c_pk.CONSTRAINT_NAME AND c.R_OWNER = c_pk.OWNER
            JOIN ALL_CONS_COLUMNS b
                ON c_pk.CONSTRAINT_NAME = b.CONSTRAINT_NAME AND c_pk.OWNER = b.OWNER AND a.POSITION = b.POSITION
            WHERE c.CONSTRAINT_TYPE = 'R' AND a.TABLE_NAME = :tbl AND a.OWNER = :owner
            ORDER BY a.CONSTRAINT_NAME, a.POSITION
            """,
            [table.upper(), (schema or self.owner).upper()],
        )
        keys: Dict[str, ForeignKey] = {}
        for row in rows:
            name = row["CONSTRAINT_NAME"]
            if name not in keys:
                keys[name] = ForeignKey(
                    name=name,
                    columns=[],
                    referenced_table=row["REFERENCED_TABLE"],
                    referenced_columns=[],
                    on_delete=row["DELETE_RULE"],
                )
            keys[name].columns.append(row["COLUMN_NAME"])
            keys[name].referenced_columns.append(row["REFERENCED_COLUMN"])
        return list(keys.values())

    async def get_views(self, database: Optional[str] = None) -> List[View]:
        rows = await self._rows(
            "SELECT VIEW_NAME, TEXT FROM ALL_VIEWS WHERE OWNER = :owner ORDER BY VIEW_NAME",
            [self.owner],
        )
        return [View(name=row["VIEW_NAME"], schema=self.owner, definition=row.get("TEXT")) for row in rows]

    async def get_view_definition(self, view_name: str, schema: Optional[str] = None) -> str:
        rows = await self._rows(
            "SELECT TEXT FROM ALL_VIEWS WHERE VIEW_NAME = :view_name AND OWNER = :owner",
            [view_name.upper(), (schema or self.owner).upper()],
        )
        return (rows[0].get("TEXT") or "") if rows else ""

    async def get_stored_procedures(self, database: Optional[str] = None) -> List[StoredProcedure]:
        rows = await self._rows(
            """
            SELECT OBJECT_NAME, OBJECT_TYPE
            FROM ALL_PROCEDURES
            WHERE OWNER = :owner AND OBJECT_TYPE IN ('PROCEDURE', 'FUNCTION')
            ORDER BY OBJECT_NAME
            """,
            [self.owner],
        )
        return [
            StoredProcedure(
                name=row["OBJECT_NAME"],
                schema=self.owner,
                return_type="RETURN" if row["OBJECT_TYPE"] == "FUNCTION" else None,
                language="PL/SQL",
            )
            for row in rows
        ]

    async def get_triggers(
        self, table: Optional[str] = None, schema: Optional[str] = None
    ) -> List[Trigger]:
        sql = """
            SELECT TRIGGER_NAME, TABLE_NAME, TRIGGERING_EVENT, TRIGGER_TYPE, STATUS
            FROM ALL_TRIGGERS
            WHERE OWNER = :owner
        """
        params: List[Any] = [(schema or self.owner).upper()]
        if table:
            sql += " AND TABLE_NAME = :tbl"
            params.append(table.upper())
        sql += " ORDER BY TRIGGER_NAME"

        return [
            Trigger(
                name=row["TRIGGER_NAME"],
                table=row["TABLE_NAME"],
                event=row["TRIGGERING_EVENT"],
                timing=row["TRIGGER_TYPE"],
                enabled=row["STATUS"] == "ENABLED",
            )
            for row in await self._rows(sql, params)
        ]

    async def get_users(self) -> List[User]:
        rows = await self._rows("SELECT USERNAME FROM ALL_USERS ORDER BY USERNAME")
        return [User(name=row["USERNAME"], can_login=True) for row in rows]

    async def get_roles(self) -> List[Role]:
        result = await self.execute_query("SELECT ROLE FROM DBA_ROLES ORDER BY ROLE")
        if result.error:
            result = await self.execute_query(
                "SELECT GRANTED_ROLE AS ROLE FROM USER_ROLE_PRIVS ORDER BY GRANTED_ROLE"
            )
        return [Role(name=row["ROLE"]) for row in result.rows]

    async def get_databases(self) -> List[str]:
        rows = await self._rows("SELECT NAME FROM V$DATABASE")
        return [row["NAME"] for row in rows]

    async def get_schemas(self, database: Optional[str] = None) -> List[str]:
        rows = await self._rows("SELECT USERNAME FROM ALL_USERS ORDER BY USERNAME")
        return [row["USERNAME"] for row in rows]

    async def get_version(self) -> str:
        rows = await self._rows("SELECT BANNER FROM V$VERSION WHERE ROWNUM = 1")
        if rows and rows[0].get("BANNER"):
            return rows[0]["BANNER"]
        rows = await self._rows("SELECT VERSION FROM V$INSTANCE")
        if rows:
            return f"Oracle {rows[0]['VERSION']}"
        return "Oracle (version unknown)"

    async def explain_query(self, sql: str) -> QueryPlan:
        statement_id = f"plan_{uuid.uuid4().hex[:16]}"
        async with self._connection() as conn:
            try:
                await self._run(
                    conn,
                    f"EXPLAIN PLAN SET STATEMENT_ID = {statements.escape_value(statement_id)} FOR {sql}",
                    [],
                )
                result = await self._run(
                    conn,
                    "SELECT PLAN_TABLE_OUTPUT FROM TABLE(DBMS_XPLAN.DISPLAY('PLAN_TABLE', :statement_id, 'ALL'))",
                    [statement_id],
                )
            except Exception as e:
                self.logger.warning("Explain failed", error=error_text(e))
                return QueryPlan(plan=None, text_representation=error_text(e))

        lines = [str(row.get("PLAN_TABLE_OUTPUT") or "") for row in result.rows]
        return QueryPlan(plan=result.rows, text_representation="\n".join(lines))
