"""Apache Cassandra adapter built on cassandra-driver.

The driver is synchronous; cluster setup, statement preparation and
execution run in a worker thread. ``?`` parameters go through prepared
statements, which are cached per statement text.
"""

import asyncio
from typing import Any, Dict, List, Optional

from cassandra import AuthenticationFailed
from cassandra.auth import PlainTextAuthProvider
from cassandra.cluster import Cluster, NoHostAvailable
from cassandra.policies import DCAwareRoundRobinPolicy
from cassandra.query import dict_factory

from ...config.models import DatabaseType
from ...core.exceptions import ErrorCodes
from .. import statements
from ..base import BaseAdapter, build_ssl_context
from ..models import Column, Database, Index, QueryOptions, QueryPlan, QueryResult, Schema, Table, View
from ..types import CassandraTypeCode

DEFAULT_DATACENTER = "datacenter1"
SYSTEM_KEYSPACE = "system"
PRIMARY_KEY_KINDS = ("partition_key", "clustering")


def cql_type_name(cql_type: Any) -> str:
    """Type name of a driver column type, falling back to ``unknown``."""
    name = getattr(cql_type, "typename", None)
    return CassandraTypeCode.from_name(name).type_name


class CassandraAdapter(BaseAdapter):
    """Apache Cassandra adapter."""

    component_name = "CassandraAdapter"
    engine = DatabaseType.CASSANDRA
    display_name = "Cassandra"
    test_query = "SELECT now() FROM system.local"

    def __init__(self, config) -> None:
        super().__init__(config)
        self._cluster: Optional[Cluster] = None
        self._prepared: Dict[str, Any] = {}

    @property
    def keyspace(self) -> str:
        return self.config.database or SYSTEM_KEYSPACE

    def _build_cluster(self) -> Cluster:
        kwargs: Dict[str, Any] = {
            "contact_points": [self.config.host or "localhost"],
            "port": self.config.port or 9042,
            "load_balancing_policy": DCAwareRoundRobinPolicy(
                local_dc=self.config.options.get("local_datacenter", DEFAULT_DATACENTER)
            ),
            "connect_timeout": 10,
        }
        if self.config.username and self.config.password_value:
            kwargs["auth_provider"] = PlainTextAuthProvider(
                username=self.config.username, password=self.config.password_value
            )
        ssl_context = build_ssl_context(self.config.ssl)
        if ssl_context is not None:
            kwargs["ssl_context"] = ssl_context
        return Cluster(**kwargs)

    async def _open(self) -> None:
        self._cluster = self._build_cluster()
        session = await asyncio.to_thread(self._cluster.connect, self.config.database or None)
        session.row_factory = dict_factory
        self._client = session

    async def _close(self) -> None:
        cluster, self._cluster = self._cluster, None
        self._prepared.clear()
        if cluster is not None:
            await asyncio.to_thread(cluster.shutdown)

    async def _discard_partial(self) -> None:
        await super()._discard_partial()
        if self._cluster is not None:
            cluster, self._cluster = self._cluster, None
            await asyncio.to_thread(cluster.shutdown)

    def _classify_connect_error(self, error: BaseException) -> str:
        if isinstance(error, AuthenticationFailed):
            return ErrorCodes.AUTH_FAILED
        if isinstance(error, NoHostAvailable):
            if any(isinstance(e, AuthenticationFailed) for e in error.errors.values()):
                return ErrorCodes.AUTH_FAILED
            return ErrorCodes.CONNECTION_REFUSED
        return super()._classify_connect_error(error)

    def _run(self, sql: str, params: List[Any]) -> QueryResult:
        if params:
            statement = self._prepared.get(sql)
            if statement is None:
                statement = self._prepared[sql] = self._client.prepare(sql)
            result_set = self._client.execute(statement, params)
        else:
            result_set = self._client.execute(sql)

        names = result_set.column_names or []
        types = result_set.column_types or [None] * len(names)
        rows = [dict(row) for row in result_set.all()]
        columns = [
            Column(name=name, type=cql_type_name(cql_type), nullable=True, primary_key=False)
            for name, cql_type in zip(names, types)
        ]
        return QueryResult(columns=columns, rows=rows, row_count=len(rows))

    async def _execute(self, sql: str, params: List[Any]) -> QueryResult:
        return await asyncio.to_thread(self._run, sql, params)

    def get_placeholder(self, index: int) -> str:
        return "?"

    async def get_table_data(
        self, table: str, options: Optional[QueryOptions] = None
    ) -> QueryResult:
        # CQL has no OFFSET; fetch offset + limit rows and drop the head
        options = statements.coerce_options(options)
        offset = int(options.offset or 0)
        sql = f"SELECT * FROM {self.escape_identifier(table)}"
        if options.where:
            sql += f" WHERE {statements.build_where_literals(options.where, self.escape_identifier)}"
        if options.order_by:
            sql += f" ORDER BY {statements.build_order_by(options.order_by, self.escape_identifier)}"
        if options.limit:
            sql += f" LIMIT {offset + int(options.limit)}"
        if options.where:
            sql += " ALLOW FILTERING"

        result = await self.execute_query(sql)
        if offset and result.ok:
            result.rows = result.rows[offset:]
            result.row_count = len(result.rows)
        return result

    async def begin_transaction(self) -> QueryResult:
        return self._unsupported("Transactions")

    async def commit_transaction(self) -> QueryResult:
        return self._unsupported("Transactions")

    async def rollback_transaction(self) -> QueryResult:
        return self._unsupported("Transactions")

    # Introspection

    async def get_schema(self) -> Schema:
        databases = []
        for keyspace in await self.get_databases():
            databases.append(Database(
                name=keyspace,
                tables=await self.get_tables(keyspace),
                views=await self.get_views(keyspace),
            ))
        return Schema(databases=databases)

    async def get_tables(self, database: Optional[str] = None) -> List[Table]:
        keyspace = database or self.keyspace
        rows = await self._rows(
            "SELECT table_name FROM system_schema.tables WHERE keyspace_name = ?", [keyspace]
        )
        tables = []
        for row in rows:
            name = row["table_name"]
            tables.append(Table(
                name=name,
                schema=keyspace,
                columns=await self.get_columns(name, keyspace),
                indexes=await self.get_indexes(name, keyspace),
            ))
        return tables

    async def get_columns(self, table: str, schema: Optional[str] = None) -> List[Column]:
        rows = await self._rows(
            "SELECT column_name, type, kind, position FROM system_schema.columns "
            "WHERE keyspace_name = ? AND table_name = ?",
            [schema or self.keyspace, table],
        )
        return [
            Column(
                name=row["column_name"],
                type=row["type"],
                nullable=row["kind"] not in PRIMARY_KEY_KINDS,
                primary_key=row["kind"] in PRIMARY_KEY_KINDS,
            )
            for row in rows
        ]

    async def get_indexes(self, table: str, schema: Optional[str] = None) -> List[Index]:
        rows = await self._rows(
            "SELECT index_name, options FROM system_schema.indexes "
            "WHERE keyspace_name = ? AND table_name = ?",
            [schema or self.keyspace, table],
        )
        indexes = []
        for row in rows:
            target = (row.get("options") or {}).get("target")
            indexes.append(Index(name=row["index_name"] or "unnamed", columns=[target] if target else []))
        return indexes

    async def get_primary_key(self, table: str, schema: Optional[str] = None) -> List[str]:
        rows = await self._rows(
            "SELECT column_name, kind, position FROM system_schema.columns "
            "WHERE keyspace_name = ? AND table_name = ?",
            [schema or self.keyspace, table],
        )
        keys = [row for row in rows if row["kind"] in PRIMARY_KEY_KINDS]
        # partition key columns come before clustering columns
        keys.sort(key=lambda row: (PRIMARY_KEY_KINDS.index(row["kind"]), row["position"]))
        return [row["column_name"] for row in keys]

    async def get_views(self, database: Optional[str] = None) -> List[View]:
        keyspace = database or self.keyspace
        rows = await self._rows(
            "SELECT view_name, base_table_name, where_clause FROM system_schema.views "
            "WHERE keyspace_name = ?",
            [keyspace],
        )
        return [
            View(
                name=row["view_name"],
                schema=keyspace,
                definition=f"SELECT * FROM {row['base_table_name']} WHERE {row['where_clause']}",
            )
            for row in rows
        ]

    async def get_databases(self) -> List[str]:
        rows = await self._rows("SELECT keyspace_name FROM system_schema.keyspaces")
        return sorted(row["keyspace_name"] for row in rows)

    async def get_schemas(self, database: Optional[str] = None) -> List[str]:
        return await self.get_databases()

    async def get_version(self) -> str:
        rows = await self._rows("SELECT release_version FROM system.local")
        if not rows:
            return "Unknown"
        return f"Cassandra {rows[0]['release_version']}"

    async def explain_query(self, sql: str) -> QueryPlan:
        self._require_client()
        return QueryPlan(plan=None, text_representation="Query plans are not available for Cassandra")
