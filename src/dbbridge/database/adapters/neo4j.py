"""Neo4j adapter built on the official async driver.

Labels are presented as tables and node properties as columns. Positional
parameters are passed to Cypher as ``$p0``, ``$p1``, ...
"""

from typing import Any, Dict, List, Optional

from neo4j import AsyncGraphDatabase, basic_auth
from neo4j.exceptions import AuthError
from neo4j.graph import Node, Path, Relationship

from ...config.models import DatabaseType
from ...core.exceptions import ErrorCodes
from .. import statements
from ..base import BaseAdapter
from ..models import Column, Database, Index, QueryOptions, QueryPlan, QueryResult, Schema, Table

DEFAULT_DATABASE = "neo4j"

quote = statements.quote_with("`")


def unwrap(value: Any) -> Any:
    """Plain Python value of a Cypher result value."""
    if isinstance(value, Node):
        return {**{k: unwrap(v) for k, v in value.items()}, "_labels": sorted(value.labels)}
    if isinstance(value, Relationship):
        return {**{k: unwrap(v) for k, v in value.items()}, "_type": value.type}
    if isinstance(value, Path):
        return {
            "nodes": [unwrap(node) for node in value.nodes],
            "relationships": [unwrap(rel) for rel in value.relationships],
        }
    if isinstance(value, (list, tuple)):
        return [unwrap(item) for item in value]
    if isinstance(value, dict):
        return {k: unwrap(v) for k, v in value.items()}
    if hasattr(value, "iso_format"):
        return value.iso_format()
    return value


def cypher_type(value: Any) -> str:
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "boolean"
    if isinstance(value, int):
        return "integer"
    if isinstance(value, float):
        return "float"
    if isinstance(value, str):
        return "string"
    if isinstance(value, Node):
        return "node"
    if isinstance(value, Relationship):
        return "relationship"
    if isinstance(value, Path):
        return "path"
    if isinstance(value, (list, tuple)):
        return "list"
    if isinstance(value, dict):
        return "map"
    return type(value).__name__


class Neo4jAdapter(BaseAdapter):
    """Neo4j adapter."""

    component_name = "Neo4jAdapter"
    engine = DatabaseType.NEO4J
    display_name = "Neo4j"
    test_query = "RETURN 1"

    def __init__(self, config) -> None:
        super().__init__(config)
        self._tx_session = None
        self._tx = None

    def uri(self) -> str:
        if self.config.connection_string_value:
            return self.config.connection_string_value
        scheme = self.config.neo4j_scheme or "bolt"
        return f"{scheme}://{self.config.host or 'localhost'}:{self.config.port or 7687}"

    async def _open(self) -> None:
        auth = None
        if self.config.username and self.config.password_value:
            auth = basic_auth(self.config.username, self.config.password_value)
        self._client = AsyncGraphDatabase.driver(self.uri(), auth=auth)
        await self._client.verify_connectivity()

    async def _close(self) -> None:
        await self._release_transaction()
        await self._client.close()

    def _classify_connect_error(self, error: BaseException) -> str:
        if isinstance(error, AuthError):
            return ErrorCodes.AUTH_FAILED
        return super()._classify_connect_error(error)

    def _session(self):
        return self._client.session(database=self.config.database or None)

    async def _run(self, runner, cypher: str, parameters: Dict[str, Any]) -> QueryResult:
        result = await runner.run(cypher, parameters)
        records = [record async for record in result]
        summary = await result.consume()

        rows = [{key: unwrap(record[key]) for key in record.keys()} for record in records]
        columns = []
        if records:
            first = records[0]
            columns = [
                Column(name=key, type=cypher_type(first[key]), nullable=True, primary_key=False)
                for key in first.keys()
            ]

        counters = summary.counters
        changed = (
            counters.nodes_created + counters.nodes_deleted + counters.properties_set
            + counters.relationships_created + counters.relationships_deleted
        )
        return QueryResult(
            columns=columns,
            rows=rows,
            row_count=len(rows),
            affected_rows=changed or None,
        )

    async def _execute(self, sql: str, params: List[Any]) -> QueryResult:
        parameters = {f"p{i}": value for i, value in enumerate(params)}
        if self._tx is not None:
            return await self._run(self._tx, sql, parameters)
        async with self._session() as session:
            return await self._run(session, sql, parameters)

    def escape_identifier(self, name: str) -> str:
        return quote(name)

    def get_placeholder(self, index: int) -> str:
        return f"$p{index - 1}"

    async def _cypher(self, operation: str, cypher: str, parameters: Dict[str, Any]) -> QueryResult:
        async def run() -> QueryResult:
            if self._tx is not None:
                return await self._run(self._tx, cypher, parameters)
            async with self._session() as session:
                return await self._run(session, cypher, parameters)

        return await self._measured(operation, run)

    @staticmethod
    def _match(prefix: str, where: Dict[str, Any]):
        clause = " AND ".join(f"n.{quote(key)} = ${prefix}{n}" for n, key in enumerate(where))
        return clause, {f"{prefix}{n}": value for n, value in enumerate(where.values())}

    # Data access

    async def get_table_data(
        self, table: str, options: Optional[QueryOptions] = None
    ) -> QueryResult:
        options = statements.coerce_options(options)
        cypher = f"MATCH (n:{quote(table)})"
        parameters: Dict[str, Any] = {}
        if options.where:
            clause, parameters = self._match("w", options.where)
            cypher += f" WHERE {clause}"
        cypher += " RETURN n"
        if options.order_by:
            cypher += " ORDER BY " + ", ".join(
                f"n.{quote(order.column)} {'DESC' if str(order.direction).upper() == 'DESC' else 'ASC'}"
                for order in options.order_by
            )
        if options.offset:
            cypher += f" SKIP {int(options.offset)}"
        if options.limit:
            cypher += f" LIMIT {int(options.limit)}"

        result = await self._cypher("get_table_data", cypher, parameters)
        if result.ok:
            result.rows = [row["n"] for row in result.rows]
            result.columns = statements.infer_columns(
                result.rows, cypher_type, sample_size=self.sample_size,
                nullable=lambda name, value: True,
            )
        return result

    async def insert_row(self, table: str, data: Dict[str, Any]) -> QueryResult:
        if not data:
            return QueryResult.failure("insert_row requires at least one column")
        return await self._cypher(
            "insert_row", f"CREATE (n:{quote(table)}) SET n = $props RETURN n", {"props": dict(data)}
        )

    async def update_row(
        self, table: str, data: Dict[str, Any], where: Dict[str, Any]
    ) -> QueryResult:
        if not data or not where:
            return QueryResult.failure("update_row requires data and at least one where condition")
        clause, parameters = self._match("w", where)
        assignments = ", ".join(f"n.{quote(key)} = $s{n}" for n, key in enumerate(data))
        parameters.update({f"s{n}": value for n, value in enumerate(data.values())})
        return await self._cypher(
            "update_row",
            f"MATCH (n:{quote(table)}) WHERE {clause} SET {assignments} RETURN n",
            parameters,
        )

    async def delete_row(self, table: str, where: Dict[str, Any]) -> QueryResult:
        if not where:
            return QueryResult.failure("delete_row requires at least one where condition")
        clause, parameters = self._match("w", where)
        return await self._cypher(
            "delete_row", f"MATCH (n:{quote(table)}) WHERE {clause} DETACH DELETE n", parameters
        )

    # Transactions

    async def begin_transaction(self) -> QueryResult:
        self._require_client()
        if self._tx is not None:
            return QueryResult.failure("A transaction is already in progress")

        async def run() -> QueryResult:
            session = self._session()
            try:
                self._tx = await session.begin_transaction()
            except Exception:
                await session.close()
                raise
            self._tx_session = session
            return QueryResult()

        return await self._measured("begin_transaction", run)

    async def commit_transaction(self) -> QueryResult:
        return await self._finish_transaction("commit")

    async def rollback_transaction(self) -> QueryResult:
        return await self._finish_transaction("rollback")

    async def _finish_transaction(self, action: str) -> QueryResult:
        self._require_client()
        if self._tx is None:
            return QueryResult.failure("No transaction in progress")

        async def run() -> QueryResult:
            try:
                await getattr(self._tx, action)()
            finally:
                await self._release_transaction()
            return QueryResult()

        return await self._measured(f"{action}_transaction", run)

    async def _release_transaction(self) -> None:
        session, self._tx_session, self._tx = self._tx_session, None, None
        if session is not None:
            await session.close()

    # Introspection

    async def get_schema(self) -> Schema:
        name = self.config.database or DEFAULT_DATABASE
        return Schema(databases=[Database(name=name, tables=await self.get_tables())])

    async def get_tables(self, database: Optional[str] = None) -> List[Table]:
        rows = await self._rows("CALL db.labels() YIELD label RETURN label ORDER BY label")
        return [Table(name=row["label"], columns=await self.get_columns(row["label"])) for row in rows]

    async def get_columns(self, table: str, schema: Optional[str] = None) -> List[Column]:
        rows = await self._rows(
            f"MATCH (n:{quote(table)}) RETURN properties(n) AS props LIMIT {int(self.sample_size)}"
        )
        return statements.infer_columns(
            (row["props"] for row in rows),
            cypher_type,
            sample_size=self.sample_size,
            nullable=lambda name, value: True,
        )

    async def get_indexes(self, table: str, schema: Optional[str] = None) -> List[Index]:
        rows = await self._rows("SHOW INDEXES")
        return [
            Index(
                name=str(row.get("name") or "unnamed"),
                columns=list(row.get("properties") or []),
                unique=str(row.get("uniqueness") or "").upper() == "UNIQUE"
                or row.get("owningConstraint") is not None,
            )
            for row in rows
            if not table or table in (row.get("labelsOrTypes") or [])
        ]

    async def get_primary_key(self, table: str, schema: Optional[str] = None) -> List[str]:
        return []

    async def get_databases(self) -> List[str]:
        rows = await self._rows("SHOW DATABASES")
        if not rows:
            return [self.config.database or DEFAULT_DATABASE]
        return sorted({str(row["name"]) for row in rows})

    async def get_schemas(self, database: Optional[str] = None) -> List[str]:
        return [database or self.config.database or DEFAULT_DATABASE]

    async def get_version(self) -> str:
        rows = await self._rows(
            "CALL dbms.components() YIELD name, versions RETURN name, versions[0] AS version"
        )
        if not rows:
            return "Unknown"
        return f"{rows[0]['name']} {rows[0]['version']}"

    async def explain_query(self, sql: str) -> QueryPlan:
        self._require_client()

        async def run() -> QueryResult:
            async with self._session() as session:
                result = await session.run(f"EXPLAIN {sql}")
                summary = await result.consume()
            return QueryResult(rows=[summary.plan or {}])

        result = await self._measured("explain_query", run)
        if result.error:
            return QueryPlan(plan=None, text_representation=result.error)
        plan = result.rows[0]
        return QueryPlan(plan=plan, text_representation=_render_plan(plan))


def _render_plan(plan: Dict[str, Any], depth: int = 0) -> str:
    if not plan:
        return ""
    arguments = plan.get("args") or plan.get("arguments") or {}
    details = arguments.get("Details") or arguments.get("details") or ""
    line = "  " * depth + str(plan.get("operatorType") or plan.get("operator_type") or "")
    if details:
        line += f" ({details})"
    children = plan.get("children") or []
    return "\n".join([line] + [_render_plan(child, depth + 1) for child in children])
