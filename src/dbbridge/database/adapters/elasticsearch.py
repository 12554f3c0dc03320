"""Elasticsearch adapter built on the async client.

``execute_query`` accepts either a JSON search request, optionally naming
its target with an ``index`` key, or an Elasticsearch SQL statement.
"""

import json
from typing import Any, Dict, List, Mapping, Optional

from elasticsearch import AsyncElasticsearch, AuthenticationException

from ...config.models import DatabaseType
from ...core.exceptions import ErrorCodes
from .. import statements
from ..base import BaseAdapter, error_text
from ..models import Column, Database, Index, QueryOptions, QueryPlan, QueryResult, Schema, Table

DEFAULT_INDEX = "_all"
DEFAULT_PAGE_SIZE = 100
DATABASE_NAME = "default"


def es_type(value: Any) -> str:
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "boolean"
    if isinstance(value, int):
        return "long"
    if isinstance(value, float):
        return "double"
    if isinstance(value, str):
        return "text"
    if isinstance(value, list):
        return "nested"
    if isinstance(value, Mapping):
        return "object"
    return type(value).__name__


def flatten_mapping(properties: Mapping[str, Any], prefix: str = "") -> List[Column]:
    """Leaf fields of an index mapping, with dotted names for object fields."""
    columns = []
    for name, field in properties.items():
        full_name = f"{prefix}.{name}" if prefix else name
        if "properties" in field:
            columns.extend(flatten_mapping(field["properties"], full_name))
        else:
            columns.append(Column(name=full_name, type=field.get("type", "object")))
    return columns


def parse_search(query: str) -> Optional[Dict[str, Any]]:
    """Search request of a JSON query, or ``None`` for anything else."""
    try:
        parsed = json.loads(query)
    except ValueError:
        return None
    return parsed if isinstance(parsed, dict) else None


def _exact_term(field: str, value: Any) -> Dict[str, Any]:
    if field == "_id":
        return {"ids": {"values": [str(value)]}}
    if isinstance(value, str):
        # dynamic mappings index strings as text with a .keyword sub-field
        return {"bool": {"should": [
            {"term": {field: value}},
            {"term": {f"{field}.keyword": value}},
        ], "minimum_should_match": 1}}
    return {"term": {field: value}}


def _exact_filter(where: Mapping[str, Any]) -> Dict[str, Any]:
    """Equality-only filter; values are compared as exact terms, never analyzed."""
    return {"bool": {"filter": [_exact_term(field, value) for field, value in where.items()]}}


class ElasticsearchAdapter(BaseAdapter):
    """Elasticsearch adapter."""

    component_name = "ElasticsearchAdapter"
    engine = DatabaseType.ELASTICSEARCH
    display_name = "Elasticsearch"

    def node_url(self) -> str:
        if self.config.connection_string_value:
            return self.config.connection_string_value
        scheme = "https" if self.config.ssl_enabled else "http"
        return f"{scheme}://{self.config.host or 'localhost'}:{self.config.port or 9200}"

    async def _open(self) -> None:
        kwargs: Dict[str, Any] = {"request_timeout": 10}
        if self.config.username and self.config.password_value:
            kwargs["basic_auth"] = (self.config.username, self.config.password_value)
        if self.config.ssl_enabled:
            kwargs["verify_certs"] = False
            kwargs["ssl_show_warn"] = False

        self._client = AsyncElasticsearch(self.node_url(), **kwargs)
        if not await self._client.ping():
            raise ConnectionError(f"No response from {self.node_url()}")

    async def _close(self) -> None:
        await self._client.close()

    def _classify_connect_error(self, error: BaseException) -> str:
        if isinstance(error, AuthenticationException):
            return ErrorCodes.AUTH_FAILED
        return super()._classify_connect_error(error)

    async def ping(self) -> bool:
        self._require_client()
        return bool(await self._client.ping())

    def _hits_result(self, response: Mapping[str, Any]) -> QueryResult:
        rows = [
            {"_id": hit.get("_id"), "_index": hit.get("_index"), "_score": hit.get("_score"), **(hit.get("_source") or {})}
            for hit in response.get("hits", {}).get("hits", [])
        ]
        columns = statements.infer_columns(
            rows, es_type, sample_size=len(rows) or 1, nullable=lambda name, value: True
        )
        for column in columns:
            column.primary_key = column.name == "_id"
        return QueryResult(columns=columns, rows=rows, row_count=len(rows))

    async def _execute(self, sql: str, params: List[Any]) -> QueryResult:
        search = parse_search(sql)
        if search is not None:
            index = search.pop("index", None) or DEFAULT_INDEX
            body = search.get("body") or search
            response = await self._client.search(index=index, body=body)
            return self._hits_result(response)

        request: Dict[str, Any] = {"query": sql}
        if params:
            request["params"] = list(params)
        response = await self._client.sql.query(**request)
        sql_columns = response.get("columns") or []
        names = [column["name"] for column in sql_columns]
        rows = [dict(zip(names, values)) for values in response.get("rows") or []]
        columns = [Column(name=c["name"], type=c["type"]) for c in sql_columns]
        return QueryResult(columns=columns, rows=rows, row_count=len(rows))

    def escape_identifier(self, name: str) -> str:
        return name

    def get_placeholder(self, index: int) -> str:
        return "?"

    # Data access

    async def get_table_data(
        self, table: str, options: Optional[QueryOptions] = None
    ) -> QueryResult:
        options = statements.coerce_options(options)
        body: Dict[str, Any] = {
            "size": options.limit or DEFAULT_PAGE_SIZE,
            "from": options.offset or 0,
        }
        if options.where:
            body["query"] = _exact_filter(options.where)
        if options.order_by:
            body["sort"] = [
                {order.column: {"order": "desc" if str(order.direction).upper() == "DESC" else "asc"}}
                for order in options.order_by
            ]

        async def run() -> QueryResult:
            return self._hits_result(await self._client.search(index=table, body=body))

        return await self._measured("get_table_data", run)

    async def insert_row(self, table: str, data: Dict[str, Any]) -> QueryResult:
        async def run() -> QueryResult:
            response = await self._client.index(index=table, document=dict(data), refresh=True)
            return QueryResult(
                rows=[{"_id": response["_id"], "result": response["result"]}],
                row_count=1,
                affected_rows=1,
            )

        return await self._measured("insert_row", run)

    async def update_row(
        self, table: str, data: Dict[str, Any], where: Dict[str, Any]
    ) -> QueryResult:
        if not data or not where:
            return QueryResult.failure("update_row requires data and at least one where condition")

        async def run() -> QueryResult:
            source = "; ".join(f"ctx._source['{key}'] = params.p{n}" for n, key in enumerate(data))
            response = await self._client.update_by_query(
                index=table,
                query=_exact_filter(where),
                script={
                    "source": source,
                    "lang": "painless",
                    "params": {f"p{n}": value for n, value in enumerate(data.values())},
                },
                refresh=True,
            )
            return QueryResult(affected_rows=int(response.get("updated") or 0))

        return await self._measured("update_row", run)

    async def delete_row(self, table: str, where: Dict[str, Any]) -> QueryResult:
        if not where:
            return QueryResult.failure("delete_row requires at least one where condition")

        async def run() -> QueryResult:
            response = await self._client.delete_by_query(
                index=table, query=_exact_filter(where), refresh=True
            )
            return QueryResult(affected_rows=int(response.get("deleted") or 0))

        return await self._measured("delete_row", run)

    async def begin_transaction(self) -> QueryResult:
        return self._unsupported("Transactions")

    async def commit_transaction(self) -> QueryResult:
        return self._unsupported("Transactions")

    async def rollback_transaction(self) -> QueryResult:
        return self._unsupported("Transactions")

    # Introspection

    async def get_schema(self) -> Schema:
        tables = await self.get_tables()
        for table in tables:
            table.columns = await self.get_columns(table.name)
        return Schema(databases=[Database(name=DATABASE_NAME, tables=tables)])

    async def get_tables(self, database: Optional[str] = None) -> List[Table]:
        self._require_client()
        response = await self._client.cat.indices(format="json")
        tables = []
        for entry in response:
            name = entry.get("index")
            if not name or name.startswith("."):
                continue
            count = entry.get("docs.count")
            tables.append(Table(name=name, row_count=int(count) if count not in (None, "") else 0))
        return sorted(tables, key=lambda table: table.name)

    async def get_columns(self, table: str, schema: Optional[str] = None) -> List[Column]:
        self._require_client()
        columns = [Column(name="_id", type="keyword", nullable=False, primary_key=True)]
        try:
            response = await self._client.indices.get_mapping(index=table)
        except Exception as e:
            self.logger.warning("Mapping lookup failed", index=table, error=error_text(e))
            return columns

        entry = response.get(table) or next(iter(response.values()), {})
        properties = (entry.get("mappings") or {}).get("properties") or {}
        return columns + flatten_mapping(properties)

    async def get_indexes(self, table: str, schema: Optional[str] = None) -> List[Index]:
        self._require_client()
        try:
            response = await self._client.cat.aliases(format="json")
        except Exception as e:
            self.logger.warning("Alias lookup failed", index=table, error=error_text(e))
            return []
        return [
            Index(name=entry.get("alias") or "unnamed", columns=[entry["index"]])
            for entry in response
            if entry.get("index") == table
        ]

    async def get_primary_key(self, table: str, schema: Optional[str] = None) -> List[str]:
        return ["_id"]

    async def get_databases(self) -> List[str]:
        return [DATABASE_NAME]

    async def get_schemas(self, database: Optional[str] = None) -> List[str]:
        return [DATABASE_NAME]

    async def get_version(self) -> str:
        self._require_client()
        info = await self._client.info()
        number = (info.get("version") or {}).get("number")
        return f"Elasticsearch {number}" if number else "Unknown"

    async def explain_query(self, sql: str) -> QueryPlan:
        self._require_client()
        search = parse_search(sql)
        try:
            if search is None:
                plan = dict(await self._client.sql.translate(query=sql))
            else:
                index = search.pop("index", None) or DEFAULT_INDEX
                body = search.get("body") or search
                plan = dict(await self._client.indices.validate_query(
                    index=index, query=body.get("query") or {"match_all": {}}, explain=True
                ))
        except Exception as e:
            return QueryPlan(plan=None, text_representation=error_text(e))
        return QueryPlan(plan=plan, text_representation=json.dumps(plan, indent=2, default=str))
