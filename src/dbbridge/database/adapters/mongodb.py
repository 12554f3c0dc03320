"""MongoDB adapter built on pymongo's asyncio client.

Queries are JSON envelopes naming a collection and an operation::

    {"collection": "users", "operation": "find", "filter": {"age": 30},
     "options": {"limit": 10, "skip": 0}}
"""

import json
from datetime import datetime
from typing import Any, Dict, List, Mapping, Optional
from urllib.parse import quote_plus

from pymongo import ASCENDING, DESCENDING, AsyncMongoClient
from pymongo.errors import OperationFailure

from ...config.models import DatabaseType
from ...core.exceptions import ErrorCodes, QueryError
from .. import statements
from ..base import BaseAdapter, error_text
from ..models import Column, Index, QueryOptions, QueryPlan, QueryResult, Table

INVALID_JSON_MESSAGE = (
    'Invalid JSON query. Expected format: {"collection": "name", "operation": "find", "filter": {}}'
)
DEFAULT_FIND_LIMIT = 100


def mongo_type(value: Any) -> str:
    """Type label of a BSON value as shown in inferred columns."""
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "boolean"
    if isinstance(value, (int, float)):
        return "number"
    if isinstance(value, str):
        return "string"
    if isinstance(value, list):
        return "array"
    if isinstance(value, datetime):
        return "date"
    if type(value).__module__.startswith("bson"):
        return type(value).__name__
    if isinstance(value, Mapping):
        return "object"
    return type(value).__name__


class MongoDBAdapter(BaseAdapter):
    """MongoDB adapter."""

    component_name = "MongoDBAdapter"
    engine = DatabaseType.MONGODB
    display_name = "MongoDB"

    def __init__(self, config) -> None:
        super().__init__(config)
        self._db = None

    def connection_uri(self) -> str:
        if self.config.connection_string_value:
            return self.config.connection_string_value
        auth = ""
        if self.config.username and self.config.password_value:
            auth = f"{quote_plus(self.config.username)}:{quote_plus(self.config.password_value)}@"
        host = self.config.host or "localhost"
        port = self.config.port or 27017
        return f"mongodb://{auth}{host}:{port}/{self.config.database}"

    async def _open(self) -> None:
        kwargs: Dict[str, Any] = {"serverSelectionTimeoutMS": 10000}
        if self.config.ssl_enabled:
            kwargs["tls"] = True
        self._client = AsyncMongoClient(self.connection_uri(), **kwargs)
        await self._client.admin.command("ping")
        self._db = self._client[self.config.database or "test"]

    async def _close(self) -> None:
        self._db = None
        await self._client.close()

    def _classify_connect_error(self, error: BaseException) -> str:
        if isinstance(error, OperationFailure) and error.code == 18:
            return ErrorCodes.AUTH_FAILED
        return super()._classify_connect_error(error)

    def _columns(self, documents: List[Mapping[str, Any]]) -> List[Column]:
        columns = statements.infer_columns(documents, mongo_type, sample_size=self.sample_size)
        for column in columns:
            column.primary_key = column.name == "_id"
        return columns

    def _result(self, documents: List[Dict[str, Any]], affected_rows: Optional[int] = None) -> QueryResult:
        return QueryResult(
            columns=self._columns(documents),
            rows=documents,
            row_count=len(documents),
            affected_rows=affected_rows,
        )

    def _parse(self, query: str) -> Dict[str, Any]:
        try:
            envelope = json.loads(query)
        except ValueError:
            raise QueryError(INVALID_JSON_MESSAGE, code=ErrorCodes.INVALID_COMMAND)
        if not isinstance(envelope, dict) or not envelope.get("collection"):
            raise QueryError(INVALID_JSON_MESSAGE, code=ErrorCodes.INVALID_COMMAND)
        return envelope

    async def _execute(self, sql: str, params: List[Any]) -> QueryResult:
        envelope = self._parse(sql)
        collection = self._db[envelope["collection"]]
        operation = envelope.get("operation") or "find"
        query_filter = envelope.get("filter") or {}
        options = envelope.get("options") or {}

        if operation == "find":
            cursor = (
                collection.find(query_filter)
                .skip(int(options.get("skip") or 0))
                .limit(int(options.get("limit") or DEFAULT_FIND_LIMIT))
            )
            return self._result(await cursor.to_list())
        if operation == "aggregate":
            cursor = await collection.aggregate(envelope.get("pipeline") or [])
            return self._result(await cursor.to_list())
        if operation == "insertOne":
            inserted = await collection.insert_one(envelope.get("document") or {})
            return self._result([{"insertedId": inserted.inserted_id}], 1 if inserted.acknowledged else 0)
        if operation == "insertMany":
            inserted = await collection.insert_many(envelope.get("documents") or [])
            return self._result([{"insertedIds": inserted.inserted_ids}], len(inserted.inserted_ids))
        if operation in ("updateOne", "updateMany"):
            update = collection.update_one if operation == "updateOne" else collection.update_many
            updated = await update(query_filter, envelope.get("update") or {})
            return self._result(
                [{"matchedCount": updated.matched_count, "modifiedCount": updated.modified_count}],
                updated.modified_count,
            )
        if operation in ("deleteOne", "deleteMany"):
            delete = collection.delete_one if operation == "deleteOne" else collection.delete_many
            deleted = await delete(query_filter)
            return self._result([{"deletedCount": deleted.deleted_count}], deleted.deleted_count)
        if operation == "count":
            return self._result([{"count": await collection.count_documents(query_filter)}])

        raise QueryError(f"Unknown operation: {operation}", code=ErrorCodes.INVALID_COMMAND)

    def escape_identifier(self, name: str) -> str:
        return name

    # Data access

    async def get_table_data(
        self, table: str, options: Optional[QueryOptions] = None
    ) -> QueryResult:
        options = statements.coerce_options(options)

        async def run() -> QueryResult:
            cursor = self._db[table].find(dict(options.where))
            if options.order_by:
                cursor = cursor.sort([
                    (order.column, DESCENDING if str(order.direction).upper() == "DESC" else ASCENDING)
                    for order in options.order_by
                ])
            cursor = cursor.skip(int(options.offset or 0)).limit(int(options.limit or DEFAULT_FIND_LIMIT))
            return self._result(await cursor.to_list())

        return await self._measured("get_table_data", run)

    async def insert_row(self, table: str, data: Dict[str, Any]) -> QueryResult:
        async def run() -> QueryResult:
            inserted = await self._db[table].insert_one(dict(data))
            return QueryResult(
                rows=[{"insertedId": inserted.inserted_id}],
                affected_rows=1 if inserted.acknowledged else 0,
            )

        return await self._measured("insert_row", run)

    async def update_row(
        self, table: str, data: Dict[str, Any], where: Dict[str, Any]
    ) -> QueryResult:
        if not data or not where:
            return QueryResult.failure("update_row requires data and at least one where condition")

        async def run() -> QueryResult:
            updated = await self._db[table].update_one(dict(where), {"$set": dict(data)})
            return QueryResult(affected_rows=updated.modified_count)

        return await self._measured("update_row", run)

    async def delete_row(self, table: str, where: Dict[str, Any]) -> QueryResult:
        if not where:
            return QueryResult.failure("delete_row requires at least one where condition")

        async def run() -> QueryResult:
            deleted = await self._db[table].delete_one(dict(where))
            return QueryResult(affected_rows=deleted.deleted_count)

        return await self._measured("delete_row", run)

    async def begin_transaction(self) -> QueryResult:
        return self._unsupported("Transactions")

    async def commit_transaction(self) -> QueryResult:
        return self._unsupported("Transactions")

    async def rollback_transaction(self) -> QueryResult:
        return self._unsupported("Transactions")

    # Introspection

    async def get_tables(self, database: Optional[str] = None) -> List[Table]:
        self._require_client()
        tables = []
        for name in sorted(await self._db.list_collection_names()):
            tables.append(Table(
                name=name,
                columns=await self.get_columns(name),
                indexes=await self.get_indexes(name),
                row_count=await self._db[name].estimated_document_count(),
            ))
        return tables

    async def get_columns(self, table: str, schema: Optional[str] = None) -> List[Column]:
        self._require_client()
        samples = await self._db[table].find().limit(self.sample_size).to_list()
        if not samples:
            return [Column(name="_id", type="ObjectId", nullable=False, primary_key=True)]
        key_type = mongo_type(samples[0].get("_id")) if "_id" in samples[0] else "ObjectId"
        return statements.infer_columns(
            samples, mongo_type, sample_size=self.sample_size, key_field="_id", key_type=key_type
        )

    async def get_indexes(self, table: str, schema: Optional[str] = None) -> List[Index]:
        self._require_client()
        info = await self._db[table].index_information()
        return [
            Index(
                name=name,
                columns=[field for field, _ in spec.get("key", [])],
                unique=bool(spec.get("unique")),
            )
            for name, spec in info.items()
            if name != "_id_"
        ]

    async def get_primary_key(self, table: str, schema: Optional[str] = None) -> List[str]:
        return ["_id"]

    async def get_databases(self) -> List[str]:
        self._require_client()
        return await self._client.list_database_names()

    async def get_version(self) -> str:
        self._require_client()
        info = await self._client.server_info()
        return info.get("version") or "Unknown"

    async def explain_query(self, sql: str) -> QueryPlan:
        self._require_client()
        try:
            envelope = self._parse(sql)
            collection = self._db[envelope["collection"]]
            if (envelope.get("operation") or "find") == "aggregate":
                plan = await self._db.command(
                    "explain",
                    {"aggregate": envelope["collection"], "pipeline": envelope.get("pipeline") or [], "cursor": {}},
                )
            else:
                plan = await collection.find(envelope.get("filter") or {}).explain()
        except Exception as e:
            return QueryPlan(plan=None, text_representation=error_text(e))
        return QueryPlan(plan=plan, text_representation=json.dumps(plan, indent=2, default=str))
