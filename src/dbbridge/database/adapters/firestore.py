"""Cloud Firestore adapter.

``execute_query`` accepts a collection name or a small chained query
language::

    users.where('age', '>=', 21).where('active', '==', true).limit(10).offset(20)
"""

import inspect
import json
import re
from datetime import datetime
from typing import Any, Dict, List, Mapping, Optional, Tuple

from google.cloud.firestore import AsyncClient
from google.cloud.firestore_v1.base_query import FieldFilter
from google.oauth2 import service_account

from ...config.models import DatabaseType
from ...core.exceptions import ErrorCodes, QueryError
from .. import statements
from ..base import BaseAdapter
from ..models import Column, Database, Index, QueryOptions, QueryResult, Schema, Table

_COLLECTION = re.compile(r"^([A-Za-z_][A-Za-z0-9_-]*)")
_WHERE = re.compile(r"""\.where\(\s*['"]([^'"]+)['"]\s*,\s*['"]([^'"]+)['"]\s*,\s*(.+?)\s*\)""")
_LIMIT = re.compile(r"\.limit\(\s*(\d+)\s*\)")
_OFFSET = re.compile(r"\.offset\(\s*(\d+)\s*\)")
_NUMBER = re.compile(r"^-?\d+(\.\d+)?$")
_QUOTED = re.compile(r"""^['"](.*)['"]$""")

DEFAULT_PAGE_SIZE = 100


def firestore_type(value: Any) -> str:
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "boolean"
    if isinstance(value, (int, float)):
        return "number"
    if isinstance(value, str):
        return "string"
    if isinstance(value, datetime):
        return "timestamp"
    if isinstance(value, (list, tuple)):
        return "array"
    if isinstance(value, Mapping):
        return "map"
    return type(value).__name__


def parse_literal(raw: str) -> Any:
    """Value of a literal written inside ``.where(...)``."""
    text = raw.strip()
    if text == "true":
        return True
    if text == "false":
        return False
    if text == "null":
        return None
    if _NUMBER.match(text):
        return float(text) if "." in text else int(text)
    quoted = _QUOTED.match(text)
    if quoted:
        return quoted.group(1)
    return text


def parse_query(query: str) -> Tuple[str, List[Tuple[str, str, Any]], Optional[int], Optional[int]]:
    """Split a query into collection, conditions, limit and offset.

    Raises:
        QueryError: If the query does not start with a collection name
    """
    text = query.strip()
    match = _COLLECTION.match(text)
    if not match:
        raise QueryError(
            f"Cannot parse Firestore query: {text!r}", code=ErrorCodes.INVALID_COMMAND
        )

    conditions = [(m.group(1), m.group(2), parse_literal(m.group(3))) for m in _WHERE.finditer(text)]
    limit = _LIMIT.search(text)
    offset = _OFFSET.search(text)
    return (
        match.group(1),
        conditions,
        int(limit.group(1)) if limit else None,
        int(offset.group(1)) if offset else None,
    )


class FirestoreAdapter(BaseAdapter):
    """Cloud Firestore adapter."""

    component_name = "FirestoreAdapter"
    engine = DatabaseType.FIRESTORE
    display_name = "Firestore"

    def _credentials(self):
        key = self.config.service_account_key
        if key is None:
            return None
        raw = key.get_secret_value()
        try:
            info = json.loads(raw)
        except ValueError:
            return service_account.Credentials.from_service_account_file(raw)
        return service_account.Credentials.from_service_account_info(info)

    async def _open(self) -> None:
        credentials = self._credentials()
        project = self.config.project_id or getattr(credentials, "project_id", None)
        self._client = AsyncClient(project=project, credentials=credentials)

    async def _close(self) -> None:
        close = getattr(self._client, "close", None)
        if close is not None:
            result = close()
            if inspect.isawaitable(result):
                await result

    async def ping(self) -> bool:
        self._require_client()
        try:
            async for _ in self._client.collections():
                break
        except Exception as e:
            self.logger.debug("Ping failed", error=str(e))
            return False
        return True

    def _result(self, snapshots) -> QueryResult:
        rows = [{"_id": doc.id, **(doc.to_dict() or {})} for doc in snapshots]
        columns = statements.infer_columns(
            rows, firestore_type, sample_size=len(rows) or 1,
            nullable=lambda name, value: name != "_id",
        )
        for column in columns:
            column.primary_key = column.name == "_id"
        return QueryResult(columns=columns, rows=rows, row_count=len(rows))

    async def _execute(self, sql: str, params: List[Any]) -> QueryResult:
        collection, conditions, limit, offset = parse_query(sql)
        query = self._client.collection(collection)
        for field, op, value in conditions:
            query = query.where(filter=FieldFilter(field, op, value))
        if limit:
            query = query.limit(limit)
        if offset:
            query = query.offset(offset)
        return self._result(await query.get())

    def escape_identifier(self, name: str) -> str:
        return name

    async def _matching_documents(self, table: str, where: Dict[str, Any]):
        collection = self._client.collection(table)
        if "_id" in where:
            snapshot = await collection.document(str(where["_id"])).get()
            if not snapshot.exists:
                return []
            fields = snapshot.to_dict() or {}
            others = {k: v for k, v in where.items() if k != "_id"}
            if any(k not in fields or fields[k] != v for k, v in others.items()):
                return []
            return [snapshot]

        query = collection
        for field, value in where.items():
            query = query.where(filter=FieldFilter(field, "==", value))
        return await query.get()

    # Data access

    async def get_table_data(
        self, table: str, options: Optional[QueryOptions] = None
    ) -> QueryResult:
        options = statements.coerce_options(options)

        async def run() -> QueryResult:
            query = self._client.collection(table)
            if options.offset:
                query = query.offset(options.offset)
            query = query.limit(options.limit or DEFAULT_PAGE_SIZE)
            return self._result(await query.get())

        return await self._measured("get_table_data", run)

    async def insert_row(self, table: str, data: Dict[str, Any]) -> QueryResult:
        async def run() -> QueryResult:
            _, reference = await self._client.collection(table).add(dict(data))
            return QueryResult(rows=[{"_id": reference.id}], affected_rows=1)

        return await self._measured("insert_row", run)

    async def update_row(
        self, table: str, data: Dict[str, Any], where: Dict[str, Any]
    ) -> QueryResult:
        if not data or not where:
            return QueryResult.failure("update_row requires data and at least one where condition")

        async def run() -> QueryResult:
            documents = await self._matching_documents(table, where)
            for document in documents:
                await document.reference.update(dict(data))
            return QueryResult(affected_rows=len(documents))

        return await self._measured("update_row", run)

    async def delete_row(self, table: str, where: Dict[str, Any]) -> QueryResult:
        if not where:
            return QueryResult.failure("delete_row requires at least one where condition")

        async def run() -> QueryResult:
            documents = await self._matching_documents(table, where)
            for document in documents:
                await document.reference.delete()
            return QueryResult(affected_rows=len(documents))

        return await self._measured("delete_row", run)

    async def begin_transaction(self) -> QueryResult:
        return self._unsupported("Transactions")

    async def commit_transaction(self) -> QueryResult:
        return self._unsupported("Transactions")

    async def rollback_transaction(self) -> QueryResult:
        return self._unsupported("Transactions")

    # Introspection

    async def get_schema(self) -> Schema:
        return Schema(databases=[Database(name=self._project_name(), tables=await self.get_tables())])

    async def get_tables(self, database: Optional[str] = None) -> List[Table]:
        self._require_client()
        tables = []
        async for collection in self._client.collections():
            tables.append(Table(name=collection.id, columns=await self.get_columns(collection.id)))
        return tables

    async def get_columns(self, table: str, schema: Optional[str] = None) -> List[Column]:
        self._require_client()
        key = Column(name="_id", type="string", nullable=False, primary_key=True)
        try:
            snapshots = await self._client.collection(table).limit(self.sample_size).get()
        except Exception as e:
            self.logger.warning("Sampling collection failed", collection=table, error=str(e))
            return [key]

        return statements.infer_columns(
            (doc.to_dict() or {} for doc in snapshots),
            firestore_type,
            sample_size=self.sample_size,
            key_field="_id",
            key_type="string",
            nullable=lambda name, value: True,
        )

    async def get_indexes(self, table: str, schema: Optional[str] = None) -> List[Index]:
        return []

    async def get_primary_key(self, table: str, schema: Optional[str] = None) -> List[str]:
        return ["_id"]

    def _project_name(self) -> str:
        return self.config.project_id or "default"

    async def get_databases(self) -> List[str]:
        return [self._project_name()]

    async def get_version(self) -> str:
        return "Cloud Firestore"
