"""Amazon DynamoDB adapter.

boto3 is synchronous, so every client call runs in a worker thread.
Queries are PartiQL statements with ``?`` parameters.
"""

import asyncio
from functools import partial
from typing import Any, Dict, List, Mapping, Optional

import boto3
from botocore.exceptions import ClientError, NoCredentialsError

from ...config.models import DatabaseType
from ...core.exceptions import ErrorCodes
from .. import statements
from ..base import BaseAdapter
from ..models import Column, Database, Index, QueryOptions, QueryPlan, QueryResult, Schema, Table
from ..types import DynamoAttributeType

DEFAULT_REGION = "us-east-1"
DEFAULT_LOCAL_PORT = 8000
DEFAULT_PAGE_SIZE = 100


def marshal(value: Any) -> Dict[str, Any]:
    """Wrap a Python value in a DynamoDB attribute value."""
    if value is None:
        return {"NULL": True}
    if isinstance(value, str):
        return {"S": value}
    if isinstance(value, bool):
        return {"BOOL": value}
    if isinstance(value, (int, float)):
        return {"N": str(value)}
    if isinstance(value, (list, tuple)):
        return {"L": [marshal(item) for item in value]}
    if isinstance(value, Mapping):
        return {"M": {str(k): marshal(v) for k, v in value.items()}}
    return {"S": str(value)}


def _number(text: str) -> Any:
    try:
        return int(text)
    except ValueError:
        return float(text)


def unmarshal(attribute: Mapping[str, Any]) -> Any:
    """Plain Python value of a DynamoDB attribute value."""
    if "S" in attribute:
        return attribute["S"]
    if "N" in attribute:
        return _number(attribute["N"])
    if "BOOL" in attribute:
        return attribute["BOOL"]
    if "NULL" in attribute:
        return None
    if "L" in attribute:
        return [unmarshal(item) for item in attribute["L"]]
    if "M" in attribute:
        return unmarshal_item(attribute["M"])
    if "SS" in attribute:
        return list(attribute["SS"])
    if "NS" in attribute:
        return [_number(n) for n in attribute["NS"]]
    if "BS" in attribute:
        return list(attribute["BS"])
    if "B" in attribute:
        return attribute["B"]
    return dict(attribute)


def unmarshal_item(item: Mapping[str, Any]) -> Dict[str, Any]:
    return {key: unmarshal(value) for key, value in item.items()}


def value_type(value: Any) -> str:
    if value is None:
        return "null"
    if isinstance(value, str):
        return "String"
    if isinstance(value, bool):
        return "Boolean"
    if isinstance(value, (int, float)):
        return "Number"
    if isinstance(value, (bytes, bytearray)):
        return "Binary"
    if isinstance(value, list):
        return "List"
    if isinstance(value, Mapping):
        return "Map"
    return type(value).__name__


class DynamoDBAdapter(BaseAdapter):
    """Amazon DynamoDB adapter."""

    component_name = "DynamoDBAdapter"
    engine = DatabaseType.DYNAMODB
    display_name = "DynamoDB"

    @property
    def region(self) -> str:
        return self.config.aws_region or DEFAULT_REGION

    def _client_kwargs(self) -> Dict[str, Any]:
        kwargs: Dict[str, Any] = {"region_name": self.region}
        if self.config.aws_access_key_id:
            kwargs["aws_access_key_id"] = self.config.aws_access_key_id
        if self.config.aws_secret_access_key:
            kwargs["aws_secret_access_key"] = self.config.aws_secret_access_key.get_secret_value()
        if self.config.host:
            kwargs["endpoint_url"] = f"http://{self.config.host}:{self.config.port or DEFAULT_LOCAL_PORT}"
        return kwargs

    async def _call(self, method: str, **kwargs: Any) -> Dict[str, Any]:
        return await asyncio.to_thread(partial(getattr(self._client, method), **kwargs))

    async def _open(self) -> None:
        self._client = await asyncio.to_thread(partial(boto3.client, "dynamodb", **self._client_kwargs()))
        await self._call("list_tables", Limit=1)

    async def _close(self) -> None:
        await asyncio.to_thread(self._client.close)

    def _classify_connect_error(self, error: BaseException) -> str:
        if isinstance(error, NoCredentialsError):
            return ErrorCodes.AUTH_FAILED
        if isinstance(error, ClientError):
            code = error.response.get("Error", {}).get("Code", "")
            if code in ("UnrecognizedClientException", "InvalidSignatureException", "AccessDeniedException"):
                return ErrorCodes.AUTH_FAILED
        return super()._classify_connect_error(error)

    async def ping(self) -> bool:
        self._require_client()
        try:
            await self._call("list_tables", Limit=1)
        except Exception as e:
            self.logger.debug("Ping failed", error=str(e))
            return False
        return True

    def _items_result(self, items: List[Dict[str, Any]]) -> QueryResult:
        rows = [unmarshal_item(item) for item in items]
        columns = statements.infer_columns(
            rows, value_type, sample_size=self.sample_size, nullable=lambda name, value: True
        )
        return QueryResult(columns=columns, rows=rows, row_count=len(rows))

    async def _execute(self, sql: str, params: List[Any]) -> QueryResult:
        request: Dict[str, Any] = {"Statement": sql}
        if params:
            request["Parameters"] = [marshal(p) for p in params]
        response = await self._call("execute_statement", **request)
        return self._items_result(response.get("Items", []))

    def escape_identifier(self, name: str) -> str:
        return name

    def get_placeholder(self, index: int) -> str:
        return "?"

    async def _describe(self, table: str) -> Dict[str, Any]:
        response = await self._call("describe_table", TableName=table)
        return response.get("Table") or {}

    # Data access

    async def get_table_data(
        self, table: str, options: Optional[QueryOptions] = None
    ) -> QueryResult:
        options = statements.coerce_options(options)
        offset = options.offset or 0
        wanted = offset + (options.limit or DEFAULT_PAGE_SIZE)

        async def run() -> QueryResult:
            items: List[Dict[str, Any]] = []
            request: Dict[str, Any] = {"TableName": table, "Limit": wanted}
            while len(items) < wanted:
                response = await self._call("scan", **request)
                items.extend(response.get("Items", []))
                if "LastEvaluatedKey" not in response:
                    break
                request["ExclusiveStartKey"] = response["LastEvaluatedKey"]
            return self._items_result(items[offset:wanted])

        return await self._measured("get_table_data", run)

    async def insert_row(self, table: str, data: Dict[str, Any]) -> QueryResult:
        if not data:
            return QueryResult.failure("insert_row requires at least one column")

        async def run() -> QueryResult:
            item = {key: marshal(value) for key, value in data.items()}
            await self._call("put_item", TableName=table, Item=item)
            return QueryResult(affected_rows=1)

        return await self._measured("insert_row", run)

    async def update_row(
        self, table: str, data: Dict[str, Any], where: Dict[str, Any]
    ) -> QueryResult:
        if not data or not where:
            return QueryResult.failure("update_row requires data and at least one where condition")

        async def run() -> QueryResult:
            assignments = []
            names: Dict[str, str] = {}
            values: Dict[str, Any] = {}
            for n, (field, value) in enumerate(data.items()):
                assignments.append(f"#attr{n} = :val{n}")
                names[f"#attr{n}"] = field
                values[f":val{n}"] = marshal(value)

            await self._call(
                "update_item",
                TableName=table,
                Key={key: marshal(value) for key, value in where.items()},
                UpdateExpression="SET " + ", ".join(assignments),
                ExpressionAttributeNames=names,
                ExpressionAttributeValues=values,
            )
            return QueryResult(affected_rows=1)

        return await self._measured("update_row", run)

    async def delete_row(self, table: str, where: Dict[str, Any]) -> QueryResult:
        if not where:
            return QueryResult.failure("delete_row requires at least one where condition")

        async def run() -> QueryResult:
            key = {field: marshal(value) for field, value in where.items()}
            response = await self._call("delete_item", TableName=table, Key=key, ReturnValues="ALL_OLD")
            return QueryResult(affected_rows=1 if response.get("Attributes") else 0)

        return await self._measured("delete_row", run)

    async def begin_transaction(self) -> QueryResult:
        return self._unsupported("Transactions")

    async def commit_transaction(self) -> QueryResult:
        return self._unsupported("Transactions")

    async def rollback_transaction(self) -> QueryResult:
        return self._unsupported("Transactions")

    # Introspection

    async def get_schema(self) -> Schema:
        return Schema(databases=[Database(name=self.region, tables=await self.get_tables())])

    async def get_tables(self, database: Optional[str] = None) -> List[Table]:
        self._require_client()
        names: List[str] = []
        request: Dict[str, Any] = {}
        while True:
            response = await self._call("list_tables", **request)
            names.extend(response.get("TableNames", []))
            if "LastEvaluatedTableName" not in response:
                break
            request["ExclusiveStartTableName"] = response["LastEvaluatedTableName"]

        return [
            Table(
                name=name,
                columns=await self.get_columns(name),
                indexes=await self.get_indexes(name),
            )
            for name in names
        ]

    async def get_columns(self, table: str, schema: Optional[str] = None) -> List[Column]:
        self._require_client()
        description = await self._describe(table)
        keys = {key["AttributeName"] for key in description.get("KeySchema", [])}
        return [
            Column(
                name=attribute["AttributeName"],
                type=DynamoAttributeType.from_tag(attribute.get("AttributeType")).type_name,
                nullable=attribute["AttributeName"] not in keys,
                primary_key=attribute["AttributeName"] in keys,
            )
            for attribute in description.get("AttributeDefinitions", [])
        ]

    async def get_indexes(self, table: str, schema: Optional[str] = None) -> List[Index]:
        self._require_client()
        description = await self._describe(table)
        indexes = []
        for group in ("GlobalSecondaryIndexes", "LocalSecondaryIndexes"):
            for index in description.get(group, []):
                indexes.append(Index(
                    name=index.get("IndexName") or "unnamed",
                    columns=[key["AttributeName"] for key in index.get("KeySchema", [])],
                    unique=False,
                ))
        return indexes

    async def get_primary_key(self, table: str, schema: Optional[str] = None) -> List[str]:
        self._require_client()
        description = await self._describe(table)
        return [key["AttributeName"] for key in description.get("KeySchema", [])]

    async def get_databases(self) -> List[str]:
        return [self.region]

    async def get_schemas(self, database: Optional[str] = None) -> List[str]:
        return [self.region]

    async def get_version(self) -> str:
        return "DynamoDB"

    async def explain_query(self, sql: str) -> QueryPlan:
        self._require_client()
        return QueryPlan(plan=None, text_representation="Query plans are not available for DynamoDB")
