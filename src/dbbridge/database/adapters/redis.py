"""Redis adapter built on ``redis.asyncio``.

Queries are command lines (``HGETALL user:1``, ``SET greeting "hello world"``).
Key prefixes before the first ``:`` are presented as tables.
"""

import json
from typing import Any, Dict, List, Optional, Tuple

from redis.asyncio import Redis
from redis.exceptions import AuthenticationError as RedisAuthenticationError

from ...config.models import DatabaseType
from ...core.exceptions import ErrorCodes
from .. import statements
from ..base import BaseAdapter
from ..models import Column, Database, Index, QueryOptions, QueryResult, Schema, Table

PAIRED_REPLIES = frozenset({"HGETALL", "CONFIG", "ZRANGE"})
DATABASE_COUNT = 16
DEFAULT_PAGE_SIZE = 100
SCAN_COUNT = 100


def _column(name: str, type_name: str = "string", *, nullable: bool = True, key: bool = False) -> Column:
    return Column(name=name, type=type_name, nullable=nullable, primary_key=key)


KEY_VALUE_COLUMNS = [_column("key", nullable=False, key=True), _column("value")]

COLUMNS_BY_KEY_TYPE = {
    "string": KEY_VALUE_COLUMNS,
    "hash": [_column("field", nullable=False, key=True), _column("value")],
    "list": [_column("index", "integer", nullable=False, key=True), _column("value")],
    "set": [_column("member", nullable=False, key=True)],
    "zset": [_column("member", nullable=False, key=True), _column("score", "float", nullable=False)],
}

TABLE_DATA_COLUMNS = [
    _column("key", nullable=False, key=True),
    _column("type", nullable=False),
    _column("value"),
]


def split_command(command: str) -> List[str]:
    """Split a command line on blanks, keeping quoted sections together."""
    parts: List[str] = []
    current = ""
    # a quoted section makes a token even when it is empty
    started = False
    quote: Optional[str] = None
    for char in command:
        if quote:
            if char == quote:
                quote = None
            else:
                current += char
        elif char in ("'", '"'):
            quote = char
            started = True
        elif char in (" ", "\t"):
            if started:
                parts.append(current)
                current = ""
                started = False
        else:
            current += char
            started = True
    if started:
        parts.append(current)
    return parts


def format_reply(command: str, reply: Any) -> Tuple[List[Column], List[Dict[str, Any]]]:
    """Turn a Redis reply into columns and rows."""
    if reply is None:
        return [_column("value")], [{"value": "(nil)"}]

    if isinstance(reply, dict):
        return list(KEY_VALUE_COLUMNS), [{"key": k, "value": v} for k, v in reply.items()]

    if isinstance(reply, (list, tuple, set)):
        items = list(reply)
        if items and all(isinstance(item, (list, tuple)) and len(item) == 2 for item in items):
            return list(KEY_VALUE_COLUMNS), [{"key": k, "value": v} for k, v in items]
        if command in PAIRED_REPLIES and items and len(items) % 2 == 0:
            pairs = zip(items[0::2], items[1::2])
            return list(KEY_VALUE_COLUMNS), [{"key": k, "value": v} for k, v in pairs]
        return [_column("value", nullable=False)], [{"value": item} for item in items]

    if isinstance(reply, (str, int, float, bool)):
        return [_column("value", nullable=False)], [{"value": reply}]

    return [_column("value", nullable=False)], [{"value": str(reply)}]


class RedisAdapter(BaseAdapter):
    """Redis adapter."""

    component_name = "RedisAdapter"
    engine = DatabaseType.REDIS
    display_name = "Redis"
    test_query = "PING"
    not_connected_message = "Not connected to Redis"

    @property
    def db_number(self) -> int:
        try:
            return int(self.config.database)
        except ValueError:
            return 0

    async def _open(self) -> None:
        if self.config.connection_string_value:
            self._client = Redis.from_url(
                self.config.connection_string_value,
                decode_responses=True,
                socket_connect_timeout=10,
            )
        else:
            self._client = Redis(
                host=self.config.host or "localhost",
                port=self.config.port or 6379,
                db=self.db_number,
                username=self.config.username or None,
                password=self.config.password_value,
                ssl=self.config.ssl_enabled,
                decode_responses=True,
                socket_connect_timeout=10,
            )
        await self._client.ping()

    async def _close(self) -> None:
        await self._client.aclose()

    def _classify_connect_error(self, error: BaseException) -> str:
        if isinstance(error, RedisAuthenticationError):
            return ErrorCodes.AUTH_FAILED
        return super()._classify_connect_error(error)

    async def ping(self) -> bool:
        self._require_client()
        try:
            return bool(await self._client.ping())
        except Exception as e:
            self.logger.debug("Ping failed", error=str(e))
            return False

    async def _execute(self, sql: str, params: List[Any]) -> QueryResult:
        parts = split_command(sql)
        if not parts:
            return QueryResult.failure("Empty command")

        command = parts[0].upper()
        reply = await self._client.execute_command(command, *parts[1:])
        columns, rows = format_reply(command, reply)
        return QueryResult(columns=columns, rows=rows, row_count=len(rows))

    def escape_identifier(self, name: str) -> str:
        return name

    async def _value_of(self, key: str, key_type: str) -> Any:
        if key_type == "string":
            return await self._client.get(key)
        if key_type == "hash":
            return await self._client.hgetall(key)
        if key_type == "list":
            return await self._client.lrange(key, 0, -1)
        if key_type == "set":
            return sorted(await self._client.smembers(key))
        if key_type == "zset":
            return await self._client.zrange(key, 0, -1, withscores=True)
        return None

    # Data access

    async def get_table_data(
        self, table: str, options: Optional[QueryOptions] = None
    ) -> QueryResult:
        options = statements.coerce_options(options)

        async def run() -> QueryResult:
            pattern = table if "*" in table else f"{table}*"
            keys = sorted([key async for key in self._client.scan_iter(match=pattern, count=SCAN_COUNT)])
            offset = options.offset or 0
            selected = keys[offset:offset + (options.limit or DEFAULT_PAGE_SIZE)]

            rows = []
            for key in selected:
                key_type = await self._client.type(key)
                value = await self._value_of(key, key_type)
                if isinstance(value, (dict, list, tuple)):
                    value = json.dumps(value, default=str)
                rows.append({"key": key, "type": key_type, "value": value})
            return QueryResult(columns=list(TABLE_DATA_COLUMNS), rows=rows, row_count=len(rows))

        return await self._measured("get_table_data", run)

    async def insert_row(self, table: str, data: Dict[str, Any]) -> QueryResult:
        if not data:
            return QueryResult.failure("insert_row requires at least one column")

        async def run() -> QueryResult:
            fields = set(data)
            if fields == {"value"}:
                await self._client.set(table, str(data["value"]))
            elif fields == {"key", "value"}:
                await self._client.set(str(data["key"]), str(data["value"]))
            else:
                await self._client.hset(table, mapping={k: str(v) for k, v in data.items()})
            return QueryResult(affected_rows=1)

        return await self._measured("insert_row", run)

    async def update_row(
        self, table: str, data: Dict[str, Any], where: Dict[str, Any]
    ) -> QueryResult:
        # SET and HSET overwrite
        return await self.insert_row(table, data)

    async def delete_row(self, table: str, where: Dict[str, Any]) -> QueryResult:
        async def run() -> QueryResult:
            key = str(where.get("key") or table)
            return QueryResult(affected_rows=await self._client.delete(key))

        return await self._measured("delete_row", run)

    async def begin_transaction(self) -> QueryResult:
        return self._unsupported("Transactions")

    async def commit_transaction(self) -> QueryResult:
        return self._unsupported("Transactions")

    async def rollback_transaction(self) -> QueryResult:
        return self._unsupported("Transactions")

    # Introspection

    async def get_schema(self) -> Schema:
        return Schema(databases=[Database(name=self.config.database or "0", tables=await self.get_tables())])

    async def get_tables(self, database: Optional[str] = None) -> List[Table]:
        self._require_client()
        prefixes = set()
        async for key in self._client.scan_iter(match="*", count=SCAN_COUNT):
            prefix, sep, _ = key.partition(":")
            prefixes.add(prefix if sep and prefix else key)
        schema = database or self.config.database
        return [Table(name=prefix, schema=schema) for prefix in sorted(prefixes)]

    async def get_columns(self, table: str, schema: Optional[str] = None) -> List[Column]:
        self._require_client()
        try:
            key_type = await self._client.type(table)
        except Exception as e:
            self.logger.warning("Key type lookup failed", key=table, error=str(e))
            key_type = "string"
        return list(COLUMNS_BY_KEY_TYPE.get(key_type, KEY_VALUE_COLUMNS))

    async def get_indexes(self, table: str, schema: Optional[str] = None) -> List[Index]:
        return []

    async def get_primary_key(self, table: str, schema: Optional[str] = None) -> List[str]:
        return ["key"]

    async def get_databases(self) -> List[str]:
        return [str(n) for n in range(DATABASE_COUNT)]

    async def get_schemas(self, database: Optional[str] = None) -> List[str]:
        return [database or self.config.database or "0"]

    async def get_version(self) -> str:
        self._require_client()
        try:
            info = await self._client.info("server")
        except Exception as e:
            self.logger.warning("INFO server failed", error=str(e))
            return "Redis (unknown version)"
        version = info.get("redis_version")
        return f"Redis {version}" if version else "Redis (unknown version)"
