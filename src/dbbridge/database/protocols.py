"""Adapter protocol.

``DatabaseAdapter`` lists the members every engine adapter provides. It is a
structural protocol: anything with these members can be stored in the
adapter factory and served by the schema cache, whether or not it derives
from ``BaseAdapter``.

Optional capabilities (transactions, procedures, triggers, views, users,
roles, database and schema listing, explain, schema metadata) are not part
of the protocol. Callers look them up with ``getattr`` and degrade to an
empty result when they are absent.
"""

from typing import Any, Dict, List, Optional, Protocol, Sequence, runtime_checkable

from ..config.models import ConnectionConfig, DatabaseType
from .models import Column, Index, QueryOptions, QueryResult, Schema, Table


@runtime_checkable
class DatabaseAdapter(Protocol):
    """Uniform contract over one engine connection."""

    @property
    def config(self) -> ConnectionConfig:
        ...

    async def connect(self) -> None:
        """Open the native connection or pool; no-op when already open."""
        ...

    async def disconnect(self) -> None:
        """Release the native connection or pool."""
        ...

    def is_connected(self) -> bool:
        ...

    async def test_connection(self) -> bool:
        """Probe the server and restore the previous connection state. Never raises."""
        ...

    async def execute_query(
        self, sql: str, params: Optional[Sequence[Any]] = None
    ) -> QueryResult:
        ...

    async def get_table_data(
        self, table: str, options: Optional[QueryOptions] = None
    ) -> QueryResult:
        ...

    async def insert_row(self, table: str, data: Dict[str, Any]) -> QueryResult:
        ...

    async def update_row(
        self, table: str, data: Dict[str, Any], where: Dict[str, Any]
    ) -> QueryResult:
        ...

    async def delete_row(self, table: str, where: Dict[str, Any]) -> QueryResult:
        ...

    async def get_schema(self) -> Schema:
        ...

    async def get_tables(self, database: Optional[str] = None) -> List[Table]:
        ...

    async def get_columns(self, table: str, schema: Optional[str] = None) -> List[Column]:
        ...

    async def get_indexes(self, table: str, schema: Optional[str] = None) -> List[Index]:
        ...

    async def get_primary_key(self, table: str, schema: Optional[str] = None) -> List[str]:
        ...

    async def get_version(self) -> str:
        ...

    def get_database_type(self) -> DatabaseType:
        ...

    def escape_identifier(self, name: str) -> str:
        """Quote ``name`` in the engine's identifier dialect."""
        ...

    def get_placeholder(self, index: int) -> str:
        """Parameter placeholder for the 1-based ``index``."""
        ...
