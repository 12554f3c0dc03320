"""Result and schema models shared by every adapter.

Every engine, relational or not, reports its structure and data through
these dataclasses so callers never see driver-specific shapes.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Literal, Optional


@dataclass
class Column:
    """Table column description.

    ``type`` is free-form and uses the engine's own vocabulary (``"Int64"``,
    ``"ObjectId"``, ``"keyword"``). For schemaless engines the column set is
    inferred from sampled data and is never authoritative.
    """
    name: str
    type: str
    nullable: bool = True
    primary_key: bool = False
    default_value: Optional[Any] = None
    auto_increment: Optional[bool] = None


@dataclass
class Index:
    """Secondary index description."""
    name: str
    columns: List[str] = field(default_factory=list)
    unique: bool = False


@dataclass
class ForeignKey:
    """Foreign key description."""
    name: str
    columns: List[str]
    referenced_table: str
    referenced_columns: List[str]
    on_delete: Optional[str] = None
    on_update: Optional[str] = None


@dataclass
class Table:
    """Table, collection, label or index description."""
    name: str
    schema: Optional[str] = None
    columns: List[Column] = field(default_factory=list)
    indexes: List[Index] = field(default_factory=list)
    foreign_keys: List[ForeignKey] = field(default_factory=list)
    row_count: Optional[int] = None


@dataclass
class View:
    name: str
    schema: Optional[str] = None
    definition: Optional[str] = None


@dataclass
class Parameter:
    name: str
    type: str
    mode: Literal["IN", "OUT", "INOUT"] = "IN"
    default_value: Optional[str] = None


@dataclass
class StoredProcedure:
    name: str
    schema: Optional[str] = None
    definition: Optional[str] = None
    parameters: List[Parameter] = field(default_factory=list)
    return_type: Optional[str] = None
    language: Optional[str] = None


@dataclass
class Trigger:
    name: str
    table: str
    event: str
    timing: str
    definition: Optional[str] = None
    enabled: Optional[bool] = None


@dataclass
class QueryPlan:
    """Execution plan as returned by ``explain_query``.

    Attributes:
        plan: Raw plan in whatever shape the engine produced
        text_representation: Human-readable plan
        estimated_cost: Engine cost estimate when available
    """
    plan: Any
    text_representation: str
    estimated_cost: Optional[float] = None


@dataclass
class User:
    name: str
    host: Optional[str] = None
    roles: List[str] = field(default_factory=list)
    superuser: Optional[bool] = None
    can_login: Optional[bool] = None


@dataclass
class Role:
    name: str
    privileges: List[str] = field(default_factory=list)
    members: List[str] = field(default_factory=list)


@dataclass
class Database:
    name: str
    tables: List[Table] = field(default_factory=list)
    views: List[View] = field(default_factory=list)


@dataclass
class Schema:
    """Full structural description returned by ``get_schema``."""
    databases: List[Database] = field(default_factory=list)


@dataclass
class OrderBy:
    column: str
    direction: Literal["ASC", "DESC"] = "ASC"


@dataclass
class QueryOptions:
    """Paging, ordering and equality filtering for ``get_table_data``."""
    limit: Optional[int] = None
    offset: Optional[int] = None
    order_by: List[OrderBy] = field(default_factory=list)
    where: Dict[str, Any] = field(default_factory=dict)


@dataclass
class QueryResult:
    """Outcome of any query-shaped operation.

    ``error`` is set exactly when the operation did not complete as
    requested; ``rows`` and ``columns`` are empty in that case.

    Attributes:
        columns: Result columns
        rows: Rows as string-keyed mappings
        row_count: Number of rows returned
        execution_time: Wall time in milliseconds
        affected_rows: Rows changed by a mutation, when the engine reports it
        error: Engine or adapter error message
    """
    columns: List[Column] = field(default_factory=list)
    rows: List[Dict[str, Any]] = field(default_factory=list)
    row_count: int = 0
    execution_time: float = 0.0
    affected_rows: Optional[int] = None
    error: Optional[str] = None

    @classmethod
    def failure(cls, error: str, execution_time: float = 0.0) -> "QueryResult":
        return cls(execution_time=execution_time, error=error)

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass
class ColumnMetadata:
    name: str
    type: str


@dataclass
class TableMetadata:
    name: str
    schema: Optional[str] = None
    columns: List[ColumnMetadata] = field(default_factory=list)


@dataclass
class SchemaMetadata:
    """Lightweight table/column summary used for autocomplete and AI context."""
    tables: List[TableMetadata] = field(default_factory=list)
    views: List[TableMetadata] = field(default_factory=list)
    functions: List[str] = field(default_factory=list)
    keywords: List[str] = field(default_factory=list)
