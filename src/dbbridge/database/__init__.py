"""dbbridge database layer.

A uniform async adapter over relational, document, key-value, graph,
wide-column, columnar and search engines.

Key pieces:
- ``BaseAdapter``: lifecycle, timing and error folding shared by adapters
- ``AdapterRegistry``: engine tag to adapter class, loaded on demand
- ``AdapterFactory``: one adapter per connection id
- ``SchemaMetadataCache``: short-lived schema metadata per connection

Example:
    >>> from dbbridge.database import get_adapter_factory
    >>> adapter = get_adapter_factory().create(config)
    >>> await adapter.connect()
    >>> result = await adapter.execute_query("SELECT 1")
"""

from .base import BaseAdapter
from .factory import AdapterFactory, get_adapter_factory
from .models import (
    Column,
    ColumnMetadata,
    Database,
    ForeignKey,
    Index,
    OrderBy,
    Parameter,
    QueryOptions,
    QueryPlan,
    QueryResult,
    Role,
    Schema,
    SchemaMetadata,
    StoredProcedure,
    Table,
    TableMetadata,
    Trigger,
    User,
    View,
)
from .protocols import DatabaseAdapter
from .registry import (
    AdapterRegistry,
    get_adapter_class,
    get_adapter_registry,
    get_supported_types,
    is_type_supported,
    register_adapter,
)
from .schema_cache import SchemaMetadataCache, get_schema_cache

__all__ = [
    # Models
    "Column",
    "ColumnMetadata",
    "Database",
    "ForeignKey",
    "Index",
    "OrderBy",
    "Parameter",
    "QueryOptions",
    "QueryPlan",
    "QueryResult",
    "Role",
    "Schema",
    "SchemaMetadata",
    "StoredProcedure",
    "Table",
    "TableMetadata",
    "Trigger",
    "User",
    "View",
    # Core classes
    "BaseAdapter",
    "DatabaseAdapter",
    "AdapterRegistry",
    "AdapterFactory",
    "SchemaMetadataCache",
    # Global instances
    "get_adapter_class",
    "get_adapter_factory",
    "get_adapter_registry",
    "get_schema_cache",
    "get_supported_types",
    "is_type_supported",
    "register_adapter",
]
