"""Engine-neutral statement synthesis and composite operations.

The functions here only rely on the primitives every adapter provides
(``execute_query``, ``escape_identifier``, ``get_placeholder`` and the
introspection calls), so one implementation serves positional (``?``) and
numbered (``$1``, ``@p1``, ``:p1``) dialects alike. ``BaseAdapter``
delegates to them; engines whose dialect differs call them with their own
primitives or replace them outright.

Example:
    >>> sql, params = build_insert("users", {"id": 1, "name": "a"}, quote, lambda i: "?")
    >>> sql
    'INSERT INTO "users" ("id", "name") VALUES (?, ?)'
"""

from datetime import date, datetime, time
from decimal import Decimal
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from ..logging import get_logger
from .models import (
    Column,
    ColumnMetadata,
    OrderBy,
    QueryOptions,
    SchemaMetadata,
    TableMetadata,
)

logger = get_logger("database.statements")

Quote = Callable[[str], str]
Placeholder = Callable[[int], str]

DEFAULT_SAMPLE_SIZE = 100


def escape_value(value: Any) -> str:
    """Render ``value`` as an inline SQL literal.

    Args:
        value: Python value

    Returns:
        ``NULL``, ``TRUE``/``FALSE``, a bare number, or a single-quoted
        string with embedded quotes doubled. Dates and datetimes are
        rendered as quoted ISO-8601.
    """
    if value is None:
        return "NULL"
    if isinstance(value, bool):
        return "TRUE" if value else "FALSE"
    if isinstance(value, (int, float, Decimal)):
        return str(value)
    if isinstance(value, (datetime, date, time)):
        return f"'{value.isoformat()}'"
    text = value if isinstance(value, str) else str(value)
    return "'" + text.replace("'", "''") + "'"


def coerce_options(options: Any) -> QueryOptions:
    """Accept ``QueryOptions``, a plain mapping, or ``None``."""
    if options is None:
        return QueryOptions()
    if isinstance(options, QueryOptions):
        return options
    if isinstance(options, Mapping):
        order_by = [
            item if isinstance(item, OrderBy) else OrderBy(
                column=item["column"], direction=item.get("direction", "ASC")
            )
            for item in options.get("order_by") or options.get("orderBy") or []
        ]
        return QueryOptions(
            limit=options.get("limit"),
            offset=options.get("offset"),
            order_by=order_by,
            where=dict(options.get("where") or {}),
        )
    raise TypeError(f"Unsupported query options: {type(options).__name__}")


def _direction(order: OrderBy) -> str:
    return "DESC" if str(order.direction).upper() == "DESC" else "ASC"


def build_where_literals(where: Mapping[str, Any], quote: Quote) -> str:
    """``a = 1 AND b = 'x'`` with inline literals, or an empty string."""
    return " AND ".join(f"{quote(key)} = {escape_value(value)}" for key, value in where.items())


def build_order_by(order_by: Sequence[OrderBy], quote: Quote) -> str:
    return ", ".join(f"{quote(order.column)} {_direction(order)}" for order in order_by)


def _select(table: str, options: QueryOptions, quote: Quote, where_sql: str) -> str:
    sql = f"SELECT * FROM {quote(table)}"

    if where_sql:
        sql += f" WHERE {where_sql}"
    if options.order_by:
        sql += f" ORDER BY {build_order_by(options.order_by, quote)}"
    if options.limit:
        sql += f" LIMIT {int(options.limit)}"
    if options.offset:
        sql += f" OFFSET {int(options.offset)}"

    return sql


def build_select(table: str, options: Optional[QueryOptions], quote: Quote) -> str:
    """Build ``SELECT * FROM t [WHERE ...] [ORDER BY ...] [LIMIT n] [OFFSET n]``.

    Filters are equality only and inlined as escaped literals. ``LIMIT`` and
    ``OFFSET`` are emitted only when truthy.
    """
    options = options or QueryOptions()
    return _select(table, options, quote, build_where_literals(options.where, quote))


def build_select_params(
    table: str,
    options: Optional[QueryOptions],
    quote: Quote,
    placeholder: Placeholder,
) -> Tuple[str, List[Any]]:
    """Same statement as :func:`build_select` with filter values bound as parameters."""
    options = options or QueryOptions()
    where_sql, params = build_assignments(options.where, quote, placeholder, separator=" AND ")
    return _select(table, options, quote, where_sql), params


def build_insert(
    table: str,
    data: Mapping[str, Any],
    quote: Quote,
    placeholder: Placeholder,
) -> Tuple[str, List[Any]]:
    """Build a parameterized ``INSERT``.

    Returns:
        Statement and the ordered parameter list
    """
    columns = list(data.keys())
    column_sql = ", ".join(quote(column) for column in columns)
    value_sql = ", ".join(placeholder(i + 1) for i in range(len(columns)))
    sql = f"INSERT INTO {quote(table)} ({column_sql}) VALUES ({value_sql})"
    return sql, [data[column] for column in columns]


def build_assignments(
    data: Mapping[str, Any],
    quote: Quote,
    placeholder: Placeholder,
    *,
    start: int = 1,
    separator: str = ", ",
) -> Tuple[str, List[Any]]:
    """``a = $1, b = $2`` style assignments beginning at placeholder ``start``."""
    parts = []
    params = []
    for offset, (key, value) in enumerate(data.items()):
        parts.append(f"{quote(key)} = {placeholder(start + offset)}")
        params.append(value)
    return separator.join(parts), params


def build_update(
    table: str,
    data: Mapping[str, Any],
    where: Mapping[str, Any],
    quote: Quote,
    placeholder: Placeholder,
) -> Tuple[str, List[Any]]:
    """Build a parameterized ``UPDATE``; WHERE placeholders continue after SET."""
    set_sql, set_params = build_assignments(data, quote, placeholder)
    where_sql, where_params = build_assignments(
        where, quote, placeholder, start=len(set_params) + 1, separator=" AND "
    )
    sql = f"UPDATE {quote(table)} SET {set_sql} WHERE {where_sql}"
    return sql, set_params + where_params


def build_delete(
    table: str,
    where: Mapping[str, Any],
    quote: Quote,
    placeholder: Placeholder,
) -> Tuple[str, List[Any]]:
    """Build a parameterized ``DELETE``."""
    where_sql, params = build_assignments(where, quote, placeholder, separator=" AND ")
    return f"DELETE FROM {quote(table)} WHERE {where_sql}", params


def quote_with(open_char: str, close_char: Optional[str] = None) -> Quote:
    """Identifier quoter that doubles the closing character inside the name.

    Example:
        >>> quote_with("[", "]")("a]b")
        '[a]]b]'
    """
    close_char = close_char or open_char

    def quote(name: str) -> str:
        return f"{open_char}{name.replace(close_char, close_char * 2)}{close_char}"

    return quote


def render_plan_text(rows: Iterable[Mapping[str, Any]]) -> str:
    """Join each row's values with spaces and rows with newlines."""
    return "\n".join(" ".join(str(value) for value in row.values()) for row in rows)


def infer_columns(
    samples: Iterable[Mapping[str, Any]],
    infer_type: Callable[[Any], str],
    *,
    sample_size: int = DEFAULT_SAMPLE_SIZE,
    key_field: Optional[str] = None,
    key_type: Optional[str] = None,
    nullable: Callable[[str, Any], bool] = lambda name, value: value is None,
) -> List[Column]:
    """Infer columns from sampled records.

    Field order follows first appearance. The first observed value of a
    field decides its type; later samples never widen it.

    Args:
        samples: Records to inspect; at most ``sample_size`` are read
        infer_type: Maps a value to the engine's type vocabulary
        sample_size: Maximum number of records inspected
        key_field: Synthetic primary key placed first when given
        key_type: Type reported for ``key_field``
        nullable: Decides the nullable flag from the first-seen value

    Returns:
        Inferred columns
    """
    columns: Dict[str, Column] = {}

    if key_field is not None:
        columns[key_field] = Column(
            name=key_field,
            type=key_type or "unknown",
            nullable=False,
            primary_key=True,
        )

    for index, record in enumerate(samples):
        if index >= sample_size:
            break
        for name, value in record.items():
            if name in columns:
                continue
            columns[name] = Column(
                name=name,
                type=infer_type(value),
                nullable=nullable(name, value),
                primary_key=False,
            )

    return list(columns.values())


async def probe_connection(adapter: Any) -> bool:
    """Check that ``adapter`` can reach its server, restoring its state.

    Connects if needed, runs the adapter's ``ping`` (or its test query),
    then disconnects again when the adapter was not connected beforehand.
    Every failure, including a failed cleanup, is reported as ``False``.
    """
    was_connected = adapter.is_connected()
    try:
        if not was_connected:
            await adapter.connect()
        ping = getattr(adapter, "ping", None)
        if ping is not None:
            return bool(await ping())
        result = await adapter.execute_query(getattr(adapter, "test_query", "SELECT 1"))
        return result.error is None
    except Exception as e:
        logger.debug("Connection probe failed", error=str(e), error_type=type(e).__name__)
        return False
    finally:
        if not was_connected:
            try:
                await adapter.disconnect()
            except Exception as e:
                logger.debug("Disconnect after probe failed", error=str(e))


async def collect_schema_metadata(
    adapter: Any, database: Optional[str] = None
) -> SchemaMetadata:
    """Build schema metadata from ``get_tables``, ``get_columns`` and ``get_views``.

    A column lookup failure for one table leaves that table without
    columns; a view lookup failure leaves the view list empty.
    """
    tables = await adapter.get_tables(database)

    table_metadata = []
    for table in tables:
        try:
            columns = await adapter.get_columns(table.name, table.schema)
        except Exception as e:
            logger.warning("Column lookup failed", table=table.name, error=str(e))
            columns = []
        table_metadata.append(
            TableMetadata(
                name=table.name,
                schema=table.schema,
                columns=[ColumnMetadata(name=c.name, type=c.type) for c in columns],
            )
        )

    views = []
    get_views = getattr(adapter, "get_views", None)
    if get_views is not None:
        try:
            views = [
                TableMetadata(name=view.name, schema=view.schema)
                for view in await get_views(database)
            ]
        except Exception as e:
            logger.warning("View lookup failed", error=str(e))

    return SchemaMetadata(tables=table_metadata, views=views)
