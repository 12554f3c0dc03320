"""Unit tests for statement synthesis helpers."""

from datetime import date, datetime
from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock

import pytest

from dbbridge.database import statements
from dbbridge.database.models import Column, OrderBy, QueryOptions, QueryResult, Table, View

dq = statements.quote_with('"')


def dollar(index: int) -> str:
    return f"${index}"


class TestEscapeValue:
    """Test inline literal rendering."""

    @pytest.mark.parametrize("value,expected", [
        (None, "NULL"),
        (True, "TRUE"),
        (False, "FALSE"),
        (42, "42"),
        (1.5, "1.5"),
        (Decimal("2.50"), "2.50"),
        ("plain", "'plain'"),
        ("O'Brien", "'O''Brien'"),
        (date(2024, 1, 2), "'2024-01-02'"),
        (datetime(2024, 1, 2, 3, 4, 5), "'2024-01-02T03:04:05'"),
    ])
    def test_literals(self, value, expected):
        """Test each value kind."""
        assert statements.escape_value(value) == expected


class TestQuoting:
    """Test identifier quoting."""

    def test_double_quote(self):
        assert dq('we"ird') == '"we""ird"'

    def test_brackets(self):
        assert statements.quote_with("[", "]")("a]b") == "[a]]b]"

    def test_backticks(self):
        assert statements.quote_with("`")("a`b") == "`a``b`"


class TestCoerceOptions:
    """Test query option normalization."""

    def test_none(self):
        assert statements.coerce_options(None) == QueryOptions()

    def test_passthrough(self):
        options = QueryOptions(limit=5)
        assert statements.coerce_options(options) is options

    def test_mapping_with_camel_case_order(self):
        """Test plain mappings, including an orderBy key."""
        options = statements.coerce_options({
            "limit": 10,
            "offset": 20,
            "orderBy": [{"column": "name", "direction": "DESC"}],
            "where": {"active": True},
        })

        assert options.limit == 10
        assert options.offset == 20
        assert options.order_by == [OrderBy(column="name", direction="DESC")]
        assert options.where == {"active": True}

    def test_unsupported_type(self):
        with pytest.raises(TypeError):
            statements.coerce_options(["limit", 3])


class TestBuilders:
    """Test SELECT/INSERT/UPDATE/DELETE synthesis."""

    def test_select_plain(self):
        assert statements.build_select("users", None, dq) == 'SELECT * FROM "users"'

    def test_select_full(self):
        """Test where, order, limit and offset together."""
        options = QueryOptions(
            limit=10,
            offset=5,
            order_by=[OrderBy("created"), OrderBy("id", "DESC")],
            where={"name": "O'Brien", "active": True},
        )

        sql = statements.build_select("users", options, dq)

        assert sql == (
            'SELECT * FROM "users" WHERE "name" = \'O\'\'Brien\' AND "active" = TRUE '
            'ORDER BY "created" ASC, "id" DESC LIMIT 10 OFFSET 5'
        )

    def test_select_params_binds_filters(self):
        """Test filter values become parameters instead of literals."""
        options = QueryOptions(limit=2, where={"name": "\\' OR 1=1 --", "org": 4})

        sql, params = statements.build_select_params("users", options, dq, dollar)

        assert sql == 'SELECT * FROM "users" WHERE "name" = $1 AND "org" = $2 LIMIT 2'
        assert params == ["\\' OR 1=1 --", 4]

    def test_select_params_without_filters(self):
        assert statements.build_select_params("t", None, dq, dollar) == ('SELECT * FROM "t"', [])

    def test_select_zero_limit_omitted(self):
        """Test falsy limit and offset are not emitted."""
        sql = statements.build_select("t", QueryOptions(limit=0, offset=0), dq)

        assert sql == 'SELECT * FROM "t"'

    def test_insert(self):
        sql, params = statements.build_insert("users", {"id": 1, "name": "a"}, dq, dollar)

        assert sql == 'INSERT INTO "users" ("id", "name") VALUES ($1, $2)'
        assert params == [1, "a"]

    def test_update_placeholders_continue(self):
        """Test WHERE placeholders are numbered after SET placeholders."""
        sql, params = statements.build_update(
            "users", {"name": "b", "age": 3}, {"id": 7}, dq, dollar
        )

        assert sql == 'UPDATE "users" SET "name" = $1, "age" = $2 WHERE "id" = $3'
        assert params == ["b", 3, 7]

    def test_delete(self):
        sql, params = statements.build_delete("users", {"id": 7, "org": 2}, dq, lambda i: "?")

        assert sql == 'DELETE FROM "users" WHERE "id" = ? AND "org" = ?'
        assert params == [7, 2]


class TestInferColumns:
    """Test sampled column inference."""

    def test_first_seen_type_wins(self):
        samples = [{"a": 1}, {"a": "text", "b": None}]

        columns = statements.infer_columns(samples, lambda v: type(v).__name__)

        assert [(c.name, c.type, c.nullable) for c in columns] == [
            ("a", "int", False),
            ("b", "NoneType", True),
        ]

    def test_key_field_first(self):
        columns = statements.infer_columns(
            [{"name": "x", "_id": 1}], lambda v: "any", key_field="_id", key_type="ObjectId"
        )

        assert columns[0] == Column(name="_id", type="ObjectId", nullable=False, primary_key=True)
        assert [c.name for c in columns] == ["_id", "name"]

    def test_sample_size_bounds_inspection(self):
        samples = [{"a": 1}, {"b": 2}, {"c": 3}]

        columns = statements.infer_columns(samples, lambda v: "int", sample_size=2)

        assert [c.name for c in columns] == ["a", "b"]


class TestRenderPlanText:
    def test_rows_joined(self):
        rows = [{"id": 1, "detail": "SCAN t"}, {"id": 2, "detail": "USE INDEX"}]

        assert statements.render_plan_text(rows) == "1 SCAN t\n2 USE INDEX"


class TestProbeConnection:
    """Test the connection probe."""

    def _adapter(self, connected: bool) -> MagicMock:
        adapter = MagicMock()
        state = {"connected": connected}
        adapter.is_connected.side_effect = lambda: state["connected"]

        async def connect():
            state["connected"] = True

        async def disconnect():
            state["connected"] = False

        adapter.connect = AsyncMock(side_effect=connect)
        adapter.disconnect = AsyncMock(side_effect=disconnect)
        adapter.ping = AsyncMock(return_value=True)
        return adapter

    @pytest.mark.asyncio
    async def test_restores_disconnected_state(self):
        adapter = self._adapter(connected=False)

        assert await statements.probe_connection(adapter) is True

        adapter.connect.assert_awaited_once()
        adapter.disconnect.assert_awaited_once()
        assert adapter.is_connected() is False

    @pytest.mark.asyncio
    async def test_keeps_existing_connection(self):
        adapter = self._adapter(connected=True)

        assert await statements.probe_connection(adapter) is True

        adapter.connect.assert_not_awaited()
        adapter.disconnect.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_connect_failure_is_false(self):
        adapter = self._adapter(connected=False)
        adapter.connect.side_effect = RuntimeError("refused")

        assert await statements.probe_connection(adapter) is False
        adapter.disconnect.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_failed_disconnect_does_not_raise(self):
        adapter = self._adapter(connected=False)
        adapter.disconnect.side_effect = RuntimeError("already closed")

        assert await statements.probe_connection(adapter) is True


class TestCollectSchemaMetadata:
    """Test schema metadata assembly."""

    @pytest.mark.asyncio
    async def test_column_failure_isolated(self):
        """Test one failing table does not stop the others."""
        adapter = MagicMock()
        adapter.get_tables = AsyncMock(return_value=[Table(name="a"), Table(name="b", schema="s")])
        adapter.get_columns = AsyncMock(side_effect=[
            RuntimeError("permission denied"),
            [Column(name="id", type="int")],
        ])
        adapter.get_views = AsyncMock(side_effect=RuntimeError("no views"))

        metadata = await statements.collect_schema_metadata(adapter, "db")

        assert [t.name for t in metadata.tables] == ["a", "b"]
        assert metadata.tables[0].columns == []
        assert metadata.tables[1].schema == "s"
        assert [(c.name, c.type) for c in metadata.tables[1].columns] == [("id", "int")]
        assert metadata.views == []
        assert metadata.functions == [] and metadata.keywords == []
        adapter.get_tables.assert_awaited_once_with("db")

    @pytest.mark.asyncio
    async def test_views_included(self):
        adapter = MagicMock()
        adapter.get_tables = AsyncMock(return_value=[])
        adapter.get_views = AsyncMock(return_value=[View(name="v", schema="public")])

        metadata = await statements.collect_schema_metadata(adapter)

        assert [(v.name, v.schema) for v in metadata.views] == [("v", "public")]


class TestQueryResult:
    def test_failure(self):
        result = QueryResult.failure("boom", 1.5)

        assert result.error == "boom"
        assert result.rows == [] and result.columns == []
        assert result.row_count == 0
        assert result.execution_time == 1.5
        assert not result.ok
