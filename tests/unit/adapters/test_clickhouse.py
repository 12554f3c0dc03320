"""ClickHouse adapter tests."""

from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest

from dbbridge.database.adapters.clickhouse import ClickHouseAdapter, bind_params, clickhouse_type


@pytest.fixture
def clickhouse(make_config, attach):
    client = MagicMock()
    client.query = AsyncMock()
    client.command = AsyncMock()
    return attach(ClickHouseAdapter(make_config("clickhouse", database="")), client)


class TestBindParams:
    def test_placeholders_become_named_parameters(self):
        assert bind_params("SELECT * FROM t WHERE a = ? AND b = ?", [1, "o'k"]) == (
            "SELECT * FROM t WHERE a = %(p0)s AND b = %(p1)s",
            {"p0": 1, "p1": "o'k"},
        )

    def test_ignores_question_marks_in_strings(self):
        assert bind_params("SELECT '?' AS q, `a?` AS c, ? AS v", [None]) == (
            "SELECT '?' AS q, `a?` AS c, %(p0)s AS v",
            {"p0": None},
        )

    def test_escaped_quote_keeps_string_open(self):
        assert bind_params("SELECT 'it\\'s ?', ?", [2]) == ("SELECT 'it\\'s ?', %(p0)s", {"p0": 2})

    def test_percent_doubled_when_bound(self):
        assert bind_params("SELECT ? WHERE s LIKE 'a%' AND 5 % 2 = 1", [1]) == (
            "SELECT %(p0)s WHERE s LIKE 'a%%' AND 5 %% 2 = 1",
            {"p0": 1},
        )

    def test_no_params(self):
        assert bind_params("SELECT '50%' WHERE x = ?", []) == ("SELECT '50%' WHERE x = ?", None)

    @pytest.mark.parametrize("value,expected", [
        (None, "Nullable(String)"), (True, "UInt8"), (3, "Int64"), (0.5, "Float64"),
        ([1], "Array(String)"), ("s", "String"),
    ])
    def test_clickhouse_type(self, value, expected):
        assert clickhouse_type(value) == expected


class TestClickHouseAdapter:
    def test_default_database(self, clickhouse):
        assert clickhouse.database == "default"

    @pytest.mark.asyncio
    async def test_select_goes_through_query(self, clickhouse):
        clickhouse._client.query.return_value = SimpleNamespace(
            column_names=("id", "note"),
            result_rows=[(1, None)],
            column_types=[SimpleNamespace(name="UInt32"), SimpleNamespace(name="Nullable(String)")],
        )

        result = await clickhouse.execute_query("SELECT id, note FROM t WHERE id = ?", [1])

        clickhouse._client.query.assert_awaited_once_with(
            "SELECT id, note FROM t WHERE id = %(p0)s", parameters={"p0": 1}
        )
        assert result.rows == [{"id": 1, "note": None}]
        assert [(c.type, c.nullable) for c in result.columns] == [
            ("UInt32", False), ("Nullable(String)", True),
        ]

    @pytest.mark.asyncio
    async def test_other_statements_go_through_command(self, clickhouse):
        clickhouse._client.command.return_value = SimpleNamespace(written_rows=3)

        result = await clickhouse.execute_query("INSERT INTO t VALUES (1), (2), (3)")

        clickhouse._client.query.assert_not_called()
        clickhouse._client.command.assert_awaited_once_with(
            "INSERT INTO t VALUES (1), (2), (3)", parameters=None
        )
        assert result.affected_rows == 3

    @pytest.mark.asyncio
    async def test_insert_keeps_backslashes_out_of_sql(self, clickhouse):
        """Test a value ending in a backslash is sent as a parameter."""
        await clickhouse.insert_row("files", {"path": "C:\\dir\\"})

        clickhouse._client.command.assert_awaited_once_with(
            "INSERT INTO `files` (`path`) VALUES (%(p0)s)", parameters={"p0": "C:\\dir\\"}
        )

    @pytest.mark.asyncio
    async def test_update_is_a_mutation(self, clickhouse):
        clickhouse._client.command.return_value = "Ok."

        await clickhouse.update_row("events", {"status": "done"}, {"id": 5})

        clickhouse._client.command.assert_awaited_once_with(
            "ALTER TABLE `events` UPDATE `status` = %(p0)s WHERE `id` = %(p1)s",
            parameters={"p0": "done", "p1": 5},
        )

    @pytest.mark.asyncio
    async def test_delete_binds_hostile_filter(self, clickhouse):
        hostile = "\\' OR 1=1 --"

        await clickhouse.delete_row("events", {"name": hostile, "id": 5})

        clickhouse._client.command.assert_awaited_once_with(
            "ALTER TABLE `events` DELETE WHERE `name` = %(p0)s AND `id` = %(p1)s",
            parameters={"p0": hostile, "p1": 5},
        )

    @pytest.mark.asyncio
    async def test_table_data_filters_are_bound(self, clickhouse):
        clickhouse._client.query.return_value = SimpleNamespace(
            column_names=(), result_rows=[], column_types=[]
        )

        await clickhouse.get_table_data("events", {"where": {"name": "x\\"}, "limit": 1})

        clickhouse._client.query.assert_awaited_once_with(
            "SELECT * FROM `events` WHERE `name` = %(p0)s LIMIT 1", parameters={"p0": "x\\"}
        )

    @pytest.mark.asyncio
    async def test_transactions_unsupported(self, clickhouse):
        assert (await clickhouse.rollback_transaction()).error == (
            "Transactions is not supported by ClickHouse"
        )
