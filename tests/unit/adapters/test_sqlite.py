"""SQLite adapter tests against a real in-memory database."""

import pytest
import pytest_asyncio

from dbbridge.core.exceptions import ConfigurationError, DatabaseConnectionError, ErrorCodes
from dbbridge.database.adapters.sqlite import SQLiteAdapter
from dbbridge.database.models import OrderBy, QueryOptions

SCHEMA = [
    """
    CREATE TABLE authors (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        name TEXT NOT NULL,
        country TEXT DEFAULT 'NZ'
    )
    """,
    """
    CREATE TABLE books (
        id INTEGER PRIMARY KEY,
        author_id INTEGER REFERENCES authors(id) ON DELETE CASCADE,
        title TEXT
    )
    """,
    "CREATE UNIQUE INDEX books_title_idx ON books (title)",
    "CREATE VIEW prolific AS SELECT author_id, COUNT(*) AS n FROM books GROUP BY author_id",
    """
    CREATE TRIGGER books_touch AFTER UPDATE ON books
    BEGIN
        UPDATE authors SET name = name WHERE id = NEW.author_id;
    END
    """,
]


@pytest_asyncio.fixture
async def adapter(sqlite_config):
    adapter = SQLiteAdapter(sqlite_config)
    await adapter.connect()
    for statement in SCHEMA:
        result = await adapter.execute_query(statement)
        assert result.error is None, result.error
    yield adapter
    await adapter.disconnect()


class TestSQLiteLifecycle:
    """Test connecting to SQLite."""

    @pytest.mark.asyncio
    async def test_missing_path(self, make_config):
        adapter = SQLiteAdapter(make_config("sqlite", filename=None))

        with pytest.raises(ConfigurationError) as exc_info:
            await adapter.connect()

        assert exc_info.value.message == "SQLite requires a filename or database path"
        assert not adapter.is_connected()

    @pytest.mark.asyncio
    async def test_unopenable_path(self, make_config, temp_dir):
        adapter = SQLiteAdapter(make_config("sqlite", filename=str(temp_dir / "missing" / "x.db")))

        with pytest.raises(DatabaseConnectionError) as exc_info:
            await adapter.connect()

        assert exc_info.value.message.startswith("Failed to connect to SQLite: ")
        assert not adapter.is_connected()

    @pytest.mark.asyncio
    async def test_database_field_as_path(self, make_config, temp_dir):
        adapter = SQLiteAdapter(make_config("sqlite", filename=None, database=str(temp_dir / "app.db")))

        assert await adapter.test_connection() is True
        assert not adapter.is_connected()

    @pytest.mark.asyncio
    async def test_operations_require_connection(self, sqlite_config):
        adapter = SQLiteAdapter(sqlite_config)

        with pytest.raises(DatabaseConnectionError) as exc_info:
            await adapter.get_table_data("authors")

        assert exc_info.value.code == ErrorCodes.NOT_CONNECTED


class TestSQLiteData:
    """Test data access."""

    @pytest.mark.asyncio
    async def test_crud_round(self, adapter):
        inserted = await adapter.insert_row("authors", {"name": "Janet Frame"})
        await adapter.insert_row("authors", {"name": "Witi Ihimaera", "country": "Aotearoa"})
        updated = await adapter.update_row("authors", {"country": "NZ"}, {"name": "Witi Ihimaera"})

        assert inserted.affected_rows == 1
        assert updated.affected_rows == 1

        page = await adapter.get_table_data(
            "authors", QueryOptions(limit=1, offset=1, order_by=[OrderBy("id")])
        )
        assert page.rows == [{"id": 2, "name": "Witi Ihimaera", "country": "NZ"}]
        assert [c.name for c in page.columns] == ["id", "name", "country"]
        assert page.columns[0].type == "INTEGER"

        deleted = await adapter.delete_row("authors", {"id": 1})
        assert deleted.affected_rows == 1
        remaining = await adapter.get_table_data("authors", {"where": {"name": "Janet Frame"}})
        assert remaining.rows == []

    @pytest.mark.asyncio
    async def test_error_result(self, adapter):
        result = await adapter.execute_query("SELECT * FROM missing_table")

        assert result.error is not None
        assert "missing_table" in result.error
        assert result.rows == []

    @pytest.mark.asyncio
    async def test_parameters(self, adapter):
        await adapter.insert_row("authors", {"name": "Patricia Grace"})

        result = await adapter.execute_query("SELECT name FROM authors WHERE name = ?", ["Patricia Grace"])

        assert result.rows == [{"name": "Patricia Grace"}]
        assert result.row_count == 1

    @pytest.mark.asyncio
    async def test_transactions(self, adapter):
        assert (await adapter.begin_transaction()).ok
        await adapter.insert_row("authors", {"name": "Rolled Back"})
        assert (await adapter.rollback_transaction()).ok

        await adapter.begin_transaction()
        await adapter.insert_row("authors", {"name": "Kept"})
        assert (await adapter.commit_transaction()).ok

        result = await adapter.execute_query("SELECT name FROM authors")
        assert result.rows == [{"name": "Kept"}]


class TestSQLiteIntrospection:
    """Test metadata queries."""

    @pytest.mark.asyncio
    async def test_tables_and_columns(self, adapter):
        tables = await adapter.get_tables()

        assert [t.name for t in tables] == ["authors", "books"]
        authors = tables[0]
        assert authors.row_count == 0
        id_column, name_column, country = authors.columns
        assert id_column.primary_key and id_column.auto_increment
        assert name_column.nullable is False
        assert country.default_value == "'NZ'"

    @pytest.mark.asyncio
    async def test_indexes_and_foreign_keys(self, adapter):
        indexes = await adapter.get_indexes("books")
        foreign_keys = await adapter.get_foreign_keys("books")

        assert [(i.name, i.columns, i.unique) for i in indexes] == [("books_title_idx", ["title"], True)]
        assert len(foreign_keys) == 1
        fk = foreign_keys[0]
        assert fk.name == "fk_books_0"
        assert fk.columns == ["author_id"]
        assert fk.referenced_table == "authors"
        assert fk.on_delete == "CASCADE"

    @pytest.mark.asyncio
    async def test_primary_key(self, adapter):
        assert await adapter.get_primary_key("books") == ["id"]

    @pytest.mark.asyncio
    async def test_views_and_triggers(self, adapter):
        views = await adapter.get_views()
        triggers = await adapter.get_triggers("books")

        assert [v.name for v in views] == ["prolific"]
        assert "COUNT(*)" in await adapter.get_view_definition("prolific")
        assert [(t.name, t.timing, t.event) for t in triggers] == [("books_touch", "AFTER", "UPDATE")]

    @pytest.mark.asyncio
    async def test_schema(self, adapter):
        schema = await adapter.get_schema()

        assert schema.databases[0].name == "main"
        assert len(schema.databases[0].tables) == 2
        assert await adapter.get_databases() == ["main"]
        assert await adapter.get_schemas() == ["main"]

    @pytest.mark.asyncio
    async def test_version_and_explain(self, adapter):
        version = await adapter.get_version()
        plan = await adapter.explain_query("SELECT * FROM authors")

        assert version.count(".") >= 2
        assert plan.plan[0]["Node Type"] == "Seq Scan"
        assert "authors" in plan.text_representation
