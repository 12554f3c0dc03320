"""Elasticsearch adapter tests."""

from unittest.mock import AsyncMock, MagicMock

import pytest

from dbbridge.database.adapters.elasticsearch import (
    ElasticsearchAdapter,
    es_type,
    flatten_mapping,
    parse_search,
)

SEARCH_RESPONSE = {
    "hits": {"hits": [
        {"_id": "1", "_index": "books", "_score": 1.0, "_source": {"title": "Dune", "year": 1965}},
    ]}
}


@pytest.fixture
def elastic(make_config, attach):
    client = MagicMock()
    client.search = AsyncMock(return_value=SEARCH_RESPONSE)
    client.sql.query = AsyncMock()
    return attach(ElasticsearchAdapter(make_config("elasticsearch")), client)


class TestElasticsearchHelpers:
    def test_flatten_mapping(self):
        properties = {
            "title": {"type": "text"},
            "author": {"properties": {"name": {"type": "keyword"}, "born": {"type": "date"}}},
        }

        assert [(c.name, c.type) for c in flatten_mapping(properties)] == [
            ("title", "text"), ("author.name", "keyword"), ("author.born", "date"),
        ]

    def test_parse_search(self):
        assert parse_search('{"query": {"match_all": {}}}') == {"query": {"match_all": {}}}
        assert parse_search("SELECT * FROM books") is None
        assert parse_search("[1, 2]") is None

    @pytest.mark.parametrize("value,expected", [
        (True, "boolean"), (1, "long"), (1.5, "double"), ("t", "text"), ([], "nested"), ({}, "object"),
    ])
    def test_es_type(self, value, expected):
        assert es_type(value) == expected

    def test_node_url(self, make_config):
        assert ElasticsearchAdapter(make_config("elasticsearch")).node_url() == "http://localhost:9200"
        assert ElasticsearchAdapter(make_config("elasticsearch", ssl=True, port=9243)).node_url() == (
            "https://localhost:9243"
        )


class TestElasticsearchQueries:
    @pytest.mark.asyncio
    async def test_json_search(self, elastic):
        result = await elastic.execute_query('{"index": "books", "query": {"match": {"title": "dune"}}}')

        elastic._client.search.assert_awaited_once_with(
            index="books", body={"query": {"match": {"title": "dune"}}}
        )
        assert result.rows == [{"_id": "1", "_index": "books", "_score": 1.0, "title": "Dune", "year": 1965}]
        assert result.columns[0].primary_key

    @pytest.mark.asyncio
    async def test_sql(self, elastic):
        elastic._client.sql.query.return_value = {
            "columns": [{"name": "title", "type": "text"}],
            "rows": [["Dune"]],
        }

        result = await elastic.execute_query("SELECT title FROM books WHERE year = ?", [1965])

        elastic._client.sql.query.assert_awaited_once_with(
            query="SELECT title FROM books WHERE year = ?", params=[1965]
        )
        assert result.rows == [{"title": "Dune"}]

    @pytest.mark.asyncio
    async def test_table_data_body(self, elastic):
        await elastic.get_table_data(
            "books", {"limit": 5, "offset": 10, "where": {"year": 1965}, "orderBy": [{"column": "title"}]}
        )

        elastic._client.search.assert_awaited_once_with(index="books", body={
            "size": 5,
            "from": 10,
            "query": {"bool": {"filter": [{"term": {"year": 1965}}]}},
            "sort": [{"title": {"order": "asc"}}],
        })

    @pytest.mark.asyncio
    async def test_update_by_query(self, elastic):
        elastic._client.update_by_query = AsyncMock(return_value={"updated": 2})

        result = await elastic.update_row("books", {"year": 1966}, {"title": "Dune"})

        script = elastic._client.update_by_query.await_args.kwargs["script"]
        assert script["source"] == "ctx._source['year'] = params.p0"
        assert script["params"] == {"p0": 1966}
        assert result.affected_rows == 2
        assert elastic._client.update_by_query.await_args.kwargs["query"] == {"bool": {"filter": [
            {"bool": {"should": [
                {"term": {"title": "Dune"}},
                {"term": {"title.keyword": "Dune"}},
            ], "minimum_should_match": 1}},
        ]}}

    @pytest.mark.asyncio
    async def test_delete_by_document_id(self, elastic):
        elastic._client.delete_by_query = AsyncMock(return_value={"deleted": 1})

        result = await elastic.delete_row("books", {"_id": "b1"})

        elastic._client.delete_by_query.assert_awaited_once_with(
            index="books", query={"bool": {"filter": [{"ids": {"values": ["b1"]}}]}}, refresh=True
        )
        assert result.affected_rows == 1

    @pytest.mark.asyncio
    async def test_insert_is_visible_immediately(self, elastic):
        """Test inserts refresh the index so the next read sees them."""
        elastic._client.index = AsyncMock(return_value={"_id": "b2", "result": "created"})

        result = await elastic.insert_row("books", {"title": "Emma"})

        elastic._client.index.assert_awaited_once_with(
            index="books", document={"title": "Emma"}, refresh=True
        )
        assert result.rows == [{"_id": "b2", "result": "created"}]

    @pytest.mark.asyncio
    async def test_columns_include_id(self, elastic):
        elastic._client.indices.get_mapping = AsyncMock(return_value={
            "books": {"mappings": {"properties": {"title": {"type": "text"}}}}
        })

        columns = await elastic.get_columns("books")

        assert [(c.name, c.type) for c in columns] == [("_id", "keyword"), ("title", "text")]

    @pytest.mark.asyncio
    async def test_tables_skip_hidden_indices(self, elastic):
        elastic._client.cat.indices = AsyncMock(return_value=[
            {"index": "books", "docs.count": "12"},
            {"index": ".kibana", "docs.count": "3"},
        ])

        tables = await elastic.get_tables()

        assert [(t.name, t.row_count) for t in tables] == [("books", 12)]

    @pytest.mark.asyncio
    async def test_explain_sql(self, elastic):
        elastic._client.sql.translate = AsyncMock(return_value={"size": 1000})

        plan = await elastic.explain_query("SELECT * FROM books")

        assert plan.plan == {"size": 1000}
