"""Tests for the query executor and the paginated table reader."""

from datetime import date
from decimal import Decimal
from ipaddress import ip_network

import asyncpg
import pytest

from dbexplorer.errors import ConnectionFailedError, NotFoundError, QueryFailedError
from dbexplorer.executor import (
    QueryExecutor,
    TableReader,
    parse_row_count,
    to_json_value,
)
from dbexplorer.targets import PoolRegistry

from fakes import FakePoolFactory, SimpleProtocolOnly, StatementResult


PROFILES = {
    1: {"host": "db.internal", "port": 5432, "database": "shop", "username": "u", "password": "p", "ssl": False},
}

INT4_OID = 23


@pytest.fixture
def factory():
    return FakePoolFactory()


@pytest.fixture
def registry(factory):
    return PoolRegistry(PROFILES.get, factory)


class TestQueryExecutor:
    """Tests for QueryExecutor.execute."""

    @pytest.mark.asyncio
    async def test_select_literal(self, registry, factory):
        factory.responses["SELECT 1 AS x"] = StatementResult(
            rows=[{"x": 1}], columns=[("x", INT4_OID, "int4")], status="SELECT 1"
        )

        result = await QueryExecutor(registry).execute(1, "SELECT 1 AS x")

        assert result.rows == [{"x": 1}]
        assert result.row_count == 1
        assert [f.name for f in result.fields] == ["x"]
        assert result.fields[0].data_type_id == INT4_OID
        assert result.fields[0].data_type == "int4"

    @pytest.mark.asyncio
    async def test_statement_runs_on_one_session(self, registry, factory):
        factory.responses["SELECT 1 AS x"] = StatementResult(status="SELECT 0")

        await QueryExecutor(registry).execute(1, "SELECT 1 AS x")

        pool = factory.pools[0]
        assert pool.acquired == pool.released == 1

    @pytest.mark.asyncio
    async def test_dml_reports_affected_rows(self, registry, factory):
        sql = "UPDATE orders SET note = 'x' WHERE id < 4"
        factory.responses[sql] = StatementResult(status="UPDATE 3")

        result = await QueryExecutor(registry).execute(1, sql)

        assert result.rows == []
        assert result.fields == []
        assert result.row_count == 3

    @pytest.mark.asyncio
    async def test_multiple_statements_use_simple_protocol(self, registry, factory):
        sql = "CREATE TABLE t (id int); INSERT INTO t VALUES (1), (2)"
        factory.responses[sql] = SimpleProtocolOnly(status="INSERT 0 2")

        result = await QueryExecutor(registry).execute(1, sql)

        assert result.rows == []
        assert result.fields == []
        assert result.row_count == 2

    @pytest.mark.asyncio
    async def test_missing_relation_is_query_failure(self, registry, factory):
        sql = "SELECT * FROM nonexistent_table"
        factory.responses[sql] = asyncpg.UndefinedTableError(
            'relation "nonexistent_table" does not exist'
        )

        with pytest.raises(QueryFailedError) as exc_info:
            await QueryExecutor(registry).execute(1, sql)

        assert "nonexistent_table" in exc_info.value.message
        assert exc_info.value.message.startswith("Query execution failed: ")

    @pytest.mark.asyncio
    async def test_other_syntax_errors_are_not_retried(self, registry, factory):
        sql = "SELEKT 1"
        factory.responses[sql] = asyncpg.PostgresSyntaxError('syntax error at or near "SELEKT"')

        with pytest.raises(QueryFailedError) as exc_info:
            await QueryExecutor(registry).execute(1, sql)

        assert exc_info.value.details["sqlstate"] == "42601"
        assert len(factory.pools[0].calls) == 1

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "error",
        [
            asyncpg.ConnectionDoesNotExistError(
                "connection was closed in the middle of operation"
            ),
            asyncpg.AdminShutdownError(
                "terminating connection due to administrator command"
            ),
            ConnectionResetError(104, "Connection reset by peer"),
        ],
    )
    async def test_lost_session_is_connection_failure(self, registry, factory, error):
        sql = "SELECT pg_sleep(60)"
        factory.responses[sql] = error

        with pytest.raises(ConnectionFailedError) as exc_info:
            await QueryExecutor(registry).execute(1, sql)

        assert exc_info.value.message.startswith("Lost connection to database: ")
        assert exc_info.value.details["connection_id"] == 1

    @pytest.mark.asyncio
    async def test_unknown_profile(self, registry):
        with pytest.raises(NotFoundError):
            await QueryExecutor(registry).execute(9, "SELECT 1")


class TestValueMapping:
    """Tests for driver value mapping helpers."""

    @pytest.mark.parametrize(
        "status,expected",
        [
            ("SELECT 5", 5),
            ("INSERT 0 12", 12),
            ("DELETE 0", 0),
            ("CREATE TABLE", None),
            ("", None),
            (None, None),
        ],
    )
    def test_parse_row_count(self, status, expected):
        assert parse_row_count(status) == expected

    def test_bytea_uses_hex_text_form(self):
        assert to_json_value(b"\x00\xff") == "\\x00ff"

    def test_range_uses_postgres_text_form(self):
        assert to_json_value(asyncpg.Range(1, 10)) == "[1,10)"
        assert to_json_value(asyncpg.Range(empty=True)) == "empty"
        assert to_json_value(asyncpg.Range(None, 5, upper_inc=True)) == "(,5]"

    def test_bit_string_uses_text_form(self):
        assert to_json_value(asyncpg.BitString("1011")) == "1011"

    def test_lists_and_plain_values(self):
        assert to_json_value([b"\x01", 2]) == ["\\x01", 2]
        assert to_json_value(Decimal("1.50")) == Decimal("1.50")
        assert to_json_value(date(2024, 1, 31)) == date(2024, 1, 31)

    def test_paths_and_polygons_use_postgres_text_form(self):
        assert to_json_value(asyncpg.Path((0, 0), (1, 1))) == "[(0,0),(1,1)]"
        assert to_json_value(asyncpg.Path((0, 0), (1.5, 2), is_closed=True)) == "((0,0),(1.5,2))"
        assert to_json_value(asyncpg.Polygon((0, 0), (0, 1), (1, 0))) == "((0,0),(0,1),(1,0))"

    def test_tuple_shaped_geometry_becomes_lists(self):
        assert to_json_value(asyncpg.Point(1, 2)) == [1.0, 2.0]
        assert to_json_value(asyncpg.Box((2, 2), (0, 0))) == [[2.0, 2.0], [0.0, 0.0]]

    def test_composite_values_are_mapped_recursively(self):
        composite = {"id": 7, "tags": [b"\x0a"], "area": asyncpg.Polygon((0, 0), (1, 1), (1, 0))}

        assert to_json_value(composite) == {
            "id": 7,
            "tags": ["\\x0a"],
            "area": "((0,0),(1,1),(1,0))",
        }

    def test_unknown_types_fall_back_to_text(self):
        assert to_json_value(ip_network("10.0.0.0/8")) == "10.0.0.0/8"


def _numbered_rows(limit, offset, total=25):
    return [{"id": i} for i in range(offset + 1, min(offset + limit, total) + 1)]


class TestTableReader:
    """Tests for TableReader.read."""

    @pytest.fixture
    def reader(self, registry, factory):
        factory.responses['SELECT COUNT(*) FROM "public"."items"'] = 25
        factory.responses['SELECT * FROM "public"."items" LIMIT $1 OFFSET $2'] = _numbered_rows
        return TableReader(registry, default_page_size=50)

    @pytest.mark.asyncio
    async def test_first_page(self, reader):
        page = await reader.read(1, "items", page=1, page_size=10)

        assert len(page.rows) == 10
        assert page.rows[0] == {"id": 1}
        assert page.total == 25

    @pytest.mark.asyncio
    async def test_last_partial_page(self, reader):
        page = await reader.read(1, "items", page=3, page_size=10)

        assert [row["id"] for row in page.rows] == [21, 22, 23, 24, 25]
        assert page.total == 25

    @pytest.mark.asyncio
    async def test_defaults(self, reader, factory):
        page = await reader.read(1, "items")

        assert len(page.rows) == 25
        limit_call = [args for sql, args in factory.pools[0].calls if "LIMIT" in sql]
        assert limit_call == [(50, 0)]

    @pytest.mark.asyncio
    async def test_page_values_pass_through_unchecked(self, reader, factory):
        """Zero and negative values reach the target as given."""
        factory.responses['SELECT * FROM "public"."items" LIMIT $1 OFFSET $2'] = (
            lambda limit, offset: asyncpg.DataError("OFFSET must not be negative")
            if offset < 0
            else []
        )

        with pytest.raises(QueryFailedError) as exc_info:
            await reader.read(1, "items", page=0, page_size=10)

        assert "OFFSET must not be negative" in exc_info.value.message
