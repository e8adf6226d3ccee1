"""Tests for the schema introspector and catalog listings."""

import asyncpg
import pytest

from dbexplorer.errors import ConnectionFailedError, NotFoundError, QueryFailedError
from dbexplorer.introspection import (
    COLUMNS_SQL,
    FOREIGN_KEYS_SQL,
    INDEXES_SQL,
    LIST_DATABASES_SQL,
    LIST_TABLES_SQL,
    PRIMARY_KEYS_SQL,
    SchemaIntrospector,
)
from dbexplorer.targets import PoolRegistry

from fakes import FakePoolFactory


PROFILES = {
    1: {"host": "db.internal", "port": 5432, "database": "shop", "username": "u", "password": "p", "ssl": False},
}

ORDERS_CATALOG = {
    COLUMNS_SQL: [
        {
            "column_name": "id",
            "data_type": "integer",
            "character_maximum_length": None,
            "column_default": "nextval('orders_id_seq'::regclass)",
            "is_nullable": "NO",
        },
        {
            "column_name": "customer_id",
            "data_type": "integer",
            "character_maximum_length": None,
            "column_default": None,
            "is_nullable": "NO",
        },
        {
            "column_name": "note",
            "data_type": "character varying",
            "character_maximum_length": 200,
            "column_default": None,
            "is_nullable": "YES",
        },
    ],
    PRIMARY_KEYS_SQL: [{"column_name": "id"}],
    FOREIGN_KEYS_SQL: [
        {
            "column_name": "customer_id",
            "foreign_table_name": "customers",
            "foreign_column_name": "id",
        }
    ],
    INDEXES_SQL: [
        {
            "indexname": "orders_pkey",
            "indexdef": "CREATE UNIQUE INDEX orders_pkey ON public.orders USING btree (id)",
        }
    ],
    'SELECT COUNT(*) FROM "public"."orders"': 42,
}


@pytest.fixture
def factory():
    return FakePoolFactory(dict(ORDERS_CATALOG))


@pytest.fixture
def introspector(factory):
    return SchemaIntrospector(PoolRegistry(PROFILES.get, factory))


class TestDescribe:
    """Tests for SchemaIntrospector.describe."""

    @pytest.mark.asyncio
    async def test_descriptor_assembled_from_catalog(self, introspector):
        descriptor = await introspector.describe(1, "orders")

        assert descriptor.name == "orders"
        assert descriptor.schema == "public"
        assert [c.name for c in descriptor.columns] == ["id", "customer_id", "note"]
        assert descriptor.columns[0].nullable is False
        assert descriptor.columns[0].default == "nextval('orders_id_seq'::regclass)"
        assert descriptor.columns[2].nullable is True
        assert descriptor.columns[2].max_length == 200
        assert descriptor.primary_keys == ["id"]
        assert len(descriptor.foreign_keys) == 1
        assert descriptor.foreign_keys[0].foreign_table_name == "customers"
        assert descriptor.indexes[0].name == "orders_pkey"
        assert descriptor.record_count == 42

    @pytest.mark.asyncio
    async def test_catalog_queries_bind_schema_and_table(self, introspector, factory):
        await introspector.describe(1, "orders")

        calls = dict(factory.pools[0].calls)
        for sql in (COLUMNS_SQL, PRIMARY_KEYS_SQL, FOREIGN_KEYS_SQL, INDEXES_SQL):
            assert calls[sql] == ("public", "orders")

    @pytest.mark.asyncio
    async def test_explicit_schema(self, factory):
        factory.responses['SELECT COUNT(*) FROM "sales"."orders"'] = 7
        introspector = SchemaIntrospector(PoolRegistry(PROFILES.get, factory))

        descriptor = await introspector.describe(1, "orders", schema="sales")

        assert descriptor.schema == "sales"
        assert descriptor.record_count == 7
        assert dict(factory.pools[0].calls)[COLUMNS_SQL] == ("sales", "orders")

    @pytest.mark.asyncio
    async def test_table_name_with_quote_is_escaped(self, factory):
        """Embedded double quotes stay inside one identifier."""
        factory.responses['SELECT COUNT(*) FROM "public"."odd""name"'] = 0
        introspector = SchemaIntrospector(PoolRegistry(PROFILES.get, factory))

        descriptor = await introspector.describe(1, 'odd"name')

        assert descriptor.record_count == 0

    @pytest.mark.asyncio
    async def test_missing_table_is_query_failure(self, factory):
        factory.responses['SELECT COUNT(*) FROM "public"."ghost"'] = asyncpg.UndefinedTableError(
            'relation "public.ghost" does not exist'
        )
        introspector = SchemaIntrospector(PoolRegistry(PROFILES.get, factory))

        with pytest.raises(QueryFailedError) as exc_info:
            await introspector.describe(1, "ghost")

        assert exc_info.value.message == (
            'Query execution failed: relation "public.ghost" does not exist'
        )
        assert exc_info.value.details["sqlstate"] == "42P01"
        assert exc_info.value.details["table_name"] == "ghost"

    @pytest.mark.asyncio
    async def test_lost_connection_is_connection_failure(self, factory):
        factory.responses[COLUMNS_SQL] = ConnectionResetError("connection reset by peer")
        introspector = SchemaIntrospector(PoolRegistry(PROFILES.get, factory))

        with pytest.raises(ConnectionFailedError):
            await introspector.describe(1, "orders")

    @pytest.mark.asyncio
    async def test_unknown_profile(self, introspector, factory):
        with pytest.raises(NotFoundError):
            await introspector.describe(5, "orders")

        assert factory.pools == []


class TestListings:
    """Tests for database and table listings."""

    @pytest.mark.asyncio
    async def test_list_databases(self, factory):
        factory.responses[LIST_DATABASES_SQL] = [{"datname": "postgres"}, {"datname": "shop"}]
        introspector = SchemaIntrospector(PoolRegistry(PROFILES.get, factory))

        assert await introspector.list_databases(1) == ["postgres", "shop"]

    @pytest.mark.asyncio
    async def test_list_tables_defaults_schema(self, factory):
        factory.responses[LIST_TABLES_SQL] = lambda schema: (
            [{"table_name": "customers"}, {"table_name": "orders"}] if schema == "public" else []
        )
        introspector = SchemaIntrospector(PoolRegistry(PROFILES.get, factory))

        assert await introspector.list_tables(1) == ["customers", "orders"]
        assert await introspector.list_tables(1, "archive") == []
