"""Schema introspection against target databases.

Everything here is derived from the target's own catalogs
(information_schema and pg_catalog views); nothing about the target's
schema is known ahead of time and nothing is cached between calls.
"""

from dataclasses import dataclass, field

import structlog

from dbexplorer.targets import (
    PoolRegistry,
    gather_all,
    qualified_table_name,
    run_target_operation,
)

logger = structlog.get_logger()


# ============================================
# Catalog queries (PostgreSQL dialect)
# ============================================

LIST_DATABASES_SQL = """
SELECT datname
FROM pg_database
WHERE datistemplate = false
ORDER BY datname
"""

LIST_TABLES_SQL = """
SELECT table_name
FROM information_schema.tables
WHERE table_schema = $1
ORDER BY table_name
"""

COLUMNS_SQL = """
SELECT
    column_name,
    data_type,
    character_maximum_length,
    column_default,
    is_nullable
FROM information_schema.columns
WHERE table_schema = $1
  AND table_name = $2
ORDER BY ordinal_position
"""

PRIMARY_KEYS_SQL = """
SELECT kcu.column_name
FROM information_schema.table_constraints tc
JOIN information_schema.key_column_usage kcu
  ON tc.constraint_name = kcu.constraint_name
 AND tc.table_schema = kcu.table_schema
WHERE tc.constraint_type = 'PRIMARY KEY'
  AND tc.table_schema = $1
  AND tc.table_name = $2
ORDER BY kcu.ordinal_position
"""

FOREIGN_KEYS_SQL = """
SELECT
    kcu.column_name,
    ccu.table_name AS foreign_table_name,
    ccu.column_name AS foreign_column_name
FROM information_schema.table_constraints tc
JOIN information_schema.key_column_usage kcu
  ON tc.constraint_name = kcu.constraint_name
 AND tc.table_schema = kcu.table_schema
JOIN information_schema.constraint_column_usage ccu
  ON ccu.constraint_name = tc.constraint_name
 AND ccu.table_schema = tc.table_schema
WHERE tc.constraint_type = 'FOREIGN KEY'
  AND tc.table_schema = $1
  AND tc.table_name = $2
ORDER BY kcu.column_name
"""

INDEXES_SQL = """
SELECT indexname, indexdef
FROM pg_indexes
WHERE schemaname = $1
  AND tablename = $2
ORDER BY indexname
"""


# ============================================
# Descriptors
# ============================================


@dataclass
class ColumnDescriptor:
    name: str
    data_type: str
    max_length: int | None = None
    default: str | None = None
    nullable: bool = True


@dataclass
class ForeignKeyDescriptor:
    column_name: str
    foreign_table_name: str
    foreign_column_name: str


@dataclass
class IndexDescriptor:
    name: str
    definition: str


@dataclass
class TableSchemaDescriptor:
    """Point-in-time structure of one table. Never persisted."""

    name: str
    schema: str
    columns: list[ColumnDescriptor] = field(default_factory=list)
    primary_keys: list[str] = field(default_factory=list)
    foreign_keys: list[ForeignKeyDescriptor] = field(default_factory=list)
    indexes: list[IndexDescriptor] = field(default_factory=list)
    record_count: int = 0


class SchemaIntrospector:
    """Catalog-driven structure queries against a resolved target pool."""

    def __init__(self, registry: PoolRegistry, default_schema: str = "public"):
        self._registry = registry
        self._default_schema = default_schema

    @property
    def default_schema(self) -> str:
        return self._default_schema

    async def list_databases(self, profile_id: int) -> list[str]:
        """Names of the non-template databases on the target server."""
        pool = await self._registry.resolve(profile_id)
        rows = await run_target_operation(
            "list_databases", profile_id, pool.fetch(LIST_DATABASES_SQL)
        )
        return [row["datname"] for row in rows]

    async def list_tables(self, profile_id: int, schema: str | None = None) -> list[str]:
        """Table names in one schema of the target database."""
        schema = schema or self._default_schema
        pool = await self._registry.resolve(profile_id)
        rows = await run_target_operation(
            "list_tables", profile_id, pool.fetch(LIST_TABLES_SQL, schema), schema=schema
        )
        return [row["table_name"] for row in rows]

    async def describe(
        self, profile_id: int, table_name: str, schema: str | None = None
    ) -> TableSchemaDescriptor:
        """
        Build a TableSchemaDescriptor for one table.

        Issues the four catalog queries and the row count concurrently and
        combines them once all have finished.

        Raises:
            NotFoundError: unknown profile id
            ConnectionFailedError: target unreachable
            QueryFailedError: a catalog query or the count failed
                (a missing table fails the count)
        """
        schema = schema or self._default_schema
        from_clause = qualified_table_name(table_name, schema)
        pool = await self._registry.resolve(profile_id)

        logger.info(
            "describe_table_start",
            profile_id=profile_id,
            schema=schema,
            table_name=table_name,
        )

        results = await run_target_operation(
            "describe",
            profile_id,
            gather_all(
                pool.fetch(COLUMNS_SQL, schema, table_name),
                pool.fetch(PRIMARY_KEYS_SQL, schema, table_name),
                pool.fetch(FOREIGN_KEYS_SQL, schema, table_name),
                pool.fetch(INDEXES_SQL, schema, table_name),
                pool.fetchval(f"SELECT COUNT(*) FROM {from_clause}"),
            ),
            schema=schema,
            table_name=table_name,
        )
        columns, primary_keys, foreign_keys, indexes, record_count = results

        return TableSchemaDescriptor(
            name=table_name,
            schema=schema,
            columns=[
                ColumnDescriptor(
                    name=row["column_name"],
                    data_type=row["data_type"],
                    max_length=row["character_maximum_length"],
                    default=row["column_default"],
                    nullable=row["is_nullable"] == "YES",
                )
                for row in columns
            ],
            primary_keys=[row["column_name"] for row in primary_keys],
            foreign_keys=[
                ForeignKeyDescriptor(
                    column_name=row["column_name"],
                    foreign_table_name=row["foreign_table_name"],
                    foreign_column_name=row["foreign_column_name"],
                )
                for row in foreign_keys
            ],
            indexes=[
                IndexDescriptor(name=row["indexname"], definition=row["indexdef"])
                for row in indexes
            ],
            record_count=int(record_count),
        )

