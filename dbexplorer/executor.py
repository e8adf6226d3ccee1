"""Ad-hoc SQL execution and paginated table reads against target databases.

Results are mapped from asyncpg records into plain containers before they
leave this module, so routers never see driver-native row types.
"""

import datetime
import uuid
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any

import asyncpg
import structlog

from dbexplorer.targets import (
    PoolRegistry,
    gather_all,
    qualified_table_name,
    run_target_operation,
)

logger = structlog.get_logger()

# Postgres refuses to prepare statement text holding several commands
MULTIPLE_COMMANDS_MARKER = "multiple commands"


@dataclass
class FieldDescriptor:
    name: str
    data_type_id: int
    data_type: str


@dataclass
class QueryResult:
    """Uniform result of one executed statement text."""

    rows: list[dict[str, Any]] = field(default_factory=list)
    row_count: int | None = None
    fields: list[FieldDescriptor] = field(default_factory=list)


@dataclass
class TablePage:
    rows: list[dict[str, Any]] = field(default_factory=list)
    total: int = 0


# ============================================
# Driver value mapping
# ============================================


# Values FastAPI encodes natively
_JSON_NATIVE_TYPES = (
    str,
    int,
    float,
    Decimal,
    datetime.date,
    datetime.time,
    datetime.timedelta,
    uuid.UUID,
)


def _range_to_text(value: asyncpg.Range) -> str:
    if value.isempty:
        return "empty"
    lower = "" if value.lower is None else str(value.lower)
    upper = "" if value.upper is None else str(value.upper)
    return (
        ("[" if value.lower_inc else "(")
        + f"{lower},{upper}"
        + ("]" if value.upper_inc else ")")
    )


def _coordinate_to_text(number: float) -> str:
    return str(int(number)) if number.is_integer() else repr(number)


def _path_to_text(value: asyncpg.Path) -> str:
    points = ",".join(
        f"({_coordinate_to_text(point.x)},{_coordinate_to_text(point.y)})"
        for point in value.points
    )
    # Closed paths and polygons print in parentheses, open paths in brackets
    return f"({points})" if value.is_closed else f"[{points}]"


def to_json_value(value: Any) -> Any:
    """
    Map one driver value onto something JSON can carry.

    Scalars, dates, decimals and UUIDs pass through (FastAPI encodes them);
    bytea, ranges, bit strings, paths and polygons use the Postgres text
    form. Composite values become dicts, arrays and tuple-shaped geometric
    values become lists. Anything else is rendered with ``str``.
    """
    if value is None or isinstance(value, _JSON_NATIVE_TYPES):
        return value
    if isinstance(value, (bytes, bytearray, memoryview)):
        return "\\x" + bytes(value).hex()
    if isinstance(value, (asyncpg.Record, dict)):
        return {key: to_json_value(item) for key, item in value.items()}
    if isinstance(value, asyncpg.Range):
        return _range_to_text(value)
    if isinstance(value, asyncpg.BitString):
        return value.as_string()
    if isinstance(value, asyncpg.Path):
        return _path_to_text(value)
    if isinstance(value, (list, tuple)):
        return [to_json_value(item) for item in value]
    return str(value)


def record_to_row(record: Any) -> dict[str, Any]:
    """Convert an asyncpg Record (or any mapping) into a column -> value dict."""
    return {key: to_json_value(value) for key, value in record.items()}


def parse_row_count(status: str | None) -> int | None:
    """
    Row count from a command status tag.

    ``SELECT 3`` -> 3, ``INSERT 0 5`` -> 5, ``CREATE TABLE`` -> None.
    """
    if not status:
        return None
    last = status.rsplit(" ", 1)[-1]
    return int(last) if last.isdigit() else None


# ============================================
# Query executor
# ============================================


class QueryExecutor:
    """
    Runs caller-supplied SQL exactly as given.

    No parameterization, no statement-type restriction and no timeout. Each
    call checks out one pooled session for its duration.
    """

    def __init__(self, registry: PoolRegistry):
        self._registry = registry

    async def execute(self, profile_id: int, sql: str) -> QueryResult:
        """
        Execute a statement text against a profile's target.

        Raises:
            NotFoundError: unknown profile id
            ConnectionFailedError: target unreachable
            QueryFailedError: the target rejected the statement
        """
        pool = await self._registry.resolve(profile_id)
        logger.info("query_execute_start", profile_id=profile_id, sql_length=len(sql))

        result = await run_target_operation(
            "execute", profile_id, self._run(pool, sql)
        )

        logger.info(
            "query_execute_complete",
            profile_id=profile_id,
            row_count=result.row_count,
            field_count=len(result.fields),
        )
        return result

    async def _run(self, pool: Any, sql: str) -> QueryResult:
        async with pool.acquire() as conn:
            try:
                statement = await conn.prepare(sql)
            except asyncpg.PostgresSyntaxError as e:
                if MULTIPLE_COMMANDS_MARKER not in str(e):
                    raise
                # Simple-query protocol: no result rows, status of the last command
                status = await conn.execute(sql)
                return QueryResult(row_count=parse_row_count(status))

            records = await statement.fetch()
            fields = [
                FieldDescriptor(
                    name=attribute.name,
                    data_type_id=attribute.type.oid,
                    data_type=attribute.type.name,
                )
                for attribute in statement.get_attributes()
            ]
            return QueryResult(
                rows=[record_to_row(record) for record in records],
                row_count=parse_row_count(statement.get_statusmsg()),
                fields=fields,
            )


# ============================================
# Paginated table reader
# ============================================


class TableReader:
    """COUNT plus LIMIT/OFFSET page reads of one table."""

    def __init__(
        self,
        registry: PoolRegistry,
        default_schema: str = "public",
        default_page_size: int = 50,
    ):
        self._registry = registry
        self._default_schema = default_schema
        self._default_page_size = default_page_size

    async def read(
        self,
        profile_id: int,
        table_name: str,
        page: int = 1,
        page_size: int | None = None,
        schema: str | None = None,
    ) -> TablePage:
        """
        Read one page of a table together with its total row count.

        ``page`` and ``page_size`` go to the target unchecked; a zero or
        negative value behaves however the target defines LIMIT/OFFSET for
        it. The count and the page are separate statements, so a table
        modified in between may yield a page inconsistent with ``total``.
        """
        if page_size is None:
            page_size = self._default_page_size
        schema = schema or self._default_schema
        from_clause = qualified_table_name(table_name, schema)
        offset = (page - 1) * page_size
        pool = await self._registry.resolve(profile_id)

        total, records = await run_target_operation(
            "read",
            profile_id,
            gather_all(
                pool.fetchval(f"SELECT COUNT(*) FROM {from_clause}"),
                pool.fetch(
                    f"SELECT * FROM {from_clause} LIMIT $1 OFFSET $2",
                    page_size,
                    offset,
                ),
            ),
            schema=schema,
            table_name=table_name,
        )

        logger.debug(
            "table_page_read",
            profile_id=profile_id,
            table_name=table_name,
            page=page,
            page_size=page_size,
            total=total,
        )
        return TablePage(
            rows=[record_to_row(record) for record in records],
            total=int(total),
        )
