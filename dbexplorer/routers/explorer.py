"""Explorer endpoints: catalog listings, table structure, table pages, ad-hoc SQL.

Every endpoint takes a connection profile id and works against that
profile's cached pool, building it on first use.
"""

from typing import Annotated

import structlog
from fastapi import APIRouter, Depends, Query

from dbexplorer.dependencies import get_executor, get_introspector, get_table_reader
from dbexplorer.executor import QueryExecutor, TableReader
from dbexplorer.introspection import SchemaIntrospector
from dbexplorer.models.responses import (
    DatabaseListResponse,
    ErrorResponse,
    QueryRequest,
    QueryResultResponse,
    TableDataResponse,
    TableListResponse,
    TableSchemaResponse,
)

logger = structlog.get_logger()
router = APIRouter(tags=["explorer"])

TARGET_ERROR_RESPONSES = {
    400: {"model": ErrorResponse},
    404: {"model": ErrorResponse},
}

SchemaQuery = Annotated[
    str | None,
    Query(description="Schema on the target (defaults to the configured schema)"),
]


@router.get(
    "/databases/{connection_id}",
    response_model=DatabaseListResponse,
    responses=TARGET_ERROR_RESPONSES,
    summary="List databases",
    description="List the non-template databases on the target server.",
)
async def list_databases(
    connection_id: int,
    introspector: Annotated[SchemaIntrospector, Depends(get_introspector)],
) -> DatabaseListResponse:
    databases = await introspector.list_databases(connection_id)
    return DatabaseListResponse(databases=databases)


@router.get(
    "/tables/{connection_id}",
    response_model=TableListResponse,
    responses=TARGET_ERROR_RESPONSES,
    summary="List tables",
)
async def list_tables(
    connection_id: int,
    introspector: Annotated[SchemaIntrospector, Depends(get_introspector)],
    schema: SchemaQuery = None,
) -> TableListResponse:
    tables = await introspector.list_tables(connection_id, schema)
    return TableListResponse(schema=schema or introspector.default_schema, tables=tables)


@router.get(
    "/schema/{connection_id}/{table_name}",
    response_model=TableSchemaResponse,
    responses=TARGET_ERROR_RESPONSES,
    summary="Describe table",
    description=(
        "Columns, primary key, foreign keys, indexes and row count of one table, "
        "read from the target's catalogs on every call."
    ),
)
async def describe_table(
    connection_id: int,
    table_name: str,
    introspector: Annotated[SchemaIntrospector, Depends(get_introspector)],
    schema: SchemaQuery = None,
) -> TableSchemaResponse:
    descriptor = await introspector.describe(connection_id, table_name, schema)
    return TableSchemaResponse.model_validate(descriptor)


@router.get(
    "/data/{connection_id}/{table_name}",
    response_model=TableDataResponse,
    responses=TARGET_ERROR_RESPONSES,
    summary="Read table page",
    description="One LIMIT/OFFSET page of a table plus its total row count.",
)
async def read_table(
    connection_id: int,
    table_name: str,
    reader: Annotated[TableReader, Depends(get_table_reader)],
    page: int = Query(default=1, description="1-based page number"),
    page_size: int | None = Query(
        default=None, alias="pageSize", description="Rows per page"
    ),
    schema: SchemaQuery = None,
) -> TableDataResponse:
    table_page = await reader.read(
        connection_id, table_name, page=page, page_size=page_size, schema=schema
    )
    return TableDataResponse.model_validate(table_page)


@router.post(
    "/query/{connection_id}",
    response_model=QueryResultResponse,
    responses=TARGET_ERROR_RESPONSES,
    summary="Execute SQL",
    description=(
        "Run a statement text exactly as given. Any statement type is allowed "
        "and no timeout is applied."
    ),
)
async def execute_query(
    connection_id: int,
    request: QueryRequest,
    executor: Annotated[QueryExecutor, Depends(get_executor)],
) -> QueryResultResponse:
    result = await executor.execute(connection_id, request.query)
    return QueryResultResponse.model_validate(result)
