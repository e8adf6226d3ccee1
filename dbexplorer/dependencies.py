"""FastAPI dependencies wiring the explorer services into routers.

The pool registry and the prober are created in the application lifespan
and live on ``app.state``; everything else is built per request around
them. Tests swap any of these through ``app.dependency_overrides``.

Usage in routers:
    @router.get("/tables/{connection_id}")
    async def list_tables(
        connection_id: int,
        introspector: Annotated[SchemaIntrospector, Depends(get_introspector)],
    ):
        ...
"""

from typing import Annotated

from fastapi import Depends, Request

from dbexplorer.config import settings
from dbexplorer.credentials import CredentialStore
from dbexplorer.database import MetadataDB, metadata_db
from dbexplorer.executor import QueryExecutor, TableReader
from dbexplorer.introspection import SchemaIntrospector
from dbexplorer.targets import ConnectionProber, PoolRegistry


def get_metadata_db() -> MetadataDB:
    return metadata_db


def get_pool_registry(request: Request) -> PoolRegistry:
    return request.app.state.pool_registry


def get_prober(request: Request) -> ConnectionProber:
    return request.app.state.prober


def get_credential_store(
    metadata: Annotated[MetadataDB, Depends(get_metadata_db)],
    registry: Annotated[PoolRegistry, Depends(get_pool_registry)],
    prober: Annotated[ConnectionProber, Depends(get_prober)],
) -> CredentialStore:
    return CredentialStore(metadata, registry, prober)


def get_introspector(
    registry: Annotated[PoolRegistry, Depends(get_pool_registry)],
) -> SchemaIntrospector:
    return SchemaIntrospector(registry, default_schema=settings.default_schema)


def get_executor(
    registry: Annotated[PoolRegistry, Depends(get_pool_registry)],
) -> QueryExecutor:
    return QueryExecutor(registry)


def get_table_reader(
    registry: Annotated[PoolRegistry, Depends(get_pool_registry)],
) -> TableReader:
    return TableReader(
        registry,
        default_schema=settings.default_schema,
        default_page_size=settings.default_page_size,
    )
