"""Prometheus metrics endpoint router.

Exposes /metrics endpoint for Prometheus scraping.
Also refreshes the metadata gauges on every scrape.
"""

from typing import Annotated

import asyncpg
import duckdb
import structlog
from fastapi import APIRouter, Depends
from fastapi.responses import PlainTextResponse
from prometheus_client import generate_latest, CONTENT_TYPE_LATEST

from dbexplorer.config import settings
from dbexplorer.database import MetadataDB
from dbexplorer.dependencies import get_metadata_db, get_pool_registry
from dbexplorer.metrics import (
    CONNECTION_PROFILES_TOTAL,
    METADATA_SIZE_BYTES,
    SAVED_QUERIES_TOTAL,
    TARGET_POOLS_ACTIVE,
    set_service_info,
)
from dbexplorer.targets import PoolRegistry

logger = structlog.get_logger()

router = APIRouter(tags=["metrics"])


def collect_metadata_metrics(metadata: MetadataDB, registry: PoolRegistry) -> None:
    """Collect current gauges from the metadata store and the pool registry."""
    TARGET_POOLS_ACTIVE.set(len(registry))

    try:
        CONNECTION_PROFILES_TOTAL.set(metadata.count_connections())
        SAVED_QUERIES_TOTAL.set(metadata.count_saved_queries())

        metadata_path = settings.metadata_db_path
        if metadata_path.exists():
            METADATA_SIZE_BYTES.set(metadata_path.stat().st_size)
    except (duckdb.Error, OSError) as e:
        logger.error("metrics_collection_failed", error=str(e))


@router.get(
    "/metrics",
    response_class=PlainTextResponse,
    summary="Prometheus metrics endpoint",
    description="Returns metrics in Prometheus text format for scraping.",
)
async def get_metrics(
    metadata: Annotated[MetadataDB, Depends(get_metadata_db)],
    registry: Annotated[PoolRegistry, Depends(get_pool_registry)],
):
    """
    Expose Prometheus metrics.

    Returns metrics in text/plain format using Prometheus exposition format.
    """
    set_service_info(
        version=settings.api_version,
        duckdb_version=duckdb.__version__,
        asyncpg_version=asyncpg.__version__,
    )

    collect_metadata_metrics(metadata, registry)

    return PlainTextResponse(
        content=generate_latest(),
        media_type=CONTENT_TYPE_LATEST
    )
