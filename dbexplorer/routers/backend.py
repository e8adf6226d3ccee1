"""Health check endpoint."""

from pathlib import Path
from typing import Annotated

import duckdb
import structlog
from fastapi import APIRouter, Depends, HTTPException, status

from dbexplorer.config import settings
from dbexplorer.database import MetadataDB
from dbexplorer.dependencies import get_metadata_db, get_pool_registry
from dbexplorer.models.responses import ErrorResponse, HealthResponse
from dbexplorer.targets import PoolRegistry

logger = structlog.get_logger()
router = APIRouter(tags=["backend"])


def _check_path_accessible(path: Path) -> bool:
    """Check if a path exists and is accessible."""
    try:
        return path.exists() and path.is_dir()
    except (OSError, PermissionError):
        return False


def _check_metadata_db(metadata: MetadataDB) -> bool:
    try:
        metadata.execute_one("SELECT 1")
        return True
    except (duckdb.Error, OSError) as e:
        logger.warning("health_metadata_check_failed", error=str(e))
        return False


@router.get(
    "/health",
    response_model=HealthResponse,
    responses={503: {"model": ErrorResponse}},
    summary="Health check",
    description="Check that local storage and the metadata store are reachable.",
)
async def health_check(
    metadata: Annotated[MetadataDB, Depends(get_metadata_db)],
    registry: Annotated[PoolRegistry, Depends(get_pool_registry)],
) -> HealthResponse:
    """
    Perform health check.

    Validates:
    - Storage paths are accessible
    - The metadata store answers a trivial query

    Target databases are not contacted.
    """
    path_status = {
        name: _check_path_accessible(path) for name, path in settings.storage_paths.items()
    }
    metadata_ok = _check_metadata_db(metadata)
    all_healthy = metadata_ok and all(path_status.values())

    logger.info(
        "health_check",
        status="healthy" if all_healthy else "unhealthy",
        path_status=path_status,
        metadata_available=metadata_ok,
        cached_pools=len(registry),
    )

    if not all_healthy:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail={
                "error": "storage_unavailable",
                "message": "Local storage or the metadata store is not accessible",
                "details": {**path_status, "metadata_db": metadata_ok},
            },
        )

    return HealthResponse(
        status="healthy",
        version=settings.api_version,
        storage_available=True,
        metadata_available=True,
        cached_pools=len(registry),
        details=path_status,
    )
