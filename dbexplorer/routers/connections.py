"""Connection profile endpoints: CRUD plus a standalone reachability test."""

from typing import Annotated

import structlog
from fastapi import APIRouter, Depends, Response, status

from dbexplorer.credentials import CredentialStore
from dbexplorer.dependencies import get_credential_store
from dbexplorer.models.responses import (
    ConnectionCreate,
    ConnectionResponse,
    ConnectionTest,
    ConnectionTestResponse,
    ConnectionUpdate,
    ErrorResponse,
)

logger = structlog.get_logger()
router = APIRouter(prefix="/connections", tags=["connections"])

CredentialStoreDep = Annotated[CredentialStore, Depends(get_credential_store)]


@router.get(
    "",
    response_model=list[ConnectionResponse],
    summary="List connections",
    description="List all stored connection profiles ordered by name. Passwords are never returned.",
)
async def list_connections(store: CredentialStoreDep) -> list[ConnectionResponse]:
    profiles = store.list_profiles()
    return [ConnectionResponse(**profile) for profile in profiles]


@router.post(
    "/test",
    response_model=ConnectionTestResponse,
    responses={400: {"model": ErrorResponse}},
    summary="Test connection",
    description="Probe a candidate profile without storing it.",
)
async def test_connection(
    candidate: ConnectionTest, store: CredentialStoreDep
) -> ConnectionTestResponse:
    """
    Open a throwaway session against the candidate target.

    A failed probe is reported as a 400 ``connection_failed`` error carrying
    the driver message and the target that was tried.
    """
    await store.test_profile(candidate.model_dump())
    return ConnectionTestResponse(success=True)


@router.get(
    "/{connection_id}",
    response_model=ConnectionResponse,
    responses={404: {"model": ErrorResponse}},
    summary="Get connection",
)
async def get_connection(connection_id: int, store: CredentialStoreDep) -> ConnectionResponse:
    return ConnectionResponse(**store.get_profile(connection_id))


@router.post(
    "",
    response_model=ConnectionResponse,
    status_code=status.HTTP_201_CREATED,
    responses={400: {"model": ErrorResponse}},
    summary="Create connection",
    description="Probe the target and store the profile only if a session could be opened.",
)
async def create_connection(
    connection: ConnectionCreate, store: CredentialStoreDep
) -> ConnectionResponse:
    logger.info(
        "create_connection_start",
        name=connection.name,
        host=connection.host,
        port=connection.port,
        database=connection.database,
    )

    profile = await store.create_profile(connection.model_dump())

    logger.info("create_connection_success", connection_id=profile["id"])
    return ConnectionResponse(**profile)


@router.put(
    "/{connection_id}",
    response_model=ConnectionResponse,
    responses={400: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
    summary="Update connection",
    description=(
        "Partially update a profile. Changing host, port, database, username, "
        "password or ssl re-probes the target and drops the cached pool."
    ),
)
async def update_connection(
    connection_id: int, update: ConnectionUpdate, store: CredentialStoreDep
) -> ConnectionResponse:
    changes = update.model_dump(exclude_unset=True, exclude_none=True)
    logger.info(
        "update_connection_start",
        connection_id=connection_id,
        fields=sorted(changes),
    )

    profile = await store.update_profile(connection_id, changes)
    return ConnectionResponse(**profile)


@router.delete(
    "/{connection_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    responses={404: {"model": ErrorResponse}},
    summary="Delete connection",
    description="Delete a profile and its saved queries, and close its cached pool.",
)
async def delete_connection(connection_id: int, store: CredentialStoreDep) -> Response:
    await store.delete_profile(connection_id)
    logger.info("delete_connection_success", connection_id=connection_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
