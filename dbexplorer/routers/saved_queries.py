"""Saved query endpoints: named SQL texts kept per connection profile."""

from typing import Annotated

import structlog
from fastapi import APIRouter, Depends, Query, Response, status

from dbexplorer.credentials import CredentialStore
from dbexplorer.dependencies import get_credential_store
from dbexplorer.models.responses import (
    ErrorResponse,
    SavedQueryCreate,
    SavedQueryResponse,
    SavedQueryUpdate,
)

logger = structlog.get_logger()
router = APIRouter(prefix="/saved-queries", tags=["saved-queries"])

CredentialStoreDep = Annotated[CredentialStore, Depends(get_credential_store)]


@router.get(
    "",
    response_model=list[SavedQueryResponse],
    summary="List saved queries",
)
async def list_saved_queries(
    store: CredentialStoreDep,
    connection_id: int | None = Query(
        default=None, alias="connectionId", description="Only queries of this profile"
    ),
) -> list[SavedQueryResponse]:
    return [SavedQueryResponse(**saved) for saved in store.list_saved_queries(connection_id)]


@router.get(
    "/{query_id}",
    response_model=SavedQueryResponse,
    responses={404: {"model": ErrorResponse}},
    summary="Get saved query",
)
async def get_saved_query(query_id: int, store: CredentialStoreDep) -> SavedQueryResponse:
    return SavedQueryResponse(**store.get_saved_query(query_id))


@router.post(
    "",
    response_model=SavedQueryResponse,
    status_code=status.HTTP_201_CREATED,
    responses={404: {"model": ErrorResponse}},
    summary="Create saved query",
    description="Store a SQL text as-is. It is not parsed or checked against the target.",
)
async def create_saved_query(
    saved: SavedQueryCreate, store: CredentialStoreDep
) -> SavedQueryResponse:
    created = store.create_saved_query(saved.name, saved.query, saved.connection_id)
    return SavedQueryResponse(**created)


@router.put(
    "/{query_id}",
    response_model=SavedQueryResponse,
    responses={404: {"model": ErrorResponse}},
    summary="Update saved query",
)
async def update_saved_query(
    query_id: int, update: SavedQueryUpdate, store: CredentialStoreDep
) -> SavedQueryResponse:
    # An explicit null connectionId detaches the query; other nulls are ignored
    changes = {
        field: value
        for field, value in update.model_dump(exclude_unset=True).items()
        if value is not None or field == "connection_id"
    }
    updated = store.update_saved_query(query_id, changes)
    return SavedQueryResponse(**updated)


@router.delete(
    "/{query_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    responses={404: {"model": ErrorResponse}},
    summary="Delete saved query",
)
async def delete_saved_query(query_id: int, store: CredentialStoreDep) -> Response:
    store.delete_saved_query(query_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
