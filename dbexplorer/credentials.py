"""Credential store - connection profile and saved query lifecycle.

Wraps the metadata store with the rules that involve the target side:
new or re-pointed profiles must pass a live probe before they are
persisted, and any cached pool is evicted once a profile's connection
fields change or the profile is deleted.
"""

from typing import Any

import structlog

from dbexplorer.database import MetadataDB
from dbexplorer.errors import NotFoundError
from dbexplorer.targets import (
    ConnectionParams,
    ConnectionProber,
    PoolRegistry,
    connection_fields_changed,
)

logger = structlog.get_logger()


class CredentialStore:
    def __init__(
        self,
        metadata: MetadataDB,
        registry: PoolRegistry,
        prober: ConnectionProber,
    ):
        self._metadata = metadata
        self._registry = registry
        self._prober = prober

    # ========================================
    # Connection profiles
    # ========================================

    def list_profiles(self) -> list[dict[str, Any]]:
        return self._metadata.list_connections()

    def get_profile(self, profile_id: int) -> dict[str, Any]:
        """Get a profile or raise NotFoundError."""
        profile = self._metadata.get_connection(profile_id)
        if profile is None:
            raise NotFoundError(
                f"Connection {profile_id} not found",
                {"connection_id": profile_id},
            )
        return profile

    async def test_profile(self, candidate: dict[str, Any]) -> None:
        """Probe a candidate profile without persisting anything."""
        await self._prober.verify(ConnectionParams.from_profile(candidate))

    async def create_profile(self, data: dict[str, Any]) -> dict[str, Any]:
        """
        Probe the candidate, then persist it.

        An unreachable candidate raises ConnectionFailedError and nothing
        is written.
        """
        params = ConnectionParams.from_profile(data)
        await self._prober.verify(params)

        return self._metadata.create_connection(
            name=data["name"],
            host=params.host,
            port=params.port,
            database=params.database,
            username=params.username,
            password=params.password,
            ssl=params.ssl,
        )

    async def update_profile(
        self, profile_id: int, changes: dict[str, Any]
    ) -> dict[str, Any]:
        """
        Apply a partial update.

        When a connection-affecting field changes, the merged profile is
        probed before anything is written and the cached pool is evicted
        afterwards. Display-name-only edits skip both.
        """
        current = self.get_profile(profile_id)
        repointed = connection_fields_changed(current, changes)

        if repointed:
            await self._prober.verify(ConnectionParams.from_profile({**current, **changes}))

        updated = self._metadata.update_connection(profile_id, changes)
        if updated is None:
            raise NotFoundError(
                f"Connection {profile_id} not found",
                {"connection_id": profile_id},
            )

        if repointed:
            await self._registry.evict(profile_id)
            logger.info("connection_profile_repointed", profile_id=profile_id)
            # Eviction clears is_active; return the row as it is now
            updated = self.get_profile(profile_id)
        return updated

    async def delete_profile(self, profile_id: int) -> None:
        """Delete a profile and its saved queries, then drop its pool."""
        if not self._metadata.delete_connection(profile_id):
            raise NotFoundError(
                f"Connection {profile_id} not found",
                {"connection_id": profile_id},
            )
        await self._registry.evict(profile_id)

    # ========================================
    # Saved queries
    # ========================================

    def _require_profile_reference(self, connection_id: int | None) -> None:
        if connection_id is not None and self._metadata.get_connection(connection_id) is None:
            raise NotFoundError(
                f"Connection {connection_id} not found",
                {"connection_id": connection_id},
            )

    def list_saved_queries(self, connection_id: int | None = None) -> list[dict[str, Any]]:
        return self._metadata.list_saved_queries(connection_id)

    def get_saved_query(self, query_id: int) -> dict[str, Any]:
        """Get a saved query or raise NotFoundError."""
        saved = self._metadata.get_saved_query(query_id)
        if saved is None:
            raise NotFoundError(
                f"Saved query {query_id} not found",
                {"query_id": query_id},
            )
        return saved

    def create_saved_query(
        self, name: str, query: str, connection_id: int | None = None
    ) -> dict[str, Any]:
        self._require_profile_reference(connection_id)
        return self._metadata.create_saved_query(name, query, connection_id)

    def update_saved_query(self, query_id: int, changes: dict[str, Any]) -> dict[str, Any]:
        self.get_saved_query(query_id)
        if "connection_id" in changes:
            self._require_profile_reference(changes["connection_id"])

        updated = self._metadata.update_saved_query(query_id, changes)
        if updated is None:
            raise NotFoundError(
                f"Saved query {query_id} not found",
                {"query_id": query_id},
            )
        return updated

    def delete_saved_query(self, query_id: int) -> None:
        if not self._metadata.delete_saved_query(query_id):
            raise NotFoundError(
                f"Saved query {query_id} not found",
                {"query_id": query_id},
            )
