"""DuckDB metadata store - connection profiles and saved queries.

This is the application's own bookkeeping database. It never holds data
from the target databases; it only remembers how to reach them and which
SQL texts the user chose to keep.

Passwords are stored in clear text, exactly as submitted.
"""

import threading
import time
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Generator

import duckdb
import structlog

from dbexplorer.config import settings
from dbexplorer import metrics

logger = structlog.get_logger()


# ============================================
# Schema definitions
# ============================================

METADATA_SCHEMA = """
CREATE SEQUENCE IF NOT EXISTS connection_profiles_id_seq START 1;
CREATE SEQUENCE IF NOT EXISTS saved_queries_id_seq START 1;

-- Connection profiles: how to reach one external PostgreSQL target
CREATE TABLE IF NOT EXISTS connection_profiles (
    id INTEGER PRIMARY KEY DEFAULT nextval('connection_profiles_id_seq'),
    name VARCHAR NOT NULL,
    host VARCHAR NOT NULL,
    port INTEGER NOT NULL DEFAULT 5432,
    database_name VARCHAR NOT NULL,
    username VARCHAR NOT NULL,
    password VARCHAR NOT NULL,             -- clear text, see module docstring
    ssl BOOLEAN DEFAULT false,
    is_active BOOLEAN DEFAULT false,       -- true while a pool is cached
    last_connected TIMESTAMPTZ,            -- last pool construction
    created_at TIMESTAMPTZ DEFAULT now()
);

-- Saved queries: plain SQL text, optionally tied to a profile.
-- No FOREIGN KEY: DuckDB has no ON DELETE CASCADE, so
-- delete_connection() removes dependent rows itself.
CREATE TABLE IF NOT EXISTS saved_queries (
    id INTEGER PRIMARY KEY DEFAULT nextval('saved_queries_id_seq'),
    name VARCHAR NOT NULL,
    query VARCHAR NOT NULL,
    connection_id INTEGER,
    created_at TIMESTAMPTZ DEFAULT now()
);

CREATE INDEX IF NOT EXISTS idx_saved_queries_connection ON saved_queries(connection_id);
"""

PROFILE_COLUMNS = (
    "id, name, host, port, database_name, username, password, ssl, "
    "is_active, last_connected, created_at"
)

SAVED_QUERY_COLUMNS = "id, name, query, connection_id, created_at"

# Maps API field names onto connection_profiles columns
_PROFILE_FIELD_COLUMNS = {
    "name": "name",
    "host": "host",
    "port": "port",
    "database": "database_name",
    "username": "username",
    "password": "password",
    "ssl": "ssl",
}

_SAVED_QUERY_FIELD_COLUMNS = {
    "name": "name",
    "query": "query",
    "connection_id": "connection_id",
}


class MetadataDB:
    """
    Singleton class for managing the central metadata database.

    Thread-safe connection management for the metadata.duckdb file.
    Note: db_path is read from settings on each access to support testing.
    """

    _instance: "MetadataDB | None" = None
    _lock = threading.Lock()

    def __new__(cls) -> "MetadataDB":
        if cls._instance is None:
            with cls._lock:
                if cls._instance is None:
                    cls._instance = super().__new__(cls)
                    cls._instance._initialized = False
        return cls._instance

    def __init__(self) -> None:
        if self._initialized:
            return

        self._conn_lock = threading.Lock()
        self._initialized = True

    @property
    def _db_path(self) -> Path:
        """Get db path from settings (allows runtime override in tests)."""
        return settings.metadata_db_path

    def initialize(self) -> None:
        """Initialize the metadata database and create schema."""
        db_path = self._db_path
        with self._conn_lock:
            db_path.parent.mkdir(parents=True, exist_ok=True)

            conn = duckdb.connect(str(db_path))
            try:
                conn.execute(METADATA_SCHEMA)
                logger.info("metadata_db_schema_created", path=str(db_path))
            finally:
                conn.close()

    @contextmanager
    def connection(self) -> Generator[duckdb.DuckDBPyConnection, None, None]:
        """
        Get a connection to the metadata database.

        Usage:
            with metadata_db.connection() as conn:
                conn.execute("SELECT * FROM connection_profiles")
        """
        metrics.METADATA_CONNECTIONS_ACTIVE.inc()
        conn = duckdb.connect(str(self._db_path))
        try:
            yield conn
        finally:
            conn.close()
            metrics.METADATA_CONNECTIONS_ACTIVE.dec()

    def execute(self, query: str, params: list | None = None) -> list[tuple]:
        """Execute a read query and return results."""
        start_time = time.time()
        try:
            with self.connection() as conn:
                if params:
                    result = conn.execute(query, params).fetchall()
                else:
                    result = conn.execute(query).fetchall()
                return result
        finally:
            duration = time.time() - start_time
            metrics.METADATA_QUERIES_TOTAL.labels(operation="read").inc()
            metrics.METADATA_QUERY_DURATION.labels(operation="read").observe(duration)

    def execute_one(self, query: str, params: list | None = None) -> tuple | None:
        """Execute a query and return single result."""
        results = self.execute(query, params)
        return results[0] if results else None

    def execute_write(self, query: str, params: list | None = None) -> list[tuple]:
        """Execute a write query (INSERT, UPDATE, DELETE), returning any RETURNING rows."""
        start_time = time.time()
        try:
            with self.connection() as conn:
                if params:
                    cursor = conn.execute(query, params)
                else:
                    cursor = conn.execute(query)
                return cursor.fetchall() if cursor.description else []
        finally:
            duration = time.time() - start_time
            metrics.METADATA_QUERIES_TOTAL.labels(operation="write").inc()
            metrics.METADATA_QUERY_DURATION.labels(operation="write").observe(duration)

    # ========================================
    # Connection profile operations
    # ========================================

    def create_connection(
        self,
        name: str,
        host: str,
        database: str,
        username: str,
        password: str,
        port: int = 5432,
        ssl: bool = False,
    ) -> dict[str, Any]:
        """Persist a new connection profile and return it (password included)."""
        rows = self.execute_write(
            """
            INSERT INTO connection_profiles
                (name, host, port, database_name, username, password, ssl)
            VALUES (?, ?, ?, ?, ?, ?, ?)
            RETURNING id
            """,
            [name, host, port, database, username, password, ssl],
        )
        profile_id = rows[0][0]

        logger.info(
            "connection_profile_created",
            profile_id=profile_id,
            name=name,
            host=host,
            port=port,
            database=database,
        )
        return self.get_connection(profile_id)

    def get_connection(self, profile_id: int) -> dict[str, Any] | None:
        """Get connection profile by ID."""
        result = self.execute_one(
            f"SELECT {PROFILE_COLUMNS} FROM connection_profiles WHERE id = ?",
            [profile_id],
        )
        return self._row_to_profile_dict(result) if result else None

    def list_connections(self) -> list[dict[str, Any]]:
        """List all connection profiles ordered by name."""
        results = self.execute(
            f"SELECT {PROFILE_COLUMNS} FROM connection_profiles ORDER BY name, id"
        )
        return [self._row_to_profile_dict(row) for row in results]

    def update_connection(
        self, profile_id: int, changes: dict[str, Any]
    ) -> dict[str, Any] | None:
        """
        Apply a partial update to a profile.

        Only keys present in ``changes`` are written; unknown keys are ignored.
        Returns None when the profile does not exist.
        """
        updates = []
        params: list[Any] = []

        for field, column in _PROFILE_FIELD_COLUMNS.items():
            if field in changes:
                updates.append(f"{column} = ?")
                params.append(changes[field])

        if not updates:
            return self.get_connection(profile_id)

        params.append(profile_id)
        rows = self.execute_write(
            f"UPDATE connection_profiles SET {', '.join(updates)} WHERE id = ? RETURNING id",
            params,
        )
        if not rows:
            return None

        logger.info(
            "connection_profile_updated",
            profile_id=profile_id,
            fields=sorted(k for k in changes if k in _PROFILE_FIELD_COLUMNS),
        )
        return self.get_connection(profile_id)

    def delete_connection(self, profile_id: int) -> bool:
        """
        Delete a profile together with its saved queries.

        Both deletes run in one transaction.
        """
        start_time = time.time()
        try:
            with self.connection() as conn:
                conn.begin()
                try:
                    removed_queries = conn.execute(
                        "DELETE FROM saved_queries WHERE connection_id = ? RETURNING id",
                        [profile_id],
                    ).fetchall()
                    removed_profiles = conn.execute(
                        "DELETE FROM connection_profiles WHERE id = ? RETURNING id",
                        [profile_id],
                    ).fetchall()
                    conn.commit()
                except Exception:
                    conn.rollback()
                    raise
        finally:
            duration = time.time() - start_time
            metrics.METADATA_QUERIES_TOTAL.labels(operation="write").inc()
            metrics.METADATA_QUERY_DURATION.labels(operation="write").observe(duration)

        deleted = bool(removed_profiles)
        if deleted:
            logger.info(
                "connection_profile_deleted",
                profile_id=profile_id,
                saved_queries_deleted=len(removed_queries),
            )
        return deleted

    def mark_connected(self, profile_id: int) -> None:
        """Record that a pool to this profile's target was just built."""
        self.execute_write(
            "UPDATE connection_profiles SET is_active = true, last_connected = ? WHERE id = ?",
            [datetime.now(timezone.utc), profile_id],
        )

    def mark_disconnected(self, profile_id: int) -> None:
        """Record that this profile no longer has a cached pool."""
        self.execute_write(
            "UPDATE connection_profiles SET is_active = false WHERE id = ?",
            [profile_id],
        )

    def reset_active_flags(self) -> None:
        """Clear every is_active flag (pools never outlive the process)."""
        self.execute_write(
            "UPDATE connection_profiles SET is_active = false WHERE is_active"
        )

    def _row_to_profile_dict(self, row: tuple | None) -> dict[str, Any] | None:
        """Convert database row to profile dictionary."""
        if row is None:
            return None

        return {
            "id": row[0],
            "name": row[1],
            "host": row[2],
            "port": row[3],
            "database": row[4],
            "username": row[5],
            "password": row[6],
            "ssl": bool(row[7]),
            "is_active": bool(row[8]),
            "last_connected": row[9].isoformat() if row[9] else None,
            "created_at": row[10].isoformat() if row[10] else None,
        }

    # ========================================
    # Saved query operations
    # ========================================

    def create_saved_query(
        self, name: str, query: str, connection_id: int | None = None
    ) -> dict[str, Any]:
        """Persist a saved query. The SQL text is stored as-is."""
        rows = self.execute_write(
            """
            INSERT INTO saved_queries (name, query, connection_id, created_at)
            VALUES (?, ?, ?, ?)
            RETURNING id
            """,
            [name, query, connection_id, datetime.now(timezone.utc)],
        )
        query_id = rows[0][0]

        logger.info(
            "saved_query_created",
            query_id=query_id,
            name=name,
            connection_id=connection_id,
        )
        return self.get_saved_query(query_id)

    def get_saved_query(self, query_id: int) -> dict[str, Any] | None:
        """Get saved query by ID."""
        result = self.execute_one(
            f"SELECT {SAVED_QUERY_COLUMNS} FROM saved_queries WHERE id = ?",
            [query_id],
        )
        return self._row_to_saved_query_dict(result) if result else None

    def list_saved_queries(
        self, connection_id: int | None = None
    ) -> list[dict[str, Any]]:
        """List saved queries ordered by name, optionally for one profile."""
        if connection_id is not None:
            results = self.execute(
                f"""
                SELECT {SAVED_QUERY_COLUMNS} FROM saved_queries
                WHERE connection_id = ?
                ORDER BY name, id
                """,
                [connection_id],
            )
        else:
            results = self.execute(
                f"SELECT {SAVED_QUERY_COLUMNS} FROM saved_queries ORDER BY name, id"
            )

        return [self._row_to_saved_query_dict(row) for row in results]

    def update_saved_query(
        self, query_id: int, changes: dict[str, Any]
    ) -> dict[str, Any] | None:
        """Apply a partial update to a saved query. Returns None if missing."""
        updates = []
        params: list[Any] = []

        for field, column in _SAVED_QUERY_FIELD_COLUMNS.items():
            if field in changes:
                updates.append(f"{column} = ?")
                params.append(changes[field])

        if not updates:
            return self.get_saved_query(query_id)

        params.append(query_id)
        rows = self.execute_write(
            f"UPDATE saved_queries SET {', '.join(updates)} WHERE id = ? RETURNING id",
            params,
        )
        if not rows:
            return None

        logger.info("saved_query_updated", query_id=query_id)
        return self.get_saved_query(query_id)

    def delete_saved_query(self, query_id: int) -> bool:
        """Delete a saved query. Returns False if it did not exist."""
        rows = self.execute_write(
            "DELETE FROM saved_queries WHERE id = ? RETURNING id", [query_id]
        )
        if rows:
            logger.info("saved_query_deleted", query_id=query_id)
        return bool(rows)

    def _row_to_saved_query_dict(self, row: tuple | None) -> dict[str, Any] | None:
        """Convert database row to saved query dictionary."""
        if row is None:
            return None

        return {
            "id": row[0],
            "name": row[1],
            "query": row[2],
            "connection_id": row[3],
            "created_at": row[4].isoformat() if row[4] else None,
        }

    # ========================================
    # Count methods (for metrics)
    # ========================================

    def count_connections(self) -> int:
        """Count stored connection profiles."""
        result = self.execute_one("SELECT COUNT(*) FROM connection_profiles")
        return result[0] if result else 0

    def count_saved_queries(self) -> int:
        """Count saved queries."""
        result = self.execute_one("SELECT COUNT(*) FROM saved_queries")
        return result[0] if result else 0


# Global singleton instance
metadata_db = MetadataDB()
