"""Target database access - connection pools, probing, identifier quoting.

A *target* is an external PostgreSQL database described by a connection
profile. The ``PoolRegistry`` owns one asyncpg pool per profile id and
builds it lazily; the ``ConnectionProber`` checks candidate credentials
with a throwaway pool that never enters the registry.

Table names reach the catalog and data queries through
``qualified_table_name`` only. They normally come from a prior catalog
listing rather than free text, and they are the one place where user input
is spliced into SQL as an identifier.
"""

import asyncio
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable

import asyncpg
import structlog

from dbexplorer.errors import (
    ConnectionFailedError,
    NotFoundError,
    QueryFailedError,
    ValidationFailedError,
)
from dbexplorer.metrics import (
    PROBE_DURATION,
    PROBES_TOTAL,
    TARGET_POOL_CREATIONS,
    TARGET_POOL_EVICTIONS,
    TARGET_POOL_LOCK_WAIT_TIME,
    TARGET_POOLS_ACTIVE,
    TARGET_QUERIES_TOTAL,
    TARGET_QUERY_DURATION,
)

logger = structlog.get_logger()

# Fields that jointly determine pool identity
CONNECTION_FIELDS = ("host", "port", "database", "username", "password", "ssl")

# Raised by the driver or the OS while a session is being established
CONNECT_ERRORS = (
    OSError,
    asyncio.TimeoutError,
    asyncpg.PostgresError,
    asyncpg.InterfaceError,
)

# The session went away under a running statement
CONNECTION_LOST_ERRORS = (
    OSError,
    asyncio.TimeoutError,
    asyncpg.PostgresConnectionError,
    asyncpg.ConnectionDoesNotExistError,
    asyncpg.AdminShutdownError,
    asyncpg.CannotConnectNowError,
)


@dataclass(frozen=True)
class ConnectionParams:
    """The six profile fields that decide where a pool connects."""

    host: str
    database: str
    username: str
    password: str
    port: int = 5432
    ssl: bool = False

    @classmethod
    def from_profile(cls, profile: dict[str, Any]) -> "ConnectionParams":
        """Build from a profile dict (stored or candidate)."""
        port = profile.get("port")
        return cls(
            host=profile["host"],
            port=5432 if port is None else int(port),
            database=profile["database"],
            username=profile["username"],
            password=profile["password"],
            ssl=bool(profile.get("ssl") or False),
        )

    def connect_kwargs(self) -> dict[str, Any]:
        """Keyword arguments for asyncpg.connect / asyncpg.create_pool."""
        return {
            "host": self.host,
            "port": self.port,
            "database": self.database,
            "user": self.username,
            "password": self.password,
            # Encrypt without certificate verification, or plain TCP
            "ssl": "require" if self.ssl else False,
        }

    def describe(self) -> dict[str, Any]:
        """Loggable/returnable view of the target, without the password."""
        return {
            "host": self.host,
            "port": self.port,
            "database": self.database,
            "username": self.username,
            "ssl": self.ssl,
        }


def connection_fields_changed(current: dict[str, Any], changes: dict[str, Any]) -> bool:
    """True if ``changes`` alters any field that decides pool identity."""
    return any(
        field in changes and changes[field] != current.get(field)
        for field in CONNECTION_FIELDS
    )


def quote_identifier(name: str) -> str:
    """
    Quote a single SQL identifier.

    Embedded double quotes are doubled, so the result is always one
    identifier no matter what the name contains.
    """
    if not name:
        raise ValidationFailedError(
            "Identifier must not be empty", {"identifier": name}
        )
    if "\x00" in name:
        raise ValidationFailedError(
            "Identifier must not contain NUL characters", {"identifier": name}
        )
    return '"' + name.replace('"', '""') + '"'


def qualified_table_name(table_name: str, schema: str | None = None) -> str:
    """Quoted ``"schema"."table"`` (or just ``"table"``) for FROM clauses."""
    if schema:
        return f"{quote_identifier(schema)}.{quote_identifier(table_name)}"
    return quote_identifier(table_name)


PoolFactory = Callable[..., Awaitable[Any]]


async def create_target_pool(params: ConnectionParams, **pool_options: Any) -> asyncpg.Pool:
    """Open an asyncpg pool against a target."""
    return await asyncpg.create_pool(**params.connect_kwargs(), **pool_options)


async def gather_all(*aws: Any) -> list[Any]:
    """
    Await independent coroutines concurrently and wait for every one.

    All results are collected before the first failure is re-raised, so no
    sibling is still running against the pool when the caller sees an error.
    """
    results = await asyncio.gather(*aws, return_exceptions=True)
    for result in results:
        if isinstance(result, BaseException):
            raise result
    return results


async def run_target_operation(
    operation: str, profile_id: int, aw: Awaitable[Any], **details: Any
) -> Any:
    """
    Await target I/O with metrics and error translation.

    A session lost mid-statement (socket errors, SQLSTATE class 08, server
    shutdown) becomes ConnectionFailedError; anything else the driver
    reports about the statement becomes QueryFailedError.
    """
    start_time = time.perf_counter()
    try:
        result = await aw
    except CONNECT_ERRORS as e:
        TARGET_QUERIES_TOTAL.labels(operation=operation, status="error").inc()
        logger.warning(
            f"{operation}_failed",
            profile_id=profile_id,
            error=str(e),
            **details,
        )
        if isinstance(e, CONNECTION_LOST_ERRORS):
            raise ConnectionFailedError(
                f"Lost connection to database: {e}",
                {"connection_id": profile_id, **details},
            ) from e
        raise QueryFailedError.from_driver_error(
            e, connection_id=profile_id, **details
        ) from e
    finally:
        TARGET_QUERY_DURATION.labels(operation=operation).observe(
            time.perf_counter() - start_time
        )

    TARGET_QUERIES_TOTAL.labels(operation=operation, status="success").inc()
    return result


async def close_pool(pool: Any, timeout: float) -> None:
    """Close a pool gracefully, terminating it if sessions do not drain in time."""
    try:
        await asyncio.wait_for(pool.close(), timeout=timeout)
    except asyncio.TimeoutError:
        logger.warning("target_pool_close_timeout", timeout=timeout)
        pool.terminate()


# ============================================
# Pool registry
# ============================================


class PoolRegistry:
    """
    Process-wide cache mapping profile id -> live connection pool.

    - resolve() builds a pool on first use and returns the cached one afterwards
    - evict() closes and forgets a pool; called after profile update/delete
    - Pool construction is serialized per profile id: concurrent first calls
      for the same id share one pool, different ids proceed in parallel

    There is no TTL and no cap on the number of cached pools. Per-id locks
    are kept for the registry's lifetime; dropping one while a caller waits
    on it would let a second pool be built for the same id.
    """

    def __init__(
        self,
        profile_loader: Callable[[int], dict[str, Any] | None],
        pool_factory: PoolFactory = create_target_pool,
        *,
        min_size: int = 1,
        max_size: int = 10,
        close_timeout: float = 10.0,
        on_pool_created: Callable[[int], None] | None = None,
        on_pool_evicted: Callable[[int], None] | None = None,
    ):
        self._profile_loader = profile_loader
        self._pool_factory = pool_factory
        self._pool_options = {"min_size": min_size, "max_size": max_size}
        self._close_timeout = close_timeout
        self._on_pool_created = on_pool_created
        self._on_pool_evicted = on_pool_evicted
        self._pools: dict[int, Any] = {}
        self._locks: dict[int, asyncio.Lock] = {}

    def _get_lock(self, profile_id: int) -> asyncio.Lock:
        # No await between lookup and insert, so this is atomic on the loop
        lock = self._locks.get(profile_id)
        if lock is None:
            lock = self._locks[profile_id] = asyncio.Lock()
            logger.debug("target_pool_lock_created", profile_id=profile_id)
        return lock

    def _notify(
        self, callback: Callable[[int], None] | None, event: str, profile_id: int
    ) -> None:
        # Called with the profile lock held; failures are logged, not raised
        if callback is None:
            return
        try:
            callback(profile_id)
        except Exception as e:
            logger.warning(
                "target_pool_callback_failed",
                profile_id=profile_id,
                pool_event=event,
                error=str(e),
            )

    async def resolve(self, profile_id: int) -> Any:
        """
        Return the pool for a profile, building it on first use.

        Raises:
            NotFoundError: no profile with this id
            ConnectionFailedError: the target refused or could not be reached
        """
        pool = self._pools.get(profile_id)
        if pool is not None:
            return pool

        lock = self._get_lock(profile_id)
        wait_start = time.perf_counter()
        async with lock:
            TARGET_POOL_LOCK_WAIT_TIME.observe(time.perf_counter() - wait_start)

            # Another caller may have built it while we waited
            pool = self._pools.get(profile_id)
            if pool is not None:
                return pool

            profile = self._profile_loader(profile_id)
            if profile is None:
                raise NotFoundError(
                    f"Connection {profile_id} not found",
                    {"connection_id": profile_id},
                )

            params = ConnectionParams.from_profile(profile)
            logger.info(
                "target_pool_creating",
                profile_id=profile_id,
                **params.describe(),
            )
            try:
                pool = await self._pool_factory(params, **self._pool_options)
            except CONNECT_ERRORS as e:
                TARGET_POOL_CREATIONS.labels(status="error").inc()
                logger.warning(
                    "target_pool_create_failed",
                    profile_id=profile_id,
                    error=str(e),
                    **params.describe(),
                )
                raise ConnectionFailedError(
                    f"Failed to connect to database: {e}",
                    {"connection_id": profile_id, **params.describe()},
                ) from e

            self._pools[profile_id] = pool
            TARGET_POOL_CREATIONS.labels(status="success").inc()
            TARGET_POOLS_ACTIVE.set(len(self._pools))
            logger.info("target_pool_created", profile_id=profile_id)
            self._notify(self._on_pool_created, "created", profile_id)

        return pool

    async def evict(self, profile_id: int) -> bool:
        """
        Close and forget the cached pool of a profile.

        Returns True if a pool was cached. Safe to call when none is.
        """
        async with self._get_lock(profile_id):
            pool = self._pools.pop(profile_id, None)
            if pool is None:
                return False

            TARGET_POOLS_ACTIVE.set(len(self._pools))
            TARGET_POOL_EVICTIONS.inc()
            await close_pool(pool, self._close_timeout)
            logger.info("target_pool_evicted", profile_id=profile_id)
            self._notify(self._on_pool_evicted, "evicted", profile_id)

        return True

    async def close_all(self) -> None:
        """Evict every cached pool (application shutdown)."""
        for profile_id in list(self._pools):
            await self.evict(profile_id)

    def __contains__(self, profile_id: object) -> bool:
        return profile_id in self._pools

    def __len__(self) -> int:
        return len(self._pools)

    @property
    def cached_profile_ids(self) -> list[int]:
        """Ids that currently have a pool (for monitoring/debugging)."""
        return sorted(self._pools)


# ============================================
# Connection prober
# ============================================


class ConnectionProber:
    """
    One-shot reachability and credential check.

    Opens a dedicated single-session pool, acquires and releases one
    session, and always closes the pool again. Nothing is cached and the
    registry is never touched.
    """

    def __init__(
        self,
        pool_factory: PoolFactory = create_target_pool,
        timeout: float = 5.0,
    ):
        self._pool_factory = pool_factory
        self._timeout = timeout

    async def verify(self, params: ConnectionParams) -> None:
        """
        Probe a target, raising on failure.

        Raises:
            ConnectionFailedError: with the driver message and the target
                that failed (password omitted)
        """
        start_time = time.perf_counter()
        pool = None
        try:
            pool = await self._pool_factory(
                params, min_size=0, max_size=1, timeout=self._timeout
            )
            async with pool.acquire(timeout=self._timeout):
                pass
        except CONNECT_ERRORS as e:
            PROBES_TOTAL.labels(status="error").inc()
            logger.warning("probe_failed", error=str(e), **params.describe())
            raise ConnectionFailedError(
                f"Failed to connect to database: {e}",
                {**params.describe(), "driver_message": str(e)},
            ) from e
        finally:
            PROBE_DURATION.observe(time.perf_counter() - start_time)
            if pool is not None:
                try:
                    await close_pool(pool, self._timeout)
                except Exception as close_error:
                    # Never let disposal mask the probe outcome
                    logger.warning("probe_pool_close_failed", error=str(close_error))

        PROBES_TOTAL.labels(status="success").inc()
        logger.info("probe_succeeded", **params.describe())

    async def probe(self, params: ConnectionParams) -> bool:
        """Probe a target; True only if a session could be acquired."""
        try:
            await self.verify(params)
        except ConnectionFailedError:
            return False
        return True
