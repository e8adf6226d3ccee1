"""Prometheus metrics definitions for the DB Explorer API.

This module defines all Prometheus metrics used for observability:
- HTTP request metrics (count, duration, in-flight)
- Target database metrics (pools, probes, statements)
- Metadata store metrics (queries, duration, open connections)
- Process metrics (CPU, memory, file descriptors)
"""

import platform
import time
from prometheus_client import Counter, Histogram, Gauge, Info
from prometheus_client import ProcessCollector

# Register ProcessCollector for process_* metrics
# Note: ProcessCollector only works on Linux (uses /proc filesystem)
if platform.system() == "Linux":
    try:
        ProcessCollector()
    except Exception:
        pass  # Already registered by the default registry

# =============================================================================
# Service Health Metrics
# =============================================================================

SERVICE_UP = Gauge(
    "dbexplorer_api_up",
    "Whether the DB Explorer API service is up (1) or down (0)"
)

SERVICE_START_TIME = Gauge(
    "dbexplorer_api_start_time_seconds",
    "Unix timestamp when the service started"
)

_start_time = time.time()
SERVICE_START_TIME.set(_start_time)
SERVICE_UP.set(1)

# =============================================================================
# HTTP Request Metrics
# =============================================================================

REQUEST_COUNT = Counter(
    "dbexplorer_api_requests_total",
    "Total number of HTTP requests",
    ["method", "endpoint", "status_code"]
)

REQUEST_DURATION = Histogram(
    "dbexplorer_api_request_duration_seconds",
    "HTTP request duration in seconds",
    ["method", "endpoint"],
    buckets=[0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0]
)

REQUEST_IN_FLIGHT = Gauge(
    "dbexplorer_api_requests_in_flight",
    "Number of HTTP requests currently being processed",
    ["method"]
)

# =============================================================================
# Error Metrics
# =============================================================================

ERROR_COUNT = Counter(
    "dbexplorer_api_errors_total",
    "Total number of errors by type",
    ["type", "endpoint"]
)

# =============================================================================
# Target Pool Metrics
# =============================================================================

TARGET_POOLS_ACTIVE = Gauge(
    "dbexplorer_target_pools_active",
    "Number of connection pools currently cached by the registry"
)

TARGET_POOL_CREATIONS = Counter(
    "dbexplorer_target_pool_creations_total",
    "Target pool construction attempts",
    ["status"]  # success, error
)

TARGET_POOL_EVICTIONS = Counter(
    "dbexplorer_target_pool_evictions_total",
    "Target pools closed and removed from the registry"
)

TARGET_POOL_LOCK_WAIT_TIME = Histogram(
    "dbexplorer_target_pool_lock_wait_seconds",
    "Time spent waiting for a per-profile pool construction lock",
    buckets=[0.001, 0.01, 0.05, 0.1, 0.5, 1.0, 5.0]
)

PROBES_TOTAL = Counter(
    "dbexplorer_probes_total",
    "Connection probes by outcome",
    ["status"]  # success, error
)

PROBE_DURATION = Histogram(
    "dbexplorer_probe_duration_seconds",
    "Connection probe duration in seconds",
    buckets=[0.01, 0.05, 0.1, 0.5, 1.0, 2.5, 5.0, 10.0]
)

# =============================================================================
# Target Statement Metrics
# =============================================================================

TARGET_QUERIES_TOTAL = Counter(
    "dbexplorer_target_queries_total",
    "Statements issued against target databases",
    ["operation", "status"]  # operation: execute, describe, read, list_tables, list_databases
)

TARGET_QUERY_DURATION = Histogram(
    "dbexplorer_target_query_duration_seconds",
    "Target statement duration in seconds",
    ["operation"],
    buckets=[0.001, 0.005, 0.01, 0.05, 0.1, 0.5, 1.0, 5.0, 30.0, 60.0, 300.0]
)

# =============================================================================
# Metadata Store Metrics
# =============================================================================

METADATA_QUERIES_TOTAL = Counter(
    "dbexplorer_metadata_queries_total",
    "Total metadata database queries",
    ["operation"]  # read, write
)

METADATA_QUERY_DURATION = Histogram(
    "dbexplorer_metadata_query_duration_seconds",
    "Metadata query duration in seconds",
    ["operation"],  # read, write
    buckets=[0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5]
)

METADATA_CONNECTIONS_ACTIVE = Gauge(
    "dbexplorer_metadata_connections_active",
    "Active connections to metadata.duckdb"
)

# =============================================================================
# Metadata Gauges (collected on-demand)
# =============================================================================

CONNECTION_PROFILES_TOTAL = Gauge(
    "dbexplorer_connection_profiles_total",
    "Total number of stored connection profiles"
)

SAVED_QUERIES_TOTAL = Gauge(
    "dbexplorer_saved_queries_total",
    "Total number of saved queries"
)

METADATA_SIZE_BYTES = Gauge(
    "dbexplorer_metadata_size_bytes",
    "Size of the metadata database file in bytes"
)

# =============================================================================
# Service Info
# =============================================================================

SERVICE_INFO = Info(
    "dbexplorer_api_service",
    "DB Explorer API service information"
)


def set_service_info(version: str, duckdb_version: str, asyncpg_version: str) -> None:
    """Set service info labels."""
    SERVICE_INFO.info({
        "version": version,
        "duckdb_version": duckdb_version,
        "asyncpg_version": asyncpg_version,
    })
