"""Prometheus metrics definitions for the Workspace Database Admin API.

This module defines all Prometheus metrics used for observability:
- HTTP request metrics (count, duration, in-flight)
- Administration operation metrics (count by status, duration)
- SQL collaborator calls (count, duration, timeouts)
- Schema catalog cache behaviour
- Credential lifecycle events
"""

import time
from prometheus_client import Counter, Histogram, Gauge, Info

# =============================================================================
# Service Health Metrics
# =============================================================================

SERVICE_UP = Gauge(
    "dbadmin_up",
    "Whether the admin service is up (1) or down (0)"
)

SERVICE_START_TIME = Gauge(
    "dbadmin_start_time_seconds",
    "Unix timestamp when the service started"
)

SERVICE_INFO = Info(
    "dbadmin_service",
    "Service version information"
)

_start_time = time.time()
SERVICE_START_TIME.set(_start_time)
SERVICE_UP.set(1)

# =============================================================================
# HTTP Request Metrics
# =============================================================================

REQUEST_COUNT = Counter(
    "dbadmin_requests_total",
    "Total number of HTTP requests",
    ["method", "endpoint", "status_code"]
)

REQUEST_DURATION = Histogram(
    "dbadmin_request_duration_seconds",
    "HTTP request duration in seconds",
    ["method", "endpoint"],
    buckets=[0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0]
)

REQUEST_IN_FLIGHT = Gauge(
    "dbadmin_requests_in_flight",
    "Number of HTTP requests currently being processed",
    ["method"]
)

# =============================================================================
# Error Metrics
# =============================================================================

ERROR_COUNT = Counter(
    "dbadmin_errors_total",
    "Total number of errors by type",
    ["type", "endpoint"]
)

# =============================================================================
# Administration Operation Metrics
# =============================================================================

OPERATION_COUNT = Counter(
    "dbadmin_operations_total",
    "Total number of administration operations",
    ["operation", "status"]
)

OPERATION_DURATION = Histogram(
    "dbadmin_operation_duration_seconds",
    "Administration operation duration in seconds",
    ["operation"],
    buckets=[0.001, 0.005, 0.01, 0.05, 0.1, 0.5, 1.0, 5.0, 30.0, 60.0]
)

# =============================================================================
# SQL Collaborator Metrics
# =============================================================================

COLLABORATOR_CALLS = Counter(
    "dbadmin_collaborator_calls_total",
    "Total number of calls into the SQL engine",
    ["operation", "status"]  # success, error, timeout
)

COLLABORATOR_DURATION = Histogram(
    "dbadmin_collaborator_duration_seconds",
    "SQL engine call duration in seconds",
    ["operation"],
    buckets=[0.001, 0.005, 0.01, 0.05, 0.1, 0.5, 1.0, 5.0, 30.0, 60.0]
)

METADATA_QUERIES_TOTAL = Counter(
    "dbadmin_metadata_queries_total",
    "Total number of metadata database queries",
    ["operation"]  # read, write
)

METADATA_QUERY_DURATION = Histogram(
    "dbadmin_metadata_query_duration_seconds",
    "Metadata database query duration in seconds",
    ["operation"],
    buckets=[0.001, 0.005, 0.01, 0.05, 0.1, 0.5, 1.0]
)

# =============================================================================
# Schema Catalog Metrics
# =============================================================================

CATALOG_CACHE_HITS = Counter(
    "dbadmin_catalog_cache_hits_total",
    "Schema snapshots served from the catalog cache"
)

CATALOG_CACHE_MISSES = Counter(
    "dbadmin_catalog_cache_misses_total",
    "Schema snapshots fetched from the engine"
)

CATALOG_INVALIDATIONS = Counter(
    "dbadmin_catalog_invalidations_total",
    "Catalog invalidations",
    ["scope"]  # table, workspace
)

# =============================================================================
# Credential Metrics
# =============================================================================

ROLE_EVENTS = Counter(
    "dbadmin_role_events_total",
    "Database role lifecycle events",
    ["event", "role_type"]  # create, rotate, revoke, expire
)


def set_service_info(version: str, duckdb_version: str) -> None:
    SERVICE_INFO.info({"version": version, "duckdb_version": duckdb_version})
