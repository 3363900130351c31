"""Prometheus metrics shared by the app, the writer and the sweeper."""

from prometheus_client import Counter, Histogram

REQUEST_COUNT = Counter(
    "audit_http_requests_total",
    "Total HTTP requests",
    ["method", "path", "status"],
)
REQUEST_LATENCY = Histogram(
    "audit_http_request_duration_seconds",
    "HTTP request duration in seconds",
    ["method", "path"],
)
EVENTS_WRITTEN = Counter(
    "audit_events_written_total",
    "Audit events committed",
    ["event"],
)
CHECKSUM_FAILURES = Counter(
    "audit_checksum_failures_total",
    "Stored audit events whose checksum did not verify",
)
RETENTION_DELETED = Counter(
    "audit_retention_deleted_total",
    "Rows removed by retention sweeps",
    ["kind"],
)
