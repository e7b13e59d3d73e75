from prometheus_client import Counter, Gauge, Histogram

# Request-level metrics
REQUESTS_TOTAL = Counter(
    "gsu_requests_total",
    "Total HTTP requests",
    labelnames=("method", "path", "status", "auth"),
)

REQUEST_LATENCY_MS = Histogram(
    "gsu_request_latency_ms",
    "Request latency in milliseconds",
    buckets=(5, 10, 25, 50, 100, 250, 500, 1000, 2000, float("inf")),
    labelnames=("method", "path"),
)

REQUEST_ERRORS_TOTAL = Counter(
    "gsu_request_errors_total",
    "Total HTTP requests resulting in error",
    labelnames=("method", "path", "status"),
)

# Ingest metrics
HEARTBEATS_TOTAL = Counter("gsu_heartbeats_total", "Heartbeats applied to the state store")
UPLOADS_TOTAL = Counter(
    "gsu_uploads_total",
    "Capture uploads by outcome",
    labelnames=("outcome",),
)
DECODE_FAILURES_TOTAL = Counter(
    "gsu_capture_decode_failures_total",
    "Uploaded captures that could not be decoded as a thermal matrix",
)
CAPTURE_OVERWRITES_TOTAL = Counter(
    "gsu_capture_overwrites_total",
    "Capture files replaced by a same-second upload from the same turbine",
)

# State gauges
ALERTS_CACHED = Gauge("gsu_alerts_cached", "Alert records held in the in-memory history")
CAPTURE_FILES = Gauge("gsu_capture_files", "Capture files present in the storage directory")
TURBINE_ONLINE = Gauge("gsu_turbine_online", "1 when the last heartbeat is inside the staleness window")
