"""Prometheus metrics for the price sync service."""

from prometheus_client import Counter, Gauge, Histogram, Info

app_info = Info("pricesync", "Price sync application info")
app_info.info({"version": "0.1.0", "name": "pricesync"})

# Run metrics
sync_runs_total = Counter(
    "sync_runs_total",
    "Total number of finished sync runs",
    ["kind", "status"],
)

sync_runs_in_progress = Gauge(
    "sync_runs_in_progress",
    "Sync runs currently executing",
    ["kind"],
)

sync_steps_total = Counter(
    "sync_steps_total",
    "Total number of finished sync steps",
    ["kind", "status"],
)

sync_step_duration_seconds = Histogram(
    "sync_step_duration_seconds",
    "Time spent executing a single sync step",
    ["kind"],
    buckets=[0.5, 1.0, 2.0, 5.0, 10.0, 30.0, 60.0, 120.0, 300.0],
)

# Marketplace API metrics
marketplace_requests_total = Counter(
    "marketplace_requests_total",
    "Total number of marketplace API requests",
    ["operation", "status"],
)

# Sandbox
sandbox_quota_denials_total = Counter(
    "sandbox_quota_denials_total",
    "Sandbox runs rejected by the test request quota",
)

# Pricing
products_repriced_total = Counter(
    "products_repriced_total",
    "Products that received a new price",
    ["status"],
)


def record_run_started(kind: str):
    sync_runs_in_progress.labels(kind=kind).inc()


def record_run_finished(kind: str, status: str):
    """Record a run reaching a terminal state."""
    sync_runs_in_progress.labels(kind=kind).dec()
    sync_runs_total.labels(kind=kind, status=status).inc()


def record_step(kind: str, status: str, duration: float):
    """Record a step reaching a terminal status."""
    sync_steps_total.labels(kind=kind, status=status).inc()
    sync_step_duration_seconds.labels(kind=kind).observe(duration)


def record_marketplace_request(operation: str, success: bool):
    status = "success" if success else "error"
    marketplace_requests_total.labels(operation=operation, status=status).inc()


def record_quota_denied():
    sandbox_quota_denials_total.inc()


def record_repriced(status: str):
    products_repriced_total.labels(status=status).inc()
