from __future__ import annotations

from prometheus_client import CONTENT_TYPE_LATEST, Counter, Gauge, generate_latest


HTTP_REQUESTS_TOTAL = Counter(
    "scheduler_http_requests_total",
    "Total HTTP requests",
    ["method", "path", "status"],
)

WORKER_EVENTS_TOTAL = Counter(
    "scheduler_worker_events_total",
    "Worker lifecycle events",
    ["worker", "event"],
)

SETTLEMENT_CALLS_TOTAL = Counter(
    "scheduler_settlement_calls_total",
    "Settlement client calls",
    ["operation", "result"],
)

SWEEP_CURRENT_EPOCH = Gauge(
    "scheduler_sweep_current_epoch",
    "Epoch the debt sweep is currently paying",
)

SWEEP_TOTAL_DEBT = Gauge(
    "scheduler_sweep_total_debt",
    "Debt accumulated by the running sweep (lamports)",
)

SWEEP_TOTAL_PAID = Gauge(
    "scheduler_sweep_total_paid",
    "Debt paid by the running sweep (lamports)",
)


def render_metrics() -> tuple[bytes, str]:
    return generate_latest(), CONTENT_TYPE_LATEST
