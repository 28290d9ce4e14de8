# services/metrics.py
from __future__ import annotations
import os

os.environ.setdefault("PROMETHEUS_DISABLE_CREATED_SERIES", "1")

from prometheus_client import (  # noqa: E402
    Counter, Histogram, CollectorRegistry,
    generate_latest, CONTENT_TYPE_LATEST,
)

# Use a DEDICATED registry so only our app metrics show up
APP_REGISTRY = CollectorRegistry(auto_describe=True)

# --- Generic HTTP metrics (bind to our registry) ---
REQUEST_COUNT = Counter(
    "http_requests_total", "HTTP requests total",
    ["method", "endpoint", "status"], registry=APP_REGISTRY
)
REQUEST_LATENCY = Histogram(
    "http_request_duration_seconds", "Request latency (seconds)",
    ["endpoint", "method"], registry=APP_REGISTRY,
)

# --- Klarna checkout sessions ---
SESSIONS = Counter(
    "klarna_sessions_total", "Checkout sessions sent to Klarna",
    ["action", "outcome"], registry=APP_REGISTRY
)

# --- Reconciliation ---
NOTIFICATIONS = Counter(
    "klarna_notifications_total", "Return/push callbacks handled",
    ["source", "outcome"], registry=APP_REGISTRY
)
PAYMENTS_AUTHORIZED = Counter(
    "klarna_payments_authorized_total", "Payments created from completed sessions",
    registry=APP_REGISTRY
)
CAPTURES = Counter(
    "klarna_captures_total", "Capture attempts", ["outcome"], registry=APP_REGISTRY
)
AMOUNT_MISMATCHES = Counter(
    "klarna_amount_mismatch_total", "Klarna total differs from the order total",
    registry=APP_REGISTRY
)


def observe_request(endpoint: str | None, method: str, status: int, seconds: float) -> None:
    label = (endpoint or "unknown").replace(".", "_")
    REQUEST_COUNT.labels(method=method, endpoint=label, status=str(status)).inc()
    REQUEST_LATENCY.labels(endpoint=label, method=method).observe(seconds)


def init_app(app):
    @app.get("/metrics")
    def metrics():
        data = generate_latest(APP_REGISTRY)
        return app.response_class(data, mimetype=CONTENT_TYPE_LATEST)

    # --- pre-warm labeled series so dashboards don't say "No data" ---
    for action in ("create", "update"):
        for outcome in ("ok", "error"):
            SESSIONS.labels(action=action, outcome=outcome).inc(0)
    for source in ("return", "push"):
        for outcome in ("created", "duplicate", "error"):
            NOTIFICATIONS.labels(source=source, outcome=outcome).inc(0)
    for outcome in ("ok", "error"):
        CAPTURES.labels(outcome=outcome).inc(0)
