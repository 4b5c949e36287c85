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

# --- Webhook / reconciliation ---
WEBHOOK_NOTIFICATIONS = Counter(
    "webhook_notifications_total", "Payment notifications by outcome",
    ["operation", "outcome"], registry=APP_REGISTRY
)
ASSET_MIGRATIONS = Counter(
    "asset_migrations_total", "Per-photo migration outcomes",
    ["outcome"], registry=APP_REGISTRY
)


def init_app(app):
    @app.get("/metrics")
    def metrics():
        data = generate_latest(APP_REGISTRY)
        return app.response_class(data, mimetype=CONTENT_TYPE_LATEST)

    # --- pre-warm labeled series so dashboards don't say "No data" ---
    for op in ("new", "renewal"):
        for outcome in ("approved", "renewed", "not_approved", "rejected", "failed"):
            WEBHOOK_NOTIFICATIONS.labels(operation=op, outcome=outcome).inc(0)
    for outcome in ("moved", "skipped", "not_found", "error"):
        ASSET_MIGRATIONS.labels(outcome=outcome).inc(0)
