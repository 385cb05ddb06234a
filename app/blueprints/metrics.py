"""
Prometheus metrics for the order engine.

/metrics exposes request latency plus the counters that matter when
reconciling orders: mutations by outcome, stock writes, ledger syncs
(invoice mirror, credit row) and owner notifications that failed
without failing the request. Keep the route off the public network.
"""
from flask import Blueprint, Response, request, g
from prometheus_client import Counter, Histogram, generate_latest, CollectorRegistry, CONTENT_TYPE_LATEST
from prometheus_client import multiprocess, REGISTRY
import time
import os

metrics_bp = Blueprint('metrics', __name__)

# Gunicorn workers share samples through PROMETHEUS_MULTIPROC_DIR
MULTIPROCESS_MODE = os.environ.get('PROMETHEUS_MULTIPROC_DIR') is not None

if MULTIPROCESS_MODE:
    registry = CollectorRegistry()
    multiprocess.MultiProcessCollector(registry)
else:
    registry = REGISTRY

# Multiprocess collectors read from disk, so metrics are not registered in-process
_metric_registry = None if MULTIPROCESS_MODE else registry


http_requests_total = Counter(
    'http_requests_total',
    'HTTP requests by endpoint and status',
    ['method', 'endpoint', 'http_status'],
    registry=_metric_registry
)

http_request_duration_seconds = Histogram(
    'http_request_duration_seconds',
    'HTTP request latency in seconds',
    ['method', 'endpoint'],
    registry=_metric_registry,
    buckets=(0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0)
)

# operation: create | edit; outcome: success | rejected | failed
order_mutations_total = Counter(
    'order_mutations_total',
    'Order create/edit requests by outcome',
    ['operation', 'outcome'],
    registry=_metric_registry
)

# direction: deduct | restore
stock_adjustments_total = Counter(
    'stock_adjustments_total',
    'Ingredient stock writes by direction and outcome',
    ['direction', 'outcome'],
    registry=_metric_registry
)

# target: invoice | credit
ledger_sync_failures_total = Counter(
    'ledger_sync_failures_total',
    'Non-fatal ledger sync failures after an order mutation',
    ['target'],
    registry=_metric_registry
)

# event: order_created | order_changed
notification_failures_total = Counter(
    'notification_failures_total',
    'Owner notifications that could not be delivered',
    ['event'],
    registry=_metric_registry
)


def setup_metrics_instrumentation(app):
    """Time every request and count it by endpoint and status."""

    @app.before_request
    def start_request_timer():
        g._metrics_started_at = time.time()

    @app.after_request
    def record_request_metrics(response):
        started_at = g.pop('_metrics_started_at', None)
        if started_at is None:
            return response

        endpoint = request.endpoint or 'unknown'
        try:
            http_request_duration_seconds.labels(
                method=request.method, endpoint=endpoint
            ).observe(time.time() - started_at)
            http_requests_total.labels(
                method=request.method, endpoint=endpoint, http_status=response.status_code
            ).inc()
        except ValueError as e:
            app.logger.warning(f"[METRICS] Failed to record request metrics: {e}")

        return response


@metrics_bp.route('/metrics')
def metrics():
    """Prometheus scrape endpoint (unauthenticated)."""
    return Response(generate_latest(registry), mimetype=CONTENT_TYPE_LATEST)
