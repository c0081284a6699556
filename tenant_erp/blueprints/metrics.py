"""
Prometheus metrics for the API.

HTTP traffic is recorded by request hooks installed from the app factory;
login and booking events are counted by the blueprints that handle them.
``/metrics`` is unauthenticated and meant for the internal scrape network only.
"""
import os
import time

from flask import Blueprint, Response, g, request
from prometheus_client import (
    CONTENT_TYPE_LATEST, REGISTRY, CollectorRegistry, Counter, Gauge, Histogram, generate_latest, multiprocess
)

metrics_bp = Blueprint('metrics', __name__)

# Gunicorn workers share samples through PROMETHEUS_MULTIPROC_DIR
MULTIPROCESS_MODE = os.environ.get('PROMETHEUS_MULTIPROC_DIR') is not None

if MULTIPROCESS_MODE:
    registry = CollectorRegistry()
    multiprocess.MultiProcessCollector(registry)
    _metric_registry = None
else:
    registry = REGISTRY
    _metric_registry = REGISTRY

http_requests_total = Counter(
    'tenant_erp_http_requests_total',
    'HTTP requests by endpoint and status',
    ['method', 'endpoint', 'http_status'],
    registry=_metric_registry
)

http_request_duration_seconds = Histogram(
    'tenant_erp_http_request_duration_seconds',
    'HTTP request latency in seconds',
    ['method', 'endpoint'],
    registry=_metric_registry,
    buckets=(0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0)
)

http_requests_in_flight = Gauge(
    'tenant_erp_http_requests_in_flight',
    'Requests currently being served',
    registry=_metric_registry
)

login_attempts_total = Counter(
    'tenant_erp_login_attempts_total',
    'Login attempts by scope and outcome',
    ['scope', 'outcome'],
    registry=_metric_registry
)

booking_events_total = Counter(
    'tenant_erp_booking_events_total',
    'Booking lifecycle events (created, accepted, assigned, status changes)',
    ['event'],
    registry=_metric_registry
)

# Scrapes of /metrics itself are not counted
UNTRACKED_ENDPOINTS = {'metrics.metrics'}


def record_login(scope, outcome):
    """scope: global/organization; outcome: success/failed/locked/inactive/error."""
    login_attempts_total.labels(scope=scope, outcome=outcome).inc()


def record_booking_event(event):
    booking_events_total.labels(event=event).inc()


def setup_metrics_instrumentation(app):
    """Install request hooks that time every request and count responses."""

    @app.before_request
    def before_request_metrics():
        if request.endpoint in UNTRACKED_ENDPOINTS:
            return
        g._metrics_started = time.time()
        http_requests_in_flight.inc()

    @app.after_request
    def after_request_metrics(response):
        started = g.pop('_metrics_started', None)
        if started is None:
            return response
        endpoint = request.endpoint or 'unknown'
        try:
            http_request_duration_seconds.labels(method=request.method, endpoint=endpoint) \
                .observe(time.time() - started)
            http_requests_total.labels(
                method=request.method, endpoint=endpoint, http_status=response.status_code
            ).inc()
        except Exception as e:
            # Metrics must never fail a request
            app.logger.warning(f"Failed to record metrics: {e}")
        finally:
            http_requests_in_flight.dec()
        return response


@metrics_bp.route('/metrics')
def metrics():
    """Prometheus text exposition of the registry."""
    return Response(generate_latest(registry), mimetype=CONTENT_TYPE_LATEST)
