"""
Metrics instrumentation for observability.
Exposes Prometheus-compatible metrics at /metrics endpoint.
"""

from prometheus_client import Counter, Histogram, Gauge, generate_latest, CONTENT_TYPE_LATEST
from fastapi import Response

# Booking metrics
booking_attempts = Counter(
    'booking_attempts_total',
    'Total booking attempts',
    ['status']  # success, conflict, not_found, expired, invalid
)

booking_latency = Histogram(
    'booking_latency_seconds',
    'Booking write latency (validation + insert + counters)',
    buckets=[0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0]
)

booking_transitions = Counter(
    'booking_status_transitions_total',
    'Booking status transitions',
    ['from_status', 'to_status']
)

# Hold metrics
hold_requests = Counter(
    'hold_requests_total',
    'Table hold requests',
    ['result']  # issued, renewed, unavailable, held
)

active_holds = Gauge(
    'active_holds',
    'Holds currently tracked by the process-local hold store'
)

# Payment reconciliation metrics
webhook_events = Counter(
    'payment_webhook_events_total',
    'Payment provider webhook events',
    ['event_type', 'outcome']
)

unmatched_payments = Counter(
    'unmatched_payments_total',
    'Payment events queued for manual recovery',
    ['reason']
)

recovered_bookings = Counter(
    'recovered_bookings_total',
    'Bookings re-created by the recovery path',
    ['result']  # created, existing
)

notification_failures = Counter(
    'notification_failures_total',
    'Best-effort notifications that failed',
    ['kind']
)

# Cache metrics
cache_operations = Counter(
    'cache_operations_total',
    'Cache operations',
    ['operation', 'result']  # get/set, hit/miss
)

redis_connection_errors = Counter(
    'redis_connection_errors_total',
    'Redis connection errors'
)


def metrics_endpoint() -> Response:
    return Response(
        content=generate_latest(),
        media_type=CONTENT_TYPE_LATEST
    )


def record_booking_attempt(status: str):
    """Record booking attempt. Status: success, conflict, not_found, expired, invalid"""
    booking_attempts.labels(status=status).inc()


def record_transition(from_status: str, to_status: str):
    booking_transitions.labels(from_status=from_status, to_status=to_status).inc()


def record_hold(result: str):
    hold_requests.labels(result=result).inc()


def record_webhook(event_type: str, outcome: str):
    webhook_events.labels(event_type=event_type, outcome=outcome).inc()


def record_cache_operation(operation: str, hit: bool):
    """Record cache operation."""
    result = "hit" if hit else "miss"
    cache_operations.labels(operation=operation, result=result).inc()
