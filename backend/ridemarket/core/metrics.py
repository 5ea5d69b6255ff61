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
    ['service_type', 'status']  # success, conflict, not_found, invalid
)

booking_latency = Histogram(
    'booking_latency_seconds',
    'Booking creation latency',
    ['service_type'],
    buckets=[0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0]
)

slot_reservation_retries = Counter(
    'slot_reservation_retries_total',
    'Rental slot compare-and-set retries due to version conflicts'
)

# Trip lifecycle metrics
trip_transitions = Counter(
    'trip_transitions_total',
    'Booking status / passenger status transitions',
    ['transition']  # started, got_in, got_out, completed, cancelled
)

# Settlement metrics
settlements_recorded = Counter(
    'settlements_recorded_total',
    'Settlements recorded on trip completion',
    ['kind']  # cash, electronic
)

settlement_decisions = Counter(
    'settlement_decisions_total',
    'Admin settlement decisions',
    ['decision']  # approved, rejected, requested
)

ledger_updates = Counter(
    'ledger_updates_total',
    'Atomic ledger updates',
    ['operation']  # inflow_inc, outflow_inc, outflow_dec, electronic
)

# Scheduler metrics
scheduler_ticks = Counter(
    'trip_scheduler_ticks_total',
    'Trip scheduler ticks',
    ['result']  # ok, error
)

scheduler_offer_failures = Counter(
    'trip_scheduler_offer_failures_total',
    'Offers that failed to auto-start during a scheduler tick'
)

scheduler_offers_started = Counter(
    'trip_scheduler_offers_started_total',
    'Offers auto-started by the trip scheduler'
)

# Admission control metrics
admission_requests = Counter(
    'admission_requests_total',
    'Total admission control requests',
    ['result']  # admitted, rejected
)

redis_connection_errors = Counter(
    'redis_connection_errors_total',
    'Redis connection errors'
)

redis_circuit_breaker_open = Gauge(
    'redis_circuit_breaker_open',
    'Redis circuit breaker state (1=open, 0=closed)'
)


def metrics_endpoint() -> Response:
    """
    Prometheus metrics endpoint.

    Usage:
        @app.get("/metrics")
        def metrics():
            return metrics_endpoint()
    """
    return Response(
        content=generate_latest(),
        media_type=CONTENT_TYPE_LATEST
    )


def record_booking_attempt(service_type: str, status: str):
    """Record booking attempt. Status: success, conflict, not_found, invalid"""
    booking_attempts.labels(service_type=service_type, status=status).inc()


def record_trip_transition(transition: str, count: int = 1):
    trip_transitions.labels(transition=transition).inc(count)


def record_settlement(kind: str):
    settlements_recorded.labels(kind=kind).inc()


def record_settlement_decision(decision: str):
    settlement_decisions.labels(decision=decision).inc()


def record_ledger_update(operation: str):
    ledger_updates.labels(operation=operation).inc()


def record_admission(admitted: bool):
    """Record admission control decision."""
    result = "admitted" if admitted else "rejected"
    admission_requests.labels(result=result).inc()
