"""
Metrics instrumentation for observability.
Exposes Prometheus-compatible metrics at /metrics endpoint.
"""

from prometheus_client import Counter, Histogram, generate_latest, CONTENT_TYPE_LATEST
from fastapi import Response

# Venue booking metrics
booking_transitions = Counter(
    'venue_booking_transitions_total',
    'Venue booking lifecycle transitions',
    ['transition']  # created, updated, accepted, rejected, cancelled, completed
)

# Ticket metrics
ticket_purchases = Counter(
    'ticket_purchase_attempts_total',
    'Ticket purchase attempts',
    ['result']  # issued, payment_required, conflict
)

ticket_checkins = Counter(
    'ticket_checkins_total',
    'Ticket check-in attempts',
    ['result']  # admitted, already_used, invalid, wrong_event
)

# Capacity contention (expected, not failures)
capacity_conflicts = Counter(
    'capacity_conflicts_total',
    'Capacity or overlap conflicts rejected by conditional writes',
    ['resource']  # venue_window, event_attendees
)

# Event approval metrics
approval_decisions = Counter(
    'event_approval_decisions_total',
    'Event approval decisions',
    ['stage', 'decision']  # venue/admin, approved/rejected
)

# Payment metrics
payment_verifications = Counter(
    'payment_verifications_total',
    'Gateway payment verification outcomes',
    ['result']  # success, failed, already_processed
)

payment_amount = Histogram(
    'payment_amount',
    'Amount of successful payments',
    ['type'],
    buckets=[0, 100, 500, 1000, 5000, 10000, 50000, 100000]
)

gateway_latency = Histogram(
    'payment_gateway_latency_seconds',
    'Payment gateway call latency',
    ['operation'],  # initiate, verify, refund
    buckets=[0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0]
)

# Refund metrics
refund_outcomes = Counter(
    'refund_outcomes_total',
    'Refund workflow outcomes',
    ['status']  # requested, rejected, completed, failed
)

# Payout metrics
payout_outcomes = Counter(
    'payout_outcomes_total',
    'Payout workflow outcomes',
    ['type', 'status']  # venue_booking/event_tickets, created/processed/failed
)

# HTTP metrics
http_requests = Counter(
    'http_requests_total',
    'HTTP requests by route and status class',
    ['method', 'route', 'status']
)

http_request_duration = Histogram(
    'http_request_duration_seconds',
    'HTTP request latency',
    ['method', 'route'],
    buckets=[0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5]
)

# Cache metrics
cache_operations = Counter(
    'cache_operations_total',
    'Cache operations',
    ['operation', 'result']  # get/set, hit/miss
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

# Convenience functions for instrumentation
def record_booking_transition(transition: str):
    booking_transitions.labels(transition=transition).inc()

def record_ticket_purchase(result: str):
    """Record ticket purchase. Result: issued, payment_required, conflict"""
    ticket_purchases.labels(result=result).inc()

def record_checkin(result: str):
    ticket_checkins.labels(result=result).inc()

def record_capacity_conflict(resource: str):
    capacity_conflicts.labels(resource=resource).inc()

def record_approval(stage: str, decision: str):
    approval_decisions.labels(stage=stage, decision=decision).inc()

def record_verification(result: str, payment_type: str = None, amount: int = None):
    """Record payment verification. Result: success, failed, already_processed"""
    payment_verifications.labels(result=result).inc()
    if result == "success" and amount is not None:
        payment_amount.labels(type=payment_type).observe(amount)

def record_refund(status: str):
    refund_outcomes.labels(status=status).inc()

def record_payout(payout_type: str, status: str):
    payout_outcomes.labels(type=payout_type, status=status).inc()

def record_cache_operation(operation: str, hit: bool):
    """Record cache operation."""
    result = "hit" if hit else "miss"
    cache_operations.labels(operation=operation, result=result).inc()

def record_http_request(method: str, route: str, status_code: int, duration_seconds: float):
    http_requests.labels(method=method, route=route, status=f"{status_code // 100}xx").inc()
    http_request_duration.labels(method=method, route=route).observe(duration_seconds)
