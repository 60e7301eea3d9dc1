"""
Metrics instrumentation for observability.
Exposes Prometheus-compatible metrics at /metrics endpoint.
"""

from fastapi import Response
from prometheus_client import CONTENT_TYPE_LATEST, Counter, Gauge, Histogram, generate_latest

# Booking lifecycle
slot_requests = Counter(
    "slot_requests_total",
    "Slot requests by outcome",
    ["result"],  # created, capacity_exceeded, already_enrolled, ineligible, error
)

slot_request_latency = Histogram(
    "slot_request_latency_seconds",
    "RequestSlot latency",
    buckets=[0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5],
)

booking_transitions = Counter(
    "booking_transitions_total",
    "Booking state transitions",
    ["transition"],  # approved, rejected, cancelled, completed, confirmed
)

state_conflicts = Counter(
    "booking_state_conflicts_total",
    "Compare-and-set updates that lost a race",
    ["operation"],
)

# Payments
payment_orders = Counter(
    "payment_orders_total",
    "Payment order requests",
    ["result"],  # created, reused, invalid_amount, gateway_error
)

payment_verifications = Counter(
    "payment_verifications_total",
    "Payment verification outcomes",
    ["result"],  # success, invalid_signature, status_mismatch, amount_mismatch
)

gateway_latency = Histogram(
    "payment_gateway_latency_seconds",
    "Latency of payment gateway calls",
    ["operation"],
    buckets=[0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0],
)

webhook_events = Counter(
    "payment_webhooks_total",
    "Gateway webhook deliveries by event and outcome",
    ["event", "result"],
)

payouts = Counter(
    "payouts_total",
    "Payout creation outcomes",
    ["result"],  # created, skipped
)

# Side effects
side_effect_jobs = Counter(
    "side_effect_jobs_total",
    "Background side-effect jobs",
    ["kind", "result"],  # result: success, retry, failed, dropped
)

side_effect_queue_depth = Gauge(
    "side_effect_queue_depth",
    "Jobs waiting in the side-effect queue",
)

# Cache
cache_operations = Counter(
    "cache_operations_total",
    "Cache operations",
    ["operation", "result"],  # get/set, hit/miss
)

redis_connection_errors = Counter(
    "redis_connection_errors_total",
    "Redis connection errors",
)


def metrics_endpoint() -> Response:
    """Prometheus scrape target."""
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)


def record_slot_request(result: str):
    slot_requests.labels(result=result).inc()


def record_transition(transition: str):
    booking_transitions.labels(transition=transition).inc()


def record_state_conflict(operation: str):
    state_conflicts.labels(operation=operation).inc()


def record_payment_order(result: str):
    payment_orders.labels(result=result).inc()


def record_verification(result: str):
    payment_verifications.labels(result=result).inc()


def record_payout(result: str):
    payouts.labels(result=result).inc()


def record_webhook(event: str, result: str):
    webhook_events.labels(event=event, result=result).inc()


def record_side_effect(kind: str, result: str):
    side_effect_jobs.labels(kind=kind, result=result).inc()


def record_cache_operation(operation: str, hit: bool):
    """Record cache operation."""
    result = "hit" if hit else "miss"
    cache_operations.labels(operation=operation, result=result).inc()
