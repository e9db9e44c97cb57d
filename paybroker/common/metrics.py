"""Prometheus metric definitions for the broker."""

from prometheus_client import Counter, Histogram, generate_latest
from starlette.responses import Response


payment_requests_total = Counter("payment_requests_total", "Total payment session requests", ["service"])
payment_success_total = Counter("payment_success_total", "Total payment sessions created", ["service"])
payment_failure_total = Counter(
    "payment_failure_total",
    "Total failed payment session requests",
    ["service", "code"],
)
payment_latency_seconds = Histogram("payment_latency_seconds", "Payment session latency seconds", ["service"])
http_requests_total = Counter(
    "http_requests_total",
    "Total HTTP requests",
    ["service", "route", "method", "status_code"],
)
http_request_duration_seconds = Histogram(
    "http_request_duration_seconds",
    "HTTP request duration seconds",
    ["service", "route", "method"],
)
gateway_requests_total = Counter(
    "gateway_requests_total",
    "Outbound payment gateway calls",
    ["service", "operation", "status_code"],
)
gateway_request_duration_seconds = Histogram(
    "gateway_request_duration_seconds",
    "Outbound payment gateway call duration seconds",
    ["service", "operation"],
)
credential_refresh_total = Counter(
    "credential_refresh_total",
    "Bearer credential refresh attempts",
    ["service", "outcome"],
)
transaction_ids_allocated_total = Counter(
    "transaction_ids_allocated_total",
    "Transaction ids reserved in the shared store",
    ["service"],
)
transaction_id_collisions_total = Counter(
    "transaction_id_collisions_total",
    "Candidate transaction ids already taken in the shared store",
    ["service"],
)


def metrics_response() -> Response:
    """Expose all registered Prometheus metrics in text format."""

    return Response(content=generate_latest(), media_type="text/plain")
