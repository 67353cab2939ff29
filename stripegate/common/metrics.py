"""Prometheus metric definitions for the checkout gateway."""

from prometheus_client import Counter, Histogram, generate_latest
from starlette.responses import Response


payment_requests_total = Counter("payment_requests_total", "Total payment submissions", ["service"])
payment_success_total = Counter("payment_success_total", "Total successful payments", ["service"])
payment_failure_total = Counter("payment_failure_total", "Total failed payments", ["service", "reason"])
payment_latency_seconds = Histogram("payment_latency_seconds", "Payment submission latency seconds", ["service"])
capture_total = Counter("capture_total", "Capture trigger outcomes", ["service", "outcome"])
processor_requests_total = Counter(
    "processor_requests_total",
    "Outbound payment processor calls",
    ["service", "operation", "outcome"],
)
processor_latency_seconds = Histogram(
    "processor_latency_seconds",
    "Outbound payment processor call latency seconds",
    ["service", "operation"],
)
validation_errors_total = Counter(
    "validation_errors_total",
    "Client-side card validation errors relayed",
    ["service", "field", "error_type"],
)
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


def metrics_response() -> Response:
    """Expose all registered Prometheus metrics in text format."""

    return Response(content=generate_latest(), media_type="text/plain")
