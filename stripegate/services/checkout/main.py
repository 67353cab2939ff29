"""HTTP surface for checkout payment fields, submissions, and order events."""

from time import perf_counter
from uuid import uuid4

from fastapi import FastAPI, Form, Header, HTTPException, Request
from fastapi.responses import HTMLResponse, Response

from stripegate.common.config import settings
from stripegate.common.db import SessionLocal
from stripegate.common.errors import OrderNotFoundError
from stripegate.common.logging import configure_logging, logger, trace_id_ctx
from stripegate.common.metrics import http_request_duration_seconds, http_requests_total, metrics_response
from stripegate.common.startup import log_startup_config
from stripegate.common.tracing import instrument_app, setup_tracing
from stripegate.services.checkout.availability import check_gateway, is_available
from stripegate.services.checkout.locks import SubmissionLock
from stripegate.services.checkout.saved_cards import SavedCardReference
from stripegate.services.checkout.schemas import (
    CheckoutContext,
    OrderCreateRequest,
    OrderResponse,
    OrderStatusChange,
    PaymentForm,
    PaymentResult,
    StatusChangeResponse,
)
from stripegate.services.checkout.service import CheckoutService, round_half_up
from stripegate.services.checkout.validation import ValidationErrorsRequest

configure_logging()
setup_tracing(settings.service_name)
log_startup_config(
    settings.service_name,
    [
        "SERVICE_NAME",
        "DATABASE_DSN",
        "REDIS_URL",
        "TESTMODE",
        "CAPTURE",
        "ADDITIONAL_FIELDS",
        "TEST_SECRET_KEY",
        "LIVE_SECRET_KEY",
        "SUBMISSION_LOCK_ENABLED",
    ],
)
for problem in check_gateway(settings):
    logger.warning("gateway_check_failed: %s", problem.message)

service = CheckoutService(
    SessionLocal,
    settings,
    lock=SubmissionLock.from_settings(settings) if settings.submission_lock_enabled else None,
)

app = FastAPI(title="Stripe Checkout Gateway")
instrument_app(app)


@app.middleware("http")
async def metrics_middleware(request: Request, call_next):
    """Record request count and latency for every HTTP call."""

    start = perf_counter()
    route = request.url.path
    method = request.method
    status_code = 500
    trace_id_ctx.set(request.headers.get("x-trace-id") or str(uuid4()))
    try:
        response = await call_next(request)
        status_code = response.status_code
        route_obj = request.scope.get("route")
        if route_obj is not None and getattr(route_obj, "path", None):
            route = route_obj.path
        return response
    finally:
        elapsed = max(0.0, perf_counter() - start)
        http_request_duration_seconds.labels(
            service=settings.service_name,
            route=route,
            method=method,
        ).observe(elapsed)
        http_requests_total.labels(
            service=settings.service_name,
            route=route,
            method=method,
            status_code=str(status_code),
        ).inc()


def enforce_api_key(x_api_key: str | None) -> None:
    """Reject storefront-internal calls without the configured API key."""

    if x_api_key != settings.api_key:
        raise HTTPException(status_code=401, detail="invalid API key")


def _is_ssl(request: Request) -> bool:
    return request.url.scheme == "https" or request.headers.get("x-forwarded-proto") == "https"


def require_available(request: Request) -> None:
    if not is_available(service.settings, _is_ssl(request)):
        raise HTTPException(status_code=503, detail="payment gateway unavailable")


def _user_id(x_user_id: int | None, x_api_key: str | None) -> int | None:
    """Logged-in user id, honored only when the storefront vouches with its API key."""

    if x_user_id is not None:
        enforce_api_key(x_api_key)
    return x_user_id


def _context(x_session_id: str | None, x_user_id: int | None, x_api_key: str | None) -> CheckoutContext:
    return CheckoutContext(session_id=x_session_id or str(uuid4()), user_id=_user_id(x_user_id, x_api_key))


@app.get("/gateway/status")
def gateway_status(request: Request):
    """Title, mode and configuration problems for the storefront admin."""

    current = service.settings
    return {
        "enabled": current.enabled,
        "available": is_available(current, _is_ssl(request)),
        "title": current.title,
        "description": current.description,
        "testmode": current.testmode,
        "capture": current.capture,
        "problems": [problem.message for problem in check_gateway(current)],
    }


@app.get("/checkout/payment-fields", response_class=HTMLResponse)
def payment_fields(
    request: Request,
    x_user_id: int | None = Header(default=None),
    x_session_id: str | None = Header(default=None),
    x_api_key: str | None = Header(default=None),
):
    """Card form markup, with saved-card choices for logged-in users."""

    require_available(request)
    return HTMLResponse(service.payment_fields(_context(x_session_id, x_user_id, x_api_key)))


@app.get("/checkout/saved-cards", response_model=list[SavedCardReference])
def saved_cards(x_user_id: int | None = Header(default=None), x_api_key: str | None = Header(default=None)):
    return service.saved_cards(_user_id(x_user_id, x_api_key))


@app.post("/checkout/orders/{order_id}/payment", response_model=PaymentResult)
def submit_payment(
    order_id: int,
    request: Request,
    stripe_token: str = Form(default=""),
    wc_stripe_card: str = Form(default=""),
    form_errors: str = Form(default=""),
    x_user_id: int | None = Header(default=None),
    x_session_id: str | None = Header(default=None),
    x_api_key: str | None = Header(default=None),
):
    """Charge an order with the token or saved card posted by checkout."""

    require_available(request)
    form = PaymentForm(
        stripe_token=stripe_token,
        wc_stripe_card=wc_stripe_card,
        form_errors=form_errors.strip().lower() in {"1", "true", "yes", "on"},
    )
    try:
        return service.process_payment(order_id, form, _context(x_session_id, x_user_id, x_api_key))
    except OrderNotFoundError as exc:
        raise HTTPException(status_code=404, detail="order not found") from exc


@app.post("/checkout/validation-errors")
def validation_errors(
    req: ValidationErrorsRequest,
    x_requested_with: str | None = Header(default=None),
    x_user_id: int | None = Header(default=None),
    x_session_id: str | None = Header(default=None),
    x_api_key: str | None = Header(default=None),
):
    """Turn browser-side card errors into notices.

    Asynchronous calls get the failure envelope; anything else gets an empty
    response.
    """

    is_ajax = (x_requested_with or "").lower() == "xmlhttprequest"
    envelope = service.relay_validation(_context(x_session_id, x_user_id, x_api_key), req.errors, is_ajax)
    if envelope is None:
        return Response(status_code=204)
    return envelope


@app.post("/internal/orders", response_model=OrderResponse)
def create_order(req: OrderCreateRequest, x_api_key: str | None = Header(default=None)):
    """Register a storefront order in `pending` before payment."""

    enforce_api_key(x_api_key)
    try:
        service.create_order(req)
    except ValueError as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc
    return service.describe_order(req.order_id)


@app.get("/orders/{order_id}", response_model=OrderResponse)
def get_order(order_id: int):
    """Order status, payment metadata and notes."""

    try:
        return service.describe_order(order_id)
    except OrderNotFoundError as exc:
        raise HTTPException(status_code=404, detail="order not found") from exc


@app.post("/orders/{order_id}/status", response_model=StatusChangeResponse)
def change_order_status(
    order_id: int,
    req: OrderStatusChange,
    x_api_key: str | None = Header(default=None),
):
    """Storefront status-change event; processing -> completed captures held funds."""

    enforce_api_key(x_api_key)
    amount = round_half_up(req.amount) if req.amount is not None else None
    try:
        order, result = service.change_order_status(order_id, req.status, amount)
    except OrderNotFoundError as exc:
        raise HTTPException(status_code=404, detail="order not found") from exc
    except ValueError as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc
    return StatusChangeResponse(
        order_id=order.order_id,
        status=order.status,
        capture=result.outcome.value,
        message=result.message,
    )


@app.get("/metrics")
def metrics():
    """Prometheus scrape endpoint."""

    return metrics_response()


@app.get("/health")
def health():
    """Container health probe endpoint."""

    return {"ok": True}
