"""Relay browser-side card validation errors back as checkout notices."""

from pydantic import BaseModel, Field

from stripegate.common.config import settings
from stripegate.common.metrics import validation_errors_total
from stripegate.services.checkout.models import CheckoutSession
from stripegate.services.checkout.sessions import add_notice, render_notices

FIELD_LABELS: dict[str, str] = {
    "number": "Credit Card Number",
    "expiration": "Credit Card Expiration",
    "cvc": "Credit Card CVC",
}


class CardFieldError(BaseModel):
    """One field-level error reported by the card form script."""

    field: str
    type: str


class ValidationErrorsRequest(BaseModel):
    errors: list[CardFieldError] = Field(default_factory=list)


class FailureEnvelope(BaseModel):
    """Response for asynchronous checkout calls that did not go through."""

    result: str = "failure"
    messages: str
    refresh: bool = False
    reload: bool = False


def format_error(error: CardFieldError) -> str:
    """Map a `(field, type)` pair to a shopper-facing message.

    Unknown fields render an empty label; unknown types keep the bare label.
    """

    message = f"<strong>{FIELD_LABELS.get(error.field, '')}</strong>"
    if error.type == "undefined":
        message += " is a required field"
    elif error.type == "invalid":
        message = f"Please enter a valid {message}"
    return message + "."


def relay_validation_errors(session: CheckoutSession, errors: list[CardFieldError]) -> list[str]:
    """Add one error notice per reported field error and return the messages."""

    messages = []
    for error in errors:
        message = format_error(error)
        add_notice(session, message, "error")
        validation_errors_total.labels(
            service=settings.service_name,
            field=error.field if error.field in FIELD_LABELS else "unknown",
            error_type=error.type if error.type in {"undefined", "invalid"} else "unknown",
        ).inc()
        messages.append(message)
    return messages


def build_failure_envelope(session: CheckoutSession) -> FailureEnvelope:
    """Render pending notices and consume the refresh/reload flags."""

    envelope = FailureEnvelope(
        messages=render_notices(session),
        refresh=bool(session.refresh_totals),
        reload=bool(session.reload_checkout),
    )
    session.refresh_totals = False
    session.reload_checkout = False
    return envelope
