"""API request/response schemas for checkout endpoints."""

from dataclasses import dataclass
from decimal import Decimal
from typing import Literal

from pydantic import BaseModel, Field


@dataclass
class CheckoutContext:
    """Who is checking out: the session always, the user when logged in."""

    session_id: str
    user_id: int | None = None


class PaymentForm(BaseModel):
    """Fields posted by the checkout form; raw card data is never included."""

    stripe_token: str = ""
    wc_stripe_card: str = ""
    form_errors: bool = False


class PaymentResult(BaseModel):
    """Outcome of one submission as returned to the browser."""

    result: Literal["success", "failure"]
    redirect: str | None = None
    messages: str = ""
    transaction_id: str | None = None


class OrderCreateRequest(BaseModel):
    """Order registration payload sent by the storefront."""

    order_id: int = Field(gt=0)
    user_id: int | None = None
    total: Decimal = Field(gt=0, decimal_places=2)
    currency: str = Field(min_length=3, max_length=3)
    billing_first_name: str = ""
    billing_last_name: str = ""
    billing_email: str = ""
    billing_address_1: str = ""
    billing_address_2: str = ""
    billing_postcode: str = ""
    billing_state: str = ""
    billing_country: str = ""
    needs_processing: bool = False


class OrderStatusChange(BaseModel):
    """Storefront order-status event; `amount` overrides the capture amount."""

    status: str = Field(min_length=1)
    amount: float | None = Field(default=None, gt=0)


class OrderMetaResponse(BaseModel):
    transaction_id: str
    auth_capture: bool
    customer_id: str | None = None


class OrderResponse(BaseModel):
    order_id: int
    status: str
    total: Decimal
    currency: str
    meta: OrderMetaResponse | None = None
    notes: list[str] = Field(default_factory=list)


class StatusChangeResponse(BaseModel):
    order_id: int
    status: str
    capture: str
    message: str | None = None
