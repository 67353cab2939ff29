"""Checkout payment submission.

Resolves how an order is charged (one-time token, new processor customer,
new card on an existing customer, or a saved card), calls the processor, and
records the result on the order. Every processor or storage failure is caught
here and turned into shopper notices, an order note, and a failure result;
nothing is written to the order's payment metadata unless the charge
succeeded.
"""

import html
from contextlib import nullcontext
from decimal import ROUND_HALF_UP, Decimal

from pydantic import ValidationError
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError

from stripegate.common.config import GatewaySettings
from stripegate.common.errors import FormValidationError, GatewayError, ProcessorError, StorageError
from stripegate.common.logging import logger, order_id_ctx, user_id_ctx
from stripegate.common.metrics import (
    payment_failure_total,
    payment_latency_seconds,
    payment_requests_total,
    payment_success_total,
)
from stripegate.services.checkout.capture import GATEWAY_NAME, CaptureOutcome, CaptureResult, capture_order
from stripegate.services.checkout.forms import render_payment_fields
from stripegate.services.checkout.locks import SubmissionLock
from stripegate.services.checkout.models import Order, OrderMeta, OrderNote, User
from stripegate.services.checkout.orders import add_note, get_order, paid_status, payment_complete, transition
from stripegate.services.checkout.saved_cards import SavedCardReference, add_card, list_cards
from stripegate.services.checkout.schemas import (
    CheckoutContext,
    OrderCreateRequest,
    OrderMetaResponse,
    OrderResponse,
    PaymentForm,
    PaymentResult,
)
from stripegate.services.checkout.sessions import add_notice, empty_cart, load_session, render_notices
from stripegate.services.checkout.validation import (
    CardFieldError,
    FailureEnvelope,
    build_failure_envelope,
    relay_validation_errors,
)
from stripegate.services.processor.client import StripeClient
from stripegate.services.processor.schemas import ChargeRequest

ZERO_DECIMAL_CURRENCIES = frozenset(
    {"bif", "clp", "djf", "gnf", "jpy", "kmf", "krw", "mga", "pyg", "rwf", "ugx", "vnd", "vuv", "xaf", "xof", "xpf"}
)


def round_half_up(value) -> int:
    """Round to the nearest integer, halves away from zero (2.5 -> 3)."""

    return int(Decimal(str(value)).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def to_minor_units(total, currency: str) -> int:
    """Convert an order total to integer minor units (19.99 USD -> 1999)."""

    factor = 1 if currency.lower() in ZERO_DECIMAL_CURRENCIES else 100
    return round_half_up(Decimal(str(total)) * factor)


class CheckoutService:
    """Owns payment submission, order completion, and deferred capture."""

    def __init__(
        self,
        session_factory,
        settings: GatewaySettings,
        processor_factory=None,
        lock: SubmissionLock | None = None,
    ) -> None:
        self.session_factory = session_factory
        self.settings = settings
        self.processor_factory = processor_factory or (lambda: StripeClient.from_settings(settings))
        self.lock = lock

    # -- checkout form ----------------------------------------------------

    def saved_cards(self, user_id: int | None) -> list[SavedCardReference]:
        if user_id is None:
            return []
        with self.session_factory() as db:
            return list_cards(db, user_id)

    def payment_fields(self, ctx: CheckoutContext) -> str:
        return render_payment_fields(self.settings, self.saved_cards(ctx.user_id))

    # -- payment submission -----------------------------------------------

    def process_payment(self, order_id: int, form: PaymentForm, ctx: CheckoutContext) -> PaymentResult:
        """Charge the order and record the outcome.

        Raises `OrderNotFoundError` for an unknown order; every other failure
        comes back as a `failure` result.
        """

        order_id_ctx.set(str(order_id))
        user_id_ctx.set("" if ctx.user_id is None else str(ctx.user_id))
        payment_requests_total.labels(service=self.settings.service_name).inc()
        with payment_latency_seconds.labels(service=self.settings.service_name).time():
            with self.session_factory() as db:
                order = get_order(db, order_id)
                checkout = load_session(db, ctx.session_id, ctx.user_id)

                # Card errors were already relayed by the browser; don't touch the processor.
                if form.form_errors:
                    logger.info("payment aborted: form has client-side errors order_id=%s", order_id)
                    db.commit()
                    payment_failure_total.labels(service=self.settings.service_name, reason="form_errors").inc()
                    return PaymentResult(result="failure")

                try:
                    with self._submission_guard(order_id):
                        transaction_id = self._send_to_processor(db, order, form, ctx)
                        self.order_complete(db, order, checkout, transaction_id)
                        db.commit()
                except (GatewayError, SQLAlchemyError) as exc:
                    db.rollback()
                    return self._payment_failed(db, order_id, ctx, exc)

        payment_success_total.labels(service=self.settings.service_name).inc()
        logger.info("payment completed order_id=%s transaction_id=%s", order_id, transaction_id)
        return PaymentResult(
            result="success",
            redirect=self.return_url(order),
            transaction_id=transaction_id,
        )

    def _submission_guard(self, order_id: int):
        if self.lock is None:
            return nullcontext()
        return self.lock.hold(order_id)

    def return_url(self, order: Order) -> str:
        return f"{self.settings.store_url.rstrip('/')}/checkout/order-received/{order.order_id}?key={order.order_key}"

    def _customer_description(self, order: Order, user: User | None) -> str:
        if user is not None:
            return f"{user.login} (#{user.user_id} - {user.email}) {order.billing_name}"
        return f"Guest ({order.billing_email}) {order.billing_name}"

    @staticmethod
    def _require_token(token: str) -> str:
        token = token.strip()
        if not token:
            raise FormValidationError("Your card details are missing, please enter them again.")
        return token

    @staticmethod
    def _chosen_card(cards: list[SavedCardReference], choice: str) -> SavedCardReference:
        try:
            index = int(choice)
        except ValueError:
            index = -1
        if not 0 <= index < len(cards):
            raise FormValidationError("Please choose one of your saved cards or use a new credit card.")
        return cards[index]

    @staticmethod
    def _charge_request(charge_fields: dict, **method) -> ChargeRequest:
        try:
            return ChargeRequest(**charge_fields, **method)
        except ValidationError as exc:
            logger.warning("charge request rejected error=%s", exc.errors(include_url=False))
            raise FormValidationError("Your payment details could not be used for this order.") from exc

    def _send_to_processor(self, db, order: Order, form: PaymentForm, ctx: CheckoutContext) -> str:
        """Resolve the charging method, charge, and stage the metadata writes.

        Returns the processor transaction id. Nothing is committed here.
        """

        if order.status in {"cancelled", "refunded"}:
            raise FormValidationError("This order can no longer be paid for.")
        if ctx.user_id is not None and order.user_id != ctx.user_id:
            logger.warning("payment rejected: order owner mismatch order_id=%s", order.order_id)
            raise FormValidationError("This order does not belong to your account.")
        user = db.get(User, ctx.user_id) if ctx.user_id is not None else None
        description = self._customer_description(order, user)
        charge_fields = {
            "amount": to_minor_units(order.total, order.currency),
            "currency": order.currency.lower(),
            "description": description,
            "capture": not self.settings.capture,
        }
        if charge_fields["amount"] <= 0:
            raise FormValidationError("The order total is too small to charge.")
        new_card = None
        customer_id = None

        with self.processor_factory() as processor:
            if user is None:
                request = self._charge_request(charge_fields, token=self._require_token(form.stripe_token))
            else:
                cards = list_cards(db, user.user_id)
                if not cards:
                    customer = processor.create_customer(
                        user.user_id,
                        self._require_token(form.stripe_token),
                        description,
                        email=user.email,
                    )
                    new_card = customer.default()
                    if new_card is None:
                        raise ProcessorError("Invalid response.")
                    customer_id, card_id = customer.id, new_card.id
                elif form.wc_stripe_card == "new":
                    customer_id = cards[0].customer_id
                    processor.get_customer(customer_id)
                    new_card = processor.add_card(customer_id, self._require_token(form.stripe_token))
                    processor.update_customer(customer_id, {"default_card": new_card.id})
                    card_id = new_card.id
                else:
                    saved = self._chosen_card(cards, form.wc_stripe_card)
                    customer_id, card_id = saved.customer_id, saved.card_id
                request = self._charge_request(charge_fields, customer=customer_id, card=card_id)

            charge = processor.create_charge(request)

        meta = db.get(OrderMeta, order.order_id)
        if meta is None:
            meta = OrderMeta(order_id=order.order_id)
            db.add(meta)
        meta.transaction_id = charge.id
        meta.auth_capture = self.settings.capture
        meta.customer_id = customer_id
        if new_card is not None:
            add_card(db, user.user_id, SavedCardReference.from_card(customer_id, new_card))
        db.flush()
        return charge.id

    def order_complete(self, db, order: Order, checkout, transaction_id: str) -> None:
        """Mark the order paid; a no-op once the order has reached its paid status."""

        if order.status in {"completed", paid_status(order, self.settings.capture)}:
            return
        payment_complete(db, order, hold_for_capture=self.settings.capture)
        empty_cart(checkout)
        add_note(db, order, f'{GATEWAY_NAME} payment completed with Transaction Id of "{transaction_id}"')
        checkout.order_awaiting_payment = None

    def _payment_failed(self, db, order_id: int, ctx: CheckoutContext, exc: Exception) -> PaymentResult:
        if isinstance(exc, GatewayError):
            error = exc
        else:
            logger.exception("storage error during payment order_id=%s", order_id)
            error = StorageError("We could not save your payment, please try again.")
        logger.warning("payment failed order_id=%s error=%s", order_id, error.message)

        order = get_order(db, order_id)
        checkout = load_session(db, ctx.session_id, ctx.user_id)
        add_notice(checkout, f"Error: {html.escape(error.message)}")
        add_note(db, order, f'{GATEWAY_NAME} Credit Card Payment Failed with message: "{error.message}"')
        add_notice(checkout, "Transaction Error: Could not complete your payment.")
        messages = render_notices(checkout)
        db.commit()

        reason = type(error).__name__.removesuffix("Error").lower()
        payment_failure_total.labels(service=self.settings.service_name, reason=reason).inc()
        return PaymentResult(result="failure", messages=messages)

    # -- validation relay -------------------------------------------------

    def relay_validation(
        self, ctx: CheckoutContext, errors: list[CardFieldError], is_ajax: bool
    ) -> FailureEnvelope | None:
        """Queue notices for browser-side card errors.

        Asynchronous callers get the rendered envelope back; other callers get
        nothing and see the notices on their next page load.
        """

        with self.session_factory() as db:
            checkout = load_session(db, ctx.session_id, ctx.user_id)
            relay_validation_errors(checkout, errors)
            envelope = build_failure_envelope(checkout) if is_ajax else None
            db.commit()
        return envelope

    # -- storefront order events ------------------------------------------

    def create_order(self, req: OrderCreateRequest) -> Order:
        with self.session_factory() as db:
            if db.get(Order, req.order_id) is not None:
                raise ValueError(f"order {req.order_id} already exists")
            order = Order(**req.model_dump(), status="pending", state_version=0)
            db.add(order)
            db.commit()
            return order

    def describe_order(self, order_id: int) -> OrderResponse:
        with self.session_factory() as db:
            order = get_order(db, order_id)
            meta = db.get(OrderMeta, order_id)
            notes = db.execute(
                select(OrderNote.note).where(OrderNote.order_id == order_id).order_by(OrderNote.created_at)
            ).scalars().all()
            return OrderResponse(
                order_id=order.order_id,
                status=order.status,
                total=order.total,
                currency=order.currency,
                meta=(
                    OrderMetaResponse(
                        transaction_id=meta.transaction_id,
                        auth_capture=meta.auth_capture,
                        customer_id=meta.customer_id,
                    )
                    if meta
                    else None
                ),
                notes=list(notes),
            )

    def change_order_status(
        self, order_id: int, new_status: str, amount: int | None = None
    ) -> tuple[Order, CaptureResult]:
        """Apply a storefront status change; processing -> completed captures.

        Raises `ValueError` for transitions the state machine rejects.
        """

        order_id_ctx.set(str(order_id))
        with self.session_factory() as db:
            order = get_order(db, order_id)
            previous = order.status
            transition(db, order, new_status, reason="status_change")
            db.commit()

            result = CaptureResult(CaptureOutcome.NOT_APPLICABLE)
            if previous == "processing" and new_status == "completed":
                with self.processor_factory() as processor:
                    result = capture_order(db, order, processor, amount)
                db.commit()
            return order, result
