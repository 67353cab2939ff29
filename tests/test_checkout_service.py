"""Checkout submission flow: charging methods, completion, and failure handling."""

from decimal import Decimal

import pytest

from stripegate.common.errors import OrderNotFoundError, ProcessorError
from stripegate.services.checkout.models import CheckoutSession, Order
from stripegate.services.checkout.schemas import CheckoutContext, PaymentForm
from stripegate.services.checkout.service import round_half_up, to_minor_units
from stripegate.services.checkout.sessions import load_session

GUEST = CheckoutContext(session_id="sess-guest")
ADA = CheckoutContext(session_id="sess-ada", user_id=7)


def _charge_request(processor):
    return next(call[1] for call in processor.calls if call[0] == "create_charge")


def test_minor_units_conversion():
    """Totals convert to integer cents without float drift."""

    assert to_minor_units(Decimal("19.99"), "USD") == 1999
    assert to_minor_units(0.1 + 0.2, "usd") == 30
    assert to_minor_units(Decimal("500"), "JPY") == 500


def test_guest_checkout_charges_token(make_service, make_order, processor):
    """Guests pay with the one-time token; no customer is created."""

    make_order()
    service = make_service()

    result = service.process_payment(100, PaymentForm(stripe_token="tok_visa"), GUEST)

    assert result.result == "success"
    assert result.transaction_id == "ch_1"
    assert result.redirect.startswith("https://shop.example.com/checkout/order-received/100?key=wc_order_")
    assert processor.operations == ["create_charge"]
    request = _charge_request(processor)
    assert request.token == "tok_visa"
    assert request.amount == 1999
    assert request.currency == "usd"
    assert request.capture is True
    assert request.description == "Guest (ada@example.com) Ada Lovelace"

    order = service.describe_order(100)
    assert order.status == "completed"
    assert order.meta.transaction_id == "ch_1"
    assert order.meta.auth_capture is False
    assert 'wc_stripe payment completed with Transaction Id of "ch_1"' in order.notes


def test_order_needing_processing_moves_to_processing(make_service, make_order):
    make_order(needs_processing=True)
    service = make_service()

    service.process_payment(100, PaymentForm(stripe_token="tok_visa"), GUEST)

    assert service.describe_order(100).status == "processing"


def test_successful_payment_empties_cart(make_service, make_order, db):
    make_order()
    checkout = load_session(db, GUEST.session_id)
    checkout.cart = [{"product_id": 1, "quantity": 2}]
    checkout.order_awaiting_payment = 100
    db.commit()

    make_service().process_payment(100, PaymentForm(stripe_token="tok_visa"), GUEST)

    db.expire_all()
    checkout = db.get(CheckoutSession, GUEST.session_id)
    assert checkout.cart == []
    assert checkout.order_awaiting_payment is None


def test_first_card_creates_customer_and_saves_card(make_service, make_user, make_order, processor):
    """A logged-in user with no saved cards gets a processor customer."""

    make_user()
    make_order(user_id=7)
    service = make_service()

    result = service.process_payment(100, PaymentForm(stripe_token="tok_visa"), ADA)

    assert result.result == "success"
    assert processor.operations == ["create_customer", "create_charge"]
    assert processor.calls[0][3] == "ada (#7 - ada@example.com) Ada Lovelace"
    request = _charge_request(processor)
    assert (request.customer, request.card, request.token) == ("cus_2", "card_1", None)

    cards = service.saved_cards(7)
    assert [(c.customer_id, c.card_id, c.last4, c.brand) for c in cards] == [("cus_2", "card_1", "4242", "Visa")]
    assert service.describe_order(100).meta.customer_id == "cus_2"


def test_new_card_is_added_to_existing_customer(make_service, make_user, make_order, save_card, processor):
    make_user()
    make_order(user_id=7)
    save_card(7, "cus_existing", "card_old")
    service = make_service()

    result = service.process_payment(100, PaymentForm(stripe_token="tok_new", wc_stripe_card="new"), ADA)

    assert result.result == "success"
    assert processor.operations == ["get_customer", "add_card", "update_customer", "create_charge"]
    assert processor.calls[2] == ("update_customer", "cus_existing", {"default_card": "card_1"})
    request = _charge_request(processor)
    assert (request.customer, request.card) == ("cus_existing", "card_1")
    assert [c.card_id for c in service.saved_cards(7)] == ["card_old", "card_1"]


def test_saved_card_choice_charges_that_card(make_service, make_user, make_order, save_card, processor):
    """Choosing a saved card makes exactly one processor call."""

    make_user()
    make_order(user_id=7)
    save_card(7, "cus_a", "card_a")
    save_card(7, "cus_a", "card_b", last4="2222")
    service = make_service()

    result = service.process_payment(100, PaymentForm(wc_stripe_card="0"), ADA)

    assert result.result == "success"
    assert processor.operations == ["create_charge"]
    request = _charge_request(processor)
    assert (request.customer, request.card) == ("cus_a", "card_a")
    assert len(service.saved_cards(7)) == 2


def test_unknown_saved_card_index_fails_without_processor_call(make_service, make_user, make_order, save_card, processor):
    make_user()
    make_order(user_id=7)
    save_card(7, "cus_a", "card_a")
    service = make_service()

    result = service.process_payment(100, PaymentForm(wc_stripe_card="5"), ADA)

    assert result.result == "failure"
    assert "Please choose one of your saved cards" in result.messages
    assert processor.calls == []
    assert service.describe_order(100).status == "pending"


def test_deferred_capture_authorizes_only(make_service, make_order, processor):
    make_order()
    service = make_service(capture=True)

    service.process_payment(100, PaymentForm(stripe_token="tok_visa"), GUEST)

    assert _charge_request(processor).capture is False
    assert service.describe_order(100).meta.auth_capture is True


def test_processor_error_records_notices_and_note(make_service, make_order, processor):
    """A decline leaves the order unpaid with a note and two shopper notices."""

    make_order()
    processor.errors["create_charge"] = ProcessorError("Your card was declined.", code="card_declined")
    service = make_service()

    result = service.process_payment(100, PaymentForm(stripe_token="tok_visa"), GUEST)

    assert result.result == "failure"
    assert result.redirect is None
    assert result.messages == (
        '<ul class="woocommerce-error"><li>Error: Your card was declined.</li>'
        "<li>Transaction Error: Could not complete your payment.</li></ul>"
    )
    order = service.describe_order(100)
    assert order.status == "pending"
    assert order.meta is None
    assert 'wc_stripe Credit Card Payment Failed with message: "Your card was declined."' in order.notes


def test_failed_first_charge_saves_no_card(make_service, make_user, make_order, processor):
    make_user()
    make_order(user_id=7)
    processor.errors["create_charge"] = ProcessorError("Your card was declined.")
    service = make_service()

    result = service.process_payment(100, PaymentForm(stripe_token="tok_visa"), ADA)

    assert result.result == "failure"
    assert service.saved_cards(7) == []


def test_error_message_is_escaped_in_notice(make_service, make_order, processor):
    make_order()
    processor.errors["create_charge"] = ProcessorError("Bad <card>")

    result = make_service().process_payment(100, PaymentForm(stripe_token="tok_visa"), GUEST)

    assert "Error: Bad &lt;card&gt;" in result.messages


def test_form_errors_abort_silently(make_service, make_order, processor):
    """Client-side errors were already shown; nothing else happens."""

    make_order()
    service = make_service()

    result = service.process_payment(100, PaymentForm(stripe_token="tok_visa", form_errors=True), GUEST)

    assert result.result == "failure"
    assert result.messages == ""
    assert processor.calls == []
    order = service.describe_order(100)
    assert order.status == "pending"
    assert order.notes == []


def test_missing_token_fails(make_service, make_order, processor):
    make_order()

    result = make_service().process_payment(100, PaymentForm(stripe_token="  "), GUEST)

    assert result.result == "failure"
    assert "Your card details are missing" in result.messages
    assert processor.calls == []


def test_cancelled_order_is_not_charged(make_service, make_order, processor):
    make_order(status="cancelled")

    result = make_service().process_payment(100, PaymentForm(stripe_token="tok_visa"), GUEST)

    assert result.result == "failure"
    assert processor.calls == []


def test_unknown_order_raises(make_service):
    with pytest.raises(OrderNotFoundError):
        make_service().process_payment(404, PaymentForm(stripe_token="tok_visa"), GUEST)


def test_order_complete_is_noop_for_completed_orders(make_service, make_order, db):
    make_order(status="completed")
    service = make_service()
    order = db.get(Order, 100)
    checkout = load_session(db, GUEST.session_id)

    service.order_complete(db, order, checkout, "ch_9")
    db.commit()

    described = service.describe_order(100)
    assert described.status == "completed"
    assert described.notes == []


def test_half_up_rounding():
    assert round_half_up(2.5) == 3
    assert round_half_up(Decimal("1500.4")) == 1500


@pytest.mark.parametrize("owner", [None, 8])
def test_order_of_another_account_is_not_charged(make_service, make_user, make_order, save_card, processor, owner):
    """A logged-in shopper cannot pay someone else's order with their saved card."""

    make_user()
    make_user(user_id=8, login="grace", email="grace@example.com")
    save_card(7, "cus_victim", "card_victim")
    make_order(order_id=555, user_id=owner, total="999.00")

    result = make_service().process_payment(555, PaymentForm(wc_stripe_card="0"), ADA)

    assert result.result == "failure"
    assert "does not belong to your account" in result.messages
    assert processor.calls == []
    assert make_service().describe_order(555).status == "pending"


def test_deferred_capture_keeps_order_processing_until_completed(make_service, make_order, processor):
    """An authorized-only charge must still reach the capture step."""

    make_order()
    service = make_service(capture=True)

    service.process_payment(100, PaymentForm(stripe_token="tok_visa"), GUEST)
    assert service.describe_order(100).status == "processing"

    order, result = service.change_order_status(100, "completed")

    assert order.status == "completed"
    assert result.outcome.value == "captured"
    assert processor.operations == ["create_charge", "capture_charge"]


@pytest.mark.parametrize("needs_processing", [False, True])
def test_second_completion_changes_nothing(make_service, make_order, db, needs_processing):
    """Completing a paid order again adds no note and leaves the new cart alone."""

    make_order(needs_processing=needs_processing)
    service = make_service()
    service.process_payment(100, PaymentForm(stripe_token="tok_visa"), GUEST)

    order = db.get(Order, 100)
    checkout = load_session(db, GUEST.session_id)
    checkout.cart = [{"product_id": 2, "quantity": 1}]
    db.commit()

    service.order_complete(db, order, checkout, "ch_1")
    db.commit()

    db.expire_all()
    assert db.get(CheckoutSession, GUEST.session_id).cart == [{"product_id": 2, "quantity": 1}]
    notes = service.describe_order(100).notes
    assert notes.count('wc_stripe payment completed with Transaction Id of "ch_1"') == 1


def test_total_rounding_to_zero_fails_cleanly(make_service, make_order, processor):
    make_order(total="0.40", currency="JPY")

    result = make_service().process_payment(100, PaymentForm(stripe_token="tok_visa"), GUEST)

    assert result.result == "failure"
    assert "too small to charge" in result.messages
    assert processor.calls == []


def test_unusable_charge_fields_fail_cleanly(make_service, make_order, processor):
    """A charge the request model rejects becomes a failure result, not an exception."""

    make_order(currency="US")

    result = make_service().process_payment(100, PaymentForm(stripe_token="tok_visa"), GUEST)

    assert result.result == "failure"
    assert "could not be used for this order" in result.messages
    assert processor.calls == []
