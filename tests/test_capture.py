"""Deferred capture on the processing -> completed status change."""

import pytest

from stripegate.common.errors import ProcessorError
from stripegate.services.checkout.capture import CaptureOutcome, capture_order
from stripegate.services.checkout.models import Order, OrderMeta
from stripegate.services.checkout.schemas import CheckoutContext, PaymentForm

GUEST = CheckoutContext(session_id="sess-guest")


def _authorized_order(make_order, db, auth_capture=True, transaction_id="ch_held"):
    make_order(status="processing")
    db.add(OrderMeta(order_id=100, transaction_id=transaction_id, auth_capture=auth_capture))
    db.commit()
    return db.get(Order, 100)


def test_capture_held_charge(make_order, db, processor):
    order = _authorized_order(make_order, db)

    result = capture_order(db, order, processor)
    db.commit()

    assert result.outcome is CaptureOutcome.CAPTURED
    assert result.charge_id == "ch_held"
    assert processor.calls == [("capture_charge", "ch_held", None)]


def test_immediate_capture_orders_are_left_alone(make_order, db, processor):
    order = _authorized_order(make_order, db, auth_capture=False)

    result = capture_order(db, order, processor)

    assert result.outcome is CaptureOutcome.NOT_APPLICABLE
    assert processor.calls == []


def test_order_without_payment_metadata_is_not_applicable(make_order, db, processor):
    make_order(status="processing")

    result = capture_order(db, db.get(Order, 100), processor)

    assert result.outcome is CaptureOutcome.NOT_APPLICABLE


def test_missing_transaction_id_is_an_error(make_order, db, processor):
    order = _authorized_order(make_order, db, transaction_id="")

    result = capture_order(db, order, processor)

    assert result.outcome is CaptureOutcome.ERROR
    assert processor.calls == []


def test_capture_failure_is_reported_not_raised(make_order, db, processor):
    """Capture errors are logged and returned; the status change stands."""

    order = _authorized_order(make_order, db)
    processor.errors["capture_charge"] = ProcessorError("Charge ch_held has already been captured.")

    result = capture_order(db, order, processor)

    assert result.outcome is CaptureOutcome.ERROR
    assert result.message == "Payment error: Charge ch_held has already been captured."


def test_status_change_captures_after_deferred_payment(make_service, make_order, processor):
    """Authorize at checkout, then capture a partial amount on completion."""

    make_order(needs_processing=True)
    service = make_service(capture=True)
    service.process_payment(100, PaymentForm(stripe_token="tok_visa"), GUEST)

    order, result = service.change_order_status(100, "completed", amount=1500)

    assert order.status == "completed"
    assert result.outcome is CaptureOutcome.CAPTURED
    assert processor.calls[-1] == ("capture_charge", "ch_1", 1500)
    assert 'wc_stripe charge "ch_1" captured' in service.describe_order(100).notes


def test_other_status_changes_do_not_capture(make_service, make_order, processor):
    make_order()
    service = make_service()

    order, result = service.change_order_status(100, "on-hold")

    assert order.status == "on-hold"
    assert result.outcome is CaptureOutcome.NOT_APPLICABLE
    assert processor.calls == []


def test_invalid_status_change_raises(make_service, make_order):
    make_order()

    with pytest.raises(ValueError):
        make_service().change_order_status(100, "refunded")
