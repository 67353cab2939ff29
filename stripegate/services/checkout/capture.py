"""Deferred capture of authorized charges.

Runs when the storefront moves an order from processing to completed. Orders
charged with immediate capture are left alone.
"""

from dataclasses import dataclass
from enum import Enum

from stripegate.common.config import settings
from stripegate.common.errors import ProcessorError
from stripegate.common.logging import logger
from stripegate.common.metrics import capture_total
from stripegate.services.checkout.models import Order, OrderMeta
from stripegate.services.checkout.orders import add_note

GATEWAY_NAME = "wc_stripe"


class CaptureOutcome(str, Enum):
    CAPTURED = "captured"
    NOT_APPLICABLE = "not_applicable"
    ERROR = "error"


@dataclass
class CaptureResult:
    outcome: CaptureOutcome
    message: str | None = None
    charge_id: str | None = None


def capture_order(db, order: Order, processor, amount: int | None = None) -> CaptureResult:
    """Capture the order's held charge, optionally for a smaller `amount`.

    Processor failures are logged and reported in the result; nothing is
    retried.
    """

    meta = db.get(OrderMeta, order.order_id)
    if meta is None or not meta.auth_capture:
        result = CaptureResult(CaptureOutcome.NOT_APPLICABLE)
    elif not meta.transaction_id:
        logger.error("capture skipped: no transaction id order_id=%s", order.order_id)
        result = CaptureResult(CaptureOutcome.ERROR, "Payment error: no transaction recorded for this order.")
    else:
        try:
            charge = processor.capture_charge(meta.transaction_id, amount)
        except ProcessorError as exc:
            logger.error("Stripe Error: %s order_id=%s", exc.message, order.order_id)
            result = CaptureResult(CaptureOutcome.ERROR, f"Payment error: {exc.message}")
        else:
            add_note(db, order, f'{GATEWAY_NAME} charge "{charge.id}" captured')
            logger.info("charge captured order_id=%s charge_id=%s", order.order_id, charge.id)
            result = CaptureResult(CaptureOutcome.CAPTURED, charge_id=charge.id)

    capture_total.labels(service=settings.service_name, outcome=result.outcome.value).inc()
    return result
