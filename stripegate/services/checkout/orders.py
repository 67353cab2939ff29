"""Order helpers: lookup, notes, and validated status transitions."""

from datetime import datetime, timezone

from sqlalchemy import update

from stripegate.common.errors import OrderNotFoundError, StorageError
from stripegate.common.state_machine import validate_transition
from stripegate.services.checkout.models import Order, OrderNote, OrderTimeline


def get_order(db, order_id: int) -> Order:
    order = db.get(Order, order_id)
    if order is None:
        raise OrderNotFoundError(f"order {order_id} not found")
    return order


def add_note(db, order: Order, note: str) -> None:
    db.add(OrderNote(order_id=order.order_id, note=note))


def transition(db, order: Order, new_status: str, reason: str) -> None:
    """Apply one validated status transition with optimistic concurrency.

    Writes are guarded by `(order_id, status, state_version)` so a stale
    concurrent update cannot succeed.
    """

    validate_transition(order.status, new_status)
    from_status = order.status
    current_version = order.state_version

    result = db.execute(
        update(Order)
        .where(
            Order.order_id == order.order_id,
            Order.status == from_status,
            Order.state_version == current_version,
        )
        .values(
            status=new_status,
            state_version=current_version + 1,
            updated_at=datetime.now(timezone.utc),
        )
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        raise StorageError(
            f"Order {order.order_id} was updated concurrently (expected version {current_version})."
        )

    order.status = new_status
    order.state_version = current_version + 1
    db.add(
        OrderTimeline(
            order_id=order.order_id,
            from_state=from_status,
            to_state=new_status,
            reason=reason,
        )
    )


def paid_status(order: Order, hold_for_capture: bool = False) -> str:
    """Status a paid order settles in.

    Orders with physical goods, and orders whose charge is only authorized,
    stay in `processing` so the later move to `completed` can capture.
    """

    return "processing" if order.needs_processing or hold_for_capture else "completed"


def payment_complete(db, order: Order, hold_for_capture: bool = False) -> None:
    """Move a paid order forward to its paid status."""

    target = paid_status(order, hold_for_capture)
    if order.status == target:
        return
    transition(db, order, target, reason="payment_complete")
