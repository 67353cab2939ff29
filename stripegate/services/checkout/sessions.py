"""Checkout session state and shopper-visible notices."""

import html

from stripegate.services.checkout.models import CheckoutSession


def load_session(db, session_id: str, user_id: int | None = None) -> CheckoutSession:
    """Fetch the shopper's session row, creating an empty one on first use."""

    session = db.get(CheckoutSession, session_id)
    if session is None:
        session = CheckoutSession(
            session_id=session_id,
            user_id=user_id,
            cart=[],
            notices=[],
            refresh_totals=False,
            reload_checkout=False,
        )
        db.add(session)
    return session


def add_notice(session: CheckoutSession, message: str, level: str = "error") -> None:
    # Reassign so the JSON column is flagged dirty.
    session.notices = [*(session.notices or []), {"level": level, "message": message}]


def render_notices(session: CheckoutSession) -> str:
    """Render pending notices as HTML lists grouped by level, then clear them.

    Notice messages may carry inline markup (`<strong>`), so they are emitted
    as-is; the level is escaped.
    """

    grouped: dict[str, list[str]] = {}
    for notice in session.notices or []:
        grouped.setdefault(notice.get("level", "error"), []).append(notice.get("message", ""))
    session.notices = []

    parts = []
    for level, messages in grouped.items():
        items = "".join(f"<li>{message}</li>" for message in messages)
        parts.append(f'<ul class="woocommerce-{html.escape(level)}">{items}</ul>')
    return "".join(parts)


def empty_cart(session: CheckoutSession) -> None:
    session.cart = []
