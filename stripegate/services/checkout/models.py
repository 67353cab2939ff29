"""Checkout database models.

The storefront-side records (users, orders, notes, session/cart) live here
next to the gateway's own records (payment metadata, saved cards) so a
submission can be committed as one unit.
"""

from datetime import datetime
from decimal import Decimal
from uuid import uuid4

from sqlalchemy import Boolean, DateTime, ForeignKey, Integer, Numeric, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column

from stripegate.common.db import Base, JSONType


class User(Base):
    """Logged-in storefront customer."""

    __tablename__ = "users"

    user_id: Mapped[int] = mapped_column(Integer, primary_key=True)
    login: Mapped[str] = mapped_column(String, unique=True)
    email: Mapped[str] = mapped_column(String)


class Order(Base):
    """Purchase record; created by the storefront before payment."""

    __tablename__ = "orders"

    order_id: Mapped[int] = mapped_column(Integer, primary_key=True)
    order_key: Mapped[str] = mapped_column(String, unique=True, default=lambda: f"wc_order_{uuid4().hex[:13]}")
    user_id: Mapped[int | None] = mapped_column(ForeignKey("users.user_id"), nullable=True, index=True)
    total: Mapped[Decimal] = mapped_column(Numeric(12, 2))
    currency: Mapped[str] = mapped_column(String(3))
    billing_first_name: Mapped[str] = mapped_column(String, default="")
    billing_last_name: Mapped[str] = mapped_column(String, default="")
    billing_email: Mapped[str] = mapped_column(String, default="")
    billing_address_1: Mapped[str] = mapped_column(String, default="")
    billing_address_2: Mapped[str] = mapped_column(String, default="")
    billing_postcode: Mapped[str] = mapped_column(String, default="")
    billing_state: Mapped[str] = mapped_column(String, default="")
    billing_country: Mapped[str] = mapped_column(String, default="")
    needs_processing: Mapped[bool] = mapped_column(Boolean, default=False)
    status: Mapped[str] = mapped_column(String, default="pending", index=True)
    state_version: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    @property
    def billing_name(self) -> str:
        return f"{self.billing_first_name} {self.billing_last_name}"


class OrderNote(Base):
    """Free-text note appended to an order's log."""

    __tablename__ = "order_notes"

    note_id: Mapped[str] = mapped_column(String, primary_key=True, default=lambda: str(uuid4()))
    order_id: Mapped[int] = mapped_column(ForeignKey("orders.order_id"), index=True)
    note: Mapped[str] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())


class OrderTimeline(Base):
    """Immutable audit trail of every order status transition."""

    __tablename__ = "order_timeline"

    timeline_id: Mapped[str] = mapped_column(String, primary_key=True, default=lambda: str(uuid4()))
    order_id: Mapped[int] = mapped_column(ForeignKey("orders.order_id"), index=True)
    from_state: Mapped[str | None] = mapped_column(String, nullable=True)
    to_state: Mapped[str] = mapped_column(String)
    reason: Mapped[str] = mapped_column(String)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())


class OrderMeta(Base):
    """Payment metadata written on an order after a successful charge."""

    __tablename__ = "order_meta"

    order_id: Mapped[int] = mapped_column(ForeignKey("orders.order_id"), primary_key=True)
    transaction_id: Mapped[str] = mapped_column(String, index=True)
    auth_capture: Mapped[bool] = mapped_column(Boolean, default=False)
    customer_id: Mapped[str | None] = mapped_column(String, nullable=True)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )


class SavedCard(Base):
    """Processor-side card reference owned by one user; never a raw number."""

    __tablename__ = "saved_cards"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.user_id"), index=True)
    customer_id: Mapped[str] = mapped_column(String)
    card_id: Mapped[str] = mapped_column(String)
    brand: Mapped[str] = mapped_column(String, default="")
    last4: Mapped[str] = mapped_column(String(4))
    exp_month: Mapped[int] = mapped_column(Integer)
    exp_year: Mapped[int] = mapped_column(Integer)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())


class CheckoutSession(Base):
    """Per-shopper session state: cart contents, flags and pending notices."""

    __tablename__ = "checkout_sessions"

    session_id: Mapped[str] = mapped_column(String, primary_key=True)
    user_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    cart: Mapped[list] = mapped_column(JSONType, default=list)
    order_awaiting_payment: Mapped[int | None] = mapped_column(Integer, nullable=True)
    refresh_totals: Mapped[bool] = mapped_column(Boolean, default=False)
    reload_checkout: Mapped[bool] = mapped_column(Boolean, default=False)
    notices: Mapped[list] = mapped_column(JSONType, default=list)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )
