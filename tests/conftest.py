"""Shared fixtures: throwaway sqlite database and an in-memory processor."""

import os
import tempfile
from decimal import Decimal

_DB_DIR = tempfile.mkdtemp(prefix="stripegate-tests-")
os.environ["DATABASE_DSN"] = f"sqlite:///{os.path.join(_DB_DIR, 'checkout.db')}"
os.environ["API_KEY"] = "test-api-key"
os.environ["TESTMODE"] = "true"
os.environ["TEST_SECRET_KEY"] = "sk_test_123"
os.environ["TEST_PUBLISHABLE_KEY"] = "pk_test_123"
os.environ["TRACING_ENABLED"] = "false"
os.environ["STORE_URL"] = "https://shop.example.com"

import pytest  # noqa: E402

from stripegate.common.config import settings  # noqa: E402
from stripegate.common.db import Base, SessionLocal, engine  # noqa: E402
from stripegate.services.checkout.models import Order, User  # noqa: E402
from stripegate.services.checkout.saved_cards import SavedCardReference, add_card  # noqa: E402
from stripegate.services.checkout.service import CheckoutService  # noqa: E402
from stripegate.services.processor.schemas import Card, Charge, Customer  # noqa: E402


class FakeProcessor:
    """Records every processor call; `errors` maps an operation to the error it raises."""

    def __init__(self) -> None:
        self.calls: list[tuple] = []
        self.errors: dict[str, Exception] = {}
        self._seq = 0

    def __enter__(self) -> "FakeProcessor":
        return self

    def __exit__(self, *exc_info) -> None:
        return None

    @property
    def operations(self) -> list[str]:
        return [call[0] for call in self.calls]

    def _record(self, operation: str, *args) -> None:
        self.calls.append((operation, *args))
        error = self.errors.get(operation)
        if error is not None:
            raise error

    def _next_id(self, prefix: str) -> str:
        self._seq += 1
        return f"{prefix}_{self._seq}"

    def create_customer(self, user_id, token, description, email=None) -> Customer:
        self._record("create_customer", user_id, token, description)
        card_id = self._next_id("card")
        return Customer.model_validate(
            {
                "id": self._next_id("cus"),
                "email": email,
                "description": description,
                "default_card": card_id,
                "cards": {
                    "data": [
                        {"id": card_id, "type": "Visa", "last4": "4242", "exp_month": 12, "exp_year": 2030}
                    ]
                },
            }
        )

    def get_customer(self, customer_id) -> Customer:
        self._record("get_customer", customer_id)
        return Customer.model_validate({"id": customer_id, "cards": {"data": []}})

    def update_customer(self, customer_id, changes) -> Customer:
        self._record("update_customer", customer_id, changes)
        return Customer.model_validate({"id": customer_id, **changes})

    def add_card(self, customer_id, token) -> Card:
        self._record("add_card", customer_id, token)
        return Card(id=self._next_id("card"), brand="MasterCard", last4="4444", exp_month=1, exp_year=2031)

    def create_charge(self, request) -> Charge:
        self._record("create_charge", request)
        return Charge(
            id=self._next_id("ch"),
            amount=request.amount,
            currency=request.currency,
            captured=request.capture,
            customer=request.customer,
        )

    def capture_charge(self, charge_id, amount=None) -> Charge:
        self._record("capture_charge", charge_id, amount)
        return Charge(id=charge_id, amount=amount or 0, captured=True)


@pytest.fixture(autouse=True)
def fresh_schema():
    """Every test starts from empty tables."""

    Base.metadata.drop_all(engine)
    Base.metadata.create_all(engine)
    yield


@pytest.fixture
def db():
    with SessionLocal() as session:
        yield session


@pytest.fixture
def processor() -> FakeProcessor:
    return FakeProcessor()


@pytest.fixture
def make_service(processor):
    """Build a service over the test database; keyword args override settings."""

    def _make(**overrides) -> CheckoutService:
        return CheckoutService(
            SessionLocal,
            settings.model_copy(update=overrides),
            processor_factory=lambda: processor,
        )

    return _make


@pytest.fixture
def make_user():
    def _make(user_id: int = 7, login: str = "ada", email: str = "ada@example.com") -> User:
        with SessionLocal() as session:
            user = User(user_id=user_id, login=login, email=email)
            session.add(user)
            session.commit()
            return user

    return _make


@pytest.fixture
def make_order():
    def _make(order_id: int = 100, user_id: int | None = None, total: str = "19.99", **fields) -> Order:
        values = {
            "currency": "USD",
            "billing_first_name": "Ada",
            "billing_last_name": "Lovelace",
            "billing_email": "ada@example.com",
            "status": "pending",
            "state_version": 0,
            **fields,
        }
        with SessionLocal() as session:
            order = Order(order_id=order_id, user_id=user_id, total=Decimal(total), **values)
            session.add(order)
            session.commit()
            return order

    return _make


@pytest.fixture
def save_card():
    def _save(user_id: int, customer_id: str, card_id: str, last4: str = "1111") -> SavedCardReference:
        reference = SavedCardReference(
            customer_id=customer_id,
            card_id=card_id,
            brand="Visa",
            last4=last4,
            exp_month=6,
            exp_year=2029,
        )
        with SessionLocal() as session:
            add_card(session, user_id, reference)
            session.commit()
        return reference

    return _save
