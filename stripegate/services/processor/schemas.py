"""Processor request/response models.

Response models accept both the legacy card API shape (`cards`, `default_card`,
`type`) and the sources shape (`sources`, `default_source`, `brand`).
"""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, model_validator


class Card(BaseModel):
    """One tokenized card stored on the processor side."""

    model_config = ConfigDict(extra="ignore")

    id: str
    brand: str = ""
    last4: str = ""
    exp_month: int
    exp_year: int

    @model_validator(mode="before")
    @classmethod
    def _legacy_type(cls, data: Any) -> Any:
        if isinstance(data, dict) and not data.get("brand") and data.get("type"):
            data = {**data, "brand": data["type"]}
        return data


def _card_list(value: Any) -> list[dict]:
    if isinstance(value, dict):
        value = value.get("data")
    if not isinstance(value, list):
        return []
    # Sources may include non-card objects (bank accounts); keep cards only.
    return [item for item in value if isinstance(item, dict) and "exp_month" in item]


class Customer(BaseModel):
    """Processor customer with its attached cards."""

    model_config = ConfigDict(extra="ignore")

    id: str
    email: str | None = None
    description: str | None = None
    default_card: str | None = None
    cards: list[Card] = Field(default_factory=list)

    @model_validator(mode="before")
    @classmethod
    def _normalize(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        data = dict(data)
        data["default_card"] = data.get("default_card") or data.get("default_source")
        cards = data.get("cards")
        if cards is None:
            cards = data.get("sources")
        data["cards"] = _card_list(cards)
        return data

    def default(self) -> Card | None:
        """Return the default card, falling back to the first attached one."""

        for card in self.cards:
            if card.id == self.default_card:
                return card
        return self.cards[0] if self.cards else None


class Charge(BaseModel):
    """Charge object returned by create/capture calls."""

    model_config = ConfigDict(extra="ignore")

    id: str
    amount: int = 0
    currency: str = ""
    captured: bool = True
    paid: bool = True
    customer: str | None = None
    card: Card | None = None

    @model_validator(mode="before")
    @classmethod
    def _normalize(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        data = dict(data)
        card = data.get("card") or data.get("source")
        data["card"] = card if isinstance(card, dict) and "exp_month" in card else None
        return data


class ChargeRequest(BaseModel):
    """One charge submission; transient, never persisted.

    Exactly one charging method must be set: a one-time `token`, or a saved
    `customer` + `card` pair.
    """

    amount: int = Field(gt=0)
    currency: str = Field(min_length=3, max_length=3)
    description: str = ""
    capture: bool = True
    token: str | None = None
    customer: str | None = None
    card: str | None = None

    @model_validator(mode="after")
    def _one_charging_method(self) -> "ChargeRequest":
        has_token = bool(self.token)
        has_saved = bool(self.customer and self.card)
        if has_token == has_saved or (has_token and (self.customer or self.card)):
            raise ValueError("charge needs exactly one of token or customer+card")
        return self

    def to_form(self) -> dict[str, str]:
        """Form-encoded body for `POST /v1/charges`."""

        data = {
            "amount": str(self.amount),
            "currency": self.currency,
            "description": self.description,
            "capture": "true" if self.capture else "false",
        }
        if self.token:
            data["card"] = self.token
        else:
            data["customer"] = self.customer
            data["card"] = self.card
        return data
