"""Per-user saved card references.

Append-only: cards are listed in insertion order and never updated or
deleted here. Adding a new default card only changes which reference the
next checkout uses.
"""

from pydantic import BaseModel, ConfigDict
from sqlalchemy import select

from stripegate.services.checkout.models import SavedCard
from stripegate.services.processor.schemas import Card


class SavedCardReference(BaseModel):
    """Processor customer id + card id with display details."""

    model_config = ConfigDict(from_attributes=True)

    customer_id: str
    card_id: str
    brand: str = ""
    last4: str
    exp_month: int
    exp_year: int

    @classmethod
    def from_card(cls, customer_id: str, card: Card) -> "SavedCardReference":
        return cls(
            customer_id=customer_id,
            card_id=card.id,
            brand=card.brand,
            last4=card.last4,
            exp_month=card.exp_month,
            exp_year=card.exp_year,
        )


def list_cards(db, user_id: int) -> list[SavedCardReference]:
    rows = db.execute(
        select(SavedCard).where(SavedCard.user_id == user_id).order_by(SavedCard.id.asc())
    ).scalars().all()
    return [SavedCardReference.model_validate(row) for row in rows]


def add_card(db, user_id: int, reference: SavedCardReference) -> None:
    db.add(SavedCard(user_id=user_id, **reference.model_dump()))
