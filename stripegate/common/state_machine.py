"""Order status transitions enforced by the checkout gateway."""

ALLOWED_TRANSITIONS: dict[str, set[str]] = {
    "pending": {"processing", "on-hold", "completed", "failed", "cancelled"},
    "on-hold": {"processing", "completed", "failed", "cancelled"},
    "processing": {"completed", "on-hold", "failed", "cancelled", "refunded"},
    "failed": {"pending", "processing", "completed", "cancelled"},
    "completed": {"processing", "refunded"},
    "cancelled": set(),
    "refunded": set(),
}


def validate_transition(current: str, new: str) -> None:
    """Raise when a transition is not allowed by the state machine."""

    if new not in ALLOWED_TRANSITIONS.get(current, set()):
        raise ValueError(f"Invalid transition: {current} -> {new}")
