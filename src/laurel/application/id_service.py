"""Service for generating stable, sortable ids for decks, cards, and reviews."""

from ulid import ULID

from laurel.domain.constants import (
    CARD_ID_PREFIX,
    DECK_ID_PREFIX,
    REVIEW_ID_PREFIX,
    SESSION_ID_PREFIX,
)


def generate_review_id() -> str:
    """Generate a review id. Used as the idempotency key when persisting."""
    return f"{REVIEW_ID_PREFIX}{ULID()}"


def generate_card_id() -> str:
    return f"{CARD_ID_PREFIX}{ULID()}"


def generate_deck_id() -> str:
    return f"{DECK_ID_PREFIX}{ULID()}"


def generate_session_id() -> str:
    return f"{SESSION_ID_PREFIX}{ULID()}"
