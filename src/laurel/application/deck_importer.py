"""
Deck import from YAML files.

File format:

    deck: Spanish Basics
    description: Everyday words
    category: language
    new_cards_per_day: 10
    cards:
      - front: hola
        back: hello
        hint: greeting
        tags: [greetings]
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any

import yaml
import yaml.error

from laurel.application.id_service import generate_card_id, generate_deck_id
from laurel.domain.constants import (
    DEFAULT_CATEGORY,
    DEFAULT_COLOR,
    DEFAULT_NEW_CARDS_PER_DAY,
    DEFAULT_REVIEW_CARDS_PER_DAY,
)
from laurel.domain.dates import utcnow
from laurel.domain.errors import DeckImportError, StoreError
from laurel.domain.models import Card, Deck
from laurel.domain.ports import CardStore

logger = logging.getLogger(__name__)


@dataclass
class CardImport:
    front: str
    back: str
    hint: str | None = None
    tags: list[str] = field(default_factory=list)


@dataclass
class DeckImport:
    name: str
    description: str | None = None
    category: str = DEFAULT_CATEGORY
    color: str = DEFAULT_COLOR
    new_cards_per_day: int = DEFAULT_NEW_CARDS_PER_DAY
    review_cards_per_day: int = DEFAULT_REVIEW_CARDS_PER_DAY
    cards: list[CardImport] = field(default_factory=list)


def _require_text(entry: dict[str, Any], key: str, where: str) -> str:
    value = entry.get(key)
    if value is None or not str(value).strip():
        raise DeckImportError(f"{where}: '{key}' is required")
    return str(value).strip()


def parse_deck(text: str) -> DeckImport:
    """
    Parse a deck document.

    Raises:
        DeckImportError: On YAML syntax errors or missing/invalid fields.
    """
    # Fix tabs (common user error)
    if "\t" in text:
        text = text.replace("\t", "  ")

    try:
        data = yaml.safe_load(text)
    except yaml.error.YAMLError as e:
        mark = getattr(e, "problem_mark", None)
        where = f" at line {mark.line + 1}" if mark is not None else ""
        raise DeckImportError(f"Invalid YAML{where}: {getattr(e, 'problem', e)}") from e

    if not isinstance(data, dict):
        raise DeckImportError("Deck file must be a mapping with 'deck' and 'cards' keys")

    name = _require_text(data, "deck", "deck")
    raw_cards = data.get("cards") or []
    if not isinstance(raw_cards, list):
        raise DeckImportError("'cards' must be a list")

    cards: list[CardImport] = []
    for i, entry in enumerate(raw_cards, start=1):
        where = f"card #{i}"
        if not isinstance(entry, dict):
            raise DeckImportError(f"{where}: expected a mapping with 'front' and 'back'")
        tags = entry.get("tags") or []
        if isinstance(tags, str):
            tags = [tags]
        hint = entry.get("hint")
        cards.append(
            CardImport(
                front=_require_text(entry, "front", where),
                back=_require_text(entry, "back", where),
                hint=str(hint).strip() if hint else None,
                tags=[str(t) for t in tags],
            )
        )

    try:
        return DeckImport(
            name=name,
            description=data.get("description"),
            category=str(data.get("category", DEFAULT_CATEGORY)),
            color=str(data.get("color", DEFAULT_COLOR)),
            new_cards_per_day=int(data.get("new_cards_per_day", DEFAULT_NEW_CARDS_PER_DAY)),
            review_cards_per_day=int(
                data.get("review_cards_per_day", DEFAULT_REVIEW_CARDS_PER_DAY)
            ),
            cards=cards,
        )
    except (TypeError, ValueError) as e:
        raise DeckImportError(f"Invalid deck settings: {e}") from e


def load_deck_file(path: Path) -> DeckImport:
    try:
        content = path.read_text(encoding="utf-8")
    except OSError as e:
        raise DeckImportError(f"Cannot read {path}: {e}") from e
    return parse_deck(content)


async def import_deck(
    store: CardStore,
    user_id: str,
    deck_import: DeckImport,
    now: datetime | None = None,
) -> tuple[Deck, list[Card]]:
    """
    Create the deck and its cards. Imported cards are new and due immediately.

    The import is all or nothing: if a write fails, the deck is deleted
    again (with whatever cards were already saved) and the StoreError
    propagates.
    """
    now = now or utcnow()
    try:
        deck = Deck(
            id=generate_deck_id(),
            user_id=user_id,
            name=deck_import.name,
            description=deck_import.description,
            category=deck_import.category,
            color=deck_import.color,
            new_cards_per_day=deck_import.new_cards_per_day,
            review_cards_per_day=deck_import.review_cards_per_day,
            created_at=now,
        )
    except ValueError as e:
        raise DeckImportError(str(e)) from e

    cards = [
        Card(
            id=generate_card_id(),
            deck_id=deck.id,
            front=item.front,
            back=item.back,
            hint=item.hint,
            tags=tuple(item.tags),
            next_review_at=now,
            # Keeps file order among cards due at the same instant
            created_at=now + timedelta(microseconds=i),
        )
        for i, item in enumerate(deck_import.cards)
    ]

    await store.save_deck(deck)
    try:
        for card in cards:
            await store.save_card(card)
    except StoreError:
        logger.warning(f"Import of deck {deck.id} failed; removing the partial deck")
        try:
            await store.delete_deck(deck.id)
        except StoreError as cleanup_error:
            logger.error(f"Could not remove partial deck {deck.id}: {cleanup_error}")
        raise

    logger.info(f"Imported deck '{deck.name}' ({deck.id}) with {len(cards)} cards")
    return deck, cards
