import pytest

from laurel.application.deck_importer import import_deck, load_deck_file, parse_deck
from laurel.domain.errors import DeckImportError, StoreError
from laurel.domain.models import CardState
from laurel.infrastructure.adapters.memory_store import InMemoryCardStore

DECK_YAML = """\
deck: Spanish Basics
description: Everyday words
category: language
new_cards_per_day: 10
cards:
  - front: hola
    back: hello
    hint: greeting
    tags: [greetings]
  - front: gracias
    back: thank you
    tags: polite
"""


def test_parse_deck():
    parsed = parse_deck(DECK_YAML)
    assert parsed.name == "Spanish Basics"
    assert parsed.description == "Everyday words"
    assert parsed.category == "language"
    assert parsed.new_cards_per_day == 10
    assert parsed.review_cards_per_day == 100
    assert [c.front for c in parsed.cards] == ["hola", "gracias"]
    assert parsed.cards[0].hint == "greeting"
    assert parsed.cards[1].tags == ["polite"]


def test_parse_deck_tabs_are_tolerated():
    parsed = parse_deck("deck: Tabs\ncards:\n\t- front: a\n\t  back: b\n")
    assert len(parsed.cards) == 1


def test_parse_deck_without_cards():
    assert parse_deck("deck: Empty").cards == []


@pytest.mark.parametrize(
    "text,message",
    [
        ("- just\n- a list\n", "mapping"),
        ("cards: []\n", "'deck' is required"),
        ("deck: x\ncards: nope\n", "must be a list"),
        ("deck: x\ncards:\n  - front: a\n", "card #1: 'back' is required"),
        ("deck: x\ncards:\n  - plain string\n", "card #1"),
        ("deck: x\nnew_cards_per_day: lots\n", "Invalid deck settings"),
    ],
)
def test_parse_deck_errors(text, message):
    with pytest.raises(DeckImportError, match=message):
        parse_deck(text)


def test_parse_deck_reports_yaml_line():
    with pytest.raises(DeckImportError, match="line"):
        parse_deck("deck: x\ncards:\n  - front: [unclosed\n")


def test_load_deck_file_missing(tmp_path):
    with pytest.raises(DeckImportError, match="Cannot read"):
        load_deck_file(tmp_path / "nope.yaml")


def test_load_deck_file(tmp_path):
    path = tmp_path / "spanish.yaml"
    path.write_text(DECK_YAML, encoding="utf-8")
    assert load_deck_file(path).name == "Spanish Basics"


@pytest.mark.asyncio
async def test_import_deck_creates_new_due_cards(store, now):
    deck, cards = await import_deck(store, "alice", parse_deck(DECK_YAML), now=now)

    assert deck.id.startswith("deck_")
    assert (await store.get_deck(deck.id)).user_id == "alice"
    assert all(c.state == CardState.NEW and c.next_review_at == now for c in cards)

    due = await store.get_due_cards(deck.id, now, limit=10)
    assert [c.front for c in due] == ["hola", "gracias"]


@pytest.mark.asyncio
async def test_import_deck_rejects_bad_limits(store):
    parsed = parse_deck("deck: x\nnew_cards_per_day: 0\n")
    with pytest.raises(DeckImportError):
        await import_deck(store, "alice", parsed)
    assert store.decks == {}


class FailsOnSecondCard(InMemoryCardStore):
    async def save_card(self, card):
        if self.cards:
            raise StoreError("disk full")
        await super().save_card(card)


@pytest.mark.asyncio
async def test_import_deck_failure_leaves_nothing_behind(now):
    store = FailsOnSecondCard()
    with pytest.raises(StoreError, match="disk full"):
        await import_deck(store, "alice", parse_deck(DECK_YAML), now=now)

    assert store.decks == {}
    assert store.cards == {}
