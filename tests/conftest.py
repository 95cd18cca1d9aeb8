from datetime import UTC, datetime, timedelta

import pytest

from laurel.domain.models import Card, CardState, Deck
from laurel.infrastructure.adapters.memory_store import InMemoryCardStore

NOW = datetime(2024, 3, 10, 12, 0, tzinfo=UTC)


@pytest.fixture
def mock_home(tmp_path, monkeypatch):
    """Mocks Path.home() to point to a temp dir."""
    home = tmp_path / "home"
    home.mkdir()

    # Mocking HOME to a temp directory to isolate config/database
    monkeypatch.setenv("HOME", str(home))
    for key in ("LAUREL_BACKEND", "LAUREL_DATABASE_PATH", "LAUREL_USER_ID"):
        monkeypatch.delenv(key, raising=False)
    return home


@pytest.fixture
def now():
    return NOW


@pytest.fixture
def make_card():
    """Factory for cards that are due at NOW unless told otherwise."""
    counter = iter(range(1, 10_000))

    def _make(deck_id="deck_1", **kwargs):
        n = next(counter)
        kwargs.setdefault("id", f"card_{n}")
        kwargs.setdefault("front", f"front {n}")
        kwargs.setdefault("back", f"back {n}")
        kwargs.setdefault("next_review_at", NOW - timedelta(hours=1))
        kwargs.setdefault("created_at", NOW - timedelta(days=30) + timedelta(seconds=n))
        return Card(deck_id=deck_id, **kwargs)

    return _make


@pytest.fixture
def deck():
    return Deck(id="deck_1", user_id="alice", name="Spanish", created_at=NOW - timedelta(days=30))


@pytest.fixture
def store():
    return InMemoryCardStore()


@pytest.fixture
async def seeded_store(store, deck, make_card):
    """Memory store holding `deck` with two new cards and one review card due."""
    await store.save_deck(deck)
    await store.save_card(make_card(id="card_a"))
    await store.save_card(make_card(id="card_b"))
    await store.save_card(
        make_card(
            id="card_c",
            state=CardState.REVIEW,
            ease_factor=2.5,
            interval_days=6,
            repetitions=2,
            last_reviewed_at=NOW - timedelta(days=6),
        )
    )
    return store
