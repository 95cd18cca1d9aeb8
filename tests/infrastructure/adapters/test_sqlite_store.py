import sqlite3
from unittest.mock import patch

import pytest

from laurel.application.session import ReviewSession
from laurel.domain.errors import StoreError
from laurel.infrastructure.adapters.sqlite_store import SqliteCardStore


@pytest.fixture
def db_path(tmp_path):
    return tmp_path / "nested" / "laurel.db"


def test_creates_parent_directory_and_schema(db_path):
    SqliteCardStore(db_path)
    assert db_path.exists()
    with sqlite3.connect(db_path) as conn:
        tables = {r[0] for r in conn.execute("SELECT name FROM sqlite_master WHERE type='table'")}
    assert {"decks", "cards", "reviews", "daily_stats"} <= tables


@pytest.mark.asyncio
async def test_data_survives_reopening(db_path, deck, make_card):
    card = make_card()
    first = SqliteCardStore(db_path)
    await first.save_deck(deck)
    await first.save_card(card)

    second = SqliteCardStore(db_path)
    assert await second.get_card(card.id) == card


@pytest.mark.asyncio
async def test_sqlite_errors_become_store_errors(db_path):
    store = SqliteCardStore(db_path)
    with patch("sqlite3.connect", side_effect=sqlite3.OperationalError("disk I/O error")):
        with pytest.raises(StoreError, match="disk I/O error"):
            await store.get_deck("deck_1")


@pytest.mark.asyncio
async def test_failed_review_write_rolls_back(db_path, deck, make_card, now):
    store = SqliteCardStore(db_path)
    await store.save_deck(deck)
    card = make_card()
    await store.save_card(card)
    session = ReviewSession(clock=lambda: now)
    session.start([card])
    outcome = session.respond("correct")

    # Break the last statement of the transaction
    with sqlite3.connect(db_path) as conn:
        conn.execute("DROP TABLE daily_stats")

    with pytest.raises(StoreError):
        await store.record_review(outcome)

    assert await store.get_card(card.id) == card
    assert await store.count_reviews("alice") == 0
