"""Tests for CLI commands: help, review, decks, stats, level, config and serve."""

import asyncio
import json
from datetime import timedelta
from unittest.mock import MagicMock, patch

import pytest
from typer.testing import CliRunner

from laurel.domain.dates import utcnow
from laurel.domain.errors import StoreError
from laurel.domain.models import Card, Deck
from laurel.infrastructure.adapters.memory_store import InMemoryCardStore
from laurel.infrastructure.adapters.sqlite_store import SqliteCardStore
from laurel.interface.cli import app

runner = CliRunner()

DECK_YAML = """\
deck: Spanish Basics
cards:
  - front: hola
    back: hello
  - front: gracias
    back: thank you
"""


@pytest.fixture
def db(mock_home):
    return mock_home / "laurel.db"


@pytest.fixture
def seeded_db(db):
    """SQLite file holding one deck for user 'local' with two due cards."""
    store = SqliteCardStore(db)
    now = utcnow()

    async def seed():
        await store.save_deck(Deck(id="deck_1", user_id="local", name="Spanish"))
        for i, (front, back) in enumerate([("hola", "hello"), ("gracias", "thank you")]):
            await store.save_card(
                Card(
                    id=f"card_{i}",
                    deck_id="deck_1",
                    front=front,
                    back=back,
                    next_review_at=now - timedelta(minutes=5),
                    created_at=now - timedelta(minutes=5 - i),
                )
            )

    asyncio.run(seed())
    return db


# --- Help ---


def test_cli_help():
    """Test that help text is displayed correctly."""
    result = runner.invoke(app, ["--help"])
    assert result.exit_code == 0
    assert "Spaced repetition flashcards" in result.stdout
    assert "review" in result.stdout
    assert "decks" in result.stdout
    assert "config" in result.stdout


# --- Review ---


def test_review_session(seeded_db):
    # Enter reveals the back, then the answer key
    result = runner.invoke(app, ["--db", str(seeded_db), "review", "deck_1"], input="\nc\n\nw\n")
    assert result.exit_code == 0, result.output
    assert "[1/2] hola" in result.stdout
    assert "thank you" in result.stdout
    assert "Session complete!" in result.stdout
    assert "Accuracy: 50%" in result.stdout
    assert "Mastery:  +5" in result.stdout

    # Both cards were persisted with their new schedules
    result = runner.invoke(app, ["--db", str(seeded_db), "review", "deck_1"])
    assert "Nothing to review right now." in result.stdout


def test_review_reprompts_on_bad_key(seeded_db):
    result = runner.invoke(
        app, ["--db", str(seeded_db), "review", "deck_1", "--limit", "1"], input="\nx\n\ns\n"
    )
    assert result.exit_code == 0, result.output
    assert "Please answer c, w or s." in result.stdout
    assert "Skipped:  1" in result.stdout


def test_review_empty_deck(db):
    store = SqliteCardStore(db)
    asyncio.run(store.save_deck(Deck(id="deck_1", user_id="local", name="Empty")))

    result = runner.invoke(app, ["--db", str(db), "review", "deck_1"])
    assert result.exit_code == 0
    assert "Nothing to review right now." in result.stdout


def test_review_unknown_deck(db):
    result = runner.invoke(app, ["--db", str(db), "review", "deck_missing"])
    assert result.exit_code == 1
    assert "Deck not found" in result.stdout


def test_review_as_other_user(seeded_db):
    result = runner.invoke(app, ["--db", str(seeded_db), "--user", "bob", "review", "deck_1"])
    assert result.exit_code == 1


def test_review_all_decks(seeded_db):
    store = SqliteCardStore(seeded_db)
    asyncio.run(store.save_deck(Deck(id="deck_2", user_id="local", name="French")))
    asyncio.run(
        store.save_card(
            Card(
                id="card_fr",
                deck_id="deck_2",
                front="bonjour",
                back="hello",
                next_review_at=utcnow() - timedelta(days=1),
            )
        )
    )

    result = runner.invoke(app, ["--db", str(seeded_db), "review"], input="\nc\n\nc\n\nc\n")
    assert result.exit_code == 0, result.output
    assert "[1/3] bonjour" in result.stdout
    assert "Accuracy: 100%" in result.stdout


class LockedStore(InMemoryCardStore):
    async def record_review(self, outcome):
        raise StoreError("database is locked")


@patch("laurel.interface.cli.get_card_store")
def test_review_reports_unsaved_reviews(mock_get_store, mock_home, monkeypatch):
    monkeypatch.setenv("LAUREL_PERSIST_BACKOFF", "0")
    store = LockedStore()
    asyncio.run(store.save_deck(Deck(id="deck_1", user_id="local", name="Spanish")))
    asyncio.run(
        store.save_card(
            Card(
                id="card_0",
                deck_id="deck_1",
                front="hola",
                back="hello",
                next_review_at=utcnow() - timedelta(minutes=5),
            )
        )
    )
    mock_get_store.return_value = store

    result = runner.invoke(app, ["review", "deck_1"], input="\nc\n")
    assert result.exit_code == 1
    assert "Could not save review" in result.stdout
    assert "Session complete!" in result.stdout
    assert "1 review(s) could not be saved" in result.stdout


# --- Decks ---


def test_decks_import_list_show(db, tmp_path):
    deck_file = tmp_path / "spanish.yaml"
    deck_file.write_text(DECK_YAML, encoding="utf-8")

    result = runner.invoke(app, ["--db", str(db), "decks", "import", str(deck_file)])
    assert result.exit_code == 0, result.output
    assert "Imported 'Spanish Basics' (2 cards)" in result.stdout

    result = runner.invoke(app, ["--db", str(db), "decks", "list"])
    assert result.exit_code == 0
    assert "Spanish Basics" in result.stdout
    assert "(2 due / 2 cards)" in result.stdout

    deck_id = result.stdout.split()[0]
    result = runner.invoke(app, ["--db", str(db), "decks", "show", deck_id])
    assert result.exit_code == 0
    assert "Cards: 2 total, 2 due" in result.stdout


def test_decks_import_invalid_file(db, tmp_path):
    deck_file = tmp_path / "bad.yaml"
    deck_file.write_text("cards: []\n", encoding="utf-8")

    result = runner.invoke(app, ["--db", str(db), "decks", "import", str(deck_file)])
    assert result.exit_code == 2
    assert "Invalid deck file" in result.stdout


def test_decks_list_empty(db):
    result = runner.invoke(app, ["--db", str(db), "decks", "list"])
    assert result.exit_code == 0
    assert "No decks yet" in result.stdout


def test_decks_show_missing(db):
    result = runner.invoke(app, ["--db", str(db), "decks", "show", "deck_missing"])
    assert result.exit_code == 1


# --- Stats & level ---


def test_stats_json(seeded_db):
    runner.invoke(app, ["--db", str(seeded_db), "review", "deck_1"], input="\nc\n\nc\n")

    result = runner.invoke(app, ["--db", str(seeded_db), "stats", "--json"])
    assert result.exit_code == 0, result.output
    data = json.loads(result.stdout)
    assert data["total_reviews"] == 2
    assert data["current_streak"] == 1
    assert data["daily_stats"][0]["accuracy"] == 100


def test_stats_bad_days(db):
    result = runner.invoke(app, ["--db", str(db), "stats", "--days", "400"])
    assert result.exit_code == 2


def test_level_command():
    result = runner.invoke(app, ["level", "150"])
    assert result.exit_code == 0
    assert "Level 2: Sprout" in result.stdout
    assert "25%" in result.stdout


# --- Config ---


@patch("laurel.interface.cli.resolve_config")
def test_config_show_command(mock_resolve_config):
    """Test config show command displays JSON."""
    mock_config = MagicMock()
    mock_config.verbose = 1
    mock_config.model_dump.return_value = {"backend": "memory", "session_size": 20}
    mock_resolve_config.return_value = mock_config

    result = runner.invoke(app, ["config", "show"])
    assert result.exit_code == 0
    assert json.loads(result.stdout) == {"backend": "memory", "session_size": 20}


def test_global_options_reach_config(mock_home):
    result = runner.invoke(app, ["--user", "bob", "--backend", "memory", "config", "show"])
    assert result.exit_code == 0
    data = json.loads(result.stdout)
    assert data["user_id"] == "bob"
    assert data["backend"] == "memory"


# --- Serve ---


@patch("uvicorn.run")
def test_serve_command(mock_run, mock_home):
    result = runner.invoke(app, ["serve", "--port", "9000"])
    assert result.exit_code == 0
    mock_run.assert_called_once_with("laurel.server:app", host="127.0.0.1", port=9000, reload=False)
