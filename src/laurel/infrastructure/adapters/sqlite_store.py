"""
SQLite Card Store — Infrastructure adapter for a local database file.

Implements CardStore on top of sqlite3. Each operation opens its own
connection; record_review runs as a single transaction.
"""

import json
import logging
import sqlite3
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import UTC, date, datetime
from pathlib import Path

from laurel.application.queue_builder import build_due_queue
from laurel.application.stats.rollup import apply_outcome
from laurel.domain.dates import day_of, ensure_utc
from laurel.domain.errors import NotFoundError, StoreError
from laurel.domain.models import Card, CardState, Deck, ReviewOutcome
from laurel.domain.ports import CardStore
from laurel.domain.stats.models import DailyStats, DeckCounts

logger = logging.getLogger(__name__)

SCHEMA = """
CREATE TABLE IF NOT EXISTS decks (
    id TEXT PRIMARY KEY,
    user_id TEXT NOT NULL,
    name TEXT NOT NULL,
    description TEXT,
    category TEXT NOT NULL,
    color TEXT NOT NULL,
    new_cards_per_day INTEGER NOT NULL,
    review_cards_per_day INTEGER NOT NULL,
    is_active INTEGER NOT NULL DEFAULT 1,
    created_at TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_decks_user ON decks (user_id);

CREATE TABLE IF NOT EXISTS cards (
    id TEXT PRIMARY KEY,
    deck_id TEXT NOT NULL REFERENCES decks (id) ON DELETE CASCADE,
    front TEXT NOT NULL,
    back TEXT NOT NULL,
    hint TEXT,
    tags TEXT NOT NULL DEFAULT '[]',
    ease_factor REAL NOT NULL,
    interval_days INTEGER NOT NULL,
    repetitions INTEGER NOT NULL,
    state TEXT NOT NULL,
    next_review_at TEXT NOT NULL,
    last_reviewed_at TEXT,
    is_suspended INTEGER NOT NULL DEFAULT 0,
    created_at TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_cards_due ON cards (deck_id, is_suspended, next_review_at);

CREATE TABLE IF NOT EXISTS reviews (
    id TEXT PRIMARY KEY,
    card_id TEXT NOT NULL,
    deck_id TEXT NOT NULL,
    user_id TEXT NOT NULL,
    response TEXT NOT NULL,
    quality INTEGER,
    reviewed_at TEXT NOT NULL,
    reviewed_day TEXT NOT NULL,
    previous_ease REAL NOT NULL,
    previous_interval INTEGER NOT NULL,
    previous_state TEXT NOT NULL,
    new_ease REAL NOT NULL,
    new_interval INTEGER NOT NULL,
    new_state TEXT NOT NULL,
    time_taken_ms INTEGER
);
CREATE INDEX IF NOT EXISTS idx_reviews_deck_day ON reviews (deck_id, reviewed_day);
CREATE INDEX IF NOT EXISTS idx_reviews_user ON reviews (user_id);

CREATE TABLE IF NOT EXISTS daily_stats (
    user_id TEXT NOT NULL,
    day TEXT NOT NULL,
    cards_reviewed INTEGER NOT NULL DEFAULT 0,
    cards_new INTEGER NOT NULL DEFAULT 0,
    cards_relearned INTEGER NOT NULL DEFAULT 0,
    correct_answers INTEGER NOT NULL DEFAULT 0,
    wrong_answers INTEGER NOT NULL DEFAULT 0,
    time_spent_ms INTEGER NOT NULL DEFAULT 0,
    PRIMARY KEY (user_id, day)
);
"""

# Fixed width so timestamps compare correctly as text
_TS_FORMAT = "%Y-%m-%dT%H:%M:%S.%f+00:00"


def _ts(value: datetime) -> str:
    return ensure_utc(value).strftime(_TS_FORMAT)


def _parse_ts(value: str | None) -> datetime | None:
    if value is None:
        return None
    return datetime.strptime(value, _TS_FORMAT).replace(tzinfo=UTC)


def _row_to_deck(row: sqlite3.Row) -> Deck:
    return Deck(
        id=row["id"],
        user_id=row["user_id"],
        name=row["name"],
        description=row["description"],
        category=row["category"],
        color=row["color"],
        new_cards_per_day=row["new_cards_per_day"],
        review_cards_per_day=row["review_cards_per_day"],
        is_active=bool(row["is_active"]),
        created_at=_parse_ts(row["created_at"]),
    )


def _row_to_card(row: sqlite3.Row) -> Card:
    return Card(
        id=row["id"],
        deck_id=row["deck_id"],
        front=row["front"],
        back=row["back"],
        hint=row["hint"],
        tags=tuple(json.loads(row["tags"] or "[]")),
        ease_factor=row["ease_factor"],
        interval_days=row["interval_days"],
        repetitions=row["repetitions"],
        state=CardState(row["state"]),
        next_review_at=_parse_ts(row["next_review_at"]),
        last_reviewed_at=_parse_ts(row["last_reviewed_at"]),
        is_suspended=bool(row["is_suspended"]),
        created_at=_parse_ts(row["created_at"]),
    )


def _row_to_daily(row: sqlite3.Row) -> DailyStats:
    return DailyStats(
        user_id=row["user_id"],
        day=date.fromisoformat(row["day"]),
        cards_reviewed=row["cards_reviewed"],
        cards_new=row["cards_new"],
        cards_relearned=row["cards_relearned"],
        correct_answers=row["correct_answers"],
        wrong_answers=row["wrong_answers"],
        time_spent_ms=row["time_spent_ms"],
    )


class SqliteCardStore(CardStore):
    """
    CardStore backed by a SQLite database file.

    The schema is created on construction if missing.
    """

    def __init__(self, db_path: Path):
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        with self._connect() as conn:
            conn.executescript(SCHEMA)

    @contextmanager
    def _connect(self) -> Iterator[sqlite3.Connection]:
        """Open a connection; commit on success, roll back on error."""
        try:
            conn = sqlite3.connect(self.db_path)
        except sqlite3.Error as e:
            raise StoreError(f"Cannot open database {self.db_path}: {e}") from e
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys = ON")
        try:
            yield conn
            conn.commit()
        except sqlite3.Error as e:
            conn.rollback()
            raise StoreError(f"Database error: {e}") from e
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    # ---------- Decks ----------

    async def get_deck(self, deck_id: str) -> Deck:
        with self._connect() as conn:
            row = conn.execute("SELECT * FROM decks WHERE id = ?", (deck_id,)).fetchone()
        if row is None:
            raise NotFoundError("Deck", deck_id)
        return _row_to_deck(row)

    async def list_decks(self, user_id: str) -> list[Deck]:
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT * FROM decks WHERE user_id = ? ORDER BY created_at DESC",
                (user_id,),
            ).fetchall()
        return [_row_to_deck(r) for r in rows]

    async def save_deck(self, deck: Deck) -> None:
        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO decks (id, user_id, name, description, category, color,
                                   new_cards_per_day, review_cards_per_day, is_active, created_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT (id) DO UPDATE SET
                    name = excluded.name,
                    description = excluded.description,
                    category = excluded.category,
                    color = excluded.color,
                    new_cards_per_day = excluded.new_cards_per_day,
                    review_cards_per_day = excluded.review_cards_per_day,
                    is_active = excluded.is_active
                """,
                (
                    deck.id,
                    deck.user_id,
                    deck.name,
                    deck.description,
                    deck.category,
                    deck.color,
                    deck.new_cards_per_day,
                    deck.review_cards_per_day,
                    int(deck.is_active),
                    _ts(deck.created_at),
                ),
            )

    async def delete_deck(self, deck_id: str) -> None:
        with self._connect() as conn:
            cursor = conn.execute("DELETE FROM decks WHERE id = ?", (deck_id,))
            if cursor.rowcount == 0:
                raise NotFoundError("Deck", deck_id)

    # ---------- Cards ----------

    async def get_card(self, card_id: str) -> Card:
        with self._connect() as conn:
            row = conn.execute("SELECT * FROM cards WHERE id = ?", (card_id,)).fetchone()
        if row is None:
            raise NotFoundError("Card", card_id)
        return _row_to_card(row)

    async def list_cards(
        self,
        deck_id: str,
        state: CardState | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> tuple[list[Card], int]:
        where = "deck_id = ?"
        params: list = [deck_id]
        if state is not None:
            where += " AND state = ?"
            params.append(CardState(state).value)

        with self._connect() as conn:
            total = conn.execute(f"SELECT COUNT(*) FROM cards WHERE {where}", params).fetchone()[0]
            rows = conn.execute(
                f"SELECT * FROM cards WHERE {where} ORDER BY created_at DESC LIMIT ? OFFSET ?",
                [*params, limit, offset],
            ).fetchall()
        return [_row_to_card(r) for r in rows], total

    async def save_card(self, card: Card) -> None:
        with self._connect() as conn:
            if conn.execute("SELECT 1 FROM decks WHERE id = ?", (card.deck_id,)).fetchone() is None:
                raise NotFoundError("Deck", card.deck_id)
            conn.execute(
                """
                INSERT OR REPLACE INTO cards (id, deck_id, front, back, hint, tags, ease_factor,
                                              interval_days, repetitions, state, next_review_at,
                                              last_reviewed_at, is_suspended, created_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    card.id,
                    card.deck_id,
                    card.front,
                    card.back,
                    card.hint,
                    json.dumps(list(card.tags)),
                    card.ease_factor,
                    card.interval_days,
                    card.repetitions,
                    card.state.value,
                    _ts(card.next_review_at),
                    _ts(card.last_reviewed_at) if card.last_reviewed_at else None,
                    int(card.is_suspended),
                    _ts(card.created_at),
                ),
            )

    async def delete_card(self, card_id: str) -> None:
        with self._connect() as conn:
            cursor = conn.execute("DELETE FROM cards WHERE id = ?", (card_id,))
            if cursor.rowcount == 0:
                raise NotFoundError("Card", card_id)

    # ---------- Review queue ----------

    async def get_due_cards(self, deck_id: str, now: datetime, limit: int) -> list[Card]:
        deck = await self.get_deck(deck_id)
        today = day_of(now).isoformat()

        with self._connect() as conn:
            rows = conn.execute(
                """
                SELECT * FROM cards
                WHERE deck_id = ? AND is_suspended = 0 AND next_review_at <= ?
                ORDER BY next_review_at ASC, created_at ASC, id ASC
                """,
                (deck_id, _ts(now)),
            ).fetchall()
            intake = conn.execute(
                """
                SELECT
                    COALESCE(SUM(CASE WHEN previous_state = 'new' THEN 1 ELSE 0 END), 0),
                    COALESCE(SUM(CASE WHEN previous_state != 'new' THEN 1 ELSE 0 END), 0)
                FROM reviews WHERE deck_id = ? AND reviewed_day = ?
                """,
                (deck_id, today),
            ).fetchone()

        queue = build_due_queue(
            [_row_to_card(r) for r in rows],
            deck,
            now,
            limit,
            new_reviewed_today=intake[0],
            reviews_done_today=intake[1],
        )
        return queue.cards

    async def count_cards_by_state(self, deck_id: str, now: datetime) -> DeckCounts:
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT state, COUNT(*) AS n FROM cards WHERE deck_id = ? GROUP BY state",
                (deck_id,),
            ).fetchall()
            due = conn.execute(
                """
                SELECT COUNT(*) FROM cards
                WHERE deck_id = ? AND is_suspended = 0 AND next_review_at <= ?
                """,
                (deck_id, _ts(now)),
            ).fetchone()[0]

        by_state = {r["state"]: r["n"] for r in rows}
        return DeckCounts(
            total=sum(by_state.values()),
            due=due,
            new=by_state.get(CardState.NEW.value, 0),
            learning=by_state.get(CardState.LEARNING.value, 0),
            review=by_state.get(CardState.REVIEW.value, 0),
            relearning=by_state.get(CardState.RELEARNING.value, 0),
        )

    # ---------- Review history ----------

    async def record_review(self, outcome: ReviewOutcome) -> bool:
        after = outcome.after
        before = outcome.before
        day = day_of(outcome.reviewed_at)

        with self._connect() as conn:
            if conn.execute("SELECT 1 FROM reviews WHERE id = ?", (outcome.review_id,)).fetchone():
                return False

            owner = conn.execute(
                """
                SELECT d.user_id FROM cards c JOIN decks d ON d.id = c.deck_id
                WHERE c.id = ?
                """,
                (outcome.card_id,),
            ).fetchone()
            if owner is None:
                raise NotFoundError("Card", outcome.card_id)
            user_id = owner["user_id"]

            conn.execute(
                """
                UPDATE cards SET ease_factor = ?, interval_days = ?, repetitions = ?, state = ?,
                                 next_review_at = ?, last_reviewed_at = ?
                WHERE id = ?
                """,
                (
                    after.ease_factor,
                    after.interval_days,
                    after.repetitions,
                    after.state.value,
                    _ts(after.next_review_at),
                    _ts(after.last_reviewed_at) if after.last_reviewed_at else None,
                    outcome.card_id,
                ),
            )
            conn.execute(
                """
                INSERT INTO reviews (id, card_id, deck_id, user_id, response, quality,
                                     reviewed_at, reviewed_day, previous_ease, previous_interval,
                                     previous_state, new_ease, new_interval, new_state,
                                     time_taken_ms)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    outcome.review_id,
                    outcome.card_id,
                    outcome.deck_id,
                    user_id,
                    outcome.response.value,
                    outcome.quality,
                    _ts(outcome.reviewed_at),
                    day.isoformat(),
                    before.ease_factor,
                    before.interval_days,
                    before.state.value,
                    after.ease_factor,
                    after.interval_days,
                    after.state.value,
                    outcome.time_taken_ms,
                ),
            )

            row = conn.execute(
                "SELECT * FROM daily_stats WHERE user_id = ? AND day = ?",
                (user_id, day.isoformat()),
            ).fetchone()
            current = _row_to_daily(row) if row else DailyStats(user_id=user_id, day=day)
            updated = apply_outcome(current, outcome)
            conn.execute(
                """
                INSERT OR REPLACE INTO daily_stats (user_id, day, cards_reviewed, cards_new,
                                                    cards_relearned, correct_answers,
                                                    wrong_answers, time_spent_ms)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    updated.user_id,
                    updated.day.isoformat(),
                    updated.cards_reviewed,
                    updated.cards_new,
                    updated.cards_relearned,
                    updated.correct_answers,
                    updated.wrong_answers,
                    updated.time_spent_ms,
                ),
            )

        logger.debug(f"Recorded review {outcome.review_id} for card {outcome.card_id}")
        return True

    async def get_daily_stats(self, user_id: str, since: date) -> list[DailyStats]:
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT * FROM daily_stats WHERE user_id = ? AND day >= ? ORDER BY day ASC",
                (user_id, since.isoformat()),
            ).fetchall()
        return [_row_to_daily(r) for r in rows]

    async def count_reviews(self, user_id: str) -> int:
        with self._connect() as conn:
            return conn.execute(
                "SELECT COUNT(*) FROM reviews WHERE user_id = ?", (user_id,)
            ).fetchone()[0]
