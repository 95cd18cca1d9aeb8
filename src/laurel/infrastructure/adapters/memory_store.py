"""
In-Memory Card Store — Infrastructure adapter backed by plain dicts.

Implements CardStore for tests and the `memory` backend. Nothing survives the
process.
"""

import logging
from datetime import date, datetime

from laurel.application.queue_builder import build_due_queue
from laurel.application.stats.rollup import apply_outcome
from laurel.domain.dates import day_of, ensure_utc
from laurel.domain.errors import NotFoundError
from laurel.domain.models import Card, CardState, Deck, ReviewOutcome
from laurel.domain.ports import CardStore
from laurel.domain.stats.models import DailyStats, DeckCounts

logger = logging.getLogger(__name__)


class InMemoryCardStore(CardStore):
    """Dict-backed CardStore. Not shared across processes."""

    def __init__(self):
        self.decks: dict[str, Deck] = {}
        self.cards: dict[str, Card] = {}
        self.reviews: dict[str, ReviewOutcome] = {}  # insertion-ordered review history
        self.daily: dict[tuple[str, date], DailyStats] = {}

    # ---------- Decks ----------

    async def get_deck(self, deck_id: str) -> Deck:
        deck = self.decks.get(deck_id)
        if deck is None:
            raise NotFoundError("Deck", deck_id)
        return deck

    async def list_decks(self, user_id: str) -> list[Deck]:
        decks = [d for d in self.decks.values() if d.user_id == user_id]
        return sorted(decks, key=lambda d: d.created_at, reverse=True)

    async def save_deck(self, deck: Deck) -> None:
        self.decks[deck.id] = deck

    async def delete_deck(self, deck_id: str) -> None:
        if deck_id not in self.decks:
            raise NotFoundError("Deck", deck_id)
        del self.decks[deck_id]
        for card_id in [c.id for c in self.cards.values() if c.deck_id == deck_id]:
            del self.cards[card_id]

    # ---------- Cards ----------

    async def get_card(self, card_id: str) -> Card:
        card = self.cards.get(card_id)
        if card is None:
            raise NotFoundError("Card", card_id)
        return card

    async def list_cards(
        self,
        deck_id: str,
        state: CardState | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> tuple[list[Card], int]:
        matching = [
            c
            for c in self.cards.values()
            if c.deck_id == deck_id and (state is None or c.state == state)
        ]
        matching.sort(key=lambda c: c.created_at, reverse=True)
        return matching[offset : offset + limit], len(matching)

    async def save_card(self, card: Card) -> None:
        if card.deck_id not in self.decks:
            raise NotFoundError("Deck", card.deck_id)
        self.cards[card.id] = card

    async def delete_card(self, card_id: str) -> None:
        if card_id not in self.cards:
            raise NotFoundError("Card", card_id)
        del self.cards[card_id]

    # ---------- Review queue ----------

    async def get_due_cards(self, deck_id: str, now: datetime, limit: int) -> list[Card]:
        deck = await self.get_deck(deck_id)
        new_today, reviews_today = self._intake_today(deck_id, day_of(now))
        candidates = [c for c in self.cards.values() if c.deck_id == deck_id]
        queue = build_due_queue(
            candidates,
            deck,
            now,
            limit,
            new_reviewed_today=new_today,
            reviews_done_today=reviews_today,
        )
        return queue.cards

    def _intake_today(self, deck_id: str, today: date) -> tuple[int, int]:
        new_count = 0
        review_count = 0
        for outcome in self.reviews.values():
            if outcome.deck_id != deck_id or day_of(outcome.reviewed_at) != today:
                continue
            if outcome.before.state == CardState.NEW:
                new_count += 1
            else:
                review_count += 1
        return new_count, review_count

    async def count_cards_by_state(self, deck_id: str, now: datetime) -> DeckCounts:
        now = ensure_utc(now)
        cards = [c for c in self.cards.values() if c.deck_id == deck_id]
        return DeckCounts(
            total=len(cards),
            due=sum(1 for c in cards if c.is_due(now)),
            new=sum(1 for c in cards if c.state == CardState.NEW),
            learning=sum(1 for c in cards if c.state == CardState.LEARNING),
            review=sum(1 for c in cards if c.state == CardState.REVIEW),
            relearning=sum(1 for c in cards if c.state == CardState.RELEARNING),
        )

    # ---------- Review history ----------

    async def record_review(self, outcome: ReviewOutcome) -> bool:
        if outcome.review_id in self.reviews:
            return False

        # Validate everything before mutating so a failure writes nothing
        card = await self.get_card(outcome.card_id)
        deck = await self.get_deck(card.deck_id)

        key = (deck.user_id, day_of(outcome.reviewed_at))
        stats = self.daily.get(key) or DailyStats(user_id=key[0], day=key[1])

        self.cards[card.id] = card.with_schedule(outcome.after)
        self.reviews[outcome.review_id] = outcome
        self.daily[key] = apply_outcome(stats, outcome)
        return True

    async def get_daily_stats(self, user_id: str, since: date) -> list[DailyStats]:
        rows = [s for (uid, day), s in self.daily.items() if uid == user_id and day >= since]
        return sorted(rows, key=lambda s: s.day)

    async def count_reviews(self, user_id: str) -> int:
        deck_owner = {d.id: d.user_id for d in self.decks.values()}
        return sum(1 for o in self.reviews.values() if deck_owner.get(o.deck_id) == user_id)
