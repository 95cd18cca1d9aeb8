"""
Learning Stats Service — Application layer orchestrator.

Reads the daily rollups and deck counts from the store and derives the
dashboard view (streak, per-day accuracy, totals).
"""

import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timedelta

from laurel.domain.constants import DEFAULT_STATS_DAYS, MAX_STATS_DAYS
from laurel.domain.dates import day_of, utcnow
from laurel.domain.models import Deck
from laurel.domain.ports import CardStore
from laurel.domain.stats.models import DeckCounts, LearningStats

from .rollup import compute_streak

logger = logging.getLogger(__name__)


@dataclass
class DeckOverview:
    deck: Deck
    counts: DeckCounts


class StatsService:
    """
    Application service for learning statistics.

    Depends on the CardStore abstraction, not concrete adapters.
    """

    def __init__(self, store: CardStore, clock: Callable[[], datetime] = utcnow):
        self._store = store
        self._clock = clock

    async def get_learning_stats(
        self, user_id: str, days: int = DEFAULT_STATS_DAYS
    ) -> LearningStats:
        """
        Summarize a user's recent study history.

        Args:
            user_id: Owner of the decks and reviews.
            days: How many days of rollups to include (1-365).
        """
        if not 1 <= days <= MAX_STATS_DAYS:
            raise ValueError(f"days must be between 1 and {MAX_STATS_DAYS}, got {days}")

        now = self._clock()
        today = day_of(now)
        since = today - timedelta(days=days)

        daily = await self._store.get_daily_stats(user_id, since)
        decks = await self._store.list_decks(user_id)

        total_cards = 0
        due_cards = 0
        for deck in decks:
            counts = await self._store.count_cards_by_state(deck.id, now)
            total_cards += counts.total
            due_cards += counts.due

        return LearningStats(
            total_decks=len(decks),
            total_cards=total_cards,
            total_reviews=await self._store.count_reviews(user_id),
            due_cards=due_cards,
            current_streak=compute_streak(daily, today),
            daily=daily,
        )

    async def get_deck_overview(self, deck_id: str) -> DeckOverview:
        deck = await self._store.get_deck(deck_id)
        counts = await self._store.count_cards_by_state(deck_id, self._clock())
        return DeckOverview(deck=deck, counts=counts)

    async def list_deck_overviews(self, user_id: str) -> list[DeckOverview]:
        now = self._clock()
        overviews = []
        for deck in await self._store.list_decks(user_id):
            counts = await self._store.count_cards_by_state(deck.id, now)
            overviews.append(DeckOverview(deck=deck, counts=counts))
        return overviews
