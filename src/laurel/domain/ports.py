"""
Ports (interfaces) for card storage.

These define the contract that infrastructure adapters must implement.
Application services depend on these abstractions, not concrete implementations.
"""

from abc import ABC, abstractmethod
from datetime import date, datetime

from .models import Card, CardState, Deck, ReviewOutcome
from .stats.models import DailyStats, DeckCounts


class CardStore(ABC):
    """
    Port for reading cards and persisting review results.

    Implementations:
        - InMemoryCardStore: dict-backed, used by tests and the memory backend.
        - SqliteCardStore: a local SQLite database file.

    Adapters raise StoreError (or NotFoundError) on failure.
    """

    # ---------- Decks ----------

    @abstractmethod
    async def get_deck(self, deck_id: str) -> Deck:
        """Return the deck or raise NotFoundError."""

    @abstractmethod
    async def list_decks(self, user_id: str) -> list[Deck]:
        """Return the user's decks, newest first."""

    @abstractmethod
    async def save_deck(self, deck: Deck) -> None:
        """Insert or replace a deck."""

    @abstractmethod
    async def delete_deck(self, deck_id: str) -> None:
        """Delete a deck and its cards. Raises NotFoundError if missing."""

    # ---------- Cards ----------

    @abstractmethod
    async def get_card(self, card_id: str) -> Card:
        """Return the card or raise NotFoundError."""

    @abstractmethod
    async def list_cards(
        self,
        deck_id: str,
        state: CardState | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> tuple[list[Card], int]:
        """
        Page through a deck's cards, newest first.

        Returns:
            The page of cards and the total count matching the filter.
        """

    @abstractmethod
    async def save_card(self, card: Card) -> None:
        """Insert or replace a card. Raises NotFoundError if its deck is missing."""

    @abstractmethod
    async def delete_card(self, card_id: str) -> None:
        """Delete a card. Raises NotFoundError if missing."""

    # ---------- Review queue ----------

    @abstractmethod
    async def get_due_cards(self, deck_id: str, now: datetime, limit: int) -> list[Card]:
        """
        Select the cards to present in a review session.

        Suspended and not-yet-due cards are excluded, the oldest due first, and
        the deck's per-day new/review allowances are applied.
        """

    @abstractmethod
    async def count_cards_by_state(self, deck_id: str, now: datetime) -> DeckCounts:
        """Count the deck's cards per lifecycle state, plus those due at `now`."""

    # ---------- Review history ----------

    @abstractmethod
    async def record_review(self, outcome: ReviewOutcome) -> bool:
        """
        Persist one review outcome atomically.

        Writes the card's new scheduling fields, appends the review history
        row and updates the owner's daily rollup in one transaction.

        Returns:
            False if `outcome.review_id` was already recorded (nothing written).
        """

    @abstractmethod
    async def get_daily_stats(self, user_id: str, since: date) -> list[DailyStats]:
        """Daily rollups on or after `since`, oldest first."""

    @abstractmethod
    async def count_reviews(self, user_id: str) -> int:
        """Total reviews recorded for the user."""
