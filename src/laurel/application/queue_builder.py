"""
Queue builder for review sessions.

Builds the ordered batch of cards a session presents by:
1. Dropping suspended and not-yet-due cards
2. Ordering the rest oldest-due first
3. Applying the deck's remaining new-card and review allowances for today
"""

import logging
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import datetime

from laurel.domain.dates import ensure_utc
from laurel.domain.models import Card, CardState, Deck

logger = logging.getLogger(__name__)


@dataclass
class DueQueue:
    """Result of queue building."""

    cards: list[Card] = field(default_factory=list)
    deferred_new: int = 0  # due new cards held back by new_cards_per_day
    deferred_review: int = 0  # due cards held back by review_cards_per_day


def build_due_queue(
    cards: Iterable[Card],
    deck: Deck,
    now: datetime,
    limit: int,
    new_reviewed_today: int = 0,
    reviews_done_today: int = 0,
) -> DueQueue:
    """
    Select the cards to study from a deck's candidates.

    Args:
        cards: Candidate cards from the deck (any state, any due date).
        deck: The deck, for its per-day allowances.
        now: Cards due at or before this instant are eligible.
        limit: Maximum queue length.
        new_reviewed_today: New cards of this deck already reviewed today.
        reviews_done_today: Non-new reviews of this deck already done today.

    Returns:
        DueQueue with the ordered cards and how many were held back.
    """
    now = ensure_utc(now)
    due = sorted(
        (c for c in cards if c.is_due(now)),
        key=lambda c: (c.next_review_at, c.created_at, c.id),
    )

    new_allowance = max(0, deck.new_cards_per_day - new_reviewed_today)
    review_allowance = max(0, deck.review_cards_per_day - reviews_done_today)

    queue = DueQueue()
    for card in due:
        if card.state == CardState.NEW:
            if new_allowance > 0:
                queue.cards.append(card)
                new_allowance -= 1
            else:
                queue.deferred_new += 1
        else:
            if review_allowance > 0:
                queue.cards.append(card)
                review_allowance -= 1
            else:
                queue.deferred_review += 1

    if len(queue.cards) > limit:
        queue.cards = queue.cards[: max(0, limit)]

    if queue.deferred_new or queue.deferred_review:
        logger.debug(
            f"Deck {deck.id}: deferred {queue.deferred_new} new and "
            f"{queue.deferred_review} review cards past today's limits"
        )

    return queue
