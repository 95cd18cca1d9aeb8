"""
Domain models for review statistics.

These are pure data structures with no I/O or external dependencies.
"""

from dataclasses import dataclass, field
from datetime import date

from laurel.domain.dates import round_half_up_int


@dataclass(frozen=True)
class DailyStats:
    """
    Per-user rollup of one UTC day of reviews.

    Updated in the same write as each review outcome, so reading stats never
    scans review history.

    Attributes:
        user_id: Owner of the reviews.
        day: UTC calendar day.
        cards_reviewed: Non-skipped reviews recorded that day.
        cards_new: Reviews of cards that were new before the review.
        cards_relearned: Correct reviews of learning/relearning cards.
        correct_answers: Reviews answered correctly.
        wrong_answers: Reviews answered wrongly.
        time_spent_ms: Total measured answer time.
    """

    user_id: str
    day: date
    cards_reviewed: int = 0
    cards_new: int = 0
    cards_relearned: int = 0
    correct_answers: int = 0
    wrong_answers: int = 0
    time_spent_ms: int = 0

    @property
    def accuracy(self) -> int:
        answered = self.correct_answers + self.wrong_answers
        if answered == 0:
            return 0
        return round_half_up_int(self.correct_answers / answered * 100)


@dataclass(frozen=True)
class DeckCounts:
    """Card counts for a deck, by lifecycle state plus due."""

    total: int = 0
    due: int = 0
    new: int = 0
    learning: int = 0
    review: int = 0
    relearning: int = 0


@dataclass
class LearningStats:
    """Dashboard view of a user's learning history."""

    total_decks: int
    total_cards: int
    total_reviews: int
    due_cards: int
    current_streak: int
    daily: list[DailyStats] = field(default_factory=list)
