"""
Daily rollup arithmetic.

Pure computation over DailyStats records; adapters call apply_outcome inside
the same transaction that writes the review.
"""

from collections.abc import Iterable
from dataclasses import replace
from datetime import date, timedelta

from laurel.domain.models import CardState, ReviewOutcome, ReviewResponse
from laurel.domain.stats.models import DailyStats

RELEARN_STATES = (CardState.LEARNING, CardState.RELEARNING)


def apply_outcome(stats: DailyStats, outcome: ReviewOutcome) -> DailyStats:
    """
    Fold one review into a day's rollup.

    Skipped outcomes leave the rollup unchanged.
    """
    if outcome.response == ReviewResponse.SKIPPED:
        return stats

    correct = outcome.response == ReviewResponse.CORRECT
    was_new = outcome.before.state == CardState.NEW
    relearned = correct and outcome.before.state in RELEARN_STATES

    return replace(
        stats,
        cards_reviewed=stats.cards_reviewed + 1,
        cards_new=stats.cards_new + (1 if was_new else 0),
        cards_relearned=stats.cards_relearned + (1 if relearned else 0),
        correct_answers=stats.correct_answers + (1 if correct else 0),
        wrong_answers=stats.wrong_answers + (0 if correct else 1),
        time_spent_ms=stats.time_spent_ms + (outcome.time_taken_ms or 0),
    )


def compute_streak(daily: Iterable[DailyStats], today: date) -> int:
    """
    Count consecutive study days ending today.

    A day counts when at least one card was reviewed. A missing or empty day
    ends the streak, including today.
    """
    reviewed_days = {s.day for s in daily if s.cards_reviewed > 0}
    streak = 0
    day = today
    while day in reviewed_days:
        streak += 1
        day -= timedelta(days=1)
    return streak
