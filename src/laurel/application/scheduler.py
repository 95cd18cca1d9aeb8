"""
SM-2 scheduler.

Computes a card's next scheduling state from a review quality score.
This is a pure computation module with no I/O and no hidden state.

Quality scale:
    0: complete blackout
    1: incorrect, but remembered
    2: incorrect, but easy to recall
    3: correct with serious difficulty
    4: correct with hesitation
    5: perfect response
"""

from datetime import datetime

from laurel.domain.constants import (
    CORRECT_QUALITY,
    EASE_PRECISION,
    FIRST_INTERVAL,
    MAX_QUALITY,
    MIN_EASE,
    MIN_QUALITY,
    PASSING_QUALITY,
    SECOND_INTERVAL,
    WRONG_QUALITY,
)
from laurel.domain.dates import add_days, ensure_utc, round_half_up, round_half_up_int, utcnow
from laurel.domain.errors import InvalidQualityError
from laurel.domain.models import Card, CardState, ReviewResponse, SchedulingState


def validate_quality(quality: object) -> int:
    # bool is an int subclass; True/False are not quality scores
    if isinstance(quality, bool) or not isinstance(quality, int):
        raise InvalidQualityError(quality)
    if not MIN_QUALITY <= quality <= MAX_QUALITY:
        raise InvalidQualityError(quality)
    return quality


def adjust_ease(current_ease: float, quality: int) -> float:
    """SM-2 ease update, floored at 1.3."""
    miss = MAX_QUALITY - quality
    new_ease = current_ease + (0.1 - miss * (0.08 + miss * 0.02))
    return max(MIN_EASE, new_ease)


def compute_next_schedule(
    quality: int,
    current_ease: float,
    current_interval: int,
    current_repetitions: int,
    current_state: CardState | str,
    now: datetime | None = None,
) -> SchedulingState:
    """
    Apply one review to a card's scheduling state.

    Args:
        quality: Recall quality, an integer in [0, 5].
        current_ease: Ease factor before the review (>= 1.3).
        current_interval: Interval in days before the review.
        current_repetitions: Successful repetitions before the review.
        current_state: Lifecycle state before the review.
        now: Review time; defaults to the current UTC time.

    Returns:
        The new scheduling state, with last_reviewed_at set to `now` and
        next_review_at `interval` whole days later.

    Raises:
        InvalidQualityError: If quality is not an integer in [0, 5].
    """
    quality = validate_quality(quality)
    state = CardState(current_state)
    now = ensure_utc(now) if now is not None else utcnow()

    if quality < PASSING_QUALITY:
        repetitions = 0
        interval = FIRST_INTERVAL
        ease = current_ease
        new_state = CardState.LEARNING if state == CardState.NEW else CardState.RELEARNING
    else:
        repetitions = current_repetitions + 1
        if repetitions == 1:
            interval = FIRST_INTERVAL
        elif repetitions == 2:
            interval = SECOND_INTERVAL
        else:
            # Uses the ease from before this review's adjustment
            interval = max(FIRST_INTERVAL, round_half_up_int(current_interval * current_ease))
        ease = adjust_ease(current_ease, quality)
        new_state = CardState.REVIEW

    return SchedulingState(
        ease_factor=max(MIN_EASE, round_half_up(ease, EASE_PRECISION)),
        interval_days=interval,
        repetitions=repetitions,
        state=new_state,
        next_review_at=add_days(now, interval),
        last_reviewed_at=now,
    )


def schedule_card(card: Card, quality: int, now: datetime | None = None) -> Card:
    """Return a copy of `card` with the review applied."""
    schedule = compute_next_schedule(
        quality,
        card.ease_factor,
        card.interval_days,
        card.repetitions,
        card.state,
        now=now,
    )
    return card.with_schedule(schedule)


def quality_for_response(
    response: ReviewResponse | str,
    correct_quality: int = CORRECT_QUALITY,
    wrong_quality: int = WRONG_QUALITY,
) -> int | None:
    """
    Map a session response to an SM-2 quality.

    Returns None for skipped responses, which are never scheduled.
    """
    response = ReviewResponse(response)
    if response == ReviewResponse.CORRECT:
        return validate_quality(correct_quality)
    if response == ReviewResponse.WRONG:
        return validate_quality(wrong_quality)
    return None
