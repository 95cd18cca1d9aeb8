"""
Domain models for cards, decks, and review outcomes.

These are pure data structures with no I/O or external dependencies.
"""

from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum

from .constants import (
    DEFAULT_CATEGORY,
    DEFAULT_COLOR,
    DEFAULT_NEW_CARDS_PER_DAY,
    DEFAULT_REVIEW_CARDS_PER_DAY,
    INITIAL_EASE,
    MAX_NEW_CARDS_PER_DAY,
    MAX_REVIEW_CARDS_PER_DAY,
    MIN_EASE,
)
from .dates import ensure_utc, utcnow


class CardState(str, Enum):
    NEW = "new"
    LEARNING = "learning"
    REVIEW = "review"
    RELEARNING = "relearning"


class ReviewResponse(str, Enum):
    CORRECT = "correct"
    WRONG = "wrong"
    SKIPPED = "skipped"


@dataclass(frozen=True)
class SchedulingState:
    """
    The SM-2 fields of a card.

    Attributes:
        ease_factor: Interval multiplier, never below 1.3.
        interval_days: Days between the last review and the next one.
        repetitions: Consecutive successful reviews since the last lapse.
        state: Lifecycle state.
        next_review_at: When the card is next due.
        last_reviewed_at: When the card was last reviewed (None if never).
    """

    ease_factor: float
    interval_days: int
    repetitions: int
    state: CardState
    next_review_at: datetime
    last_reviewed_at: datetime | None = None

    def __post_init__(self):
        if self.ease_factor < MIN_EASE:
            raise ValueError(f"ease_factor must be >= {MIN_EASE}, got {self.ease_factor}")
        if self.interval_days < 0:
            raise ValueError(f"interval_days must be >= 0, got {self.interval_days}")
        if self.repetitions < 0:
            raise ValueError(f"repetitions must be >= 0, got {self.repetitions}")
        object.__setattr__(self, "state", CardState(self.state))
        if self.state == CardState.NEW and self.repetitions != 0:
            raise ValueError(f"a new card has no repetitions, got {self.repetitions}")
        if self.repetitions >= 1 and self.interval_days < 1:
            raise ValueError(
                f"interval_days must be >= 1 after a successful review, got {self.interval_days}"
            )
        object.__setattr__(self, "next_review_at", ensure_utc(self.next_review_at))
        if self.last_reviewed_at is not None:
            object.__setattr__(self, "last_reviewed_at", ensure_utc(self.last_reviewed_at))


@dataclass(frozen=True)
class Card:
    """A question/answer unit belonging to exactly one deck."""

    id: str
    deck_id: str
    front: str
    back: str
    hint: str | None = None
    tags: tuple[str, ...] = ()
    ease_factor: float = INITIAL_EASE
    interval_days: int = 0
    repetitions: int = 0
    state: CardState = CardState.NEW
    next_review_at: datetime = field(default_factory=utcnow)
    last_reviewed_at: datetime | None = None
    is_suspended: bool = False
    created_at: datetime = field(default_factory=utcnow)

    def __post_init__(self):
        # Validates the scheduling fields and normalizes enum/timestamps
        schedule = self.schedule
        object.__setattr__(self, "state", schedule.state)
        object.__setattr__(self, "next_review_at", schedule.next_review_at)
        object.__setattr__(self, "last_reviewed_at", schedule.last_reviewed_at)
        object.__setattr__(self, "created_at", ensure_utc(self.created_at))
        object.__setattr__(self, "tags", tuple(self.tags))

    @property
    def schedule(self) -> SchedulingState:
        return SchedulingState(
            ease_factor=self.ease_factor,
            interval_days=self.interval_days,
            repetitions=self.repetitions,
            state=self.state,
            next_review_at=self.next_review_at,
            last_reviewed_at=self.last_reviewed_at,
        )

    def with_schedule(self, schedule: SchedulingState) -> "Card":
        return replace(
            self,
            ease_factor=schedule.ease_factor,
            interval_days=schedule.interval_days,
            repetitions=schedule.repetitions,
            state=schedule.state,
            next_review_at=schedule.next_review_at,
            last_reviewed_at=schedule.last_reviewed_at,
        )

    def is_due(self, now: datetime) -> bool:
        return not self.is_suspended and self.next_review_at <= ensure_utc(now)


@dataclass(frozen=True)
class Deck:
    """A grouping of cards with per-day intake limits."""

    id: str
    user_id: str
    name: str
    description: str | None = None
    category: str = DEFAULT_CATEGORY
    color: str = DEFAULT_COLOR
    new_cards_per_day: int = DEFAULT_NEW_CARDS_PER_DAY
    review_cards_per_day: int = DEFAULT_REVIEW_CARDS_PER_DAY
    is_active: bool = True
    created_at: datetime = field(default_factory=utcnow)

    def __post_init__(self):
        if not 1 <= self.new_cards_per_day <= MAX_NEW_CARDS_PER_DAY:
            raise ValueError(
                f"new_cards_per_day must be between 1 and {MAX_NEW_CARDS_PER_DAY}"
            )
        if not 1 <= self.review_cards_per_day <= MAX_REVIEW_CARDS_PER_DAY:
            raise ValueError(
                f"review_cards_per_day must be between 1 and {MAX_REVIEW_CARDS_PER_DAY}"
            )
        object.__setattr__(self, "created_at", ensure_utc(self.created_at))


@dataclass(frozen=True)
class ReviewOutcome:
    """
    An immutable record of one review.

    Attributes:
        review_id: Unique id; the idempotency key for persistence.
        card_id: The card that was reviewed.
        deck_id: The deck the card belongs to.
        response: How the user answered.
        quality: SM-2 quality fed to the scheduler (None when skipped).
        reviewed_at: When the response was given.
        before: Scheduling state before the review.
        after: Scheduling state after the review (equal to before when skipped).
        time_taken_ms: Time the user spent on the card, if measured.
    """

    review_id: str
    card_id: str
    deck_id: str
    response: ReviewResponse
    quality: int | None
    reviewed_at: datetime
    before: SchedulingState
    after: SchedulingState
    time_taken_ms: int | None = None

    @property
    def new_interval(self) -> int:
        return self.after.interval_days

    @property
    def next_review_at(self) -> datetime:
        return self.after.next_review_at

    @property
    def is_correct(self) -> bool:
        return self.response == ReviewResponse.CORRECT

    @property
    def is_skipped(self) -> bool:
        return self.response == ReviewResponse.SKIPPED


@dataclass(frozen=True)
class SessionSummary:
    """Terminal aggregate of a completed review session."""

    total_cards: int
    correct_count: int
    wrong_count: int
    skipped_count: int
    accuracy: int  # 0-100
    mastery_gain: int  # 0-10
    total_time_ms: int
    outcomes: tuple[ReviewOutcome, ...] = ()
