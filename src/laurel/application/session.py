"""
Review session controller.

Drives one sitting through a fixed, ordered batch of cards:

    active --respond() on last card--> complete --restart()--> active

The session is in-memory only and performs no I/O. It is single-writer:
callers that share it (e.g. over HTTP) must serialize access themselves.
"""

import logging
from collections.abc import Callable, Sequence
from datetime import datetime
from enum import Enum

from laurel.application.id_service import generate_review_id
from laurel.application.scheduler import compute_next_schedule, quality_for_response
from laurel.domain.constants import CORRECT_QUALITY, MASTERY_SCALE, WRONG_QUALITY
from laurel.domain.dates import round_half_up_int, utcnow
from laurel.domain.errors import (
    EmptySessionError,
    InvalidStateError,
    NoCurrentCardError,
)
from laurel.domain.models import Card, ReviewOutcome, ReviewResponse, SessionSummary

logger = logging.getLogger(__name__)


class SessionStatus(str, Enum):
    IDLE = "idle"  # constructed, start() not called yet
    ACTIVE = "active"
    COMPLETE = "complete"


def build_summary(outcomes: Sequence[ReviewOutcome], total_cards: int) -> SessionSummary:
    """
    Derive the summary statistics of a finished session.

    Accuracy ignores skipped cards and is 0 when nothing was answered.
    Mastery gain is a 0-10 score: the share of the whole batch answered
    correctly.
    """
    correct = sum(1 for o in outcomes if o.response == ReviewResponse.CORRECT)
    wrong = sum(1 for o in outcomes if o.response == ReviewResponse.WRONG)
    skipped = sum(1 for o in outcomes if o.response == ReviewResponse.SKIPPED)

    answered = correct + wrong
    accuracy = round_half_up_int(correct / answered * 100) if answered else 0
    mastery_gain = round_half_up_int(correct / total_cards * MASTERY_SCALE) if total_cards else 0

    return SessionSummary(
        total_cards=total_cards,
        correct_count=correct,
        wrong_count=wrong,
        skipped_count=skipped,
        accuracy=accuracy,
        mastery_gain=mastery_gain,
        total_time_ms=sum(o.time_taken_ms or 0 for o in outcomes),
        outcomes=tuple(outcomes),
    )


class ReviewSession:
    """
    State machine for a single review sitting.

    Collaborators are injected so tests can pin time and ids:
        scheduler: the SM-2 transition (compute_next_schedule signature).
        clock: returns the review timestamp.
        id_factory: returns a fresh review id.
    """

    def __init__(
        self,
        scheduler=compute_next_schedule,
        clock: Callable[[], datetime] = utcnow,
        id_factory: Callable[[], str] = generate_review_id,
        correct_quality: int = CORRECT_QUALITY,
        wrong_quality: int = WRONG_QUALITY,
    ):
        # Fail fast on a bad mapping rather than on the first response
        quality_for_response(ReviewResponse.CORRECT, correct_quality, wrong_quality)
        quality_for_response(ReviewResponse.WRONG, correct_quality, wrong_quality)

        self._scheduler = scheduler
        self._clock = clock
        self._id_factory = id_factory
        self._correct_quality = correct_quality
        self._wrong_quality = wrong_quality

        self._cards: list[Card] = []
        self._cursor = 0
        self._results: list[ReviewOutcome] = []
        self._summary: SessionSummary | None = None
        self._status = SessionStatus.IDLE

    # ---------- Lifecycle ----------

    def start(self, cards: Sequence[Card]) -> None:
        """
        Begin a sitting over `cards`, in the given order.

        Raises:
            EmptySessionError: If `cards` is empty.
        """
        if not cards:
            raise EmptySessionError()
        self._cards = list(cards)
        self._reset()
        logger.debug(f"Session started with {len(self._cards)} cards")

    def restart(self) -> None:
        """
        Study the same cards again from the first one.

        Each card keeps the scheduling state it reached earlier in the sitting,
        so a second pass schedules from where the first one left off.
        """
        if self._status != SessionStatus.COMPLETE:
            raise InvalidStateError(
                f"restart() requires a complete session, not {self._status.value}"
            )
        self._reset()
        logger.debug("Session restarted")

    def _reset(self) -> None:
        self._cursor = 0
        self._results = []
        self._summary = None
        self._status = SessionStatus.ACTIVE

    # ---------- Operations ----------

    def respond(
        self,
        response: ReviewResponse | str,
        time_taken_ms: int | None = None,
    ) -> ReviewOutcome:
        """
        Record the user's answer to the current card and advance.

        Correct and wrong answers are scheduled with SM-2; skipped cards keep
        their scheduling state untouched.

        Raises:
            InvalidStateError: If the session is not active.
            ValueError: If `response` is not a known response.
        """
        if self._status != SessionStatus.ACTIVE:
            raise InvalidStateError(
                f"respond() requires an active session, not {self._status.value}"
            )
        response = ReviewResponse(response)
        if time_taken_ms is not None and time_taken_ms < 0:
            raise ValueError(f"time_taken_ms must be >= 0, got {time_taken_ms}")

        card = self._cards[self._cursor]
        before = card.schedule
        reviewed_at = self._clock()
        quality = quality_for_response(response, self._correct_quality, self._wrong_quality)

        if quality is None:
            after = before
        else:
            after = self._scheduler(
                quality,
                before.ease_factor,
                before.interval_days,
                before.repetitions,
                before.state,
                now=reviewed_at,
            )
            self._cards[self._cursor] = card.with_schedule(after)

        outcome = ReviewOutcome(
            review_id=self._id_factory(),
            card_id=card.id,
            deck_id=card.deck_id,
            response=response,
            quality=quality,
            reviewed_at=reviewed_at,
            before=before,
            after=after,
            time_taken_ms=time_taken_ms,
        )
        self._results.append(outcome)
        self._cursor += 1

        if self._cursor == len(self._cards):
            self._summary = build_summary(self._results, len(self._cards))
            self._status = SessionStatus.COMPLETE
            logger.debug(
                f"Session complete: {self._summary.correct_count} correct, "
                f"{self._summary.wrong_count} wrong, {self._summary.skipped_count} skipped"
            )

        return outcome

    def current_card(self) -> Card:
        """
        Raises:
            NoCurrentCardError: If the session is complete.
            InvalidStateError: If the session was never started.
        """
        if self._status == SessionStatus.COMPLETE:
            raise NoCurrentCardError("Session is complete; there is no current card")
        if self._status == SessionStatus.IDLE:
            raise InvalidStateError("Session has not been started")
        return self._cards[self._cursor]

    def summary(self) -> SessionSummary:
        """Return the summary derived at completion. Never recomputed."""
        if self._summary is None:
            raise InvalidStateError(
                f"summary() requires a complete session, not {self._status.value}"
            )
        return self._summary

    # ---------- Read-only views ----------

    @property
    def status(self) -> SessionStatus:
        return self._status

    @property
    def is_complete(self) -> bool:
        return self._status == SessionStatus.COMPLETE

    @property
    def cursor(self) -> int:
        return self._cursor

    @property
    def total_cards(self) -> int:
        return len(self._cards)

    @property
    def remaining(self) -> int:
        return len(self._cards) - self._cursor

    @property
    def progress(self) -> float:
        if not self._cards:
            return 0.0
        return self._cursor / len(self._cards)

    @property
    def cards(self) -> tuple[Card, ...]:
        return tuple(self._cards)

    @property
    def results(self) -> tuple[ReviewOutcome, ...]:
        return tuple(self._results)

    @property
    def correct_count(self) -> int:
        return sum(1 for o in self._results if o.response == ReviewResponse.CORRECT)

    @property
    def wrong_count(self) -> int:
        return sum(1 for o in self._results if o.response == ReviewResponse.WRONG)

    @property
    def skipped_count(self) -> int:
        return sum(1 for o in self._results if o.response == ReviewResponse.SKIPPED)
