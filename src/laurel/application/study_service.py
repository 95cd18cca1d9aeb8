"""
Study Service — Application layer orchestrator for review sessions.

Owns the live ReviewSession objects, feeds them due cards from the injected
CardStore and persists each scheduled outcome back to it.

Persistence is at-least-once: a session advances in memory first, then the
outcome is written with bounded retries keyed by its review id. If every
retry fails, the outcome stays queued on the session and can be flushed
later without responding again.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import datetime

from laurel.application.config import AppConfig
from laurel.application.id_service import generate_session_id
from laurel.application.session import ReviewSession
from laurel.domain.dates import utcnow
from laurel.domain.errors import (
    EmptySessionError,
    NotFoundError,
    PersistenceError,
    SessionNotFoundError,
    StoreError,
)
from laurel.domain.models import Card, ReviewOutcome, ReviewResponse
from laurel.domain.ports import CardStore

logger = logging.getLogger(__name__)


@dataclass
class SessionHandle:
    """A live session plus the bookkeeping the service keeps for it."""

    id: str
    user_id: str
    deck_id: str | None  # None when studying every deck at once
    session: ReviewSession
    started_at: datetime
    pending: list[ReviewOutcome] = field(default_factory=list)
    lock: asyncio.Lock = field(default_factory=asyncio.Lock, repr=False)


class StudyService:
    """
    Application service for running review sessions against a card store.

    Follows Dependency Inversion: the store is passed in, never constructed
    here, so tests can use the in-memory adapter.
    """

    def __init__(
        self,
        store: CardStore,
        config: AppConfig | None = None,
        clock: Callable[[], datetime] = utcnow,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        """
        Args:
            store: The repository (port) for cards and review history.
            config: Session size, quality mapping and retry policy.
            clock: Source of review timestamps.
            sleep: Awaited between persistence retries.
        """
        self._store = store
        self._config = config or AppConfig(backend="memory")
        self._clock = clock
        self._sleep = sleep
        self._sessions: dict[str, SessionHandle] = {}

    @property
    def store(self) -> CardStore:
        return self._store

    # ---------- Session lifecycle ----------

    async def start_session(
        self, user_id: str, deck_id: str | None = None, limit: int | None = None
    ) -> SessionHandle | None:
        """
        Start studying a deck, or every active deck of the user when deck_id
        is None.

        Any live session for the same user and deck is ended first, which
        saves its unsaved reviews before the due queue is read again.

        Returns:
            The new session, or None when nothing is due.

        Raises:
            NotFoundError: If the deck does not exist or belongs to another user.
            PersistenceError: The previous session still has unsaved reviews;
                it is kept so they can be flushed later.
        """
        if deck_id is not None:
            deck = await self._store.get_deck(deck_id)
            if deck.user_id != user_id:
                raise NotFoundError("Deck", deck_id)

        existing = self.find_session(user_id, deck_id)
        if existing:
            await self.end_session(existing.id)

        size = limit or self._config.session_size
        if deck_id is None:
            cards = await self._due_across_decks(user_id, size)
        else:
            cards = await self._store.get_due_cards(deck_id, self._clock(), size)

        session = ReviewSession(
            clock=self._clock,
            correct_quality=self._config.correct_quality,
            wrong_quality=self._config.wrong_quality,
        )
        try:
            session.start(cards)
        except EmptySessionError:
            logger.info(f"No cards due in {deck_id or 'any deck'} for user {user_id}")
            return None

        handle = SessionHandle(
            id=generate_session_id(),
            user_id=user_id,
            deck_id=deck_id,
            session=session,
            started_at=self._clock(),
        )
        self._sessions[handle.id] = handle
        logger.info(
            f"Started session {handle.id} with {len(cards)} cards from {deck_id or 'all decks'}"
        )
        return handle

    async def _due_across_decks(self, user_id: str, limit: int) -> list[Card]:
        # Each deck applies its own daily allowances before the merge
        now = self._clock()
        due: list[Card] = []
        for deck in await self._store.list_decks(user_id):
            if deck.is_active:
                due.extend(await self._store.get_due_cards(deck.id, now, limit))
        due.sort(key=lambda c: (c.next_review_at, c.created_at, c.id))
        return due[:limit]

    def get_session(self, session_id: str) -> SessionHandle:
        handle = self._sessions.get(session_id)
        if handle is None:
            raise SessionNotFoundError(session_id)
        return handle

    def find_session(self, user_id: str, deck_id: str | None) -> SessionHandle | None:
        for handle in self._sessions.values():
            if handle.user_id == user_id and handle.deck_id == deck_id:
                return handle
        return None

    async def restart(self, session_id: str) -> SessionHandle:
        handle = self.get_session(session_id)
        async with handle.lock:
            handle.session.restart()
        return handle

    async def end_session(self, session_id: str) -> None:
        """
        Save anything still pending, then forget the session.

        Raises:
            SessionNotFoundError: Unknown session id.
            PersistenceError: Pending reviews still could not be saved. The
                session stays live so flush_pending() can be retried.
        """
        handle = self.get_session(session_id)
        async with handle.lock:
            await self._flush(handle)
            self._sessions.pop(session_id, None)
        logger.info(f"Ended session {session_id}")

    # ---------- Reviewing ----------

    async def respond(
        self,
        session_id: str,
        response: ReviewResponse | str,
        time_taken_ms: int | None = None,
    ) -> ReviewOutcome:
        """
        Answer the session's current card and persist the result.

        Skipped cards are not written: their scheduling state is unchanged.

        Raises:
            SessionNotFoundError: Unknown session id.
            InvalidStateError: The session is already complete.
            PersistenceError: The outcome was recorded in memory but could not
                be saved; call flush_pending() to retry.
        """
        handle = self.get_session(session_id)
        async with handle.lock:
            outcome = handle.session.respond(response, time_taken_ms)
            if not outcome.is_skipped:
                handle.pending.append(outcome)
            await self._flush(handle)
            return outcome

    async def flush_pending(self, session_id: str) -> int:
        """
        Retry writing outcomes that previously failed to persist.

        Returns:
            Number of outcomes still pending (0 on success).
        """
        handle = self.get_session(session_id)
        async with handle.lock:
            await self._flush(handle)
            return len(handle.pending)

    async def _flush(self, handle: SessionHandle) -> None:
        # FIFO so a card's reviews land in the order they happened
        while handle.pending:
            outcome = handle.pending[0]
            try:
                await self._persist(outcome)
            except NotFoundError:
                logger.warning(
                    f"Card {outcome.card_id} no longer exists; dropping review {outcome.review_id}"
                )
            handle.pending.pop(0)

    async def _persist(self, outcome: ReviewOutcome) -> None:
        retries = self._config.persist_retries

        for attempt in range(1, retries + 1):
            try:
                written = await self._store.record_review(outcome)
                if not written:
                    logger.info(f"Review {outcome.review_id} was already recorded")
                return
            except NotFoundError:
                raise
            except StoreError as e:
                logger.warning(
                    f"Saving review {outcome.review_id} failed "
                    f"(attempt {attempt}/{retries}): {e}"
                )
                if attempt == retries:
                    raise PersistenceError(outcome.review_id, retries, e) from e
                await self._sleep(self._config.persist_backoff * 2 ** (attempt - 1))
