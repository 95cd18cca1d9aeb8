import logging
import time
from contextlib import asynccontextmanager
from dataclasses import dataclass, replace
from datetime import datetime

from fastapi import Depends, FastAPI, HTTPException, Query, Request
from pydantic import BaseModel, Field

from laurel.application.config import AppConfig, resolve_config
from laurel.application.factory import get_card_store
from laurel.application.gamification import level_for_xp
from laurel.application.id_service import generate_card_id, generate_deck_id
from laurel.application.stats.service import DeckOverview, StatsService
from laurel.application.study_service import SessionHandle, StudyService
from laurel.consts import VERSION
from laurel.domain.constants import (
    DEFAULT_CATEGORY,
    DEFAULT_COLOR,
    DEFAULT_NEW_CARDS_PER_DAY,
    DEFAULT_REVIEW_CARDS_PER_DAY,
    MAX_NEW_CARDS_PER_DAY,
    MAX_REVIEW_CARDS_PER_DAY,
    MAX_SESSION_SIZE,
)
from laurel.domain.dates import utcnow
from laurel.domain.errors import (
    InvalidStateError,
    NotFoundError,
    PersistenceError,
    SessionNotFoundError,
    StoreError,
)
from laurel.domain.models import (
    Card,
    CardState,
    Deck,
    ReviewOutcome,
    ReviewResponse,
    SessionSummary,
)
from laurel.domain.ports import CardStore

# Setup logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger("laurel.server")

EMPTY_QUEUE_MESSAGE = "Nothing to review right now"


@dataclass
class Services:
    config: AppConfig
    store: CardStore
    study: StudyService
    stats: StatsService


def build_services(config: AppConfig) -> Services:
    store = get_card_store(config)
    return Services(
        config=config,
        store=store,
        study=StudyService(store, config),
        stats=StatsService(store),
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    logger.info(f"Laurel Server v{VERSION} starting up...")
    if getattr(app.state, "services", None) is None:
        app.state.services = build_services(resolve_config())
    yield
    # Shutdown
    logger.info("Laurel Server shutting down...")


app = FastAPI(
    title="Laurel Server",
    description="Spaced repetition decks and review sessions.",
    version=VERSION,
    lifespan=lifespan,
)


def get_services(request: Request) -> Services:
    services = getattr(request.app.state, "services", None)
    if services is None:
        logger.error("Services requested before the app finished starting up")
        raise HTTPException(status_code=500, detail="Server is not initialized")
    return services


# ---------------------------------------------------------------------------
# Schemas
# ---------------------------------------------------------------------------


class HealthResponse(BaseModel):
    status: str
    version: str
    uptime_seconds: float


class DeckCountsOut(BaseModel):
    total: int
    due: int
    new: int
    learning: int
    review: int
    relearning: int


class DeckOut(BaseModel):
    id: str
    user_id: str
    name: str
    description: str | None
    category: str
    color: str
    new_cards_per_day: int
    review_cards_per_day: int
    is_active: bool
    created_at: datetime
    counts: DeckCountsOut | None = None


class DeckCreate(BaseModel):
    user_id: str
    name: str = Field(min_length=1, max_length=100)
    description: str | None = Field(default=None, max_length=500)
    category: str = Field(default=DEFAULT_CATEGORY, max_length=50)
    color: str = Field(default=DEFAULT_COLOR, pattern=r"^#[0-9A-Fa-f]{6}$")
    new_cards_per_day: int = Field(
        default=DEFAULT_NEW_CARDS_PER_DAY, ge=1, le=MAX_NEW_CARDS_PER_DAY
    )
    review_cards_per_day: int = Field(
        default=DEFAULT_REVIEW_CARDS_PER_DAY, ge=1, le=MAX_REVIEW_CARDS_PER_DAY
    )


class DeckUpdate(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=100)
    description: str | None = Field(default=None, max_length=500)
    category: str | None = Field(default=None, max_length=50)
    color: str | None = Field(default=None, pattern=r"^#[0-9A-Fa-f]{6}$")
    new_cards_per_day: int | None = Field(default=None, ge=1, le=MAX_NEW_CARDS_PER_DAY)
    review_cards_per_day: int | None = Field(default=None, ge=1, le=MAX_REVIEW_CARDS_PER_DAY)
    is_active: bool | None = None


class CardOut(BaseModel):
    id: str
    deck_id: str
    front: str
    back: str
    hint: str | None
    tags: list[str]
    ease_factor: float
    interval_days: int
    repetitions: int
    state: CardState
    next_review_at: datetime
    last_reviewed_at: datetime | None
    is_suspended: bool
    created_at: datetime


class CardCreate(BaseModel):
    front: str = Field(min_length=1, max_length=5000)
    back: str = Field(min_length=1, max_length=5000)
    hint: str | None = Field(default=None, max_length=500)
    tags: list[str] = Field(default_factory=list, max_length=10)


class CardUpdate(BaseModel):
    front: str | None = Field(default=None, min_length=1, max_length=5000)
    back: str | None = Field(default=None, min_length=1, max_length=5000)
    hint: str | None = Field(default=None, max_length=500)
    tags: list[str] | None = Field(default=None, max_length=10)
    is_suspended: bool | None = None


class CardPage(BaseModel):
    cards: list[CardOut]
    total: int


class SessionStart(BaseModel):
    user_id: str
    deck_id: str | None = None  # omit to study every active deck
    limit: int | None = Field(default=None, ge=1, le=MAX_SESSION_SIZE)


class RespondRequest(BaseModel):
    response: ReviewResponse
    time_taken_ms: int | None = Field(default=None, ge=0)


class OutcomeOut(BaseModel):
    review_id: str
    card_id: str
    response: ReviewResponse
    quality: int | None
    reviewed_at: datetime
    new_interval: int
    next_review_at: datetime
    ease_factor: float
    state: CardState
    time_taken_ms: int | None


class SummaryOut(BaseModel):
    total_cards: int
    correct_count: int
    wrong_count: int
    skipped_count: int
    accuracy: int
    mastery_gain: int
    total_time_ms: int
    outcomes: list[OutcomeOut]


class SessionOut(BaseModel):
    status: str
    session_id: str | None = None
    deck_id: str | None = None
    message: str | None = None
    cursor: int = 0
    total_cards: int = 0
    correct_count: int = 0
    wrong_count: int = 0
    skipped_count: int = 0
    pending_writes: int = 0
    current_card: CardOut | None = None
    summary: SummaryOut | None = None


class RespondResponse(BaseModel):
    outcome: OutcomeOut
    session: SessionOut


class DailyStatsOut(BaseModel):
    date: str
    cards_reviewed: int
    cards_new: int
    cards_relearned: int
    correct_answers: int
    wrong_answers: int
    time_spent_ms: int
    accuracy: int


class LearningStatsOut(BaseModel):
    total_decks: int
    total_cards: int
    total_reviews: int
    due_cards: int
    current_streak: int
    daily_stats: list[DailyStatsOut]


# ---------------------------------------------------------------------------
# Converters
# ---------------------------------------------------------------------------


def _deck_out(deck: Deck, overview: DeckOverview | None = None) -> DeckOut:
    counts = None
    if overview is not None:
        c = overview.counts
        counts = DeckCountsOut(
            total=c.total,
            due=c.due,
            new=c.new,
            learning=c.learning,
            review=c.review,
            relearning=c.relearning,
        )
    return DeckOut(
        id=deck.id,
        user_id=deck.user_id,
        name=deck.name,
        description=deck.description,
        category=deck.category,
        color=deck.color,
        new_cards_per_day=deck.new_cards_per_day,
        review_cards_per_day=deck.review_cards_per_day,
        is_active=deck.is_active,
        created_at=deck.created_at,
        counts=counts,
    )


def _card_out(card: Card) -> CardOut:
    return CardOut(
        id=card.id,
        deck_id=card.deck_id,
        front=card.front,
        back=card.back,
        hint=card.hint,
        tags=list(card.tags),
        ease_factor=card.ease_factor,
        interval_days=card.interval_days,
        repetitions=card.repetitions,
        state=card.state,
        next_review_at=card.next_review_at,
        last_reviewed_at=card.last_reviewed_at,
        is_suspended=card.is_suspended,
        created_at=card.created_at,
    )


def _outcome_out(outcome: ReviewOutcome) -> OutcomeOut:
    return OutcomeOut(
        review_id=outcome.review_id,
        card_id=outcome.card_id,
        response=outcome.response,
        quality=outcome.quality,
        reviewed_at=outcome.reviewed_at,
        new_interval=outcome.new_interval,
        next_review_at=outcome.next_review_at,
        ease_factor=outcome.after.ease_factor,
        state=outcome.after.state,
        time_taken_ms=outcome.time_taken_ms,
    )


def _summary_out(summary: SessionSummary) -> SummaryOut:
    return SummaryOut(
        total_cards=summary.total_cards,
        correct_count=summary.correct_count,
        wrong_count=summary.wrong_count,
        skipped_count=summary.skipped_count,
        accuracy=summary.accuracy,
        mastery_gain=summary.mastery_gain,
        total_time_ms=summary.total_time_ms,
        outcomes=[_outcome_out(o) for o in summary.outcomes],
    )


def _session_out(handle: SessionHandle) -> SessionOut:
    session = handle.session
    return SessionOut(
        status=session.status.value,
        session_id=handle.id,
        deck_id=handle.deck_id,
        cursor=session.cursor,
        total_cards=session.total_cards,
        correct_count=session.correct_count,
        wrong_count=session.wrong_count,
        skipped_count=session.skipped_count,
        pending_writes=len(handle.pending),
        current_card=None if session.is_complete else _card_out(session.current_card()),
        summary=_summary_out(session.summary()) if session.is_complete else None,
    )


def _raise_http(e: Exception) -> None:
    """Map domain and store errors onto HTTP status codes."""
    if isinstance(e, NotFoundError | SessionNotFoundError):
        raise HTTPException(status_code=404, detail=str(e)) from e
    if isinstance(e, InvalidStateError):
        raise HTTPException(status_code=409, detail=str(e)) from e
    if isinstance(e, PersistenceError):
        raise HTTPException(status_code=503, detail=str(e)) from e
    if isinstance(e, ValueError):
        raise HTTPException(status_code=422, detail=str(e)) from e
    logger.error(f"Request failed: {e}", exc_info=True)
    raise HTTPException(status_code=500, detail=str(e)) from e


# ---------------------------------------------------------------------------
# Service endpoints
# ---------------------------------------------------------------------------

start_time = time.time()


@app.get("/health", response_model=HealthResponse)
async def health_check():
    """
    Simple health check to verify server is reachable.
    """
    return HealthResponse(status="ok", version=VERSION, uptime_seconds=time.time() - start_time)


@app.get("/version")
async def get_version():
    return {"version": VERSION}


# ---------------------------------------------------------------------------
# Decks
# ---------------------------------------------------------------------------


@app.get("/decks", response_model=list[DeckOut])
async def list_decks(user_id: str, services: Services = Depends(get_services)):
    """List a user's decks with due and per-state counts."""
    try:
        overviews = await services.stats.list_deck_overviews(user_id)
    except (StoreError, ValueError) as e:
        _raise_http(e)
    return [_deck_out(o.deck, o) for o in overviews]


@app.post("/decks", response_model=DeckOut, status_code=201)
async def create_deck(req: DeckCreate, services: Services = Depends(get_services)):
    deck = Deck(id=generate_deck_id(), created_at=utcnow(), **req.model_dump())
    try:
        await services.store.save_deck(deck)
    except StoreError as e:
        _raise_http(e)
    logger.info(f"Created deck {deck.id} for user {deck.user_id}")
    return _deck_out(deck)


@app.get("/decks/{deck_id}", response_model=DeckOut)
async def get_deck(deck_id: str, services: Services = Depends(get_services)):
    try:
        overview = await services.stats.get_deck_overview(deck_id)
    except StoreError as e:
        _raise_http(e)
    return _deck_out(overview.deck, overview)


@app.patch("/decks/{deck_id}", response_model=DeckOut)
async def update_deck(deck_id: str, req: DeckUpdate, services: Services = Depends(get_services)):
    try:
        deck = await services.store.get_deck(deck_id)
        deck = replace(deck, **req.model_dump(exclude_none=True))
        await services.store.save_deck(deck)
    except (StoreError, ValueError) as e:
        _raise_http(e)
    return _deck_out(deck)


@app.delete("/decks/{deck_id}")
async def delete_deck(deck_id: str, services: Services = Depends(get_services)):
    try:
        await services.store.delete_deck(deck_id)
    except StoreError as e:
        _raise_http(e)
    return {"success": True}


# ---------------------------------------------------------------------------
# Cards
# ---------------------------------------------------------------------------


@app.get("/decks/{deck_id}/cards", response_model=CardPage)
async def list_cards(
    deck_id: str,
    state: CardState | None = None,
    limit: int = Query(default=50, ge=1, le=100),
    offset: int = Query(default=0, ge=0),
    services: Services = Depends(get_services),
):
    try:
        await services.store.get_deck(deck_id)
        cards, total = await services.store.list_cards(deck_id, state, limit, offset)
    except StoreError as e:
        _raise_http(e)
    return CardPage(cards=[_card_out(c) for c in cards], total=total)


@app.post("/decks/{deck_id}/cards", response_model=CardOut, status_code=201)
async def create_card(deck_id: str, req: CardCreate, services: Services = Depends(get_services)):
    now = utcnow()
    card = Card(
        id=generate_card_id(),
        deck_id=deck_id,
        front=req.front,
        back=req.back,
        hint=req.hint,
        tags=tuple(req.tags),
        next_review_at=now,
        created_at=now,
    )
    try:
        await services.store.save_card(card)
    except StoreError as e:
        _raise_http(e)
    return _card_out(card)


@app.get("/decks/{deck_id}/due", response_model=list[CardOut])
async def get_due_cards(
    deck_id: str,
    limit: int = Query(default=20, ge=1, le=MAX_SESSION_SIZE),
    services: Services = Depends(get_services),
):
    """Cards a session would present right now, in order."""
    try:
        cards = await services.store.get_due_cards(deck_id, utcnow(), limit)
    except StoreError as e:
        _raise_http(e)
    return [_card_out(c) for c in cards]


@app.patch("/cards/{card_id}", response_model=CardOut)
async def update_card(card_id: str, req: CardUpdate, services: Services = Depends(get_services)):
    """Edit card content or suspend it. Scheduling fields are not editable."""
    changes = req.model_dump(exclude_none=True)
    if "tags" in changes:
        changes["tags"] = tuple(changes["tags"])
    try:
        card = replace(await services.store.get_card(card_id), **changes)
        await services.store.save_card(card)
    except StoreError as e:
        _raise_http(e)
    return _card_out(card)


@app.delete("/cards/{card_id}")
async def delete_card(card_id: str, services: Services = Depends(get_services)):
    try:
        await services.store.delete_card(card_id)
    except StoreError as e:
        _raise_http(e)
    return {"success": True}


# ---------------------------------------------------------------------------
# Review sessions
# ---------------------------------------------------------------------------


@app.post("/sessions", response_model=SessionOut)
async def start_session(req: SessionStart, services: Services = Depends(get_services)):
    """
    Start studying a deck.

    An empty queue is not an error: the response has status "empty".
    """
    try:
        handle = await services.study.start_session(req.user_id, req.deck_id, req.limit)
    except (StoreError, PersistenceError) as e:
        _raise_http(e)
    if handle is None:
        return SessionOut(status="empty", deck_id=req.deck_id, message=EMPTY_QUEUE_MESSAGE)
    return _session_out(handle)


@app.get("/sessions/{session_id}", response_model=SessionOut)
async def get_session(session_id: str, services: Services = Depends(get_services)):
    try:
        handle = services.study.get_session(session_id)
    except SessionNotFoundError as e:
        _raise_http(e)
    return _session_out(handle)


@app.post("/sessions/{session_id}/respond", response_model=RespondResponse)
async def respond(session_id: str, req: RespondRequest, services: Services = Depends(get_services)):
    try:
        handle = services.study.get_session(session_id)
        outcome = await services.study.respond(session_id, req.response, req.time_taken_ms)
    except (SessionNotFoundError, InvalidStateError, PersistenceError) as e:
        _raise_http(e)
    return RespondResponse(outcome=_outcome_out(outcome), session=_session_out(handle))


@app.post("/sessions/{session_id}/flush", response_model=SessionOut)
async def flush_session(session_id: str, services: Services = Depends(get_services)):
    """Retry saving reviews that failed to persist."""
    try:
        handle = services.study.get_session(session_id)
        await services.study.flush_pending(session_id)
    except (SessionNotFoundError, PersistenceError) as e:
        _raise_http(e)
    return _session_out(handle)


@app.post("/sessions/{session_id}/restart", response_model=SessionOut)
async def restart_session(session_id: str, services: Services = Depends(get_services)):
    try:
        handle = await services.study.restart(session_id)
    except (SessionNotFoundError, InvalidStateError) as e:
        _raise_http(e)
    return _session_out(handle)


@app.get("/sessions/{session_id}/summary", response_model=SummaryOut)
async def get_summary(session_id: str, services: Services = Depends(get_services)):
    try:
        summary = services.study.get_session(session_id).session.summary()
    except (SessionNotFoundError, InvalidStateError) as e:
        _raise_http(e)
    return _summary_out(summary)


@app.delete("/sessions/{session_id}")
async def end_session(session_id: str, services: Services = Depends(get_services)):
    try:
        await services.study.end_session(session_id)
    except (SessionNotFoundError, PersistenceError) as e:
        _raise_http(e)
    return {"success": True}


# ---------------------------------------------------------------------------
# Stats
# ---------------------------------------------------------------------------


@app.get("/stats", response_model=LearningStatsOut)
async def get_stats(
    user_id: str,
    days: int = Query(default=30, ge=1, le=365),
    services: Services = Depends(get_services),
):
    try:
        stats = await services.stats.get_learning_stats(user_id, days)
    except (StoreError, ValueError) as e:
        _raise_http(e)
    return LearningStatsOut(
        total_decks=stats.total_decks,
        total_cards=stats.total_cards,
        total_reviews=stats.total_reviews,
        due_cards=stats.due_cards,
        current_streak=stats.current_streak,
        daily_stats=[
            DailyStatsOut(
                date=s.day.isoformat(),
                cards_reviewed=s.cards_reviewed,
                cards_new=s.cards_new,
                cards_relearned=s.cards_relearned,
                correct_answers=s.correct_answers,
                wrong_answers=s.wrong_answers,
                time_spent_ms=s.time_spent_ms,
                accuracy=s.accuracy,
            )
            for s in stats.daily
        ],
    )


@app.get("/gamification/level")
async def get_level(xp: int = Query(ge=0)):
    info = level_for_xp(xp)
    return {
        "level": info.level,
        "title": info.title,
        "next_level_xp": info.next_level_xp,
        "progress": info.progress,
    }
