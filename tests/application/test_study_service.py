from datetime import timedelta
from unittest.mock import AsyncMock

import pytest

from laurel.application.config import AppConfig
from laurel.application.study_service import StudyService
from laurel.domain.errors import (
    InvalidStateError,
    NotFoundError,
    PersistenceError,
    SessionNotFoundError,
    StoreError,
)
from laurel.domain.models import CardState, Deck, ReviewResponse
from laurel.infrastructure.adapters.memory_store import InMemoryCardStore


class FlakyStore(InMemoryCardStore):
    """Memory store whose record_review fails a set number of times."""

    def __init__(self, failures: int):
        super().__init__()
        self.failures = failures
        self.attempts = 0

    async def record_review(self, outcome):
        self.attempts += 1
        if self.failures > 0:
            self.failures -= 1
            raise StoreError("database is locked")
        return await super().record_review(outcome)


def make_service(store, now, **config):
    sleep = AsyncMock()
    service = StudyService(
        store,
        AppConfig(backend="memory", **config),
        clock=lambda: now,
        sleep=sleep,
    )
    return service, sleep


async def seed(store, deck, make_card, count=3):
    await store.save_deck(deck)
    cards = [make_card() for _ in range(count)]
    for card in cards:
        await store.save_card(card)
    return cards


@pytest.mark.asyncio
async def test_start_session_loads_due_cards(seeded_store, now):
    service, _ = make_service(seeded_store, now)
    handle = await service.start_session("alice", "deck_1")

    assert handle.id.startswith("sess_")
    assert handle.session.total_cards == 3
    # All three fell due at the same instant, so creation order decides
    assert [c.id for c in handle.session.cards] == ["card_a", "card_b", "card_c"]
    assert service.get_session(handle.id) is handle


@pytest.mark.asyncio
async def test_start_session_respects_limit(seeded_store, now):
    service, _ = make_service(seeded_store, now)
    handle = await service.start_session("alice", "deck_1", limit=2)
    assert handle.session.total_cards == 2


@pytest.mark.asyncio
async def test_start_session_nothing_due(store, deck, make_card, now):
    await store.save_deck(deck)
    await store.save_card(make_card(next_review_at=now + timedelta(days=2)))
    service, _ = make_service(store, now)

    assert await service.start_session("alice", "deck_1") is None


@pytest.mark.asyncio
async def test_start_session_other_users_deck(seeded_store, now):
    service, _ = make_service(seeded_store, now)
    with pytest.raises(NotFoundError):
        await service.start_session("mallory", "deck_1")


@pytest.mark.asyncio
async def test_start_session_replaces_existing(seeded_store, now):
    service, _ = make_service(seeded_store, now)
    first = await service.start_session("alice", "deck_1")
    second = await service.start_session("alice", "deck_1")

    assert first.id != second.id
    with pytest.raises(SessionNotFoundError):
        service.get_session(first.id)
    assert service.find_session("alice", "deck_1") is second


@pytest.mark.asyncio
async def test_respond_persists_card_and_history(seeded_store, now):
    service, _ = make_service(seeded_store, now)
    handle = await service.start_session("alice", "deck_1")

    outcome = await service.respond(handle.id, ReviewResponse.CORRECT, time_taken_ms=900)

    stored = await seeded_store.get_card("card_a")
    assert stored.state == CardState.REVIEW
    assert stored.next_review_at == now + timedelta(days=1)
    assert outcome.review_id in seeded_store.reviews
    assert handle.pending == []


@pytest.mark.asyncio
async def test_skip_is_not_persisted(seeded_store, now):
    service, _ = make_service(seeded_store, now)
    handle = await service.start_session("alice", "deck_1")
    before = await seeded_store.get_card("card_a")

    await service.respond(handle.id, "skipped")

    assert seeded_store.reviews == {}
    assert await seeded_store.get_card("card_a") == before


@pytest.mark.asyncio
async def test_full_session_updates_daily_stats(seeded_store, now):
    service, _ = make_service(seeded_store, now)
    handle = await service.start_session("alice", "deck_1")
    for response in ("correct", "wrong", "correct"):
        await service.respond(handle.id, response)

    summary = handle.session.summary()
    assert summary.correct_count == 2
    assert summary.accuracy == 67

    [daily] = await seeded_store.get_daily_stats("alice", now.date())
    assert daily.cards_reviewed == 3
    assert daily.cards_new == 2
    assert daily.correct_answers == 2
    assert daily.wrong_answers == 1


@pytest.mark.asyncio
async def test_respond_after_complete(seeded_store, now):
    service, _ = make_service(seeded_store, now)
    handle = await service.start_session("alice", "deck_1", limit=1)
    await service.respond(handle.id, "correct")
    with pytest.raises(InvalidStateError):
        await service.respond(handle.id, "correct")


@pytest.mark.asyncio
async def test_unknown_session():
    service = StudyService(InMemoryCardStore())
    with pytest.raises(SessionNotFoundError):
        await service.respond("sess_missing", "correct")


@pytest.mark.asyncio
async def test_transient_failure_is_retried_with_backoff(deck, make_card, now):
    store = FlakyStore(failures=2)
    await seed(store, deck, make_card, count=1)
    service, sleep = make_service(store, now, persist_retries=3, persist_backoff=0.5)
    handle = await service.start_session("alice", "deck_1")

    await service.respond(handle.id, "correct")

    assert store.attempts == 3
    assert [c.args[0] for c in sleep.await_args_list] == [0.5, 1.0]
    assert len(store.reviews) == 1
    assert handle.pending == []


@pytest.mark.asyncio
async def test_exhausted_retries_keep_outcome_pending(deck, make_card, now):
    store = FlakyStore(failures=5)
    await seed(store, deck, make_card, count=2)
    service, _ = make_service(store, now, persist_retries=2)
    handle = await service.start_session("alice", "deck_1")

    with pytest.raises(PersistenceError) as exc_info:
        await service.respond(handle.id, "correct")

    assert exc_info.value.attempts == 2
    assert isinstance(exc_info.value.__cause__, StoreError)
    # The session advanced even though the write failed
    assert handle.session.cursor == 1
    assert len(handle.pending) == 1
    assert store.reviews == {}

    store.failures = 0
    assert await service.flush_pending(handle.id) == 0
    assert len(store.reviews) == 1


@pytest.mark.asyncio
async def test_redelivered_outcome_is_written_once(seeded_store, now):
    service, _ = make_service(seeded_store, now)
    handle = await service.start_session("alice", "deck_1")
    outcome = await service.respond(handle.id, "correct")

    # Simulate a retry after an ambiguous failure
    handle.pending.append(outcome)
    await service.flush_pending(handle.id)

    assert len(seeded_store.reviews) == 1
    [daily] = await seeded_store.get_daily_stats("alice", now.date())
    assert daily.cards_reviewed == 1


@pytest.mark.asyncio
async def test_deleted_card_drops_outcome(seeded_store, now):
    service, _ = make_service(seeded_store, now)
    handle = await service.start_session("alice", "deck_1")
    await seeded_store.delete_card("card_a")

    await service.respond(handle.id, "correct")

    assert handle.pending == []
    assert seeded_store.reviews == {}


@pytest.mark.asyncio
async def test_restart_and_end_session(seeded_store, now):
    service, _ = make_service(seeded_store, now)
    handle = await service.start_session("alice", "deck_1", limit=1)
    await service.respond(handle.id, "correct")

    await service.restart(handle.id)
    assert handle.session.cursor == 0

    await service.end_session(handle.id)
    with pytest.raises(SessionNotFoundError):
        service.get_session(handle.id)


@pytest.mark.asyncio
async def test_starting_again_saves_unsaved_reviews_first(deck, make_card, now):
    store = FlakyStore(failures=3)
    await seed(store, deck, make_card, count=2)
    service, _ = make_service(store, now, persist_retries=3)
    first = await service.start_session("alice", "deck_1")

    with pytest.raises(PersistenceError):
        await service.respond(first.id, "correct")
    assert len(first.pending) == 1

    second = await service.start_session("alice", "deck_1")

    assert len(store.reviews) == 1
    # The reviewed card is no longer due, so only the other one comes back
    assert second.session.total_cards == 1
    with pytest.raises(SessionNotFoundError):
        service.get_session(first.id)


@pytest.mark.asyncio
async def test_starting_again_keeps_session_when_save_still_fails(deck, make_card, now):
    store = FlakyStore(failures=100)
    await seed(store, deck, make_card, count=2)
    service, _ = make_service(store, now, persist_retries=2)
    first = await service.start_session("alice", "deck_1")
    with pytest.raises(PersistenceError):
        await service.respond(first.id, "correct")

    with pytest.raises(PersistenceError):
        await service.start_session("alice", "deck_1")

    assert service.find_session("alice", "deck_1") is first
    assert len(first.pending) == 1

    store.failures = 0
    assert await service.flush_pending(first.id) == 0
    assert len(store.reviews) == 1


@pytest.mark.asyncio
async def test_end_session_flushes_pending(deck, make_card, now):
    store = FlakyStore(failures=2)
    await seed(store, deck, make_card, count=1)
    service, _ = make_service(store, now, persist_retries=2)
    handle = await service.start_session("alice", "deck_1")
    with pytest.raises(PersistenceError):
        await service.respond(handle.id, "wrong")

    await service.end_session(handle.id)

    assert len(store.reviews) == 1
    with pytest.raises(SessionNotFoundError):
        service.get_session(handle.id)


@pytest.mark.asyncio
async def test_session_across_all_decks(seeded_store, make_card, now):
    await seeded_store.save_deck(Deck(id="deck_2", user_id="alice", name="French"))
    await seeded_store.save_deck(Deck(id="deck_3", user_id="bob", name="German"))
    await seeded_store.save_deck(
        Deck(id="deck_4", user_id="alice", name="Archived", is_active=False)
    )
    await seeded_store.save_card(
        make_card(deck_id="deck_2", id="card_fr", next_review_at=now - timedelta(days=2))
    )
    await seeded_store.save_card(make_card(deck_id="deck_3", id="card_de"))
    await seeded_store.save_card(make_card(deck_id="deck_4", id="card_old"))
    service, _ = make_service(seeded_store, now)

    handle = await service.start_session("alice")

    assert handle.deck_id is None
    ids = [c.id for c in handle.session.cards]
    assert ids == ["card_fr", "card_a", "card_b", "card_c"]

    limited = await service.start_session("alice", limit=2)
    assert [c.id for c in limited.session.cards] == ["card_fr", "card_a"]
    # Starting again replaced the earlier all-decks session
    with pytest.raises(SessionNotFoundError):
        service.get_session(handle.id)
