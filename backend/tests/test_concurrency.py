"""Tests for optimistic concurrency - lost races are retried, never lost."""

import asyncio

import pytest

from vibex.core.errors import (
    ConcurrencyConflict,
    DuplicateVouch,
    SessionNotJoinable,
    StoreTimeout,
)
from vibex.core.kinds import SessionKind
from vibex.db.store import SessionStore
from vibex.services.participation_service import ParticipationService
from vibex.services.reputation_service import ReputationService


class RacingStore(SessionStore):
    """Lets a rival writer commit between our read and our conditional write."""

    def __init__(self, session_factory, rival=None):
        super().__init__(session_factory)
        self.rival = rival
        self.conflicts = 0

    async def _run_rival(self):
        if self.rival is not None:
            rival, self.rival = self.rival, None
            await rival()

    async def commit_if_unchanged(self, model, key, expected_version, values):
        await self._run_rival()
        committed = await super().commit_if_unchanged(model, key, expected_version, values)
        if not committed:
            self.conflicts += 1
        return committed

    async def commit_vouch(self, vouch, expected_rating_version, rating, session_count):
        await self._run_rival()
        committed = await super().commit_vouch(vouch, expected_rating_version, rating, session_count)
        if not committed:
            self.conflicts += 1
        return committed


class AlwaysStaleStore(SessionStore):
    """Every conditional write loses its race."""

    def __init__(self, session_factory):
        super().__init__(session_factory)
        self.attempts = 0

    async def commit_if_unchanged(self, model, key, expected_version, values):
        self.attempts += 1
        return False


class SlowStore(SessionStore):
    """Writes never acknowledge within the deadline."""

    async def commit_if_unchanged(self, model, key, expected_version, values):
        self.timeout = 0.01
        return await self._bounded(asyncio.sleep(1), "commit_if_unchanged")


# ---------------------------------------------------------------------------
# Membership races
# ---------------------------------------------------------------------------


async def test_join_retries_after_losing_race(make_session, notifier, session_factory):
    created = await make_session()
    rival_service = ParticipationService(SessionStore(session_factory), notifier, backoff=0)

    async def rival():
        await rival_service.join(created.id, "carol")

    store = RacingStore(session_factory, rival)
    service = ParticipationService(store, notifier, backoff=0)
    session = await service.join(created.id, "bob")

    assert store.conflicts == 1
    assert session.participants == ["alice", "carol", "bob"]
    assert session.participant_roles == {
        "alice": "participant",
        "carol": "participant",
        "bob": "participant",
    }
    assert session.version == 3


async def test_leave_retries_after_losing_race(make_session, notifier, session_factory):
    created = await make_session()
    plain = ParticipationService(SessionStore(session_factory), notifier, backoff=0)
    await plain.join(created.id, "bob")

    async def rival():
        await plain.join(created.id, "carol")

    store = RacingStore(session_factory, rival)
    service = ParticipationService(store, notifier, backoff=0)
    session = await service.leave(created.id, "bob")

    assert store.conflicts == 1
    assert session.participants == ["alice", "carol"]
    assert "bob" not in session.participant_roles


async def test_role_rules_rechecked_after_race(make_session, notifier, session_factory):
    """A join that raced a close must not slip into the closed session."""
    created = await make_session()
    rival_service = ParticipationService(SessionStore(session_factory), notifier, backoff=0)

    async def rival():
        await rival_service.close(created.id, "alice")

    store = RacingStore(session_factory, rival)
    service = ParticipationService(store, notifier, backoff=0)

    with pytest.raises(SessionNotJoinable):
        await service.join(created.id, "bob")

    stored = await SessionStore(session_factory).get_session(created.id)
    assert stored.participants == ["alice"]
    assert stored.status == "closed"


async def test_simultaneous_joins_are_both_recorded(
    make_session, notifier, session_factory, serialized_store
):
    created = await make_session(participants=[], participant_roles={})
    service = ParticipationService(serialized_store, notifier, backoff=0)

    await asyncio.gather(service.join(created.id, "bob"), service.join(created.id, "carol"))

    stored = await SessionStore(session_factory).get_session(created.id)
    assert sorted(stored.participants) == ["bob", "carol"]
    assert set(stored.participant_roles) == {"bob", "carol"}


async def test_many_simultaneous_joins(
    make_session, notifier, session_factory, serialized_store
):
    created = await make_session(kind=SessionKind.COOKIE)
    service = ParticipationService(serialized_store, notifier, max_attempts=10, backoff=0)
    users = [f"user{i}" for i in range(5)]

    await asyncio.gather(*(service.join(created.id, u) for u in users))

    stored = await SessionStore(session_factory).get_session(created.id)
    assert len(stored.participants) == 6
    assert set(stored.participants) == {"alice", *users}
    assert set(stored.participant_roles) == set(stored.participants)


async def test_join_and_leave_interleaved(
    make_session, notifier, session_factory, serialized_store
):
    created = await make_session()
    service = ParticipationService(serialized_store, notifier, backoff=0)
    await service.join(created.id, "bob")

    await asyncio.gather(service.leave(created.id, "bob"), service.join(created.id, "carol"))

    stored = await SessionStore(session_factory).get_session(created.id)
    assert stored.participants == ["alice", "carol"]


async def test_retries_are_bounded(make_session, notifier, session_factory):
    created = await make_session()
    store = AlwaysStaleStore(session_factory)
    service = ParticipationService(store, notifier, max_attempts=3, backoff=0)

    with pytest.raises(ConcurrencyConflict):
        await service.join(created.id, "bob")

    assert store.attempts == 3
    stored = await SessionStore(session_factory).get_session(created.id)
    assert stored.participants == ["alice"]


async def test_store_timeout_is_reported_as_unknown_outcome(
    make_session, notifier, session_factory
):
    created = await make_session()
    store = SlowStore(session_factory)
    service = ParticipationService(store, notifier, backoff=0)

    with pytest.raises(StoreTimeout) as excinfo:
        await service.join(created.id, "bob")

    assert isinstance(excinfo.value, ConcurrencyConflict)
    assert excinfo.value.code == "OUTCOME_UNKNOWN"


# ---------------------------------------------------------------------------
# Rating races
# ---------------------------------------------------------------------------


async def _three_person_session(make_session):
    return await make_session(
        participants=["alice", "bob", "carol"],
        participant_roles={"alice": "participant", "bob": "participant", "carol": "participant"},
    )


async def test_vouch_retries_after_rating_race(make_session, notifier, session_factory):
    created = await _three_person_session(make_session)
    rival_service = ReputationService(SessionStore(session_factory), notifier, backoff=0)

    async def rival():
        await rival_service.apply_vouch("alice", "carol", created.id, "Python")

    store = RacingStore(session_factory, rival)
    service = ReputationService(store, notifier, backoff=0)
    new_rating, points = await service.apply_vouch("bob", "carol", created.id, "Python")

    assert store.conflicts == 1
    assert points == 10
    # Recomputed with both vouches in the session counted
    assert new_rating == 1520
    rating = await SessionStore(session_factory).get_rating("carol")
    assert rating.rating == 1520
    assert rating.session_count == 1


async def test_simultaneous_vouches_both_count(
    make_session, notifier, session_factory, serialized_store
):
    created = await _three_person_session(make_session)
    service = ReputationService(serialized_store, notifier, backoff=0)

    await asyncio.gather(
        service.apply_vouch("alice", "carol", created.id, "Python"),
        service.apply_vouch("bob", "carol", created.id, "Python"),
    )

    store = SessionStore(session_factory)
    rating = await store.get_rating("carol")
    assert rating.rating == 1520
    assert await store.count_session_vouches("carol", created.id) == 2


async def test_simultaneous_duplicate_vouch_counts_once(
    make_session, notifier, session_factory, serialized_store
):
    created = await _three_person_session(make_session)
    service = ReputationService(serialized_store, notifier, backoff=0)

    results = await asyncio.gather(
        service.apply_vouch("alice", "carol", created.id, "Python"),
        service.apply_vouch("alice", "carol", created.id, "Python"),
        return_exceptions=True,
    )

    assert sum(isinstance(r, DuplicateVouch) for r in results) == 1
    assert (1500, 10) in results
    store = SessionStore(session_factory)
    assert await store.count_session_vouches("carol", created.id) == 1
    assert (await store.get_rating("carol")).rating == 1500
