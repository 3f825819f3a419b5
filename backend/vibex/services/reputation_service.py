"""Reputation service - applies vouches to ratings, at most once each."""

import asyncio
from datetime import datetime

import structlog

from vibex.config import settings
from vibex.core import rating_math, session_clock, vouch_ledger
from vibex.core.errors import (
    ConcurrencyConflict,
    DuplicateVouch,
    NotAParticipant,
    SelfVouchForbidden,
    SessionClosed,
    SessionNotFound,
)
from vibex.core.kinds import NotificationType, SessionStatus
from vibex.db.store import SessionStore
from vibex.models.vouch import Vouch
from vibex.services.notification_service import NotificationService

logger = structlog.get_logger()


class ReputationService:
    def __init__(
        self,
        store: SessionStore,
        notifier: NotificationService,
        max_attempts: int | None = None,
        backoff: float | None = None,
    ):
        self.store = store
        self.notifier = notifier
        self.max_attempts = (
            settings.OPTIMISTIC_MAX_ATTEMPTS if max_attempts is None else max_attempts
        )
        self.backoff = settings.OPTIMISTIC_BACKOFF_SECONDS if backoff is None else backoff
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")

    async def apply_vouch(
        self,
        voucher_id: str,
        receiver_id: str,
        session_id: int,
        skill: str,
        now: datetime | None = None,
    ) -> tuple[int, int]:
        """Record a vouch and update the receiver's rating.

        Returns (new_rating, points_awarded). The vouch row and the rating
        update commit together; a lost race on the rating re-reads it and
        recomputes.
        """
        now = now or session_clock.utcnow()

        if voucher_id == receiver_id:
            raise SelfVouchForbidden()

        session = await self.store.get_session(session_id)
        if session is None:
            raise SessionNotFound()
        if session.status == SessionStatus.CLOSED.value:
            raise SessionClosed()
        participants = session.participants or []
        if voucher_id not in participants or receiver_id not in participants:
            raise NotAParticipant("Both users must be participants of this session")

        if await self.store.vouch_exists(voucher_id, receiver_id, session_id):
            raise DuplicateVouch()

        total_participants = len(participants)
        for attempt in range(1, self.max_attempts + 1):
            prior_from_voucher = await self.store.count_vouches_between(voucher_id, receiver_id)
            points = vouch_ledger.points_for_nth_vouch(prior_from_voucher)

            in_session = await self.store.count_session_vouches(receiver_id, session_id)
            current = await self.store.get_rating(receiver_id)
            updated = rating_math.new_rating(
                current.rating, current.session_count, in_session + 1, total_participants
            )
            # First vouch in a session counts the session towards experience
            session_count = current.session_count + (1 if in_session == 0 else 0)

            vouch = Vouch(
                voucher_id=voucher_id,
                receiver_id=receiver_id,
                session_id=session_id,
                skill=skill,
                points=points,
                created_at=now,
            )
            if await self.store.commit_vouch(vouch, current.version, updated, session_count):
                logger.info(
                    "vouch_applied",
                    voucher_id=voucher_id,
                    receiver_id=receiver_id,
                    session_id=session_id,
                    points=points,
                    old_rating=current.rating,
                    new_rating=updated,
                )
                await self.notifier.notify(
                    NotificationType.VOUCH_RECEIVED, receiver_id, voucher_id, session_id
                )
                return updated, points

            logger.info("optimistic_conflict", op="vouch", receiver_id=receiver_id, attempt=attempt)
            if attempt < self.max_attempts:
                await asyncio.sleep(self.backoff * attempt)

        logger.warning("optimistic_retries_exhausted", op="vouch", receiver_id=receiver_id)
        raise ConcurrencyConflict()

    async def get_reputation(self, user_id: str) -> dict:
        current = await self.store.get_rating(user_id)
        return {
            "user_id": user_id,
            "rating": current.rating,
            "session_count": current.session_count,
            "tier": rating_math.tier(current.rating),
            "next_tier": rating_math.next_tier(current.rating),
            "progress_to_next_tier": rating_math.progress_to_next_tier(current.rating),
        }

    async def get_vouch_history(self, user_id: str) -> dict:
        vouches = await self.store.list_vouches_received(user_id)
        current = await self.store.get_rating(user_id)
        return {
            "user_id": user_id,
            "tier": rating_math.tier(current.rating),
            "skill_scores": vouch_ledger.skill_scores(vouches),
            "vouches": vouch_ledger.build_history(vouches),
        }
