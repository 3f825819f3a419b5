"""Participation service - the only writer of a session's membership.

Every mutation is an optimistic transaction: read the session, validate
and compute the new membership against that snapshot, then commit only
if the row's version is unchanged. A lost race re-reads and tries again,
so two users joining at the same instant both end up recorded.
"""

import asyncio
from collections.abc import Callable
from datetime import datetime

import structlog

from vibex.config import settings
from vibex.core import session_clock
from vibex.core.session_clock import MAX_DURATION_MINUTES
from vibex.core.errors import (
    AlreadyInAnotherSession,
    ConcurrencyConflict,
    CreatorMustTransferOwnership,
    InvalidExtension,
    InvalidRole,
    NotAParticipant,
    NotCreator,
    SessionClosed,
    SessionEnded,
    SessionNotFound,
    SessionNotJoinable,
)
from vibex.core.kinds import (
    CREATOR_ROLE,
    DEFAULT_JOIN_ROLE,
    JOINABLE_PHASES,
    NotificationType,
    Phase,
    Role,
    SessionKind,
    SessionStatus,
    is_role_allowed,
)
from vibex.db.store import SessionStore
from vibex.models.session import Session
from vibex.schemas.session import SessionCreate
from vibex.services.notification_service import NotificationService

logger = structlog.get_logger()

HISTORY_LIMIT = 50

# compute(session) -> column values to write, or None when nothing changes
Mutation = Callable[[Session], dict | None]


class ParticipationService:
    def __init__(
        self,
        store: SessionStore,
        notifier: NotificationService,
        max_attempts: int | None = None,
        backoff: float | None = None,
        enforce_single_session: bool | None = None,
    ):
        self.store = store
        self.notifier = notifier
        self.max_attempts = (
            settings.OPTIMISTIC_MAX_ATTEMPTS if max_attempts is None else max_attempts
        )
        self.backoff = settings.OPTIMISTIC_BACKOFF_SECONDS if backoff is None else backoff
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self.enforce_single_session = (
            settings.ENFORCE_SINGLE_ACTIVE_SESSION
            if enforce_single_session is None
            else enforce_single_session
        )

    async def _load(self, session_id: int) -> Session:
        session = await self.store.get_session(session_id)
        if session is None:
            raise SessionNotFound()
        return session

    async def _mutate(self, op: str, session_id: int, compute: Mutation) -> tuple[Session, bool]:
        """Run `compute` against fresh snapshots until a conditional write lands.

        Returns the session as committed and whether anything changed.
        Errors raised by `compute` abort immediately, before any write.
        """
        for attempt in range(1, self.max_attempts + 1):
            session = await self._load(session_id)
            values = compute(session)
            if values is None:
                return session, False

            committed = await self.store.commit_if_unchanged(
                Session, session.id, session.version, values
            )
            if committed:
                for field, value in values.items():
                    setattr(session, field, value)
                session.version += 1
                return session, True

            logger.info("optimistic_conflict", op=op, session_id=session_id, attempt=attempt)
            if attempt < self.max_attempts:
                await asyncio.sleep(self.backoff * attempt)

        logger.warning("optimistic_retries_exhausted", op=op, session_id=session_id)
        raise ConcurrencyConflict()

    # --- Creation & queries ---

    async def create_session(self, data: SessionCreate) -> Session:
        """Create an active session with its creator as the first participant."""
        kind = SessionKind(data.kind)
        creator_role = CREATOR_ROLE[kind]
        if kind == SessionKind.SEEK and data.creator_role is not None:
            creator_role = data.creator_role

        session = Session(
            title=data.title,
            description=data.description,
            lat=data.lat,
            lng=data.lng,
            kind=kind.value,
            emoji=data.emoji,
            event_time=data.event_time,
            duration=data.duration,
            status=SessionStatus.ACTIVE.value,
            creator_id=data.creator_id,
            participants=[data.creator_id],
            participant_roles={data.creator_id: creator_role.value},
            privacy=data.privacy.value,
            visible_to_tags=list(data.visible_to_tags),
            help_category=data.help_category,
            skill_tag=data.skill_tag,
            expected_outcome=data.expected_outcome,
            return_time=data.return_time,
            urgency=data.urgency,
            version=1,
        )
        session = await self.store.add_session(session)
        logger.info(
            "session_created", session_id=session.id, kind=kind.value, creator_id=data.creator_id
        )
        return session

    async def get_session(self, session_id: int) -> Session:
        return await self._load(session_id)

    async def active_memberships(self, user_id: str, now: datetime | None = None) -> list[Session]:
        """Sessions the user currently belongs to that are still live."""
        now = now or session_clock.utcnow()
        sessions = await self.store.list_sessions(SessionStatus.ACTIVE)
        return [
            s
            for s in sessions
            if user_id in (s.participants or [])
            and session_clock.phase(s, now) in JOINABLE_PHASES
        ]

    async def session_history(self, user_id: str, limit: int = HISTORY_LIMIT) -> list[Session]:
        """Closed sessions the user created or took part in, latest start first."""
        sessions = await self.store.list_sessions(SessionStatus.CLOSED)
        mine = [
            s
            for s in sessions
            if user_id == s.creator_id or user_id in (s.participants or [])
        ]
        return mine[:limit]

    # --- Membership ---

    async def join(
        self,
        session_id: int,
        user_id: str,
        role: Role | None = None,
        now: datetime | None = None,
    ) -> Session:
        """Add a user to a session, or change the role of a current member.

        Re-joining without a role, or with the same role, is a no-op. The
        role default for the session kind applies to new joiners only. The
        creator already holds their side of the session and is never
        re-added.
        """
        now = now or session_clock.utcnow()
        await self._load(session_id)

        if self.enforce_single_session:
            memberships = await self.active_memberships(user_id, now)
            if any(s.id != session_id for s in memberships):
                raise AlreadyInAnotherSession()

        def compute(session: Session) -> dict | None:
            if not session_clock.is_joinable(session, now):
                raise SessionNotJoinable()
            if user_id == session.creator_id:
                return None

            participants = list(session.participants or [])
            if user_id in participants and role is None:
                return None

            kind = SessionKind(session.kind)
            wanted = role or DEFAULT_JOIN_ROLE[kind]
            if not is_role_allowed(kind, wanted):
                raise InvalidRole(f"Role '{wanted.value}' is not allowed in a {kind.value} session")

            roles = dict(session.participant_roles or {})
            if user_id in participants and roles.get(user_id) == wanted.value:
                return None
            if user_id not in participants:
                participants.append(user_id)
            roles[user_id] = wanted.value
            return {"participants": participants, "participant_roles": roles}

        session, changed = await self._mutate("join", session_id, compute)
        if changed:
            logger.info("session_joined", session_id=session_id, user_id=user_id)
            await self.notifier.notify(
                NotificationType.SESSION_JOIN, session.creator_id, user_id, session_id
            )
        return session

    async def leave(self, session_id: int, user_id: str) -> Session:
        """Remove a user from a session.

        Leaving a session you are not in is a no-op. A creator who is the
        last participant closes the session by leaving it.
        """

        def compute(session: Session) -> dict | None:
            if session.status == SessionStatus.CLOSED.value:
                raise SessionClosed()

            participants = list(session.participants or [])
            if user_id not in participants:
                return None

            roles = dict(session.participant_roles or {})
            participants.remove(user_id)
            roles.pop(user_id, None)

            if user_id == session.creator_id:
                if participants:
                    raise CreatorMustTransferOwnership()
                return {
                    "participants": participants,
                    "participant_roles": roles,
                    "status": SessionStatus.CLOSED.value,
                }
            return {"participants": participants, "participant_roles": roles}

        session, changed = await self._mutate("leave", session_id, compute)
        if changed:
            logger.info("session_left", session_id=session_id, user_id=user_id, status=session.status)
            await self.notifier.notify(
                NotificationType.SESSION_LEAVE, session.creator_id, user_id, session_id
            )
        return session

    # --- Creator operations ---

    async def extend(
        self, session_id: int, user_id: str, by_minutes: int, now: datetime | None = None
    ) -> Session:
        """Lengthen a live session by `by_minutes`."""
        if by_minutes <= 0:
            raise InvalidExtension()
        now = now or session_clock.utcnow()

        def compute(session: Session) -> dict | None:
            if user_id != session.creator_id:
                raise NotCreator()
            if (
                session.status == SessionStatus.CLOSED.value
                or session_clock.phase(session, now) == Phase.ENDED
            ):
                raise SessionEnded()
            if session.duration + by_minutes > MAX_DURATION_MINUTES:
                raise InvalidExtension(
                    f"Sessions cannot run longer than {MAX_DURATION_MINUTES} minutes"
                )
            return {"duration": session.duration + by_minutes}

        session, _ = await self._mutate("extend", session_id, compute)
        logger.info("session_extended", session_id=session_id, duration=session.duration)
        return session

    async def close(self, session_id: int, user_id: str) -> Session:
        """Close a session. Closing an already closed session succeeds."""

        def compute(session: Session) -> dict | None:
            if user_id != session.creator_id:
                raise NotCreator()
            if session.status == SessionStatus.CLOSED.value:
                return None
            return {"status": SessionStatus.CLOSED.value}

        session, changed = await self._mutate("close", session_id, compute)
        if changed:
            logger.info("session_closed", session_id=session_id)
        return session

    async def transfer_ownership(self, session_id: int, user_id: str, new_owner_id: str) -> Session:
        """Hand the creator role to another participant."""

        def compute(session: Session) -> dict | None:
            if user_id != session.creator_id:
                raise NotCreator()
            if session.status == SessionStatus.CLOSED.value:
                raise SessionClosed()
            if new_owner_id not in (session.participants or []):
                raise NotAParticipant("New owner must be a participant of this session")
            if new_owner_id == session.creator_id:
                return None
            return {"creator_id": new_owner_id}

        session, changed = await self._mutate("transfer_ownership", session_id, compute)
        if changed:
            logger.info("ownership_transferred", session_id=session_id, new_owner_id=new_owner_id)
            await self.notifier.notify(
                NotificationType.OWNERSHIP_TRANSFER, new_owner_id, user_id, session_id
            )
        return session
