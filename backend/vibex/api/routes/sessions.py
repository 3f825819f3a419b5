"""Session endpoints - create, browse, and coordinate membership."""

from fastapi import APIRouter, Depends, Query

from vibex.api.deps import get_feed_service, get_participation_service
from vibex.config import settings
from vibex.core import session_clock
from vibex.core.kinds import SessionKind
from vibex.models.session import Session
from vibex.schemas.session import (
    CloseRequest,
    ExtendRequest,
    FeedItem,
    JoinRequest,
    LeaveRequest,
    MembershipResult,
    SessionCreate,
    SessionState,
    TransferRequest,
)
from vibex.services.feed_service import FeedService
from vibex.services.participation_service import ParticipationService

router = APIRouter()


def _session_fields(session: Session) -> dict:
    return {
        "id": session.id,
        "title": session.title,
        "description": session.description,
        "lat": session.lat,
        "lng": session.lng,
        "kind": session.kind,
        "emoji": session.emoji,
        "event_time": session_clock.ensure_utc(session.event_time),
        "duration": session.duration,
        "status": session.status,
        "creator_id": session.creator_id,
        "participants": session.participants or [],
        "participant_roles": session.participant_roles or {},
        "privacy": session.privacy,
        "visible_to_tags": session.visible_to_tags or [],
        "help_category": session.help_category,
        "skill_tag": session.skill_tag,
        "expected_outcome": session.expected_outcome,
        "return_time": session.return_time,
        "urgency": session.urgency,
    }


def _session_to_response(session: Session) -> SessionState:
    """Convert ORM model to response schema with the phase computed now."""
    now = session_clock.utcnow()
    return SessionState(**_session_fields(session), phase=session_clock.phase(session, now))


def _membership(session: Session) -> MembershipResult:
    return MembershipResult(
        participants=session.participants or [],
        participant_roles=session.participant_roles or {},
    )


@router.post("/", response_model=SessionState, status_code=201)
async def create_session(
    data: SessionCreate, service: ParticipationService = Depends(get_participation_service)
):
    """Create a new session."""
    session = await service.create_session(data)
    return _session_to_response(session)


@router.get("/feed", response_model=list[FeedItem])
async def get_feed(
    viewer_id: str | None = None,
    tag_ids: list[str] = Query(default=[]),
    kind: SessionKind | None = None,
    feed: FeedService = Depends(get_feed_service),
):
    """Live and upcoming sessions for the map."""
    now = session_clock.utcnow()
    if settings.AUTO_CLOSE_ON_FEED:
        await feed.sweep_auto_close(now)

    items = await feed.feed(now, viewer_id=viewer_id, viewer_tag_ids=set(tag_ids), kind=kind)
    return [
        FeedItem(
            **_session_fields(session),
            phase=phase,
            minutes_to_start=session_clock.minutes_to_start(session, now),
            minutes_to_end=session_clock.minutes_to_end(session, now),
            auto_close_in_minutes=session_clock.minutes_to_auto_close(session, now),
        )
        for session, phase in items
    ]


@router.get("/history/{user_id}", response_model=list[SessionState])
async def get_session_history(
    user_id: str, service: ParticipationService = Depends(get_participation_service)
):
    """Closed sessions a user created or took part in."""
    sessions = await service.session_history(user_id)
    return [_session_to_response(s) for s in sessions]


@router.get("/{session_id}", response_model=SessionState)
async def get_session(
    session_id: int, service: ParticipationService = Depends(get_participation_service)
):
    """Get a session with its current phase."""
    session = await service.get_session(session_id)
    return _session_to_response(session)


@router.post("/{session_id}/join", response_model=MembershipResult)
async def join_session(
    session_id: int,
    req: JoinRequest,
    service: ParticipationService = Depends(get_participation_service),
):
    """Join a session, or switch role within it."""
    session = await service.join(session_id, req.user_id, req.role)
    return _membership(session)


@router.post("/{session_id}/leave", response_model=MembershipResult)
async def leave_session(
    session_id: int,
    req: LeaveRequest,
    service: ParticipationService = Depends(get_participation_service),
):
    session = await service.leave(session_id, req.user_id)
    return _membership(session)


@router.post("/{session_id}/extend", response_model=SessionState)
async def extend_session(
    session_id: int,
    req: ExtendRequest,
    service: ParticipationService = Depends(get_participation_service),
):
    """Add minutes to a live session (creator only)."""
    session = await service.extend(session_id, req.user_id, req.by_minutes)
    return _session_to_response(session)


@router.post("/{session_id}/close", response_model=SessionState)
async def close_session(
    session_id: int,
    req: CloseRequest,
    service: ParticipationService = Depends(get_participation_service),
):
    session = await service.close(session_id, req.user_id)
    return _session_to_response(session)


@router.post("/{session_id}/transfer", response_model=MembershipResult)
async def transfer_ownership(
    session_id: int,
    req: TransferRequest,
    service: ParticipationService = Depends(get_participation_service),
):
    """Hand session ownership to another participant."""
    session = await service.transfer_ownership(session_id, req.user_id, req.new_owner_id)
    return _membership(session)
