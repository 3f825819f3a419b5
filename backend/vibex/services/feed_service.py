"""Feed service - the time-filtered list of sessions shown on the map."""

from datetime import datetime

import structlog

from vibex.core import session_clock
from vibex.core.errors import StoreTimeout, StoreUnavailable
from vibex.core.kinds import Phase, Privacy, SessionKind, SessionStatus
from vibex.db.store import SessionStore
from vibex.models.session import Session

logger = structlog.get_logger()

VISIBLE_PHASES = frozenset({Phase.SCHEDULED, Phase.ACTIVE, Phase.ENDING_SOON})


def is_visible_to(session: Session, viewer_id: str | None, viewer_tag_ids: set[str]) -> bool:
    """Private sessions show only to their members or to members of a listed tag."""
    if session.privacy != Privacy.PRIVATE.value:
        return True
    if viewer_id is not None and (
        viewer_id == session.creator_id or viewer_id in (session.participants or [])
    ):
        return True
    return bool(viewer_tag_ids & set(session.visible_to_tags or []))


class FeedService:
    def __init__(self, store: SessionStore):
        self.store = store

    async def sweep_auto_close(self, now: datetime | None = None) -> list[int]:
        """Close borrow requests nobody answered in time. Returns closed ids.

        A session that changes underneath us, or whose close cannot be
        stored, is left for the next sweep.
        """
        now = now or session_clock.utcnow()
        closed = []
        for session in await self.store.list_sessions(SessionStatus.ACTIVE):
            if session_clock.phase(session, now) != Phase.AUTO_CLOSE_ELIGIBLE:
                continue
            try:
                committed = await self.store.commit_if_unchanged(
                    Session, session.id, session.version, {"status": SessionStatus.CLOSED.value}
                )
            except (StoreTimeout, StoreUnavailable) as exc:
                logger.warning("auto_close_skipped", session_id=session.id, error_code=exc.code)
                committed = False
            if committed:
                logger.info("borrow_auto_closed", session_id=session.id)
                closed.append(session.id)
        return closed

    async def feed(
        self,
        now: datetime | None = None,
        viewer_id: str | None = None,
        viewer_tag_ids: set[str] | None = None,
        kind: SessionKind | None = None,
    ) -> list[tuple[Session, Phase]]:
        """Live and upcoming sessions with their phase, newest start first."""
        now = now or session_clock.utcnow()
        viewer_tag_ids = viewer_tag_ids or set()

        items = []
        for session in await self.store.list_sessions(SessionStatus.ACTIVE):
            if kind is not None and session.kind != kind.value:
                continue
            current = session_clock.phase(session, now)
            if current not in VISIBLE_PHASES:
                continue
            if not is_visible_to(session, viewer_id, viewer_tag_ids):
                continue
            items.append((session, current))
        return items
