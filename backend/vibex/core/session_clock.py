"""Session clock - derives a session's lifecycle phase from time alone.

Every consumer (join eligibility, the map feed, countdowns) goes through
`phase()` so the rules live in exactly one place. The functions accept
any object exposing `event_time`, `duration`, `kind` and `participants`,
which covers both the ORM model and plain test doubles.
"""

from datetime import datetime, timedelta, timezone

from vibex.core.kinds import JOINABLE_PHASES, Phase, SessionKind, SessionStatus

ENDING_SOON_WINDOW = timedelta(minutes=1)
BORROW_AUTO_CLOSE_AFTER = timedelta(minutes=30)

# Bounds accepted for new sessions and extensions
MAX_DURATION_MINUTES = 7 * 24 * 60
MAX_SCHEDULE_AHEAD = timedelta(days=365)

LATEST_INSTANT = datetime.max.replace(tzinfo=timezone.utc)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def ensure_utc(value: datetime) -> datetime:
    """Treat naive datetimes (e.g. read back from SQLite) as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _shift(instant: datetime, delta: timedelta) -> datetime:
    """instant + delta, saturating at the end of the calendar."""
    try:
        return instant + delta
    except OverflowError:
        return LATEST_INSTANT


def session_window(session) -> tuple[datetime, datetime]:
    """Return the (start, end) instants of a session."""
    start = ensure_utc(session.event_time)
    try:
        return start, start + timedelta(minutes=session.duration)
    except OverflowError:
        return start, LATEST_INSTANT


def phase(session, now: datetime) -> Phase:
    """Compute the effective phase of `session` at instant `now`.

    Pure: the result depends only on event_time, duration, kind, the
    number of participants and `now`. The persisted status is ignored.
    """
    now = ensure_utc(now)
    start, end = session_window(session)

    if now < start:
        return Phase.SCHEDULED
    if now > end:
        return Phase.ENDED

    # Nobody answered the borrow request in time
    if (
        SessionKind(session.kind) == SessionKind.BORROW
        and now > _shift(start, BORROW_AUTO_CLOSE_AFTER)
        and len(session.participants or []) <= 1
    ):
        return Phase.AUTO_CLOSE_ELIGIBLE

    if end - now < ENDING_SOON_WINDOW:
        return Phase.ENDING_SOON
    return Phase.ACTIVE


def is_joinable(session, now: datetime) -> bool:
    """A session accepts joins only while persisted-active and in its live window."""
    if SessionStatus(session.status) != SessionStatus.ACTIVE:
        return False
    return phase(session, now) in JOINABLE_PHASES


def minutes_to_start(session, now: datetime) -> int:
    start, _ = session_window(session)
    return max(0, round((start - ensure_utc(now)).total_seconds() / 60))


def minutes_to_end(session, now: datetime) -> int:
    _, end = session_window(session)
    return max(0, round((end - ensure_utc(now)).total_seconds() / 60))


def minutes_to_auto_close(session, now: datetime) -> int | None:
    """Minutes until an unanswered borrow request stops accepting givers.

    None for other kinds or once a giver has joined.
    """
    if SessionKind(session.kind) != SessionKind.BORROW:
        return None
    if len(session.participants or []) > 1:
        return None
    start, _ = session_window(session)
    remaining = (_shift(start, BORROW_AUTO_CLOSE_AFTER) - ensure_utc(now)).total_seconds() / 60
    return max(0, round(remaining))
