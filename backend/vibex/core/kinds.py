"""Closed vocabularies for sessions, roles and lifecycle phases."""

import enum


class SessionKind(str, enum.Enum):
    VIBE = "vibe"  # social gathering
    SEEK = "seek"  # asking for help
    COOKIE = "cookie"  # offering a skill
    BORROW = "borrow"  # item exchange


class Role(str, enum.Enum):
    SEEKING = "seeking"
    OFFERING = "offering"
    PARTICIPANT = "participant"
    GIVER = "giver"


class SessionStatus(str, enum.Enum):
    ACTIVE = "active"
    CLOSED = "closed"


class Privacy(str, enum.Enum):
    PUBLIC = "public"
    PRIVATE = "private"


class Phase(str, enum.Enum):
    SCHEDULED = "scheduled"
    ACTIVE = "active"
    ENDING_SOON = "ending_soon"
    AUTO_CLOSE_ELIGIBLE = "auto_close_eligible"
    ENDED = "ended"


class NotificationType(str, enum.Enum):
    SESSION_JOIN = "session_join"
    SESSION_LEAVE = "session_leave"
    OWNERSHIP_TRANSFER = "ownership_transfer"
    VOUCH_RECEIVED = "vouch_received"


# Roles a non-creator may take when joining a session of each kind
JOINABLE_ROLES: dict[SessionKind, frozenset[Role]] = {
    SessionKind.VIBE: frozenset({Role.PARTICIPANT}),
    SessionKind.SEEK: frozenset({Role.OFFERING, Role.SEEKING}),
    SessionKind.COOKIE: frozenset({Role.PARTICIPANT}),
    SessionKind.BORROW: frozenset({Role.GIVER}),
}

# Role assumed when a joiner does not name one
DEFAULT_JOIN_ROLE: dict[SessionKind, Role] = {
    SessionKind.VIBE: Role.PARTICIPANT,
    SessionKind.SEEK: Role.OFFERING,
    SessionKind.COOKIE: Role.PARTICIPANT,
    SessionKind.BORROW: Role.GIVER,
}

# Role recorded for the creator at creation time
CREATOR_ROLE: dict[SessionKind, Role] = {
    SessionKind.VIBE: Role.PARTICIPANT,
    SessionKind.SEEK: Role.SEEKING,
    SessionKind.COOKIE: Role.OFFERING,
    SessionKind.BORROW: Role.SEEKING,
}

JOINABLE_PHASES = frozenset({Phase.ACTIVE, Phase.ENDING_SOON})


def is_role_allowed(kind: SessionKind, role: Role) -> bool:
    """Whether a joiner may take `role` in a session of `kind`."""
    return role in JOINABLE_ROLES[kind]
