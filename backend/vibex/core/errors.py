"""Typed failures for session and reputation operations.

Every failure the engine reports is a `SessionError` subclass. The API
layer turns them into the `{success: false, error, error_code}` envelope
in one place; nothing downstream inspects error strings.
"""


class SessionError(Exception):
    code = "SESSION_ERROR"
    category = "validation"
    status_code = 400
    message = "Session operation failed"

    def __init__(self, message: str | None = None):
        self.message = message or self.message
        super().__init__(self.message)


# --- Not found ---


class SessionNotFound(SessionError):
    code = "SESSION_NOT_FOUND"
    category = "not_found"
    status_code = 404
    message = "Session not found"


# --- Validation ---


class InvalidRole(SessionError):
    code = "INVALID_ROLE"
    message = "Role is not allowed for this session type"


class InvalidExtension(SessionError):
    code = "INVALID_EXTENSION"
    message = "Extension must be a positive number of minutes"


class NotAParticipant(SessionError):
    code = "NOT_PARTICIPANT"
    message = "User is not a participant of this session"


class SelfVouchForbidden(SessionError):
    code = "SELF_VOUCH_FORBIDDEN"
    message = "You cannot vouch for yourself"


class DuplicateVouch(SessionError):
    code = "DUPLICATE_VOUCH"
    status_code = 409
    message = "You already vouched for this user in this session"


# --- Policy ---


class NotCreator(SessionError):
    code = "NOT_CREATOR"
    category = "policy"
    status_code = 403
    message = "Only the session creator can do this"


class AlreadyInAnotherSession(SessionError):
    code = "ALREADY_IN_ANOTHER_SESSION"
    category = "policy"
    status_code = 409
    message = "You are already in another active session"


class CreatorMustTransferOwnership(SessionError):
    code = "CREATOR_MUST_TRANSFER_OWNERSHIP"
    category = "policy"
    status_code = 409
    message = "Transfer ownership before leaving a session others are still in"


# --- Temporal ---


class SessionNotJoinable(SessionError):
    code = "SESSION_NOT_JOINABLE"
    category = "temporal"
    status_code = 409
    message = "Session is not open for joining"


class SessionClosed(SessionError):
    code = "SESSION_CLOSED"
    category = "temporal"
    status_code = 409
    message = "Session is closed"


class SessionEnded(SessionError):
    code = "SESSION_ENDED"
    category = "temporal"
    status_code = 409
    message = "Session has already ended"


# --- Concurrency / transport ---


class ConcurrencyConflict(SessionError):
    code = "CONCURRENCY_CONFLICT"
    category = "concurrency"
    status_code = 409
    message = "Session changed while saving, please retry"


class StoreTimeout(ConcurrencyConflict):
    """The store did not acknowledge in time; the outcome is unknown."""

    code = "OUTCOME_UNKNOWN"
    status_code = 504
    message = "Store did not respond in time, refresh and retry"


class StoreUnavailable(SessionError):
    code = "STORE_UNAVAILABLE"
    category = "transport"
    status_code = 503
    message = "Store is unavailable"
