"""Session-related Pydantic schemas."""

from datetime import datetime, timezone
from typing import Literal

from pydantic import BaseModel, Field, model_validator

from vibex.core.kinds import Phase, Privacy, Role, SessionKind
from vibex.core.session_clock import MAX_DURATION_MINUTES, MAX_SCHEDULE_AHEAD, utcnow


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class SessionCreate(BaseModel):
    creator_id: str = Field(min_length=1, max_length=64)
    title: str = Field(min_length=1, max_length=200)
    description: str = ""
    lat: float = Field(ge=-90, le=90)
    lng: float = Field(ge=-180, le=180)
    kind: SessionKind
    emoji: str = ""
    event_time: datetime
    duration: int = Field(gt=0, le=MAX_DURATION_MINUTES)  # minutes
    privacy: Privacy = Privacy.PUBLIC
    visible_to_tags: list[str] = []

    # seek: which side the creator is on (defaults to seeking)
    creator_role: Role | None = None

    # seek / cookie
    help_category: Literal["Academic", "Project", "Tech", "General"] | None = None
    skill_tag: str | None = None
    expected_outcome: str | None = None
    # borrow
    return_time: datetime | None = None
    urgency: Literal["Low", "Medium", "High"] | None = None

    @model_validator(mode="after")
    def check_kind_fields(self):
        if self.creator_role is not None:
            if self.kind != SessionKind.SEEK:
                raise ValueError("creator_role can only be chosen for seek sessions")
            if self.creator_role not in (Role.SEEKING, Role.OFFERING):
                raise ValueError("seek creators are either seeking or offering")
        if self.kind != SessionKind.BORROW and (self.return_time or self.urgency):
            raise ValueError("return_time and urgency only apply to borrow sessions")
        self.event_time = _as_utc(self.event_time)
        if self.event_time > utcnow() + MAX_SCHEDULE_AHEAD:
            raise ValueError("event_time is too far in the future")
        if self.return_time is not None:
            self.return_time = _as_utc(self.return_time)
        return self


class SessionState(BaseModel):
    id: int
    title: str
    description: str
    lat: float
    lng: float
    kind: SessionKind
    emoji: str
    event_time: datetime
    duration: int
    status: str
    creator_id: str
    participants: list[str]
    participant_roles: dict[str, Role]
    privacy: Privacy
    visible_to_tags: list[str]
    help_category: str | None
    skill_tag: str | None
    expected_outcome: str | None
    return_time: datetime | None
    urgency: str | None
    phase: Phase

    model_config = {"from_attributes": True}


class FeedItem(SessionState):
    minutes_to_start: int
    minutes_to_end: int
    auto_close_in_minutes: int | None = None


class JoinRequest(BaseModel):
    user_id: str = Field(min_length=1, max_length=64)
    role: Role | None = None


class LeaveRequest(BaseModel):
    user_id: str = Field(min_length=1, max_length=64)


class ExtendRequest(BaseModel):
    user_id: str = Field(min_length=1, max_length=64)
    by_minutes: int = Field(gt=0, le=MAX_DURATION_MINUTES)


class CloseRequest(BaseModel):
    user_id: str = Field(min_length=1, max_length=64)


class TransferRequest(BaseModel):
    user_id: str = Field(min_length=1, max_length=64)
    new_owner_id: str = Field(min_length=1, max_length=64)


class MembershipResult(BaseModel):
    success: bool = True
    participants: list[str]
    participant_roles: dict[str, Role]


class ErrorResult(BaseModel):
    success: bool = False
    error: str
    error_code: str
