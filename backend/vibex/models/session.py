"""Session model - a time-boxed, located activity users can join."""

from datetime import datetime

from sqlalchemy import JSON, DateTime, Float, Integer, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column

from vibex.core.kinds import SessionStatus, Privacy
from vibex.db.database import Base


class Session(Base):
    __tablename__ = "sessions"

    id: Mapped[int] = mapped_column(primary_key=True)
    title: Mapped[str] = mapped_column(String(200))
    description: Mapped[str] = mapped_column(Text, default="")
    lat: Mapped[float] = mapped_column(Float)
    lng: Mapped[float] = mapped_column(Float)
    kind: Mapped[str] = mapped_column(String(20))  # SessionKind value
    emoji: Mapped[str] = mapped_column(String(16), default="")

    # Time & status
    event_time: Mapped[datetime] = mapped_column(DateTime(timezone=True))
    duration: Mapped[int] = mapped_column(Integer)  # minutes
    status: Mapped[str] = mapped_column(String(20), default=SessionStatus.ACTIVE.value)

    # Membership: ordered user ids and user id -> Role value
    creator_id: Mapped[str] = mapped_column(String(64), index=True)
    participants: Mapped[list] = mapped_column(JSON, default=list)
    participant_roles: Mapped[dict] = mapped_column(JSON, default=dict)

    privacy: Mapped[str] = mapped_column(String(20), default=Privacy.PUBLIC.value)
    visible_to_tags: Mapped[list] = mapped_column(JSON, default=list)

    # seek / cookie
    help_category: Mapped[str | None] = mapped_column(String(50), nullable=True)
    skill_tag: Mapped[str | None] = mapped_column(String(100), nullable=True)
    expected_outcome: Mapped[str | None] = mapped_column(Text, nullable=True)
    # borrow
    return_time: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    urgency: Mapped[str | None] = mapped_column(String(20), nullable=True)

    # Bumped on every coordinated write; see SessionStore.commit_if_unchanged
    version: Mapped[int] = mapped_column(Integer, default=1)

    created_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())
