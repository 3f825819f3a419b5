"""Vouch model - an immutable peer endorsement within a session."""

from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from vibex.db.database import Base


class Vouch(Base):
    __tablename__ = "vouches"
    __table_args__ = (
        UniqueConstraint("voucher_id", "receiver_id", "session_id", name="uq_vouch_once"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    voucher_id: Mapped[str] = mapped_column(String(64), index=True)
    receiver_id: Mapped[str] = mapped_column(String(64), index=True)
    session_id: Mapped[int] = mapped_column(ForeignKey("sessions.id"))
    skill: Mapped[str] = mapped_column(String(100))
    points: Mapped[int] = mapped_column(Integer)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True))
