"""User rating model - a user's reputation score and experience."""

from datetime import datetime

from sqlalchemy import DateTime, Integer, String, func
from sqlalchemy.orm import Mapped, mapped_column

from vibex.core.rating_math import BASELINE_RATING
from vibex.db.database import Base


class UserRating(Base):
    __tablename__ = "user_ratings"

    user_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    rating: Mapped[int] = mapped_column(Integer, default=BASELINE_RATING)
    # Sessions in which the user has been rated; selects the K-factor
    session_count: Mapped[int] = mapped_column(Integer, default=0)
    version: Mapped[int] = mapped_column(Integer, default=1)

    updated_at: Mapped[datetime] = mapped_column(
        DateTime, server_default=func.now(), onupdate=func.now()
    )
