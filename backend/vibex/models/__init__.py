"""Database models package."""

from vibex.models.session import Session
from vibex.models.rating import UserRating
from vibex.models.vouch import Vouch

__all__ = ["Session", "UserRating", "Vouch"]
