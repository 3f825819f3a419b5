"""Reputation-related Pydantic schemas."""

from datetime import datetime

from pydantic import BaseModel, Field, model_validator


class VouchRequest(BaseModel):
    voucher_id: str = Field(min_length=1, max_length=64)
    receiver_id: str = Field(min_length=1, max_length=64)
    session_id: int
    skill: str = Field(min_length=1, max_length=100)

    @model_validator(mode="after")
    def strip_skill(self):
        self.skill = self.skill.strip()
        if not self.skill:
            raise ValueError("skill must not be blank")
        return self


class VouchResult(BaseModel):
    success: bool = True
    new_rating: int
    points_awarded: int


class ReputationStatus(BaseModel):
    user_id: str
    rating: int
    session_count: int
    tier: str  # e.g. "Newbie", "Contributor", ...
    next_tier: str | None
    progress_to_next_tier: int  # 0-100


class VouchRecord(BaseModel):
    id: int
    voucher_id: str
    session_id: int
    skill: str
    points: int
    timestamp: datetime


class VouchHistory(BaseModel):
    user_id: str
    tier: str
    skill_scores: dict[str, int]
    vouches: list[VouchRecord]
