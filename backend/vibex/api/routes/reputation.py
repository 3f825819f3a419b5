"""Reputation endpoints - vouch for peers and query ratings."""

from fastapi import APIRouter, Depends

from vibex.api.deps import get_reputation_service
from vibex.schemas.reputation import ReputationStatus, VouchHistory, VouchRequest, VouchResult
from vibex.services.reputation_service import ReputationService

router = APIRouter()


@router.post("/vouch", response_model=VouchResult)
async def vouch(req: VouchRequest, service: ReputationService = Depends(get_reputation_service)):
    """Vouch for another participant's skill in a shared session."""
    new_rating, points = await service.apply_vouch(
        req.voucher_id, req.receiver_id, req.session_id, req.skill
    )
    return VouchResult(new_rating=new_rating, points_awarded=points)


@router.get("/{user_id}", response_model=ReputationStatus)
async def get_reputation(
    user_id: str, service: ReputationService = Depends(get_reputation_service)
):
    """Get a user's rating, tier and progress."""
    return ReputationStatus(**await service.get_reputation(user_id))


@router.get("/{user_id}/vouches", response_model=VouchHistory)
async def get_vouch_history(
    user_id: str, service: ReputationService = Depends(get_reputation_service)
):
    return VouchHistory(**await service.get_vouch_history(user_id))
