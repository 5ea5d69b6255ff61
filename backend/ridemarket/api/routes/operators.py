"""
Operator onboarding: identity verification gates publishing offers.
"""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from ridemarket.api.dependencies import get_current_user_id, get_identity_verifier
from ridemarket.db.session import get_db
from ridemarket.schemas.settlement import IdentityVerificationRequest, IdentityVerificationResponse
from ridemarket.services.interfaces import IdentityVerifier
from ridemarket.services.verification_service import verify_operator_identity

router = APIRouter(prefix="/operators", tags=["Operators"])


@router.post("/me/verify-identity", response_model=IdentityVerificationResponse)
async def verify_identity(
    request_data: IdentityVerificationRequest,
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
    verifier: IdentityVerifier = Depends(get_identity_verifier),
):
    user, result = await verify_operator_identity(
        db,
        user_id,
        request_data.document_type,
        request_data.number,
        request_data.extra,
        verifier,
    )
    return IdentityVerificationResponse(user_id=user.id, is_verified=user.is_verified, task_id=result.task_id)
