"""
Operator identity verification.

The verifier is an external provider that answers verified / not verified
for one document. The result is stored on the user and gates publishing
offers (see offer_service.require_verified_operator).
"""

from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from ridemarket.core.exceptions import ValidationError
from ridemarket.core.logging import get_logger
from ridemarket.models.user import User
from ridemarket.services.interfaces.collaborators import IdentityResult, IdentityVerifier
from ridemarket.services.offer_service import get_user

logger = get_logger(__name__)


async def verify_operator_identity(
    db: AsyncSession,
    user_id: int,
    document_type: str,
    number: str,
    extra: Optional[dict],
    verifier: IdentityVerifier,
) -> tuple[User, IdentityResult]:
    if not document_type.strip() or not number.strip():
        raise ValidationError("Document type and number are required")

    user = await get_user(db, user_id)
    result = await verifier.verify(document_type.strip(), number.strip(), extra)

    user.is_verified = bool(result.verified)
    await db.flush()

    logger.info(
        "identity_verification_completed",
        user_id=user_id,
        document_type=document_type,
        verified=user.is_verified,
        task_id=result.task_id,
    )
    return user, result
