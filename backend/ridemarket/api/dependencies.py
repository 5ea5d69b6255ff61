"""
Request dependencies: caller identity and wired collaborators.

Authentication happens upstream. The gateway forwards the authenticated
user id in X-User-Id and, for back-office callers, X-User-Role: admin.
"""

from typing import Optional

import structlog
from fastapi import Depends, Header, HTTPException, Request, status

from ridemarket.services.interfaces import (
    AdmissionStrategy,
    ConversationGateway,
    IdentityVerifier,
    LoggingConversationGateway,
    OptimisticAdmission,
    PaymentAuthority,
)


async def get_current_user_id(x_user_id: Optional[str] = Header(None)) -> int:
    if not x_user_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing X-User-Id header",
        )
    try:
        user_id = int(x_user_id)
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid X-User-Id header",
        )
    structlog.contextvars.bind_contextvars(user_id=user_id)
    return user_id


async def require_admin(
    user_id: int = Depends(get_current_user_id),
    x_user_role: Optional[str] = Header(None),
) -> int:
    if (x_user_role or "").lower() != "admin":
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin role required",
        )
    return user_id


def get_admission(request: Request) -> AdmissionStrategy:
    return getattr(request.app.state, "admission", None) or OptimisticAdmission()


def get_conversations(request: Request) -> ConversationGateway:
    return getattr(request.app.state, "conversations", None) or LoggingConversationGateway()


def get_payment_authority(request: Request) -> PaymentAuthority:
    authority = getattr(request.app.state, "payment_authority", None)
    if authority is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Payment authority is not configured",
        )
    return authority


def get_identity_verifier(request: Request) -> IdentityVerifier:
    verifier = getattr(request.app.state, "identity_verifier", None)
    if verifier is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Identity verification is not configured",
        )
    return verifier
