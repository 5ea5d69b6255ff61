"""
Settlement endpoints: operator withdrawals, ledgers, and the admin
approval queue.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from ridemarket.api.dependencies import get_current_user_id, require_admin
from ridemarket.db.session import get_db
from ridemarket.models.enums import SettlementStatus
from ridemarket.schemas.settlement import (
    LedgerResponse,
    SettlementListResponse,
    SettlementReject,
    SettlementResponse,
)
from ridemarket.services.settlement_service import (
    approve_settlement,
    get_ledger,
    list_settlements,
    reject_settlement,
    request_withdrawal,
)

router = APIRouter(prefix="/settlements", tags=["Settlements"])


@router.get("/ledger/me", response_model=LedgerResponse)
async def read_my_ledger(
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    """What the platform owes the caller (inflow) and what they owe it (outflow)."""
    return await get_ledger(db, user_id)


@router.post("/{booking_id}/withdraw", response_model=SettlementResponse)
async def withdraw_earnings(
    booking_id: int,
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    return await request_withdrawal(db, booking_id, user_id)


@router.get("/admin", response_model=SettlementListResponse)
async def list_settlement_queue(
    settlement_status: Optional[SettlementStatus] = Query(SettlementStatus.REQUESTED, alias="status"),
    admin_id: int = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    settlements = await list_settlements(db, status=settlement_status)
    return SettlementListResponse(settlements=settlements, total=len(settlements))


@router.get("/admin/ledger/{user_id}", response_model=LedgerResponse)
async def read_user_ledger(
    user_id: int,
    admin_id: int = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    return await get_ledger(db, user_id)


@router.post("/admin/{booking_id}/approve", response_model=SettlementResponse)
async def approve_settlement_endpoint(
    booking_id: int,
    admin_id: int = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    return await approve_settlement(db, booking_id, admin_id)


@router.post("/admin/{booking_id}/reject", response_model=SettlementResponse)
async def reject_settlement_endpoint(
    booking_id: int,
    reject_data: SettlementReject,
    admin_id: int = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    """Reject a requested payout. The reason is stored on the booking."""
    return await reject_settlement(db, booking_id, admin_id, reject_data.reason)
