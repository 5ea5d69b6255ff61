"""
Pydantic schemas for settlements, payments and operator verification.
"""

import datetime as dt
from typing import Optional
from pydantic import BaseModel, Field

from ridemarket.models.enums import PaymentMethod, SettlementStatus


class SettlementReject(BaseModel):
    reason: str = Field(..., min_length=1, max_length=500)


class SettlementResponse(BaseModel):
    id: int
    booking_number: str
    operator_id: int
    payment_method: PaymentMethod
    amount: float
    platform_fee: float
    total_amount: float
    settlement_status: SettlementStatus
    operator_settlement_amount: Optional[float]
    settlement_requested_at: Optional[dt.datetime]
    settlement_approved_at: Optional[dt.datetime]
    settlement_rejected_reason: Optional[str]

    model_config = {"from_attributes": True}


class SettlementListResponse(BaseModel):
    settlements: list[SettlementResponse]
    total: int


class LedgerResponse(BaseModel):
    user_id: int
    inflow_amount: float
    outflow_amount: float
    net_amount: float


class PaymentOrderResponse(BaseModel):
    booking_id: int
    order_id: str
    amount: float
    currency: str


class PaymentConfirm(BaseModel):
    order_id: str = Field(..., min_length=1)
    payment_id: str = Field(..., min_length=1)
    signature: str = Field(..., min_length=1)


class IdentityVerificationRequest(BaseModel):
    document_type: str = Field(..., min_length=1, max_length=50)
    number: str = Field(..., min_length=1, max_length=50)
    extra: Optional[dict] = None


class IdentityVerificationResponse(BaseModel):
    user_id: int
    is_verified: bool
    task_id: Optional[str] = None
