from pydantic import BaseModel, Field, field_validator
from typing import Optional, List
from uuid import UUID
from datetime import datetime
from app.models.payment import CommissionStatus
from app.models.booking import PaymentStatus, BookingStatus


# ─── Payment Accounts ─────────────────────────────────────────────────────────

class PaymentAccountCreate(BaseModel):
    business_name: str = Field(..., min_length=1, max_length=100)
    settlement_bank: str                  # gateway bank code
    account_number: str

    @field_validator('account_number')
    @classmethod
    def account_number_digits(cls, v: str) -> str:
        v = v.replace(' ', '')
        if not v.isdigit():
            raise ValueError('Account number must contain digits only')
        return v


class PaymentAccountResponse(BaseModel):
    id: UUID
    owner_id: UUID
    business_name: str
    settlement_bank: str
    account_number: str
    account_name: Optional[str] = None
    subaccount_code: Optional[str] = None
    percentage_charge: Optional[float] = None
    is_verified: bool
    created_at: datetime
    updated_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class PaymentAccountVerifyRequest(BaseModel):
    is_verified: bool


class BankResponse(BaseModel):
    name: Optional[str] = None
    code: Optional[str] = None
    type: Optional[str] = None


# ─── Transactions ─────────────────────────────────────────────────────────────

class PaymentInitializeRequest(BaseModel):
    booking_id: UUID


class PaymentInitializeResponse(BaseModel):
    authorization_url: str
    access_code: str
    reference: str
    amount: float
    platform_fee: float
    owner_amount: float
    currency: str
    split: bool


class PaymentVerifyRequest(BaseModel):
    reference: str
    booking_id: UUID


class PaymentVerifyResponse(BaseModel):
    booking_id: UUID
    reference: str
    payment_status: PaymentStatus
    booking_status: BookingStatus
    paid_at: Optional[datetime] = None


# ─── Commissions ──────────────────────────────────────────────────────────────

class CommissionResponse(BaseModel):
    id: UUID
    booking_id: UUID
    reference: str
    owner_id: UUID
    room_price_minor: int
    commission_rate: float
    commission_amount_minor: int
    status: CommissionStatus
    created_at: datetime
    updated_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class CommissionTotals(BaseModel):
    total: float
    pending: float
    paid: float
    failed: float


class CommissionListResponse(BaseModel):
    items: List[CommissionResponse]
    page: int
    limit: int
    total: int
    pages: int
    totals: CommissionTotals


class CommissionStatusUpdate(BaseModel):
    status: CommissionStatus
