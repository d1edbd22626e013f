from pydantic import BaseModel
from typing import Optional, List
from uuid import UUID
from datetime import date, datetime
from app.models.booking import BookingStatus, PaymentMethod, PaymentStatus


# ─── Create Schema ────────────────────────────────────────────────────────────
# Unknown fields (e.g. a client-computed total) are dropped, never read

class BookingCreate(BaseModel):
    apartment_id: UUID
    check_in: date
    check_out: date
    guests: int = 1
    payment_method: PaymentMethod = PaymentMethod.PAYSTACK
    special_requests: Optional[str] = None

    model_config = {"extra": "ignore"}


# ─── Response Schemas ─────────────────────────────────────────────────────────

class BookingResponse(BaseModel):
    id: UUID
    apartment_id: UUID
    guest_id: UUID
    guest_name: Optional[str] = None
    guest_email: str
    check_in: date
    check_out: date
    guests: int
    nights: int
    total_amount: float
    payment_method: PaymentMethod
    payment_status: PaymentStatus
    booking_status: BookingStatus
    ticket_code: str
    special_requests: Optional[str] = None
    check_in_time: Optional[datetime] = None
    check_out_time: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    paid_at: Optional[datetime] = None
    created_at: datetime
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class BookingListResponse(BaseModel):
    items: List[BookingResponse]
    page: int
    limit: int
    total: int
    pages: int
