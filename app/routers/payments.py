from fastapi import APIRouter, Depends, Header, Request
from sqlalchemy.orm import Session
from app.core.database import get_db
from app.models.user import User
from app.schemas.payment import (
    PaymentInitializeRequest, PaymentInitializeResponse, PaymentVerifyRequest, PaymentVerifyResponse,
)
from app.api.deps import get_current_active_user, get_payment_gateway
from app.services import payment_service
from app.services.paystack import PaymentGateway
from typing import Optional

router = APIRouter(prefix="/payments", tags=["Payments"])


@router.post("/initialize", response_model=PaymentInitializeResponse)
async def initialize_payment(
    request: PaymentInitializeRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
    gateway: PaymentGateway = Depends(get_payment_gateway),
):
    """Start a gateway checkout for a booking; returns the authorization URL."""
    return await payment_service.initialize_transaction(db, request.booking_id, current_user, gateway)


@router.post("/verify", response_model=PaymentVerifyResponse)
async def verify_payment(
    request: PaymentVerifyRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
    gateway: PaymentGateway = Depends(get_payment_gateway),
):
    """Confirm a payment with the gateway. Safe to call repeatedly."""
    booking = await payment_service.verify_transaction(db, request.reference, request.booking_id, gateway)
    return {
        "booking_id": booking.id,
        "reference": request.reference,
        "payment_status": booking.payment_status,
        "booking_status": booking.booking_status,
        "paid_at": booking.paid_at,
    }


# ─── Webhook (no user auth; signed by the gateway) ────────────────────────────

@router.post("/webhook")
async def paystack_webhook(
    request: Request,
    x_paystack_signature: Optional[str] = Header(None),
    db: Session = Depends(get_db),
    gateway: PaymentGateway = Depends(get_payment_gateway),
):
    raw_body = await request.body()
    return await payment_service.handle_webhook(db, raw_body, x_paystack_signature, gateway)
