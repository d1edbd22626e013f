from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session
from app.core.database import get_db
from app.models.payment import CommissionStatus
from app.models.user import User
from app.schemas.payment import (
    CommissionListResponse, CommissionResponse, CommissionStatusUpdate,
    PaymentAccountResponse, PaymentAccountVerifyRequest,
)
from app.api.deps import require_admin
from app.services import booking_service, payment_account_service, payment_service, verification_service
from typing import Optional
from uuid import UUID

router = APIRouter(tags=["Admin"])


# ─── Sweeps (triggered by a scheduler or by hand) ─────────────────────────────

@router.post("/bookings/auto-checkout")
async def run_auto_checkout(
    db: Session = Depends(get_db),
    current_user: User = Depends(require_admin),
):
    """Complete every checked-in booking past its check-out time."""
    return {"completed": booking_service.auto_checkout_sweep(db)}


@router.post("/bookings/release-stale")
async def run_release_stale(
    db: Session = Depends(get_db),
    current_user: User = Depends(require_admin),
):
    return {"released": booking_service.release_stale_reservations(db)}


@router.post("/verifications/expire")
async def run_expire_verifications(
    db: Session = Depends(get_db),
    current_user: User = Depends(require_admin),
):
    return {"expired": verification_service.expire_verifications(db)}


# ─── Commissions ──────────────────────────────────────────────────────────────

@router.get("/commissions", response_model=CommissionListResponse)
async def list_commissions(
    status_filter: Optional[CommissionStatus] = Query(None, alias="status"),
    owner_id: Optional[UUID] = Query(None),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    db: Session = Depends(get_db),
    current_user: User = Depends(require_admin),
):
    return payment_service.list_commissions(db, status_filter, owner_id, page, limit)


@router.post("/commissions/{commission_id}/status", response_model=CommissionResponse)
async def update_commission_status(
    commission_id: UUID,
    request: CommissionStatusUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_admin),
):
    return payment_service.mark_commission(db, commission_id, request.status, current_user)


# ─── Payment accounts ─────────────────────────────────────────────────────────

@router.post("/payment-accounts/{account_id}/verify", response_model=PaymentAccountResponse)
async def set_payment_account_verified(
    account_id: UUID,
    request: PaymentAccountVerifyRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_admin),
):
    return payment_account_service.set_verified(db, account_id, request.is_verified, current_user)
