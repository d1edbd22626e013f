from fastapi import APIRouter, Depends, status, Query
from sqlalchemy.orm import Session
from app.core.database import get_db
from app.models.user import User
from app.schemas.payment import PaymentAccountCreate, PaymentAccountResponse, BankResponse
from app.api.deps import get_current_active_user, require_owner, get_payment_gateway
from app.services import payment_account_service
from app.services.paystack import PaymentGateway
from typing import List, Optional

router = APIRouter(prefix="/payment-accounts", tags=["Payment Accounts"])


@router.post("", response_model=PaymentAccountResponse, status_code=status.HTTP_201_CREATED)
async def register_payment_account(
    data: PaymentAccountCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_owner),
    gateway: PaymentGateway = Depends(get_payment_gateway),
):
    """Register (or replace) the bank account that receives booking payouts."""
    return await payment_account_service.register_payment_account(
        db, current_user, data.business_name, data.settlement_bank, data.account_number, gateway
    )


@router.get("/me", response_model=PaymentAccountResponse)
async def get_my_payment_account(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
):
    return payment_account_service.get_payment_account(db, current_user)


@router.get("/banks", response_model=List[BankResponse])
async def list_banks(
    country: Optional[str] = Query(None),
    current_user: User = Depends(get_current_active_user),
    gateway: PaymentGateway = Depends(get_payment_gateway),
):
    return await payment_account_service.list_banks(gateway, country)
