"""
Owner payout destinations.

An account is only stored once the gateway has resolved the bank account and
created a sub-account for it, so a stored account with `is_verified=True`
always has a usable `subaccount_code`.
"""

import logging
from typing import Any, Dict, List, Optional
from uuid import UUID

from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.exceptions import ForbiddenError, NotFoundError, ValidationError
from app.models.payment import PaymentAccount
from app.models.user import User, UserRole
from app.services.paystack import PaymentGateway

logger = logging.getLogger(__name__)


def get_payment_account(db: Session, owner: User) -> PaymentAccount:
    account = db.query(PaymentAccount).filter(PaymentAccount.owner_id == owner.id).first()
    if not account:
        raise NotFoundError("Payment account")
    return account


def find_payment_account(db: Session, owner_id: UUID) -> Optional[PaymentAccount]:
    return db.query(PaymentAccount).filter(PaymentAccount.owner_id == owner_id).first()


async def register_payment_account(db: Session, owner: User, business_name: str, settlement_bank: str,
                                   account_number: str, gateway: PaymentGateway) -> PaymentAccount:
    if owner.role not in (UserRole.OWNER, UserRole.ADMIN):
        raise ForbiddenError("Only apartment owners can register a payment account")
    account_number = (account_number or "").strip()
    settlement_bank = (settlement_bank or "").strip()
    if not account_number.isdigit():
        raise ValidationError("Account number must contain digits only", field="account_number")
    if not settlement_bank:
        raise ValidationError("Settlement bank is required", field="settlement_bank")

    # Both calls raise PaymentGatewayError; nothing is written before they succeed
    resolved = await gateway.resolve_account(account_number, settlement_bank)
    subaccount = await gateway.create_subaccount(
        business_name=business_name,
        settlement_bank=settlement_bank,
        account_number=account_number,
        percentage_charge=settings.PLATFORM_FEE_PERCENTAGE,
        primary_contact_email=owner.email,
    )

    account = find_payment_account(db, owner.id)
    if account is None:
        account = PaymentAccount(owner_id=owner.id)
        db.add(account)
    account.business_name = business_name
    account.settlement_bank = settlement_bank
    account.account_number = account_number
    account.account_name = resolved.get("account_name")
    account.subaccount_code = subaccount.subaccount_code
    account.percentage_charge = subaccount.percentage_charge
    account.is_verified = True

    db.commit()
    db.refresh(account)
    logger.info(f"Payment account for owner {owner.id} registered as {account.subaccount_code}")
    return account


async def list_banks(gateway: PaymentGateway, country: Optional[str] = None) -> List[Dict[str, Any]]:
    banks = await gateway.list_banks(country)
    return [
        {"name": bank.get("name"), "code": bank.get("code"), "type": bank.get("type")}
        for bank in banks
        if bank.get("active", True)
    ]


def set_verified(db: Session, account_id: UUID, verified: bool, admin: User) -> PaymentAccount:
    account = db.query(PaymentAccount).filter(PaymentAccount.id == account_id).first()
    if not account:
        raise NotFoundError("Payment account", account_id)
    if verified and not account.subaccount_code:
        raise ValidationError("Account has no gateway sub-account and cannot be verified")
    account.is_verified = verified
    db.commit()
    db.refresh(account)
    logger.info(f"Payment account {account.id} verified={verified} by admin {admin.id}")
    return account
