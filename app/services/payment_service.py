"""
Booking payments through the gateway.

Gateway callbacks arrive at least once (redirect verify, webhook, manual
retries), so settlement is keyed on the transaction reference: the move
from pending to success is a single conditional UPDATE and only the caller
that wins it marks the booking paid and writes the CommissionRecord.
A second reference settling an already paid booking is recorded as a
success with no commission and logged as a refund owed.
"""

import json
import logging
import secrets
import time
from typing import Optional
from uuid import UUID

from sqlalchemy import func
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.exceptions import (
    AuthenticationError,
    ConflictError,
    ErrorCode,
    ForbiddenError,
    FraudSignal,
    NotFoundError,
    ValidationError,
)
from app.models.base import utcnow
from app.models.booking import Booking, BookingStatus, PaymentStatus
from app.models.notification import NotificationPriority, NotificationType
from app.models.payment import CommissionRecord, CommissionStatus, PaymentTransaction, TransactionStatus
from app.models.user import User
from app.services import notification_service, paystack
from app.services.booking_service import get_booking
from app.services.payment_account_service import find_payment_account
from app.services.paystack import PaymentGateway, VerifiedTransaction
from app.services.verification_service import can_list_apartments
from app.utils.currency import from_minor, rate_of, split_amount, to_minor
from app.utils.pagination import paginate
from app.utils.webhook_security import verify_paystack_signature

logger = logging.getLogger(__name__)


def generate_reference() -> str:
    return f"apt_{int(time.time() * 1000)}_{secrets.token_hex(4)}"


def get_transaction(db: Session, reference: str) -> PaymentTransaction:
    transaction = db.query(PaymentTransaction).filter(PaymentTransaction.reference == reference).first()
    if not transaction:
        raise NotFoundError("Payment transaction", reference)
    return transaction


# ─── Initialize ───────────────────────────────────────────────────────────────

async def initialize_transaction(db: Session, booking_id: UUID, payer: User, gateway: PaymentGateway) -> dict:
    booking = get_booking(db, booking_id)
    if booking.guest_id != payer.id:
        raise ForbiddenError("Only the guest can pay for this booking")
    if booking.booking_status != BookingStatus.CONFIRMED or booking.payment_status == PaymentStatus.PAID:
        raise ConflictError(
            "Booking cannot be paid in its current state",
            error_code=ErrorCode.INVALID_STATE_TRANSITION,
            details={
                "booking_status": booking.booking_status.value,
                "payment_status": booking.payment_status.value,
            },
        )

    total_minor = to_minor(booking.total_amount)
    platform_fee_minor, owner_amount_minor = split_amount(total_minor, settings.PLATFORM_FEE_PERCENTAGE)

    owner_id = booking.apartment.owner_id
    subaccount_code = None
    if can_list_apartments(db, owner_id):
        subaccount_code = find_payment_account(db, owner_id).subaccount_code
    else:
        logger.warning(
            f"Owner {owner_id} has no verified payment account; booking {booking.id} "
            f"will be collected without a split"
        )
    is_split = subaccount_code is not None

    reference = generate_reference()
    initialized = await gateway.initialize(
        amount_minor=total_minor,
        currency=settings.PAYMENT_CURRENCY,
        reference=reference,
        email=payer.email,
        callback_url=settings.PAYSTACK_CALLBACK_URL,
        metadata={
            "booking_id": str(booking.id),
            "ticket_code": booking.ticket_code,
            "apartment_id": str(booking.apartment_id),
        },
        subaccount=subaccount_code,
        transaction_charge=platform_fee_minor if is_split else None,
        bearer=settings.SPLIT_CHARGE_BEARER if is_split else None,
    )

    transaction = PaymentTransaction(
        reference=initialized.reference or reference,
        booking_id=booking.id,
        currency=settings.PAYMENT_CURRENCY,
        amount_minor=total_minor,
        platform_fee_minor=platform_fee_minor,
        owner_amount_minor=owner_amount_minor,
        is_split=is_split,
        subaccount_code=subaccount_code,
        status=TransactionStatus.PENDING,
        access_code=initialized.access_code,
        authorization_url=initialized.authorization_url,
    )
    db.add(transaction)
    db.commit()
    logger.info(
        f"Payment {transaction.reference} initialized for booking {booking.id}: "
        f"{total_minor} minor units, split={is_split}"
    )

    return {
        "authorization_url": transaction.authorization_url,
        "access_code": transaction.access_code,
        "reference": transaction.reference,
        "amount": from_minor(total_minor),
        "platform_fee": from_minor(platform_fee_minor),
        "owner_amount": from_minor(owner_amount_minor),
        "currency": transaction.currency,
        "split": is_split,
    }


# ─── Verify ───────────────────────────────────────────────────────────────────

def _close_transaction(db: Session, reference: str, status: TransactionStatus, result: VerifiedTransaction) -> bool:
    updated = (
        db.query(PaymentTransaction)
        .filter(
            PaymentTransaction.reference == reference,
            PaymentTransaction.status == TransactionStatus.PENDING,
        )
        .update(
            {
                PaymentTransaction.status: status,
                PaymentTransaction.gateway_amount_minor: result.amount_minor,
                PaymentTransaction.gateway_status: result.gateway_status,
                PaymentTransaction.gateway_response: result.raw,
                PaymentTransaction.paid_at: result.paid_at if status == TransactionStatus.SUCCESS else None,
            },
            synchronize_session=False,
        )
    )
    return updated == 1


def _mark_booking_failed(db: Session, booking_id: UUID):
    db.query(Booking).filter(
        Booking.id == booking_id,
        Booking.payment_status != PaymentStatus.PAID,
    ).update({Booking.payment_status: PaymentStatus.FAILED}, synchronize_session=False)


async def verify_transaction(db: Session, reference: str, booking_id: UUID, gateway: PaymentGateway) -> Booking:
    transaction = db.query(PaymentTransaction).filter(PaymentTransaction.reference == reference).first()
    if not transaction or transaction.booking_id != booking_id:
        raise NotFoundError("Payment transaction", reference)

    booking = transaction.booking
    if transaction.status != TransactionStatus.PENDING:
        return booking

    result = await gateway.verify(reference)

    if result.status == paystack.PENDING:
        logger.info(f"Payment {reference} still pending at the gateway")
        return booking

    if result.status == paystack.FAILED:
        if _close_transaction(db, reference, TransactionStatus.FAILED, result):
            _mark_booking_failed(db, booking.id)
            logger.info(f"Payment {reference} failed at the gateway ({result.gateway_status})")
        db.commit()
        db.refresh(booking)
        return booking

    if result.amount_minor != transaction.amount_minor:
        won = _close_transaction(db, reference, TransactionStatus.FAILED, result)
        if won:
            _mark_booking_failed(db, booking.id)
        db.commit()
        logger.warning(
            f"Amount mismatch on payment {reference} for booking {booking.id}: "
            f"expected {transaction.amount_minor}, gateway reported {result.amount_minor}"
        )
        raise FraudSignal(
            "Paid amount does not match the booking total",
            details={
                "reference": reference,
                "expected_amount_minor": transaction.amount_minor,
                "reported_amount_minor": result.amount_minor,
            },
        )

    if not _close_transaction(db, reference, TransactionStatus.SUCCESS, result):
        # Another delivery settled this reference first
        db.rollback()
        db.refresh(booking)
        return booking

    paid_at = result.paid_at or utcnow()
    marked_paid = db.query(Booking).filter(
        Booking.id == booking.id,
        Booking.payment_status != PaymentStatus.PAID,
    ).update(
        {Booking.payment_status: PaymentStatus.PAID, Booking.paid_at: paid_at},
        synchronize_session=False,
    )
    if not marked_paid:
        # The booking was already settled through another reference
        db.commit()
        db.refresh(booking)
        logger.warning(
            f"Duplicate payment {reference} settled for already paid booking {booking.id}; refund required"
        )
        return booking

    room_price_minor = to_minor(booking.total_amount)
    db.add(CommissionRecord(
        booking_id=booking.id,
        reference=reference,
        owner_id=booking.apartment.owner_id,
        room_price_minor=room_price_minor,
        commission_rate=settings.COMMISSION_RATE,
        commission_amount_minor=rate_of(room_price_minor, settings.COMMISSION_RATE),
        status=CommissionStatus.PENDING,
    ))
    db.commit()
    db.refresh(booking)

    if booking.booking_status == BookingStatus.CANCELLED:
        logger.warning(f"Payment {reference} settled for cancelled booking {booking.id}; refund required")
    logger.info(f"Booking {booking.id} paid via {reference}")

    notification_service.emit(
        db,
        user_id=booking.apartment.owner_id,
        type=NotificationType.PAYMENT_RECEIVED,
        title="Payment received",
        message=f"Payment of {settings.PAYMENT_CURRENCY} {booking.total_amount} received "
                f"for booking {booking.ticket_code}.",
        booking_id=booking.id,
        apartment_id=booking.apartment_id,
        priority=NotificationPriority.HIGH,
    )
    return booking


# ─── Webhook ──────────────────────────────────────────────────────────────────

async def handle_webhook(db: Session, raw_body: bytes, signature: Optional[str], gateway: PaymentGateway) -> dict:
    if not verify_paystack_signature(raw_body, signature, settings.PAYSTACK_SECRET_KEY):
        raise AuthenticationError("Invalid webhook signature")

    try:
        payload = json.loads(raw_body)
    except ValueError:
        raise ValidationError("Webhook body is not valid JSON")

    if not isinstance(payload, dict):
        raise ValidationError("Webhook body must be a JSON object")

    event = payload.get("event")
    if event != "charge.success":
        logger.info(f"Ignoring webhook event {event!r}")
        return {"status": "ignored", "event": event}

    data = payload.get("data") or {}
    if not isinstance(data, dict):
        raise ValidationError("Webhook data must be a JSON object")

    reference = data.get("reference")
    transaction = None
    if reference:
        transaction = db.query(PaymentTransaction).filter(PaymentTransaction.reference == reference).first()
    if not transaction:
        logger.warning(f"Webhook for unknown payment reference {reference!r}")
        return {"status": "ignored", "event": event}

    # Re-verify with the gateway rather than trusting the webhook body
    booking = await verify_transaction(db, reference, transaction.booking_id, gateway)
    return {"status": "processed", "event": event, "payment_status": booking.payment_status.value}


# ─── Commissions ──────────────────────────────────────────────────────────────

def commission_totals(db: Session) -> dict:
    rows = (
        db.query(CommissionRecord.status, func.sum(CommissionRecord.commission_amount_minor))
        .group_by(CommissionRecord.status)
        .all()
    )
    by_status = {status: int(total or 0) for status, total in rows}
    return {
        "total": from_minor(sum(by_status.values())),
        "pending": from_minor(by_status.get(CommissionStatus.PENDING, 0)),
        "paid": from_minor(by_status.get(CommissionStatus.PAID, 0)),
        "failed": from_minor(by_status.get(CommissionStatus.FAILED, 0)),
    }


def list_commissions(db: Session, status: Optional[CommissionStatus] = None,
                     owner_id: Optional[UUID] = None, page: int = 1, limit: int = 20) -> dict:
    query = db.query(CommissionRecord)
    if status:
        query = query.filter(CommissionRecord.status == status)
    if owner_id:
        query = query.filter(CommissionRecord.owner_id == owner_id)
    result = paginate(query.order_by(CommissionRecord.created_at.desc()), page, limit)
    result["totals"] = commission_totals(db)
    return result


def mark_commission(db: Session, commission_id: UUID, status: CommissionStatus, admin: User) -> CommissionRecord:
    if not admin.is_admin:
        raise ForbiddenError("Only admins can settle commissions")
    if status == CommissionStatus.PENDING:
        raise ValidationError("Commission can only be marked paid or failed", field="status")

    commission = db.query(CommissionRecord).filter(CommissionRecord.id == commission_id).first()
    if not commission:
        raise NotFoundError("Commission", commission_id)

    updated = (
        db.query(CommissionRecord)
        .filter(CommissionRecord.id == commission_id, CommissionRecord.status == CommissionStatus.PENDING)
        .update({CommissionRecord.status: status}, synchronize_session=False)
    )
    if not updated:
        db.rollback()
        raise ConflictError(
            f"Commission is already {commission.status.value}",
            error_code=ErrorCode.INVALID_STATE_TRANSITION,
        )
    db.commit()
    db.refresh(commission)
    logger.info(f"Commission {commission.id} marked {status.value} by admin {admin.id}")
    return commission
