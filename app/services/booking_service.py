"""
Booking lifecycle: creation against apartment inventory, check-in,
check-out, cancellation and the overdue check-out sweep.

State machine:
    confirmed -> checked-in -> completed
    confirmed -> cancelled
completed, cancelled and no_show are terminal.

Every status change is a conditional UPDATE guarded on the current status,
so when two actors race for the same transition exactly one of them wins.
"""

import logging
import math
import secrets
import string
from datetime import date, datetime, time, timedelta
from typing import List, Optional
from uuid import UUID

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.exceptions import ConflictError, ErrorCode, ForbiddenError, NotFoundError, ValidationError
from app.models.apartment import Apartment
from app.models.base import utcnow
from app.models.booking import Booking, BookingStatus, PaymentStatus
from app.models.notification import NotificationType
from app.models.user import User
from app.services import apartment_service, notification_service
from app.utils.currency import quantize_amount
from app.utils.pagination import paginate

logger = logging.getLogger(__name__)

TICKET_ALPHABET = string.ascii_uppercase + string.digits
MAX_TICKET_ATTEMPTS = 10


# ─── Helpers ──────────────────────────────────────────────────────────────────

def count_nights(check_in: date, check_out: date) -> int:
    """Whole nights between the two dates, rounding any partial day up."""
    seconds = (datetime.combine(check_out, time.min) - datetime.combine(check_in, time.min)).total_seconds()
    return math.ceil(seconds / 86400)


def generate_ticket_code(db: Session, length: Optional[int] = None) -> str:
    length = length or settings.TICKET_CODE_LENGTH
    for _ in range(MAX_TICKET_ATTEMPTS):
        code = "".join(secrets.choice(TICKET_ALPHABET) for _ in range(length))
        if not db.query(Booking.id).filter(Booking.ticket_code == code).first():
            return code
    raise ConflictError("Could not allocate a unique ticket code, please retry")


def checkout_deadline(booking: Booking) -> datetime:
    return datetime.combine(booking.check_out, time(hour=settings.CHECKOUT_HOUR))


def _transition(db: Session, booking_id: UUID, from_status: BookingStatus, values: dict, *criteria) -> bool:
    """Apply `values` iff the booking is still in `from_status`. No commit."""
    updated = (
        db.query(Booking)
        .filter(Booking.id == booking_id, Booking.booking_status == from_status, *criteria)
        .update(values, synchronize_session=False)
    )
    return updated == 1


def _state_conflict(booking: Booking, action: str) -> ConflictError:
    return ConflictError(
        f"Cannot {action} a booking that is {booking.booking_status.value}",
        error_code=ErrorCode.INVALID_STATE_TRANSITION,
        details={
            "booking_status": booking.booking_status.value,
            "payment_status": booking.payment_status.value,
        },
    )


# ─── Queries ──────────────────────────────────────────────────────────────────

def get_booking(db: Session, booking_id: UUID) -> Booking:
    booking = db.query(Booking).filter(Booking.id == booking_id).first()
    if not booking:
        raise NotFoundError("Booking", booking_id)
    return booking


def get_booking_for_actor(db: Session, actor: User, booking_id: UUID) -> Booking:
    booking = get_booking(db, booking_id)
    is_guest = booking.guest_id == actor.id
    is_owner = booking.apartment.owner_id == actor.id
    if not (is_guest or is_owner or actor.is_admin):
        raise ForbiddenError("Not authorized to view this booking")
    return booking


def get_by_ticket_code(db: Session, actor: User, ticket_code: str) -> Booking:
    booking = db.query(Booking).filter(Booking.ticket_code == ticket_code.strip().upper()).first()
    if not booking:
        raise NotFoundError("Booking")
    if booking.apartment.owner_id != actor.id and not actor.is_admin:
        raise ForbiddenError("Not authorized to view this booking")
    return booking


def list_my_bookings(db: Session, guest: User, status: Optional[BookingStatus] = None,
                     page: int = 1, limit: int = 10) -> dict:
    query = db.query(Booking).filter(Booking.guest_id == guest.id)
    if status:
        query = query.filter(Booking.booking_status == status)
    return paginate(query.order_by(Booking.created_at.desc()), page, limit)


def list_owner_bookings(db: Session, owner: User, status: Optional[BookingStatus] = None,
                        page: int = 1, limit: int = 100) -> dict:
    query = db.query(Booking).join(Apartment, Booking.apartment_id == Apartment.id).filter(
        Apartment.owner_id == owner.id
    )
    if status:
        query = query.filter(Booking.booking_status == status)
    return paginate(query.order_by(Booking.created_at.desc()), page, limit)


def list_apartment_bookings(db: Session, actor: User, apartment_id: UUID,
                            status: Optional[BookingStatus] = None, page: int = 1, limit: int = 10) -> dict:
    apartment = apartment_service.get_apartment(db, apartment_id)
    if apartment.owner_id != actor.id and not actor.is_admin:
        raise ForbiddenError("Not authorized to view these bookings")
    query = db.query(Booking).filter(Booking.apartment_id == apartment_id)
    if status:
        query = query.filter(Booking.booking_status == status)
    return paginate(query.order_by(Booking.created_at.desc()), page, limit)


# ─── Create ───────────────────────────────────────────────────────────────────

def _validate_request(data, today: date):
    if data.guests < 1:
        raise ValidationError("Must have at least 1 guest", field="guests")
    if data.guests > settings.MAX_GUESTS:
        raise ValidationError(f"Cannot exceed {settings.MAX_GUESTS} guests", field="guests")
    if data.check_in < today:
        raise ValidationError("Check-in date cannot be in the past", field="check_in")
    if data.check_out <= data.check_in:
        raise ValidationError("Check-out date must be after check-in date", field="check_out")
    if data.special_requests and len(data.special_requests) > settings.SPECIAL_REQUESTS_MAX_LENGTH:
        raise ValidationError(
            f"Special requests cannot exceed {settings.SPECIAL_REQUESTS_MAX_LENGTH} characters",
            field="special_requests",
        )


def create_booking(db: Session, guest: User, data, today: Optional[date] = None) -> Booking:
    """
    Reserve one room and create a confirmed, unpaid booking.

    The total is always nights * apartment price; nothing the client sends
    about money is read.
    """
    _validate_request(data, today or utcnow().date())

    apartment = apartment_service.get_apartment(db, data.apartment_id)
    if not apartment.is_active:
        raise ConflictError("Apartment is not available for booking", error_code=ErrorCode.ROOM_UNAVAILABLE)

    nights = count_nights(data.check_in, data.check_out)
    total_amount = quantize_amount(nights * apartment.price)

    ticket_code = generate_ticket_code(db)
    if not apartment_service.reserve_room(db, apartment.id):
        db.rollback()
        raise apartment_service.room_unavailable(apartment)

    booking = Booking(
        apartment_id=apartment.id,
        guest_id=guest.id,
        guest_name=guest.full_name,
        guest_email=guest.email,
        check_in=data.check_in,
        check_out=data.check_out,
        guests=data.guests,
        nights=nights,
        total_amount=total_amount,
        payment_method=data.payment_method,
        payment_status=PaymentStatus.PENDING,
        booking_status=BookingStatus.CONFIRMED,
        ticket_code=ticket_code,
        special_requests=data.special_requests,
    )
    db.add(booking)
    try:
        db.commit()
    except IntegrityError:
        # Ticket code taken between the check and the insert; the room goes back too
        db.rollback()
        raise ConflictError("Could not allocate a unique ticket code, please retry")
    db.refresh(booking)

    logger.info(
        f"Booking {booking.id} ({booking.ticket_code}) created for apartment {apartment.id}: "
        f"{nights} night(s), total {total_amount}"
    )
    notification_service.emit(
        db,
        user_id=apartment.owner_id,
        type=NotificationType.BOOKING_CREATED,
        title="New booking",
        message=f"{guest.full_name or guest.email} booked {apartment.title} "
                f"from {booking.check_in} to {booking.check_out}.",
        booking_id=booking.id,
        apartment_id=apartment.id,
    )
    return booking


# ─── Lifecycle actions ────────────────────────────────────────────────────────

def check_in(db: Session, booking_id: UUID, actor: User, now: Optional[datetime] = None) -> Booking:
    booking = get_booking(db, booking_id)
    if booking.apartment.owner_id != actor.id and not actor.is_admin:
        raise ForbiddenError("Only the apartment owner can check guests in")
    if booking.booking_status != BookingStatus.CONFIRMED:
        raise _state_conflict(booking, "check in")

    if not _transition(
        db, booking.id, BookingStatus.CONFIRMED,
        {Booking.booking_status: BookingStatus.CHECKED_IN, Booking.check_in_time: now or utcnow()},
    ):
        db.rollback()
        db.refresh(booking)
        raise _state_conflict(booking, "check in")

    db.commit()
    db.refresh(booking)
    logger.info(f"Booking {booking.id} checked in by {actor.id}")
    notification_service.emit(
        db,
        user_id=booking.guest_id,
        type=NotificationType.GUEST_CHECKED_IN,
        title="Checked in",
        message=f"You are checked in at {booking.apartment.title}. Enjoy your stay!",
        booking_id=booking.id,
        apartment_id=booking.apartment_id,
    )
    return booking


def self_checkout(db: Session, booking_id: UUID, actor: User, now: Optional[datetime] = None) -> Booking:
    booking = get_booking(db, booking_id)
    if booking.guest_id != actor.id:
        raise ForbiddenError("Only the guest can check out of this booking")
    if booking.booking_status != BookingStatus.CHECKED_IN:
        raise _state_conflict(booking, "check out of")

    won = _transition(
        db, booking.id, BookingStatus.CHECKED_IN,
        {Booking.booking_status: BookingStatus.COMPLETED, Booking.check_out_time: now or utcnow()},
        Booking.check_out_time.is_(None),
    )
    if not won:
        # The sweep completed it first; nothing left to do
        db.rollback()
        db.refresh(booking)
        return booking

    apartment_service.release_room(db, booking.apartment_id)
    db.commit()
    db.refresh(booking)
    logger.info(f"Booking {booking.id} checked out by guest {actor.id}")
    notification_service.emit(
        db,
        user_id=booking.apartment.owner_id,
        type=NotificationType.GUEST_CHECKED_OUT,
        title="Guest checked out",
        message=f"{booking.guest_name or booking.guest_email} checked out of {booking.apartment.title}.",
        booking_id=booking.id,
        apartment_id=booking.apartment_id,
    )
    return booking


def cancel(db: Session, booking_id: UUID, actor: User, now: Optional[datetime] = None) -> Booking:
    booking = get_booking(db, booking_id)
    if booking.guest_id != actor.id and not actor.is_admin:
        raise ForbiddenError("Not authorized to cancel this booking")
    if booking.booking_status != BookingStatus.CONFIRMED or booking.payment_status == PaymentStatus.PAID:
        raise _state_conflict(booking, "cancel")

    if not _transition(
        db, booking.id, BookingStatus.CONFIRMED,
        {Booking.booking_status: BookingStatus.CANCELLED, Booking.cancelled_at: now or utcnow()},
        Booking.payment_status != PaymentStatus.PAID,
    ):
        db.rollback()
        db.refresh(booking)
        raise _state_conflict(booking, "cancel")

    apartment_service.release_room(db, booking.apartment_id)
    db.commit()
    db.refresh(booking)
    logger.info(f"Booking {booking.id} cancelled by {actor.id}")
    notification_service.emit(
        db,
        user_id=booking.apartment.owner_id,
        type=NotificationType.BOOKING_CANCELLED,
        title="Booking cancelled",
        message=f"Booking {booking.ticket_code} for {booking.apartment.title} was cancelled.",
        booking_id=booking.id,
        apartment_id=booking.apartment_id,
    )
    return booking


# ─── Background sweeps ────────────────────────────────────────────────────────

def auto_checkout_sweep(db: Session, now: Optional[datetime] = None) -> int:
    """
    Complete every checked-in booking whose check-out time has passed.

    Safe to run repeatedly or alongside guest check-outs: only bookings still
    checked-in are touched. Returns the number of bookings completed.
    """
    now = now or utcnow()
    candidates = (
        db.query(Booking)
        .filter(
            Booking.booking_status == BookingStatus.CHECKED_IN,
            Booking.check_out_time.is_(None),
            Booking.check_out <= now.date(),
        )
        .all()
    )

    completed: List[Booking] = []
    for booking in candidates:
        deadline = checkout_deadline(booking)
        if deadline >= now:
            continue
        if _transition(
            db, booking.id, BookingStatus.CHECKED_IN,
            {Booking.booking_status: BookingStatus.COMPLETED, Booking.check_out_time: deadline},
            Booking.check_out_time.is_(None),
        ):
            apartment_service.release_room(db, booking.apartment_id)
            completed.append(booking)
    db.commit()

    for booking in completed:
        db.refresh(booking)
        logger.info(f"Booking {booking.id} automatically checked out")
        notification_service.emit(
            db,
            user_id=booking.apartment.owner_id,
            type=NotificationType.AUTO_CHECKOUT,
            title="Guest auto check-out",
            message=f"{booking.guest_name or booking.guest_email} has been automatically checked out "
                    f"of {booking.apartment.title}. Booking period ended.",
            booking_id=booking.id,
            apartment_id=booking.apartment_id,
        )

    if completed:
        logger.info(f"Auto check-out sweep completed {len(completed)} booking(s)")
    return len(completed)


def release_stale_reservations(db: Session, now: Optional[datetime] = None) -> int:
    """
    Cancel confirmed bookings left unpaid past RESERVATION_HOLD_MINUTES and
    give their rooms back. Disabled when the hold is not configured.
    """
    if not settings.RESERVATION_HOLD_MINUTES:
        return 0

    now = now or utcnow()
    cutoff = now - timedelta(minutes=settings.RESERVATION_HOLD_MINUTES)
    candidates = (
        db.query(Booking)
        .filter(
            Booking.booking_status == BookingStatus.CONFIRMED,
            Booking.payment_status.in_([PaymentStatus.PENDING, PaymentStatus.FAILED]),
            Booking.created_at < cutoff,
        )
        .all()
    )

    released = 0
    for booking in candidates:
        if _transition(
            db, booking.id, BookingStatus.CONFIRMED,
            {Booking.booking_status: BookingStatus.CANCELLED, Booking.cancelled_at: now},
            Booking.payment_status != PaymentStatus.PAID,
        ):
            apartment_service.release_room(db, booking.apartment_id)
            released += 1
            logger.info(f"Booking {booking.id} released after unpaid hold expired")
    db.commit()
    return released
