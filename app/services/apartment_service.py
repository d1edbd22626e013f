"""
Apartment listings and their room inventory.

`available_rooms` is only ever changed through single conditional UPDATE
statements so that concurrent bookings can never push it below zero or
above `total_rooms`.
"""

import logging
from typing import Optional
from uuid import UUID

from sqlalchemy.orm import Session

from app.core.exceptions import ConflictError, ErrorCode, ForbiddenError, NotFoundError, ValidationError
from app.models.apartment import Apartment
from app.models.user import User, UserRole
from app.services.verification_service import can_list_apartments
from app.utils.currency import quantize_amount

logger = logging.getLogger(__name__)

LISTING_GATE_MESSAGE = (
    "Complete identity verification and set up a verified payment account before listing apartments"
)


def get_apartment(db: Session, apartment_id: UUID) -> Apartment:
    apartment = db.query(Apartment).filter(Apartment.id == apartment_id).first()
    if not apartment:
        raise NotFoundError("Apartment", apartment_id)
    return apartment


def _require_manager(apartment: Apartment, actor: User):
    if apartment.owner_id != actor.id and not actor.is_admin:
        raise ForbiddenError("You can only manage your own apartments")


def list_apartments(
    db: Session,
    location: Optional[str] = None,
    min_price: Optional[float] = None,
    max_price: Optional[float] = None,
    min_available_rooms: Optional[int] = None,
    skip: int = 0,
    limit: int = 20,
):
    query = db.query(Apartment).filter(Apartment.is_active.is_(True))
    if location:
        query = query.filter(Apartment.location.ilike(f"%{location}%"))
    if min_price is not None:
        query = query.filter(Apartment.price >= min_price)
    if max_price is not None:
        query = query.filter(Apartment.price <= max_price)
    if min_available_rooms:
        query = query.filter(Apartment.available_rooms >= min_available_rooms)
    total = query.count()
    items = query.order_by(Apartment.created_at.desc()).offset(skip).limit(limit).all()
    return items, total


def list_owner_apartments(db: Session, owner: User):
    return (
        db.query(Apartment)
        .filter(Apartment.owner_id == owner.id)
        .order_by(Apartment.created_at.desc())
        .all()
    )


def create_apartment(db: Session, owner: User, data) -> Apartment:
    if owner.role not in (UserRole.OWNER, UserRole.ADMIN):
        raise ForbiddenError("Only apartment owners can list apartments")
    if not can_list_apartments(db, owner.id):
        raise ForbiddenError(LISTING_GATE_MESSAGE)
    if data.total_rooms < 1:
        raise ValidationError("An apartment needs at least one room", field="total_rooms")
    if data.price <= 0:
        raise ValidationError("Price must be greater than zero", field="price")

    apartment = Apartment(
        owner_id=owner.id,
        title=data.title.strip(),
        description=data.description,
        location=data.location.strip(),
        price=quantize_amount(data.price),
        total_rooms=data.total_rooms,
        available_rooms=data.total_rooms,
        amenities=list(data.amenities or []),
        main_image=data.main_image,
        is_active=True,
    )
    db.add(apartment)
    db.commit()
    db.refresh(apartment)
    logger.info(f"Apartment {apartment.id} listed by owner {owner.id} with {apartment.total_rooms} room(s)")
    return apartment


def update_apartment(db: Session, actor: User, apartment_id: UUID, data) -> Apartment:
    apartment = get_apartment(db, apartment_id)
    _require_manager(apartment, actor)

    changes = data.model_dump(exclude_unset=True)
    new_total = changes.pop("total_rooms", None)

    if "price" in changes:
        if changes["price"] is None or changes["price"] <= 0:
            raise ValidationError("Price must be greater than zero", field="price")
        changes["price"] = quantize_amount(changes["price"])
    for field in ("title", "location"):
        if field in changes and not (changes[field] or "").strip():
            raise ValidationError(f"{field} must not be empty", field=field)

    if new_total is not None and new_total != apartment.total_rooms:
        if new_total < 1:
            raise ValidationError("An apartment needs at least one room", field="total_rooms")
        # available_rooms moves by the same delta; fails if rooms in use exceed the new total
        updated = (
            db.query(Apartment)
            .filter(
                Apartment.id == apartment_id,
                Apartment.total_rooms - Apartment.available_rooms <= new_total,
            )
            .update(
                {
                    Apartment.available_rooms: Apartment.available_rooms + (new_total - Apartment.total_rooms),
                    Apartment.total_rooms: new_total,
                },
                synchronize_session=False,
            )
        )
        if not updated:
            db.rollback()
            raise ConflictError(
                "Cannot reduce total rooms below the number currently occupied",
                details={"occupied_rooms": apartment.occupied_rooms, "requested_total": new_total},
            )

    for field, value in changes.items():
        setattr(apartment, field, value)

    db.commit()
    db.refresh(apartment)
    return apartment


def set_active(db: Session, actor: User, apartment_id: UUID, active: bool) -> Apartment:
    apartment = get_apartment(db, apartment_id)
    _require_manager(apartment, actor)

    if active and not can_list_apartments(db, apartment.owner_id):
        raise ForbiddenError(LISTING_GATE_MESSAGE)

    apartment.is_active = active
    db.commit()
    db.refresh(apartment)
    logger.info(f"Apartment {apartment.id} {'activated' if active else 'deactivated'} by {actor.id}")
    return apartment


# ─── Inventory ────────────────────────────────────────────────────────────────

def reserve_room(db: Session, apartment_id: UUID) -> bool:
    """Decrement available_rooms iff the apartment is active and has a room. No commit."""
    updated = (
        db.query(Apartment)
        .filter(
            Apartment.id == apartment_id,
            Apartment.is_active.is_(True),
            Apartment.available_rooms >= 1,
        )
        .update({Apartment.available_rooms: Apartment.available_rooms - 1}, synchronize_session=False)
    )
    return updated == 1


def release_room(db: Session, apartment_id: UUID) -> bool:
    """Increment available_rooms iff it stays within total_rooms. No commit."""
    updated = (
        db.query(Apartment)
        .filter(
            Apartment.id == apartment_id,
            Apartment.available_rooms < Apartment.total_rooms,
        )
        .update({Apartment.available_rooms: Apartment.available_rooms + 1}, synchronize_session=False)
    )
    if not updated:
        logger.warning(f"Room release for apartment {apartment_id} skipped: inventory already full")
    return updated == 1


def room_unavailable(apartment: Apartment) -> ConflictError:
    return ConflictError(
        "No rooms available",
        error_code=ErrorCode.ROOM_UNAVAILABLE,
        details={"apartment_id": str(apartment.id)},
    )
