from fastapi import APIRouter, Depends, status, Query
from sqlalchemy.orm import Session
from app.core.database import get_db
from app.models.booking import BookingStatus
from app.models.user import User
from app.schemas.booking import BookingCreate, BookingResponse, BookingListResponse
from app.api.deps import get_current_active_user, require_owner
from app.services import booking_service
from typing import Optional
from uuid import UUID

router = APIRouter(prefix="/bookings", tags=["Bookings"])


# ─── CREATE ───────────────────────────────────────────────────────────────────

@router.post("", response_model=BookingResponse, status_code=status.HTTP_201_CREATED)
async def create_booking(
    data: BookingCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
):
    """Reserve a room. The total is computed from the nightly price."""
    return booking_service.create_booking(db, current_user, data)


# ─── LISTS ────────────────────────────────────────────────────────────────────

@router.get("/my", response_model=BookingListResponse)
async def my_bookings(
    status_filter: Optional[BookingStatus] = Query(None, alias="status"),
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
):
    return booking_service.list_my_bookings(db, current_user, status_filter, page, limit)


@router.get("/owner", response_model=BookingListResponse)
async def owner_bookings(
    status_filter: Optional[BookingStatus] = Query(None, alias="status"),
    page: int = Query(1, ge=1),
    limit: int = Query(100, ge=1, le=100),
    db: Session = Depends(get_db),
    current_user: User = Depends(require_owner),
):
    """Bookings across all of the caller's apartments."""
    return booking_service.list_owner_bookings(db, current_user, status_filter, page, limit)


@router.get("/ticket/{ticket_code}", response_model=BookingResponse)
async def booking_by_ticket(
    ticket_code: str,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_owner),
):
    return booking_service.get_by_ticket_code(db, current_user, ticket_code)


@router.get("/apartment/{apartment_id}", response_model=BookingListResponse)
async def apartment_bookings(
    apartment_id: UUID,
    status_filter: Optional[BookingStatus] = Query(None, alias="status"),
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
):
    return booking_service.list_apartment_bookings(db, current_user, apartment_id, status_filter, page, limit)


@router.get("/{booking_id}", response_model=BookingResponse)
async def get_booking(
    booking_id: UUID,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
):
    return booking_service.get_booking_for_actor(db, current_user, booking_id)


# ─── LIFECYCLE ────────────────────────────────────────────────────────────────

@router.post("/{booking_id}/check-in", response_model=BookingResponse)
async def check_in(
    booking_id: UUID,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
):
    return booking_service.check_in(db, booking_id, current_user)


@router.post("/{booking_id}/checkout", response_model=BookingResponse)
async def checkout(
    booking_id: UUID,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
):
    return booking_service.self_checkout(db, booking_id, current_user)


@router.post("/{booking_id}/cancel", response_model=BookingResponse)
async def cancel_booking(
    booking_id: UUID,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
):
    return booking_service.cancel(db, booking_id, current_user)
