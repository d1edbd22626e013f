from fastapi import APIRouter, Depends, status, Query
from sqlalchemy.orm import Session
from app.core.database import get_db
from app.models.user import User
from app.schemas.apartment import ApartmentCreate, ApartmentUpdate, ApartmentResponse, ApartmentListResponse
from app.api.deps import get_current_active_user, require_owner
from app.services import apartment_service
from typing import List, Optional
from uuid import UUID

router = APIRouter(prefix="/apartments", tags=["Apartments"])


# ─── CREATE ───────────────────────────────────────────────────────────────────

@router.post("", response_model=ApartmentResponse, status_code=status.HTTP_201_CREATED)
async def create_apartment(
    data: ApartmentCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_owner),
):
    """List a new apartment. Requires a verified identity and payout account."""
    return apartment_service.create_apartment(db, current_user, data)


# ─── LIST (public) ────────────────────────────────────────────────────────────

@router.get("", response_model=ApartmentListResponse)
async def list_apartments(
    db: Session = Depends(get_db),
    location: Optional[str] = Query(None),
    min_price: Optional[float] = Query(None, ge=0),
    max_price: Optional[float] = Query(None, ge=0),
    min_available_rooms: Optional[int] = Query(None, ge=1),
    skip: int = Query(0, ge=0),
    limit: int = Query(20, ge=1, le=100),
):
    items, total = apartment_service.list_apartments(
        db, location, min_price, max_price, min_available_rooms, skip, limit
    )
    return {"items": items, "total": total, "skip": skip, "limit": limit}


@router.get("/mine", response_model=List[ApartmentResponse])
async def list_my_apartments(
    db: Session = Depends(get_db),
    current_user: User = Depends(require_owner),
):
    return apartment_service.list_owner_apartments(db, current_user)


# ─── DETAIL ───────────────────────────────────────────────────────────────────

@router.get("/{apartment_id}", response_model=ApartmentResponse)
async def get_apartment(apartment_id: UUID, db: Session = Depends(get_db)):
    return apartment_service.get_apartment(db, apartment_id)


# ─── UPDATE ───────────────────────────────────────────────────────────────────

@router.patch("/{apartment_id}", response_model=ApartmentResponse)
async def update_apartment(
    apartment_id: UUID,
    data: ApartmentUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
):
    return apartment_service.update_apartment(db, current_user, apartment_id, data)


@router.post("/{apartment_id}/activate", response_model=ApartmentResponse)
async def activate_apartment(
    apartment_id: UUID,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
):
    return apartment_service.set_active(db, current_user, apartment_id, True)


@router.post("/{apartment_id}/deactivate", response_model=ApartmentResponse)
async def deactivate_apartment(
    apartment_id: UUID,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
):
    return apartment_service.set_active(db, current_user, apartment_id, False)
