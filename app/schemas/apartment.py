from pydantic import BaseModel, Field, field_validator
from typing import Optional, List
from uuid import UUID
from datetime import datetime


# ─── Apartment Base ───────────────────────────────────────────────────────────

class ApartmentBase(BaseModel):
    title: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = None
    location: str = Field(..., min_length=1, max_length=255)
    price: float                       # nightly, display currency
    total_rooms: int
    amenities: Optional[List[str]] = []
    main_image: Optional[str] = None


class ApartmentCreate(ApartmentBase):
    @field_validator('amenities')
    @classmethod
    def clean_amenities(cls, v):
        return [a.strip() for a in (v or []) if a and a.strip()]


# Every field optional; only fields actually sent are applied
class ApartmentUpdate(BaseModel):
    title: Optional[str] = None
    description: Optional[str] = None
    location: Optional[str] = None
    price: Optional[float] = None
    total_rooms: Optional[int] = None
    amenities: Optional[List[str]] = None
    main_image: Optional[str] = None


# ─── Response Schemas ─────────────────────────────────────────────────────────

class ApartmentResponse(ApartmentBase):
    id: UUID
    owner_id: UUID
    available_rooms: int
    is_active: bool
    created_at: datetime
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class ApartmentListResponse(BaseModel):
    items: List[ApartmentResponse]
    total: int
    skip: int
    limit: int
