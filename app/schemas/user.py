from pydantic import BaseModel, EmailStr, field_validator
from typing import Optional
from uuid import UUID
from datetime import datetime
from app.models.user import UserRole
import re

# Accepts local or international format, keeps a leading + and digits only
def normalize_phone(phone: str) -> str:
    phone = re.sub(r'[\s\-\(\)]', '', phone)

    if not re.match(r'^\+?\d{9,15}$', phone):
        raise ValueError('Invalid phone number')

    return phone

class UserResponse(BaseModel):
    id: UUID
    email: EmailStr
    full_name: Optional[str] = None
    phone_number: Optional[str] = None
    role: UserRole
    is_active: bool
    last_login_at: Optional[datetime] = None
    created_at: datetime
    updated_at: Optional[datetime] = None

    model_config = {"from_attributes": True}

class UserUpdate(BaseModel):
    full_name: Optional[str] = None
    phone_number: Optional[str] = None

    @field_validator('phone_number')
    @classmethod
    def validate_phone(cls, v):
        return normalize_phone(v) if v else v

    @field_validator('full_name')
    @classmethod
    def validate_full_name(cls, v):
        if v is not None and not v.strip():
            raise ValueError('Full name must not be empty')
        return v.strip() if v else v

class RoleSwitchRequest(BaseModel):
    role: UserRole

    @field_validator('role')
    @classmethod
    def role_must_be_self_assignable(cls, v):
        if v == UserRole.ADMIN:
            raise ValueError('The admin role cannot be self-assigned')
        return v
