from pydantic import BaseModel, Field, field_validator
from typing import Optional, List, Dict, Any
from uuid import UUID
from datetime import date, datetime
from app.models.verification import (
    CheckResult,
    IdType,
    SubmissionSource,
    VerificationLevel,
    VerificationStatus,
)


# ─── Submission ───────────────────────────────────────────────────────────────

class IdData(BaseModel):
    id_type: IdType
    id_number: str
    country: str = Field(..., min_length=2, max_length=2)   # ISO 3166-1 alpha-2
    full_name: str
    date_of_birth: date

    @field_validator('id_number')
    @classmethod
    def strip_id_number(cls, v: str) -> str:
        # Spaces and dashes are formatting only
        return v.replace(' ', '').replace('-', '')

    @field_validator('full_name')
    @classmethod
    def full_name_must_not_be_empty(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError('full_name must not be empty')
        return v.strip()


class BiometricData(BaseModel):
    capture_quality: int = Field(..., ge=0, le=100)
    fingerprint_hash: Optional[str] = None
    capture_device: Optional[str] = None
    captured_at: Optional[datetime] = None
    confidence: Optional[float] = Field(None, ge=0, le=1)


class VerificationSubmitRequest(BaseModel):
    id_data: IdData
    biometric_data: BiometricData
    source: SubmissionSource = SubmissionSource.WEB


# ─── Responses ────────────────────────────────────────────────────────────────

class VerificationResponse(BaseModel):
    id: UUID
    user_id: UUID
    id_type: IdType
    country: str
    full_name: str
    verification_status: VerificationStatus
    verification_level: VerificationLevel
    document_authenticity: CheckResult
    biometric_match: CheckResult
    face_match: CheckResult
    duplicate_check: CheckResult
    overall_score: int
    front_image: Optional[str] = None
    back_image: Optional[str] = None
    selfie_image: Optional[str] = None
    rejection_reason: Optional[str] = None
    reviewed_by: Optional[UUID] = None
    verified_at: Optional[datetime] = None
    expires_at: Optional[datetime] = None
    submission_source: SubmissionSource
    created_at: datetime
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class VerificationStatusResponse(BaseModel):
    verification_id: Optional[UUID] = None
    verification_status: VerificationStatus
    verification_level: VerificationLevel
    results: Optional[Dict[str, Any]] = None   # sub-check results plus overall_score
    rejection_reason: Optional[str] = None
    expires_at: Optional[datetime] = None
    has_payment_account: bool
    payment_account_verified: bool
    can_list_apartments: bool


class VerificationListResponse(BaseModel):
    items: List[VerificationResponse]
    total: int
    skip: int
    limit: int


# ─── Admin Actions ────────────────────────────────────────────────────────────

class VerificationRejectRequest(BaseModel):
    reason: str

    @field_validator('reason')
    @classmethod
    def reason_must_not_be_empty(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError('A rejection reason is required')
        return v.strip()
