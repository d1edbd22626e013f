from sqlalchemy import Column, String, Integer, Float, Text, Enum, ForeignKey, Date, DateTime, Uuid, UniqueConstraint
from sqlalchemy.orm import relationship
from app.models.base import BaseModel
import enum

class IdType(str, enum.Enum):
    NATIONAL_ID = "national_id"
    PASSPORT = "passport"
    DRIVERS_LICENSE = "drivers_license"
    VOTERS_ID = "voters_id"

class VerificationStatus(str, enum.Enum):
    NONE = "none"
    PENDING = "pending"
    IN_REVIEW = "in_review"
    VERIFIED = "verified"
    REJECTED = "rejected"
    EXPIRED = "expired"

class VerificationLevel(str, enum.Enum):
    NONE = "none"
    ID_SUBMITTED = "id_submitted"
    BIOMETRIC_PENDING = "biometric_pending"
    FULLY_VERIFIED = "fully_verified"
    REJECTED = "rejected"

class CheckResult(str, enum.Enum):
    PENDING = "pending"
    PASSED = "passed"
    FAILED = "failed"

class SubmissionSource(str, enum.Enum):
    WEB = "web"
    MOBILE = "mobile"

class IdentityVerification(BaseModel):
    __tablename__ = "identity_verifications"
    __table_args__ = (
        UniqueConstraint("user_id", name="uq_identity_verification_user"),
    )

    user_id = Column(Uuid(as_uuid=True), ForeignKey("users.id"), nullable=False, index=True)
    user = relationship("User", back_populates="identity_verification", foreign_keys=[user_id])

    # Submitted ID
    id_type = Column(Enum(IdType), nullable=False)
    id_number = Column(String(20), nullable=False, index=True)
    country = Column(String(2), nullable=False)
    full_name = Column(String(100), nullable=False)
    date_of_birth = Column(Date, nullable=False)

    # Biometric capture metadata (templates never leave the capture device)
    fingerprint_hash = Column(String(128), nullable=True)
    capture_quality = Column(Integer, nullable=False)
    capture_device = Column(String(100), nullable=True)
    captured_at = Column(DateTime, nullable=True)
    confidence = Column(Float, nullable=True)

    # Document images
    front_image = Column(String(255), nullable=True)
    back_image = Column(String(255), nullable=True)
    selfie_image = Column(String(255), nullable=True)

    verification_status = Column(Enum(VerificationStatus), default=VerificationStatus.PENDING, nullable=False, index=True)
    verification_level = Column(Enum(VerificationLevel), default=VerificationLevel.ID_SUBMITTED, nullable=False)

    # Sub-check results
    document_authenticity = Column(Enum(CheckResult), default=CheckResult.PENDING, nullable=False)
    biometric_match = Column(Enum(CheckResult), default=CheckResult.PENDING, nullable=False)
    face_match = Column(Enum(CheckResult), default=CheckResult.PENDING, nullable=False)
    duplicate_check = Column(Enum(CheckResult), default=CheckResult.PENDING, nullable=False)
    overall_score = Column(Integer, default=0, nullable=False)

    rejection_reason = Column(Text, nullable=True)
    reviewed_by = Column(Uuid(as_uuid=True), ForeignKey("users.id"), nullable=True)
    verified_at = Column(DateTime, nullable=True)
    expires_at = Column(DateTime, nullable=True)
    submission_source = Column(Enum(SubmissionSource), default=SubmissionSource.WEB, nullable=False)

    @property
    def results(self) -> dict:
        return {
            "document_authenticity": self.document_authenticity,
            "biometric_match": self.biometric_match,
            "face_match": self.face_match,
            "duplicate_check": self.duplicate_check,
            "overall_score": self.overall_score,
        }

    @property
    def is_fully_verified(self) -> bool:
        checks = (self.document_authenticity, self.biometric_match, self.face_match, self.duplicate_check)
        return (
            self.verification_level == VerificationLevel.FULLY_VERIFIED
            and self.verification_status == VerificationStatus.VERIFIED
            and all(c == CheckResult.PASSED for c in checks)
        )
