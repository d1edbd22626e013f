"""
Identity verification workflow and the listing gate.

This module is the only place that moves an IdentityVerification between
states, and `can_list_apartments` is the only place that decides whether an
owner may list apartments or receive split payouts.
"""

import logging
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Dict, Optional, Protocol, Tuple
from uuid import UUID

from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.exceptions import ConflictError, ForbiddenError, FraudSignal, NotFoundError, ValidationError
from app.models.base import utcnow
from app.models.notification import NotificationType
from app.models.payment import PaymentAccount
from app.models.user import User, UserRole
from app.models.verification import (
    CheckResult,
    IdentityVerification,
    IdType,
    SubmissionSource,
    VerificationLevel,
    VerificationStatus,
)
from app.services import notification_service

logger = logging.getLogger(__name__)

# ─── ID number rules ──────────────────────────────────────────────────────────
# (id_type, country) -> inclusive (min, max) length. "*" matches any country.

ANY_COUNTRY = "*"
MIN_ID_NUMBER_LENGTH = 5

ID_NUMBER_RULES: Dict[Tuple[IdType, str], Tuple[int, int]] = {
    (IdType.NATIONAL_ID, ANY_COUNTRY): (8, 20),
    (IdType.PASSPORT, ANY_COUNTRY): (6, 12),
    (IdType.DRIVERS_LICENSE, ANY_COUNTRY): (6, 15),
    (IdType.VOTERS_ID, ANY_COUNTRY): (8, 15),
}

# Sub-check weights for the overall score; they sum to 100
CHECK_WEIGHTS = {
    "document_authenticity": 30,
    "biometric_match": 30,
    "face_match": 25,
    "duplicate_check": 15,
}

RESUBMITTABLE_STATUSES = (VerificationStatus.REJECTED, VerificationStatus.EXPIRED)


def id_number_length_rule(id_type: IdType, country: str) -> Optional[Tuple[int, int]]:
    return ID_NUMBER_RULES.get((id_type, country.upper())) or ID_NUMBER_RULES.get((id_type, ANY_COUNTRY))


def validate_id_number(id_number: str, id_type: IdType, country: str) -> bool:
    if not id_number or len(id_number) < MIN_ID_NUMBER_LENGTH:
        return False
    rule = id_number_length_rule(id_type, country)
    if rule is None:
        return False
    low, high = rule
    return low <= len(id_number) <= high


def age_on(date_of_birth: date, today: date) -> int:
    years = today.year - date_of_birth.year
    if (today.month, today.day) < (date_of_birth.month, date_of_birth.day):
        years -= 1
    return years


def validate_date_of_birth(date_of_birth: date, today: Optional[date] = None):
    today = today or utcnow().date()
    if date_of_birth > today:
        raise ValidationError("Date of birth cannot be in the future", field="date_of_birth")
    if age_on(date_of_birth, today) < settings.MINIMUM_AGE:
        raise ValidationError(
            f"You must be at least {settings.MINIMUM_AGE} years old to verify an identity",
            field="date_of_birth",
        )


# ─── External verifier ────────────────────────────────────────────────────────

@dataclass
class CheckOutcome:
    document_authenticity: CheckResult = CheckResult.PENDING
    biometric_match: CheckResult = CheckResult.PENDING
    face_match: CheckResult = CheckResult.PENDING
    duplicate_check: CheckResult = CheckResult.PENDING

    def as_dict(self) -> Dict[str, CheckResult]:
        return {name: getattr(self, name) for name in CHECK_WEIGHTS}


class IdentityVerifier(Protocol):
    """Document/biometric/face checks run by an outside provider."""

    def run_checks(self, db: Session, verification: IdentityVerification) -> CheckOutcome:
        ...


class SimulatedVerifier:
    """
    Stand-in for a real verification provider.

    Passes document and face checks once the matching images are on file,
    the biometric check when the capture quality clears the threshold, and
    the duplicate check when nobody else holds the same ID number.
    """

    def run_checks(self, db: Session, verification: IdentityVerification) -> CheckOutcome:
        outcome = CheckOutcome()

        outcome.document_authenticity = CheckResult.PASSED if verification.front_image else CheckResult.PENDING
        outcome.face_match = CheckResult.PASSED if verification.selfie_image else CheckResult.PENDING
        outcome.biometric_match = (
            CheckResult.PASSED
            if verification.capture_quality >= settings.MIN_FINGERPRINT_QUALITY
            else CheckResult.FAILED
        )
        outcome.duplicate_check = (
            CheckResult.FAILED if _find_duplicate(db, verification) else CheckResult.PASSED
        )
        return outcome


# ─── Queries ──────────────────────────────────────────────────────────────────

def _find_duplicate(db: Session, verification: IdentityVerification) -> Optional[IdentityVerification]:
    return (
        db.query(IdentityVerification)
        .filter(
            IdentityVerification.id_type == verification.id_type,
            IdentityVerification.id_number == verification.id_number,
            IdentityVerification.country == verification.country,
            IdentityVerification.user_id != verification.user_id,
            IdentityVerification.verification_status != VerificationStatus.REJECTED,
        )
        .first()
    )


def get_verification(db: Session, verification_id: UUID) -> IdentityVerification:
    verification = db.query(IdentityVerification).filter(IdentityVerification.id == verification_id).first()
    if not verification:
        raise NotFoundError("Identity verification", verification_id)
    return verification


def get_user_verification(db: Session, user_id: UUID) -> Optional[IdentityVerification]:
    return db.query(IdentityVerification).filter(IdentityVerification.user_id == user_id).first()


def list_verifications(db: Session, status: Optional[VerificationStatus] = None, skip: int = 0, limit: int = 20):
    query = db.query(IdentityVerification)
    if status:
        query = query.filter(IdentityVerification.verification_status == status)
    total = query.count()
    items = query.order_by(IdentityVerification.created_at.desc()).offset(skip).limit(limit).all()
    return items, total


# ─── The gate ─────────────────────────────────────────────────────────────────

def can_list_apartments(db: Session, user_id: UUID) -> bool:
    """Fully verified identity AND a verified payout account."""
    verification = get_user_verification(db, user_id)
    if verification is None or not verification.is_fully_verified:
        return False
    account = db.query(PaymentAccount).filter(PaymentAccount.owner_id == user_id).first()
    return account is not None and account.is_verified


def get_status(db: Session, user: User) -> dict:
    verification = get_user_verification(db, user.id)
    account = db.query(PaymentAccount).filter(PaymentAccount.owner_id == user.id).first()
    return {
        "verification_id": verification.id if verification else None,
        "verification_status": verification.verification_status if verification else VerificationStatus.NONE,
        "verification_level": verification.verification_level if verification else VerificationLevel.NONE,
        "results": verification.results if verification else None,
        "rejection_reason": verification.rejection_reason if verification else None,
        "expires_at": verification.expires_at if verification else None,
        "has_payment_account": account is not None,
        "payment_account_verified": bool(account and account.is_verified),
        "can_list_apartments": can_list_apartments(db, user.id),
    }


# ─── Workflow ─────────────────────────────────────────────────────────────────

def submit_verification(db: Session, user: User, id_data, biometric_data,
                        source: SubmissionSource = SubmissionSource.WEB) -> IdentityVerification:
    """
    Record an ID + biometric submission: status pending, level id_submitted.

    id_data carries id_type, id_number, country, full_name, date_of_birth;
    biometric_data carries capture_quality and optional fingerprint_hash,
    capture_device, captured_at, confidence.
    """
    if user.role not in (UserRole.OWNER, UserRole.ADMIN):
        raise ForbiddenError("Only apartment owners submit identity verification")

    id_number = id_data.id_number.strip().upper()
    country = id_data.country.strip().upper()
    if not validate_id_number(id_number, id_data.id_type, country):
        raise ValidationError(
            f"Invalid {id_data.id_type.value} number format",
            field="id_number",
            details={"id_type": id_data.id_type.value, "country": country},
        )
    validate_date_of_birth(id_data.date_of_birth)
    if biometric_data.capture_quality < settings.MIN_FINGERPRINT_QUALITY:
        raise ValidationError(
            f"Fingerprint capture quality must be at least {settings.MIN_FINGERPRINT_QUALITY}",
            field="capture_quality",
        )

    verification = get_user_verification(db, user.id)
    if verification is not None and verification.verification_status not in RESUBMITTABLE_STATUSES:
        raise ConflictError(
            f"Verification already {verification.verification_status.value}; "
            "resubmission is only allowed after rejection or expiry"
        )

    duplicate = (
        db.query(IdentityVerification)
        .filter(
            IdentityVerification.id_type == id_data.id_type,
            IdentityVerification.id_number == id_number,
            IdentityVerification.country == country,
            IdentityVerification.user_id != user.id,
            IdentityVerification.verification_status != VerificationStatus.REJECTED,
        )
        .first()
    )
    if duplicate:
        logger.warning(
            f"Duplicate identity submission by user {user.id}: "
            f"{id_data.id_type.value} already held by user {duplicate.user_id}"
        )
        raise FraudSignal(
            "This identity document is already registered to another account",
            details={"id_type": id_data.id_type.value, "country": country},
        )

    if verification is None:
        verification = IdentityVerification(user_id=user.id)
        db.add(verification)

    verification.id_type = id_data.id_type
    verification.id_number = id_number
    verification.country = country
    verification.full_name = id_data.full_name.strip()
    verification.date_of_birth = id_data.date_of_birth
    verification.fingerprint_hash = biometric_data.fingerprint_hash
    verification.capture_quality = biometric_data.capture_quality
    verification.capture_device = biometric_data.capture_device
    verification.captured_at = biometric_data.captured_at or utcnow()
    verification.confidence = biometric_data.confidence
    verification.submission_source = source

    # A resubmission starts over
    verification.verification_status = VerificationStatus.PENDING
    verification.verification_level = VerificationLevel.ID_SUBMITTED
    for check in CHECK_WEIGHTS:
        setattr(verification, check, CheckResult.PENDING)
    verification.overall_score = 0
    verification.rejection_reason = None
    verification.reviewed_by = None
    verification.verified_at = None
    verification.expires_at = None

    db.commit()
    db.refresh(verification)
    logger.info(f"Identity verification {verification.id} submitted by user {user.id}")
    return verification


def attach_documents(db: Session, user: User, front_image: Optional[str] = None,
                     back_image: Optional[str] = None, selfie_image: Optional[str] = None) -> IdentityVerification:
    verification = get_user_verification(db, user.id)
    if verification is None:
        raise NotFoundError("Identity verification")
    if verification.verification_status not in (VerificationStatus.PENDING, VerificationStatus.IN_REVIEW):
        raise ConflictError(
            f"Documents cannot be changed while verification is {verification.verification_status.value}"
        )

    if front_image:
        verification.front_image = front_image
    if back_image:
        verification.back_image = back_image
    if selfie_image:
        verification.selfie_image = selfie_image

    db.commit()
    db.refresh(verification)
    return verification


def _score(outcome: Dict[str, CheckResult]) -> int:
    return sum(weight for name, weight in CHECK_WEIGHTS.items() if outcome[name] == CheckResult.PASSED)


def _apply_outcome(verification: IdentityVerification, outcome: Dict[str, CheckResult], now: datetime):
    for name, result in outcome.items():
        setattr(verification, name, result)
    verification.overall_score = _score(outcome)

    failed = [name for name, result in outcome.items() if result == CheckResult.FAILED]
    if failed:
        verification.verification_status = VerificationStatus.REJECTED
        verification.verification_level = VerificationLevel.REJECTED
        verification.rejection_reason = "Failed checks: " + ", ".join(failed)
    elif all(result == CheckResult.PASSED for result in outcome.values()):
        verification.verification_status = VerificationStatus.VERIFIED
        verification.verification_level = VerificationLevel.FULLY_VERIFIED
        verification.verified_at = now
        verification.expires_at = now + timedelta(days=settings.VERIFICATION_VALIDITY_DAYS)
    else:
        verification.verification_status = VerificationStatus.IN_REVIEW
        verification.verification_level = VerificationLevel.BIOMETRIC_PENDING


def evaluate(db: Session, verification_id: UUID, verifier: IdentityVerifier) -> IdentityVerification:
    verification = get_verification(db, verification_id)

    if verification.verification_status == VerificationStatus.VERIFIED:
        return verification
    if verification.verification_status not in (VerificationStatus.PENDING, VerificationStatus.IN_REVIEW):
        raise ConflictError(f"Cannot evaluate a {verification.verification_status.value} verification")

    outcome = verifier.run_checks(db, verification).as_dict()
    _apply_outcome(verification, outcome, utcnow())
    db.commit()
    db.refresh(verification)

    logger.info(
        f"Verification {verification.id} evaluated: {verification.verification_status.value} "
        f"(score {verification.overall_score})"
    )
    _notify_user(db, verification)
    return verification


def admin_review(db: Session, verification_id: UUID, admin: User, approve: bool,
                 reason: Optional[str] = None) -> IdentityVerification:
    """Manual approve/reject of a pending or in-review verification."""
    verification = get_verification(db, verification_id)
    if verification.verification_status not in (VerificationStatus.PENDING, VerificationStatus.IN_REVIEW):
        raise ConflictError(f"Verification is already {verification.verification_status.value}")

    now = utcnow()
    if approve:
        _apply_outcome(verification, {name: CheckResult.PASSED for name in CHECK_WEIGHTS}, now)
    else:
        if not reason or not reason.strip():
            raise ValidationError("A rejection reason is required", field="reason")
        verification.verification_status = VerificationStatus.REJECTED
        verification.verification_level = VerificationLevel.REJECTED
        verification.rejection_reason = reason.strip()
        verification.overall_score = 0
    verification.reviewed_by = admin.id

    db.commit()
    db.refresh(verification)
    logger.info(
        f"Verification {verification.id} {'approved' if approve else 'rejected'} by admin {admin.id}"
    )
    _notify_user(db, verification)
    return verification


def expire_verifications(db: Session, now: Optional[datetime] = None) -> int:
    now = now or utcnow()
    expired = (
        db.query(IdentityVerification)
        .filter(
            IdentityVerification.verification_status == VerificationStatus.VERIFIED,
            IdentityVerification.expires_at.isnot(None),
            IdentityVerification.expires_at < now,
        )
        .update(
            {
                IdentityVerification.verification_status: VerificationStatus.EXPIRED,
                IdentityVerification.verification_level: VerificationLevel.NONE,
            },
            synchronize_session=False,
        )
    )
    db.commit()
    if expired:
        logger.info(f"Expired {expired} identity verification(s)")
    return expired


def _notify_user(db: Session, verification: IdentityVerification):
    status = verification.verification_status.value.replace("_", " ")
    message = f"Your identity verification is now {status}."
    if verification.rejection_reason:
        message += f" Reason: {verification.rejection_reason}"
    notification_service.emit(
        db,
        user_id=verification.user_id,
        type=NotificationType.VERIFICATION_UPDATE,
        title="Identity verification update",
        message=message,
    )
