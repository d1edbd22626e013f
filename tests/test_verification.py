from datetime import date, datetime, timedelta

import pytest

from app.core.config import settings
from app.core.exceptions import ConflictError, ForbiddenError, FraudSignal, ValidationError
from app.models.notification import Notification, NotificationType
from app.models.payment import PaymentAccount
from app.models.user import UserRole
from app.models.verification import CheckResult, IdType, VerificationLevel, VerificationStatus
from app.schemas.verification import BiometricData, IdData
from app.services import verification_service
from app.services.verification_service import CheckOutcome, SimulatedVerifier


def _id_data(id_number="GHA123456789", id_type=IdType.NATIONAL_ID, dob=date(1990, 5, 17), country="GH"):
    return IdData(id_type=id_type, id_number=id_number, country=country, full_name="Kofi Mensah",
                  date_of_birth=dob)


def _biometric(quality=85):
    return BiometricData(capture_quality=quality, fingerprint_hash="ab" * 32, capture_device="SecuGen Hamster")


class StubVerifier:
    def __init__(self, **results):
        self.outcome = CheckOutcome(**results)

    def run_checks(self, db, verification):
        return self.outcome


ALL_PASSED = dict(
    document_authenticity=CheckResult.PASSED,
    biometric_match=CheckResult.PASSED,
    face_match=CheckResult.PASSED,
    duplicate_check=CheckResult.PASSED,
)


@pytest.fixture
def applicant(make_user):
    return make_user(UserRole.OWNER, full_name="Kofi Mensah")


@pytest.fixture
def submitted(db, applicant):
    return verification_service.submit_verification(db, applicant, _id_data(), _biometric())


# ─── ID number rules ──────────────────────────────────────────────────────────

@pytest.mark.parametrize("id_type,id_number,valid", [
    (IdType.NATIONAL_ID, "1234567", False),
    (IdType.NATIONAL_ID, "12345678", True),
    (IdType.NATIONAL_ID, "1" * 20, True),
    (IdType.NATIONAL_ID, "1" * 21, False),
    (IdType.PASSPORT, "G12345", True),
    (IdType.PASSPORT, "G1234567890AB", False),
    (IdType.DRIVERS_LICENSE, "DL12345", True),
    (IdType.DRIVERS_LICENSE, "D" * 16, False),
    (IdType.VOTERS_ID, "V1234567", True),
    (IdType.VOTERS_ID, "V123456", False),
    (IdType.PASSPORT, "1234", False),
])
def test_id_number_length_rules(id_type, id_number, valid):
    assert verification_service.validate_id_number(id_number, id_type, "GH") is valid


def test_country_override_takes_precedence(monkeypatch):
    rules = dict(verification_service.ID_NUMBER_RULES)
    rules[(IdType.NATIONAL_ID, "NG")] = (11, 11)
    monkeypatch.setattr(verification_service, "ID_NUMBER_RULES", rules)

    assert verification_service.validate_id_number("12345678901", IdType.NATIONAL_ID, "ng")
    assert not verification_service.validate_id_number("12345678", IdType.NATIONAL_ID, "NG")
    assert verification_service.validate_id_number("12345678", IdType.NATIONAL_ID, "GH")


def test_age_is_counted_in_whole_years():
    assert verification_service.age_on(date(2007, 1, 9), date(2025, 1, 8)) == 17
    assert verification_service.age_on(date(2007, 1, 8), date(2025, 1, 8)) == 18


def test_underage_and_future_dates_rejected():
    with pytest.raises(ValidationError):
        verification_service.validate_date_of_birth(date(2010, 1, 1), today=date(2025, 1, 8))
    with pytest.raises(ValidationError):
        verification_service.validate_date_of_birth(date(2026, 1, 1), today=date(2025, 1, 8))
    verification_service.validate_date_of_birth(date(2007, 1, 8), today=date(2025, 1, 8))


# ─── Submission ───────────────────────────────────────────────────────────────

def test_submission_starts_pending(submitted):
    assert submitted.verification_status == VerificationStatus.PENDING
    assert submitted.verification_level == VerificationLevel.ID_SUBMITTED
    assert submitted.id_number == "GHA123456789"
    assert all(result == CheckResult.PENDING for name, result in submitted.results.items() if name != "overall_score")


def test_guests_cannot_submit(db, make_user):
    with pytest.raises(ForbiddenError):
        verification_service.submit_verification(db, make_user(UserRole.GUEST), _id_data(), _biometric())


def test_invalid_id_number_rejected(db, applicant):
    with pytest.raises(ValidationError) as exc:
        verification_service.submit_verification(db, applicant, _id_data(id_number="1234"), _biometric())
    assert exc.value.details["field"] == "id_number"


def test_low_capture_quality_rejected(db, applicant):
    with pytest.raises(ValidationError):
        verification_service.submit_verification(
            db, applicant, _id_data(), _biometric(quality=settings.MIN_FINGERPRINT_QUALITY - 1)
        )


def test_cannot_resubmit_while_pending(db, applicant, submitted):
    with pytest.raises(ConflictError):
        verification_service.submit_verification(db, applicant, _id_data(), _biometric())


def test_resubmission_after_rejection_resets_checks(db, applicant, submitted, admin):
    verification_service.admin_review(db, submitted.id, admin, approve=False, reason="Blurry document")
    again = verification_service.submit_verification(db, applicant, _id_data(id_number="GHA987654321"), _biometric())

    assert again.id == submitted.id
    assert again.verification_status == VerificationStatus.PENDING
    assert again.rejection_reason is None
    assert again.overall_score == 0


def test_duplicate_identity_is_a_fraud_signal(db, submitted, make_user):
    other = make_user(UserRole.OWNER)
    with pytest.raises(FraudSignal):
        verification_service.submit_verification(db, other, _id_data(), _biometric())


# ─── Evaluation ───────────────────────────────────────────────────────────────

def test_all_checks_passed_fully_verifies(db, submitted, applicant):
    result = verification_service.evaluate(db, submitted.id, StubVerifier(**ALL_PASSED))

    assert result.verification_status == VerificationStatus.VERIFIED
    assert result.verification_level == VerificationLevel.FULLY_VERIFIED
    assert result.overall_score == 100
    assert result.expires_at - result.verified_at == timedelta(days=settings.VERIFICATION_VALIDITY_DAYS)
    assert db.query(Notification).filter(
        Notification.user_id == applicant.id, Notification.type == NotificationType.VERIFICATION_UPDATE
    ).count() == 1


def test_any_failed_check_rejects(db, submitted):
    verifier = StubVerifier(**{**ALL_PASSED, "face_match": CheckResult.FAILED})
    result = verification_service.evaluate(db, submitted.id, verifier)

    assert result.verification_status == VerificationStatus.REJECTED
    assert result.verification_level == VerificationLevel.REJECTED
    assert "face_match" in result.rejection_reason
    assert result.overall_score == 75


def test_pending_checks_leave_it_in_review(db, submitted):
    verifier = StubVerifier(document_authenticity=CheckResult.PASSED, biometric_match=CheckResult.PASSED)
    result = verification_service.evaluate(db, submitted.id, verifier)

    assert result.verification_status == VerificationStatus.IN_REVIEW
    assert result.verification_level == VerificationLevel.BIOMETRIC_PENDING
    assert result.overall_score == 60


def test_verified_record_never_moves_backwards(db, submitted):
    verification_service.evaluate(db, submitted.id, StubVerifier(**ALL_PASSED))
    failing = StubVerifier(**{**ALL_PASSED, "document_authenticity": CheckResult.FAILED})
    result = verification_service.evaluate(db, submitted.id, failing)
    assert result.verification_status == VerificationStatus.VERIFIED


def test_rejected_record_cannot_be_evaluated(db, submitted, admin):
    verification_service.admin_review(db, submitted.id, admin, approve=False, reason="Mismatch")
    with pytest.raises(ConflictError):
        verification_service.evaluate(db, submitted.id, StubVerifier(**ALL_PASSED))


def test_simulated_verifier_waits_for_images(db, submitted):
    result = verification_service.evaluate(db, submitted.id, SimulatedVerifier())
    assert result.verification_status == VerificationStatus.IN_REVIEW
    assert result.biometric_match == CheckResult.PASSED
    assert result.document_authenticity == CheckResult.PENDING

    verification_service.attach_documents(
        db, submitted.user, front_image="http://x/front.jpg", selfie_image="http://x/selfie.jpg"
    )
    result = verification_service.evaluate(db, submitted.id, SimulatedVerifier())
    assert result.verification_status == VerificationStatus.VERIFIED


# ─── Admin review & expiry ────────────────────────────────────────────────────

def test_admin_approval(db, submitted, admin):
    result = verification_service.admin_review(db, submitted.id, admin, approve=True)
    assert result.is_fully_verified
    assert result.reviewed_by == admin.id


def test_rejection_needs_a_reason(db, submitted, admin):
    with pytest.raises(ValidationError):
        verification_service.admin_review(db, submitted.id, admin, approve=False, reason="  ")


def test_expired_verifications(db, submitted, admin):
    verification_service.admin_review(db, submitted.id, admin, approve=True)
    db.refresh(submitted)

    assert verification_service.expire_verifications(db, now=submitted.expires_at - timedelta(days=1)) == 0
    assert verification_service.expire_verifications(db, now=submitted.expires_at + timedelta(days=1)) == 1
    db.refresh(submitted)
    assert submitted.verification_status == VerificationStatus.EXPIRED
    assert submitted.verification_level == VerificationLevel.NONE


# ─── The listing gate ─────────────────────────────────────────────────────────

def test_gate_requires_identity_and_payment_account(db, submitted, applicant, admin):
    assert not verification_service.can_list_apartments(db, applicant.id)

    verification_service.admin_review(db, submitted.id, admin, approve=True)
    assert not verification_service.can_list_apartments(db, applicant.id)

    db.add(PaymentAccount(owner_id=applicant.id, business_name="KM", settlement_bank="040",
                          account_number="0123456789", subaccount_code="ACCT_x", is_verified=True))
    db.commit()
    assert verification_service.can_list_apartments(db, applicant.id)

    status = verification_service.get_status(db, applicant)
    assert status["can_list_apartments"] is True
    assert status["payment_account_verified"] is True


def test_gate_closes_when_verification_expires(db, owner):
    assert verification_service.can_list_apartments(db, owner.id)
    verification_service.expire_verifications(db, now=datetime(2027, 1, 1))
    assert not verification_service.can_list_apartments(db, owner.id)
