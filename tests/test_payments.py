import asyncio
import json
import logging
from datetime import date, datetime

import pytest

from app.core.config import settings
from app.core.exceptions import (
    AuthenticationError,
    ConflictError,
    ForbiddenError,
    FraudSignal,
    NotFoundError,
    PaymentGatewayError,
    ValidationError,
)
from app.models.booking import BookingStatus, PaymentStatus
from app.models.notification import Notification, NotificationType
from app.models.payment import CommissionRecord, CommissionStatus, PaymentTransaction, TransactionStatus
from app.models.user import UserRole
from app.schemas.booking import BookingCreate
from app.services import booking_service, payment_service, paystack
from app.utils.webhook_security import compute_hmac_sha512


def run(coro):
    return asyncio.run(coro)


def _book(db, guest, apartment, today, check_in=date(2025, 1, 10), check_out=date(2025, 1, 12)):
    request = BookingCreate(apartment_id=apartment.id, check_in=check_in, check_out=check_out, guests=1)
    return booking_service.create_booking(db, guest, request, today=today)


@pytest.fixture
def booking(db, guest, apartment, today):
    return _book(db, guest, apartment, today)


@pytest.fixture
def initialized(db, booking, guest, gateway):
    return run(payment_service.initialize_transaction(db, booking.id, guest, gateway))


# ─── Initialize ───────────────────────────────────────────────────────────────

def test_initialize_split_for_verified_owner(db, booking, owner, initialized, gateway):
    sent = gateway.initialized[initialized["reference"]]

    assert initialized["amount"] == 200
    assert initialized["platform_fee"] == 10
    assert initialized["owner_amount"] == 190
    assert initialized["split"] is True
    assert sent["amount_minor"] == 20000
    assert sent["subaccount"] == owner.payment_account.subaccount_code
    assert sent["transaction_charge"] == 1000
    assert sent["bearer"] == settings.SPLIT_CHARGE_BEARER

    transaction = db.query(PaymentTransaction).one()
    assert transaction.status == TransactionStatus.PENDING
    assert transaction.platform_fee_minor + transaction.owner_amount_minor == transaction.amount_minor


def test_reference_format(initialized):
    assert initialized["reference"].startswith("apt_")
    assert len(initialized["reference"].split("_")) == 3


def test_initialize_without_split_when_owner_unverified(db, make_user, verify_owner, make_apartment, guest, today,
                                                        gateway):
    owner = make_user(UserRole.OWNER)
    verify_owner(owner, with_payment_account=False)
    apartment = make_apartment(owner)
    booking = _book(db, guest, apartment, today)

    result = run(payment_service.initialize_transaction(db, booking.id, guest, gateway))

    sent = gateway.initialized[result["reference"]]
    assert result["split"] is False
    assert sent["subaccount"] is None
    assert sent["transaction_charge"] is None
    assert sent["bearer"] is None


def test_only_the_guest_can_pay(db, booking, owner, gateway):
    with pytest.raises(ForbiddenError):
        run(payment_service.initialize_transaction(db, booking.id, owner, gateway))


def test_cancelled_booking_cannot_be_paid(db, booking, guest, gateway):
    booking_service.cancel(db, booking.id, guest)
    with pytest.raises(ConflictError):
        run(payment_service.initialize_transaction(db, booking.id, guest, gateway))


def test_gateway_failure_persists_nothing(db, booking, guest, gateway):
    gateway.fail_with = PaymentGatewayError("Payment gateway timed out during initialize payment")
    with pytest.raises(PaymentGatewayError):
        run(payment_service.initialize_transaction(db, booking.id, guest, gateway))
    assert db.query(PaymentTransaction).count() == 0


# ─── Verify ───────────────────────────────────────────────────────────────────

def test_successful_verification_marks_paid_and_records_commission(db, booking, owner, initialized, gateway):
    result = run(payment_service.verify_transaction(db, initialized["reference"], booking.id, gateway))

    assert result.payment_status == PaymentStatus.PAID
    assert result.paid_at == datetime(2025, 1, 9, 10, 0)

    commission = db.query(CommissionRecord).one()
    assert commission.reference == initialized["reference"]
    assert commission.room_price_minor == 20000
    assert commission.commission_amount_minor == 2000
    assert commission.status == CommissionStatus.PENDING

    received = db.query(Notification).filter(
        Notification.user_id == owner.id, Notification.type == NotificationType.PAYMENT_RECEIVED
    ).all()
    assert len(received) == 1


def test_verification_is_idempotent(db, booking, initialized, gateway):
    reference = initialized["reference"]
    run(payment_service.verify_transaction(db, reference, booking.id, gateway))
    again = run(payment_service.verify_transaction(db, reference, booking.id, gateway))

    assert again.payment_status == PaymentStatus.PAID
    assert db.query(CommissionRecord).count() == 1
    assert gateway.verify_calls == [reference]


def test_concurrent_deliveries_settle_once(db, session_factory, booking, initialized, gateway_class):
    reference = initialized["reference"]
    other_session = session_factory()
    plain = gateway_class()
    plain.verify_amount = 20000

    class RacingGateway(gateway_class):
        async def verify(self, ref):
            # A second delivery settles the reference while this one waits on the gateway
            await payment_service.verify_transaction(other_session, ref, booking.id, plain)
            self.verify_amount = 20000
            return await super().verify(ref)

    result = run(payment_service.verify_transaction(db, reference, booking.id, RacingGateway()))
    other_session.close()

    assert result.payment_status == PaymentStatus.PAID
    assert db.query(CommissionRecord).count() == 1


def test_amount_mismatch_raises_fraud_signal(db, guest, owner, make_apartment, today, gateway):
    apartment = make_apartment(owner, price=50)
    booking = _book(db, guest, apartment, today)
    initialized = run(payment_service.initialize_transaction(db, booking.id, guest, gateway))
    assert gateway.initialized[initialized["reference"]]["amount_minor"] == 10000

    gateway.verify_amount = 9000
    with pytest.raises(FraudSignal):
        run(payment_service.verify_transaction(db, initialized["reference"], booking.id, gateway))

    db.refresh(booking)
    assert booking.payment_status == PaymentStatus.FAILED
    assert db.query(PaymentTransaction).one().status == TransactionStatus.FAILED
    assert db.query(CommissionRecord).count() == 0


def test_failed_payment_marks_booking_failed(db, booking, guest, initialized, gateway):
    gateway.verify_status = paystack.FAILED
    result = run(payment_service.verify_transaction(db, initialized["reference"], booking.id, gateway))

    assert result.payment_status == PaymentStatus.FAILED
    assert result.booking_status == BookingStatus.CONFIRMED
    # A failed attempt can be retried with a new reference
    retry = run(payment_service.initialize_transaction(db, booking.id, guest, gateway))
    assert retry["reference"] != initialized["reference"]


def test_pending_payment_leaves_booking_untouched(db, booking, initialized, gateway):
    gateway.verify_status = paystack.PENDING
    result = run(payment_service.verify_transaction(db, initialized["reference"], booking.id, gateway))

    assert result.payment_status == PaymentStatus.PENDING
    assert db.query(PaymentTransaction).one().status == TransactionStatus.PENDING


def test_unknown_or_mismatched_reference(db, booking, guest, apartment, today, initialized, gateway):
    with pytest.raises(NotFoundError):
        run(payment_service.verify_transaction(db, "apt_0_missing", booking.id, gateway))

    other = _book(db, guest, apartment, today)
    with pytest.raises(NotFoundError):
        run(payment_service.verify_transaction(db, initialized["reference"], other.id, gateway))


def test_payment_for_cancelled_booking_is_recorded_with_warning(db, booking, guest, initialized, gateway, caplog):
    booking_service.cancel(db, booking.id, guest)
    with caplog.at_level(logging.WARNING, logger="app.services.payment_service"):
        result = run(payment_service.verify_transaction(db, initialized["reference"], booking.id, gateway))

    assert result.payment_status == PaymentStatus.PAID
    assert result.booking_status == BookingStatus.CANCELLED
    assert "refund required" in caplog.text


def test_paid_booking_cannot_be_paid_again(db, booking, guest, initialized, gateway):
    run(payment_service.verify_transaction(db, initialized["reference"], booking.id, gateway))
    with pytest.raises(ConflictError):
        run(payment_service.initialize_transaction(db, booking.id, guest, gateway))


def test_second_reference_paid_for_same_booking_reconciles_once(db, booking, guest, owner, initialized, gateway,
                                                                 caplog):
    second = run(payment_service.initialize_transaction(db, booking.id, guest, gateway))
    run(payment_service.verify_transaction(db, initialized["reference"], booking.id, gateway))

    with caplog.at_level(logging.WARNING, logger="app.services.payment_service"):
        result = run(payment_service.verify_transaction(db, second["reference"], booking.id, gateway))

    assert result.payment_status == PaymentStatus.PAID
    assert "refund required" in caplog.text
    duplicate = payment_service.get_transaction(db, second["reference"])
    db.refresh(duplicate)
    assert duplicate.status == TransactionStatus.SUCCESS
    assert db.query(CommissionRecord).count() == 1
    assert db.query(Notification).filter(
        Notification.user_id == owner.id, Notification.type == NotificationType.PAYMENT_RECEIVED
    ).count() == 1

    # Settled locally, so a redelivery never reaches the gateway again
    run(payment_service.verify_transaction(db, second["reference"], booking.id, gateway))
    assert gateway.verify_calls == [initialized["reference"], second["reference"]]


# ─── Webhook ──────────────────────────────────────────────────────────────────

def _signed(body):
    raw = json.dumps(body).encode()
    return raw, compute_hmac_sha512(settings.PAYSTACK_SECRET_KEY, raw)


def test_webhook_charge_success_settles_booking(db, booking, initialized, gateway):
    raw, signature = _signed({"event": "charge.success", "data": {"reference": initialized["reference"]}})
    result = run(payment_service.handle_webhook(db, raw, signature, gateway))

    assert result["status"] == "processed"
    db.refresh(booking)
    assert booking.payment_status == PaymentStatus.PAID


def test_webhook_rejects_bad_signature(db, initialized, gateway):
    raw, _ = _signed({"event": "charge.success", "data": {"reference": initialized["reference"]}})
    with pytest.raises(AuthenticationError):
        run(payment_service.handle_webhook(db, raw, "0" * 128, gateway))
    with pytest.raises(AuthenticationError):
        run(payment_service.handle_webhook(db, raw, None, gateway))


def test_webhook_ignores_other_events_and_unknown_references(db, gateway):
    raw, signature = _signed({"event": "transfer.success", "data": {}})
    assert run(payment_service.handle_webhook(db, raw, signature, gateway))["status"] == "ignored"

    raw, signature = _signed({"event": "charge.success", "data": {"reference": "apt_1_nothere"}})
    assert run(payment_service.handle_webhook(db, raw, signature, gateway))["status"] == "ignored"


@pytest.mark.parametrize("body", [
    [{"event": "charge.success"}],
    {"event": "charge.success", "data": ["apt_1_x"]},
])
def test_webhook_rejects_signed_bodies_that_are_not_objects(db, gateway, body):
    raw, signature = _signed(body)
    with pytest.raises(ValidationError):
        run(payment_service.handle_webhook(db, raw, signature, gateway))


# ─── Commissions ──────────────────────────────────────────────────────────────

@pytest.fixture
def commission(db, booking, initialized, gateway):
    run(payment_service.verify_transaction(db, initialized["reference"], booking.id, gateway))
    return db.query(CommissionRecord).one()


def test_commission_list_with_totals(db, commission):
    result = payment_service.list_commissions(db)
    assert result["total"] == 1
    assert float(result["totals"]["pending"]) == 20.0
    assert float(result["totals"]["paid"]) == 0.0


def test_admin_marks_commission_paid_once(db, commission, admin):
    paid = payment_service.mark_commission(db, commission.id, CommissionStatus.PAID, admin)
    assert paid.status == CommissionStatus.PAID
    assert float(payment_service.commission_totals(db)["paid"]) == 20.0

    with pytest.raises(ConflictError):
        payment_service.mark_commission(db, commission.id, CommissionStatus.FAILED, admin)


def test_commission_cannot_go_back_to_pending(db, commission, admin):
    with pytest.raises(ValidationError):
        payment_service.mark_commission(db, commission.id, CommissionStatus.PENDING, admin)


def test_only_admin_marks_commissions(db, commission, owner):
    with pytest.raises(ForbiddenError):
        payment_service.mark_commission(db, commission.id, CommissionStatus.PAID, owner)
