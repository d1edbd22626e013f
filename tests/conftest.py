import os
import tempfile
from datetime import date, datetime, timedelta, timezone

# Settings are read at import time, so the environment goes first
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ["AUTH_SECRET_KEY"] = "test-secret"
os.environ["PAYSTACK_SECRET_KEY"] = "sk_test_secret"
os.environ["MEDIA_ROOT"] = tempfile.mkdtemp(prefix="apartments-media-")

import jwt
import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.api.deps import get_identity_verifier, get_payment_gateway
from app.core.database import Base, get_db
from app.main import app
from app.models.apartment import Apartment
from app.models.payment import PaymentAccount
from app.models.user import User, UserRole
from app.models.verification import (
    CheckResult,
    IdentityVerification,
    IdType,
    VerificationLevel,
    VerificationStatus,
)
from app.services import paystack
from app.services.paystack import InitializedTransaction, Subaccount, VerifiedTransaction
from app.services.verification_service import SimulatedVerifier


class FakeGateway:
    """In-memory PaymentGateway that records every call."""

    def __init__(self):
        self.initialized = {}
        self.verify_calls = []
        self.subaccounts = []
        self.verify_status = paystack.SUCCESS
        self.verify_amount = None          # None -> echo the initialized amount
        self.fail_with = None              # exception raised by every call when set

    def _maybe_fail(self):
        if self.fail_with is not None:
            raise self.fail_with

    async def initialize(self, amount_minor, currency, reference, email, callback_url=None,
                         metadata=None, subaccount=None, transaction_charge=None, bearer=None):
        self._maybe_fail()
        self.initialized[reference] = {
            "amount_minor": amount_minor,
            "currency": currency,
            "email": email,
            "metadata": metadata,
            "subaccount": subaccount,
            "transaction_charge": transaction_charge,
            "bearer": bearer,
        }
        return InitializedTransaction(
            authorization_url=f"https://checkout.example/{reference}",
            access_code=f"access_{reference}",
            reference=reference,
        )

    async def verify(self, reference):
        self._maybe_fail()
        self.verify_calls.append(reference)
        amount = self.verify_amount
        if amount is None:
            amount = self.initialized.get(reference, {}).get("amount_minor", 0)
        return VerifiedTransaction(
            reference=reference,
            status=self.verify_status,
            amount_minor=amount,
            currency="GHS",
            paid_at=datetime(2025, 1, 9, 10, 0) if self.verify_status == paystack.SUCCESS else None,
            gateway_status=self.verify_status,
        )

    async def create_subaccount(self, business_name, settlement_bank, account_number,
                                percentage_charge, primary_contact_email=None):
        self._maybe_fail()
        code = f"ACCT_{len(self.subaccounts) + 1:04d}"
        self.subaccounts.append(code)
        return Subaccount(code, business_name, settlement_bank, account_number, percentage_charge)

    async def resolve_account(self, account_number, bank_code):
        self._maybe_fail()
        return {"account_number": account_number, "account_name": "KOFI MENSAH", "bank_id": 1}

    async def list_banks(self, country=None):
        self._maybe_fail()
        return [
            {"name": "GCB Bank", "code": "040", "type": "ghipss", "active": True},
            {"name": "Old Bank", "code": "999", "type": "ghipss", "active": False},
        ]


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def gateway_class():
    return FakeGateway


@pytest.fixture
def gateway(gateway_class):
    return gateway_class()


@pytest.fixture
def client(session_factory, gateway):
    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_payment_gateway] = lambda: gateway
    app.dependency_overrides[get_identity_verifier] = lambda: SimulatedVerifier()
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def today():
    return date(2025, 1, 8)


# ─── Factories ────────────────────────────────────────────────────────────────

@pytest.fixture
def make_user(db):
    counter = {"n": 0}

    def _make(role=UserRole.GUEST, email=None, full_name=None):
        counter["n"] += 1
        n = counter["n"]
        user = User(
            external_id=f"idp|{role.value}-{n}",
            email=email or f"{role.value}{n}@example.com",
            full_name=full_name or f"{role.value.title()} {n}",
            role=role,
        )
        db.add(user)
        db.commit()
        db.refresh(user)
        return user

    return _make


@pytest.fixture
def verify_owner(db):
    """Give an owner a fully verified identity and a verified payout account."""

    def _verify(owner, with_payment_account=True, id_number=None):
        verification = IdentityVerification(
            user_id=owner.id,
            id_type=IdType.NATIONAL_ID,
            id_number=id_number or f"GHA{str(owner.id.int)[:9]}",
            country="GH",
            full_name=owner.full_name or "Owner",
            date_of_birth=date(1990, 5, 17),
            capture_quality=90,
            verification_status=VerificationStatus.VERIFIED,
            verification_level=VerificationLevel.FULLY_VERIFIED,
            document_authenticity=CheckResult.PASSED,
            biometric_match=CheckResult.PASSED,
            face_match=CheckResult.PASSED,
            duplicate_check=CheckResult.PASSED,
            overall_score=100,
            verified_at=datetime(2025, 1, 1),
            expires_at=datetime(2026, 1, 1),
        )
        db.add(verification)
        if with_payment_account:
            db.add(PaymentAccount(
                owner_id=owner.id,
                business_name="Mensah Apartments",
                settlement_bank="040",
                account_number="0123456789",
                account_name="KOFI MENSAH",
                subaccount_code=f"ACCT_owner{str(owner.id)[:6]}",
                percentage_charge=5.0,
                is_verified=True,
            ))
        db.commit()
        return verification

    return _verify


@pytest.fixture
def owner(make_user, verify_owner):
    owner = make_user(UserRole.OWNER, full_name="Kofi Mensah")
    verify_owner(owner)
    return owner


@pytest.fixture
def guest(make_user):
    return make_user(UserRole.GUEST, full_name="Ama Owusu")


@pytest.fixture
def admin(make_user):
    return make_user(UserRole.ADMIN, full_name="Site Admin")


@pytest.fixture
def make_apartment(db):
    def _make(owner, price=100, total_rooms=2, available_rooms=None, is_active=True, location="Osu, Accra"):
        apartment = Apartment(
            owner_id=owner.id,
            title="Sea View Apartment",
            location=location,
            price=price,
            total_rooms=total_rooms,
            available_rooms=total_rooms if available_rooms is None else available_rooms,
            amenities=["wifi"],
            is_active=is_active,
        )
        db.add(apartment)
        db.commit()
        db.refresh(apartment)
        return apartment

    return _make


@pytest.fixture
def apartment(owner, make_apartment):
    return make_apartment(owner)


@pytest.fixture
def auth_headers():
    def _headers(user, expires_in=timedelta(hours=1)):
        token = jwt.encode(
            {
                "sub": user.external_id,
                "email": user.email,
                "exp": datetime.now(timezone.utc) + expires_in,
            },
            "test-secret",
            algorithm="HS256",
        )
        return {"Authorization": f"Bearer {token}"}

    return _headers
