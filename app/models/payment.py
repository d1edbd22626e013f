from sqlalchemy import Column, String, Integer, Float, Boolean, Enum, ForeignKey, DateTime, Uuid, JSON
from sqlalchemy.orm import relationship
from app.models.base import BaseModel
import enum

class TransactionStatus(str, enum.Enum):
    PENDING = "pending"
    SUCCESS = "success"
    FAILED = "failed"

class CommissionStatus(str, enum.Enum):
    PENDING = "pending"
    PAID = "paid"
    FAILED = "failed"

class PaymentAccount(BaseModel):
    """An owner's payout destination, registered as a gateway sub-account."""
    __tablename__ = "payment_accounts"

    owner_id = Column(Uuid(as_uuid=True), ForeignKey("users.id"), unique=True, nullable=False)
    owner = relationship("User", back_populates="payment_account")

    business_name = Column(String(100), nullable=False)
    settlement_bank = Column(String(20), nullable=False)   # gateway bank code
    account_number = Column(String(20), nullable=False)
    account_name = Column(String(100), nullable=True)
    subaccount_code = Column(String(50), nullable=True, index=True)
    percentage_charge = Column(Float, nullable=True)
    is_verified = Column(Boolean, default=False, nullable=False)

class PaymentTransaction(BaseModel):
    """One gateway charge attempt for a booking, keyed by our reference."""
    __tablename__ = "payment_transactions"

    reference = Column(String(64), unique=True, index=True, nullable=False)
    booking_id = Column(Uuid(as_uuid=True), ForeignKey("bookings.id"), nullable=False, index=True)
    booking = relationship("Booking", back_populates="transactions")

    currency = Column(String(3), nullable=False)
    amount_minor = Column(Integer, nullable=False)
    platform_fee_minor = Column(Integer, nullable=False)
    owner_amount_minor = Column(Integer, nullable=False)
    is_split = Column(Boolean, default=False, nullable=False)
    subaccount_code = Column(String(50), nullable=True)

    status = Column(Enum(TransactionStatus), default=TransactionStatus.PENDING, nullable=False, index=True)
    access_code = Column(String(100), nullable=True)
    authorization_url = Column(String(255), nullable=True)
    gateway_amount_minor = Column(Integer, nullable=True)
    gateway_status = Column(String(30), nullable=True)
    gateway_response = Column(JSON, nullable=True)
    paid_at = Column(DateTime, nullable=True)

class CommissionRecord(BaseModel):
    __tablename__ = "commission_records"

    # One commission per paid booking, and per settling reference
    booking_id = Column(Uuid(as_uuid=True), ForeignKey("bookings.id"), unique=True, nullable=False)
    booking = relationship("Booking", back_populates="commission")
    reference = Column(String(64), unique=True, nullable=False)
    owner_id = Column(Uuid(as_uuid=True), ForeignKey("users.id"), nullable=False, index=True)

    room_price_minor = Column(Integer, nullable=False)
    commission_rate = Column(Float, nullable=False)
    commission_amount_minor = Column(Integer, nullable=False)
    status = Column(Enum(CommissionStatus), default=CommissionStatus.PENDING, nullable=False, index=True)
