from sqlalchemy import Column, String, Integer, Numeric, Text, Enum, ForeignKey, Date, DateTime, Uuid
from sqlalchemy.orm import relationship
from app.models.base import BaseModel
import enum

class PaymentStatus(str, enum.Enum):
    PENDING = "pending"
    PAID = "paid"
    FAILED = "failed"
    REFUNDED = "refunded"

class BookingStatus(str, enum.Enum):
    CONFIRMED = "confirmed"
    CHECKED_IN = "checked-in"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    NO_SHOW = "no_show"

class PaymentMethod(str, enum.Enum):
    PAYSTACK = "paystack"
    MOMO = "momo"
    CARD = "card"
    BANK_TRANSFER = "bank_transfer"

TERMINAL_BOOKING_STATUSES = (BookingStatus.COMPLETED, BookingStatus.CANCELLED, BookingStatus.NO_SHOW)

class Booking(BaseModel):
    __tablename__ = "bookings"

    apartment_id = Column(Uuid(as_uuid=True), ForeignKey("apartments.id"), nullable=False, index=True)
    apartment = relationship("Apartment", back_populates="bookings")

    guest_id = Column(Uuid(as_uuid=True), ForeignKey("users.id"), nullable=False, index=True)
    guest = relationship("User")
    # Snapshot at booking time
    guest_name = Column(String(100), nullable=True)
    guest_email = Column(String(255), nullable=False)

    check_in = Column(Date, nullable=False)
    check_out = Column(Date, nullable=False)
    guests = Column(Integer, nullable=False)
    nights = Column(Integer, nullable=False)

    # Always derived server-side from nights * apartment price
    total_amount = Column(Numeric(12, 2), nullable=False)

    payment_status = Column(Enum(PaymentStatus), default=PaymentStatus.PENDING, nullable=False, index=True)
    payment_method = Column(Enum(PaymentMethod), nullable=False)
    booking_status = Column(Enum(BookingStatus), default=BookingStatus.CONFIRMED, nullable=False, index=True)

    ticket_code = Column(String(16), unique=True, index=True, nullable=False)
    special_requests = Column(Text, nullable=True)

    check_in_time = Column(DateTime, nullable=True)
    check_out_time = Column(DateTime, nullable=True)
    cancelled_at = Column(DateTime, nullable=True)
    paid_at = Column(DateTime, nullable=True)

    transactions = relationship("PaymentTransaction", back_populates="booking")
    commission = relationship("CommissionRecord", back_populates="booking", uselist=False)
