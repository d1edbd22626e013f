from sqlalchemy import Column, String, Boolean, Text, Enum, ForeignKey, Uuid
from app.models.base import BaseModel
import enum

class NotificationType(str, enum.Enum):
    BOOKING_CREATED = "booking_created"
    BOOKING_CANCELLED = "booking_cancelled"
    PAYMENT_RECEIVED = "payment_received"
    GUEST_CHECKED_IN = "guest_checked_in"
    GUEST_CHECKED_OUT = "guest_checked_out"
    AUTO_CHECKOUT = "auto_checkout"
    VERIFICATION_UPDATE = "verification_update"

class NotificationPriority(str, enum.Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"

class Notification(BaseModel):
    __tablename__ = "notifications"

    user_id = Column(Uuid(as_uuid=True), ForeignKey("users.id"), nullable=False, index=True)
    type = Column(Enum(NotificationType), nullable=False)
    title = Column(String(200), nullable=False)
    message = Column(Text, nullable=False)
    priority = Column(Enum(NotificationPriority), default=NotificationPriority.MEDIUM, nullable=False)
    is_read = Column(Boolean, default=False, nullable=False)

    booking_id = Column(Uuid(as_uuid=True), ForeignKey("bookings.id"), nullable=True)
    apartment_id = Column(Uuid(as_uuid=True), ForeignKey("apartments.id"), nullable=True)
