from sqlalchemy import Column, String, Boolean, DateTime, Enum
from sqlalchemy.orm import relationship
from app.models.base import BaseModel
import enum

class UserRole(str, enum.Enum):
    GUEST = "guest"
    OWNER = "owner"
    ADMIN = "admin"

class User(BaseModel):
    __tablename__ = "users"

    # Subject id issued by the external identity provider
    external_id = Column(String(100), unique=True, index=True, nullable=False)
    email = Column(String(255), index=True, nullable=False)
    full_name = Column(String(100), nullable=True)
    phone_number = Column(String(20), nullable=True)

    role = Column(Enum(UserRole), default=UserRole.GUEST, nullable=False)

    # Soft status only; users are never deleted
    is_active = Column(Boolean, default=True, nullable=False)
    last_login_at = Column(DateTime, nullable=True)

    apartments = relationship("Apartment", back_populates="owner")
    identity_verification = relationship(
        "IdentityVerification",
        back_populates="user",
        uselist=False,
        foreign_keys="IdentityVerification.user_id",
    )
    payment_account = relationship("PaymentAccount", back_populates="owner", uselist=False)

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN
