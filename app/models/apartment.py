from sqlalchemy import Column, String, Integer, Numeric, Boolean, Text, ForeignKey, JSON, Uuid, CheckConstraint
from sqlalchemy.orm import relationship
from app.models.base import BaseModel

class Apartment(BaseModel):
    __tablename__ = "apartments"
    __table_args__ = (
        CheckConstraint("available_rooms >= 0", name="ck_apartment_rooms_non_negative"),
        CheckConstraint("available_rooms <= total_rooms", name="ck_apartment_rooms_within_total"),
    )

    # Basic Info
    title = Column(String(200), nullable=False)
    description = Column(Text, nullable=True)
    location = Column(String(255), nullable=False, index=True)

    # Nightly price in display currency
    price = Column(Numeric(12, 2), nullable=False)

    # Room inventory
    total_rooms = Column(Integer, nullable=False)
    available_rooms = Column(Integer, nullable=False)

    amenities = Column(JSON, default=list)
    main_image = Column(String(255), nullable=True)

    is_active = Column(Boolean, default=True, nullable=False)

    # Relationships
    owner_id = Column(Uuid(as_uuid=True), ForeignKey("users.id"), nullable=False, index=True)
    owner = relationship("User", back_populates="apartments")
    bookings = relationship("Booking", back_populates="apartment")

    @property
    def occupied_rooms(self) -> int:
        return self.total_rooms - self.available_rooms
