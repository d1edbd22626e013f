from pydantic import BaseModel
from typing import Optional
from uuid import UUID
from datetime import datetime
from app.models.notification import NotificationType, NotificationPriority


class NotificationResponse(BaseModel):
    id: UUID
    type: NotificationType
    title: str
    message: str
    priority: NotificationPriority
    is_read: bool
    booking_id: Optional[UUID] = None
    apartment_id: Optional[UUID] = None
    created_at: datetime

    model_config = {"from_attributes": True}
