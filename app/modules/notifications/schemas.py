from pydantic import BaseModel, Field
from typing import Optional, List, Dict, Any
from uuid import UUID
from datetime import datetime

from app.modules.notifications.models import NotificationType


class NotificationOut(BaseModel):
    id: UUID
    user_id: Optional[UUID] = None
    type: NotificationType
    title: str
    message: Optional[str] = None
    is_read: bool
    metadata: Optional[Dict[str, Any]] = Field(None, validation_alias="meta")
    created_at: datetime

    class Config:
        from_attributes = True


class NotificationList(BaseModel):
    items: List[NotificationOut]
    total: int
    unread_count: int
    limit: int
    offset: int


class UnreadCount(BaseModel):
    unread_count: int
