"""Notification API schemas."""

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, Field


class NotificationResponse(BaseModel):
    """Response schema for one notification."""

    id: int
    kind: str
    title: str
    body: str
    data: Optional[dict[str, Any]] = None
    lead_id: Optional[int] = None
    created_at: datetime
    read_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class ListNotificationsResponse(BaseModel):
    notifications: list[NotificationResponse] = Field(default_factory=list)
    unread: int = 0
