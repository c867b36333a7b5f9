"""Notification Pydantic schemas."""

from datetime import datetime
from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict


class NotificationResponse(BaseModel):
    """Schema for notification response."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    title: str
    body: str
    notification_type: str
    payload: dict[str, Any] | None
    hold_id: UUID | None
    bid_id: UUID | None
    is_read: bool
    created_at: datetime


class NotificationListResponse(BaseModel):
    """Paginated notifications for the current user."""

    notifications: list[NotificationResponse]
    total: int
    unread_count: int
    page: int
    page_size: int
