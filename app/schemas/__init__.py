"""Pydantic schemas for API validation."""

from app.schemas.hold import (
    ClearHoldsResponse,
    ConfirmResponse,
    GrantResponse,
    HoldCreate,
    HoldResponse,
    HoldSnapshotResponse,
    ReleaseResponse,
    SweepResponse,
)
from app.schemas.notification import NotificationListResponse, NotificationResponse
from app.schemas.show_request import (
    BidCreate,
    BidResponse,
    ShowRequestCreate,
    ShowRequestResponse,
)

__all__ = [
    # Show requests
    "ShowRequestCreate",
    "ShowRequestResponse",
    # Bids
    "BidCreate",
    "BidResponse",
    # Holds
    "HoldCreate",
    "HoldResponse",
    "GrantResponse",
    "ConfirmResponse",
    "ReleaseResponse",
    "HoldSnapshotResponse",
    # Notifications
    "NotificationResponse",
    "NotificationListResponse",
    # Admin
    "ClearHoldsResponse",
    "SweepResponse",
]
