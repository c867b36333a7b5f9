"""Database models."""

from app.models.hold import Hold
from app.models.notification import Notification
from app.models.show_request import Bid, ShowRequest
from app.models.user import User
from app.core.reservation_guard import register_reservation_guard

register_reservation_guard()

__all__ = [
    # User
    "User",
    # Bookable requests
    "ShowRequest",
    "Bid",
    # Holds
    "Hold",
    # Notifications
    "Notification",
]
