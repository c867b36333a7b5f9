"""Main API router that includes all endpoint routers."""

from fastapi import APIRouter

from app.api.v1 import admin, bids, holds, notifications, show_requests

api_router = APIRouter()

# Show requests
api_router.include_router(show_requests.router, prefix="/show-requests", tags=["Show Requests"])

# Bids
api_router.include_router(bids.router, prefix="/bids", tags=["Bids"])

# Holds
api_router.include_router(holds.router, prefix="/holds", tags=["Holds"])

# Notifications
api_router.include_router(notifications.router, prefix="/notifications", tags=["Notifications"])

# Admin
api_router.include_router(admin.router, prefix="/admin", tags=["Admin"])
