"""Hold-related Pydantic schemas."""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator

from app.config import settings
from app.domain.hold_state import HoldStatus, ReleaseReason


class HoldCreate(BaseModel):
    """Schema for requesting a hold on a show request."""

    show_request_id: UUID
    bid_id: UUID | None = None  # required when the artist requests
    duration_hours: int = Field(default=settings.hold_default_duration_hours, ge=1)
    reason: str = Field(..., min_length=1, max_length=100)
    custom_message: str | None = Field(None, max_length=1000)

    @field_validator("reason")
    @classmethod
    def strip_reason(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("reason must not be blank")
        return v


class HoldResponse(BaseModel):
    """Schema for hold response."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    show_request_id: UUID
    bid_id: UUID
    requested_by_id: UUID
    responded_by_id: UUID | None
    status: HoldStatus
    resolution: str | None
    duration_hours: int
    reason: str
    custom_message: str | None
    frozen_bid_ids: list[UUID] = []
    requested_at: datetime
    responded_at: datetime | None
    starts_at: datetime | None
    expires_at: datetime | None
    created_at: datetime

    @field_validator("frozen_bid_ids", mode="before")
    @classmethod
    def default_frozen(cls, v):
        return v or []


class GrantResponse(BaseModel):
    """Outcome of granting a hold."""

    hold: HoldResponse
    held_bid_id: UUID
    frozen_bid_ids: list[UUID]


class ConfirmResponse(BaseModel):
    """Outcome of confirming a held bid."""

    hold: HoldResponse
    winning_bid_id: UUID
    rejected_bid_ids: list[UUID]
    replayed: bool


class ReleaseResponse(BaseModel):
    """Outcome of releasing a hold."""

    hold: HoldResponse
    reason: ReleaseReason
    reopened_bid_ids: list[UUID]
    rejected_bid_id: UUID | None = None
    changed: bool


class HoldSnapshotResponse(BaseModel):
    """Current hold picture of a show request."""

    model_config = ConfigDict(from_attributes=True)

    show_request_id: UUID
    has_active_hold: bool
    active_hold_id: UUID | None
    expires_at: datetime | None
    frozen_count: int
    held_count: int
    provisionally_accepted: bool


class ClearHoldsResponse(BaseModel):
    """Outcome of clearing every active hold."""

    holds_released: int
    bids_reopened: int
    failed_hold_ids: list[UUID] = []


class SweepResponse(BaseModel):
    """Outcome of one expiry sweep."""

    expired_hold_ids: list[UUID]
    skipped_hold_ids: list[UUID]
    failed_hold_ids: list[UUID]
