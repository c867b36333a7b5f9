"""Show request and bid Pydantic schemas."""

from datetime import date, datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from app.domain.hold_state import BidHoldState, BidStatus


class ShowRequestCreate(BaseModel):
    """Schema for creating a show request."""

    title: str = Field(..., min_length=3, max_length=200)
    requested_date: date


class ShowRequestResponse(BaseModel):
    """Schema for show request response."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    initiator_id: UUID
    title: str
    requested_date: date
    status: str
    created_at: datetime


class BidCreate(BaseModel):
    """Schema for submitting a bid."""

    proposed_fee: int = Field(default=0, ge=0)  # smallest currency unit
    message: str | None = Field(None, max_length=2000)


class BidResponse(BaseModel):
    """Schema for bid response."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    show_request_id: UUID
    bidder_id: UUID
    proposed_fee: int
    message: str | None
    status: BidStatus
    hold_state: BidHoldState
    held_by_hold_id: UUID | None
    frozen_at: datetime | None
    unfrozen_at: datetime | None
    accepted_at: datetime | None
    created_at: datetime
