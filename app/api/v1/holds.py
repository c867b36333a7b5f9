"""Hold endpoints."""

from uuid import UUID

from fastapi import APIRouter, Query, status

from app.api.deps import CurrentActor, HoldServiceDep
from app.domain.hold_state import HoldStatus, ReleaseReason
from app.models.hold import Hold
from app.schemas.hold import (
    ConfirmResponse,
    GrantResponse,
    HoldCreate,
    HoldResponse,
    ReleaseResponse,
)
from app.schemas.show_request import BidResponse
from app.services.hold_service import ReleaseResult

router = APIRouter()


def _release_response(result: ReleaseResult) -> ReleaseResponse:
    return ReleaseResponse(
        hold=HoldResponse.model_validate(result.hold),
        reason=result.reason,
        reopened_bid_ids=result.reopened_bid_ids,
        rejected_bid_id=result.rejected_bid_id,
        changed=result.changed,
    )


@router.post("/", response_model=HoldResponse, status_code=status.HTTP_201_CREATED)
async def request_hold(
    request: HoldCreate,
    actor: CurrentActor,
    hold_service: HoldServiceDep,
) -> Hold:
    """Request a hold on a show request.

    Artists name the venue bid to hold; venues hold their own live bid.
    """
    return await hold_service.request_hold(
        show_request_id=request.show_request_id,
        actor=actor,
        duration_hours=request.duration_hours,
        reason=request.reason,
        bid_id=request.bid_id,
        custom_message=request.custom_message,
    )


@router.get("/", response_model=list[HoldResponse])
async def list_holds(
    actor: CurrentActor,
    hold_service: HoldServiceDep,
    show_request_id: UUID | None = Query(default=None),
    status_filter: list[HoldStatus] | None = Query(default=None, alias="status"),
) -> list[Hold]:
    """List holds the current user is involved in, newest first."""
    return await hold_service.list_holds(actor, show_request_id, status_filter)


@router.get("/{hold_id}", response_model=HoldResponse)
async def get_hold(
    hold_id: UUID,
    actor: CurrentActor,
    hold_service: HoldServiceDep,
) -> Hold:
    """Get hold details."""
    return await hold_service.get_hold(hold_id, actor)


@router.post("/{hold_id}/grant", response_model=GrantResponse)
async def grant_hold(
    hold_id: UUID,
    actor: CurrentActor,
    hold_service: HoldServiceDep,
) -> GrantResponse:
    """Grant a pending hold. Competing bids are frozen until it ends."""
    result = await hold_service.grant(hold_id, actor)
    return GrantResponse(
        hold=HoldResponse.model_validate(result.hold),
        held_bid_id=result.held_bid_id,
        frozen_bid_ids=result.frozen_bid_ids,
    )


@router.post("/{hold_id}/decline", response_model=ReleaseResponse)
async def decline_hold(
    hold_id: UUID,
    actor: CurrentActor,
    hold_service: HoldServiceDep,
) -> ReleaseResponse:
    """Decline a hold request (counterparty)."""
    result = await hold_service.release(hold_id, ReleaseReason.DECLINED, actor)
    return _release_response(result)


@router.post("/{hold_id}/cancel", response_model=ReleaseResponse)
async def cancel_hold(
    hold_id: UUID,
    actor: CurrentActor,
    hold_service: HoldServiceDep,
) -> ReleaseResponse:
    """Cancel a hold (requester or counterparty)."""
    result = await hold_service.release(hold_id, ReleaseReason.CANCELLED, actor)
    return _release_response(result)


@router.post("/{hold_id}/accept", response_model=BidResponse)
async def accept_held_bid(
    hold_id: UUID,
    actor: CurrentActor,
    hold_service: HoldServiceDep,
):
    """Provisionally accept the held bid. Competitors stay frozen."""
    result = await hold_service.accept_provisionally(hold_id, actor)
    return result.bid


@router.post("/{hold_id}/confirm", response_model=ConfirmResponse)
async def confirm_held_bid(
    hold_id: UUID,
    actor: CurrentActor,
    hold_service: HoldServiceDep,
) -> ConfirmResponse:
    """Confirm the provisionally accepted bid and reject the frozen competitors."""
    result = await hold_service.confirm(hold_id, actor)
    return ConfirmResponse(
        hold=HoldResponse.model_validate(result.hold),
        winning_bid_id=result.winning_bid_id,
        rejected_bid_ids=result.rejected_bid_ids,
        replayed=result.replayed,
    )


@router.post("/{hold_id}/decline-bid", response_model=ReleaseResponse)
async def decline_held_bid(
    hold_id: UUID,
    actor: CurrentActor,
    hold_service: HoldServiceDep,
) -> ReleaseResponse:
    """Turn down the held bid and reopen bidding for everyone else."""
    result = await hold_service.decline_held_bid(hold_id, actor)
    return _release_response(result)
