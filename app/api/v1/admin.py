"""Admin hold management endpoints."""

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends

from app.api.deps import CurrentAdmin, HoldServiceDep, actor_from_user, get_expiry_sweeper
from app.domain.hold_state import ReleaseReason
from app.schemas.hold import ClearHoldsResponse, HoldResponse, ReleaseResponse, SweepResponse
from app.services.expiry_sweeper import ExpirySweeper

router = APIRouter()


# ============ HOLDS ============


@router.post("/holds/{hold_id}/release", response_model=ReleaseResponse)
async def release_hold(
    hold_id: UUID,
    admin: CurrentAdmin,
    hold_service: HoldServiceDep,
) -> ReleaseResponse:
    """Force-release a hold and reopen its bids."""
    result = await hold_service.release(hold_id, ReleaseReason.CANCELLED, actor_from_user(admin))
    return ReleaseResponse(
        hold=HoldResponse.model_validate(result.hold),
        reason=result.reason,
        reopened_bid_ids=result.reopened_bid_ids,
        changed=result.changed,
    )


@router.post("/holds/clear-all", response_model=ClearHoldsResponse)
async def clear_all_holds(
    admin: CurrentAdmin,
    hold_service: HoldServiceDep,
) -> ClearHoldsResponse:
    """Cancel every active hold. Each hold is released in its own transaction."""
    result = await hold_service.release_all_active(actor_from_user(admin))
    return ClearHoldsResponse(
        holds_released=result.holds_released,
        bids_reopened=result.bids_reopened,
        failed_hold_ids=result.failed_hold_ids,
    )


@router.post("/holds/sweep", response_model=SweepResponse)
async def sweep_expired_holds(
    admin: CurrentAdmin,
    sweeper: Annotated[ExpirySweeper, Depends(get_expiry_sweeper)],
) -> SweepResponse:
    """Run the expiry sweeper now instead of waiting for the schedule."""
    result = await sweeper.sweep()
    return SweepResponse(
        expired_hold_ids=result.expired_hold_ids,
        skipped_hold_ids=result.skipped_hold_ids,
        failed_hold_ids=result.failed_hold_ids,
    )
