"""Bid endpoints."""

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import CurrentUser, get_db
from app.core.exceptions import AuthorizationError, InvalidHoldState, NotFoundError
from app.domain.hold_state import BidStatus
from app.models.show_request import Bid
from app.schemas.show_request import BidResponse
from app.services.bid_ledger import BidLedger

router = APIRouter()


@router.post("/{bid_id}/withdraw", response_model=BidResponse)
async def withdraw_bid(
    bid_id: UUID,
    current_user: CurrentUser,
    db: Annotated[AsyncSession, Depends(get_db)],
) -> Bid:
    """Withdraw a bid.

    Only bids that are not frozen or held by a hold can be withdrawn.
    """
    bid = await BidLedger(db).get(bid_id, for_update=True)
    if not bid:
        raise NotFoundError("Bid", str(bid_id))
    if bid.bidder_id != current_user.id and not current_user.is_admin:
        raise AuthorizationError("You can only withdraw your own bids")
    if not bid.is_live:
        raise InvalidHoldState(f"Bid is already {bid.status.value}")
    if not bid.reservation.is_available:
        raise InvalidHoldState(
            f"Bid is {bid.hold_state.value} by hold {bid.held_by_hold_id} and cannot be withdrawn"
        )

    bid.status = BidStatus.WITHDRAWN
    await db.flush()
    await db.refresh(bid)
    return bid
