"""Show request and bidding endpoints."""

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import CurrentUser, HoldServiceDep, get_db
from app.core.exceptions import AuthorizationError, HoldConflict, NotFoundError, ValidationError
from app.models.show_request import Bid, ShowRequest
from app.schemas.hold import HoldSnapshotResponse
from app.schemas.show_request import (
    BidCreate,
    BidResponse,
    ShowRequestCreate,
    ShowRequestResponse,
)
from app.services.bid_ledger import BidLedger
from app.services.hold_ledger import HoldLedger

router = APIRouter()


async def _get_show_request(
    db: AsyncSession, show_request_id: UUID, for_update: bool = False
) -> ShowRequest:
    show_request = await BidLedger(db).get_show_request(show_request_id, for_update=for_update)
    if not show_request:
        raise NotFoundError("Show request", str(show_request_id))
    return show_request


@router.post("/", response_model=ShowRequestResponse, status_code=status.HTTP_201_CREATED)
async def create_show_request(
    request: ShowRequestCreate,
    current_user: CurrentUser,
    db: Annotated[AsyncSession, Depends(get_db)],
) -> ShowRequest:
    """Create a show request that venues can bid on."""
    if current_user.role not in ("artist", "admin"):
        raise AuthorizationError("Only artists can create show requests")

    show_request = ShowRequest(
        initiator_id=current_user.id,
        title=request.title,
        requested_date=request.requested_date,
        status="open",
    )
    db.add(show_request)
    await db.flush()
    await db.refresh(show_request)
    return show_request


@router.get("/{show_request_id}", response_model=ShowRequestResponse)
async def get_show_request(
    show_request_id: UUID,
    current_user: CurrentUser,
    db: Annotated[AsyncSession, Depends(get_db)],
) -> ShowRequest:
    """Get show request details."""
    return await _get_show_request(db, show_request_id)


@router.get("/{show_request_id}/hold-state", response_model=HoldSnapshotResponse)
async def get_hold_state(
    show_request_id: UUID,
    current_user: CurrentUser,
    hold_service: HoldServiceDep,
):
    """Current hold picture: active hold, frozen and held bid counts."""
    return await hold_service.query_state(show_request_id)


@router.get("/{show_request_id}/bids", response_model=list[BidResponse])
async def list_bids(
    show_request_id: UUID,
    current_user: CurrentUser,
    db: Annotated[AsyncSession, Depends(get_db)],
) -> list[Bid]:
    """List bids on a show request.

    The artist and admins see every bid; a venue sees its own.
    """
    show_request = await _get_show_request(db, show_request_id)

    query = select(Bid).where(Bid.show_request_id == show_request.id)
    if not current_user.is_admin and current_user.id != show_request.initiator_id:
        query = query.where(Bid.bidder_id == current_user.id)

    result = await db.execute(query.order_by(Bid.created_at, Bid.id))
    return list(result.scalars().all())


@router.post(
    "/{show_request_id}/bids",
    response_model=BidResponse,
    status_code=status.HTTP_201_CREATED,
)
async def submit_bid(
    show_request_id: UUID,
    request: BidCreate,
    current_user: CurrentUser,
    db: Annotated[AsyncSession, Depends(get_db)],
) -> Bid:
    """Submit a venue bid on an open show request."""
    if current_user.role != "venue":
        raise AuthorizationError("Only venues can bid on show requests")

    # Lock the request so a concurrent grant cannot miss this bid
    show_request = await _get_show_request(db, show_request_id, for_update=True)
    if show_request.status != "open":
        raise ValidationError(f"Show request is {show_request.status}")

    active = await HoldLedger(db).active_for_request(show_request.id)
    if active is not None:
        raise HoldConflict("Bidding is paused while a hold is active on this show request")

    existing = await BidLedger(db).live_bid_for_bidder(show_request.id, current_user.id)
    if existing is not None:
        raise ValidationError("You already have an open bid on this show request")

    bid = Bid(
        show_request_id=show_request.id,
        bidder_id=current_user.id,
        proposed_fee=request.proposed_fee,
        message=request.message,
    )
    db.add(bid)
    await db.flush()
    await db.refresh(bid)
    return bid
