"""Data access over show requests and bids.

No business rules here; the hold state machine decides what to write and owns
the transaction.
"""

from __future__ import annotations

from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.domain.hold_state import BidHoldState, LIVE_BID_STATUSES
from app.models.show_request import Bid, ShowRequest


class BidLedger:
    """Reads over show request and bid rows within the caller's session."""

    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    async def get_show_request(
        self, show_request_id: UUID, for_update: bool = False
    ) -> ShowRequest | None:
        """Fetch a show request, optionally locking its row."""
        query = select(ShowRequest).where(ShowRequest.id == show_request_id)
        if for_update:
            query = query.with_for_update()
        result = await self.db.execute(query)
        return result.scalar_one_or_none()

    async def get(self, bid_id: UUID, for_update: bool = False) -> Bid | None:
        query = select(Bid).where(Bid.id == bid_id)
        if for_update:
            query = query.with_for_update()
        result = await self.db.execute(query)
        return result.scalar_one_or_none()

    async def list_live(self, show_request_id: UUID, for_update: bool = False) -> list[Bid]:
        """All non-terminal bids on a show request, oldest first."""
        query = (
            select(Bid)
            .where(
                Bid.show_request_id == show_request_id,
                Bid.status.in_(LIVE_BID_STATUSES),
            )
            .order_by(Bid.created_at, Bid.id)
        )
        if for_update:
            query = query.with_for_update()
        result = await self.db.execute(query)
        return list(result.scalars().all())

    async def list_bound_to(self, hold_id: UUID, for_update: bool = False) -> list[Bid]:
        """Every bid whose reservation points at ``hold_id``."""
        query = select(Bid).where(Bid.held_by_hold_id == hold_id).order_by(Bid.created_at, Bid.id)
        if for_update:
            query = query.with_for_update()
        result = await self.db.execute(query)
        return list(result.scalars().all())

    async def live_bid_for_bidder(self, show_request_id: UUID, bidder_id: UUID) -> Bid | None:
        """The bidder's most recent live bid on the show request."""
        result = await self.db.execute(
            select(Bid)
            .where(
                Bid.show_request_id == show_request_id,
                Bid.bidder_id == bidder_id,
                Bid.status.in_(LIVE_BID_STATUSES),
            )
            .order_by(Bid.created_at.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def hold_state_counts(self, show_request_id: UUID) -> dict[BidHoldState, int]:
        """Number of bids per reservation phase on a show request."""
        result = await self.db.execute(
            select(Bid.hold_state, func.count())
            .where(Bid.show_request_id == show_request_id)
            .group_by(Bid.hold_state)
        )
        counts = {state: 0 for state in BidHoldState}
        for state, count in result.all():
            counts[BidHoldState(state)] = count
        return counts
