"""Data access over hold rows."""

from __future__ import annotations

from datetime import datetime, timedelta
from uuid import UUID

from sqlalchemy import exists, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import aliased

from app.domain.hold_state import HoldStatus, OPEN_HOLD_STATUSES
from app.models.hold import Hold
from app.models.show_request import Bid, ShowRequest


class HoldLedger:
    """Reads and guarded writes over hold rows within the caller's session."""

    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    async def get(self, hold_id: UUID, for_update: bool = False) -> Hold | None:
        """Fetch a hold, optionally locking its row for the transaction."""
        query = select(Hold).where(Hold.id == hold_id)
        if for_update:
            query = query.with_for_update()
        result = await self.db.execute(query)
        return result.scalar_one_or_none()

    def add(self, hold: Hold) -> Hold:
        self.db.add(hold)
        return hold

    async def active_for_request(self, show_request_id: UUID) -> Hold | None:
        """The ACTIVE hold on a show request, if any."""
        result = await self.db.execute(
            select(Hold).where(
                Hold.show_request_id == show_request_id,
                Hold.status == HoldStatus.ACTIVE,
            )
        )
        return result.scalar_one_or_none()

    async def open_for_requester(self, show_request_id: UUID, requester_id: UUID) -> Hold | None:
        """A PENDING or ACTIVE hold the requester already has on the show request."""
        result = await self.db.execute(
            select(Hold)
            .where(
                Hold.show_request_id == show_request_id,
                Hold.requested_by_id == requester_id,
                Hold.status.in_(OPEN_HOLD_STATUSES),
            )
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def activate_if_unopposed(
        self,
        hold: Hold,
        responder_id: UUID | None,
        now: datetime,
        frozen_bid_ids: list[UUID],
    ) -> bool:
        """Set the hold ACTIVE in one conditional UPDATE.

        The store evaluates "still PENDING and no ACTIVE sibling" together with
        the write. Returns False when zero rows matched.
        """
        sibling = aliased(Hold)
        stmt = (
            update(Hold)
            .where(
                Hold.id == hold.id,
                Hold.status == HoldStatus.PENDING,
                ~exists().where(
                    sibling.show_request_id == hold.show_request_id,
                    sibling.status == HoldStatus.ACTIVE,
                    sibling.id != hold.id,
                ),
            )
            .values(
                status=HoldStatus.ACTIVE,
                responded_by_id=responder_id,
                responded_at=now,
                starts_at=now,
                expires_at=now + timedelta(hours=hold.duration_hours),
                frozen_bid_ids=[str(bid_id) for bid_id in frozen_bid_ids],
                updated_at=now,
            )
            .execution_options(synchronize_session=False)
        )
        result = await self.db.execute(stmt)
        if result.rowcount != 1:
            return False
        await self.db.refresh(hold)
        return True

    async def list_expired(self, now: datetime, limit: int = 100) -> list[UUID]:
        """Ids of ACTIVE holds whose deadline has passed, oldest deadline first."""
        result = await self.db.execute(
            select(Hold.id)
            .where(Hold.status == HoldStatus.ACTIVE, Hold.expires_at <= now)
            .order_by(Hold.expires_at)
            .limit(limit)
        )
        return list(result.scalars().all())

    async def list_active(self) -> list[UUID]:
        result = await self.db.execute(
            select(Hold.id).where(Hold.status == HoldStatus.ACTIVE).order_by(Hold.starts_at)
        )
        return list(result.scalars().all())

    async def list_involving(
        self,
        user_id: UUID | None,
        show_request_id: UUID | None = None,
        statuses: list[HoldStatus] | None = None,
    ) -> list[Hold]:
        """Holds a user takes part in, newest first. ``None`` lists every hold."""
        query = select(Hold).join(ShowRequest, ShowRequest.id == Hold.show_request_id)
        if user_id is not None:
            target_bid = aliased(Bid)
            query = query.join(target_bid, target_bid.id == Hold.bid_id).where(
                or_(
                    Hold.requested_by_id == user_id,
                    Hold.responded_by_id == user_id,
                    ShowRequest.initiator_id == user_id,
                    target_bid.bidder_id == user_id,
                )
            )
        if show_request_id is not None:
            query = query.where(Hold.show_request_id == show_request_id)
        if statuses:
            query = query.where(Hold.status.in_(statuses))
        result = await self.db.execute(query.order_by(Hold.created_at.desc(), Hold.id))
        return list(result.scalars().all())
