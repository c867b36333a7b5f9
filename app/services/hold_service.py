"""Hold state machine service.

Sole writer of hold lifecycle and bid reservation phases. Every mutating
operation runs in its own transaction spanning the hold row and every bid it
touches; events are published only after commit.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator, Callable
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import UTC, datetime
from uuid import UUID

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.config import settings
from app.core.exceptions import (
    AppException,
    AuthorizationError,
    HoldConflict,
    InvalidHoldState,
    NotFoundError,
    PersistenceFailure,
    ValidationError,
)
from app.core.reservation_guard import reservation_authority
from app.domain.hold_events import (
    HoldConfirmed,
    HoldEvent,
    HoldEventPublisher,
    HoldGranted,
    HoldProvisionallyAccepted,
    HoldReleased,
)
from app.domain.hold_state import (
    CONFIRMED_RESOLUTION,
    Actor,
    BidHoldState,
    BidStatus,
    HoldStatus,
    ReleaseReason,
    ReservationPhase,
    assert_hold_transition,
    release_target,
)
from app.models.hold import Hold
from app.models.show_request import Bid, ShowRequest
from app.services.bid_ledger import BidLedger
from app.services.hold_ledger import HoldLedger

logger = logging.getLogger(__name__)


@dataclass
class GrantResult:
    hold: Hold
    held_bid_id: UUID
    frozen_bid_ids: list[UUID] = field(default_factory=list)


@dataclass
class ProvisionalAcceptResult:
    hold: Hold
    bid: Bid
    changed: bool = True


@dataclass
class ConfirmResult:
    hold: Hold
    winning_bid_id: UUID
    rejected_bid_ids: list[UUID] = field(default_factory=list)
    replayed: bool = False


@dataclass
class ReleaseResult:
    hold: Hold
    reason: ReleaseReason
    reopened_bid_ids: list[UUID] = field(default_factory=list)
    rejected_bid_id: UUID | None = None
    changed: bool = True


@dataclass
class HoldSnapshot:
    show_request_id: UUID
    has_active_hold: bool = False
    active_hold_id: UUID | None = None
    expires_at: datetime | None = None
    frozen_count: int = 0
    held_count: int = 0
    provisionally_accepted: bool = False


@dataclass
class ClearHoldsResult:
    holds_released: int = 0
    bids_reopened: int = 0
    failed_hold_ids: list[UUID] = field(default_factory=list)


class HoldService:
    """Grant, accept, confirm and release holds on show requests."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        publisher: HoldEventPublisher | None = None,
        clock: Callable[[], datetime] | None = None,
        min_duration_hours: int | None = None,
        max_duration_hours: int | None = None,
    ) -> None:
        self._session_factory = session_factory
        self._publisher = publisher
        self._clock = clock or (lambda: datetime.now(UTC))
        if min_duration_hours is None:
            min_duration_hours = settings.hold_min_duration_hours
        if max_duration_hours is None:
            max_duration_hours = settings.hold_max_duration_hours
        self.min_duration_hours = min_duration_hours
        self.max_duration_hours = max_duration_hours

    def now(self) -> datetime:
        return self._clock()

    @property
    def session_factory(self) -> async_sessionmaker[AsyncSession]:
        return self._session_factory

    # ==================== TRANSACTIONS ====================

    @asynccontextmanager
    async def _transaction(self, operation: str) -> AsyncIterator[AsyncSession]:
        """One atomic unit of work holding the reservation write authority."""
        async with self._session_factory() as db:
            try:
                # Authority must outlive the commit flush
                with reservation_authority(db):
                    async with db.begin():
                        yield db
            except AppException:
                raise
            except SQLAlchemyError as exc:
                logger.exception(f"Hold {operation} failed to commit: {exc}")
                raise PersistenceFailure() from exc

    async def _publish(self, event: HoldEvent) -> None:
        """Hand an event to the publisher; delivery failures never propagate."""
        if self._publisher is None:
            return
        try:
            await self._publisher.publish(event)
        except Exception:
            logger.exception(f"Failed to publish {event.event_type} for hold {event.hold_id}")

    # ==================== AUTHORIZATION ====================

    @staticmethod
    def _counterparty_id(hold: Hold, show_request: ShowRequest, target: Bid) -> UUID:
        """The party expected to answer the hold request."""
        if hold.requested_by_id == show_request.initiator_id:
            return target.bidder_id
        return show_request.initiator_id

    def _require_responder(
        self, hold: Hold, show_request: ShowRequest, target: Bid, actor: Actor
    ) -> None:
        if actor.is_admin:
            return
        if actor.user_id == hold.requested_by_id or actor.user_id != self._counterparty_id(
            hold, show_request, target
        ):
            raise AuthorizationError("You can only respond to hold requests on your own show requests or bids")

    @staticmethod
    def _require_chooser(show_request: ShowRequest, actor: Actor | None) -> None:
        """Accepting, confirming or turning down the held bid is the artist's call."""
        if actor is None or actor.is_admin:
            return
        if actor.user_id != show_request.initiator_id:
            raise AuthorizationError("Only the artist who owns the show request can do this")

    def _require_releaser(
        self,
        hold: Hold,
        show_request: ShowRequest,
        target: Bid,
        reason: ReleaseReason,
        actor: Actor | None,
    ) -> None:
        if actor is None or actor.is_admin:
            return
        counterparty = self._counterparty_id(hold, show_request, target)
        if reason is ReleaseReason.DECLINED and actor.user_id == counterparty:
            return
        if reason is ReleaseReason.CANCELLED and actor.user_id in (hold.requested_by_id, counterparty):
            return
        raise AuthorizationError(f"You are not allowed to release this hold as {reason.value}")

    @staticmethod
    def _can_view(hold: Hold, show_request: ShowRequest, target: Bid, actor: Actor) -> bool:
        return actor.is_admin or actor.user_id in {
            hold.requested_by_id,
            hold.responded_by_id,
            show_request.initiator_id,
            target.bidder_id,
        }

    # ==================== LOADING ====================

    async def _load(
        self, db: AsyncSession, hold_id: UUID, lock: bool = True
    ) -> tuple[Hold, ShowRequest, Bid]:
        """Hold, its show request and its targeted bid, locked for the transaction."""
        holds = HoldLedger(db)
        bids = BidLedger(db)
        hold = await holds.get(hold_id, for_update=lock)
        if hold is None:
            raise NotFoundError("Hold", str(hold_id))
        show_request = await bids.get_show_request(hold.show_request_id, for_update=lock)
        if show_request is None:
            raise NotFoundError("Show request", str(hold.show_request_id))
        target = await bids.get(hold.bid_id, for_update=lock)
        if target is None:
            raise NotFoundError("Bid", str(hold.bid_id))
        return hold, show_request, target

    @staticmethod
    def _require_unexpired(hold: Hold, now: datetime) -> None:
        """An overdue hold only waits for the sweeper; it cannot move forward."""
        if hold.expires_at is not None and hold.expires_at <= now:
            raise InvalidHoldState(
                f"Hold {hold.id} expired at {hold.expires_at.isoformat()}"
            )

    @staticmethod
    def _rebind(bid: Bid, phase: ReservationPhase, now: datetime) -> None:
        bid.reservation = phase
        bid.updated_at = now

    # ==================== REQUEST ====================

    async def request_hold(
        self,
        show_request_id: UUID,
        actor: Actor,
        duration_hours: int,
        reason: str,
        bid_id: UUID | None = None,
        custom_message: str | None = None,
    ) -> Hold:
        """Create a PENDING hold on a show request.

        The artist names the venue bid to hold; a venue holds its own bid.

        Raises:
            ValidationError: Duration out of bounds, missing reason or bid
            NotFoundError: Show request or bid missing
            AuthorizationError: Actor is not a party to the show request
            HoldConflict: Actor already has an open hold on it
            InvalidHoldState: Targeted bid is no longer live
        """
        if not self.min_duration_hours <= duration_hours <= self.max_duration_hours:
            raise ValidationError(
                f"Duration must be between {self.min_duration_hours} and "
                f"{self.max_duration_hours} hours"
            )
        if not reason or not reason.strip():
            raise ValidationError("A reason is required for a hold request")

        now = self.now()
        async with self._transaction("request") as db:
            bids = BidLedger(db)
            holds = HoldLedger(db)

            show_request = await bids.get_show_request(show_request_id, for_update=True)
            if show_request is None:
                raise NotFoundError("Show request", str(show_request_id))

            if actor.user_id == show_request.initiator_id:
                if bid_id is None:
                    raise ValidationError("Choose the bid you want to hold")
                target = await bids.get(bid_id)
                if target is None or target.show_request_id != show_request.id:
                    raise NotFoundError("Bid", str(bid_id))
            else:
                target = await bids.live_bid_for_bidder(show_request.id, actor.user_id)
                if target is None:
                    raise AuthorizationError(
                        "You can only request holds on your own show requests or bids"
                    )
                if bid_id is not None and bid_id != target.id:
                    raise ValidationError("You can only request a hold on your own bid")

            if not target.is_live:
                raise InvalidHoldState(f"Bid {target.id} is {target.status.value} and cannot be held")

            existing = await holds.open_for_requester(show_request.id, actor.user_id)
            if existing is not None:
                raise HoldConflict(
                    f"You already have an open hold request ({existing.id}) on this show request"
                )

            hold = holds.add(
                Hold(
                    show_request_id=show_request.id,
                    bid_id=target.id,
                    requested_by_id=actor.user_id,
                    status=HoldStatus.PENDING,
                    duration_hours=duration_hours,
                    reason=reason.strip(),
                    custom_message=custom_message,
                    frozen_bid_ids=[],
                    requested_at=now,
                    created_at=now,
                    updated_at=now,
                )
            )
            await db.flush()

        logger.info(
            f"Hold {hold.id} requested by {actor.user_id} on show request {show_request_id} "
            f"for bid {hold.bid_id} ({duration_hours}h)"
        )
        return hold

    # ==================== GRANT ====================

    async def grant(self, hold_id: UUID, actor: Actor) -> GrantResult:
        """Activate a PENDING hold, hold its bid and freeze every competitor.

        Raises:
            NotFoundError: Hold missing
            AuthorizationError: Actor is not the counterparty
            InvalidHoldState: Hold not PENDING, or its bid is no longer available
            HoldConflict: Another hold is ACTIVE on the same show request
        """
        now = self.now()
        async with self._transaction("grant") as db:
            holds = HoldLedger(db)
            bids = BidLedger(db)
            hold, show_request, target = await self._load(db, hold_id)
            self._require_responder(hold, show_request, target, actor)

            if hold.status is not HoldStatus.PENDING:
                raise InvalidHoldState(
                    f"Hold {hold.id} is {hold.status.value}; only PENDING holds can be granted"
                )

            active = await holds.active_for_request(hold.show_request_id)
            if active is not None:
                logger.info(f"Grant of hold {hold.id} refused: hold {active.id} is already active")
                raise HoldConflict(f"Hold {active.id} is already active for this show request")

            if not target.is_live or not target.reservation.is_available:
                raise InvalidHoldState(f"Bid {target.id} is no longer available to hold")

            live_bids = await bids.list_live(hold.show_request_id, for_update=True)
            competitors = [
                bid for bid in live_bids if bid.id != target.id and bid.reservation.is_available
            ]
            frozen_ids = [bid.id for bid in competitors]

            try:
                activated = await holds.activate_if_unopposed(hold, actor.user_id, now, frozen_ids)
            except IntegrityError as exc:
                raise HoldConflict() from exc
            if not activated:
                raise HoldConflict()

            self._rebind(target, ReservationPhase.held(hold.id), now)
            for bid in competitors:
                self._rebind(bid, ReservationPhase.frozen(hold.id), now)
                bid.frozen_at = now
                bid.unfrozen_at = None
            await db.flush()

        logger.info(
            f"Hold {hold.id} granted by {actor.user_id}: bid {target.id} held, "
            f"{len(frozen_ids)} competing bids frozen until {hold.expires_at.isoformat()}"
        )
        await self._publish(
            HoldGranted(
                hold_id=hold.id,
                show_request_id=hold.show_request_id,
                occurred_at=now,
                held_bid_id=target.id,
                frozen_bid_ids=tuple(frozen_ids),
                expires_at=hold.expires_at,
            )
        )
        return GrantResult(hold=hold, held_bid_id=target.id, frozen_bid_ids=frozen_ids)

    # ==================== ACCEPT / CONFIRM ====================

    async def accept_provisionally(
        self, hold_id: UUID, actor: Actor | None = None
    ) -> ProvisionalAcceptResult:
        """Provisionally accept the held bid; competitors stay frozen."""
        now = self.now()
        async with self._transaction("accept") as db:
            hold, show_request, target = await self._load(db, hold_id)
            self._require_chooser(show_request, actor)

            if hold.status is not HoldStatus.ACTIVE:
                raise InvalidHoldState(f"Hold {hold.id} is {hold.status.value}, not ACTIVE")
            self._require_unexpired(hold, now)

            if target.reservation == ReservationPhase.provisionally_accepted(hold.id):
                logger.info(f"Bid {target.id} already provisionally accepted under hold {hold.id}")
                return ProvisionalAcceptResult(hold=hold, bid=target, changed=False)

            if target.reservation != ReservationPhase.held(hold.id):
                raise InvalidHoldState(f"Bid {target.id} is not held by hold {hold.id}")

            self._rebind(target, ReservationPhase.provisionally_accepted(hold.id), now)
            await db.flush()

        logger.info(f"Bid {target.id} provisionally accepted under hold {hold.id}")
        await self._publish(
            HoldProvisionallyAccepted(
                hold_id=hold.id,
                show_request_id=hold.show_request_id,
                occurred_at=now,
                bid_id=target.id,
            )
        )
        return ProvisionalAcceptResult(hold=hold, bid=target)

    async def confirm(self, hold_id: UUID, actor: Actor | None = None) -> ConfirmResult:
        """Confirm the provisionally accepted bid and reject the frozen competitors.

        This is the only point where competitors learn they lost.
        """
        now = self.now()
        async with self._transaction("confirm") as db:
            hold, show_request, target = await self._load(db, hold_id)
            self._require_chooser(show_request, actor)

            if hold.status is HoldStatus.CANCELLED and hold.resolution == CONFIRMED_RESOLUTION:
                logger.info(f"Hold {hold.id} already confirmed, returning previous outcome")
                return ConfirmResult(
                    hold=hold,
                    winning_bid_id=hold.bid_id,
                    rejected_bid_ids=hold.frozen_bid_uuids,
                    replayed=True,
                )

            if hold.status is not HoldStatus.ACTIVE:
                raise InvalidHoldState(f"Hold {hold.id} is {hold.status.value}, not ACTIVE")
            self._require_unexpired(hold, now)
            if target.reservation != ReservationPhase.provisionally_accepted(hold.id):
                raise InvalidHoldState(
                    f"Bid {target.id} must be provisionally accepted before it can be confirmed"
                )

            rejected_ids: list[UUID] = []
            for bid in await BidLedger(db).list_bound_to(hold.id, for_update=True):
                if bid.id == target.id:
                    continue
                if bid.hold_state is BidHoldState.FROZEN:
                    bid.status = BidStatus.REJECTED
                    rejected_ids.append(bid.id)
                self._rebind(bid, ReservationPhase.available(), now)
                bid.unfrozen_at = now

            target.status = BidStatus.ACCEPTED
            target.accepted_at = now
            self._rebind(target, ReservationPhase.available(), now)

            assert_hold_transition(hold.status, HoldStatus.CANCELLED)
            hold.status = HoldStatus.CANCELLED
            hold.resolution = CONFIRMED_RESOLUTION
            hold.updated_at = now

            show_request.status = "booked"
            show_request.updated_at = now
            await db.flush()

        logger.info(
            f"Hold {hold.id} confirmed: bid {target.id} accepted, "
            f"{len(rejected_ids)} competing bids rejected"
        )
        await self._publish(
            HoldConfirmed(
                hold_id=hold.id,
                show_request_id=hold.show_request_id,
                occurred_at=now,
                winning_bid_id=target.id,
                rejected_bid_ids=tuple(rejected_ids),
            )
        )
        return ConfirmResult(hold=hold, winning_bid_id=target.id, rejected_bid_ids=rejected_ids)

    # ==================== RELEASE ====================

    async def _release_locked(
        self,
        db: AsyncSession,
        hold: Hold,
        target_status: HoldStatus,
        reason: ReleaseReason,
        now: datetime,
        actor: Actor | None,
    ) -> list[UUID]:
        """End the hold and return every bid bound to it to AVAILABLE."""
        reopened = await BidLedger(db).list_bound_to(hold.id, for_update=True)
        for bid in reopened:
            self._rebind(bid, ReservationPhase.available(), now)
            bid.unfrozen_at = now

        assert_hold_transition(hold.status, target_status)
        hold.status = target_status
        hold.resolution = reason.value
        hold.responded_at = now
        if actor is not None and reason is not ReleaseReason.EXPIRED:
            hold.responded_by_id = actor.user_id
        hold.updated_at = now
        await db.flush()
        return [bid.id for bid in reopened]

    async def release(
        self,
        hold_id: UUID,
        reason: ReleaseReason | str,
        actor: Actor | None = None,
    ) -> ReleaseResult:
        """End a hold without confirmation and reopen its bids.

        Releasing a hold that has already ended is a successful no-op, so the
        sweeper and a manual decline can race harmlessly.
        """
        reason = ReleaseReason(reason)
        now = self.now()
        async with self._transaction("release") as db:
            hold, show_request, target = await self._load(db, hold_id)
            self._require_releaser(hold, show_request, target, reason, actor)

            target_status = release_target(hold.status, reason)
            if target_status is None:
                logger.info(
                    f"Release of hold {hold.id} ({reason.value}) skipped: hold is {hold.status.value}"
                )
                return ReleaseResult(hold=hold, reason=reason, changed=False)

            reopened_ids = await self._release_locked(db, hold, target_status, reason, now, actor)

        logger.info(
            f"Hold {hold.id} released ({reason.value}): {len(reopened_ids)} bids back to AVAILABLE"
        )
        await self._publish(
            HoldReleased(
                hold_id=hold.id,
                show_request_id=hold.show_request_id,
                occurred_at=now,
                reason=reason,
                reopened_bid_ids=tuple(reopened_ids),
            )
        )
        return ReleaseResult(hold=hold, reason=reason, reopened_bid_ids=reopened_ids)

    async def decline_held_bid(self, hold_id: UUID, actor: Actor | None = None) -> ReleaseResult:
        """Turn down the held bid and reopen bidding for everyone else."""
        now = self.now()
        async with self._transaction("decline-held") as db:
            hold, show_request, target = await self._load(db, hold_id)
            self._require_chooser(show_request, actor)

            if hold.status is not HoldStatus.ACTIVE:
                raise InvalidHoldState(f"Hold {hold.id} is {hold.status.value}, not ACTIVE")
            if target.reservation not in (
                ReservationPhase.held(hold.id),
                ReservationPhase.provisionally_accepted(hold.id),
            ):
                raise InvalidHoldState(f"Bid {target.id} is not held by hold {hold.id}")

            target.status = BidStatus.REJECTED
            released_ids = await self._release_locked(
                db, hold, HoldStatus.DECLINED, ReleaseReason.DECLINED, now, actor
            )
            reopened_ids = [bid_id for bid_id in released_ids if bid_id != target.id]

        logger.info(
            f"Held bid {target.id} declined under hold {hold.id}: "
            f"{len(reopened_ids)} competing bids reopened"
        )
        await self._publish(
            HoldReleased(
                hold_id=hold.id,
                show_request_id=hold.show_request_id,
                occurred_at=now,
                reason=ReleaseReason.DECLINED,
                reopened_bid_ids=tuple(reopened_ids),
                rejected_bid_id=target.id,
            )
        )
        return ReleaseResult(
            hold=hold,
            reason=ReleaseReason.DECLINED,
            reopened_bid_ids=reopened_ids,
            rejected_bid_id=target.id,
        )

    async def release_all_active(self, actor: Actor | None = None) -> ClearHoldsResult:
        """Cancel every ACTIVE hold, one transaction per hold."""
        if actor is not None and not actor.is_admin:
            raise AuthorizationError("Admin access required")

        try:
            async with self._session_factory() as db:
                hold_ids = await HoldLedger(db).list_active()
        except SQLAlchemyError as exc:
            raise PersistenceFailure() from exc

        summary = ClearHoldsResult()
        for hold_id in hold_ids:
            try:
                result = await self.release(hold_id, ReleaseReason.CANCELLED, actor)
            except AppException as exc:
                logger.error(f"Could not clear hold {hold_id}: {exc.detail}")
                summary.failed_hold_ids.append(hold_id)
                continue
            if result.changed:
                summary.holds_released += 1
                summary.bids_reopened += len(result.reopened_bid_ids)

        logger.info(
            f"Cleared {summary.holds_released} active holds, "
            f"{summary.bids_reopened} bids back to AVAILABLE"
        )
        return summary

    # ==================== QUERIES ====================

    async def query_state(self, show_request_id: UUID) -> HoldSnapshot:
        """Current hold picture for a show request (read-only)."""
        try:
            async with self._session_factory() as db:
                active = await HoldLedger(db).active_for_request(show_request_id)
                counts = await BidLedger(db).hold_state_counts(show_request_id)
        except SQLAlchemyError as exc:
            raise PersistenceFailure() from exc

        return HoldSnapshot(
            show_request_id=show_request_id,
            has_active_hold=active is not None,
            active_hold_id=active.id if active else None,
            expires_at=active.expires_at if active else None,
            frozen_count=counts[BidHoldState.FROZEN],
            held_count=counts[BidHoldState.HELD] + counts[BidHoldState.ACCEPTED_HELD],
            provisionally_accepted=counts[BidHoldState.ACCEPTED_HELD] > 0,
        )

    async def get_hold(self, hold_id: UUID, actor: Actor | None = None) -> Hold:
        """A single hold, visible to the parties involved and admins."""
        try:
            async with self._session_factory() as db:
                hold, show_request, target = await self._load(db, hold_id, lock=False)
        except SQLAlchemyError as exc:
            raise PersistenceFailure() from exc

        if actor is not None and not self._can_view(hold, show_request, target, actor):
            raise AuthorizationError("You can only view hold requests you are involved in")
        return hold

    async def list_holds(
        self,
        actor: Actor | None,
        show_request_id: UUID | None = None,
        statuses: list[HoldStatus] | None = None,
    ) -> list[Hold]:
        """Holds the actor is involved in; admins and system callers see all."""
        user_id = None if actor is None or actor.is_admin else actor.user_id
        try:
            async with self._session_factory() as db:
                return await HoldLedger(db).list_involving(user_id, show_request_id, statuses)
        except SQLAlchemyError as exc:
            raise PersistenceFailure() from exc


def build_hold_service(
    session_factory: async_sessionmaker[AsyncSession] | None = None,
    publisher: HoldEventPublisher | None = None,
) -> HoldService:
    """Hold service wired to the application database and notifier."""
    from app.database import async_session_maker
    from app.services.notification_service import notification_service

    return HoldService(
        session_factory or async_session_maker,
        publisher=publisher or notification_service,
    )
