"""Concurrent grants, releases and confirms on one show request."""

import asyncio

from app.core.exceptions import HoldConflict
from app.domain.hold_state import BidHoldState, HoldStatus, ReleaseReason
from app.services.hold_service import HoldService
from tests.conftest import active_venue_hold, load_bids, load_hold, seed_marketplace, venue_hold


class TestConcurrentGrant:
    async def test_exactly_one_grant_wins(self, session_factory, publisher, clock) -> None:
        market = await seed_marketplace(session_factory, venue_count=5)
        service = HoldService(session_factory, publisher=publisher, clock=clock)
        holds = [await venue_hold(service, market, index=i) for i in range(5)]

        outcomes = await asyncio.gather(
            *(service.grant(hold.id, market.artist_actor) for hold in holds),
            return_exceptions=True,
        )

        winners = [o for o in outcomes if not isinstance(o, BaseException)]
        losers = [o for o in outcomes if isinstance(o, BaseException)]
        assert len(winners) == 1
        assert len(losers) == 4
        assert all(isinstance(exc, HoldConflict) for exc in losers)

        winner = winners[0]
        statuses = {hold.id: (await load_hold(session_factory, hold.id)).status for hold in holds}
        assert [s for s in statuses.values() if s is HoldStatus.ACTIVE] == [HoldStatus.ACTIVE]
        assert statuses[winner.hold.id] is HoldStatus.ACTIVE

        bids = await load_bids(session_factory, market.show_request.id)
        held = [bid for bid in bids.values() if bid.hold_state is BidHoldState.HELD]
        frozen = [bid for bid in bids.values() if bid.hold_state is BidHoldState.FROZEN]
        assert [bid.id for bid in held] == [winner.held_bid_id]
        assert len(frozen) == 4
        assert all(bid.held_by_hold_id == winner.hold.id for bid in bids.values())

    async def test_every_bid_bound_to_a_single_hold(self, session_factory, publisher, clock) -> None:
        market = await seed_marketplace(session_factory, venue_count=3)
        service = HoldService(session_factory, publisher=publisher, clock=clock)
        holds = [await venue_hold(service, market, index=i) for i in range(3)]

        await asyncio.gather(
            *(service.grant(hold.id, market.artist_actor) for hold in holds),
            return_exceptions=True,
        )

        bids = await load_bids(session_factory, market.show_request.id)
        assert len({bid.held_by_hold_id for bid in bids.values()}) == 1


class TestConcurrentRelease:
    async def test_decline_and_expiry_race(self, hold_service, market, session_factory, clock, publisher) -> None:
        hold = await active_venue_hold(hold_service, market)
        clock.advance(hours=25)

        outcomes = await asyncio.gather(
            hold_service.release(hold.id, ReleaseReason.EXPIRED),
            hold_service.release(hold.id, ReleaseReason.DECLINED, market.artist_actor),
        )

        assert sum(1 for result in outcomes if result.changed) == 1
        stored = await load_hold(session_factory, hold.id)
        assert stored.status in (HoldStatus.EXPIRED, HoldStatus.DECLINED)
        bids = await load_bids(session_factory, market.show_request.id)
        assert all(bid.hold_state is BidHoldState.AVAILABLE for bid in bids.values())

    async def test_confirm_and_release_race(self, hold_service, market, session_factory) -> None:
        hold = await active_venue_hold(hold_service, market)
        await hold_service.accept_provisionally(hold.id)

        outcomes = await asyncio.gather(
            hold_service.confirm(hold.id),
            hold_service.release(hold.id, ReleaseReason.CANCELLED),
            return_exceptions=True,
        )

        stored = await load_hold(session_factory, hold.id)
        bids = await load_bids(session_factory, market.show_request.id)
        assert all(bid.hold_state is BidHoldState.AVAILABLE for bid in bids.values())
        if stored.resolution == "confirmed":
            assert not outcomes[1].changed
        else:
            # Release won; confirm finds a CANCELLED hold that was never confirmed
            assert isinstance(outcomes[0], BaseException)
            assert stored.status is HoldStatus.CANCELLED
