"""Tests for the hold expiry sweeper."""

import asyncio
import logging

from app.core.exceptions import PersistenceFailure
from app.domain.hold_events import HoldReleased
from app.domain.hold_state import BidHoldState, HoldStatus, ReleaseReason
from app.services.expiry_sweeper import ExpirySweeper
from tests.conftest import active_venue_hold, load_bids, load_hold, seed_marketplace, venue_hold


class TestExpirySweeper:
    async def test_nothing_due(self, hold_service, session_factory, market) -> None:
        await active_venue_hold(hold_service, market, hours=24)
        sweeper = ExpirySweeper(hold_service, session_factory)

        result = await sweeper.sweep()

        assert result.as_dict() == {"expired": 0, "skipped": 0, "failed": 0}

    async def test_expires_overdue_hold_and_reopens_bids(
        self, hold_service, session_factory, market, clock, publisher
    ) -> None:
        hold = await active_venue_hold(hold_service, market, hours=2)
        clock.advance(hours=2, seconds=1)
        sweeper = ExpirySweeper(hold_service, session_factory)

        result = await sweeper.sweep()

        assert result.expired_hold_ids == [hold.id]
        stored = await load_hold(session_factory, hold.id)
        assert stored.status is HoldStatus.EXPIRED
        assert stored.resolution == "expired"
        bids = await load_bids(session_factory, market.show_request.id)
        assert all(bid.hold_state is BidHoldState.AVAILABLE for bid in bids.values())
        assert all(bid.held_by_hold_id is None for bid in bids.values())

        [event] = publisher.of_type(HoldReleased)
        assert event.reason is ReleaseReason.EXPIRED

    async def test_deadline_is_inclusive(self, hold_service, session_factory, market, clock) -> None:
        hold = await active_venue_hold(hold_service, market, hours=1)
        clock.advance(hours=1)

        result = await ExpirySweeper(hold_service, session_factory).sweep()

        assert result.expired_hold_ids == [hold.id]

    async def test_pending_holds_are_left_alone(self, hold_service, session_factory, market, clock) -> None:
        hold = await venue_hold(hold_service, market, hours=1)
        clock.advance(days=3)

        result = await ExpirySweeper(hold_service, session_factory).sweep()

        assert result.expired_hold_ids == []
        assert (await load_hold(session_factory, hold.id)).status is HoldStatus.PENDING

    async def test_concurrent_sweeps_expire_once(
        self, hold_service, session_factory, market, clock, publisher
    ) -> None:
        hold = await active_venue_hold(hold_service, market, hours=1)
        clock.advance(hours=3)
        first = ExpirySweeper(hold_service, session_factory)
        second = ExpirySweeper(hold_service, session_factory)

        results = await asyncio.gather(first.sweep(), second.sweep())

        expired = [hold_id for result in results for hold_id in result.expired_hold_ids]
        assert expired == [hold.id]
        assert all(not result.failed_hold_ids for result in results)
        assert len(publisher.of_type(HoldReleased)) == 1

    async def test_already_declined_hold_is_skipped(
        self, hold_service, session_factory, market, clock
    ) -> None:
        hold = await active_venue_hold(hold_service, market, hours=1)
        clock.advance(hours=2)
        sweeper = ExpirySweeper(hold_service, session_factory)
        due = await sweeper.find_expired()
        assert due == [hold.id]
        await hold_service.release(hold.id, ReleaseReason.DECLINED, market.artist_actor)

        for hold_id in due:
            release = await hold_service.release(hold_id, ReleaseReason.EXPIRED)
            assert not release.changed
        assert (await load_hold(session_factory, hold.id)).status is HoldStatus.DECLINED

    async def test_batch_size_limits_one_pass(self, hold_service, session_factory, clock) -> None:
        markets = [
            await seed_marketplace(session_factory, venue_count=2, prefix=f"m{n}.") for n in range(3)
        ]
        for market in markets:
            await active_venue_hold(hold_service, market, hours=1)
        clock.advance(hours=2)
        sweeper = ExpirySweeper(hold_service, session_factory, batch_size=2)

        first = await sweeper.sweep()
        second = await sweeper.sweep()

        assert len(first.expired_hold_ids) == 2
        assert len(second.expired_hold_ids) == 1

    async def test_failing_hold_does_not_stop_the_batch(
        self, hold_service, session_factory, clock, monkeypatch, caplog
    ) -> None:
        broken_market = await seed_marketplace(session_factory, venue_count=2, prefix="a.")
        healthy_market = await seed_marketplace(session_factory, venue_count=2, prefix="b.")
        broken = await active_venue_hold(hold_service, broken_market, hours=1)
        healthy = await active_venue_hold(hold_service, healthy_market, hours=1)
        clock.advance(hours=2)
        release = hold_service.release

        async def flaky_release(hold_id, reason, actor=None):
            if hold_id == broken.id:
                raise PersistenceFailure()
            return await release(hold_id, reason, actor)

        monkeypatch.setattr(hold_service, "release", flaky_release)

        with caplog.at_level(logging.ERROR, logger="app.services.expiry_sweeper"):
            result = await ExpirySweeper(hold_service, session_factory).sweep()

        assert result.failed_hold_ids == [broken.id]
        assert result.expired_hold_ids == [healthy.id]
        assert (await load_hold(session_factory, broken.id)).status is HoldStatus.ACTIVE
        assert (await load_hold(session_factory, healthy.id)).status is HoldStatus.EXPIRED
        assert f"failed to expire hold {broken.id}" in caplog.text

        monkeypatch.undo()
        retry = await ExpirySweeper(hold_service, session_factory).sweep()
        assert retry.expired_hold_ids == [broken.id]
