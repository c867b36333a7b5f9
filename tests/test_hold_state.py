"""Unit tests for hold transition rules and the bid reservation phase.

Pure computation, no database.
"""

import uuid

import pytest

from app.core.exceptions import InvalidHoldState
from app.domain.hold_events import HoldGranted, HoldReleased
from app.domain.hold_state import (
    BidHoldState,
    HoldStatus,
    ReleaseReason,
    ReservationPhase,
    TERMINAL_HOLD_STATUSES,
    assert_hold_transition,
    is_terminal,
    release_target,
)


# ===================================================================
# Hold transitions
# ===================================================================

class TestHoldTransitions:
    @pytest.mark.parametrize(
        "current,target",
        [
            (HoldStatus.PENDING, HoldStatus.ACTIVE),
            (HoldStatus.PENDING, HoldStatus.DECLINED),
            (HoldStatus.PENDING, HoldStatus.CANCELLED),
            (HoldStatus.ACTIVE, HoldStatus.EXPIRED),
            (HoldStatus.ACTIVE, HoldStatus.DECLINED),
            (HoldStatus.ACTIVE, HoldStatus.CANCELLED),
        ],
    )
    def test_allowed(self, current, target) -> None:
        assert_hold_transition(current, target)

    @pytest.mark.parametrize(
        "current,target",
        [
            (HoldStatus.PENDING, HoldStatus.EXPIRED),
            (HoldStatus.ACTIVE, HoldStatus.PENDING),
            (HoldStatus.EXPIRED, HoldStatus.ACTIVE),
            (HoldStatus.DECLINED, HoldStatus.CANCELLED),
            (HoldStatus.CANCELLED, HoldStatus.ACTIVE),
        ],
    )
    def test_rejected(self, current, target) -> None:
        with pytest.raises(InvalidHoldState):
            assert_hold_transition(current, target)

    def test_terminal_statuses(self) -> None:
        assert TERMINAL_HOLD_STATUSES == {
            HoldStatus.EXPIRED,
            HoldStatus.DECLINED,
            HoldStatus.CANCELLED,
        }
        assert not is_terminal(HoldStatus.PENDING)
        assert not is_terminal(HoldStatus.ACTIVE)


class TestReleaseTarget:
    def test_active_hold_follows_reason(self) -> None:
        assert release_target(HoldStatus.ACTIVE, ReleaseReason.DECLINED) is HoldStatus.DECLINED
        assert release_target(HoldStatus.ACTIVE, ReleaseReason.CANCELLED) is HoldStatus.CANCELLED
        assert release_target(HoldStatus.ACTIVE, ReleaseReason.EXPIRED) is HoldStatus.EXPIRED

    def test_pending_hold_can_be_declined_or_cancelled(self) -> None:
        assert release_target(HoldStatus.PENDING, ReleaseReason.DECLINED) is HoldStatus.DECLINED
        assert release_target(HoldStatus.PENDING, ReleaseReason.CANCELLED) is HoldStatus.CANCELLED

    def test_pending_hold_never_expires(self) -> None:
        assert release_target(HoldStatus.PENDING, ReleaseReason.EXPIRED) is None

    @pytest.mark.parametrize("status", sorted(TERMINAL_HOLD_STATUSES))
    def test_terminal_hold_is_noop(self, status) -> None:
        for reason in ReleaseReason:
            assert release_target(status, reason) is None


# ===================================================================
# Reservation phase
# ===================================================================

class TestReservationPhase:
    def test_available_has_no_hold(self) -> None:
        phase = ReservationPhase.available()
        assert phase.state is BidHoldState.AVAILABLE
        assert phase.held_by is None
        assert phase.is_available

    def test_bound_phases_carry_hold(self) -> None:
        hold_id = uuid.uuid4()
        for phase in (
            ReservationPhase.frozen(hold_id),
            ReservationPhase.held(hold_id),
            ReservationPhase.provisionally_accepted(hold_id),
        ):
            assert phase.held_by == hold_id
            assert phase.is_bound_to(hold_id)
            assert not phase.is_available

    def test_equality_includes_hold(self) -> None:
        first, second = uuid.uuid4(), uuid.uuid4()
        assert ReservationPhase.held(first) == ReservationPhase.held(first)
        assert ReservationPhase.held(first) != ReservationPhase.held(second)
        assert ReservationPhase.held(first) != ReservationPhase.frozen(first)

    def test_available_cannot_reference_hold(self) -> None:
        with pytest.raises(ValueError):
            ReservationPhase(BidHoldState.AVAILABLE, uuid.uuid4())

    def test_bound_phase_requires_hold(self) -> None:
        with pytest.raises(ValueError):
            ReservationPhase(BidHoldState.FROZEN, None)


# ===================================================================
# Event payloads
# ===================================================================

class TestEventPayloads:
    def test_granted_payload_is_json_ready(self) -> None:
        from datetime import UTC, datetime

        hold_id, request_id, bid_id, other = (uuid.uuid4() for _ in range(4))
        now = datetime(2026, 3, 1, 12, 0, tzinfo=UTC)
        event = HoldGranted(
            hold_id=hold_id,
            show_request_id=request_id,
            occurred_at=now,
            held_bid_id=bid_id,
            frozen_bid_ids=(other,),
            expires_at=now,
        )
        payload = event.as_payload()
        assert payload["event_type"] == "hold_granted"
        assert payload["hold_id"] == str(hold_id)
        assert payload["frozen_bid_ids"] == [str(other)]
        assert payload["expires_at"] == now.isoformat()

    def test_released_payload_carries_reason(self) -> None:
        from datetime import UTC, datetime

        event = HoldReleased(
            hold_id=uuid.uuid4(),
            show_request_id=uuid.uuid4(),
            occurred_at=datetime.now(UTC),
            reason=ReleaseReason.EXPIRED,
        )
        assert event.as_payload()["reason"] == "expired"
        assert event.as_payload()["rejected_bid_id"] is None
