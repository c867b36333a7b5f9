"""Hold and bid reservation state machine rules.

Hold states:
- PENDING: Requested, waiting for the counterparty
- ACTIVE: Granted; competing bids are frozen until expires_at
- EXPIRED: Deadline passed (sweeper)
- DECLINED: Counterparty declined, or the held bid was turned down
- CANCELLED: Requester withdrew, an admin released it, or the held bid was
  confirmed (resolution == "confirmed")

Bid reservation phases (orthogonal to the bid lifecycle status):
- AVAILABLE: Not bound to any hold
- FROZEN(hold): Competing bid suspended by an active hold
- HELD(hold): The bid the active hold is on
- ACCEPTED_HELD(hold): Held bid provisionally accepted, competitors still frozen
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from enum import Enum

from app.core.exceptions import InvalidHoldState


class HoldStatus(str, Enum):
    """Hold request status."""

    PENDING = "PENDING"
    ACTIVE = "ACTIVE"
    EXPIRED = "EXPIRED"
    DECLINED = "DECLINED"
    CANCELLED = "CANCELLED"


class ReleaseReason(str, Enum):
    """Why a hold ended without confirmation."""

    DECLINED = "declined"
    CANCELLED = "cancelled"
    EXPIRED = "expired"


class BidStatus(str, Enum):
    """Bid lifecycle status."""

    PENDING = "PENDING"
    ACCEPTED = "ACCEPTED"
    REJECTED = "REJECTED"
    WITHDRAWN = "WITHDRAWN"
    CANCELLED = "CANCELLED"
    ON_HOLD = "ON_HOLD"


class BidHoldState(str, Enum):
    """Reservation phase tag stored on the bid row."""

    AVAILABLE = "AVAILABLE"
    FROZEN = "FROZEN"
    HELD = "HELD"
    ACCEPTED_HELD = "ACCEPTED_HELD"


HOLD_TRANSITIONS = {
    HoldStatus.PENDING: {HoldStatus.ACTIVE, HoldStatus.DECLINED, HoldStatus.CANCELLED},
    HoldStatus.ACTIVE: {HoldStatus.EXPIRED, HoldStatus.DECLINED, HoldStatus.CANCELLED},
    HoldStatus.EXPIRED: set(),
    HoldStatus.DECLINED: set(),
    HoldStatus.CANCELLED: set(),
}

TERMINAL_HOLD_STATUSES = frozenset(
    status for status, targets in HOLD_TRANSITIONS.items() if not targets
)

OPEN_HOLD_STATUSES = frozenset({HoldStatus.PENDING, HoldStatus.ACTIVE})

LIVE_BID_STATUSES = frozenset({BidStatus.PENDING, BidStatus.ON_HOLD})

RELEASE_TARGETS = {
    ReleaseReason.DECLINED: HoldStatus.DECLINED,
    ReleaseReason.CANCELLED: HoldStatus.CANCELLED,
    ReleaseReason.EXPIRED: HoldStatus.EXPIRED,
}

# Hold.resolution for a hold closed by confirming the held bid
CONFIRMED_RESOLUTION = "confirmed"


def assert_hold_transition(current: HoldStatus, target: HoldStatus) -> None:
    """Validate a hold status transition.

    Raises:
        InvalidHoldState: If the transition is not allowed
    """
    allowed = HOLD_TRANSITIONS.get(current, set())
    if target not in allowed:
        raise InvalidHoldState(
            f"Invalid hold transition: {current.value} → {target.value}"
        )


def is_terminal(status: HoldStatus) -> bool:
    return status in TERMINAL_HOLD_STATUSES


def release_target(current: HoldStatus, reason: ReleaseReason) -> HoldStatus | None:
    """Status a release moves the hold to, or None when the release is a no-op.

    Terminal holds are never reopened. A PENDING hold can be declined or
    cancelled but does not expire, it was never running.
    """
    if is_terminal(current):
        return None
    target = RELEASE_TARGETS[reason]
    if target not in HOLD_TRANSITIONS[current]:
        return None
    return target


@dataclass(frozen=True)
class ReservationPhase:
    """Tagged reservation phase of a bid: the tag plus the hold it points at.

    Mapped as a composite over ``bids.hold_state`` and ``bids.held_by_hold_id``.
    """

    state: BidHoldState | None
    held_by: uuid.UUID | None = None

    def __post_init__(self) -> None:
        if self.state is BidHoldState.AVAILABLE and self.held_by is not None:
            raise ValueError("An available bid cannot reference a hold")
        if self.state is not None and self.state is not BidHoldState.AVAILABLE and self.held_by is None:
            raise ValueError(f"A {self.state.value} bid must reference its hold")

    @classmethod
    def available(cls) -> ReservationPhase:
        return cls(BidHoldState.AVAILABLE, None)

    @classmethod
    def frozen(cls, hold_id: uuid.UUID) -> ReservationPhase:
        return cls(BidHoldState.FROZEN, hold_id)

    @classmethod
    def held(cls, hold_id: uuid.UUID) -> ReservationPhase:
        return cls(BidHoldState.HELD, hold_id)

    @classmethod
    def provisionally_accepted(cls, hold_id: uuid.UUID) -> ReservationPhase:
        return cls(BidHoldState.ACCEPTED_HELD, hold_id)

    @property
    def is_available(self) -> bool:
        return self.state in (None, BidHoldState.AVAILABLE)

    def is_bound_to(self, hold_id: uuid.UUID) -> bool:
        return self.held_by == hold_id


@dataclass(frozen=True)
class Actor:
    """Who is asking for a transition, as resolved by the API layer."""

    user_id: uuid.UUID
    is_admin: bool = False
