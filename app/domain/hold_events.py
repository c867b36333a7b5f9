"""Domain events emitted by the hold state machine after commit.

Payloads carry ids only; consumers look up display data themselves.
"""

from __future__ import annotations

import uuid
from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Any, ClassVar, Protocol

from app.domain.hold_state import ReleaseReason


def _jsonable(value: Any) -> Any:
    if isinstance(value, uuid.UUID):
        return str(value)
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, ReleaseReason):
        return value.value
    if isinstance(value, (list, tuple)):
        return [_jsonable(v) for v in value]
    return value


@dataclass(frozen=True)
class HoldEvent:
    """Base class for hold events."""

    event_type: ClassVar[str] = "hold_event"

    hold_id: uuid.UUID
    show_request_id: uuid.UUID
    occurred_at: datetime

    def as_payload(self) -> dict[str, Any]:
        payload = {key: _jsonable(value) for key, value in asdict(self).items()}
        payload["event_type"] = self.event_type
        return payload


@dataclass(frozen=True)
class HoldGranted(HoldEvent):
    event_type: ClassVar[str] = "hold_granted"

    held_bid_id: uuid.UUID | None = None
    frozen_bid_ids: tuple[uuid.UUID, ...] = field(default_factory=tuple)
    expires_at: datetime | None = None


@dataclass(frozen=True)
class HoldProvisionallyAccepted(HoldEvent):
    event_type: ClassVar[str] = "hold_provisionally_accepted"

    bid_id: uuid.UUID | None = None


@dataclass(frozen=True)
class HoldConfirmed(HoldEvent):
    event_type: ClassVar[str] = "hold_confirmed"

    winning_bid_id: uuid.UUID | None = None
    rejected_bid_ids: tuple[uuid.UUID, ...] = field(default_factory=tuple)


@dataclass(frozen=True)
class HoldReleased(HoldEvent):
    event_type: ClassVar[str] = "hold_released"

    reason: ReleaseReason = ReleaseReason.CANCELLED
    reopened_bid_ids: tuple[uuid.UUID, ...] = field(default_factory=tuple)
    rejected_bid_id: uuid.UUID | None = None


class HoldEventPublisher(Protocol):
    """Sink for hold events. Delivery is best effort."""

    async def publish(self, event: HoldEvent) -> None: ...
