"""Shared fixtures: a throwaway SQLite database per test plus a seeded marketplace."""

import os

os.environ.setdefault("DATABASE_DSN", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("HOLD_SWEEPER_ENABLED", "false")

from dataclasses import dataclass, field
from datetime import UTC, date, datetime, timedelta
from uuid import UUID

import pytest
from sqlalchemy import select

import app.models  # noqa: F401  (registers mappers and the reservation guard)
from app.database import Base, build_engine, build_session_factory
from app.domain.hold_state import Actor, BidStatus
from app.models.hold import Hold
from app.models.show_request import Bid, ShowRequest
from app.models.user import User
from app.services.hold_service import HoldService


class RecordingPublisher:
    """Collects published hold events in order."""

    def __init__(self) -> None:
        self.events = []

    async def publish(self, event) -> None:
        self.events.append(event)

    def of_type(self, event_cls) -> list:
        return [event for event in self.events if isinstance(event, event_cls)]


class FixedClock:
    """Controllable clock for hold deadlines."""

    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


@dataclass
class Marketplace:
    """One artist's show request with four competing venue bids."""

    artist: User
    admin: User
    venues: list[User]
    show_request: ShowRequest
    bids: list[Bid] = field(default_factory=list)

    @property
    def artist_actor(self) -> Actor:
        return Actor(self.artist.id)

    @property
    def admin_actor(self) -> Actor:
        return Actor(self.admin.id, is_admin=True)

    def venue_actor(self, index: int) -> Actor:
        return Actor(self.venues[index].id)

    @property
    def bid_ids(self) -> list[UUID]:
        return [bid.id for bid in self.bids]


@pytest.fixture
async def engine(tmp_path):
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'holds.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return build_session_factory(engine)


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock(datetime(2026, 3, 1, 12, 0, tzinfo=UTC))


@pytest.fixture
def publisher() -> RecordingPublisher:
    return RecordingPublisher()


@pytest.fixture
def hold_service(session_factory, publisher, clock) -> HoldService:
    return HoldService(session_factory, publisher=publisher, clock=clock)


async def seed_marketplace(session_factory, venue_count: int = 4, prefix: str = "") -> Marketplace:
    async with session_factory() as db:
        async with db.begin():
            artist = User(email=f"{prefix}artist@example.com", display_name="Nova Lights", role="artist")
            admin = User(email=f"{prefix}admin@example.com", role="admin")
            venues = [
                User(email=f"{prefix}venue{i}@example.com", display_name=f"Venue {i}", role="venue")
                for i in range(1, venue_count + 1)
            ]
            db.add_all([artist, admin, *venues])
            await db.flush()

            show_request = ShowRequest(
                initiator_id=artist.id,
                title="Spring tour opener",
                requested_date=date(2026, 4, 18),
                status="open",
            )
            db.add(show_request)
            await db.flush()

            bids = [
                Bid(
                    show_request_id=show_request.id,
                    bidder_id=venue.id,
                    proposed_fee=50_000 * (i + 1),
                    status=BidStatus.PENDING,
                )
                for i, venue in enumerate(venues)
            ]
            db.add_all(bids)
            await db.flush()

    return Marketplace(
        artist=artist, admin=admin, venues=venues, show_request=show_request, bids=bids
    )


@pytest.fixture
async def market(session_factory) -> Marketplace:
    return await seed_marketplace(session_factory)


async def load_bids(session_factory, show_request_id: UUID) -> dict[UUID, Bid]:
    async with session_factory() as db:
        result = await db.execute(select(Bid).where(Bid.show_request_id == show_request_id))
        return {bid.id: bid for bid in result.scalars().all()}


async def load_hold(session_factory, hold_id: UUID) -> Hold:
    async with session_factory() as db:
        return (await db.execute(select(Hold).where(Hold.id == hold_id))).scalar_one()


async def load_show_request(session_factory, show_request_id: UUID) -> ShowRequest:
    async with session_factory() as db:
        return (
            await db.execute(select(ShowRequest).where(ShowRequest.id == show_request_id))
        ).scalar_one()


async def venue_hold(hold_service: HoldService, market: Marketplace, index: int = 0, hours: int = 24) -> Hold:
    """A venue requests a hold on its own bid."""
    return await hold_service.request_hold(
        market.show_request.id,
        market.venue_actor(index),
        duration_hours=hours,
        reason="Confirming production budget",
    )


async def active_venue_hold(
    hold_service: HoldService, market: Marketplace, index: int = 0, hours: int = 24
) -> Hold:
    """A venue-requested hold the artist has granted."""
    hold = await venue_hold(hold_service, market, index, hours)
    result = await hold_service.grant(hold.id, market.artist_actor)
    return result.hold
