"""Notification service for hold events.

Handles the notification channels for hold lifecycle events:
- Application log
- In-app notifications (database)
- Outbound webhook (optional, JSON POST)
"""

from __future__ import annotations

import logging
from typing import Any
from uuid import UUID

import httpx
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.config import settings
from app.domain.hold_events import (
    HoldConfirmed,
    HoldEvent,
    HoldGranted,
    HoldProvisionallyAccepted,
    HoldReleased,
)
from app.models.hold import Hold
from app.models.notification import Notification
from app.models.show_request import Bid, ShowRequest

logger = logging.getLogger(__name__)


class HoldNotificationService:
    """Publishes hold events to the log, in-app notifications and a webhook."""

    # Notification types
    HOLD_GRANTED = "hold_granted"
    BIDDING_PAUSED = "bidding_paused"
    BID_PROVISIONALLY_ACCEPTED = "bid_provisionally_accepted"
    BID_ACCEPTED = "bid_accepted"
    BID_REJECTED = "bid_rejected"
    BIDDING_REOPENED = "bidding_reopened"
    HOLD_RELEASED = "hold_released"

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession] | None = None,
        webhook_url: str | None = None,
        webhook_timeout: float | None = None,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        """Initialize notification service."""
        self._session_factory = session_factory
        self.webhook_url = webhook_url
        self.webhook_timeout = webhook_timeout or settings.hold_events_webhook_timeout
        self._http_client = http_client

    @property
    def session_factory(self) -> async_sessionmaker[AsyncSession]:
        if self._session_factory is None:
            from app.database import async_session_maker

            self._session_factory = async_session_maker
        return self._session_factory

    @property
    def http_client(self) -> httpx.AsyncClient:
        """Lazy-load HTTP client."""
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(timeout=self.webhook_timeout)
        return self._http_client

    async def close(self) -> None:
        """Close HTTP client."""
        if self._http_client:
            await self._http_client.aclose()
            self._http_client = None

    # ==================== PUBLISHER ====================

    async def publish(self, event: HoldEvent) -> None:
        """Deliver one event on every channel. Channel failures are logged only."""
        logger.info(
            f"Hold event {event.event_type}: hold={event.hold_id} "
            f"show_request={event.show_request_id}"
        )

        try:
            created = await self.store_notifications(event)
            logger.debug(f"Stored {created} notifications for {event.event_type} on hold {event.hold_id}")
        except SQLAlchemyError as e:
            logger.error(f"Failed to store notifications for hold {event.hold_id}: {e}")

        if self.webhook_url:
            await self.send_webhook(event)

    # ==================== IN-APP NOTIFICATIONS ====================

    async def create_notification(
        self,
        db: AsyncSession,
        user_id: UUID,
        title: str,
        body: str,
        notification_type: str,
        payload: dict[str, Any] | None = None,
        hold_id: UUID | None = None,
        bid_id: UUID | None = None,
    ) -> Notification:
        """Create an in-app notification.

        Args:
            db: Database session
            user_id: User to notify
            title: Notification title
            body: Notification body text
            notification_type: Type of notification
            payload: Event payload for clients
            hold_id: Related hold ID
            bid_id: Related bid ID

        Returns:
            Notification: Created notification
        """
        notification = Notification(
            user_id=user_id,
            title=title,
            body=body,
            notification_type=notification_type,
            payload=payload,
            hold_id=hold_id,
            bid_id=bid_id,
        )
        db.add(notification)
        await db.flush()
        return notification

    async def store_notifications(self, event: HoldEvent) -> int:
        """Write in-app notifications for everyone affected by the event."""
        async with self.session_factory() as db:
            async with db.begin():
                hold = await db.get(Hold, event.hold_id)
                show_request = await db.get(ShowRequest, event.show_request_id)
                if hold is None or show_request is None:
                    logger.warning(f"Skipping notifications for unknown hold {event.hold_id}")
                    return 0

                bidders = await self._bidders(db, self._bid_ids(event, hold))
                messages = self._messages(event, hold, show_request, bidders)
                payload = event.as_payload()
                for user_id, notification_type, title, body, bid_id in messages:
                    await self.create_notification(
                        db,
                        user_id=user_id,
                        title=title,
                        body=body,
                        notification_type=notification_type,
                        payload=payload,
                        hold_id=hold.id,
                        bid_id=bid_id,
                    )
                return len(messages)

    @staticmethod
    def _bid_ids(event: HoldEvent, hold: Hold) -> set[UUID]:
        ids = {hold.bid_id}
        if isinstance(event, HoldGranted):
            ids.update(event.frozen_bid_ids)
        elif isinstance(event, HoldConfirmed):
            ids.update(event.rejected_bid_ids)
        elif isinstance(event, HoldReleased):
            ids.update(event.reopened_bid_ids)
        return ids

    @staticmethod
    async def _bidders(db: AsyncSession, bid_ids: set[UUID]) -> dict[UUID, UUID]:
        """Map bid id to bidder id."""
        if not bid_ids:
            return {}
        result = await db.execute(select(Bid.id, Bid.bidder_id).where(Bid.id.in_(bid_ids)))
        return {bid_id: bidder_id for bid_id, bidder_id in result.all()}

    def _messages(
        self,
        event: HoldEvent,
        hold: Hold,
        show_request: ShowRequest,
        bidders: dict[UUID, UUID],
    ) -> list[tuple[UUID, str, str, str, UUID | None]]:
        """(user_id, type, title, body, bid_id) for each recipient."""
        title = show_request.title
        held_bidder = bidders.get(hold.bid_id)
        messages: list[tuple[UUID, str, str, str, UUID | None]] = []

        if isinstance(event, HoldGranted):
            expires = event.expires_at.strftime("%Y-%m-%d %H:%M UTC") if event.expires_at else "expiry"
            messages.append(
                (
                    hold.requested_by_id,
                    self.HOLD_GRANTED,
                    "Hold granted",
                    f"Your hold on '{title}' is active until {expires}.",
                    hold.bid_id,
                )
            )
            if held_bidder and held_bidder != hold.requested_by_id:
                messages.append(
                    (
                        held_bidder,
                        self.HOLD_GRANTED,
                        "Your bid is on hold",
                        f"Your bid on '{title}' is held until {expires}.",
                        hold.bid_id,
                    )
                )
            for bid_id in event.frozen_bid_ids:
                if bid_id in bidders:
                    messages.append(
                        (
                            bidders[bid_id],
                            self.BIDDING_PAUSED,
                            "Bidding paused",
                            f"Another bid on '{title}' is on hold until {expires}. "
                            "Your bid is paused, not rejected.",
                            bid_id,
                        )
                    )

        elif isinstance(event, HoldProvisionallyAccepted):
            if held_bidder:
                messages.append(
                    (
                        held_bidder,
                        self.BID_PROVISIONALLY_ACCEPTED,
                        "Bid provisionally accepted",
                        f"Your bid on '{title}' was provisionally accepted and awaits confirmation.",
                        event.bid_id,
                    )
                )

        elif isinstance(event, HoldConfirmed):
            if held_bidder:
                messages.append(
                    (
                        held_bidder,
                        self.BID_ACCEPTED,
                        "Bid accepted",
                        f"Your bid on '{title}' was accepted.",
                        event.winning_bid_id,
                    )
                )
            for bid_id in event.rejected_bid_ids:
                if bid_id in bidders:
                    messages.append(
                        (
                            bidders[bid_id],
                            self.BID_REJECTED,
                            "Bid not selected",
                            f"'{title}' was booked with another venue.",
                            bid_id,
                        )
                    )

        elif isinstance(event, HoldReleased):
            messages.append(
                (
                    hold.requested_by_id,
                    self.HOLD_RELEASED,
                    f"Hold {event.reason.value}",
                    f"Your hold on '{title}' was {event.reason.value}.",
                    hold.bid_id,
                )
            )
            if event.rejected_bid_id and held_bidder:
                messages.append(
                    (
                        held_bidder,
                        self.BID_REJECTED,
                        "Bid declined",
                        f"Your held bid on '{title}' was declined.",
                        event.rejected_bid_id,
                    )
                )
            for bid_id in event.reopened_bid_ids:
                if bid_id in bidders:
                    messages.append(
                        (
                            bidders[bid_id],
                            self.BIDDING_REOPENED,
                            "Bidding reopened",
                            f"Bidding on '{title}' is open again.",
                            bid_id,
                        )
                    )

        return messages

    # ==================== WEBHOOK ====================

    async def send_webhook(self, event: HoldEvent) -> bool:
        """POST the event payload to the configured webhook.

        Returns:
            bool: True if the receiver answered 2xx
        """
        if not self.webhook_url:
            return False

        try:
            response = await self.http_client.post(
                self.webhook_url,
                json=event.as_payload(),
                headers={"X-Hold-Event": event.event_type},
            )
        except httpx.HTTPError as e:
            logger.warning(f"Hold webhook delivery failed for {event.event_type}: {e}")
            return False

        if not response.is_success:
            logger.warning(
                f"Hold webhook rejected {event.event_type} for hold {event.hold_id}: "
                f"HTTP {response.status_code}"
            )
            return False
        return True


# Singleton instance
notification_service = HoldNotificationService(webhook_url=settings.hold_events_webhook_url)
