"""Show request and bid models."""

from __future__ import annotations

import uuid
from datetime import date, datetime
from typing import TYPE_CHECKING

from sqlalchemy import CheckConstraint, Date, Enum, ForeignKey, Index, Integer, String, Text, Uuid
from sqlalchemy.orm import Mapped, composite, mapped_column, relationship
from sqlalchemy.sql import func

from app.database import Base, TZDateTime
from app.domain.hold_state import BidHoldState, BidStatus, LIVE_BID_STATUSES, ReservationPhase

if TYPE_CHECKING:
    from app.models.hold import Hold
    from app.models.user import User


class ShowRequest(Base):
    """An artist looking for a venue on a date; venues compete with bids."""

    __tablename__ = "show_requests"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    initiator_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id"), nullable=False, index=True
    )
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    requested_date: Mapped[date] = mapped_column(Date, nullable=False, index=True)
    status: Mapped[str] = mapped_column(
        String(20), default="open", index=True
    )  # open, booked, cancelled

    created_at: Mapped[datetime] = mapped_column(TZDateTime, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        TZDateTime, server_default=func.now(), onupdate=func.now()
    )

    # Relationships
    initiator: Mapped["User"] = relationship("User", back_populates="show_requests")
    bids: Mapped[list["Bid"]] = relationship("Bid", back_populates="show_request")
    holds: Mapped[list["Hold"]] = relationship("Hold", back_populates="show_request")


class Bid(Base):
    """A venue's competing bid on a show request."""

    __tablename__ = "bids"
    __table_args__ = (
        CheckConstraint(
            "(hold_state = 'AVAILABLE' AND held_by_hold_id IS NULL) OR "
            "(hold_state <> 'AVAILABLE' AND held_by_hold_id IS NOT NULL)",
            name="ck_bids_reservation_phase",
        ),
        Index("ix_bids_request_hold_state", "show_request_id", "hold_state"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    show_request_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("show_requests.id", ondelete="CASCADE"), nullable=False, index=True
    )
    bidder_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id"), nullable=False, index=True
    )
    proposed_fee: Mapped[int] = mapped_column(Integer, default=0)  # smallest currency unit
    message: Mapped[str | None] = mapped_column(Text)

    status: Mapped[BidStatus] = mapped_column(
        Enum(BidStatus, native_enum=False, length=20),
        default=BidStatus.PENDING,
        nullable=False,
        index=True,
    )

    # Reservation phase, written only by the hold state machine
    hold_state: Mapped[BidHoldState] = mapped_column(
        Enum(BidHoldState, native_enum=False, length=20),
        default=BidHoldState.AVAILABLE,
        nullable=False,
    )
    held_by_hold_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("holds.id", use_alter=True, name="fk_bids_held_by_hold_id"), index=True
    )
    reservation: Mapped[ReservationPhase] = composite("hold_state", "held_by_hold_id")

    frozen_at: Mapped[datetime | None] = mapped_column(TZDateTime)
    unfrozen_at: Mapped[datetime | None] = mapped_column(TZDateTime)
    accepted_at: Mapped[datetime | None] = mapped_column(TZDateTime)

    created_at: Mapped[datetime] = mapped_column(TZDateTime, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        TZDateTime, server_default=func.now(), onupdate=func.now()
    )

    # Relationships
    show_request: Mapped["ShowRequest"] = relationship("ShowRequest", back_populates="bids")
    bidder: Mapped["User"] = relationship("User", back_populates="bids")

    @property
    def is_live(self) -> bool:
        """Still competing for the show request."""
        return self.status in LIVE_BID_STATUSES
