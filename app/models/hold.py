"""Hold request model."""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import JSON, Enum, ForeignKey, Index, Integer, String, Text, Uuid, text
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy.sql import func

from app.database import Base, TZDateTime
from app.domain.hold_state import HoldStatus, OPEN_HOLD_STATUSES, TERMINAL_HOLD_STATUSES

if TYPE_CHECKING:
    from app.models.show_request import Bid, ShowRequest
    from app.models.user import User


class Hold(Base):
    """Time-boxed exclusive reservation on one show request."""

    __tablename__ = "holds"
    __table_args__ = (
        # At most one ACTIVE hold per show request
        Index(
            "uq_holds_one_active_per_request",
            "show_request_id",
            unique=True,
            postgresql_where=text("status = 'ACTIVE'"),
            sqlite_where=text("status = 'ACTIVE'"),
        ),
        Index("ix_holds_status_expires_at", "status", "expires_at"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    show_request_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("show_requests.id", ondelete="CASCADE"), nullable=False, index=True
    )
    bid_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("bids.id"), nullable=False, index=True
    )  # the bid this hold is on
    requested_by_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id"), nullable=False, index=True
    )
    responded_by_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, ForeignKey("users.id"))

    status: Mapped[HoldStatus] = mapped_column(
        Enum(HoldStatus, native_enum=False, length=20),
        default=HoldStatus.PENDING,
        nullable=False,
        index=True,
    )
    resolution: Mapped[str | None] = mapped_column(
        String(20)
    )  # confirmed, declined, cancelled, expired

    duration_hours: Mapped[int] = mapped_column(Integer, nullable=False)
    reason: Mapped[str] = mapped_column(String(100), nullable=False)
    custom_message: Mapped[str | None] = mapped_column(Text)

    # Competitors frozen at grant time (string UUIDs)
    frozen_bid_ids: Mapped[list[str]] = mapped_column(JSON, default=list)

    requested_at: Mapped[datetime] = mapped_column(TZDateTime, server_default=func.now())
    responded_at: Mapped[datetime | None] = mapped_column(TZDateTime)
    starts_at: Mapped[datetime | None] = mapped_column(TZDateTime)
    expires_at: Mapped[datetime | None] = mapped_column(TZDateTime)

    created_at: Mapped[datetime] = mapped_column(TZDateTime, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        TZDateTime, server_default=func.now(), onupdate=func.now()
    )

    # Relationships
    show_request: Mapped["ShowRequest"] = relationship("ShowRequest", back_populates="holds")
    bid: Mapped["Bid"] = relationship("Bid", foreign_keys=[bid_id])
    requested_by: Mapped["User"] = relationship("User", foreign_keys=[requested_by_id])
    responded_by: Mapped["User | None"] = relationship("User", foreign_keys=[responded_by_id])

    @property
    def is_open(self) -> bool:
        return self.status in OPEN_HOLD_STATUSES

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_HOLD_STATUSES

    @property
    def frozen_bid_uuids(self) -> list[uuid.UUID]:
        return [uuid.UUID(value) for value in self.frozen_bid_ids or []]
