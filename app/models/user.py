"""User-related database models."""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import Boolean, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy.sql import func

from app.database import Base, TZDateTime

if TYPE_CHECKING:
    from app.models.show_request import Bid, ShowRequest


class User(Base):
    """User account model."""

    __tablename__ = "users"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False, index=True)
    display_name: Mapped[str | None] = mapped_column(String(150))
    role: Mapped[str] = mapped_column(
        String(20), nullable=False, default="artist"
    )  # artist, venue, admin
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)

    created_at: Mapped[datetime] = mapped_column(TZDateTime, server_default=func.now())

    # Relationships
    show_requests: Mapped[list["ShowRequest"]] = relationship(
        "ShowRequest", back_populates="initiator"
    )
    bids: Mapped[list["Bid"]] = relationship("Bid", back_populates="bidder")

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"
