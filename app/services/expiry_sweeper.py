"""Periodic release of holds whose deadline has passed."""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.config import settings
from app.core.exceptions import PersistenceFailure
from app.domain.hold_state import ReleaseReason
from app.services.hold_ledger import HoldLedger
from app.services.hold_service import HoldService

logger = logging.getLogger(__name__)


@dataclass
class SweepResult:
    expired_hold_ids: list[UUID] = field(default_factory=list)
    skipped_hold_ids: list[UUID] = field(default_factory=list)
    failed_hold_ids: list[UUID] = field(default_factory=list)

    def as_dict(self) -> dict:
        return {
            "expired": len(self.expired_hold_ids),
            "skipped": len(self.skipped_hold_ids),
            "failed": len(self.failed_hold_ids),
        }


class ExpirySweeper:
    """Releases overdue ACTIVE holds through the hold state machine.

    Holds no locks of its own. A hold released concurrently by another sweep
    or by a user comes back as an unchanged release and is counted as skipped.
    """

    def __init__(
        self,
        hold_service: HoldService,
        session_factory: async_sessionmaker[AsyncSession],
        batch_size: int | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.hold_service = hold_service
        self._session_factory = session_factory
        self.batch_size = batch_size or settings.hold_sweep_batch_size
        self._clock = clock or hold_service.now

    async def find_expired(self) -> list[UUID]:
        now = self._clock()
        try:
            async with self._session_factory() as db:
                return await HoldLedger(db).list_expired(now, limit=self.batch_size)
        except SQLAlchemyError as exc:
            raise PersistenceFailure() from exc

    async def sweep(self) -> SweepResult:
        """Expire one batch of overdue holds. Per-hold failures do not stop the batch."""
        result = SweepResult()
        hold_ids = await self.find_expired()
        if not hold_ids:
            logger.debug("Hold sweep: nothing to expire")
            return result

        for hold_id in hold_ids:
            try:
                release = await self.hold_service.release(hold_id, ReleaseReason.EXPIRED)
            except Exception:
                logger.exception(f"Hold sweep: failed to expire hold {hold_id}")
                result.failed_hold_ids.append(hold_id)
                continue

            if release.changed:
                result.expired_hold_ids.append(hold_id)
            else:
                result.skipped_hold_ids.append(hold_id)

        logger.info(
            f"Hold sweep finished: expired={len(result.expired_hold_ids)}, "
            f"skipped={len(result.skipped_hold_ids)}, failed={len(result.failed_hold_ids)}"
        )
        return result
