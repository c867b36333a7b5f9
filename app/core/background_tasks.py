"""Background task for automatic hold expiry."""

import asyncio
import logging

from app.config import settings
from app.database import async_session_maker
from app.services.expiry_sweeper import ExpirySweeper, SweepResult
from app.services.hold_service import build_hold_service

logger = logging.getLogger(__name__)

# Flag to stop the background task
_stop_hold_sweeper = False


async def run_hold_expiry_sweep(trigger: str = "scheduled") -> SweepResult | None:
    """Run one expiry sweep against the application database."""
    sweeper = ExpirySweeper(build_hold_service(), async_session_maker)
    logger.info(f"Starting hold expiry sweep (trigger: {trigger})")
    try:
        return await sweeper.sweep()
    except Exception as e:
        logger.error(f"Hold expiry sweep failed: {e}")
        return None


async def start_hold_expiry_scheduler():
    """Background task that sweeps expired holds every configured interval."""
    global _stop_hold_sweeper
    _stop_hold_sweeper = False

    interval = settings.hold_sweep_interval_seconds
    logger.info(f"Hold expiry scheduler started (every {interval}s)")

    while not _stop_hold_sweeper:
        await run_hold_expiry_sweep(trigger="scheduled")

        # Wait for next interval (check stop flag every second)
        for _ in range(interval):
            if _stop_hold_sweeper:
                break
            await asyncio.sleep(1)

    logger.info("Hold expiry scheduler stopped")


def stop_hold_expiry_scheduler():
    """Signal the hold expiry scheduler to stop."""
    global _stop_hold_sweeper
    _stop_hold_sweeper = True
