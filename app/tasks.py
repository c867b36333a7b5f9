"""Celery background tasks.

This module contains background tasks for:
- Hold expiry
- Clearing every active hold (maintenance)
"""

import asyncio

from celery import shared_task

from app.services.expiry_sweeper import ExpirySweeper
from app.services.hold_service import build_hold_service


def run_async(coro):
    """Run async function in sync context."""
    return asyncio.run(coro)


async def _dispose_engine():
    from app.database import close_db

    await close_db()


# ==================== HOLD TASKS ====================


@shared_task(bind=True, max_retries=3)
def expire_stale_holds(self):
    """Release ACTIVE holds whose deadline has passed.

    Runs every ``hold_sweep_interval_seconds`` from Celery beat. Safe to run
    alongside the in-process scheduler; duplicate releases are no-ops.
    """
    try:
        result = run_async(_expire_stale_holds())
        return {"status": "success", **result}
    except Exception as exc:
        self.retry(exc=exc, countdown=60)


async def _expire_stale_holds() -> dict:
    """Async implementation of the expiry sweep."""
    from app.database import async_session_maker

    try:
        sweeper = ExpirySweeper(build_hold_service(), async_session_maker)
        result = await sweeper.sweep()
        return result.as_dict()
    finally:
        # Each asyncio.run() gets a fresh loop; pooled connections must not leak across
        await _dispose_engine()


@shared_task
def clear_active_holds():
    """Cancel every ACTIVE hold and reopen its bids."""
    return run_async(_clear_active_holds())


async def _clear_active_holds() -> dict:
    try:
        result = await build_hold_service().release_all_active()
        return {
            "status": "success",
            "holds_released": result.holds_released,
            "bids_reopened": result.bids_reopened,
            "failed": len(result.failed_hold_ids),
        }
    finally:
        await _dispose_engine()
