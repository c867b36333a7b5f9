"""Celery worker for hold maintenance.

Runs the expiry sweep on a beat schedule, alongside (or instead of) the
in-process sweeper started by the API lifespan. Start with:

    celery -A app.worker.celery_app worker -B -Q holds
"""

from celery import Celery

from app.config import settings

SWEEP_INTERVAL = float(settings.hold_sweep_interval_seconds)

celery_app = Celery(
    "hold_tasks",
    broker=settings.redis_url,
    backend=settings.redis_url,
    include=["app.tasks"],
)

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,

    # Hold tasks go to their own queue
    task_default_queue="holds",
    task_routes={"app.tasks.*": {"queue": "holds"}},

    # A release is idempotent, so redelivery after a crash is harmless
    task_acks_late=True,
    task_reject_on_worker_lost=True,
    task_time_limit=max(60, int(SWEEP_INTERVAL)),
    worker_prefetch_multiplier=1,

    result_expires=SWEEP_INTERVAL * 4,

    beat_schedule={
        "expire-stale-holds": {
            "task": "app.tasks.expire_stale_holds",
            "schedule": SWEEP_INTERVAL,
            # A sweep that missed its slot is superseded by the next one
            "options": {"expires": SWEEP_INTERVAL},
        },
    },
)


if __name__ == "__main__":
    celery_app.start()
