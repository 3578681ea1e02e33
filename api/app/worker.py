"""Celery worker configuration and periodic tasks.

Run the worker with beat embedded for the hold sweep:

    celery -A app.worker worker -B --loglevel=info
"""

import asyncio
import logging

from celery import Celery

from app.core.config import settings
from app.core.database import async_session_factory, engine
from app.services import payments

logger = logging.getLogger(__name__)

celery_app = Celery(
    "quickcourt",
    broker=settings.redis_url,
    backend=settings.redis_url,
)

celery_app.conf.update(
    task_serializer="json",
    result_serializer="json",
    accept_content=["json"],
    timezone=settings.timezone,
    enable_utc=True,
    beat_schedule={
        "release-expired-holds": {
            "task": "app.worker.release_expired_holds",
            "schedule": float(settings.hold_sweep_interval_seconds),
        },
    },
)


async def _sweep_expired_holds() -> int:
    # Each task runs its own event loop; pooled connections must not outlive it.
    try:
        async with async_session_factory() as db:
            released = await payments.release_expired_holds(db)
            await db.commit()
        return released
    finally:
        await engine.dispose()


@celery_app.task(name="app.worker.release_expired_holds")
def release_expired_holds() -> int:
    """Cancel pending bookings whose payment hold has run out, freeing their slots."""
    released = asyncio.run(_sweep_expired_holds())
    if released:
        logger.info("Released %d expired booking holds", released)
    return released
