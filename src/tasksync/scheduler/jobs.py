"""
APScheduler job that drains the outbox on an interval.

The on-demand /sync/trigger route and this job both call
SyncEngine.process_once(); the engine's lock keeps them from overlapping,
and max_instances=1 stops the scheduler from stacking up runs behind a slow
remote.

The scheduler is started from the API lifespan (wired in api/main.py).
"""
import logging

from apscheduler.schedulers.asyncio import AsyncIOScheduler

from tasksync.config import get_settings

logger = logging.getLogger(__name__)


def build_scheduler(sync_engine) -> AsyncIOScheduler:
    """
    Create and configure the APScheduler.

    Args:
        sync_engine: SyncEngine whose process_once() the job calls.

    Returns:
        Configured AsyncIOScheduler (not yet started).
    """
    settings = get_settings()
    scheduler = AsyncIOScheduler()

    scheduler.add_job(
        _sync_cycle,
        trigger="interval",
        seconds=settings.sync_interval_seconds,
        id="outbox_sync",
        replace_existing=True,
        max_instances=1,
        coalesce=True,
        kwargs={"sync_engine": sync_engine},
    )

    return scheduler


async def _sync_cycle(sync_engine) -> None:
    """Interval job: one process_once() run. Never raises into the scheduler."""
    try:
        result = await sync_engine.process_once()
        if result.error:
            logger.warning("Scheduled sync failed: %s", result.error)
        elif result.processed:
            logger.info("Scheduled sync processed %d entries", result.processed)
    except Exception as exc:
        logger.error("Scheduled sync crashed: %s", exc)
