"""
APScheduler jobs for background sync.

One daily run at `sync_hour` UTC covers every family; per-endpoint state
decides whether each one goes delta or full. The job never raises into the
scheduler: failures are already recorded on the endpoint's SyncState row.
"""
import logging
from datetime import datetime

from apscheduler.schedulers.asyncio import AsyncIOScheduler

from stationsync.config import get_settings

logger = logging.getLogger(__name__)


def build_scheduler(engine) -> AsyncIOScheduler:
    """
    Create and configure the APScheduler.

    Args:
        engine: SQLAlchemy engine holding the synced records and sync state.

    Returns:
        Configured AsyncIOScheduler (not yet started).
    """
    settings = get_settings()
    scheduler = AsyncIOScheduler(timezone="UTC")

    scheduler.add_job(
        _scheduled_sync,
        trigger="cron",
        hour=settings.sync_hour,
        minute=0,
        id="scheduled_sync",
        replace_existing=True,
        kwargs={"engine": engine},
    )

    return scheduler


async def _scheduled_sync(engine) -> None:
    """Daily job: sync categories, companies, items and locations."""
    from stationsync.sync.runner import run_sync

    settings = get_settings()
    if not settings.sync_enabled:
        logger.info("Scheduled sync skipped: SYNC_ENABLED is false")
        return

    logger.info("Scheduled sync starting at %s", datetime.utcnow().isoformat())

    try:
        results = await run_sync(engine, settings=settings)
        for family, result in results.items():
            logger.info(
                "Scheduled sync %s: %s (created %d, updated %d, deleted %d)",
                family,
                result.status,
                result.created,
                result.updated,
                result.deleted,
            )
    except Exception as exc:
        logger.error("Scheduled sync failed: %s", exc)
