# lingai/services/scheduler.py
import logging

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from .lessons import retry_failed_audio_generation, retry_failed_comic_image_generation
from .recap import retry_failed_recap_generation

logger = logging.getLogger(__name__)


def start_scheduler(services) -> AsyncIOScheduler | None:
    """Periodic sweep that retries missing audio, comic images and recaps. 0 minutes disables it."""
    minutes = services.settings.RETRY_SWEEP_MINUTES
    if minutes <= 0:
        logger.info("Retry sweep disabled (RETRY_SWEEP_MINUTES=%s)", minutes)
        return None

    scheduler = AsyncIOScheduler(timezone="UTC")
    scheduler.add_job(
        job_retry_sweep,
        IntervalTrigger(minutes=minutes),
        args=[services],
        id="retry_sweep",
        max_instances=1,
        coalesce=True,
    )
    scheduler.start()
    logger.info("Retry sweep scheduled every %d minute(s)", minutes)
    return scheduler


def stop_scheduler(scheduler: AsyncIOScheduler | None):
    if scheduler and scheduler.running:
        scheduler.shutdown(wait=False)


async def job_retry_sweep(services):
    settings = services.settings
    async with services.db.session() as db:
        audio = await retry_failed_audio_generation(
            db, services.ai, services.blobs, delay=settings.AUDIO_REQUEST_DELAY_SECONDS
        )
        comics = await retry_failed_comic_image_generation(db, services.ai, services.blobs)
        recaps = await retry_failed_recap_generation(db, services.ai, services.blobs)
    logger.info(
        "Retry sweep: audio %d/%d over %d lesson(s), comics %d/%d, recaps %d",
        audio["generated"], audio["total"], audio["lessons"],
        comics["generated"], comics["lessons"], recaps,
    )
