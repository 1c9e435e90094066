# lingai/jobs.py
"""Generation jobs: background work with a status row the client can poll."""
import logging
from typing import Any, Awaitable, Callable, Dict, Optional

from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession

from .models import GenerationJob, JobKind, JobStatus

logger = logging.getLogger(__name__)

Work = Callable[[AsyncSession], Awaitable[Optional[Dict[str, Any]]]]


async def create_job(
    db: AsyncSession, *, user_id: int, kind: JobKind, lesson_id: Optional[int] = None
) -> GenerationJob:
    job = GenerationJob(user_id=user_id, kind=kind, lesson_id=lesson_id, status=JobStatus.pending)
    db.add(job)
    await db.commit()
    return job


async def get_job(db: AsyncSession, job_id: str, *, user_id: Optional[int] = None) -> Optional[GenerationJob]:
    job = await db.get(GenerationJob, job_id)
    if job is None or (user_id is not None and job.user_id != user_id):
        return None
    return job


async def _set_status(db: AsyncSession, job_id: str, **values):
    await db.execute(update(GenerationJob).where(GenerationJob.id == job_id).values(**values))
    await db.commit()


async def run_job(services, job_id: str, work: Work) -> Optional[Dict[str, Any]]:
    """pending -> running -> succeeded | failed, in a session of its own.

    Failures are recorded on the job row and logged; they are not re-raised.
    """
    async with services.db.session() as db:
        await _set_status(db, job_id, status=JobStatus.running, error=None)
        try:
            result = await work(db)
        except Exception as e:
            await db.rollback()
            logger.exception("Job %s failed", job_id)
            await _set_status(db, job_id, status=JobStatus.failed, error=str(e)[:2000] or type(e).__name__)
            return None
        await _set_status(db, job_id, status=JobStatus.succeeded, result=result or {})
        logger.info("Job %s succeeded", job_id)
        return result
