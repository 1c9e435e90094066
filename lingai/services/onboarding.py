# lingai/services/onboarding.py
import logging
from typing import Iterable, List, Optional

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from ..models import UserProfile, UserTopic
from .lessons import clean_topics, generate_lesson, schedule_follow_on_jobs

logger = logging.getLogger(__name__)


async def save_onboarding(
    db: AsyncSession,
    user_id: int,
    topics: Iterable[str],
    target_language: str,
    user_language: str = "english",
) -> UserProfile:
    """Upsert the profile and replace the user's topic set."""
    topics = clean_topics(topics)

    profile = (await db.execute(
        select(UserProfile).where(UserProfile.user_id == user_id)
    )).scalars().first()
    if profile is None:
        profile = UserProfile(user_id=user_id)
        db.add(profile)
    profile.target_language = target_language
    profile.user_language = user_language

    await db.execute(delete(UserTopic).where(UserTopic.user_id == user_id))
    db.add_all([UserTopic(user_id=user_id, topic=t) for t in topics])
    try:
        await db.commit()
    except Exception:
        await db.rollback()
        raise
    logger.info("Onboarding saved for user %s: %s, topics=%s", user_id, target_language, topics)
    return profile


async def get_user_topics(db: AsyncSession, user_id: int) -> List[str]:
    rows = await db.execute(
        select(UserTopic.topic).where(UserTopic.user_id == user_id).order_by(UserTopic.id)
    )
    return list(rows.scalars().all())


async def get_profile(db: AsyncSession, user_id: int) -> Optional[UserProfile]:
    return (await db.execute(
        select(UserProfile).where(UserProfile.user_id == user_id)
    )).scalars().first()


def first_lesson_job(services, *, user_id: int, topics: List[str], target_language: str, user_language: str):
    """Work function for a background first-lesson job."""

    async def work(db: AsyncSession):
        result = await generate_lesson(
            db, services.ai, services.blobs,
            topics=topics,
            target_language=target_language,
            user_language=user_language,
            user_id=user_id,
        )
        summary = {"lessonId": result.lesson.id, "totalSentences": len(result.sentences)}
        jobs, warnings = await schedule_follow_on_jobs(services, db, result.lesson)
        return {
            **summary,
            "jobs": [j.id for j in jobs],
            "warnings": warnings,
        }

    return work
