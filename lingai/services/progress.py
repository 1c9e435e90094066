# lingai/services/progress.py
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..errors import NotFound
from ..models import Lesson, Sentence, SentenceProgress, utcnow

MAX_MASTERY = 5


async def get_last_lesson(db: AsyncSession, user_id: int) -> Optional[Lesson]:
    """Most recently practised lesson, else the user's lowest-numbered lesson."""
    recent = (await db.execute(
        select(Lesson)
        .join(SentenceProgress, SentenceProgress.lesson_id == Lesson.id)
        .where(
            SentenceProgress.user_id == user_id,
            Lesson.user_id == user_id,
            SentenceProgress.last_practiced_at.is_not(None),
        )
        .order_by(SentenceProgress.last_practiced_at.desc(), SentenceProgress.id.desc())
        .limit(1)
    )).scalars().first()
    if recent is not None:
        return recent

    return (await db.execute(
        select(Lesson)
        .where(Lesson.user_id == user_id)
        .order_by(Lesson.lesson_number, Lesson.id)
        .limit(1)
    )).scalars().first()


async def _own_lesson(db: AsyncSession, user_id: int, lesson_id: int) -> Lesson:
    lesson = await db.get(Lesson, lesson_id)
    if lesson is None or lesson.user_id != user_id:
        raise NotFound("Lesson not found")
    return lesson


async def mark_lesson_visited(db: AsyncSession, user_id: int, lesson_id: int) -> Lesson:
    """Touch a progress row for every sentence of the lesson so it becomes the last visited one."""
    lesson = await _own_lesson(db, user_id, lesson_id)
    now = utcnow()

    sentence_ids = (await db.execute(
        select(Sentence.id).where(Sentence.lesson_id == lesson_id).order_by(Sentence.sentence_order)
    )).scalars().all()
    existing = {
        p.sentence_id: p
        for p in (await db.execute(
            select(SentenceProgress).where(
                SentenceProgress.user_id == user_id,
                SentenceProgress.lesson_id == lesson_id,
            )
        )).scalars().all()
    }
    for sid in sentence_ids:
        row = existing.get(sid)
        if row is None:
            db.add(SentenceProgress(
                user_id=user_id, sentence_id=sid, lesson_id=lesson_id,
                practice_count=0, mastery_level=0, completed=False,
                last_practiced_at=now,
            ))
        else:
            row.last_practiced_at = now
    await db.commit()
    return lesson


async def record_practice(db: AsyncSession, user_id: int, sentence_id: int, correct: bool) -> SentenceProgress:
    sentence = await db.get(Sentence, sentence_id)
    if sentence is None or sentence.user_id != user_id:
        raise NotFound("Sentence not found")

    row = (await db.execute(
        select(SentenceProgress).where(
            SentenceProgress.user_id == user_id,
            SentenceProgress.sentence_id == sentence_id,
        )
    )).scalars().first()
    if row is None:
        row = SentenceProgress(
            user_id=user_id, sentence_id=sentence_id, lesson_id=sentence.lesson_id,
            practice_count=0, mastery_level=0, completed=False,
        )
        db.add(row)

    row.practice_count = (row.practice_count or 0) + 1
    level = (row.mastery_level or 0) + (1 if correct else -1)
    row.mastery_level = max(0, min(MAX_MASTERY, level))
    row.completed = row.completed or row.mastery_level == MAX_MASTERY
    row.last_practiced_at = utcnow()
    await db.commit()
    return row
