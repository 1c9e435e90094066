# lingai/services/recap.py
"""
Recap lessons.

Every 7th lesson of a language track (7, 14, 21, ...) is a recap of the six
lessons before it. The recap lesson row is created without sentences; its
markdown is generated afterwards and stored in the blob store.
"""
import logging
from typing import List, Optional, Tuple

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from ..errors import InvalidArgument, NotFound
from ..llm_client import AIClient
from ..models import Lesson
from ..prompts import GENERATE_RECAP, RECAP_SYSTEM, bullet_list, render_prompt
from ..storage import BlobStore
from .course_content import course_lessons_in_range

logger = logging.getLogger(__name__)

RECAP_INTERVAL = 7


def is_recap_checkpoint(lesson_number: int) -> bool:
    return lesson_number > 0 and lesson_number % RECAP_INTERVAL == 0


def recap_range(lesson_number: int) -> Tuple[int, int]:
    """Inclusive range of lesson numbers summarised by a recap: 7 -> (1, 6), 14 -> (8, 13)."""
    if not is_recap_checkpoint(lesson_number):
        raise InvalidArgument(f"Lesson {lesson_number} is not a recap lesson")
    end = lesson_number - 1
    start = end - 5
    return start, end


async def get_lessons_for_recap(
    db: AsyncSession, user_id: int, target_language: str, lesson_number: int
) -> List[Lesson]:
    start, end = recap_range(lesson_number)
    rows = await db.execute(
        select(Lesson)
        .options(selectinload(Lesson.sentences))
        .where(
            Lesson.user_id == user_id,
            Lesson.target_language == target_language,
            Lesson.lesson_number >= start,
            Lesson.lesson_number <= end,
        )
        .order_by(Lesson.lesson_number)
    )
    return list(rows.scalars().all())


def build_recap_prompt(
    lessons: List[Lesson],
    lesson_number: int,
    *,
    target_language: str,
    user_language: str = "english",
) -> Tuple[str, str]:
    """Returns (system, user) messages for the recap model."""
    start, end = recap_range(lesson_number)

    topics: List[str] = []
    sentences: List[str] = []
    for lesson in lessons:
        for t in lesson.topics or []:
            if t not in topics:
                topics.append(t)
        for s in lesson.sentences:
            sentences.append(f"{s.target_text} → {s.user_text}")

    grammar: List[str] = []
    vocab: List[str] = []
    for course in course_lessons_in_range(start, end):
        grammar.extend(g for g in course.grammar_points if g not in grammar)
        vocab.extend(v for v in course.vocabulary_topics if v not in vocab)

    args = dict(
        target_language=target_language,
        target_language_title=target_language.title(),
        user_language_title=user_language.title(),
        lesson_number=lesson_number,
        start=start,
        end=end,
        topics=", ".join(topics) or "general",
        grammar_points=", ".join(grammar) or "(none listed)",
        vocabulary_topics=", ".join(vocab) or "(none listed)",
        sentences=bullet_list(sentences),
    )
    return render_prompt(RECAP_SYSTEM, **args), render_prompt(GENERATE_RECAP, **args)


def recap_key(user_id: int, lesson_id: int) -> str:
    return f"recap/users/{user_id}/lessons/{lesson_id}.md"


async def generate_recap_lesson(
    db: AsyncSession, ai: AIClient, blobs: BlobStore, lesson: Lesson
) -> str:
    """Generate and store the recap markdown for a recap lesson. Returns its URL."""
    lesson_id, user_id = lesson.id, lesson.user_id
    number, language = lesson.lesson_number, lesson.target_language
    user_language = lesson.user_language or "english"

    if not is_recap_checkpoint(number):
        raise InvalidArgument(f"Lesson {lesson_id} is not a recap lesson")

    lessons = await get_lessons_for_recap(db, user_id, language, number)
    if not lessons:
        start, end = recap_range(number)
        raise NotFound(f"No lessons {start}-{end} to recap")

    system, prompt = build_recap_prompt(
        lessons, number, target_language=language, user_language=user_language
    )
    markdown = await ai.chat(
        system, prompt, model=ai.settings.RECAP_MODEL, temperature=0.7, max_tokens=4000
    )

    key = recap_key(user_id, lesson_id)
    await blobs.put(key, markdown.encode("utf-8"), content_type="text/markdown")
    url = f"/api/recap/{key}"

    await db.execute(
        update(Lesson)
        .where(Lesson.id == lesson_id)
        .values(recap_markdown_url=url, recap_generated=True, is_recap_lesson=True)
    )
    await db.commit()
    logger.info("Recap stored for lesson %s (%d source lessons)", lesson_id, len(lessons))
    return url


async def retry_failed_recap_generation(
    db: AsyncSession,
    ai: AIClient,
    blobs: BlobStore,
    *,
    user_id: Optional[int] = None,
    lesson_id: Optional[int] = None,
) -> int:
    q = select(Lesson.id).where(Lesson.is_recap_lesson.is_(True), Lesson.recap_generated.is_(False))
    if user_id is not None:
        q = q.where(Lesson.user_id == user_id)
    if lesson_id is not None:
        q = q.where(Lesson.id == lesson_id)
    ids = list((await db.execute(q)).scalars().all())

    done = 0
    for lid in ids:
        lesson = await db.get(Lesson, lid)
        if lesson is None:
            continue
        try:
            await generate_recap_lesson(db, ai, blobs, lesson)
            done += 1
        except Exception:
            await db.rollback()
            logger.exception("Recap retry failed for lesson %s", lid)
    return done
