import logging
from typing import List, Optional

from fastapi import APIRouter, Body, Depends, HTTPException, Query
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..content import parse_lesson_markdown
from ..database import get_db
from ..models import Lesson, Sentence
from ..schemas import (
    GenerateLessonRequest,
    LessonNavigation,
    LessonRead,
    LessonWithSentences,
    RetryRequest,
    SentenceRead,
)
from ..services.container import Services, get_services
from ..services.lessons import (
    generate_lesson,
    generate_lesson_audio,
    retry_failed_audio_generation,
    retry_failed_comic_image_generation,
    schedule_follow_on_jobs,
)
from ..services.onboarding import get_profile, get_user_topics
from ..services.recap import generate_recap_lesson
from ..utils import http_errors, normalize_language, parse_positive_id, require_authenticated_user

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/lessons", tags=["lessons"])


async def load_owned_lesson(db: AsyncSession, user_id: int, raw_id: str) -> Lesson:
    lesson_id = parse_positive_id(raw_id, label="Lesson ID")
    lesson = (await db.execute(
        select(Lesson).where(Lesson.id == lesson_id, Lesson.user_id == user_id)
    )).scalars().first()
    if not lesson:
        raise HTTPException(status_code=404, detail="Lesson not found")
    return lesson


async def load_sentences(db: AsyncSession, lesson_id: int) -> List[Sentence]:
    rows = await db.execute(
        select(Sentence).where(Sentence.lesson_id == lesson_id).order_by(Sentence.sentence_order)
    )
    return list(rows.scalars().all())


def lesson_payload(lesson: Lesson, sentences: Optional[List[Sentence]] = None) -> dict:
    if sentences is None:
        return LessonRead.model_validate(lesson).dump()
    data = LessonRead.model_validate(lesson).model_dump()
    data["sentences"] = [SentenceRead.model_validate(s) for s in sentences]
    return LessonWithSentences.model_validate(data).dump()


async def respond_with_follow_on_jobs(services: Services, db: AsyncSession, result) -> dict:
    """Response for a freshly generated lesson plus the jobs scheduled for it.

    The body is built before scheduling: a failed job insert rolls the session
    back and expires the lesson and its sentences.
    """
    body = {
        "success": True,
        "lesson": lesson_payload(result.lesson),
        "sentences": [SentenceRead.model_validate(s).dump() for s in result.sentences],
        "totalSentences": len(result.sentences),
    }
    jobs, warnings = await schedule_follow_on_jobs(services, db, result.lesson)
    body["jobs"] = [j.dump() for j in jobs]
    body["warnings"] = warnings
    return body


# ---------------------------
# Collection routes
# ---------------------------
@router.get("")
async def list_lessons(
    language: Optional[str] = Query(None),
    user=Depends(require_authenticated_user),
    db: AsyncSession = Depends(get_db),
):
    user_id = user.id
    q = select(Lesson).where(Lesson.user_id == user_id)
    if language:
        q = q.where(Lesson.target_language == normalize_language(language))
    with http_errors("list lessons"):
        lessons = (await db.execute(q.order_by(Lesson.target_language, Lesson.lesson_number))).scalars().all()
        return {"success": True, "lessons": [lesson_payload(l) for l in lessons]}


@router.post("/generate")
async def generate_new_lesson(
    payload: GenerateLessonRequest,
    user=Depends(require_authenticated_user),
    db: AsyncSession = Depends(get_db),
    services: Services = Depends(get_services),
):
    user_id = user.id
    with http_errors("generate lesson"):
        language = payload.target_language
        if not language:
            profile = await get_profile(db, user_id)
            language = profile.target_language if profile else None
        language = normalize_language(language)

        result = await generate_lesson(
            db, services.ai, services.blobs,
            topics=payload.topics,
            target_language=language,
            user_language=(payload.user_language or "english").strip().lower(),
            user_id=user_id,
        )
        return await respond_with_follow_on_jobs(services, db, result)


@router.post("/retry-audio")
async def retry_audio(
    payload: Optional[RetryRequest] = Body(None),
    user=Depends(require_authenticated_user),
    db: AsyncSession = Depends(get_db),
    services: Services = Depends(get_services),
):
    user_id = user.id
    lesson_id = payload.lesson_id if payload else None
    with http_errors("retry audio generation"):
        if lesson_id is not None:
            await load_owned_lesson(db, user_id, str(lesson_id))
        totals = await retry_failed_audio_generation(
            db, services.ai, services.blobs,
            user_id=user_id,
            lesson_id=lesson_id,
            delay=services.settings.AUDIO_REQUEST_DELAY_SECONDS,
        )
        return {
            "success": True,
            "message": (
                f"Audio retry completed for lesson {lesson_id}"
                if lesson_id else "Audio retry completed for all failed lessons"
            ),
            **totals,
        }


@router.post("/retry-comic-image")
async def retry_comic_image(
    payload: Optional[RetryRequest] = Body(None),
    user=Depends(require_authenticated_user),
    db: AsyncSession = Depends(get_db),
    services: Services = Depends(get_services),
):
    user_id = user.id
    lesson_id = payload.lesson_id if payload else None
    with http_errors("retry comic image generation"):
        if lesson_id is not None:
            await load_owned_lesson(db, user_id, str(lesson_id))
        totals = await retry_failed_comic_image_generation(
            db, services.ai, services.blobs, user_id=user_id, lesson_id=lesson_id
        )
        return {
            "success": True,
            "message": (
                f"Comic image retry completed for lesson {lesson_id}"
                if lesson_id else "Comic image retry completed for all failed lessons"
            ),
            **totals,
        }


@router.get("/sentences/{sentence_id}")
async def get_sentence(
    sentence_id: str,
    user=Depends(require_authenticated_user),
    db: AsyncSession = Depends(get_db),
):
    user_id = user.id
    sid = parse_positive_id(sentence_id, label="Sentence ID")
    with http_errors("fetch sentence"):
        sentence = (await db.execute(
            select(Sentence).where(Sentence.id == sid, Sentence.user_id == user_id)
        )).scalars().first()
        if not sentence:
            raise HTTPException(status_code=404, detail="Sentence not found")
        return {"success": True, "sentence": SentenceRead.model_validate(sentence).dump()}


@router.get("/content/{key:path}")
async def get_lesson_content(
    key: str,
    user=Depends(require_authenticated_user),
    services: Services = Depends(get_services),
):
    user_id = user.id
    # only the caller's own lesson documents
    if not key.startswith(f"lessons/{user_id}/"):
        raise HTTPException(status_code=404, detail="Lesson content not found")
    with http_errors("fetch lesson content"):
        raw = await services.blobs.get(key)
        if raw is None:
            raise HTTPException(status_code=404, detail="Lesson content not found")
        doc = parse_lesson_markdown(raw.decode("utf-8"))
        return {
            "success": True,
            "key": key,
            "schema": doc.schema,
            "frontmatter": doc.meta,
            "content": doc.body,
        }


# ---------------------------
# Single lesson routes
# ---------------------------
@router.get("/{lesson_id}")
async def get_lesson(
    lesson_id: str,
    user=Depends(require_authenticated_user),
    db: AsyncSession = Depends(get_db),
):
    user_id = user.id
    lesson = await load_owned_lesson(db, user_id, lesson_id)
    with http_errors("fetch lesson"):
        sentences = await load_sentences(db, lesson.id)
        return {"success": True, "lesson": lesson_payload(lesson, sentences)}


@router.get("/{lesson_id}/sentences")
async def get_lesson_sentences(
    lesson_id: str,
    user=Depends(require_authenticated_user),
    db: AsyncSession = Depends(get_db),
):
    user_id = user.id
    lesson = await load_owned_lesson(db, user_id, lesson_id)
    with http_errors("fetch sentences"):
        sentences = await load_sentences(db, lesson.id)
        return {
            "success": True,
            "lessonId": lesson.id,
            "sentences": [SentenceRead.model_validate(s).dump() for s in sentences],
        }


@router.get("/{lesson_id}/navigation")
async def get_lesson_navigation(
    lesson_id: str,
    user=Depends(require_authenticated_user),
    db: AsyncSession = Depends(get_db),
):
    user_id = user.id
    lesson = await load_owned_lesson(db, user_id, lesson_id)
    with http_errors("get lesson navigation"):
        track = (Lesson.user_id == user_id, Lesson.target_language == lesson.target_language)
        previous = (await db.execute(
            select(Lesson.id)
            .where(*track, Lesson.lesson_number < lesson.lesson_number)
            .order_by(Lesson.lesson_number.desc())
            .limit(1)
        )).scalars().first()
        following = (await db.execute(
            select(Lesson.id)
            .where(*track, Lesson.lesson_number > lesson.lesson_number)
            .order_by(Lesson.lesson_number)
            .limit(1)
        )).scalars().first()
        nav = LessonNavigation(
            current_lesson_id=lesson.id,
            current_lesson_number=lesson.lesson_number,
            has_previous=previous is not None,
            has_next=following is not None,
            previous_lesson_id=previous,
            next_lesson_id=following,
        )
        return nav.dump()


@router.post("/{lesson_id}/generate-next")
async def generate_next_lesson(
    lesson_id: str,
    user=Depends(require_authenticated_user),
    db: AsyncSession = Depends(get_db),
    services: Services = Depends(get_services),
):
    user_id = user.id
    current = await load_owned_lesson(db, user_id, lesson_id)
    with http_errors("generate next lesson"):
        topics = list(current.topics or [])
        for t in await get_user_topics(db, user_id):
            if t not in topics:
                topics.append(t)

        result = await generate_lesson(
            db, services.ai, services.blobs,
            topics=topics,
            target_language=current.target_language,
            user_language=current.user_language,
            user_id=user_id,
        )
        return await respond_with_follow_on_jobs(services, db, result)


@router.post("/{lesson_id}/generate-audio")
async def generate_audio(
    lesson_id: str,
    user=Depends(require_authenticated_user),
    db: AsyncSession = Depends(get_db),
    services: Services = Depends(get_services),
):
    user_id = user.id
    lesson = await load_owned_lesson(db, user_id, lesson_id)
    with http_errors("generate lesson audio"):
        generated, total = await generate_lesson_audio(
            db, services.ai, services.blobs, lesson,
            delay=services.settings.AUDIO_REQUEST_DELAY_SECONDS,
        )
        if total == 0:
            message = "All sentences already have audio generated"
        else:
            message = f"Audio generated for {generated} of {total} sentences"
        return {"success": True, "message": message, "generated": generated, "total": total}


@router.post("/{lesson_id}/generate-recap")
async def generate_recap(
    lesson_id: str,
    user=Depends(require_authenticated_user),
    db: AsyncSession = Depends(get_db),
    services: Services = Depends(get_services),
):
    user_id = user.id
    lesson = await load_owned_lesson(db, user_id, lesson_id)
    if not lesson.is_recap_lesson:
        raise HTTPException(status_code=400, detail="Lesson is not a recap lesson")
    with http_errors("generate recap"):
        url = await generate_recap_lesson(db, services.ai, services.blobs, lesson)
        refreshed = await db.get(Lesson, lesson.id, populate_existing=True)
        return {"success": True, "recapMarkdownUrl": url, "lesson": lesson_payload(refreshed)}
