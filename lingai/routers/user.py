from __future__ import annotations

import logging

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from ..database import get_db
from ..schemas import PracticeRequest, ProgressUpdate, SentenceProgressRead, UserProfileRead
from ..services.onboarding import get_profile, get_user_topics
from ..services.progress import get_last_lesson, mark_lesson_visited, record_practice
from ..utils import http_errors, parse_positive_id, require_authenticated_user

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/user", tags=["user"])


@router.get("/progress")
async def read_progress(
    user=Depends(require_authenticated_user),
    db: AsyncSession = Depends(get_db),
):
    user_id = user.id
    with http_errors("get user progress"):
        lesson = await get_last_lesson(db, user_id)
        if lesson is None:
            return {"success": True, "progress": None}
        return {
            "success": True,
            "progress": {
                "lastLessonId": lesson.id,
                "lastLessonNumber": lesson.lesson_number,
                "targetLanguage": lesson.target_language,
            },
        }


@router.put("/progress")
async def update_progress(
    payload: ProgressUpdate,
    user=Depends(require_authenticated_user),
    db: AsyncSession = Depends(get_db),
):
    user_id = user.id
    with http_errors("update user progress"):
        lesson = await mark_lesson_visited(db, user_id, payload.last_lesson_id)
        return {
            "success": True,
            "message": "Progress updated successfully",
            "progress": {"lastLessonId": lesson.id, "lastLessonNumber": lesson.lesson_number},
        }


@router.post("/progress/sentences/{sentence_id}")
async def practice_sentence(
    sentence_id: str,
    payload: PracticeRequest,
    user=Depends(require_authenticated_user),
    db: AsyncSession = Depends(get_db),
):
    user_id = user.id
    sid = parse_positive_id(sentence_id, label="Sentence ID")
    with http_errors("record practice"):
        row = await record_practice(db, user_id, sid, payload.correct)
        return {"success": True, "progress": SentenceProgressRead.model_validate(row).dump()}


@router.get("/profile")
async def read_profile(
    user=Depends(require_authenticated_user),
    db: AsyncSession = Depends(get_db),
):
    user_id = user.id
    with http_errors("get user profile"):
        profile = await get_profile(db, user_id)
        topics = await get_user_topics(db, user_id)
        if profile is None:
            return {"success": True, "profile": None, "topics": topics}
        out = UserProfileRead(
            user_id=user_id,
            target_language=profile.target_language,
            user_language=profile.user_language,
            topics=topics,
        )
        return {"success": True, "profile": out.dump(), "topics": topics}
