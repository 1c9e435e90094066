import logging

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from ..background import spawn
from ..database import get_db
from ..jobs import create_job, run_job
from ..models import JobKind
from ..schemas import GenerationJobRead, OnboardingRequest
from ..services.container import Services, get_services
from ..services.lessons import clean_topics, generate_lesson, schedule_follow_on_jobs
from ..services.onboarding import first_lesson_job, save_onboarding
from ..utils import http_errors, normalize_language, require_authenticated_user

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/onboarding", tags=["onboarding"])


@router.post("")
async def submit_onboarding(
    payload: OnboardingRequest,
    user=Depends(require_authenticated_user),
    db: AsyncSession = Depends(get_db),
    services: Services = Depends(get_services),
):
    user_id = user.id
    language = normalize_language(payload.target_language)
    user_language = (payload.user_language or "english").strip().lower()
    topics = clean_topics(payload.topics)

    with http_errors("save onboarding data"):
        await save_onboarding(db, user_id, topics, language, user_language)

    response = {"success": True, "topics": topics, "targetLanguage": language}
    if not payload.generate_first_lesson:
        response["message"] = "Onboarding completed"
        return response

    if payload.generate_in_background:
        with http_errors("schedule first lesson"):
            job = await create_job(db, user_id=user_id, kind=JobKind.first_lesson)
            spawn(
                run_job(services, job.id, first_lesson_job(
                    services, user_id=user_id, topics=topics,
                    target_language=language, user_language=user_language,
                )),
                name=f"first_lesson:{user_id}",
            )
        response["message"] = "Onboarding completed! Your first lesson is being prepared."
        response["job"] = GenerationJobRead.model_validate(job).dump()
        return response

    # synchronous first lesson; a failure here still leaves onboarding saved
    try:
        result = await generate_lesson(
            db, services.ai, services.blobs,
            topics=topics,
            target_language=language,
            user_language=user_language,
            user_id=user_id,
        )
    except Exception as e:
        logger.exception("Failed to generate initial lesson for user %s", user_id)
        response["message"] = "Onboarding completed! We'll set up your lesson shortly."
        response["error"] = f"Failed to generate initial lesson: {e}"
        return response

    response["message"] = "Welcome to LingAI! Your first lesson is ready."
    response["lesson"] = {
        "id": result.lesson.id,
        "lessonNumber": result.lesson.lesson_number,
        "title": result.lesson.title,
        "totalSentences": result.lesson.total_sentences,
    }
    # read the lesson before scheduling; a failed job insert expires it
    jobs, warnings = await schedule_follow_on_jobs(services, db, result.lesson)
    response["jobs"] = [j.dump() for j in jobs]
    if warnings:
        response["warnings"] = warnings
    return response
