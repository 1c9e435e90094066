# lingai/services/lessons.py
"""
Lesson generation and its follow-on artifacts.

generate_lesson() is the synchronous path: one text-model call, then the
lesson row, its sentences and the lesson markdown blob in a single commit.
Audio, comic images and recap markdown are produced afterwards by tracked
background jobs (see schedule_follow_on_jobs) and can be retried.
"""
import asyncio
import io
import json
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Tuple

from PIL import Image, UnidentifiedImageError
from pydantic import BaseModel, Field, ValidationError, field_validator
from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from ..background import run_sync, spawn
from ..content import render_lesson_markdown
from ..errors import AIProviderError, LessonGenerationError, NotFound
from ..jobs import create_job, run_job
from ..llm_client import AIClient
from ..models import JobKind, Lesson, Sentence
from ..prompts import COMIC_IMAGE, GENERATE_LESSON, LESSON_SYSTEM, bullet_list, render_prompt, voice_for
from ..schemas import GenerationJobRead
from ..storage import BlobStore
from ..utils import slugify
from .recap import generate_recap_lesson, is_recap_checkpoint, recap_range

logger = logging.getLogger(__name__)

DEFAULT_TOPICS = ["travel", "food", "family", "work", "hobbies"]
SENTENCES_PER_LESSON = 5


# ---------------------------
# Model output
# ---------------------------
class GeneratedPair(BaseModel):
    target: str = Field(min_length=1)
    translation: str = Field(min_length=1)
    context: Optional[str] = None

    @field_validator("target", "translation")
    @classmethod
    def _strip(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("must not be blank")
        return v


class GeneratedLesson(BaseModel):
    title: Optional[str] = None
    description: Optional[str] = None
    sentences: List[GeneratedPair] = Field(default_factory=list)


def parse_generated_lesson(raw: str) -> GeneratedLesson:
    text = (raw or "").strip()
    if text.startswith("```"):
        text = text.strip("`")
        text = text[text.find("{"):] if "{" in text else text
    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        raise LessonGenerationError(f"Model returned non-JSON: {raw[:200]!r}") from e
    # some models answer with a bare list of pairs
    if isinstance(data, list):
        data = {"sentences": data}
    try:
        parsed = GeneratedLesson.model_validate(data)
    except ValidationError as e:
        raise LessonGenerationError(f"Model returned malformed lesson: {e.errors()[:3]}") from e

    if not parsed.sentences:
        raise LessonGenerationError("Model returned no sentences")
    if len(parsed.sentences) > SENTENCES_PER_LESSON:
        logger.info("Model returned %d sentences; keeping the first %d",
                    len(parsed.sentences), SENTENCES_PER_LESSON)
        parsed.sentences = parsed.sentences[:SENTENCES_PER_LESSON]
    elif len(parsed.sentences) < SENTENCES_PER_LESSON:
        logger.warning("Model returned only %d sentences", len(parsed.sentences))
    return parsed


@dataclass
class GeneratedLessonResult:
    lesson: Lesson
    sentences: List[Sentence]
    warnings: List[str] = field(default_factory=list)


def clean_topics(topics: Optional[Iterable[str]]) -> List[str]:
    out: List[str] = []
    for t in topics or []:
        t = (t or "").strip().lower()
        if t and t not in out:
            out.append(t)
    return out


async def next_lesson_number(db: AsyncSession, user_id: int, target_language: str) -> int:
    current = await db.scalar(
        select(func.max(Lesson.lesson_number)).where(
            Lesson.user_id == user_id, Lesson.target_language == target_language
        )
    )
    return (current or 0) + 1


def lesson_content_key(user_id: int, language: str, lesson_number: int, title: str) -> str:
    slug = slugify(title) or "lesson"
    return f"lessons/{user_id}/{language}/{lesson_number:02d}.{slug}.md"


def _lesson_markdown(lesson: Lesson, pairs: List[GeneratedPair]) -> str:
    meta = {
        "title": lesson.title,
        "description": lesson.description,
        "lessonNumber": lesson.lesson_number,
        "targetLanguage": lesson.target_language,
        "userLanguage": lesson.user_language,
        "difficulty": lesson.difficulty,
        "topics": lesson.topics,
    }
    rows = [
        f"| {lesson.target_language.title()} | {lesson.user_language.title()} |",
        "|---|---|",
    ]
    rows += [f"| {p.target} | {p.translation} |" for p in pairs]
    body = f"# {lesson.title}\n\n{lesson.description or ''}\n\n" + "\n".join(rows)
    return render_lesson_markdown(meta, body)


# ---------------------------
# Lesson creation
# ---------------------------
async def create_recap_lesson(
    db: AsyncSession,
    *,
    user_id: int,
    target_language: str,
    user_language: str,
    lesson_number: int,
    topics: List[str],
) -> GeneratedLessonResult:
    start, end = recap_range(lesson_number)
    lesson = Lesson(
        user_id=user_id,
        title=f"Recap: Lessons {start}-{end}",
        description=f"Review of lessons {start} to {end}",
        target_language=target_language,
        user_language=user_language,
        difficulty="beginner",
        topics=topics,
        lesson_number=lesson_number,
        total_sentences=0,
        is_recap_lesson=True,
        recap_generated=False,
    )
    db.add(lesson)
    try:
        await db.commit()
    except Exception:
        await db.rollback()
        raise
    logger.info("Created recap lesson %s (#%d) for user %s", lesson.id, lesson_number, user_id)
    return GeneratedLessonResult(lesson=lesson, sentences=[])


async def generate_lesson(
    db: AsyncSession,
    ai: AIClient,
    blobs: BlobStore,
    *,
    topics: Optional[Iterable[str]],
    target_language: str,
    user_language: str = "english",
    user_id: int,
) -> GeneratedLessonResult:
    topics = clean_topics(topics) or list(DEFAULT_TOPICS)
    number = await next_lesson_number(db, user_id, target_language)

    if is_recap_checkpoint(number):
        return await create_recap_lesson(
            db,
            user_id=user_id,
            target_language=target_language,
            user_language=user_language,
            lesson_number=number,
            topics=topics,
        )

    prompt = render_prompt(
        GENERATE_LESSON,
        topics=", ".join(topics),
        target_language=target_language,
        user_language=user_language,
    )
    try:
        raw = await ai.chat(LESSON_SYSTEM, prompt, json_mode=True, temperature=0.8, max_tokens=1500)
    except AIProviderError as e:
        raise LessonGenerationError(f"Lesson generation failed: {e}") from e
    generated = parse_generated_lesson(raw)

    try:
        lesson = Lesson(
            user_id=user_id,
            title=(generated.title or f"Lesson {number}: {', '.join(topics[:2]).title()}")[:200],
            description=generated.description,
            target_language=target_language,
            user_language=user_language,
            difficulty="beginner",
            topics=topics,
            lesson_number=number,
            total_sentences=0,
        )
        db.add(lesson)
        # parent row first so every sentence has a lesson to point at
        await db.flush()

        sentences = [
            Sentence(
                lesson_id=lesson.id,
                user_id=user_id,
                target_text=p.target,
                user_text=p.translation,
                context=p.context,
                difficulty="beginner",
                tags=list(topics),
                sentence_order=i,
                audio_generated=False,
            )
            for i, p in enumerate(generated.sentences)
        ]
        db.add_all(sentences)
        lesson.total_sentences = len(sentences)
        await db.flush()

        key = lesson_content_key(user_id, target_language, number, lesson.title)
        await blobs.put(key, _lesson_markdown(lesson, generated.sentences).encode("utf-8"),
                        content_type="text/markdown")
        lesson.content_key = key
        await db.commit()
    except Exception:
        await db.rollback()
        raise

    logger.info("Generated lesson %s (#%d, %s) with %d sentences for user %s",
                lesson.id, number, target_language, len(sentences), user_id)
    return GeneratedLessonResult(lesson=lesson, sentences=sentences)


# ---------------------------
# Audio
# ---------------------------
async def generate_lesson_audio(
    db: AsyncSession,
    ai: AIClient,
    blobs: BlobStore,
    lesson: Lesson,
    *,
    delay: float = 0.5,
) -> Tuple[int, int]:
    """Synthesize audio for sentences that lack it. Returns (generated, total)."""
    lesson_id, user_id = lesson.id, lesson.user_id
    voice = voice_for(lesson.target_language)

    rows = await db.execute(
        select(Sentence.id, Sentence.target_text)
        .where(
            Sentence.lesson_id == lesson_id,
            Sentence.user_id == user_id,
            Sentence.audio_generated.is_(False),
        )
        .order_by(Sentence.sentence_order)
    )
    pending = rows.all()
    if not pending:
        return 0, 0

    logger.info("Generating audio for %d sentences in lesson %s", len(pending), lesson_id)
    generated = 0
    for i, (sentence_id, text) in enumerate(pending):
        if i and delay:
            await asyncio.sleep(delay)
        try:
            audio = await ai.speech(text, voice=voice)
            key = f"audio/sentences/{sentence_id}.mp3"
            await blobs.put(key, audio, content_type="audio/mpeg")
            await db.execute(
                update(Sentence)
                .where(Sentence.id == sentence_id)
                .values(audio_url=f"/api/audio/{key}", audio_generated=True)
            )
            await db.commit()
            generated += 1
        except Exception:
            await db.rollback()
            logger.exception("Audio generation failed for sentence %s", sentence_id)
    return generated, len(pending)


# ---------------------------
# Comic image
# ---------------------------
def _to_png(data: bytes) -> bytes:
    try:
        with Image.open(io.BytesIO(data)) as img:
            if img.mode not in ("RGB", "RGBA"):
                img = img.convert("RGBA")
            buf = io.BytesIO()
            img.save(buf, format="PNG")
            return buf.getvalue()
    except (UnidentifiedImageError, OSError) as e:
        raise AIProviderError("Image payload is not a readable image") from e


async def generate_comic_image(db: AsyncSession, ai: AIClient, blobs: BlobStore, lesson: Lesson) -> str:
    lesson_id, user_id = lesson.id, lesson.user_id
    topics = list(lesson.topics or [])

    texts = (await db.execute(
        select(Sentence.user_text)
        .where(Sentence.lesson_id == lesson_id)
        .order_by(Sentence.sentence_order)
    )).scalars().all()

    prompt = render_prompt(
        COMIC_IMAGE,
        topics=", ".join(topics) or "everyday life",
        moments=bullet_list(texts[:4]),
    )
    raw = await ai.image(prompt)
    png = await run_sync(_to_png, raw)

    key = f"images/lessons/{user_id}/{lesson_id}-{int(time.time())}.png"
    await blobs.put(key, png, content_type="image/png")
    url = f"/api/images/{key}"
    await db.execute(
        update(Lesson)
        .where(Lesson.id == lesson_id)
        .values(comic_image_url=url, comic_image_generated=True)
    )
    await db.commit()
    logger.info("Comic image stored for lesson %s", lesson_id)
    return url


# ---------------------------
# Retries
# ---------------------------
async def retry_failed_audio_generation(
    db: AsyncSession,
    ai: AIClient,
    blobs: BlobStore,
    *,
    user_id: Optional[int] = None,
    lesson_id: Optional[int] = None,
    delay: float = 0.5,
) -> Dict[str, int]:
    q = (
        select(Sentence.lesson_id)
        .where(Sentence.audio_generated.is_(False))
        .distinct()
        .order_by(Sentence.lesson_id)
    )
    if user_id is not None:
        q = q.where(Sentence.user_id == user_id)
    if lesson_id is not None:
        q = q.where(Sentence.lesson_id == lesson_id)
    lesson_ids = list((await db.execute(q)).scalars().all())

    totals = {"lessons": len(lesson_ids), "generated": 0, "total": 0}
    for lid in lesson_ids:
        lesson = await db.get(Lesson, lid)
        if lesson is None:
            continue
        try:
            generated, total = await generate_lesson_audio(db, ai, blobs, lesson, delay=delay)
        except Exception:
            await db.rollback()
            logger.exception("Audio retry failed for lesson %s", lid)
            continue
        totals["generated"] += generated
        totals["total"] += total
    return totals


async def retry_failed_comic_image_generation(
    db: AsyncSession,
    ai: AIClient,
    blobs: BlobStore,
    *,
    user_id: Optional[int] = None,
    lesson_id: Optional[int] = None,
) -> Dict[str, int]:
    q = select(Lesson.id).where(
        Lesson.comic_image_generated.is_(False),
        Lesson.is_recap_lesson.is_(False),
        Lesson.total_sentences > 0,
    ).order_by(Lesson.id)
    if user_id is not None:
        q = q.where(Lesson.user_id == user_id)
    if lesson_id is not None:
        q = q.where(Lesson.id == lesson_id)
    lesson_ids = list((await db.execute(q)).scalars().all())

    done = 0
    for lid in lesson_ids:
        lesson = await db.get(Lesson, lid)
        if lesson is None:
            continue
        try:
            await generate_comic_image(db, ai, blobs, lesson)
            done += 1
        except Exception:
            await db.rollback()
            logger.exception("Comic image retry failed for lesson %s", lid)
    return {"lessons": len(lesson_ids), "generated": done}


# ---------------------------
# Follow-on jobs
# ---------------------------
def artifact_job(services, kind: JobKind, lesson_id: int):
    """Work function for one lesson-level job, run by jobs.run_job in its own session."""

    async def work(db: AsyncSession) -> Dict[str, Any]:
        lesson = await db.get(Lesson, lesson_id)
        if lesson is None:
            raise NotFound(f"Lesson {lesson_id} not found")
        if kind == JobKind.lesson_audio:
            generated, total = await generate_lesson_audio(
                db, services.ai, services.blobs, lesson,
                delay=services.settings.AUDIO_REQUEST_DELAY_SECONDS,
            )
            return {"generated": generated, "total": total}
        if kind == JobKind.comic_image:
            return {"url": await generate_comic_image(db, services.ai, services.blobs, lesson)}
        if kind == JobKind.recap:
            return {"url": await generate_recap_lesson(db, services.ai, services.blobs, lesson)}
        raise ValueError(f"Unsupported job kind: {kind}")

    return work


async def schedule_follow_on_jobs(
    services, db: AsyncSession, lesson: Lesson
) -> Tuple[List[GenerationJobRead], List[str]]:
    """Record and start background jobs for a freshly created lesson.

    Never raises: scheduling problems come back as warnings for the response.
    A failed job insert rolls the session back and expires its objects, so
    jobs are returned as snapshots and callers should read the lesson first.
    """
    settings = services.settings
    kinds: List[JobKind] = []
    if lesson.is_recap_lesson:
        if settings.AUTO_GENERATE_RECAP:
            kinds.append(JobKind.recap)
    else:
        if settings.AUTO_GENERATE_AUDIO:
            kinds.append(JobKind.lesson_audio)
        if settings.AUTO_GENERATE_COMIC:
            kinds.append(JobKind.comic_image)

    lesson_id, user_id = lesson.id, lesson.user_id
    jobs: List[GenerationJobRead] = []
    warnings: List[str] = []
    for kind in kinds:
        try:
            job = GenerationJobRead.model_validate(
                await create_job(db, user_id=user_id, kind=kind, lesson_id=lesson_id)
            )
            spawn(run_job(services, job.id, artifact_job(services, kind, lesson_id)),
                  name=f"{kind.value}:{lesson_id}")
            jobs.append(job)
        except Exception as e:
            await db.rollback()
            logger.exception("Could not schedule %s for lesson %s", kind.value, lesson_id)
            warnings.append(f"Could not schedule {kind.value}: {e}")
    return jobs, warnings
