from datetime import datetime
from typing import Any, Dict, List, Optional

from fastapi_users import schemas as fu_schemas
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from .models import JobKind, JobStatus


# =========================
# USER SCHEMAS (fastapi-users)
# =========================
class UserRead(fu_schemas.BaseUser[int]):
    pass


class UserCreate(fu_schemas.BaseUserCreate):
    pass


class UserUpdate(fu_schemas.BaseUserUpdate):
    pass


class CamelModel(BaseModel):
    """Snake-case attributes in Python, camelCase keys on the wire."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)

    def dump(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, mode="json")


# =========================
# LESSON SCHEMAS
# =========================
class SentenceRead(CamelModel):
    id: int
    lesson_id: int
    user_id: int
    target_text: str
    user_text: str
    audio_url: Optional[str] = None
    audio_generated: bool = False
    sentence_order: int
    context: Optional[str] = None
    difficulty: Optional[str] = None
    tags: Optional[List[str]] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class LessonRead(CamelModel):
    id: int
    user_id: int
    title: str
    description: Optional[str] = None
    target_language: str
    user_language: str
    difficulty: str
    topics: List[str] = []
    lesson_number: int
    total_sentences: int
    content_key: Optional[str] = None
    comic_image_url: Optional[str] = None
    comic_image_generated: bool = False
    is_recap_lesson: bool = False
    recap_markdown_url: Optional[str] = None
    recap_generated: bool = False
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class LessonWithSentences(LessonRead):
    sentences: List[SentenceRead] = []


class GenerateLessonRequest(CamelModel):
    topics: List[str] = []
    target_language: Optional[str] = None
    user_language: str = "english"


class RetryRequest(CamelModel):
    lesson_id: Optional[int] = Field(default=None, gt=0)


class LessonNavigation(CamelModel):
    current_lesson_id: int
    current_lesson_number: int
    has_previous: bool
    has_next: bool
    previous_lesson_id: Optional[int] = None
    next_lesson_id: Optional[int] = None


# =========================
# ONBOARDING / PROFILE
# =========================
class OnboardingRequest(CamelModel):
    topics: List[str]
    target_language: str
    user_language: str = "english"
    generate_first_lesson: bool = True
    generate_in_background: bool = False


class UserProfileRead(CamelModel):
    user_id: int
    target_language: str
    user_language: str
    topics: List[str] = []


# =========================
# PROGRESS
# =========================
class ProgressUpdate(CamelModel):
    last_lesson_id: int = Field(gt=0)


class PracticeRequest(CamelModel):
    correct: bool


class SentenceProgressRead(CamelModel):
    sentence_id: int
    lesson_id: int
    completed: bool
    practice_count: int
    mastery_level: int
    last_practiced_at: Optional[datetime] = None


# =========================
# JOBS
# =========================
class GenerationJobRead(CamelModel):
    id: str
    kind: JobKind
    lesson_id: Optional[int] = None
    status: JobStatus
    error: Optional[str] = None
    result: Optional[Dict[str, Any]] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
