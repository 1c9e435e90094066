# lingai/services/course_content.py
import json
from functools import lru_cache
from pathlib import Path
from typing import List

from pydantic import BaseModel, Field, ValidationError

COURSE_CONTENT_PATH = Path(__file__).resolve().parent.parent / "data" / "course_content.json"


class CourseLesson(BaseModel):
    lesson_number: int = Field(ge=1, le=100)
    title: str
    description: str
    grammar_points: List[str]
    vocabulary_topics: List[str]
    communication_goals: List[str]


class CourseContent(BaseModel):
    lessons: List[CourseLesson]


@lru_cache(maxsize=1)
def load_course_content(path: str = str(COURSE_CONTENT_PATH)) -> List[CourseLesson]:
    try:
        raw = json.loads(Path(path).read_text(encoding="utf-8"))
    except json.JSONDecodeError as e:
        raise RuntimeError(f"Failed to parse course content JSON: {e}") from e
    try:
        return CourseContent.model_validate(raw).lessons
    except ValidationError as e:
        raise RuntimeError(f"Invalid course content format: {e}") from e


def course_lessons_in_range(start: int, end: int) -> List[CourseLesson]:
    return [c for c in load_course_content() if start <= c.lesson_number <= end]
