from fastapi import APIRouter

from ..utils import SUPPORTED_LANGUAGES

router = APIRouter(prefix="/api", tags=["catalog"])

TOPICS = [
    "travel", "business", "food", "culture", "sports", "technology", "music",
    "movies", "books", "fashion", "health", "education", "family", "friends",
    "work", "hobbies", "art", "science", "politics", "environment", "shopping",
    "transportation", "weather", "holidays", "news",
]


@router.get("/topics")
async def list_topics():
    return sorted(TOPICS)


@router.get("/languages")
async def list_languages():
    return [{"code": code, "name": code.title()} for code in SUPPORTED_LANGUAGES]
