"""Shared fixtures: tmp SQLite database, local blob store, and a fake AI provider on httpx.MockTransport."""
import io
import base64
import json
import os

# settings are read at import time
os.environ.setdefault("SECRET", "test-secret-0f3c9a7b2e5d4c1a")
os.environ.setdefault("RETRY_SWEEP_MINUTES", "0")

import httpx
import pytest
from fastapi import Depends
from httpx import ASGITransport
from PIL import Image
from sqlalchemy.ext.asyncio import AsyncSession

from lingai.database import get_db
from lingai.main import app
from lingai.models import Lesson, Sentence, User
from lingai.services.container import build_services
from lingai.settings.config import Settings
from lingai.storage import LocalBlobStore
from lingai.users import current_active_user


def _png_b64() -> str:
    buf = io.BytesIO()
    Image.new("RGB", (4, 4), (200, 80, 40)).save(buf, format="PNG")
    return base64.b64encode(buf.getvalue()).decode("ascii")


DEFAULT_PAIRS = [
    {"target": "Quiero un café, por favor.", "translation": "I want a coffee, please.", "context": "ordering"},
    {"target": "¿Dónde está la estación?", "translation": "Where is the station?"},
    {"target": "Mi hermana vive en Madrid.", "translation": "My sister lives in Madrid."},
    {"target": "Trabajo en una oficina.", "translation": "I work in an office."},
    {"target": "Me gusta leer por la noche.", "translation": "I like reading at night."},
]


class FakeProvider:
    """Answers the OpenAI-style endpoints and records every call."""

    def __init__(self):
        self.calls = []
        self.pairs = list(DEFAULT_PAIRS)
        self.title = "Café y estación"
        self.chat_status = 200
        self.recap_markdown = "# Recap: Lessons 1-6\n\n## 1 · Grammar Review\n"
        self.fail_speech_for = set()
        self.image_b64 = _png_b64()

    def handler(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path
        payload = json.loads(request.content or b"{}")
        self.calls.append((path, payload))

        if path.endswith("/chat/completions"):
            if self.chat_status != 200:
                return httpx.Response(self.chat_status, json={"error": {"message": "provider down"}})
            if payload.get("response_format"):
                content = json.dumps({"title": self.title, "description": "Everyday phrases", "sentences": self.pairs})
            else:
                content = self.recap_markdown
            return httpx.Response(200, json={"choices": [{"message": {"content": content}}]})

        if path.endswith("/audio/speech"):
            if payload.get("input") in self.fail_speech_for:
                return httpx.Response(500, json={"error": {"message": "tts failed"}})
            return httpx.Response(200, content=b"ID3" + payload["input"].encode("utf-8"))

        if path.endswith("/images/generations"):
            return httpx.Response(200, json={"data": [{"b64_json": self.image_b64}]})

        return httpx.Response(404)

    def count(self, suffix: str) -> int:
        return sum(1 for p, _ in self.calls if p.endswith(suffix))


@pytest.fixture
def provider():
    return FakeProvider()


@pytest.fixture
def settings(tmp_path):
    return Settings(
        DATABASE_URL=f"sqlite+aiosqlite:///{tmp_path / 'test.db'}",
        SECRET="test-secret-0f3c9a7b2e5d4c1a",
        OPENAI_API_KEY="test-key",
        OPENAI_BASE_URL="https://ai.test/v1",
        BLOB_BACKEND="local",
        BLOB_ROOT=str(tmp_path / "blobs"),
        AUDIO_REQUEST_DELAY_SECONDS=0,
        AUTO_GENERATE_AUDIO=False,
        AUTO_GENERATE_COMIC=False,
        AUTO_GENERATE_RECAP=False,
        RETRY_SWEEP_MINUTES=0,
        RUN_DB_CREATE_ALL=True,
    )


@pytest.fixture
async def services(settings, provider):
    http = httpx.AsyncClient(base_url=settings.OPENAI_BASE_URL, transport=httpx.MockTransport(provider.handler))
    svc = build_services(settings, ai_http_client=http, blobs=LocalBlobStore(settings.BLOB_ROOT))
    await svc.startup()
    yield svc
    await svc.shutdown()
    await http.aclose()


@pytest.fixture
async def db(services):
    async with services.db.session() as session:
        yield session


async def _make_user(services, email: str) -> User:
    async with services.db.session() as s:
        u = User(email=email, hashed_password="not-a-real-hash", is_active=True, is_superuser=False, is_verified=True)
        s.add(u)
        await s.commit()
        return u


@pytest.fixture
async def user(services):
    return await _make_user(services, "learner@example.com")


@pytest.fixture
async def other_user(services):
    return await _make_user(services, "someone-else@example.com")


@pytest.fixture
async def client(services, user):
    app.state.services = services
    app.dependency_overrides[current_active_user] = lambda: user
    async with httpx.AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as c:
        yield c
    app.dependency_overrides.clear()
    app.state.services = None


@pytest.fixture
def make_lesson(services):
    """Insert a lesson with sentences directly, bypassing the provider."""

    async def _make(user_id: int, number: int, *, language: str = "spanish", sentences: int = 3,
                    topics=("food",), **fields) -> Lesson:
        async with services.db.session() as s:
            lesson = Lesson(
                user_id=user_id,
                title=f"Lesson {number}",
                target_language=language,
                user_language="english",
                difficulty="beginner",
                topics=list(topics),
                lesson_number=number,
                total_sentences=sentences,
                **fields,
            )
            s.add(lesson)
            await s.flush()
            for i in range(sentences):
                s.add(Sentence(
                    lesson_id=lesson.id, user_id=user_id,
                    target_text=f"Frase {number}.{i}", user_text=f"Sentence {number}.{i}",
                    sentence_order=i,
                ))
            await s.commit()
            return lesson

    return _make


@pytest.fixture
async def session_user_client(services, user):
    """Client whose current user is loaded from the request's own DB session, as fastapi-users does."""
    user_id = user.id

    async def _current_user(db: AsyncSession = Depends(get_db)):
        return await db.get(User, user_id)

    app.state.services = services
    app.dependency_overrides[current_active_user] = _current_user
    async with httpx.AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as c:
        yield c
    app.dependency_overrides.clear()
    app.state.services = None
