"""Recap checkpoints, ranges and recap markdown generation."""
import pytest
from sqlalchemy import select

from lingai.errors import InvalidArgument, NotFound
from lingai.models import Lesson, Sentence
from lingai.services.recap import (
    build_recap_prompt,
    generate_recap_lesson,
    get_lessons_for_recap,
    is_recap_checkpoint,
    recap_range,
)


class TestRecapCalculator:
    def test_checkpoint_every_seventh_lesson(self):
        for n in range(1, 100):
            assert is_recap_checkpoint(n) == (n % 7 == 0)

    def test_zero_and_negative_are_not_checkpoints(self):
        assert not is_recap_checkpoint(0)
        assert not is_recap_checkpoint(-7)

    @pytest.mark.parametrize("n, expected", [(7, (1, 6)), (14, (8, 13)), (21, (15, 20)), (70, (64, 69))])
    def test_range_covers_previous_six(self, n, expected):
        assert recap_range(n) == expected

    @pytest.mark.parametrize("n", [0, 1, 6, 8, 13, -7])
    def test_range_rejects_non_checkpoints(self, n):
        with pytest.raises(InvalidArgument):
            recap_range(n)


class TestRecapContent:
    async def test_lessons_for_recap_stay_in_range_and_language(self, db, user, make_lesson):
        for n in range(1, 9):
            await make_lesson(user.id, n)
        await make_lesson(user.id, 2, language="french")

        lessons = await get_lessons_for_recap(db, user.id, "spanish", 7)

        assert [l.lesson_number for l in lessons] == [1, 2, 3, 4, 5, 6]
        assert all(l.target_language == "spanish" for l in lessons)
        assert [s.sentence_order for s in lessons[0].sentences] == [0, 1, 2]

    async def test_prompt_includes_sentences_and_course_grammar(self, db, user, make_lesson):
        for n in range(1, 7):
            await make_lesson(user.id, n, topics=("travel",))
        lessons = await get_lessons_for_recap(db, user.id, "spanish", 7)

        system, prompt = build_recap_prompt(lessons, 7, target_language="spanish")

        assert "spanish" in system
        assert "# Recap: Lessons 1-6" in prompt
        assert "Frase 3.1 → Sentence 3.1" in prompt
        assert "subject pronouns" in prompt
        assert "travel" in prompt

    async def test_generate_recap_stores_markdown(self, services, db, user, make_lesson, provider):
        for n in range(1, 7):
            await make_lesson(user.id, n)
        recap = await make_lesson(user.id, 7, sentences=0, is_recap_lesson=True)
        lesson = await db.get(Lesson, recap.id)

        url = await generate_recap_lesson(db, services.ai, services.blobs, lesson)

        key = f"recap/users/{user.id}/lessons/{recap.id}.md"
        assert url == f"/api/recap/{key}"
        assert (await services.blobs.get(key)).decode("utf-8") == provider.recap_markdown.strip()
        refreshed = await db.get(Lesson, recap.id, populate_existing=True)
        assert refreshed.recap_generated is True
        assert refreshed.recap_markdown_url == url

    async def test_generate_recap_without_source_lessons(self, services, db, user, make_lesson):
        recap = await make_lesson(user.id, 7, sentences=0, is_recap_lesson=True)
        lesson = await db.get(Lesson, recap.id)

        with pytest.raises(NotFound):
            await generate_recap_lesson(db, services.ai, services.blobs, lesson)


class TestRecapLessonCreation:
    async def test_seventh_lesson_is_a_recap_without_sentences(self, client, db, user, make_lesson, provider):
        for n in range(1, 7):
            await make_lesson(user.id, n)

        r = await client.post("/api/lessons/generate", json={"topics": ["food"], "targetLanguage": "spanish"})

        assert r.status_code == 200, r.text
        body = r.json()
        assert body["lesson"]["lessonNumber"] == 7
        assert body["lesson"]["isRecapLesson"] is True
        assert body["lesson"]["title"] == "Recap: Lessons 1-6"
        assert body["sentences"] == []
        assert provider.count("/chat/completions") == 0

        count = (await db.execute(select(Sentence).where(Sentence.lesson_id == body["lesson"]["id"]))).all()
        assert count == []

    async def test_generate_recap_endpoint(self, client, user, make_lesson):
        for n in range(1, 7):
            await make_lesson(user.id, n)
        recap = await make_lesson(user.id, 7, sentences=0, is_recap_lesson=True)

        r = await client.post(f"/api/lessons/{recap.id}/generate-recap")

        assert r.status_code == 200, r.text
        url = r.json()["recapMarkdownUrl"]
        assert r.json()["lesson"]["recapGenerated"] is True

        served = await client.get(url)
        assert served.status_code == 200
        assert served.headers["content-type"].startswith("text/markdown")
        assert served.headers["cache-control"] == "public, max-age=31536000"

    async def test_generate_recap_rejects_regular_lesson(self, client, user, make_lesson):
        lesson = await make_lesson(user.id, 1)
        r = await client.post(f"/api/lessons/{lesson.id}/generate-recap")
        assert r.status_code == 400
