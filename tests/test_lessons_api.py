"""Lesson generation and lesson read routes."""
from sqlalchemy import func, select

from lingai.content import parse_lesson_markdown
from lingai.errors import BlobStoreError
from lingai.models import JobKind, Lesson, Sentence
from lingai.services import lessons as lesson_service
from lingai.services.lessons import DEFAULT_TOPICS


async def _generate(client, **body):
    payload = {"topics": ["food", "travel"], "targetLanguage": "spanish"}
    payload.update(body)
    return await client.post("/api/lessons/generate", json=payload)


class TestGenerateLesson:
    async def test_first_lesson_is_number_one_then_two(self, client):
        first = await _generate(client)
        second = await _generate(client)

        assert first.status_code == 200, first.text
        assert first.json()["lesson"]["lessonNumber"] == 1
        assert second.json()["lesson"]["lessonNumber"] == 2

    async def test_sentences_follow_provider_order(self, client, provider):
        r = await _generate(client)
        body = r.json()

        assert body["success"] is True
        assert body["totalSentences"] == 5
        assert body["lesson"]["totalSentences"] == 5
        assert [s["sentenceOrder"] for s in body["sentences"]] == [0, 1, 2, 3, 4]
        assert [s["targetText"] for s in body["sentences"]] == [p["target"] for p in provider.pairs]
        assert all(s["audioGenerated"] is False and s["audioUrl"] is None for s in body["sentences"])

    async def test_numbering_is_per_language(self, client):
        await _generate(client)
        r = await _generate(client, targetLanguage="french")
        assert r.json()["lesson"]["lessonNumber"] == 1
        assert r.json()["lesson"]["targetLanguage"] == "french"

    async def test_empty_topics_fall_back_to_defaults(self, client):
        r = await _generate(client, topics=[])
        assert r.json()["lesson"]["topics"] == DEFAULT_TOPICS

    async def test_extra_pairs_are_truncated(self, client, provider):
        provider.pairs = provider.pairs + [{"target": "Hola.", "translation": "Hello."}] * 3
        r = await _generate(client)
        assert len(r.json()["sentences"]) == 5

    async def test_short_answer_is_accepted(self, client, provider):
        provider.pairs = provider.pairs[:3]
        r = await _generate(client)
        assert r.status_code == 200
        assert r.json()["lesson"]["totalSentences"] == 3

    async def test_no_pairs_fails_without_partial_lesson(self, client, provider, db):
        provider.pairs = []
        r = await _generate(client)

        assert r.status_code == 500
        assert r.json()["detail"].startswith("Failed to generate lesson")
        assert await db.scalar(select(func.count(Lesson.id))) == 0

    async def test_provider_error_fails_atomically(self, client, provider, db):
        provider.chat_status = 503
        r = await _generate(client)

        assert r.status_code == 500
        assert await db.scalar(select(func.count(Lesson.id))) == 0
        assert await db.scalar(select(func.count(Sentence.id))) == 0

    async def test_unsupported_language(self, client):
        r = await _generate(client, targetLanguage="klingon")
        assert r.status_code == 400

    async def test_lesson_markdown_is_stored(self, client, services, user):
        r = await _generate(client)
        lesson = r.json()["lesson"]

        key = lesson["contentKey"]
        assert key.startswith(f"lessons/{user.id}/spanish/01.")
        assert key.endswith(".md")
        doc = parse_lesson_markdown((await services.blobs.get(key)).decode("utf-8"))
        assert doc.meta["lessonNumber"] == 1
        assert doc.meta["topics"] == ["food", "travel"]

        served = await client.get(f"/api/lessons/content/{key}")
        assert served.status_code == 200
        assert served.json()["frontmatter"]["title"] == lesson["title"]
        assert served.json()["schema"] == "lingai.lesson/v1"

    async def test_foreign_content_keys_are_hidden(self, client, other_user):
        r = await client.get(f"/api/lessons/content/lessons/{other_user.id}/spanish/01.x.md")
        assert r.status_code == 404

    async def test_follow_on_jobs_are_recorded(self, client, services):
        services.settings.AUTO_GENERATE_AUDIO = True
        services.settings.AUTO_GENERATE_COMIC = True
        r = await _generate(client)

        jobs = r.json()["jobs"]
        assert sorted(j["kind"] for j in jobs) == ["comic_image", "lesson_audio"]
        assert r.json()["warnings"] == []


class TestGenerateNext:
    async def test_next_lesson_merges_lesson_and_profile_topics(self, client, provider):
        await client.post("/api/onboarding", json={
            "topics": ["music"], "targetLanguage": "spanish", "generateFirstLesson": False,
        })
        first = (await _generate(client, topics=["food"])).json()["lesson"]

        r = await client.post(f"/api/lessons/{first['id']}/generate-next")

        assert r.status_code == 200, r.text
        assert r.json()["lesson"]["lessonNumber"] == 2
        assert r.json()["lesson"]["topics"] == ["food", "music"]

    async def test_next_of_missing_lesson(self, client):
        r = await client.post("/api/lessons/4242/generate-next")
        assert r.status_code == 404


class TestReadLessons:
    async def test_get_lesson_with_sentences(self, client, user, make_lesson):
        lesson = await make_lesson(user.id, 1, sentences=4)

        r = await client.get(f"/api/lessons/{lesson.id}")

        assert r.status_code == 200
        body = r.json()["lesson"]
        assert body["id"] == lesson.id
        assert [s["sentenceOrder"] for s in body["sentences"]] == [0, 1, 2, 3]

    async def test_invalid_ids(self, client):
        assert (await client.get("/api/lessons/abc")).status_code == 400
        assert (await client.get("/api/lessons/0")).status_code == 400
        assert (await client.get("/api/lessons/-3")).status_code == 400
        assert (await client.get("/api/lessons/999")).status_code == 404

    async def test_other_users_lesson_is_not_found(self, client, other_user, make_lesson):
        lesson = await make_lesson(other_user.id, 1)
        assert (await client.get(f"/api/lessons/{lesson.id}")).status_code == 404

    async def test_single_sentence(self, client, user, make_lesson, db):
        lesson = await make_lesson(user.id, 1)
        sid = await db.scalar(select(Sentence.id).where(Sentence.lesson_id == lesson.id, Sentence.sentence_order == 1))

        r = await client.get(f"/api/lessons/sentences/{sid}")

        assert r.status_code == 200
        assert r.json()["sentence"]["targetText"] == "Frase 1.1"

    async def test_list_by_language(self, client, user, make_lesson):
        await make_lesson(user.id, 1)
        await make_lesson(user.id, 2)
        await make_lesson(user.id, 1, language="german")

        r = await client.get("/api/lessons", params={"language": "spanish"})

        assert [l["lessonNumber"] for l in r.json()["lessons"]] == [1, 2]


class TestNavigation:
    async def test_navigation_within_language_track(self, client, user, make_lesson):
        one = await make_lesson(user.id, 1)
        two = await make_lesson(user.id, 2)
        three = await make_lesson(user.id, 3)
        await make_lesson(user.id, 4, language="italian")

        middle = (await client.get(f"/api/lessons/{two.id}/navigation")).json()
        assert middle == {
            "currentLessonId": two.id,
            "currentLessonNumber": 2,
            "hasPrevious": True,
            "hasNext": True,
            "previousLessonId": one.id,
            "nextLessonId": three.id,
        }

        last = (await client.get(f"/api/lessons/{three.id}/navigation")).json()
        assert last["hasNext"] is False
        assert last["nextLessonId"] is None

    async def test_first_lesson_has_no_previous(self, client, user, make_lesson):
        one = await make_lesson(user.id, 1)
        nav = (await client.get(f"/api/lessons/{one.id}/navigation")).json()
        assert nav["hasPrevious"] is False
        assert nav["hasNext"] is False


class TestGenerateWithSessionUser:
    async def test_failed_job_insert_is_a_warning(self, session_user_client, services, monkeypatch):
        services.settings.AUTO_GENERATE_AUDIO = True
        services.settings.AUTO_GENERATE_COMIC = True
        real_create_job = lesson_service.create_job

        async def flaky_create_job(db, *, user_id, kind, lesson_id=None):
            if kind == JobKind.comic_image:
                # open a transaction so the rollback really expires the session
                await db.execute(select(1))
                raise RuntimeError("job table locked")
            return await real_create_job(db, user_id=user_id, kind=kind, lesson_id=lesson_id)

        monkeypatch.setattr(lesson_service, "create_job", flaky_create_job)

        r = await _generate(session_user_client)

        assert r.status_code == 200, r.text
        body = r.json()
        assert body["lesson"]["lessonNumber"] == 1
        assert len(body["sentences"]) == 5
        assert [j["kind"] for j in body["jobs"]] == ["lesson_audio"]
        assert body["warnings"] == ["Could not schedule comic_image: job table locked"]

    async def test_store_failure_is_a_clean_500(self, session_user_client, services, monkeypatch, db):
        async def broken_put(key, data, *, content_type):
            raise BlobStoreError("bucket unavailable")

        monkeypatch.setattr(services.blobs, "put", broken_put)

        r = await _generate(session_user_client)

        assert r.status_code == 500
        assert "bucket unavailable" in r.json()["detail"]
        assert await db.scalar(select(func.count(Lesson.id))) == 0
