"""AIClient against httpx.MockTransport."""
import base64
import json

import httpx
import pytest

from lingai.errors import AIProviderError
from lingai.llm_client import AIClient, _sanitize_llm_text
from lingai.settings.config import Settings


def _client(handler, **overrides):
    values = {"OPENAI_API_KEY": "k", "OPENAI_BASE_URL": "https://ai.test/v1"}
    values.update(overrides)
    settings = Settings(**values)
    http = httpx.AsyncClient(base_url=settings.OPENAI_BASE_URL, transport=httpx.MockTransport(handler))
    return AIClient(settings, http_client=http)


def _chat_reply(content):
    return lambda request: httpx.Response(200, json={"choices": [{"message": {"content": content}}]})


class TestSanitize:
    def test_strips_preamble_and_fences(self):
        raw = "Sure! Here is your recap:\n```markdown\n# Recap: Lessons 1-6\n\nBody\n```"
        assert _sanitize_llm_text(raw) == "# Recap: Lessons 1-6\n\nBody"

    def test_keeps_headings(self):
        assert _sanitize_llm_text("# Here is the plan\ntext") == "# Here is the plan\ntext"


class TestAIClient:
    async def test_chat_sends_model_and_auth(self):
        seen = {}

        def handler(request):
            seen["auth"] = request.headers["authorization"]
            seen["body"] = json.loads(request.content)
            return _chat_reply('{"sentences": []}')(request)

        ai = _client(handler)
        out = await ai.chat("sys", "user", json_mode=True, model="gpt-test")

        assert out == '{"sentences": []}'
        assert seen["auth"] == "Bearer k"
        assert seen["body"]["model"] == "gpt-test"
        assert seen["body"]["response_format"] == {"type": "json_object"}
        assert [m["role"] for m in seen["body"]["messages"]] == ["system", "user"]

    async def test_missing_key(self):
        ai = _client(_chat_reply("x"), OPENAI_API_KEY="")
        with pytest.raises(AIProviderError):
            await ai.chat("sys", "user")

    async def test_http_error_is_wrapped(self):
        ai = _client(lambda r: httpx.Response(429, json={"error": "slow down"}))
        with pytest.raises(AIProviderError, match="429"):
            await ai.chat("sys", "user")

    async def test_empty_content(self):
        ai = _client(_chat_reply("   "))
        with pytest.raises(AIProviderError):
            await ai.chat("sys", "user")

    async def test_speech_returns_bytes(self):
        ai = _client(lambda r: httpx.Response(200, content=b"ID3audio"))
        assert await ai.speech("Hola", voice="nova") == b"ID3audio"

    async def test_image_from_b64_and_url(self):
        png = b"\x89PNGdata"

        def handler(request):
            if request.url.path.endswith("/images/generations"):
                prompt = json.loads(request.content)["prompt"]
                if prompt == "b64":
                    return httpx.Response(200, json={"data": [{"b64_json": base64.b64encode(png).decode()}]})
                return httpx.Response(200, json={"data": [{"url": "https://cdn.test/img.png"}]})
            return httpx.Response(200, content=png)

        ai = _client(handler)
        assert await ai.image("b64") == png
        assert await ai.image("url") == png

    async def test_image_without_payload(self):
        ai = _client(lambda r: httpx.Response(200, json={"data": [{}]}))
        with pytest.raises(AIProviderError):
            await ai.image("x")
