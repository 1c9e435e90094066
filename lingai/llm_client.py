import base64
import logging
import re
from typing import Optional

import httpx

from .errors import AIProviderError

logger = logging.getLogger(__name__)


#----------text cleanup---------------

def _sanitize_llm_text(out: str) -> str:
    """Remove assistant-y prefaces and unwrap code fences."""
    if not out:
        return ""
    s = out.strip()
    # Prefer content inside triple backticks if present
    m = re.search(r"```(?:\w+)?\s*([\s\S]*?)```", s)
    if m and m.group(1).strip():
        s = m.group(1).strip()
    lines = [ln.rstrip() for ln in s.splitlines()]
    while lines:
        head = lines[0].strip()
        if not head:
            lines.pop(0)
            continue
        low = head.lower().rstrip(":")
        boiler = (
            "here you go" in low or
            "here is" in low or
            "here's" in low or
            low.startswith("sure")
        )
        if boiler and len(head) <= 120 and not head.startswith("#"):
            lines.pop(0)
            continue
        break
    return "\n".join(lines).strip()


class AIClient:
    """
    Thin async client for an OpenAI-compatible REST API.
    Text: /chat/completions, speech: /audio/speech, images: /images/generations.
    """

    def __init__(self, settings, http_client: Optional[httpx.AsyncClient] = None):
        self.settings = settings
        self._owns_client = http_client is None
        self._http = http_client or httpx.AsyncClient(
            base_url=settings.OPENAI_BASE_URL.rstrip("/"),
            timeout=settings.AI_TIMEOUT_SECONDS,
        )

    def _headers(self) -> dict:
        key = (self.settings.OPENAI_API_KEY or "").strip()
        if not key:
            raise AIProviderError("OpenAI API key not configured")
        return {"Authorization": f"Bearer {key}"}

    async def _post(self, path: str, payload: dict) -> httpx.Response:
        try:
            r = await self._http.post(path, json=payload, headers=self._headers())
            r.raise_for_status()
        except httpx.HTTPStatusError as e:
            body = e.response.text[:300]
            raise AIProviderError(f"{path} returned {e.response.status_code}: {body}") from e
        except httpx.HTTPError as e:
            raise AIProviderError(f"{path} request failed: {e}") from e
        return r

    async def chat(
        self,
        system: str,
        user: str,
        *,
        json_mode: bool = False,
        model: Optional[str] = None,
        temperature: float = 0.7,
        max_tokens: int = 4096,
    ) -> str:
        payload = {
            "model": model or self.settings.TEXT_MODEL,
            "messages": [
                {"role": "system", "content": system},
                {"role": "user", "content": user},
            ],
            "temperature": temperature,
            "max_tokens": max_tokens,
        }
        if json_mode:
            payload["response_format"] = {"type": "json_object"}

        r = await self._post("/chat/completions", payload)
        try:
            content = r.json()["choices"][0]["message"]["content"]
        except (ValueError, KeyError, IndexError, TypeError) as e:
            raise AIProviderError(f"Unexpected chat response shape: {r.text[:200]}") from e
        if not content or not content.strip():
            raise AIProviderError("Empty response from text model")
        return content if json_mode else _sanitize_llm_text(content)

    async def speech(self, text: str, *, voice: str, model: Optional[str] = None) -> bytes:
        """Returns mp3 bytes."""
        payload = {
            "model": model or self.settings.TTS_MODEL,
            "input": text,
            "voice": voice,
            "response_format": "mp3",
        }
        r = await self._post("/audio/speech", payload)
        if not r.content:
            raise AIProviderError("Empty audio from speech model")
        return r.content

    async def image(self, prompt: str, *, size: Optional[str] = None) -> bytes:
        payload = {
            "model": self.settings.IMAGE_MODEL,
            "prompt": prompt,
            "n": 1,
            "size": size or self.settings.IMAGE_SIZE,
            "response_format": "b64_json",
        }
        r = await self._post("/images/generations", payload)
        try:
            item = r.json()["data"][0]
        except (ValueError, KeyError, IndexError, TypeError) as e:
            raise AIProviderError(f"Unexpected image response shape: {r.text[:200]}") from e

        if item.get("b64_json"):
            try:
                return base64.b64decode(item["b64_json"])
            except ValueError as e:
                raise AIProviderError("Image payload is not valid base64") from e
        if item.get("url"):
            try:
                img = await self._http.get(item["url"])
                img.raise_for_status()
            except httpx.HTTPError as e:
                raise AIProviderError(f"Image download failed: {e}") from e
            return img.content
        raise AIProviderError("Image response had neither b64_json nor url")

    async def aclose(self):
        if self._owns_client:
            await self._http.aclose()
