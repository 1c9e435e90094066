"""Async HTTP client for the LingAI JSON API."""
import logging
from typing import Any, Dict, Optional

import httpx

logger = logging.getLogger(__name__)


class LingAIClient:
    def __init__(
        self,
        base_url: str = "http://localhost:8000",
        *,
        cookies: Optional[Dict[str, str]] = None,
        timeout: float = 10.0,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self._owns_client = http_client is None
        self._http = http_client or httpx.AsyncClient(base_url=base_url, cookies=cookies, timeout=timeout)

    async def _get(self, path: str) -> Dict[str, Any]:
        r = await self._http.get(path)
        r.raise_for_status()
        return r.json()

    async def get_lesson(self, lesson_id: int) -> Dict[str, Any]:
        return (await self._get(f"/api/lessons/{lesson_id}"))["lesson"]

    async def get_sentence(self, sentence_id: int) -> Dict[str, Any]:
        return (await self._get(f"/api/lessons/sentences/{sentence_id}"))["sentence"]

    async def get_job(self, job_id: str) -> Dict[str, Any]:
        return (await self._get(f"/api/jobs/{job_id}"))["job"]

    async def aclose(self):
        if self._owns_client:
            await self._http.aclose()

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        await self.aclose()
