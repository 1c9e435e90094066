# lingai/services/container.py
import logging
from dataclasses import dataclass
from typing import Optional

import httpx
from fastapi import Request

from ..background import drain
from ..database import Database
from ..llm_client import AIClient
from ..settings.config import Settings
from ..storage import BlobStore, build_blob_store

logger = logging.getLogger(__name__)


@dataclass
class Services:
    """Process-wide collaborators, built once and closed on shutdown."""
    settings: Settings
    db: Database
    ai: AIClient
    blobs: BlobStore

    async def startup(self):
        # dev and tests only; deployments migrate with Alembic
        if self.settings.RUN_DB_CREATE_ALL:
            await self.db.create_all()
        logger.info("Services started (blob backend=%s)", self.settings.BLOB_BACKEND)

    async def shutdown(self, *, timeout: float = 5.0):
        await drain(timeout=timeout, cancel=True)
        await self.ai.aclose()
        await self.db.dispose()
        logger.info("Services stopped")


def build_services(
    settings: Settings,
    *,
    ai_http_client: Optional[httpx.AsyncClient] = None,
    blobs: Optional[BlobStore] = None,
) -> Services:
    return Services(
        settings=settings,
        db=Database(settings.DATABASE_URL),
        ai=AIClient(settings, http_client=ai_http_client),
        blobs=blobs or build_blob_store(settings),
    )


def get_services(request: Request) -> Services:
    return request.app.state.services
