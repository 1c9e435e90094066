from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.orm import sessionmaker, declarative_base
from fastapi import Request
import logging

logger = logging.getLogger(__name__)

Base = declarative_base()


def normalize_url(raw_url: str) -> str:
    if raw_url.startswith("sqlite:///"):
        # if someone provided a sync URL by mistake, upgrade it to async
        return raw_url.replace("sqlite:///", "sqlite+aiosqlite:///", 1)
    return raw_url


def _enable_sqlite_foreign_keys(dbapi_connection, connection_record):
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


class Database:
    """Owns the async engine and the session factory for one process."""

    def __init__(self, url: str, *, echo: bool = False):
        self.url = normalize_url(url)
        self.engine = create_async_engine(self.url, echo=echo, future=True)
        if self.url.startswith("sqlite"):
            event.listen(self.engine.sync_engine, "connect", _enable_sqlite_foreign_keys)
        self.session_maker = sessionmaker(
            self.engine, class_=AsyncSession, expire_on_commit=False, autoflush=False
        )

    def session(self) -> AsyncSession:
        return self.session_maker()

    async def create_all(self):
        from . import models  # noqa: F401  registers every table on Base.metadata

        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info("Database tables ensured at %s", self.url)

    async def dispose(self):
        await self.engine.dispose()


async def get_db(request: Request):
    database: Database = request.app.state.services.db
    async with database.session() as session:
        yield session
