import logging
from typing import AsyncGenerator, Optional

from sqlalchemy.exc import DBAPIError
from sqlalchemy.ext.asyncio import (AsyncEngine, AsyncSession,
                                    async_sessionmaker, create_async_engine)
from sqlalchemy.orm import declarative_base

from app.core.config import settings

logger = logging.getLogger(__name__)

Base = declarative_base()


class Database:
    """Lazily built engine + session factory shared by the whole process.

    The engine is created on first use. When the driver reports that a
    connection was invalidated the engine is disposed, and the next request
    builds a fresh one.
    """

    def __init__(self, url: str, **engine_kwargs):
        self.url = url
        self.engine_kwargs = engine_kwargs
        self._engine: Optional[AsyncEngine] = None
        self._sessionmaker: Optional[async_sessionmaker] = None

    @property
    def engine(self) -> AsyncEngine:
        if self._engine is None:
            self._engine = create_async_engine(self.url, future=True, **self.engine_kwargs)
            self._sessionmaker = async_sessionmaker(
                self._engine, class_=AsyncSession, expire_on_commit=False
            )
            logger.info("Database engine created")
        return self._engine

    def session(self) -> AsyncSession:
        if self._sessionmaker is None:
            self.engine  # builds the session factory as well
        return self._sessionmaker()

    async def create_all(self):
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    async def reset(self):
        if self._engine is not None:
            await self._engine.dispose()
        self._engine = None
        self._sessionmaker = None
        logger.warning("Database engine reset")


db = Database(settings.DATABASE_URL, pool_pre_ping=True, pool_size=5)


# Dependency: async DB session
async def get_db() -> AsyncGenerator[AsyncSession, None]:
    async with db.session() as session:
        try:
            yield session
        except DBAPIError as exc:
            await session.rollback()
            if exc.connection_invalidated:
                await db.reset()
            raise
