from typing import AsyncGenerator

from fastapi import Request
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from fest_portal.config.settings import settings

engine = create_async_engine(
    str(settings.DATABASE_URL),
    pool_pre_ping=True,
    echo=False,
)

AsyncSessionLocal = async_sessionmaker(
    bind=engine, class_=AsyncSession, expire_on_commit=False
)


async def get_async_session(request: Request) -> AsyncGenerator[AsyncSession, None]:
    """Dependency to get async database session from the application's factory"""
    session_factory = getattr(request.app.state, "session_factory", AsyncSessionLocal)
    async with session_factory() as db:
        try:
            yield db
        except Exception:
            await db.rollback()
            raise
