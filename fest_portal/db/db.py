import asyncio
from typing import Callable

from sqlalchemy.ext.asyncio import AsyncSession

from .models import Base
from .seed import seed_settings
from .session import engine, AsyncSessionLocal

from fest_portal.utils.logging import get_logger

logger = get_logger()


async def create_tables():
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Created all tables.")


async def drop_tables():
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    logger.info("Dropped all tables.")


async def init_db(session_factory: Callable[[], AsyncSession] = AsyncSessionLocal):
    """Create missing tables and default settings on the factory's database"""
    async with session_factory() as db:
        conn = await db.connection()
        await conn.run_sync(Base.metadata.create_all)
        await db.commit()
        await seed_settings(db)


async def seed_db():
    """Seed the database with initial data"""
    async with AsyncSessionLocal() as db:
        await seed_settings(db)


async def reset_db():
    logger.info("Resetting database...")
    await drop_tables()
    await create_tables()
    await seed_db()
    logger.info("Database reset complete.")


if __name__ == "__main__":
    asyncio.run(reset_db())
