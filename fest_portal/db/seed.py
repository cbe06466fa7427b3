from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from fest_portal.db.models import Setting
from fest_portal.utils.logging import get_logger

logger = get_logger()

DEFAULT_SETTINGS = {
    "max_on_stage_registrations": {"limit": 5},
    "max_off_stage_registrations": {"limit": 4},
    "auto_approve_registrations": {"enabled": False},
    "global_registration_open": {"enabled": True},
}


async def seed_settings(db: AsyncSession) -> int:
    """Insert default settings that are not present yet. Existing values are kept."""
    result = await db.execute(
        select(Setting.key).where(Setting.key.in_(DEFAULT_SETTINGS.keys()))
    )
    existing = set(result.scalars().all())

    created = 0
    for key, value in DEFAULT_SETTINGS.items():
        if key in existing:
            continue
        db.add(Setting(key=key, value=dict(value)))
        created += 1

    await db.commit()
    logger.info(f"Seeded {created} default settings")
    return created
