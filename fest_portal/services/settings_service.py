from typing import Any, Dict, Optional

from fastapi import Depends
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from fest_portal.db.models import EventCategory, Setting
from fest_portal.db.session import get_async_session
from fest_portal.schemas.settings_schemas import (
    RegistrationSettingsResponse,
    UpdateRegistrationSettingsRequest,
)
from fest_portal.utils.logging import get_logger

logger = get_logger()

CATEGORY_LIMIT_KEYS = {
    EventCategory.ON_STAGE: "max_on_stage_registrations",
    EventCategory.OFF_STAGE: "max_off_stage_registrations",
}
AUTO_APPROVE_KEY = "auto_approve_registrations"
GLOBAL_REGISTRATION_KEY = "global_registration_open"


def parse_limit(value: Any) -> int:
    """
    Read ``{"limit": N}``. Anything missing or malformed gives 0, which
    blocks every registration in the category rather than allowing all.
    """
    if not isinstance(value, dict):
        return 0
    limit = value.get("limit")
    if isinstance(limit, bool) or not isinstance(limit, int) or limit < 0:
        return 0
    return limit


def parse_flag(value: Any, default: bool) -> bool:
    if not isinstance(value, dict) or not isinstance(value.get("enabled"), bool):
        return default
    return value["enabled"]


class SettingsService:
    """Key/value settings store"""

    def __init__(self, db_session: AsyncSession):
        self.db = db_session

    async def get_setting(self, key: str) -> Optional[Setting]:
        result = await self.db.execute(select(Setting).where(Setting.key == key))
        return result.scalar_one_or_none()

    async def get_value(self, key: str) -> Optional[Dict[str, Any]]:
        setting = await self.get_setting(key)
        return setting.value if setting else None

    async def get_category_limit(self, category: EventCategory) -> int:
        key = CATEGORY_LIMIT_KEYS[EventCategory(category)]
        value = await self.get_value(key)
        limit = parse_limit(value)
        if value is None:
            logger.warning(f"Setting {key} is missing, treating the limit as 0")
        return limit

    async def is_auto_approve_enabled(self) -> bool:
        return parse_flag(await self.get_value(AUTO_APPROVE_KEY), default=False)

    async def is_registration_open(self) -> bool:
        return parse_flag(await self.get_value(GLOBAL_REGISTRATION_KEY), default=True)

    async def get_registration_settings(self) -> RegistrationSettingsResponse:
        return RegistrationSettingsResponse(
            max_on_stage_registrations=await self.get_category_limit(
                EventCategory.ON_STAGE
            ),
            max_off_stage_registrations=await self.get_category_limit(
                EventCategory.OFF_STAGE
            ),
            auto_approve_registrations=await self.is_auto_approve_enabled(),
            global_registration_open=await self.is_registration_open(),
        )

    async def update_registration_settings(
        self, data: UpdateRegistrationSettingsRequest, updated_by: Optional[Any] = None
    ) -> Dict[str, Dict[str, Any]]:
        """
        Store the provided settings.

        Returns:
            Mapping of each changed key to ``{"old": ..., "new": ...}``
        """
        new_values: Dict[str, Dict[str, Any]] = {}
        if data.max_on_stage_registrations is not None:
            new_values[CATEGORY_LIMIT_KEYS[EventCategory.ON_STAGE]] = {
                "limit": data.max_on_stage_registrations
            }
        if data.max_off_stage_registrations is not None:
            new_values[CATEGORY_LIMIT_KEYS[EventCategory.OFF_STAGE]] = {
                "limit": data.max_off_stage_registrations
            }
        if data.auto_approve_registrations is not None:
            new_values[AUTO_APPROVE_KEY] = {"enabled": data.auto_approve_registrations}
        if data.global_registration_open is not None:
            new_values[GLOBAL_REGISTRATION_KEY] = {
                "enabled": data.global_registration_open
            }

        changes: Dict[str, Dict[str, Any]] = {}
        for key, value in new_values.items():
            setting = await self.get_setting(key)
            if setting is None:
                self.db.add(Setting(key=key, value=value, updated_by=updated_by))
                changes[key] = {"old": None, "new": value}
            elif setting.value != value:
                changes[key] = {"old": setting.value, "new": value}
                setting.value = value
                setting.updated_by = updated_by

        await self.db.commit()
        if changes:
            logger.info(f"Updated settings: {', '.join(sorted(changes))}")
        return changes


def get_settings_service(
    db: AsyncSession = Depends(get_async_session),
) -> SettingsService:
    return SettingsService(db)
