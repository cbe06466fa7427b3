from typing import Any, Optional

from fastapi import Depends
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from fest_portal.access.roles import coordinator_year, display_label, normalize_roles
from fest_portal.db.models import Profile, Role
from fest_portal.db.session import get_async_session
from fest_portal.schemas.auth_schemas import CompleteProfileRequest, ProfileResponse
from fest_portal.services.activity_trail import (
    ActivityAction,
    ActivityTrail,
    get_activity_trail,
)
from fest_portal.utils.logging import get_logger
from fest_portal.utils.request_meta import RequestMeta

logger = get_logger()


class ProfileService:
    def __init__(
        self, db_session: AsyncSession, activity_trail: Optional[ActivityTrail] = None
    ):
        self.db = db_session
        self.activity_trail = activity_trail

    async def get_profile_by_user_id(self, user_id: Any) -> Optional[Profile]:
        """Always reads the stored row; role changes apply on the next request"""
        result = await self.db.execute(
            select(Profile)
            .where(Profile.user_id == user_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def complete_profile(
        self,
        profile: Profile,
        data: CompleteProfileRequest,
        meta: Optional[RequestMeta] = None,
    ) -> Profile:
        profile.full_name = data.full_name.strip()
        profile.email = str(data.email).lower()
        profile.phone = data.phone.strip()
        profile.profile_completed = True
        await self.db.commit()

        logger.info(f"Profile {profile.id} completed")
        if self.activity_trail is not None:
            self.activity_trail.record(
                profile.id,
                ActivityAction.PROFILE_COMPLETED,
                {"full_name": profile.full_name},
                meta,
            )
        return profile

    @staticmethod
    def build_profile_response(
        profile: Profile, active_role: Optional[Role] = None
    ) -> ProfileResponse:
        roles = normalize_roles(profile.roles)
        active = active_role or (roles[0] if roles else None)
        year = coordinator_year(active) if active else None
        return ProfileResponse(
            id=profile.id,
            user_id=profile.user_id,
            full_name=profile.full_name,
            email=profile.email,
            phone=profile.phone,
            roles=[role.value for role in roles],
            role_label=display_label(roles),
            active_role=active.value if active else None,
            coordinator_year=year.value if year else None,
            is_first_login=profile.is_first_login,
            profile_completed=profile.profile_completed,
        )


def get_profile_service(
    db: AsyncSession = Depends(get_async_session),
    activity_trail: ActivityTrail = Depends(get_activity_trail),
) -> ProfileService:
    return ProfileService(db, activity_trail)
