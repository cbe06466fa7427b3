from typing import Any, List, Optional, Sequence, Union

from fastapi import Depends
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from fest_portal.access.roles import normalize_roles
from fest_portal.config.settings import settings
from fest_portal.db.models import Profile, Role, Student, User
from fest_portal.db.session import get_async_session
from fest_portal.schemas.user_schemas import ProvisionAccountRequest, UserResponse
from fest_portal.services.activity_trail import (
    ActivityAction,
    ActivityTrail,
    get_activity_trail,
)
from fest_portal.utils.auth import AuthUtils
from fest_portal.utils.logging import get_logger
from fest_portal.utils.request_meta import RequestMeta

logger = get_logger()


def validate_roles(roles: Sequence[Union[str, Role]]) -> List[Role]:
    """Parse and de-duplicate; an account must hold at least one role"""
    parsed = normalize_roles(list(roles))
    if not parsed:
        raise ValueError("ROLES_REQUIRED")
    return parsed


class UserService:
    """Account provisioning and role administration"""

    def __init__(
        self, db_session: AsyncSession, activity_trail: Optional[ActivityTrail] = None
    ):
        self.db = db_session
        self.activity_trail = activity_trail

    async def email_exists(self, email: str) -> bool:
        result = await self.db.execute(
            select(User.id).where(func.lower(User.email) == email.lower())
        )
        return result.scalar_one_or_none() is not None

    async def get_student(self, student_id: Any) -> Student:
        result = await self.db.execute(select(Student).where(Student.id == student_id))
        student = result.scalar_one_or_none()
        if not student:
            raise ValueError("STUDENT_NOT_FOUND")
        return student

    async def provision_account(
        self,
        data: ProvisionAccountRequest,
        actor_profile_id: Optional[Any] = None,
        meta: Optional[RequestMeta] = None,
    ) -> UserResponse:
        """
        Create a login and its profile.

        Raises:
            ValueError: INVALID_ROLE, ROLES_REQUIRED, EMAIL_EXISTS,
                STUDENT_NOT_FOUND, STUDENT_ALREADY_LINKED
        """
        roles = validate_roles(data.roles)
        email = str(data.email).lower()

        if await self.email_exists(email):
            raise ValueError(f"EMAIL_EXISTS: {email}")

        student = None
        if data.student_id is not None:
            student = await self.get_student(data.student_id)
            if student.user_id is not None:
                raise ValueError(f"STUDENT_ALREADY_LINKED: {student.roll_number}")

        try:
            user = User(
                email=email,
                password_hash=AuthUtils.hash_password(data.initial_password),
            )
            self.db.add(user)
            await self.db.flush()

            profile = Profile(
                user_id=user.id,
                full_name=data.full_name,
                email=email,
                roles=[role.value for role in roles],
                is_first_login=True,
                profile_completed=False,
            )
            self.db.add(profile)
            if student is not None:
                student.user_id = user.id

            await self.db.commit()
        except IntegrityError:
            await self.db.rollback()
            raise ValueError(f"EMAIL_EXISTS: {email}")

        logger.info(f"Provisioned account {email} with roles {profile.roles}")
        if self.activity_trail is not None:
            self.activity_trail.record(
                actor_profile_id,
                ActivityAction.USER_CREATED,
                {
                    "email": email,
                    "roles": profile.roles,
                    "student_id": str(student.id) if student else None,
                },
                meta,
            )
        return self._create_user_response(user, profile)

    async def provision_student_account(
        self,
        student_id: Any,
        initial_password: str,
        actor_profile_id: Optional[Any] = None,
        meta: Optional[RequestMeta] = None,
    ) -> UserResponse:
        """Student login with the system email derived from the roll number"""
        student = await self.get_student(student_id)
        return await self.provision_account(
            ProvisionAccountRequest(
                email=f"noreply-{student.roll_number}@{settings.STUDENT_EMAIL_DOMAIN}".lower(),
                full_name=student.name,
                roles=[Role.STUDENT.value],
                initial_password=initial_password,
                student_id=student.id,
            ),
            actor_profile_id=actor_profile_id,
            meta=meta,
        )

    async def update_roles(
        self,
        profile_id: Any,
        roles: Sequence[Union[str, Role]],
        actor_profile_id: Optional[Any] = None,
        meta: Optional[RequestMeta] = None,
    ) -> UserResponse:
        new_roles = validate_roles(roles)

        result = await self.db.execute(select(Profile).where(Profile.id == profile_id))
        profile = result.scalar_one_or_none()
        if not profile:
            raise ValueError("PROFILE_NOT_FOUND")

        old_roles = list(profile.roles or [])
        if (
            actor_profile_id is not None
            and str(profile.id) == str(actor_profile_id)
            and Role.ADMIN.value in old_roles
            and Role.ADMIN not in new_roles
        ):
            raise ValueError("CANNOT_REMOVE_OWN_ADMIN_ROLE")

        profile.roles = [role.value for role in new_roles]
        await self.db.commit()

        logger.info(f"Roles of profile {profile.id} changed from {old_roles} to {profile.roles}")
        if self.activity_trail is not None:
            self.activity_trail.record(
                actor_profile_id,
                ActivityAction.USER_ROLES_UPDATED,
                {"profile_id": str(profile.id), "old_roles": old_roles, "new_roles": profile.roles},
                meta,
            )

        user_result = await self.db.execute(select(User).where(User.id == profile.user_id))
        return self._create_user_response(user_result.scalar_one(), profile)

    async def list_users(self) -> List[UserResponse]:
        result = await self.db.execute(
            select(User, Profile)
            .join(Profile, Profile.user_id == User.id)
            .order_by(Profile.full_name)
        )
        return [self._create_user_response(user, profile) for user, profile in result.all()]

    def _create_user_response(self, user: User, profile: Profile) -> UserResponse:
        return UserResponse(
            user_id=user.id,
            profile_id=profile.id,
            email=user.email,
            full_name=profile.full_name,
            roles=list(profile.roles or []),
            is_active=user.is_active,
            is_first_login=profile.is_first_login,
            profile_completed=profile.profile_completed,
        )


def get_user_service(
    db: AsyncSession = Depends(get_async_session),
    activity_trail: ActivityTrail = Depends(get_activity_trail),
) -> UserService:
    return UserService(db, activity_trail)
