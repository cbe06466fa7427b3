import enum
import inspect
import uuid
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, List, Optional, Union

from fastapi import Depends, Request
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from fest_portal.config.settings import settings
from fest_portal.db.models import Profile, Student, User
from fest_portal.db.session import get_async_session
from fest_portal.services.activity_trail import (
    ActivityAction,
    ActivityTrail,
    get_activity_trail,
)
from fest_portal.utils.auth import AuthUtils
from fest_portal.utils.datetime_utils import utc_now
from fest_portal.utils.errors import AuthenticationError
from fest_portal.utils.logging import get_logger
from fest_portal.utils.request_meta import RequestMeta

logger = get_logger()


class SessionEvent(str, enum.Enum):
    SIGNED_IN = "SIGNED_IN"
    SIGNED_OUT = "SIGNED_OUT"


@dataclass(frozen=True)
class AuthSession:
    """An authenticated session. ``session_id`` is unique per sign-in."""

    user_id: uuid.UUID
    access_token: str
    session_id: str
    profile_id: Optional[uuid.UUID] = None
    email: Optional[str] = None


SessionListener = Callable[
    [SessionEvent, AuthSession, RequestMeta], Union[None, Awaitable[None]]
]


class SessionEvents:
    """Fan-out of session change notifications to subscribers"""

    def __init__(self):
        self._listeners: List[SessionListener] = []

    def subscribe(self, listener: SessionListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    async def publish(
        self, event: SessionEvent, session: AuthSession, meta: RequestMeta
    ) -> None:
        for listener in list(self._listeners):
            try:
                result = listener(event, session, meta)
                if inspect.isawaitable(result):
                    await result
            except Exception as e:
                logger.error(f"Session listener failed on {event.value}: {e}")


def audit_session_changes(trail: ActivityTrail) -> SessionListener:
    """Listener that records one login entry per session"""

    def listener(event: SessionEvent, session: AuthSession, meta: RequestMeta) -> None:
        if event == SessionEvent.SIGNED_IN:
            trail.record_login(
                session.profile_id,
                session.session_id,
                details={"email": session.email},
                meta=meta,
            )

    return listener


class IdentityService:
    """Sign-in, sign-out and credential management"""

    def __init__(
        self,
        db_session: AsyncSession,
        events: Optional[SessionEvents] = None,
        activity_trail: Optional[ActivityTrail] = None,
    ):
        self.db = db_session
        self.events = events or SessionEvents()
        self.activity_trail = activity_trail

    def on_session_change(self, listener: SessionListener) -> Callable[[], None]:
        """Subscribe to SIGNED_IN / SIGNED_OUT; returns the unsubscribe callable"""
        return self.events.subscribe(listener)

    async def resolve_login_email(self, roll_number: str) -> str:
        """Map a roll number to the login email of the linked account"""
        roll_number = roll_number.strip().upper()
        result = await self.db.execute(
            select(User.email)
            .join(Student, Student.user_id == User.id)
            .where(Student.roll_number == roll_number)
        )
        email = result.scalar_one_or_none()
        if email:
            return email
        return f"noreply-{roll_number}@{settings.STUDENT_EMAIL_DOMAIN}".lower()

    async def get_user_by_email(self, email: str) -> Optional[User]:
        result = await self.db.execute(
            select(User).where(func.lower(User.email) == email.strip().lower())
        )
        return result.scalar_one_or_none()

    async def get_user_by_id(self, user_id: Any) -> Optional[User]:
        result = await self.db.execute(select(User).where(User.id == user_id))
        return result.scalar_one_or_none()

    async def get_profile_id(self, user_id: uuid.UUID) -> Optional[uuid.UUID]:
        result = await self.db.execute(
            select(Profile.id).where(Profile.user_id == user_id)
        )
        return result.scalar_one_or_none()

    async def sign_in(
        self, identifier: str, credential: str, meta: Optional[RequestMeta] = None
    ) -> AuthSession:
        """
        Authenticate by email or roll number.

        Raises:
            AuthenticationError: INVALID_CREDENTIALS or ACCOUNT_DISABLED
        """
        identifier = identifier.strip()
        if "@" in identifier:
            email = identifier.lower()
        else:
            email = await self.resolve_login_email(identifier)

        user = await self.get_user_by_email(email)
        if not user or not AuthUtils.verify_password(credential, user.password_hash):
            raise AuthenticationError(
                "Invalid roll number, email or password", "INVALID_CREDENTIALS"
            )
        if not user.is_active:
            raise AuthenticationError("This account has been disabled", "ACCOUNT_DISABLED")

        # New sign-in invalidates tokens from earlier sessions
        user.token_version += 1
        user.last_login = utc_now()
        token, session_id = AuthUtils.generate_access_token(
            user_id=str(user.id), email=user.email, token_version=user.token_version
        )
        await self.db.commit()

        session = AuthSession(
            user_id=user.id,
            access_token=token,
            session_id=session_id,
            profile_id=await self.get_profile_id(user.id),
            email=user.email,
        )
        logger.info(f"User {user.id} signed in")

        await self.events.publish(SessionEvent.SIGNED_IN, session, meta or RequestMeta())
        return session

    async def verify(self, token: str) -> Optional[AuthSession]:
        """Decode ``token`` and check it has not been invalidated by a later sign-in or sign-out"""
        payload = AuthUtils.verify_access_token(token)
        if not payload:
            return None

        try:
            user_id = uuid.UUID(payload["sub"])
        except ValueError:
            return None

        user = await self.get_user_by_id(user_id)
        if not user or not user.is_active:
            return None
        if user.token_version != payload.get("token_version"):
            return None

        return AuthSession(
            user_id=user.id,
            access_token=token,
            session_id=payload["jti"],
            profile_id=await self.get_profile_id(user.id),
            email=user.email,
        )

    async def sign_out(
        self, session: AuthSession, meta: Optional[RequestMeta] = None
    ) -> bool:
        """Record the logout while the session is valid, then invalidate it"""
        meta = meta or RequestMeta()
        if self.activity_trail is not None:
            await self.activity_trail.record_logout(
                session.profile_id, details={"email": session.email}, meta=meta
            )

        user = await self.get_user_by_id(session.user_id)
        if not user:
            return False

        user.token_version += 1
        await self.db.commit()
        logger.info(f"User {user.id} signed out")

        await self.events.publish(SessionEvent.SIGNED_OUT, session, meta)
        return True

    async def change_password(
        self,
        user_id: uuid.UUID,
        current_password: str,
        new_password: str,
        meta: Optional[RequestMeta] = None,
    ) -> None:
        """Replace the password and clear the first-login flag"""
        user = await self.get_user_by_id(user_id)
        if not user:
            raise ValueError("USER_NOT_FOUND")
        if not AuthUtils.verify_password(current_password, user.password_hash):
            raise ValueError("INVALID_CURRENT_PASSWORD")
        if current_password == new_password:
            raise ValueError("PASSWORD_UNCHANGED")

        user.password_hash = AuthUtils.hash_password(new_password)

        result = await self.db.execute(select(Profile).where(Profile.user_id == user_id))
        profile = result.scalar_one_or_none()
        was_first_login = bool(profile and profile.is_first_login)
        if profile is not None:
            profile.is_first_login = False
        await self.db.commit()

        logger.info(f"User {user_id} changed their password")
        if self.activity_trail is not None:
            self.activity_trail.record(
                profile.id if profile else None,
                ActivityAction.PASSWORD_CHANGED,
                {"first_login": was_first_login},
                meta,
            )


def get_session_events(request: Request) -> SessionEvents:
    return request.app.state.session_events


def get_identity_service(
    db: AsyncSession = Depends(get_async_session),
    events: SessionEvents = Depends(get_session_events),
    activity_trail: ActivityTrail = Depends(get_activity_trail),
) -> IdentityService:
    return IdentityService(db, events, activity_trail)
