from typing import Callable, Optional
import uuid

from fastapi import Request, Response
from sqlalchemy.exc import SQLAlchemyError
from starlette.middleware.base import BaseHTTPMiddleware

from fest_portal.config.settings import settings
from fest_portal.services.identity_service import AuthSession, IdentityService
from fest_portal.utils.cookies import ACCESS_TOKEN_COOKIE, CookieUtils
from fest_portal.utils.errors import AuthenticationError
from fest_portal.utils.logging import get_logger
from fest_portal.utils.responses import ResponseBuilder

logger = get_logger()


class AuthState:
    """Authentication state to be stored in request.state"""

    def __init__(
        self,
        user_id: uuid.UUID,
        session_id: str,
        access_token: str,
        profile_id: Optional[uuid.UUID] = None,
        email: Optional[str] = None,
        is_authenticated: bool = True,
    ):
        self.user_id = user_id
        self.session_id = session_id
        self.access_token = access_token
        self.profile_id = profile_id
        self.email = email
        self.is_authenticated = is_authenticated

    @classmethod
    def from_session(cls, session: AuthSession) -> "AuthState":
        return cls(
            user_id=session.user_id,
            session_id=session.session_id,
            access_token=session.access_token,
            profile_id=session.profile_id,
            email=session.email,
        )

    def to_session(self) -> AuthSession:
        return AuthSession(
            user_id=self.user_id,
            access_token=self.access_token,
            session_id=self.session_id,
            profile_id=self.profile_id,
            email=self.email,
        )


class AuthMiddleware(BaseHTTPMiddleware):
    """Bearer token authentication (Authorization header or access_token cookie)"""

    # Paths that don't require authentication
    EXCLUDED_PATHS = {
        "/health",
        "/docs",
        "/redoc",
        "/openapi.json",
        f"{settings.API_PREFIX}/shared/auth/login",
        f"{settings.API_PREFIX}/shared/health",
    }

    def __init__(self, app, excluded_paths: Optional[set] = None):
        super().__init__(app)
        self.excluded_paths = set(self.EXCLUDED_PATHS)
        if excluded_paths:
            self.excluded_paths.update(excluded_paths)

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        # Skip authentication for excluded paths and CORS preflight
        if self._is_excluded_path(request.url.path) or request.method == "OPTIONS":
            return await call_next(request)

        try:
            auth_state = await self._authenticate(request)
        except (SQLAlchemyError, OSError) as e:
            # The token may be fine; the session store could not be reached
            logger.error(f"Session check unavailable: {e}")
            return ResponseBuilder.error(
                request=request,
                message="Your session could not be checked right now, please retry",
                error_code="SESSION_CHECK_UNAVAILABLE",
                status_code=503,
                meta={"error_type": "ACCESS_BLOCKED", "retryable": True},
            )
        except Exception as e:
            logger.error(f"Authentication failed: {e}")
            return ResponseBuilder.error(
                request=request,
                message="Authentication failed",
                error_code="AUTH_ERROR",
                status_code=401,
            )

        if not auth_state:
            return ResponseBuilder.error(
                request=request,
                message="Invalid or expired authentication",
                error_code="UNAUTHORIZED",
                status_code=401,
            )

        request.state.auth = auth_state
        return await call_next(request)

    def _is_excluded_path(self, path: str) -> bool:
        return any(path.startswith(excluded) for excluded in self.excluded_paths)

    async def _authenticate(self, request: Request) -> Optional[AuthState]:
        token = CookieUtils.extract_bearer_token(
            request.headers.get("authorization")
        ) or request.cookies.get(ACCESS_TOKEN_COOKIE)
        if not token:
            return None

        session_factory = request.app.state.session_factory
        async with session_factory() as db:
            session = await IdentityService(db).verify(token)

        return AuthState.from_session(session) if session else None


# Dependency for getting current user from request state
def get_current_user(request: Request) -> AuthState:
    """Dependency to get current authenticated user from request state"""
    auth_state = getattr(request.state, "auth", None)

    if not auth_state or not auth_state.is_authenticated:
        raise AuthenticationError("Not authenticated", "NOT_AUTHENTICATED")

    return auth_state
