from typing import Annotated

from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from fest_portal.db.session import get_async_session
from fest_portal.middlewares.access_middleware import (
    load_gate,
    raise_for_decision,
    resolve_request_active_role,
)
from fest_portal.middlewares.auth_middleware import AuthState, get_current_user
from fest_portal.access.gate import GateState, Routes
from fest_portal.schemas.auth_schemas import (
    ChangePasswordRequest,
    LoginRequest,
    LoginResponse,
)
from fest_portal.services.identity_service import (
    IdentityService,
    get_identity_service,
)
from fest_portal.services.profile_service import ProfileService
from fest_portal.utils.cookies import CookieUtils
from fest_portal.utils.error_handlers import handle_service_error
from fest_portal.utils.errors import AuthenticationError
from fest_portal.utils.logging import get_logger
from fest_portal.utils.request_meta import get_request_meta
from fest_portal.utils.responses import ResponseBuilder

logger = get_logger()

auth_router = APIRouter()


@auth_router.post("/login")
async def login(
    login_request: LoginRequest,
    request: Request,
    identity_service: IdentityService = Depends(get_identity_service),
):
    """
    Sign in with a roll number or an email address.

    Returns the bearer token and also sets it as an HTTP-only cookie.
    """
    try:
        session = await identity_service.sign_in(
            login_request.identifier,
            login_request.password,
            get_request_meta(request),
        )

        login_data = LoginResponse(
            access_token=session.access_token,
            user_id=session.user_id,
            session_id=session.session_id,
        )
        response = ResponseBuilder.success(
            request=request,
            data=login_data.model_dump(by_alias=True),
            message="Login successful",
        )
        CookieUtils.set_auth_cookie(response, session.access_token)
        return response

    except AuthenticationError:
        raise
    except Exception as e:
        logger.error(f"Login failed: {e}")
        raise AuthenticationError("Login failed")


@auth_router.post("/logout")
async def logout(
    request: Request,
    current_user: Annotated[AuthState, Depends(get_current_user)],
    identity_service: IdentityService = Depends(get_identity_service),
):
    """Record the logout and invalidate every session of the user"""
    await identity_service.sign_out(current_user.to_session(), get_request_meta(request))

    response = ResponseBuilder.success(request=request, message="Logout successful")
    CookieUtils.clear_auth_cookie(response)
    return response


@auth_router.get("/me")
async def get_current_user_info(
    request: Request,
    current_user: Annotated[AuthState, Depends(get_current_user)],
    db: Annotated[AsyncSession, Depends(get_async_session)],
):
    """
    Current profile with its ordered roles and the resolved active role.

    Available during onboarding, so a student who still has to change the
    initial password can load their own profile.
    """
    gate = await load_gate(request, db)
    if gate.state != GateState.READY:
        raise_for_decision(gate.evaluate(Routes.PROFILE))

    active_role = resolve_request_active_role(gate, request)
    profile_data = ProfileService.build_profile_response(gate.profile, active_role)

    return ResponseBuilder.success(
        request=request,
        data=profile_data.model_dump(by_alias=True),
        message="User information retrieved",
    )


@auth_router.post("/change-password")
async def change_password(
    request: Request,
    password_request: ChangePasswordRequest,
    current_user: Annotated[AuthState, Depends(get_current_user)],
    identity_service: IdentityService = Depends(get_identity_service),
):
    """Change the password; completes the forced first-login change"""
    try:
        await identity_service.change_password(
            current_user.user_id,
            password_request.current_password,
            password_request.new_password,
            get_request_meta(request),
        )
        return ResponseBuilder.success(
            request=request, message="Password changed successfully"
        )

    except (ValueError, RuntimeError) as e:
        return handle_service_error(request, e)
