from typing import Annotated
import uuid

from fastapi import APIRouter, Depends, Path, Request, status

from fest_portal.access.context import AccessContext
from fest_portal.access.gate import Routes
from fest_portal.db.models import Role
from fest_portal.middlewares.access_middleware import require_access
from fest_portal.schemas.user_schemas import (
    ProvisionAccountRequest,
    ProvisionStudentAccountRequest,
    UpdateRolesRequest,
    UserResponse,
)
from fest_portal.services.user_service import UserService, get_user_service
from fest_portal.utils.error_handlers import handle_service_error
from fest_portal.utils.errors import BusinessLogicError
from fest_portal.utils.responses import ResponseBuilder

require_admin = require_access(
    Routes.SETTINGS, allowed_roles=(Role.ADMIN,), acting_roles=(Role.ADMIN,)
)

users_router = APIRouter()


@users_router.get(
    "/",
    response_model=None,
    status_code=status.HTTP_200_OK,
    summary="List accounts",
)
async def get_all_users(
    request: Request,
    actor: Annotated[AccessContext, Depends(require_admin)],
    user_service: UserService = Depends(get_user_service),
):
    try:
        users = await user_service.list_users()

        return ResponseBuilder.success(
            request=request,
            data=[user.model_dump(by_alias=True) for user in users],
            message=f"Retrieved {len(users)} users",
        )

    except Exception:
        raise BusinessLogicError(
            message="Failed to retrieve users", error_code="USERS_RETRIEVAL_FAILED"
        )


@users_router.post(
    "/",
    response_model=UserResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Provision an account",
    description="Create a login and its profile. The initial password must be changed at first login.",
)
async def provision_account(
    request: Request,
    account_data: ProvisionAccountRequest,
    actor: Annotated[AccessContext, Depends(require_admin)],
    user_service: UserService = Depends(get_user_service),
):
    try:
        user = await user_service.provision_account(
            account_data, actor.profile_id, actor.meta
        )

        return ResponseBuilder.success(
            request=request,
            data=user.model_dump(by_alias=True),
            message="Account created successfully",
            status_code=status.HTTP_201_CREATED,
        )

    except (ValueError, RuntimeError) as e:
        return handle_service_error(request, e)
    except Exception:
        raise BusinessLogicError(
            message="Failed to create account", error_code="USER_CREATION_FAILED"
        )


@users_router.post(
    "/students/{student_id}",
    response_model=UserResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Provision a student login",
    description="Create a student login with the system email derived from the roll number",
)
async def provision_student_account(
    request: Request,
    account_data: ProvisionStudentAccountRequest,
    student_id: Annotated[uuid.UUID, Path(description="Student ID")],
    actor: Annotated[AccessContext, Depends(require_admin)],
    user_service: UserService = Depends(get_user_service),
):
    try:
        user = await user_service.provision_student_account(
            student_id, account_data.initial_password, actor.profile_id, actor.meta
        )

        return ResponseBuilder.success(
            request=request,
            data=user.model_dump(by_alias=True),
            message="Student account created successfully",
            status_code=status.HTTP_201_CREATED,
        )

    except (ValueError, RuntimeError) as e:
        return handle_service_error(request, e)
    except Exception:
        raise BusinessLogicError(
            message="Failed to create account", error_code="USER_CREATION_FAILED"
        )


@users_router.put(
    "/{profile_id}/roles",
    response_model=UserResponse,
    status_code=status.HTTP_200_OK,
    summary="Replace the roles of an account",
)
async def update_roles(
    request: Request,
    roles_data: UpdateRolesRequest,
    profile_id: Annotated[uuid.UUID, Path(description="Profile ID")],
    actor: Annotated[AccessContext, Depends(require_admin)],
    user_service: UserService = Depends(get_user_service),
):
    try:
        user = await user_service.update_roles(
            profile_id, roles_data.roles, actor.profile_id, actor.meta
        )

        return ResponseBuilder.success(
            request=request,
            data=user.model_dump(by_alias=True),
            message="Roles updated successfully",
        )

    except (ValueError, RuntimeError) as e:
        return handle_service_error(request, e)
    except Exception:
        raise BusinessLogicError(
            message="Failed to update roles", error_code="USER_UPDATE_FAILED"
        )
