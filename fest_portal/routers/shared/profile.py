from typing import Annotated

from fastapi import APIRouter, Depends, Request, status

from fest_portal.access.context import AccessContext
from fest_portal.access.gate import Routes
from fest_portal.middlewares.access_middleware import require_access
from fest_portal.schemas.auth_schemas import CompleteProfileRequest, ProfileResponse
from fest_portal.services.profile_service import ProfileService, get_profile_service
from fest_portal.utils.error_handlers import handle_service_error
from fest_portal.utils.errors import BusinessLogicError
from fest_portal.utils.responses import ResponseBuilder

profile_router = APIRouter()


@profile_router.post(
    "/complete",
    response_model=ProfileResponse,
    status_code=status.HTTP_200_OK,
    summary="Complete profile setup",
    description="Fill in the required profile fields. Students must change the initial password first.",
)
async def complete_profile(
    request: Request,
    profile_data: CompleteProfileRequest,
    actor: Annotated[AccessContext, Depends(require_access(Routes.SETUP_PROFILE))],
    profile_service: ProfileService = Depends(get_profile_service),
):
    try:
        profile = await profile_service.complete_profile(
            actor.profile, profile_data, actor.meta
        )
        profile_response = ProfileService.build_profile_response(
            profile, actor.active_role
        )

        return ResponseBuilder.success(
            request=request,
            data=profile_response.model_dump(by_alias=True),
            message="Profile completed successfully",
        )

    except (ValueError, RuntimeError) as e:
        return handle_service_error(request, e)
    except Exception:
        raise BusinessLogicError(
            message="Failed to complete profile", error_code="PROFILE_UPDATE_FAILED"
        )
