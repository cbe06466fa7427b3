from typing import Annotated

from fastapi import APIRouter, Depends, Request, status

from fest_portal.access.context import AccessContext
from fest_portal.access.gate import Routes
from fest_portal.db.models import Role
from fest_portal.middlewares.access_middleware import require_access
from fest_portal.schemas.settings_schemas import (
    RegistrationSettingsResponse,
    UpdateRegistrationSettingsRequest,
)
from fest_portal.services.activity_trail import (
    ActivityAction,
    ActivityTrail,
    get_activity_trail,
)
from fest_portal.services.settings_service import (
    GLOBAL_REGISTRATION_KEY,
    SettingsService,
    get_settings_service,
)
from fest_portal.utils.error_handlers import handle_service_error
from fest_portal.utils.errors import BusinessLogicError
from fest_portal.utils.responses import ResponseBuilder

require_admin = require_access(
    Routes.SETTINGS, allowed_roles=(Role.ADMIN,), acting_roles=(Role.ADMIN,)
)

settings_router = APIRouter()


@settings_router.put(
    "/registration",
    response_model=RegistrationSettingsResponse,
    status_code=status.HTTP_200_OK,
    summary="Update registration settings",
    description="Partially update category caps, auto-approval and the global registration switch",
)
async def update_registration_settings(
    request: Request,
    settings_data: UpdateRegistrationSettingsRequest,
    actor: Annotated[AccessContext, Depends(require_admin)],
    settings_service: SettingsService = Depends(get_settings_service),
    activity_trail: ActivityTrail = Depends(get_activity_trail),
):
    try:
        changes = await settings_service.update_registration_settings(
            settings_data, updated_by=actor.profile_id
        )

        if changes:
            activity_trail.record(
                actor.profile_id,
                ActivityAction.SETTINGS_UPDATED,
                {"changes": changes},
                actor.meta,
            )
        if GLOBAL_REGISTRATION_KEY in changes:
            activity_trail.record(
                actor.profile_id,
                ActivityAction.GLOBAL_REGISTRATION_STATUS_CHANGED,
                {"enabled": changes[GLOBAL_REGISTRATION_KEY]["new"]["enabled"]},
                actor.meta,
            )

        registration_settings = await settings_service.get_registration_settings()
        return ResponseBuilder.success(
            request=request,
            data=registration_settings.model_dump(by_alias=True),
            meta={"changed": sorted(changes)},
            message="Registration settings updated",
        )

    except (ValueError, RuntimeError) as e:
        return handle_service_error(request, e)
    except Exception:
        raise BusinessLogicError(
            message="Failed to update settings", error_code="SETTINGS_UPDATE_FAILED"
        )
