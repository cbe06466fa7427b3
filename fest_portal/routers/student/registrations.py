from typing import Annotated

from fastapi import APIRouter, Depends, Request, status

from fest_portal.access.context import AccessContext
from fest_portal.access.gate import Routes
from fest_portal.db.models import Role
from fest_portal.middlewares.access_middleware import require_access
from fest_portal.schemas.registration_schemas import (
    RegistrationListQueryParams,
    RegistrationResponse,
    SelfRegistrationRequest,
)
from fest_portal.services.registration_service import (
    RegistrationService,
    get_registration_service,
)
from fest_portal.utils.error_handlers import handle_service_error
from fest_portal.utils.errors import BusinessLogicError
from fest_portal.utils.responses import ResponseBuilder

require_student = require_access(
    Routes.MY_REGISTRATIONS,
    allowed_roles=(Role.STUDENT,),
    acting_roles=(Role.STUDENT,),
)

registrations_router = APIRouter()


@registrations_router.get(
    "/",
    response_model=None,
    status_code=status.HTTP_200_OK,
    summary="List my registrations",
)
async def get_my_registrations(
    request: Request,
    query_params: Annotated[RegistrationListQueryParams, Depends()],
    actor: Annotated[AccessContext, Depends(require_student)],
    registration_service: RegistrationService = Depends(get_registration_service),
):
    try:
        registrations = await registration_service.list_registrations(
            query_params, actor
        )

        return ResponseBuilder.success(
            request=request,
            data=[r.model_dump(by_alias=True) for r in registrations],
            message=f"Retrieved {len(registrations)} registrations",
        )

    except (ValueError, RuntimeError) as e:
        return handle_service_error(request, e)
    except Exception:
        raise BusinessLogicError(
            message="Failed to retrieve registrations",
            error_code="REGISTRATIONS_RETRIEVAL_FAILED",
        )


@registrations_router.post(
    "/",
    response_model=RegistrationResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Register myself for an event",
    description="Only events registered by students accept self-registration",
)
async def register_self(
    request: Request,
    registration_data: SelfRegistrationRequest,
    actor: Annotated[AccessContext, Depends(require_student)],
    registration_service: RegistrationService = Depends(get_registration_service),
):
    try:
        registration = await registration_service.register_self(
            registration_data.event_id, actor
        )

        return ResponseBuilder.success(
            request=request,
            data=registration.model_dump(by_alias=True),
            message=f"Registered for {registration.event_name}",
            status_code=status.HTTP_201_CREATED,
        )

    except BusinessLogicError:
        raise
    except (ValueError, RuntimeError) as e:
        return handle_service_error(request, e)
    except Exception:
        raise BusinessLogicError(
            message="Failed to register for event",
            error_code="REGISTRATION_CREATION_FAILED",
        )
