from typing import Annotated
import uuid

from fastapi import APIRouter, Depends, Path, Request, status

from fest_portal.access.context import AccessContext
from fest_portal.access.gate import STAFF_ROLES, Routes
from fest_portal.middlewares.access_middleware import require_access
from fest_portal.schemas.registration_schemas import (
    CreateRegistrationRequest,
    LimitCheckRequest,
    RegistrationListQueryParams,
    RegistrationResponse,
    UpdateRegistrationStatusRequest,
)
from fest_portal.services.registration_limit_service import (
    RegistrationLimitService,
    get_registration_limit_service,
)
from fest_portal.services.registration_service import (
    RegistrationService,
    get_registration_service,
)
from fest_portal.utils.error_handlers import handle_service_error
from fest_portal.utils.errors import BusinessLogicError
from fest_portal.utils.responses import ResponseBuilder

require_staff = require_access(Routes.REGISTRATIONS, allowed_roles=STAFF_ROLES)

registrations_router = APIRouter()


@registrations_router.get(
    "/",
    response_model=None,
    status_code=status.HTTP_200_OK,
    summary="List registrations",
    description="Filter by event, student or status. Coordinators only see students of the year they manage.",
)
async def get_all_registrations(
    request: Request,
    query_params: Annotated[RegistrationListQueryParams, Depends()],
    actor: Annotated[AccessContext, Depends(require_staff)],
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
    response_model=None,
    status_code=status.HTTP_201_CREATED,
    summary="Register students for an event",
    description="Register one or more students. Rejected as a whole when any student is at the category cap.",
)
async def register_students(
    request: Request,
    registration_data: CreateRegistrationRequest,
    actor: Annotated[AccessContext, Depends(require_staff)],
    registration_service: RegistrationService = Depends(get_registration_service),
):
    try:
        registrations = await registration_service.register_students(
            registration_data, actor
        )

        return ResponseBuilder.success(
            request=request,
            data=[r.model_dump(by_alias=True) for r in registrations],
            message=f"Registered {len(registrations)} students",
            status_code=status.HTTP_201_CREATED,
        )

    except BusinessLogicError:
        raise
    except (ValueError, RuntimeError) as e:
        return handle_service_error(request, e)
    except Exception:
        raise BusinessLogicError(
            message="Failed to register students",
            error_code="REGISTRATION_CREATION_FAILED",
        )


@registrations_router.post(
    "/limits",
    response_model=None,
    status_code=status.HTTP_200_OK,
    summary="Check registration limits",
    description="Per-student count, cap and registered events for one category",
)
async def check_registration_limits(
    request: Request,
    limit_request: LimitCheckRequest,
    actor: Annotated[AccessContext, Depends(require_staff)],
    limit_service: RegistrationLimitService = Depends(get_registration_limit_service),
):
    try:
        reports = await limit_service.evaluate(
            limit_request.student_ids, limit_request.category
        )

        return ResponseBuilder.success(
            request=request,
            data=[report.model_dump(by_alias=True) for report in reports],
            meta={"can_register": limit_service.can_register(reports)},
            message="Registration limits evaluated",
        )

    except (ValueError, RuntimeError) as e:
        return handle_service_error(request, e)
    except Exception:
        raise BusinessLogicError(
            message="Failed to evaluate registration limits",
            error_code="LIMIT_CHECK_FAILED",
        )


@registrations_router.patch(
    "/{registration_id}/status",
    response_model=RegistrationResponse,
    status_code=status.HTTP_200_OK,
    summary="Approve or reject a registration",
    description="Only pending registrations can change status",
)
async def update_registration_status(
    request: Request,
    status_data: UpdateRegistrationStatusRequest,
    registration_id: Annotated[uuid.UUID, Path(description="Registration ID")],
    actor: Annotated[AccessContext, Depends(require_staff)],
    registration_service: RegistrationService = Depends(get_registration_service),
):
    try:
        registration = await registration_service.update_status(
            registration_id, status_data.status, actor
        )

        return ResponseBuilder.success(
            request=request,
            data=registration.model_dump(by_alias=True),
            message=f"Registration {registration.status.value}",
        )

    except (ValueError, RuntimeError) as e:
        return handle_service_error(request, e)
    except Exception:
        raise BusinessLogicError(
            message="Failed to update registration status",
            error_code="REGISTRATION_UPDATE_FAILED",
        )


@registrations_router.delete(
    "/{registration_id}",
    status_code=status.HTTP_200_OK,
    summary="Delete a registration",
)
async def delete_registration(
    request: Request,
    registration_id: Annotated[uuid.UUID, Path(description="Registration ID")],
    actor: Annotated[AccessContext, Depends(require_staff)],
    registration_service: RegistrationService = Depends(get_registration_service),
):
    try:
        await registration_service.delete_registration(registration_id, actor)

        return ResponseBuilder.success(
            request=request, message="Registration deleted successfully"
        )

    except (ValueError, RuntimeError) as e:
        return handle_service_error(request, e)
    except Exception:
        raise BusinessLogicError(
            message="Failed to delete registration",
            error_code="REGISTRATION_DELETION_FAILED",
        )
