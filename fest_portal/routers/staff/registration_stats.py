from typing import Annotated
import uuid

from fastapi import APIRouter, Depends, Path, Request, status

from fest_portal.access.context import AccessContext
from fest_portal.access.gate import STAFF_ROLES, Routes
from fest_portal.middlewares.access_middleware import require_access
from fest_portal.schemas.registration_stats_schemas import (
    EventRegistrationStats,
    RegistrationStatsOverview,
    RegistrationStatsQueryParams,
)
from fest_portal.services.registration_stats_service import (
    RegistrationStatsService,
    get_registration_stats_service,
)
from fest_portal.utils.error_handlers import handle_service_error
from fest_portal.utils.errors import BusinessLogicError
from fest_portal.utils.responses import ResponseBuilder

require_staff = require_access(Routes.ANALYTICS, allowed_roles=STAFF_ROLES)

registration_stats_router = APIRouter()


@registration_stats_router.get(
    "/",
    response_model=RegistrationStatsOverview,
    status_code=status.HTTP_200_OK,
    summary="Registration statistics overview",
    description="Per-event status counts, per-year breakdown and fill. Coordinators only see the year they manage.",
)
async def get_registration_stats(
    request: Request,
    query_params: Annotated[RegistrationStatsQueryParams, Depends()],
    actor: Annotated[AccessContext, Depends(require_staff)],
    stats_service: RegistrationStatsService = Depends(get_registration_stats_service),
):
    """
    Get registration statistics across events.

    Args:
        request: FastAPI request object
        query_params: Category and active-flag filters

    Returns:
        Response containing RegistrationStatsOverview data

    Raises:
        BusinessLogicError: For service errors
    """
    try:
        overview = await stats_service.get_overview(query_params, actor)

        return ResponseBuilder.success(
            request=request,
            data=overview.model_dump(by_alias=True),
            message="Registration statistics retrieved successfully",
        )

    except (ValueError, RuntimeError) as e:
        return handle_service_error(request, e)
    except Exception:
        raise BusinessLogicError(
            message="Failed to retrieve registration statistics",
            error_code="REGISTRATION_STATS_RETRIEVAL_FAILED",
        )


@registration_stats_router.get(
    "/events/{event_id}",
    response_model=EventRegistrationStats,
    status_code=status.HTTP_200_OK,
    summary="Registration statistics for one event",
)
async def get_event_registration_stats(
    request: Request,
    event_id: Annotated[uuid.UUID, Path(description="Event ID")],
    actor: Annotated[AccessContext, Depends(require_staff)],
    stats_service: RegistrationStatsService = Depends(get_registration_stats_service),
):
    try:
        stats = await stats_service.get_event_stats(event_id, actor)

        return ResponseBuilder.success(
            request=request,
            data=stats.model_dump(by_alias=True),
            message="Event registration statistics retrieved successfully",
        )

    except (ValueError, RuntimeError) as e:
        return handle_service_error(request, e)
    except Exception:
        raise BusinessLogicError(
            message="Failed to retrieve event registration statistics",
            error_code="REGISTRATION_STATS_RETRIEVAL_FAILED",
        )
