from typing import Annotated

from fastapi import APIRouter, Depends, Request, status

from fest_portal.access.gate import Routes
from fest_portal.db.models import Role
from fest_portal.middlewares.access_middleware import require_access
from fest_portal.schemas.activity_log_schemas import ActivityLogQueryParams
from fest_portal.services.activity_log_service import (
    ActivityLogService,
    get_activity_log_service,
)
from fest_portal.utils.errors import BusinessLogicError
from fest_portal.utils.responses import ResponseBuilder

activity_logs_router = APIRouter(
    dependencies=[
        Depends(
            require_access(
                Routes.ACTIVITY_LOGS,
                allowed_roles=(Role.ADMIN,),
                acting_roles=(Role.ADMIN,),
            )
        )
    ]
)


@activity_logs_router.get(
    "/",
    response_model=None,
    status_code=status.HTTP_200_OK,
    summary="List recent activity",
    description="Paged audit entries, newest first, optionally filtered by action or acting user",
)
async def get_activity_logs(
    request: Request,
    query_params: Annotated[ActivityLogQueryParams, Depends()],
    activity_log_service: ActivityLogService = Depends(get_activity_log_service),
):
    try:
        logs, total = await activity_log_service.list_recent(query_params)

        return ResponseBuilder.paginated(
            request=request,
            data=[log.model_dump(by_alias=True) for log in logs],
            page=query_params.page,
            per_page=query_params.per_page,
            total=total,
            message=f"Retrieved {len(logs)} of {total} activity log entries",
        )

    except Exception:
        raise BusinessLogicError(
            message="Failed to retrieve activity logs",
            error_code="ACTIVITY_LOGS_RETRIEVAL_FAILED",
        )
