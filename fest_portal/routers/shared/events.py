from typing import Annotated
import uuid

from fastapi import APIRouter, Depends, Path, Request, status

from fest_portal.access.gate import Routes
from fest_portal.middlewares.access_middleware import require_access
from fest_portal.schemas.event_schemas import EventListQueryParams, EventResponse
from fest_portal.services.event_service import EventService, get_event_service
from fest_portal.utils.error_handlers import handle_service_error
from fest_portal.utils.errors import BusinessLogicError
from fest_portal.utils.responses import ResponseBuilder

events_router = APIRouter(dependencies=[Depends(require_access(Routes.EVENTS))])


@events_router.get(
    "/",
    response_model=None,
    status_code=status.HTTP_200_OK,
    summary="List events",
    description="List events with their derived open/closed state. Filter by category or active flag.",
)
async def get_all_events(
    request: Request,
    query_params: Annotated[EventListQueryParams, Depends()],
    event_service: EventService = Depends(get_event_service),
):
    try:
        events = await event_service.list_events(query_params)

        return ResponseBuilder.success(
            request=request,
            data=[event.model_dump(by_alias=True) for event in events],
            message=f"Retrieved {len(events)} events",
        )

    except (ValueError, RuntimeError) as e:
        return handle_service_error(request, e)
    except Exception:
        raise BusinessLogicError(
            message="Failed to retrieve events", error_code="EVENTS_RETRIEVAL_FAILED"
        )


@events_router.get(
    "/{event_id}",
    response_model=EventResponse,
    status_code=status.HTTP_200_OK,
    summary="Get an event",
)
async def get_event(
    request: Request,
    event_id: Annotated[uuid.UUID, Path(description="Event ID")],
    event_service: EventService = Depends(get_event_service),
):
    try:
        event = await event_service.get_event(event_id)

        return ResponseBuilder.success(
            request=request,
            data=event.model_dump(by_alias=True),
            message="Event retrieved",
        )

    except (ValueError, RuntimeError) as e:
        return handle_service_error(request, e)
    except Exception:
        raise BusinessLogicError(
            message="Failed to retrieve event", error_code="EVENTS_RETRIEVAL_FAILED"
        )
