from typing import Annotated
import uuid

from fastapi import APIRouter, Depends, Path, Request, status

from fest_portal.access.context import AccessContext
from fest_portal.access.gate import Routes
from fest_portal.db.models import Role
from fest_portal.middlewares.access_middleware import require_access
from fest_portal.schemas.event_schemas import (
    CreateEventRequest,
    EventResponse,
    UpdateEventRequest,
)
from fest_portal.services.event_service import EventService, get_event_service
from fest_portal.utils.error_handlers import handle_service_error
from fest_portal.utils.errors import BusinessLogicError
from fest_portal.utils.responses import ResponseBuilder

EVENT_MANAGER_ROLES = (Role.ADMIN, Role.EVENT_MANAGER)

require_event_manager = require_access(
    Routes.EVENTS, allowed_roles=EVENT_MANAGER_ROLES, acting_roles=EVENT_MANAGER_ROLES
)

events_router = APIRouter()


@events_router.post(
    "/",
    response_model=EventResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create a new event",
    description="Create an event with its category, mode and registration method",
)
async def create_event(
    request: Request,
    event_data: CreateEventRequest,
    actor: Annotated[AccessContext, Depends(require_event_manager)],
    event_service: EventService = Depends(get_event_service),
):
    try:
        event_response = await event_service.create_event(event_data, actor)

        return ResponseBuilder.success(
            request=request,
            data=event_response.model_dump(by_alias=True),
            message="Event created successfully",
            status_code=status.HTTP_201_CREATED,
        )

    except (ValueError, RuntimeError) as e:
        return handle_service_error(request, e)
    except Exception:
        raise BusinessLogicError(
            message="Failed to create event", error_code="EVENT_CREATION_FAILED"
        )


@events_router.put(
    "/{event_id}",
    response_model=EventResponse,
    status_code=status.HTTP_200_OK,
    summary="Update an existing event",
    description="Partially update an event. Sending null clears the description, deadline or participant cap.",
)
async def update_event(
    request: Request,
    event_data: UpdateEventRequest,
    event_id: Annotated[uuid.UUID, Path(description="Event ID to update")],
    actor: Annotated[AccessContext, Depends(require_event_manager)],
    event_service: EventService = Depends(get_event_service),
):
    try:
        event_response = await event_service.update_event(event_id, event_data, actor)

        return ResponseBuilder.success(
            request=request,
            data=event_response.model_dump(by_alias=True),
            message="Event updated successfully",
        )

    except (ValueError, RuntimeError) as e:
        return handle_service_error(request, e)
    except Exception:
        raise BusinessLogicError(
            message="Failed to update event", error_code="EVENT_UPDATE_FAILED"
        )


@events_router.delete(
    "/{event_id}",
    status_code=status.HTTP_200_OK,
    summary="Delete an event",
    description="Delete an event together with its registrations",
)
async def delete_event(
    request: Request,
    event_id: Annotated[uuid.UUID, Path(description="Event ID to delete")],
    actor: Annotated[AccessContext, Depends(require_event_manager)],
    event_service: EventService = Depends(get_event_service),
):
    try:
        await event_service.delete_event(event_id, actor)

        return ResponseBuilder.success(
            request=request, message="Event deleted successfully"
        )

    except (ValueError, RuntimeError) as e:
        return handle_service_error(request, e)
    except Exception:
        raise BusinessLogicError(
            message="Failed to delete event", error_code="EVENT_DELETION_FAILED"
        )
