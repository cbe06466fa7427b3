from datetime import datetime
from typing import Any, List, Optional

from fastapi import Depends
from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from fest_portal.access.context import AccessContext
from fest_portal.db.models import Event, Registration
from fest_portal.db.session import get_async_session
from fest_portal.schemas.event_schemas import (
    CreateEventRequest,
    EventListQueryParams,
    EventResponse,
    UpdateEventRequest,
)
from fest_portal.services.activity_trail import (
    ActivityAction,
    ActivityTrail,
    get_activity_trail,
)
from fest_portal.utils.datetime_utils import to_utc, utc_now
from fest_portal.utils.logging import get_logger

logger = get_logger()

# Fields an update may clear by sending null
NULLABLE_EVENT_FIELDS = frozenset(
    {"description", "registration_deadline", "max_participants"}
)


def is_event_open(event: Event, now: Optional[datetime] = None) -> bool:
    """Open iff active and the deadline is unset or still ahead"""
    if not event.is_active:
        return False
    if event.registration_deadline is None:
        return True
    return to_utc(event.registration_deadline) > to_utc(now or utc_now())


class EventService:
    def __init__(
        self, db_session: AsyncSession, activity_trail: Optional[ActivityTrail] = None
    ):
        self.db = db_session
        self.activity_trail = activity_trail

    async def get_event_by_id(self, event_id: Any) -> Optional[Event]:
        result = await self.db.execute(select(Event).where(Event.id == event_id))
        return result.scalar_one_or_none()

    async def get_event(self, event_id: Any) -> EventResponse:
        event = await self.get_event_by_id(event_id)
        if not event:
            raise ValueError("EVENT_NOT_FOUND")
        return self._create_event_response(event)

    async def list_events(self, query_params: EventListQueryParams) -> List[EventResponse]:
        query = select(Event)
        if query_params.category is not None:
            query = query.where(Event.category == query_params.category)
        if query_params.is_active is not None:
            query = query.where(Event.is_active == query_params.is_active)

        result = await self.db.execute(query.order_by(Event.name))
        now = utc_now()
        return [
            self._create_event_response(event, now) for event in result.scalars().all()
        ]

    async def create_event(
        self, data: CreateEventRequest, actor: AccessContext
    ) -> EventResponse:
        event = Event(**data.model_dump(), created_by=actor.profile_id)
        self.db.add(event)
        await self.db.commit()
        await self.db.refresh(event)

        logger.info(f"Created event {event.name}")
        self._audit(actor, ActivityAction.EVENT_CREATED, event)
        return self._create_event_response(event)

    async def update_event(
        self, event_id: Any, data: UpdateEventRequest, actor: AccessContext
    ) -> EventResponse:
        event = await self.get_event_by_id(event_id)
        if not event:
            raise ValueError("EVENT_NOT_FOUND")

        changes = {
            key: value
            for key, value in data.model_dump(exclude_unset=True).items()
            if value is not None or key in NULLABLE_EVENT_FIELDS
        }
        for field_name, value in changes.items():
            setattr(event, field_name, value)
        await self.db.commit()
        await self.db.refresh(event)

        logger.info(f"Updated event {event.name}")
        self._audit(
            actor, ActivityAction.EVENT_UPDATED, event, changed=sorted(changes)
        )
        return self._create_event_response(event)

    async def delete_event(self, event_id: Any, actor: AccessContext) -> None:
        event = await self.get_event_by_id(event_id)
        if not event:
            raise ValueError("EVENT_NOT_FOUND")

        await self.db.execute(delete(Registration).where(Registration.event_id == event.id))
        await self.db.execute(delete(Event).where(Event.id == event.id))
        await self.db.commit()

        logger.info(f"Deleted event {event.name}")
        self._audit(actor, ActivityAction.EVENT_DELETED, event)

    def _audit(self, actor: AccessContext, action: ActivityAction, event: Event, **extra):
        if self.activity_trail is None:
            return
        details = {
            "event_id": str(event.id),
            "event_name": event.name,
            "category": event.category.value,
            **extra,
        }
        self.activity_trail.record(actor.profile_id, action, details, actor.meta)

    @staticmethod
    def _create_event_response(
        event: Event, now: Optional[datetime] = None
    ) -> EventResponse:
        return EventResponse(
            id=event.id,
            name=event.name,
            description=event.description,
            category=event.category,
            mode=event.mode,
            registration_method=event.registration_method,
            registration_deadline=event.registration_deadline,
            max_participants=event.max_participants,
            is_active=event.is_active,
            is_open=is_event_open(event, now),
        )


def get_event_service(
    db: AsyncSession = Depends(get_async_session),
    activity_trail: ActivityTrail = Depends(get_activity_trail),
) -> EventService:
    return EventService(db, activity_trail)
