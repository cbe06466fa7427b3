from typing import Optional
from datetime import datetime
import uuid

from pydantic import Field
from fest_portal.db.models import EventCategory, EventMode, RegistrationMethod
from .camel_base_model import CamelCaseBaseModel as BaseModel


class CreateEventRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=200, description="Event name")
    description: Optional[str] = Field(None, description="Event description")
    category: EventCategory = Field(..., description="On-stage or off-stage")
    mode: EventMode = Field(EventMode.INDIVIDUAL, description="Individual or group")
    registration_method: RegistrationMethod = Field(
        RegistrationMethod.COORDINATOR, description="Who registers participants"
    )
    registration_deadline: Optional[datetime] = Field(
        None, description="Registration closes after this instant"
    )
    max_participants: Optional[int] = Field(
        None, gt=0, description="Per academic year participant cap"
    )
    is_active: bool = Field(True, description="Whether the event accepts registrations")


class UpdateEventRequest(BaseModel):
    """Partial update; omitted fields are left unchanged"""

    name: Optional[str] = Field(None, min_length=1, max_length=200)
    description: Optional[str] = None
    category: Optional[EventCategory] = None
    mode: Optional[EventMode] = None
    registration_method: Optional[RegistrationMethod] = None
    registration_deadline: Optional[datetime] = None
    max_participants: Optional[int] = Field(None, gt=0)
    is_active: Optional[bool] = None


class EventListQueryParams(BaseModel):
    category: Optional[EventCategory] = Field(None, description="Filter by category")
    is_active: Optional[bool] = Field(None, description="Filter by active flag")


class EventResponse(BaseModel):
    id: uuid.UUID = Field(..., description="Event ID")
    name: str = Field(..., description="Event name")
    description: Optional[str] = Field(None, description="Event description")
    category: EventCategory = Field(..., description="Category")
    mode: EventMode = Field(..., description="Mode")
    registration_method: RegistrationMethod = Field(..., description="Registration method")
    registration_deadline: Optional[datetime] = Field(None, description="Deadline")
    max_participants: Optional[int] = Field(None, description="Per year cap")
    is_active: bool = Field(..., description="Active flag")
    is_open: bool = Field(..., description="Currently accepting registrations")
