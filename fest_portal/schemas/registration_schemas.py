from typing import List, Optional
from datetime import datetime
import uuid

from pydantic import Field
from fest_portal.db.models import EventCategory, RegistrationStatus
from .camel_base_model import CamelCaseBaseModel as BaseModel


class CreateRegistrationRequest(BaseModel):
    """Coordinator registration of one or more students"""

    event_id: uuid.UUID = Field(..., description="Event ID")
    student_ids: List[uuid.UUID] = Field(
        ..., min_length=1, description="Students to register"
    )
    group_id: Optional[uuid.UUID] = Field(
        None, description="Team identifier for group events"
    )


class SelfRegistrationRequest(BaseModel):
    """Student self-registration"""

    event_id: uuid.UUID = Field(..., description="Event ID")


class UpdateRegistrationStatusRequest(BaseModel):
    status: RegistrationStatus = Field(..., description="New registration status")


class LimitCheckRequest(BaseModel):
    """Request a limit report for a set of students"""

    student_ids: List[uuid.UUID] = Field(..., description="Students to check")
    category: EventCategory = Field(..., description="Event category")


class RegistrationListQueryParams(BaseModel):
    event_id: Optional[uuid.UUID] = Field(None, description="Filter by event")
    student_id: Optional[uuid.UUID] = Field(None, description="Filter by student")
    status: Optional[RegistrationStatus] = Field(None, description="Filter by status")


class RegisteredEventItem(BaseModel):
    """An active registration counted against a category cap"""

    registration_id: uuid.UUID
    event_id: uuid.UUID
    event_name: str
    status: RegistrationStatus


class StudentLimitReport(BaseModel):
    """Per-student position against the registration cap of one category"""

    student_id: uuid.UUID = Field(..., description="Student ID")
    name: Optional[str] = Field(None, description="Student name")
    roll_number: Optional[str] = Field(None, description="Roll number")
    category: EventCategory = Field(..., description="Category evaluated")
    current_count: int = Field(..., ge=0, description="Active registrations")
    limit: int = Field(..., ge=0, description="Configured cap")
    at_limit: bool = Field(..., description="No further registration allowed")
    over_limit: bool = Field(..., description="Count already exceeds the cap")
    registrations: List[RegisteredEventItem] = Field(default_factory=list)


class RegistrationResponse(BaseModel):
    id: uuid.UUID = Field(..., description="Registration ID")
    student_id: uuid.UUID = Field(..., description="Student ID")
    event_id: uuid.UUID = Field(..., description="Event ID")
    group_id: Optional[uuid.UUID] = Field(None, description="Team identifier")
    status: RegistrationStatus = Field(..., description="Registration status")
    registered_by: Optional[uuid.UUID] = Field(None, description="Acting profile ID")
    student_name: Optional[str] = Field(None, description="Student name")
    roll_number: Optional[str] = Field(None, description="Roll number")
    event_name: Optional[str] = Field(None, description="Event name")
    created_at: Optional[datetime] = Field(None, description="Creation timestamp")
