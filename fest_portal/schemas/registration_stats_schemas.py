from typing import List, Optional
import uuid

from pydantic import Field
from fest_portal.db.models import AcademicYear, EventCategory, EventMode
from .camel_base_model import CamelCaseBaseModel as BaseModel


class RegistrationStatsQueryParams(BaseModel):
    category: Optional[EventCategory] = Field(None, description="Filter by category")
    is_active: Optional[bool] = Field(
        True, description="Filter by active flag; null includes every event"
    )


class StatusCounts(BaseModel):
    total: int = Field(0, ge=0, description="Registrations in any status")
    pending: int = Field(0, ge=0)
    approved: int = Field(0, ge=0)
    rejected: int = Field(0, ge=0)

    @property
    def active(self) -> int:
        return self.pending + self.approved


class YearRegistrationStats(StatusCounts):
    """Counts for the students of one academic year"""

    academic_year: AcademicYear = Field(..., description="Academic year")
    team_count: Optional[int] = Field(
        None, description="Teams holding a place; group events only"
    )
    fill_percent: Optional[int] = Field(
        None,
        description="Pending and approved registrations against the per-year cap",
    )


class EventRegistrationStats(StatusCounts):
    event_id: uuid.UUID = Field(..., description="Event ID")
    event_name: str = Field(..., description="Event name")
    category: EventCategory = Field(..., description="On-stage or off-stage")
    mode: EventMode = Field(..., description="Individual or group")
    max_participants: Optional[int] = Field(None, description="Per-year cap")
    years: List[YearRegistrationStats] = Field(default_factory=list)


class RegistrationStatsOverview(StatusCounts):
    """Totals across the listed events, within the caller's year scope"""

    academic_year: Optional[AcademicYear] = Field(
        None, description="Year the figures are limited to; null for every year"
    )
    event_count: int = Field(0, ge=0, description="Events listed")
    average_per_event: int = Field(
        0, ge=0, description="Pending and approved registrations per event, rounded"
    )
    events_without_registrations: List[uuid.UUID] = Field(default_factory=list)
    near_capacity: List[uuid.UUID] = Field(
        default_factory=list,
        description="Events where some year is at least 80% full",
    )
    events: List[EventRegistrationStats] = Field(default_factory=list)
