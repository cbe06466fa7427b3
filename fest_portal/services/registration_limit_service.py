"""
Registration limit evaluation.

Each student may hold at most a configured number of active (pending or
approved) registrations per event category. ``evaluate`` reports where each
student stands; ``can_register`` turns the reports into a yes/no answer.
Rejected registrations never count, so rejecting one frees the slot.
"""

import uuid
from typing import Dict, Iterable, List, Sequence, Union

from fastapi import Depends
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from fest_portal.db.models import (
    ACTIVE_REGISTRATION_STATUSES,
    Event,
    EventCategory,
    Registration,
    Student,
)
from fest_portal.db.session import get_async_session
from fest_portal.schemas.registration_schemas import (
    RegisteredEventItem,
    StudentLimitReport,
)
from fest_portal.services.settings_service import SettingsService
from fest_portal.utils.logging import get_logger

logger = get_logger()

StudentId = Union[str, uuid.UUID]


def _as_uuid(value: StudentId) -> uuid.UUID:
    if isinstance(value, uuid.UUID):
        return value
    try:
        return uuid.UUID(str(value))
    except ValueError:
        raise ValueError(f"STUDENT_NOT_FOUND: {value}") from None


def build_report(
    student_id: uuid.UUID,
    category: EventCategory,
    current_count: int,
    limit: int,
    **extra,
) -> StudentLimitReport:
    return StudentLimitReport(
        student_id=student_id,
        category=category,
        current_count=current_count,
        limit=limit,
        at_limit=current_count >= limit,
        over_limit=current_count > limit,
        **extra,
    )


class RegistrationLimitService:
    def __init__(self, db_session: AsyncSession):
        self.db = db_session
        self.settings_service = SettingsService(db_session)

    async def get_limit(self, category: EventCategory) -> int:
        return await self.settings_service.get_category_limit(category)

    async def evaluate(
        self, student_ids: Sequence[StudentId], category: EventCategory
    ) -> List[StudentLimitReport]:
        """
        One report per distinct student, in request order.

        Raises:
            ValueError: STUDENT_NOT_FOUND when an id does not name a student
        """
        category = EventCategory(category)
        ids: List[uuid.UUID] = []
        for value in student_ids:
            sid = _as_uuid(value)
            if sid not in ids:
                ids.append(sid)
        if not ids:
            return []

        limit = await self.get_limit(category)

        students_result = await self.db.execute(
            select(Student).where(Student.id.in_(ids))
        )
        students = {s.id: s for s in students_result.scalars().all()}
        missing = [str(sid) for sid in ids if sid not in students]
        if missing:
            raise ValueError(f"STUDENT_NOT_FOUND: {', '.join(missing)}")

        registrations: Dict[uuid.UUID, List[RegisteredEventItem]] = {
            sid: [] for sid in ids
        }
        rows = await self.db.execute(
            select(
                Registration.id,
                Registration.student_id,
                Registration.status,
                Event.id.label("event_id"),
                Event.name.label("event_name"),
            )
            .select_from(Registration)
            .join(Event, Registration.event_id == Event.id)
            .where(
                Registration.student_id.in_(ids),
                Registration.status.in_(ACTIVE_REGISTRATION_STATUSES),
                Event.category == category,
            )
            .order_by(Registration.created_at)
        )
        for row in rows:
            registrations[row.student_id].append(
                RegisteredEventItem(
                    registration_id=row.id,
                    event_id=row.event_id,
                    event_name=row.event_name,
                    status=row.status,
                )
            )

        reports = []
        for sid in ids:
            student = students[sid]
            reports.append(
                build_report(
                    sid,
                    category,
                    len(registrations[sid]),
                    limit,
                    name=student.name,
                    roll_number=student.roll_number,
                    registrations=registrations[sid],
                )
            )
        return reports

    @staticmethod
    def can_register(reports: Iterable[StudentLimitReport]) -> bool:
        """True when no student in the batch is at (or over) the cap"""
        return not any(report.at_limit for report in reports)

    @staticmethod
    def blocked(reports: Iterable[StudentLimitReport]) -> List[StudentLimitReport]:
        return [report for report in reports if report.at_limit]

    async def find_over_limit(
        self, student_ids: Sequence[uuid.UUID], category: EventCategory
    ) -> List[uuid.UUID]:
        """Students whose active count exceeds the cap, counted inside the current transaction"""
        limit = await self.get_limit(category)
        result = await self.db.execute(
            select(Registration.student_id, func.count(Registration.id))
            .select_from(Registration)
            .join(Event, Registration.event_id == Event.id)
            .where(
                Registration.student_id.in_(list(student_ids)),
                Registration.status.in_(ACTIVE_REGISTRATION_STATUSES),
                Event.category == EventCategory(category),
            )
            .group_by(Registration.student_id)
        )
        return [student_id for student_id, count in result.all() if count > limit]


def get_registration_limit_service(
    db: AsyncSession = Depends(get_async_session),
) -> RegistrationLimitService:
    return RegistrationLimitService(db)
