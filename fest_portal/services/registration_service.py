"""
Registration workflow.

Every rule is checked before anything is written, in this order: event open,
registration method, coordinator scope, duplicates, event capacity, category
cap. The cap is checked again after the new rows are flushed, inside the same
transaction, which narrows the window in which two concurrent submissions can
both pass the first check. It does not close it; the cap is a soft limit.
"""

import uuid
from typing import Any, Dict, List, Optional, Sequence

from fastapi import Depends
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import joinedload

from fest_portal.access.context import AccessContext
from fest_portal.access.roles import year_label
from fest_portal.db.models import (
    ACTIVE_REGISTRATION_STATUSES,
    Event,
    EventMode,
    Registration,
    RegistrationMethod,
    RegistrationStatus,
    Role,
    Student,
)
from fest_portal.db.session import get_async_session
from fest_portal.schemas.registration_schemas import (
    CreateRegistrationRequest,
    RegistrationListQueryParams,
    RegistrationResponse,
)
from fest_portal.services.activity_trail import (
    ActivityAction,
    ActivityTrail,
    get_activity_trail,
)
from fest_portal.services.event_service import is_event_open
from fest_portal.services.registration_limit_service import RegistrationLimitService
from fest_portal.services.settings_service import SettingsService
from fest_portal.services.student_service import StudentService
from fest_portal.utils.errors import BusinessLogicError
from fest_portal.utils.logging import get_logger

logger = get_logger()

ALLOWED_TRANSITIONS = {
    RegistrationStatus.PENDING: frozenset(
        {RegistrationStatus.APPROVED, RegistrationStatus.REJECTED}
    ),
}


def limit_error(reports) -> BusinessLogicError:
    names = ", ".join(r.roll_number or str(r.student_id) for r in reports)
    return BusinessLogicError(
        message=f"Registration limit reached for: {names}",
        error_code="REGISTRATION_LIMIT_REACHED",
        errors=[report.model_dump(by_alias=True) for report in reports],
    )


class RegistrationService:
    def __init__(
        self, db_session: AsyncSession, activity_trail: Optional[ActivityTrail] = None
    ):
        self.db = db_session
        self.activity_trail = activity_trail
        self.limit_service = RegistrationLimitService(db_session)
        self.settings_service = SettingsService(db_session)

    # Creation
    async def register_students(
        self, data: CreateRegistrationRequest, actor: AccessContext
    ) -> List[RegistrationResponse]:
        """Coordinator or administrator registers one or more students"""
        return await self._register(
            data.event_id, data.student_ids, actor, group_id=data.group_id
        )

    async def register_self(
        self, event_id: Any, actor: AccessContext
    ) -> RegistrationResponse:
        """A student registers themselves"""
        result = await self.db.execute(
            select(Student).where(Student.user_id == actor.user_id)
        )
        student = result.scalar_one_or_none()
        if not student:
            raise ValueError("STUDENT_RECORD_NOT_LINKED")

        responses = await self._register(
            event_id, [student.id], actor, self_service=True
        )
        return responses[0]

    async def _register(
        self,
        event_id: Any,
        student_ids: Sequence[Any],
        actor: AccessContext,
        group_id: Optional[uuid.UUID] = None,
        self_service: bool = False,
    ) -> List[RegistrationResponse]:
        ids: List[uuid.UUID] = []
        for sid in student_ids:
            if sid not in ids:
                ids.append(sid)
        if not ids:
            raise ValueError("NO_STUDENTS_SELECTED")

        result = await self.db.execute(select(Event).where(Event.id == event_id))
        event = result.scalar_one_or_none()
        if not event:
            raise ValueError("EVENT_NOT_FOUND")

        if not is_event_open(event) or not await self.settings_service.is_registration_open():
            raise ValueError(f"REGISTRATION_CLOSED: {event.name}")

        self._check_registration_method(event, actor, self_service)

        students = await self._load_students(ids)
        if not self_service:
            for student in students:
                StudentService.ensure_in_scope(actor, student.academic_year)

        await self._check_duplicates(event, students)

        if event.mode == EventMode.GROUP and group_id is None:
            group_id = uuid.uuid4()
        await self._check_capacity(event, students, group_id)

        reports = await self.limit_service.evaluate(ids, event.category)
        if not self.limit_service.can_register(reports):
            raise limit_error(self.limit_service.blocked(reports))

        auto_approve = await self.settings_service.is_auto_approve_enabled()
        status = RegistrationStatus.APPROVED if auto_approve else RegistrationStatus.PENDING
        registrations = [
            Registration(
                student_id=student.id,
                event_id=event.id,
                group_id=group_id if event.mode == EventMode.GROUP else None,
                registered_by=actor.profile_id,
                status=status,
            )
            for student in students
        ]

        # Rollback expires loaded rows
        category = event.category
        roll_numbers = ", ".join(s.roll_number for s in students)

        try:
            self.db.add_all(registrations)
            await self.db.flush()
        except IntegrityError:
            await self.db.rollback()
            raise ValueError(f"DUPLICATE_REGISTRATION: {roll_numbers}")

        over_limit = await self.limit_service.find_over_limit(ids, category)
        if over_limit:
            await self.db.rollback()
            logger.warning(
                f"Concurrent registrations pushed {len(over_limit)} student(s) over the {category.value} cap"
            )
            raise limit_error(await self.limit_service.evaluate(over_limit, category))

        await self.db.commit()
        for registration in registrations:
            await self.db.refresh(registration)

        logger.info(
            f"Registered {len(registrations)} student(s) for {event.name} as {status.value}"
        )
        self._audit_creation(event, students, registrations, actor, self_service)

        by_id = {student.id: student for student in students}
        return [
            self._create_registration_response(r, by_id[r.student_id], event)
            for r in registrations
        ]

    def _check_registration_method(
        self, event: Event, actor: AccessContext, self_service: bool
    ) -> None:
        if event.registration_method == RegistrationMethod.STUDENT:
            allowed = self_service and actor.acting_as(Role.STUDENT)
        else:
            allowed = not self_service and (
                actor.acting_as(Role.ADMIN) or actor.managed_year is not None
            )
        if not allowed:
            raise ValueError(
                f"REGISTRATION_METHOD_MISMATCH: {event.name} is {event.registration_method.value}-registered"
            )

    async def _load_students(self, ids: List[uuid.UUID]) -> List[Student]:
        result = await self.db.execute(select(Student).where(Student.id.in_(ids)))
        found = {student.id: student for student in result.scalars().all()}
        missing = [str(sid) for sid in ids if sid not in found]
        if missing:
            raise ValueError(f"STUDENT_NOT_FOUND: {', '.join(missing)}")
        return [found[sid] for sid in ids]

    async def _check_duplicates(self, event: Event, students: List[Student]) -> None:
        result = await self.db.execute(
            select(Registration.student_id).where(
                Registration.event_id == event.id,
                Registration.student_id.in_([s.id for s in students]),
                Registration.status.in_(ACTIVE_REGISTRATION_STATUSES),
            )
        )
        already = set(result.scalars().all())
        if already:
            rolls = [s.roll_number for s in students if s.id in already]
            raise ValueError(f"DUPLICATE_REGISTRATION: {', '.join(rolls)}")

    async def _check_capacity(
        self, event: Event, students: List[Student], group_id: Optional[uuid.UUID]
    ) -> None:
        years = []
        for student in students:
            if student.academic_year not in years:
                years.append(student.academic_year)

        def active_in_year(column, year):
            return (
                select(column)
                .select_from(Registration)
                .join(Student, Registration.student_id == Student.id)
                .where(
                    Registration.event_id == event.id,
                    Registration.status.in_(ACTIVE_REGISTRATION_STATUSES),
                    Student.academic_year == year,
                )
            )

        for year in years:
            if event.mode == EventMode.GROUP:
                # One team per academic year; joining the existing team is allowed
                result = await self.db.execute(
                    active_in_year(Registration.group_id, year).distinct()
                )
                other_groups = [g for g in result.scalars().all() if g != group_id]
                if other_groups:
                    raise ValueError(
                        f"EVENT_CAPACITY_REACHED: {year_label(year)} already has a team in {event.name}"
                    )
            elif event.max_participants:
                result = await self.db.execute(
                    active_in_year(func.count(Registration.id), year)
                )
                current = result.scalar_one()
                incoming = sum(1 for s in students if s.academic_year == year)
                if current + incoming > event.max_participants:
                    raise ValueError(
                        f"EVENT_CAPACITY_REACHED: {year_label(year)} has {max(event.max_participants - current, 0)} place(s) left in {event.name}"
                    )

    def _audit_creation(
        self,
        event: Event,
        students: List[Student],
        registrations: List[Registration],
        actor: AccessContext,
        self_service: bool,
    ) -> None:
        if self.activity_trail is None:
            return
        action = (
            ActivityAction.SELF_REGISTRATION
            if self_service
            else ActivityAction.STUDENTS_REGISTERED
        )
        self.activity_trail.record(
            actor.profile_id,
            action,
            {
                "event_id": str(event.id),
                "event_name": event.name,
                "category": event.category.value,
                "student_ids": [str(s.id) for s in students],
                "roll_numbers": [s.roll_number for s in students],
                "status": registrations[0].status.value,
                "active_role": actor.active_role.value,
            },
            actor.meta,
        )

    # Workflow
    async def get_registration(self, registration_id: Any) -> Optional[Registration]:
        result = await self.db.execute(
            select(Registration)
            .options(joinedload(Registration.student), joinedload(Registration.event))
            .where(Registration.id == registration_id)
        )
        return result.scalar_one_or_none()

    @staticmethod
    def ensure_can_manage(
        actor: AccessContext, student: Student, allow_event_manager: bool
    ) -> None:
        if actor.acting_as(Role.ADMIN):
            return
        if allow_event_manager and actor.acting_as(Role.EVENT_MANAGER):
            return
        if actor.managed_year is None:
            raise ValueError("INSUFFICIENT_ROLE")
        StudentService.ensure_in_scope(actor, student.academic_year)

    async def update_status(
        self,
        registration_id: Any,
        new_status: RegistrationStatus,
        actor: AccessContext,
    ) -> RegistrationResponse:
        registration = await self.get_registration(registration_id)
        if not registration:
            raise ValueError("REGISTRATION_NOT_FOUND")

        self.ensure_can_manage(actor, registration.student, allow_event_manager=True)

        old_status = registration.status
        if new_status not in ALLOWED_TRANSITIONS.get(old_status, frozenset()):
            raise ValueError(
                f"INVALID_STATUS_TRANSITION: {old_status.value} -> {RegistrationStatus(new_status).value}"
            )

        registration.status = new_status
        await self.db.commit()

        logger.info(
            f"Registration {registration.id} moved from {old_status.value} to {registration.status.value}"
        )
        if self.activity_trail is not None:
            self.activity_trail.record(
                actor.profile_id,
                ActivityAction.REGISTRATION_STATUS_UPDATED,
                {
                    "registration_id": str(registration.id),
                    "event_name": registration.event.name,
                    "roll_number": registration.student.roll_number,
                    "old_status": old_status.value,
                    "new_status": registration.status.value,
                },
                actor.meta,
            )
        return self._create_registration_response(
            registration, registration.student, registration.event
        )

    async def delete_registration(self, registration_id: Any, actor: AccessContext) -> None:
        registration = await self.get_registration(registration_id)
        if not registration:
            raise ValueError("REGISTRATION_NOT_FOUND")

        self.ensure_can_manage(actor, registration.student, allow_event_manager=False)

        details: Dict[str, Any] = {
            "registration_id": str(registration.id),
            "event_name": registration.event.name,
            "roll_number": registration.student.roll_number,
            "status": registration.status.value,
        }
        await self.db.delete(registration)
        await self.db.commit()

        logger.info(f"Deleted registration {details['registration_id']}")
        if self.activity_trail is not None:
            self.activity_trail.record(
                actor.profile_id, ActivityAction.REGISTRATION_DELETED, details, actor.meta
            )

    async def list_registrations(
        self, query_params: RegistrationListQueryParams, actor: AccessContext
    ) -> List[RegistrationResponse]:
        query = (
            select(Registration, Student, Event)
            .select_from(Registration)
            .join(Student, Registration.student_id == Student.id)
            .join(Event, Registration.event_id == Event.id)
        )

        if actor.acting_as(Role.STUDENT):
            query = query.where(Student.user_id == actor.user_id)
        elif actor.acting_as(Role.ADMIN, Role.EVENT_MANAGER):
            pass
        elif actor.managed_year is not None:
            query = query.where(Student.academic_year == actor.managed_year)
        else:
            raise ValueError("INSUFFICIENT_ROLE")

        if query_params.event_id:
            query = query.where(Registration.event_id == query_params.event_id)
        if query_params.student_id:
            query = query.where(Registration.student_id == query_params.student_id)
        if query_params.status:
            query = query.where(Registration.status == query_params.status)

        result = await self.db.execute(
            query.order_by(Registration.created_at.desc(), Registration.id)
        )
        return [
            self._create_registration_response(registration, student, event)
            for registration, student, event in result.all()
        ]

    @staticmethod
    def _create_registration_response(
        registration: Registration, student: Student, event: Event
    ) -> RegistrationResponse:
        return RegistrationResponse(
            id=registration.id,
            student_id=registration.student_id,
            event_id=registration.event_id,
            group_id=registration.group_id,
            status=registration.status,
            registered_by=registration.registered_by,
            student_name=student.name,
            roll_number=student.roll_number,
            event_name=event.name,
            created_at=registration.created_at,
        )


def get_registration_service(
    db: AsyncSession = Depends(get_async_session),
    activity_trail: ActivityTrail = Depends(get_activity_trail),
) -> RegistrationService:
    return RegistrationService(db, activity_trail)
