from typing import Any, List, Optional

from fastapi import Depends
from sqlalchemy import delete, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from fest_portal.access.context import AccessContext
from fest_portal.db.models import AcademicYear, Registration, Role, Student
from fest_portal.db.session import get_async_session
from fest_portal.schemas.student_schemas import (
    CreateStudentRequest,
    StudentListQueryParams,
    StudentResponse,
    UpdateStudentRequest,
)
from fest_portal.services.activity_trail import (
    ActivityAction,
    ActivityTrail,
    get_activity_trail,
)
from fest_portal.utils.logging import get_logger

logger = get_logger()


class StudentService:
    """Student records, scoped to the acting coordinator's year"""

    def __init__(
        self, db_session: AsyncSession, activity_trail: Optional[ActivityTrail] = None
    ):
        self.db = db_session
        self.activity_trail = activity_trail

    async def get_student_by_id(self, student_id: Any) -> Optional[Student]:
        result = await self.db.execute(select(Student).where(Student.id == student_id))
        return result.scalar_one_or_none()

    async def check_roll_number_exists(
        self, roll_number: str, exclude_id: Optional[Any] = None
    ) -> bool:
        query = select(Student.id).where(Student.roll_number == roll_number)
        if exclude_id:
            query = query.where(Student.id != exclude_id)
        result = await self.db.execute(query)
        return result.scalar_one_or_none() is not None

    @staticmethod
    def ensure_in_scope(actor: AccessContext, academic_year: AcademicYear) -> None:
        """Coordinators act only on their own year; administrators on any"""
        if actor.acting_as(Role.ADMIN):
            return
        managed = actor.managed_year
        if managed is None or managed != academic_year:
            raise ValueError(
                f"STUDENT_OUTSIDE_COORDINATOR_YEAR: {AcademicYear(academic_year).value} year"
            )

    async def list_students(
        self, query_params: StudentListQueryParams, actor: AccessContext
    ) -> List[StudentResponse]:
        query = select(Student)

        managed = None if actor.acting_as(Role.ADMIN, Role.EVENT_MANAGER) else actor.managed_year
        if managed is not None:
            query = query.where(Student.academic_year == managed)
        elif query_params.academic_year is not None:
            query = query.where(Student.academic_year == query_params.academic_year)

        if query_params.search:
            pattern = f"%{query_params.search.strip()}%"
            query = query.where(
                or_(Student.name.ilike(pattern), Student.roll_number.ilike(pattern))
            )

        result = await self.db.execute(query.order_by(Student.roll_number))
        return [StudentResponse.model_validate(s) for s in result.scalars().all()]

    async def create_student(
        self, data: CreateStudentRequest, actor: AccessContext
    ) -> StudentResponse:
        self.ensure_in_scope(actor, data.academic_year)

        if await self.check_roll_number_exists(data.roll_number):
            raise ValueError(f"ROLL_NUMBER_EXISTS: {data.roll_number}")

        try:
            student = Student(
                name=data.name.strip(),
                roll_number=data.roll_number,
                department=data.department.strip(),
                academic_year=data.academic_year,
            )
            self.db.add(student)
            await self.db.commit()
            await self.db.refresh(student)
        except IntegrityError:
            await self.db.rollback()
            raise ValueError(f"ROLL_NUMBER_EXISTS: {data.roll_number}")

        logger.info(f"Created student {student.roll_number}")
        self._audit(actor, ActivityAction.STUDENT_CREATED, student)
        return StudentResponse.model_validate(student)

    async def update_student(
        self, student_id: Any, data: UpdateStudentRequest, actor: AccessContext
    ) -> StudentResponse:
        student = await self.get_student_by_id(student_id)
        if not student:
            raise ValueError("STUDENT_NOT_FOUND")
        self.ensure_in_scope(actor, student.academic_year)

        changes = {
            key: value
            for key, value in data.model_dump(exclude_unset=True).items()
            if value is not None
        }

        new_year = changes.get("academic_year")
        if new_year is not None and new_year != student.academic_year:
            if not actor.acting_as(Role.ADMIN):
                raise ValueError("ACADEMIC_YEAR_CHANGE_FORBIDDEN")

        new_roll = changes.get("roll_number")
        if new_roll and new_roll != student.roll_number:
            if await self.check_roll_number_exists(new_roll, exclude_id=student.id):
                raise ValueError(f"ROLL_NUMBER_EXISTS: {new_roll}")

        try:
            for field_name, value in changes.items():
                setattr(student, field_name, value)
            await self.db.commit()
            await self.db.refresh(student)
        except IntegrityError:
            await self.db.rollback()
            raise ValueError(f"ROLL_NUMBER_EXISTS: {new_roll}")

        logger.info(f"Updated student {student.roll_number}")
        self._audit(
            actor, ActivityAction.STUDENT_UPDATED, student, changed=sorted(changes)
        )
        return StudentResponse.model_validate(student)

    async def delete_student(self, student_id: Any, actor: AccessContext) -> None:
        student = await self.get_student_by_id(student_id)
        if not student:
            raise ValueError("STUDENT_NOT_FOUND")
        self.ensure_in_scope(actor, student.academic_year)

        await self.db.execute(
            delete(Registration).where(Registration.student_id == student.id)
        )
        await self.db.execute(delete(Student).where(Student.id == student.id))
        await self.db.commit()

        logger.info(f"Deleted student {student.roll_number}")
        self._audit(actor, ActivityAction.STUDENT_DELETED, student)

    def _audit(
        self, actor: AccessContext, action: ActivityAction, student: Student, **extra
    ) -> None:
        if self.activity_trail is None:
            return
        details = {
            "student_id": str(student.id),
            "roll_number": student.roll_number,
            "name": student.name,
            "academic_year": student.academic_year.value,
            **extra,
        }
        self.activity_trail.record(actor.profile_id, action, details, actor.meta)


def get_student_service(
    db: AsyncSession = Depends(get_async_session),
    activity_trail: ActivityTrail = Depends(get_activity_trail),
) -> StudentService:
    return StudentService(db, activity_trail)
