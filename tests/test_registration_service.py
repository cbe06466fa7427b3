import uuid

import pytest
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from fest_portal.db.models import (
    AcademicYear,
    ActivityLog,
    EventCategory,
    EventMode,
    RegistrationMethod,
    RegistrationStatus,
    Role,
    Student,
)
from fest_portal.schemas.registration_schemas import (
    CreateRegistrationRequest,
    RegistrationListQueryParams,
)
from fest_portal.services.registration_service import RegistrationService


def request_for(event, *students, group_id=None):
    return CreateRegistrationRequest(
        event_id=event.id, student_ids=[s.id for s in students], group_id=group_id
    )


class TestRegisterStudents:
    @pytest.mark.asyncio
    async def test_pending_by_default_and_approved_with_auto_approval(
        self, db_session: AsyncSession, factory, acting
    ):
        admin = await factory.admin()
        service = RegistrationService(db_session)

        [pending] = await service.register_students(
            request_for(await factory.event(), await factory.student()), acting(admin)
        )
        assert pending.status == RegistrationStatus.PENDING
        assert pending.registered_by == admin.id

        await factory.settings(auto_approve_registrations=True)
        [approved] = await service.register_students(
            request_for(await factory.event(), await factory.student()), acting(admin)
        )
        assert approved.status == RegistrationStatus.APPROVED

    @pytest.mark.asyncio
    async def test_duplicate_active_registration(self, db_session: AsyncSession, factory, acting):
        admin = await factory.admin()
        student = await factory.student(roll_number="EKC100")
        event = await factory.event()
        await factory.registration(student, event, RegistrationStatus.PENDING)

        with pytest.raises(ValueError, match="DUPLICATE_REGISTRATION: EKC100"):
            await RegistrationService(db_session).register_students(
                request_for(event, student), acting(admin)
            )

    @pytest.mark.asyncio
    async def test_re_registration_after_rejection(self, db_session: AsyncSession, factory, acting):
        admin = await factory.admin()
        student = await factory.student()
        event = await factory.event()
        await factory.registration(student, event, RegistrationStatus.REJECTED)

        [registration] = await RegistrationService(db_session).register_students(
            request_for(event, student), acting(admin)
        )
        assert registration.status == RegistrationStatus.PENDING

    @pytest.mark.asyncio
    async def test_duplicate_ids_in_one_request_register_once(
        self, db_session: AsyncSession, factory, acting
    ):
        admin = await factory.admin()
        student = await factory.student()
        event = await factory.event()

        registrations = await RegistrationService(db_session).register_students(
            request_for(event, student, student), acting(admin)
        )
        assert len(registrations) == 1

    @pytest.mark.asyncio
    async def test_coordinator_limited_to_their_year(self, db_session: AsyncSession, factory, acting):
        coordinator = await factory.coordinator(AcademicYear.FIRST)
        own = await factory.student(AcademicYear.FIRST)
        other = await factory.student(AcademicYear.THIRD)
        event = await factory.event()
        service = RegistrationService(db_session)

        with pytest.raises(ValueError, match="STUDENT_OUTSIDE_COORDINATOR_YEAR"):
            await service.register_students(request_for(event, own, other), acting(coordinator))

        [registration] = await service.register_students(
            request_for(event, own), acting(coordinator)
        )
        assert registration.student_id == own.id

    @pytest.mark.asyncio
    async def test_admin_acting_as_coordinator_is_scoped(
        self, db_session: AsyncSession, factory, acting
    ):
        profile = await factory.account(["admin", "fourth_year_coordinator"])
        student = await factory.student(AcademicYear.SECOND)
        event = await factory.event()
        service = RegistrationService(db_session)

        with pytest.raises(ValueError, match="STUDENT_OUTSIDE_COORDINATOR_YEAR"):
            await service.register_students(
                request_for(event, student),
                acting(profile, Role.FOURTH_YEAR_COORDINATOR),
            )

        registrations = await service.register_students(
            request_for(event, student), acting(profile, Role.ADMIN)
        )
        assert len(registrations) == 1

    @pytest.mark.asyncio
    @pytest.mark.parametrize("closed_event", ["inactive", "past_deadline"])
    async def test_closed_event(self, db_session: AsyncSession, factory, acting, closed_event):
        admin = await factory.admin()
        if closed_event == "past_deadline":
            event = await factory.past_deadline_event()
        else:
            event = await factory.event(is_active=False)

        with pytest.raises(ValueError, match="REGISTRATION_CLOSED"):
            await RegistrationService(db_session).register_students(
                request_for(event, await factory.student()), acting(admin)
            )

    @pytest.mark.asyncio
    async def test_global_switch_closes_every_event(self, db_session: AsyncSession, factory, acting):
        admin = await factory.admin()
        await factory.settings(global_registration_open=False)

        with pytest.raises(ValueError, match="REGISTRATION_CLOSED"):
            await RegistrationService(db_session).register_students(
                request_for(await factory.event(), await factory.student()), acting(admin)
            )

    @pytest.mark.asyncio
    async def test_student_initiated_event_refuses_coordinators(
        self, db_session: AsyncSession, factory, acting
    ):
        coordinator = await factory.coordinator(AcademicYear.SECOND)
        event = await factory.event(registration_method=RegistrationMethod.STUDENT)

        with pytest.raises(ValueError, match="REGISTRATION_METHOD_MISMATCH"):
            await RegistrationService(db_session).register_students(
                request_for(event, await factory.student(AcademicYear.SECOND)),
                acting(coordinator),
            )

    @pytest.mark.asyncio
    async def test_event_manager_cannot_register_students(
        self, db_session: AsyncSession, factory, acting
    ):
        manager = await factory.account(["event_manager"])

        with pytest.raises(ValueError, match="REGISTRATION_METHOD_MISMATCH"):
            await RegistrationService(db_session).register_students(
                request_for(await factory.event(), await factory.student()), acting(manager)
            )


class TestSelfRegistration:
    @pytest.mark.asyncio
    async def test_student_registers_themselves(self, db_session: AsyncSession, factory, acting):
        profile = await factory.student_account()
        event = await factory.event(registration_method=RegistrationMethod.STUDENT)

        registration = await RegistrationService(db_session).register_self(
            event.id, acting(profile)
        )
        assert registration.status == RegistrationStatus.PENDING
        assert registration.registered_by == profile.id
        assert registration.event_name == event.name

    @pytest.mark.asyncio
    async def test_coordinator_initiated_event_refuses_self_registration(
        self, db_session: AsyncSession, factory, acting
    ):
        profile = await factory.student_account()
        event = await factory.event(registration_method=RegistrationMethod.COORDINATOR)

        with pytest.raises(ValueError, match="REGISTRATION_METHOD_MISMATCH"):
            await RegistrationService(db_session).register_self(event.id, acting(profile))

    @pytest.mark.asyncio
    async def test_login_without_student_record(self, db_session: AsyncSession, factory, acting):
        profile = await factory.account(["student"])
        event = await factory.event(registration_method=RegistrationMethod.STUDENT)

        with pytest.raises(ValueError, match="STUDENT_RECORD_NOT_LINKED"):
            await RegistrationService(db_session).register_self(event.id, acting(profile))


class TestEventCapacity:
    @pytest.mark.asyncio
    async def test_individual_cap_applies_per_academic_year(
        self, db_session: AsyncSession, factory, acting
    ):
        admin = await factory.admin()
        event = await factory.event(max_participants=1)
        service = RegistrationService(db_session)

        await service.register_students(
            request_for(event, await factory.student(AcademicYear.FIRST)), acting(admin)
        )
        with pytest.raises(ValueError, match="EVENT_CAPACITY_REACHED"):
            await service.register_students(
                request_for(event, await factory.student(AcademicYear.FIRST)), acting(admin)
            )

        registrations = await service.register_students(
            request_for(event, await factory.student(AcademicYear.SECOND)), acting(admin)
        )
        assert len(registrations) == 1

    @pytest.mark.asyncio
    async def test_rejected_registrations_free_capacity(
        self, db_session: AsyncSession, factory, acting
    ):
        admin = await factory.admin()
        event = await factory.event(max_participants=1)
        await factory.registration(
            await factory.student(AcademicYear.FIRST), event, RegistrationStatus.REJECTED
        )

        registrations = await RegistrationService(db_session).register_students(
            request_for(event, await factory.student(AcademicYear.FIRST)), acting(admin)
        )
        assert len(registrations) == 1

    @pytest.mark.asyncio
    async def test_group_event_admits_one_team_per_year(
        self, db_session: AsyncSession, factory, acting
    ):
        admin = await factory.admin()
        event = await factory.event(mode=EventMode.GROUP, max_participants=4)
        service = RegistrationService(db_session)

        team = await service.register_students(
            request_for(
                event,
                await factory.student(AcademicYear.THIRD),
                await factory.student(AcademicYear.THIRD),
            ),
            acting(admin),
        )
        group_id = team[0].group_id
        assert group_id is not None
        assert {r.group_id for r in team} == {group_id}

        joined = await service.register_students(
            request_for(event, await factory.student(AcademicYear.THIRD), group_id=group_id),
            acting(admin),
        )
        assert joined[0].group_id == group_id

        with pytest.raises(ValueError, match="EVENT_CAPACITY_REACHED"):
            await service.register_students(
                request_for(event, await factory.student(AcademicYear.THIRD)),
                acting(admin),
            )


class TestStatusWorkflow:
    @pytest.mark.asyncio
    async def test_pending_can_be_approved_once(self, db_session: AsyncSession, factory, acting):
        manager = await factory.account(["event_manager"])
        registration = await factory.registration(
            await factory.student(), await factory.event(), RegistrationStatus.PENDING
        )
        service = RegistrationService(db_session)

        updated = await service.update_status(
            registration.id, RegistrationStatus.APPROVED, acting(manager)
        )
        assert updated.status == RegistrationStatus.APPROVED

        with pytest.raises(ValueError, match="INVALID_STATUS_TRANSITION"):
            await service.update_status(
                registration.id, RegistrationStatus.REJECTED, acting(manager)
            )

    @pytest.mark.asyncio
    async def test_rejected_is_final(self, db_session: AsyncSession, factory, acting):
        admin = await factory.admin()
        registration = await factory.registration(
            await factory.student(), await factory.event(), RegistrationStatus.REJECTED
        )

        with pytest.raises(ValueError, match="INVALID_STATUS_TRANSITION"):
            await RegistrationService(db_session).update_status(
                registration.id, RegistrationStatus.APPROVED, acting(admin)
            )

    @pytest.mark.asyncio
    async def test_coordinator_of_another_year_cannot_review(
        self, db_session: AsyncSession, factory, acting
    ):
        coordinator = await factory.coordinator(AcademicYear.FIRST)
        registration = await factory.registration(
            await factory.student(AcademicYear.FOURTH),
            await factory.event(),
            RegistrationStatus.PENDING,
        )

        with pytest.raises(ValueError, match="STUDENT_OUTSIDE_COORDINATOR_YEAR"):
            await RegistrationService(db_session).update_status(
                registration.id, RegistrationStatus.APPROVED, acting(coordinator)
            )

    @pytest.mark.asyncio
    async def test_unknown_registration(self, db_session: AsyncSession, factory, acting):
        admin = await factory.admin()
        with pytest.raises(ValueError, match="REGISTRATION_NOT_FOUND"):
            await RegistrationService(db_session).update_status(
                uuid.uuid4(), RegistrationStatus.APPROVED, acting(admin)
            )


class TestDeleteRegistration:
    @pytest.mark.asyncio
    async def test_coordinator_deletes_own_year(self, db_session: AsyncSession, factory, acting):
        coordinator = await factory.coordinator(AcademicYear.SECOND)
        registration = await factory.registration(
            await factory.student(AcademicYear.SECOND), await factory.event()
        )
        service = RegistrationService(db_session)

        await service.delete_registration(registration.id, acting(coordinator))
        assert await service.get_registration(registration.id) is None

    @pytest.mark.asyncio
    async def test_event_manager_cannot_delete(self, db_session: AsyncSession, factory, acting):
        manager = await factory.account(["event_manager"])
        registration = await factory.registration(
            await factory.student(), await factory.event()
        )

        with pytest.raises(ValueError, match="INSUFFICIENT_ROLE"):
            await RegistrationService(db_session).delete_registration(
                registration.id, acting(manager)
            )


class TestListRegistrations:
    @pytest.mark.asyncio
    async def test_visibility_follows_active_role(self, db_session: AsyncSession, factory, acting):
        student_profile = await factory.student_account(AcademicYear.FIRST)
        result = await db_session.execute(
            select(Student).where(Student.user_id == student_profile.user_id)
        )
        own_student = result.scalar_one()
        event = await factory.event()
        await factory.registration(own_student, event)
        await factory.registration(await factory.student(AcademicYear.FIRST), event)
        await factory.registration(await factory.student(AcademicYear.THIRD), event)

        service = RegistrationService(db_session)
        query = RegistrationListQueryParams()

        mine = await service.list_registrations(query, acting(student_profile))
        assert [r.student_id for r in mine] == [own_student.id]

        coordinator = await factory.coordinator(AcademicYear.FIRST)
        assert len(await service.list_registrations(query, acting(coordinator))) == 2

        admin = await factory.admin()
        assert len(await service.list_registrations(query, acting(admin))) == 3

        filtered = await service.list_registrations(
            RegistrationListQueryParams(student_id=own_student.id), acting(admin)
        )
        assert len(filtered) == 1


class TestRegistrationAudit:
    @pytest.mark.asyncio
    async def test_registration_is_audited_with_acting_profile(
        self, db_session: AsyncSession, factory, acting, trail
    ):
        coordinator = await factory.coordinator(AcademicYear.SECOND)
        student = await factory.student(AcademicYear.SECOND, roll_number="EKC777")
        event = await factory.event(EventCategory.OFF_STAGE, name="Essay Writing")

        await RegistrationService(db_session, trail).register_students(
            request_for(event, student), acting(coordinator)
        )
        await trail.drain()

        result = await db_session.execute(
            select(ActivityLog).where(ActivityLog.action == "students_registered")
        )
        [entry] = result.scalars().all()
        assert entry.user_id == coordinator.id
        assert entry.details["event_name"] == "Essay Writing"
        assert entry.details["roll_numbers"] == ["EKC777"]
        assert entry.details["active_role"] == "second_year_coordinator"
