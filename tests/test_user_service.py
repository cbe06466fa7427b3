import uuid

import pytest
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from fest_portal.db.models import ActivityLog, Role, Student
from fest_portal.schemas.user_schemas import ProvisionAccountRequest
from fest_portal.services.identity_service import IdentityService
from fest_portal.services.user_service import UserService, validate_roles


def account_request(**overrides) -> ProvisionAccountRequest:
    values = {
        "email": "coordinator.two@ekc.edu.in",
        "full_name": "Second Year Coordinator",
        "roles": ["second_year_coordinator"],
        "initial_password": "welcome-2024",
    }
    values.update(overrides)
    return ProvisionAccountRequest(**values)


class TestValidateRoles:
    def test_order_kept_and_duplicates_dropped(self):
        assert validate_roles(["event_manager", "admin", "event_manager"]) == [
            Role.EVENT_MANAGER,
            Role.ADMIN,
        ]

    def test_empty(self):
        with pytest.raises(ValueError, match="ROLES_REQUIRED"):
            validate_roles([])

    def test_unknown(self):
        with pytest.raises(ValueError, match="INVALID_ROLE"):
            validate_roles(["admin", "principal"])


class TestProvisionAccount:
    @pytest.mark.asyncio
    async def test_new_account_starts_onboarding(self, db_session: AsyncSession, trail):
        service = UserService(db_session, trail)

        user = await service.provision_account(
            account_request(email="Coordinator.Two@ekc.edu.in")
        )
        assert user.email == "coordinator.two@ekc.edu.in"
        assert user.roles == ["second_year_coordinator"]
        assert user.is_first_login is True
        assert user.profile_completed is False

        session = await IdentityService(db_session).sign_in(
            "coordinator.two@ekc.edu.in", "welcome-2024"
        )
        assert session.profile_id == user.profile_id

        await trail.drain()
        result = await db_session.execute(
            select(ActivityLog).where(ActivityLog.action == "user_created")
        )
        assert result.scalar_one().user_id is None

    @pytest.mark.asyncio
    async def test_email_taken(self, db_session: AsyncSession, factory):
        await factory.admin(email="taken@ekc.edu.in")

        with pytest.raises(ValueError, match="EMAIL_EXISTS"):
            await UserService(db_session).provision_account(
                account_request(email="TAKEN@ekc.edu.in")
            )

    @pytest.mark.asyncio
    async def test_links_student_record(self, db_session: AsyncSession, factory):
        student = await factory.student()
        service = UserService(db_session)

        user = await service.provision_account(
            account_request(
                email="linked@ekc.edu.in", roles=["student"], student_id=student.id
            )
        )
        linked = (
            await db_session.execute(select(Student).where(Student.id == student.id))
        ).scalar_one()
        assert linked.user_id == user.user_id

        with pytest.raises(ValueError, match="STUDENT_ALREADY_LINKED"):
            await service.provision_account(
                account_request(
                    email="second@ekc.edu.in", roles=["student"], student_id=student.id
                )
            )

    @pytest.mark.asyncio
    async def test_student_account_uses_roll_number_email(
        self, db_session: AsyncSession, factory
    ):
        student = await factory.student(roll_number="EKC4321", name="Anjali Menon")

        user = await UserService(db_session).provision_student_account(
            student.id, "welcome-2024"
        )
        assert user.email == "noreply-ekc4321@ekc.edu.in"
        assert user.full_name == "Anjali Menon"
        assert user.roles == ["student"]

        # Roll number login resolves through the linked record
        session = await IdentityService(db_session).sign_in("EKC4321", "welcome-2024")
        assert session.user_id == user.user_id


class TestUpdateRoles:
    @pytest.mark.asyncio
    async def test_replaces_roles_in_order(self, db_session: AsyncSession, factory):
        admin = await factory.admin()
        target = await factory.coordinator()

        user = await UserService(db_session).update_roles(
            target.id, ["event_manager", "third_year_coordinator"], admin.id
        )
        assert user.roles == ["event_manager", "third_year_coordinator"]

    @pytest.mark.asyncio
    async def test_admin_cannot_drop_their_own_admin_role(
        self, db_session: AsyncSession, factory
    ):
        admin = await factory.account(["admin", "event_manager"])

        with pytest.raises(ValueError, match="CANNOT_REMOVE_OWN_ADMIN_ROLE"):
            await UserService(db_session).update_roles(admin.id, ["event_manager"], admin.id)

    @pytest.mark.asyncio
    async def test_unknown_profile(self, db_session: AsyncSession, factory):
        admin = await factory.admin()

        with pytest.raises(ValueError, match="PROFILE_NOT_FOUND"):
            await UserService(db_session).update_roles(uuid.uuid4(), ["admin"], admin.id)
