from unittest.mock import patch

import pytest
from sqlalchemy.exc import OperationalError

from fest_portal.config.settings import settings
from fest_portal.db.models import AcademicYear, EventCategory, RegistrationMethod, Role
from fest_portal.services.identity_service import IdentityService

API = settings.API_PREFIX

pytestmark = pytest.mark.integration


def sign_in(client, identifier, password):
    """Sign in and return bearer headers; the session cookie is dropped."""
    response = client.post(
        f"{API}/shared/auth/login",
        json={"identifier": identifier, "password": password},
    )
    assert response.status_code == 200, response.text
    client.cookies.clear()
    token = response.json()["data"]["accessToken"]
    return {"Authorization": f"Bearer {token}"}


def error_code(response):
    return response.json()["meta"]["error_code"]


class TestAuthentication:
    def test_health_is_public(self, client):
        response = client.get(f"{API}/shared/health/")

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["status"] == "healthy"
        assert data["audit_worker_running"] is True

    def test_missing_token(self, client):
        response = client.get(f"{API}/shared/auth/me")

        assert response.status_code == 401
        assert error_code(response) == "UNAUTHORIZED"

    def test_wrong_password(self, client, seed):
        seed(lambda f: f.admin(email="office@ekc.edu.in"))

        response = client.post(
            f"{API}/shared/auth/login",
            json={"identifier": "office@ekc.edu.in", "password": "wrong-password"},
        )
        assert response.status_code == 401
        assert error_code(response) == "INVALID_CREDENTIALS"

    def test_login_sets_session_cookie(self, client, seed, password):
        seed(lambda f: f.admin(email="cookie@ekc.edu.in"))

        response = client.post(
            f"{API}/shared/auth/login",
            json={"identifier": "cookie@ekc.edu.in", "password": password},
        )
        assert response.status_code == 200
        assert "access_token" in response.cookies

        # The cookie alone authenticates
        assert client.get(f"{API}/shared/auth/me").status_code == 200

    def test_me_lists_roles_and_active_role(self, client, seed, password):
        seed(lambda f: f.account(["admin", "second_year_coordinator"], email="dual@ekc.edu.in"))
        headers = sign_in(client, "dual@ekc.edu.in", password)

        data = client.get(f"{API}/shared/auth/me", headers=headers).json()["data"]
        assert data["roles"] == ["admin", "second_year_coordinator"]
        assert data["activeRole"] == "admin"
        assert data.get("coordinatorYear") is None

        switched = client.get(
            f"{API}/shared/auth/me",
            headers={**headers, "X-Active-Role": "second_year_coordinator"},
        ).json()["data"]
        assert switched["activeRole"] == "second_year_coordinator"
        assert switched["coordinatorYear"] == "second"

    @pytest.mark.parametrize("requested", ["student", "principal"])
    def test_active_role_must_be_held(self, client, seed, password, requested):
        seed(lambda f: f.admin(email="solo@ekc.edu.in"))
        headers = sign_in(client, "solo@ekc.edu.in", password)

        response = client.get(
            f"{API}/shared/auth/me", headers={**headers, "X-Active-Role": requested}
        )
        assert response.status_code == 403
        assert error_code(response) == "ACTIVE_ROLE_NOT_AVAILABLE"

    def test_logout_invalidates_the_token(self, client, seed, password):
        seed(lambda f: f.admin(email="leaving@ekc.edu.in"))
        headers = sign_in(client, "leaving@ekc.edu.in", password)

        assert client.post(f"{API}/shared/auth/logout", headers=headers).status_code == 200
        assert client.get(f"{API}/shared/auth/me", headers=headers).status_code == 401

    @pytest.mark.parametrize(
        "failure",
        [
            OperationalError("SELECT users", {}, Exception("database is locked")),
            ConnectionRefusedError("session store refused the connection"),
        ],
    )
    def test_unreachable_session_store_is_retryable(self, client, seed, password, failure):
        seed(lambda f: f.admin(email="outage@ekc.edu.in"))
        headers = sign_in(client, "outage@ekc.edu.in", password)

        with patch.object(IdentityService, "verify", side_effect=failure):
            response = client.get(f"{API}/shared/events/", headers=headers)

        assert response.status_code == 503
        meta = response.json()["meta"]
        assert meta["error_code"] == "SESSION_CHECK_UNAVAILABLE"
        assert meta["retryable"] is True

        # Same token works once the store is back
        assert client.get(f"{API}/shared/events/", headers=headers).status_code == 200


class TestStudentOnboarding:
    def test_password_change_then_profile_setup(self, client, seed, password):
        async def build(f):
            profile = await f.account(
                [Role.STUDENT],
                email="noreply-ekc0500@ekc.edu.in",
                is_first_login=True,
                profile_completed=False,
            )
            await f.student(roll_number="EKC0500", user_id=profile.user_id)

        seed(build)
        headers = sign_in(client, "EKC0500", password)

        # Own profile stays readable during onboarding
        assert client.get(f"{API}/shared/auth/me", headers=headers).status_code == 200

        blocked = client.get(f"{API}/shared/events/", headers=headers)
        assert blocked.status_code == 403
        assert blocked.json()["meta"]["redirect_to"] == "/force-password-change"

        check = client.get(
            f"{API}/shared/access/check", params={"route": "/setup-profile"}, headers=headers
        )
        assert check.status_code == 200
        assert check.json()["data"]["outcome"] == "redirect"
        assert check.json()["data"]["redirectTo"] == "/force-password-change"

        changed = client.post(
            f"{API}/shared/auth/change-password",
            json={"currentPassword": password, "newPassword": "my-own-secret"},
            headers=headers,
        )
        assert changed.status_code == 200

        blocked = client.get(f"{API}/shared/events/", headers=headers)
        assert blocked.json()["meta"]["redirect_to"] == "/setup-profile"

        completed = client.post(
            f"{API}/shared/profile/complete",
            json={
                "fullName": "Meera Nair",
                "email": "meera.nair@ekc.edu.in",
                "phone": "9847012345",
            },
            headers=headers,
        )
        assert completed.status_code == 200
        assert completed.json()["data"]["profileCompleted"] is True

        assert client.get(f"{API}/shared/events/", headers=headers).status_code == 200

    def test_coordinator_skips_onboarding(self, client, seed, password):
        seed(
            lambda f: f.coordinator(
                email="fresh.coordinator@ekc.edu.in",
                is_first_login=True,
                profile_completed=False,
            )
        )
        headers = sign_in(client, "fresh.coordinator@ekc.edu.in", password)

        assert client.get(f"{API}/shared/events/", headers=headers).status_code == 200

        check = client.get(
            f"{API}/shared/access/check",
            params={"route": "/force-password-change"},
            headers=headers,
        ).json()["data"]
        assert check["outcome"] == "redirect"
        assert check["redirectTo"] == "/dashboard"

    def test_account_without_roles(self, client, seed, password):
        seed(lambda f: f.account([], email="limbo@ekc.edu.in"))
        headers = sign_in(client, "limbo@ekc.edu.in", password)

        response = client.get(f"{API}/shared/events/", headers=headers)
        assert response.status_code == 409
        assert error_code(response) == "ROLE_ASSIGNMENT_MISSING"


class TestRouteRoles:
    def test_activity_logs_are_paged(self, client, seed, password):
        seed(lambda f: f.admin(email="auditor@ekc.edu.in"))
        headers = sign_in(client, "auditor@ekc.edu.in", password)

        response = client.get(
            f"{API}/admin/activity-logs/", params={"perPage": 1}, headers=headers
        )
        assert response.status_code == 200
        body = response.json()
        assert len(body["data"]) <= 1
        assert body["pagination"]["page"] == 1
        assert body["pagination"]["per_page"] == 1

    def test_student_sent_back_from_staff_pages(self, client, seed, password):
        seed(lambda f: f.student_account(email="pupil@ekc.edu.in"))
        headers = sign_in(client, "pupil@ekc.edu.in", password)

        response = client.get(f"{API}/staff/registrations/", headers=headers)
        assert response.status_code == 403
        assert response.json()["meta"]["redirect_to"] == "/dashboard"

    def test_settings_update_is_admin_only(self, client, seed, password):
        seed(lambda f: f.coordinator(email="coord@ekc.edu.in"))
        seed(lambda f: f.admin(email="head@ekc.edu.in"))
        body = {"maxOnStageRegistrations": 3}

        coordinator = sign_in(client, "coord@ekc.edu.in", password)
        response = client.put(
            f"{API}/admin/settings/registration", json=body, headers=coordinator
        )
        assert response.status_code == 403

        admin = sign_in(client, "head@ekc.edu.in", password)
        response = client.put(f"{API}/admin/settings/registration", json=body, headers=admin)
        assert response.status_code == 200
        assert response.json()["data"]["maxOnStageRegistrations"] == 3

        current = client.get(f"{API}/shared/settings/registration", headers=coordinator)
        assert current.json()["data"]["maxOnStageRegistrations"] == 3


class TestRegistrationFlow:
    def test_coordinator_registers_within_cap(self, client, seed, password):
        async def build(f):
            await f.coordinator(AcademicYear.SECOND, email="second.coord@ekc.edu.in")
            await f.settings(max_on_stage_registrations=1)
            return {
                "own": await f.student(AcademicYear.SECOND, roll_number="EKC0201"),
                "other_year": await f.student(AcademicYear.THIRD, roll_number="EKC0301"),
                "dance": await f.event(EventCategory.ON_STAGE, name="Group Dance"),
                "song": await f.event(EventCategory.ON_STAGE, name="Light Music"),
            }

        rows = seed(build)
        headers = sign_in(client, "second.coord@ekc.edu.in", password)
        url = f"{API}/staff/registrations/"

        created = client.post(
            url,
            json={"eventId": str(rows["dance"].id), "studentIds": [str(rows["own"].id)]},
            headers=headers,
        )
        assert created.status_code == 201, created.text
        assert created.json()["data"][0]["status"] == "pending"

        limits = client.post(
            f"{API}/staff/registrations/limits",
            json={"studentIds": [str(rows["own"].id)], "category": "on_stage"},
            headers=headers,
        ).json()
        assert limits["meta"]["can_register"] is False
        assert limits["data"][0]["currentCount"] == 1
        assert limits["data"][0]["limit"] == 1

        capped = client.post(
            url,
            json={"eventId": str(rows["song"].id), "studentIds": [str(rows["own"].id)]},
            headers=headers,
        )
        assert capped.status_code == 400
        assert error_code(capped) == "REGISTRATION_LIMIT_REACHED"
        assert capped.json()["errors"][0]["rollNumber"] == "EKC0201"

        out_of_scope = client.post(
            url,
            json={
                "eventId": str(rows["song"].id),
                "studentIds": [str(rows["other_year"].id)],
            },
            headers=headers,
        )
        assert out_of_scope.status_code == 403
        assert error_code(out_of_scope) == "STUDENT_OUTSIDE_COORDINATOR_YEAR"

        listed = client.get(url, headers=headers).json()["data"]
        assert [r["rollNumber"] for r in listed] == ["EKC0201"]

    def test_student_self_registration(self, client, seed, password):
        async def build(f):
            await f.student_account(email="self@ekc.edu.in")
            return await f.event(
                EventCategory.OFF_STAGE,
                name="Quiz",
                registration_method=RegistrationMethod.STUDENT,
            )

        quiz = seed(build)
        headers = sign_in(client, "self@ekc.edu.in", password)
        url = f"{API}/student/registrations/"

        created = client.post(url, json={"eventId": str(quiz.id)}, headers=headers)
        assert created.status_code == 201, created.text

        again = client.post(url, json={"eventId": str(quiz.id)}, headers=headers)
        assert again.status_code == 409
        assert error_code(again) == "DUPLICATE_REGISTRATION"

        mine = client.get(url, headers=headers).json()["data"]
        assert [r["eventName"] for r in mine] == ["Quiz"]


class TestRegistrationStatistics:
    def test_coordinator_sees_own_year(self, client, seed, password):
        async def build(f):
            await f.coordinator(AcademicYear.SECOND, email="stats.coord@ekc.edu.in")
            event = await f.event(EventCategory.ON_STAGE, name="Mime", max_participants=4)
            await f.registration(await f.student(AcademicYear.SECOND), event)
            await f.registration(await f.student(AcademicYear.THIRD), event)
            return event

        event = seed(build)
        headers = sign_in(client, "stats.coord@ekc.edu.in", password)

        overview = client.get(f"{API}/staff/registration-stats/", headers=headers)
        assert overview.status_code == 200, overview.text
        data = overview.json()["data"]
        assert data["academicYear"] == "second"
        assert data["approved"] == 1
        [mime] = data["events"]
        [second_year] = mime["years"]
        assert second_year["academicYear"] == "second"
        assert second_year["approved"] == 1
        assert second_year["fillPercent"] == 25

        single = client.get(
            f"{API}/staff/registration-stats/events/{event.id}", headers=headers
        )
        assert single.json()["data"]["eventName"] == "Mime"

    def test_students_are_redirected(self, client, seed, password):
        seed(lambda f: f.student_account(email="curious@ekc.edu.in"))
        headers = sign_in(client, "curious@ekc.edu.in", password)

        response = client.get(f"{API}/staff/registration-stats/", headers=headers)
        assert response.status_code == 403
        assert response.json()["meta"]["redirect_to"] == "/dashboard"
