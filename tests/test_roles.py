import pytest

from fest_portal.access.roles import (
    InvalidRoleError,
    coordinator_year,
    display_label,
    has_any_role,
    has_role,
    is_exempt,
    normalize_roles,
    role_label,
    year_label,
)
from fest_portal.db.models import AcademicYear, Role


class TestNormalizeRoles:
    """Single roles and collections are handled the same way."""

    def test_single_string_role(self):
        assert normalize_roles("admin") == [Role.ADMIN]

    def test_single_tag(self):
        assert normalize_roles(Role.STUDENT) == [Role.STUDENT]

    def test_collection_keeps_order_and_drops_duplicates(self):
        roles = ["third_year_coordinator", Role.ADMIN, "third_year_coordinator"]
        assert normalize_roles(roles) == [Role.THIRD_YEAR_COORDINATOR, Role.ADMIN]

    @pytest.mark.parametrize("empty", [None, [], ()])
    def test_empty_input(self, empty):
        assert normalize_roles(empty) == []

    def test_unknown_role_is_rejected(self):
        with pytest.raises(InvalidRoleError) as exc_info:
            normalize_roles(["admin", "superuser"])
        assert "superuser" in str(exc_info.value)
        assert str(exc_info.value).startswith("INVALID_ROLE")


class TestRoleQueries:
    def test_has_role_with_single_and_multiple_roles(self):
        assert has_role("admin", Role.ADMIN)
        assert has_role(["student", "event_manager"], "event_manager")
        assert not has_role(["student"], Role.ADMIN)

    def test_has_any_role(self):
        assert has_any_role(["student"], [Role.ADMIN, Role.STUDENT])
        assert not has_any_role(["event_manager"], [Role.ADMIN, Role.STUDENT])
        assert not has_any_role([], [Role.ADMIN])

    def test_has_role_rejects_unknown_target(self):
        with pytest.raises(InvalidRoleError):
            has_role(["admin"], "root")


class TestCoordinatorYear:
    @pytest.mark.parametrize(
        "role,year",
        [
            (Role.FIRST_YEAR_COORDINATOR, AcademicYear.FIRST),
            (Role.SECOND_YEAR_COORDINATOR, AcademicYear.SECOND),
            (Role.THIRD_YEAR_COORDINATOR, AcademicYear.THIRD),
            (Role.FOURTH_YEAR_COORDINATOR, AcademicYear.FOURTH),
        ],
    )
    def test_each_coordinator_role_maps_to_its_year(self, role, year):
        assert coordinator_year(role) == year

    def test_non_coordinators_have_no_year(self):
        assert coordinator_year(["admin", "event_manager", "student"]) is None
        assert coordinator_year(None) is None

    def test_admin_who_also_coordinates_gets_the_year(self):
        assert coordinator_year(["admin", "third_year_coordinator"]) == AcademicYear.THIRD

    def test_first_coordinator_role_in_stored_order_wins(self):
        roles = ["fourth_year_coordinator", "first_year_coordinator"]
        assert coordinator_year(roles) == AcademicYear.FOURTH


class TestExemptRoles:
    def test_admin_and_coordinators_are_exempt(self):
        assert is_exempt(["admin"])
        assert is_exempt(["student", "second_year_coordinator"])

    def test_students_and_event_managers_are_not_exempt(self):
        assert not is_exempt(["student"])
        assert not is_exempt(["event_manager"])
        assert not is_exempt([])


class TestLabels:
    def test_role_label(self):
        assert role_label("event_manager") == "Event Manager"
        assert role_label(Role.FIRST_YEAR_COORDINATOR) == "First Year Coordinator"

    def test_display_label_joins_all_roles_in_order(self):
        assert display_label(["admin", "third_year_coordinator"]) == (
            "Administrator, Third Year Coordinator"
        )
        assert display_label([]) == ""

    def test_year_label(self):
        assert year_label("second") == "Second Year"
