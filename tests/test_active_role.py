import pytest

from fest_portal.access.active_role import (
    ActiveRoleSession,
    InvalidActiveRoleError,
    resolve_active_role,
)
from fest_portal.access.roles import InvalidRoleError
from fest_portal.db.models import Role


class TestActiveRoleSession:
    def test_uninitialized_until_roles_are_loaded(self):
        session = ActiveRoleSession()
        assert session.active_role is None
        assert session.available_roles == []
        assert not session.is_initialized

    def test_defaults_to_first_held_role(self):
        session = ActiveRoleSession(["third_year_coordinator", "admin"])
        assert session.active_role == Role.THIRD_YEAR_COORDINATOR
        assert session.available_roles == [Role.THIRD_YEAR_COORDINATOR, Role.ADMIN]

    def test_switch_to_held_role(self):
        session = ActiveRoleSession(["admin", "third_year_coordinator"])
        assert session.set_active_role("third_year_coordinator") == Role.THIRD_YEAR_COORDINATOR
        assert session.active_role == Role.THIRD_YEAR_COORDINATOR

    def test_switch_to_role_not_held_keeps_current(self):
        session = ActiveRoleSession(["admin", "event_manager"])
        session.set_active_role(Role.EVENT_MANAGER)

        with pytest.raises(InvalidActiveRoleError):
            session.set_active_role(Role.STUDENT)
        assert session.active_role == Role.EVENT_MANAGER

    def test_switch_to_unknown_role(self):
        session = ActiveRoleSession(["admin"])
        with pytest.raises(InvalidRoleError):
            session.set_active_role("owner")

    def test_reload_keeps_active_role_when_still_held(self):
        session = ActiveRoleSession(["admin", "event_manager"])
        session.set_active_role("event_manager")

        session.reload(["student", "event_manager", "admin"])
        assert session.active_role == Role.EVENT_MANAGER

    def test_reload_resets_when_active_role_was_revoked(self):
        session = ActiveRoleSession(["admin", "event_manager"])
        session.set_active_role("event_manager")

        session.reload(["admin"])
        assert session.active_role == Role.ADMIN

    def test_reload_with_no_roles_clears_active_role(self):
        session = ActiveRoleSession(["admin"])
        session.reload([])
        assert session.active_role is None
        assert not session.is_initialized


class TestResolveActiveRole:
    def test_requested_role_wins_when_held(self):
        assert resolve_active_role(["admin", "student"], "student") == Role.STUDENT

    def test_first_role_without_request(self):
        assert resolve_active_role(["event_manager", "admin"]) == Role.EVENT_MANAGER

    def test_requested_role_not_held(self):
        with pytest.raises(InvalidActiveRoleError):
            resolve_active_role(["student"], "admin")
