from typing import List, Optional, Union

from fest_portal.access.roles import RoleInput, normalize_roles, parse_role
from fest_portal.db.models import Role
from fest_portal.utils.logging import get_logger

logger = get_logger()


class InvalidActiveRoleError(ValueError):
    """Raised when switching to a role the profile does not hold."""

    def __init__(self, role: Union[str, Role], available: List[Role]):
        held = ", ".join(r.value for r in available) or "none"
        super().__init__(
            f"ACTIVE_ROLE_NOT_AVAILABLE: {getattr(role, 'value', role)} is not one of [{held}]"
        )
        self.role = role


class ActiveRoleSession:
    """
    Tracks the single role a multi-role user is currently operating as.

    ``active_role`` is None until a profile with at least one role has been
    loaded. Every ``reload`` re-derives it from the profile's role set, which
    stays the source of truth.
    """

    def __init__(self, roles: RoleInput = None):
        self._available: List[Role] = []
        self._active: Optional[Role] = None
        if roles is not None:
            self.reload(roles)

    @property
    def active_role(self) -> Optional[Role]:
        return self._active

    @property
    def available_roles(self) -> List[Role]:
        return list(self._available)

    @property
    def is_initialized(self) -> bool:
        return self._active is not None

    def reload(self, roles: RoleInput) -> Optional[Role]:
        """Re-derive the active role after the profile (or its roles) changed."""
        self._available = normalize_roles(roles)

        if not self._available:
            self._active = None
        elif self._active is None or self._active not in self._available:
            self._active = self._available[0]
            logger.debug(f"Active role set to {self._active.value}")

        return self._active

    def clear(self) -> None:
        self._available = []
        self._active = None

    def set_active_role(self, role: Union[str, Role]) -> Role:
        """
        Switch to another held role.

        Raises:
            InvalidRoleError: if ``role`` is not a known role name
            InvalidActiveRoleError: if the profile does not hold ``role``;
                the current active role is left untouched
        """
        target = parse_role(role)
        if target not in self._available:
            raise InvalidActiveRoleError(target, self._available)

        self._active = target
        return target


def resolve_active_role(
    roles: RoleInput, requested: Optional[Union[str, Role]] = None
) -> Optional[Role]:
    """Active role for one request: the requested role if held, else the first held role."""
    session = ActiveRoleSession(roles)
    if requested:
        return session.set_active_role(requested)
    return session.active_role
