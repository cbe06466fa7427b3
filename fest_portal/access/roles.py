"""
Role model.

A profile holds an ordered collection of role tags drawn from the closed
``Role`` vocabulary. Helpers here accept a single role or any iterable of
roles (tags or their string values) and never assume exactly one role.
"""

from typing import Dict, Iterable, List, Optional, Union

from fest_portal.db.models import AcademicYear, Role

RoleInput = Union[None, str, Role, Iterable[Union[str, Role]]]


class InvalidRoleError(ValueError):
    """Raised when a role name is not part of the role vocabulary."""

    def __init__(self, role: str):
        super().__init__(f"INVALID_ROLE: {role!r} is not a known role")
        self.role = role


# Managed academic year for each coordinator role
COORDINATOR_YEARS: Dict[Role, AcademicYear] = {
    Role.FIRST_YEAR_COORDINATOR: AcademicYear.FIRST,
    Role.SECOND_YEAR_COORDINATOR: AcademicYear.SECOND,
    Role.THIRD_YEAR_COORDINATOR: AcademicYear.THIRD,
    Role.FOURTH_YEAR_COORDINATOR: AcademicYear.FOURTH,
}

ROLE_LABELS: Dict[Role, str] = {
    Role.ADMIN: "Administrator",
    Role.EVENT_MANAGER: "Event Manager",
    Role.FIRST_YEAR_COORDINATOR: "First Year Coordinator",
    Role.SECOND_YEAR_COORDINATOR: "Second Year Coordinator",
    Role.THIRD_YEAR_COORDINATOR: "Third Year Coordinator",
    Role.FOURTH_YEAR_COORDINATOR: "Fourth Year Coordinator",
    Role.STUDENT: "Student",
}

YEAR_LABELS: Dict[AcademicYear, str] = {
    AcademicYear.FIRST: "First Year",
    AcademicYear.SECOND: "Second Year",
    AcademicYear.THIRD: "Third Year",
    AcademicYear.FOURTH: "Fourth Year",
}

# Roles that skip the student onboarding gates
EXEMPT_ROLES = frozenset({Role.ADMIN, *COORDINATOR_YEARS})


def parse_role(value: Union[str, Role]) -> Role:
    if isinstance(value, Role):
        return value
    try:
        return Role(value)
    except ValueError:
        raise InvalidRoleError(str(value)) from None


def normalize_roles(roles: RoleInput) -> List[Role]:
    """
    Turn a single role or a collection of roles into an ordered, de-duplicated
    list of ``Role`` tags. ``None`` and empty input give an empty list.

    Raises:
        InvalidRoleError: if any entry is not a known role name
    """
    if not roles:
        return []
    if isinstance(roles, (str, Role)):
        return [parse_role(roles)]

    normalized: List[Role] = []
    for value in roles:
        role = parse_role(value)
        if role not in normalized:
            normalized.append(role)
    return normalized


def has_role(roles: RoleInput, target: Union[str, Role]) -> bool:
    return parse_role(target) in normalize_roles(roles)


def has_any_role(roles: RoleInput, targets: Iterable[Union[str, Role]]) -> bool:
    held = normalize_roles(roles)
    return any(parse_role(target) in held for target in targets)


def coordinator_year(roles: RoleInput) -> Optional[AcademicYear]:
    """
    Academic year managed by the first coordinator role in stored order,
    or None when no coordinator role is held.
    """
    for role in normalize_roles(roles):
        if role in COORDINATOR_YEARS:
            return COORDINATOR_YEARS[role]
    return None


def is_exempt(roles: RoleInput) -> bool:
    """Administrators and coordinators bypass forced password change and profile setup."""
    return any(role in EXEMPT_ROLES for role in normalize_roles(roles))


def role_label(role: Union[str, Role]) -> str:
    return ROLE_LABELS[parse_role(role)]


def display_label(roles: RoleInput, separator: str = ", ") -> str:
    return separator.join(ROLE_LABELS[role] for role in normalize_roles(roles))


def year_label(year: Union[str, AcademicYear]) -> str:
    return YEAR_LABELS[AcademicYear(year)]
