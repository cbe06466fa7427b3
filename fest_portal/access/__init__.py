from .roles import *
from .active_role import *
from .gate import *

__all__ = [
    "InvalidRoleError",
    "COORDINATOR_YEARS",
    "normalize_roles",
    "has_role",
    "has_any_role",
    "coordinator_year",
    "is_exempt",
    "display_label",
    "ActiveRoleSession",
    "InvalidActiveRoleError",
    "resolve_active_role",
    "AccessGate",
    "GateDecision",
    "GateOutcome",
    "GateState",
    "Routes",
    "COORDINATOR_ROLES",
    "STAFF_ROLES",
    "ROUTE_ROLES",
    "allowed_roles_for",
]
