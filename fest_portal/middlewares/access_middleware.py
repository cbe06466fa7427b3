"""
Route-level access control.

``require_access(route, ...)`` is a FastAPI dependency that runs the access
gate for the front-end route an endpoint belongs to: session, fresh profile
load, then the gate's decision. A granted request gets an ``AccessContext``
naming the profile and the role it is acting as. The active role comes from
the ``X-Active-Role`` header and defaults to the first held role.
"""

from typing import Iterable, Optional

from fastapi import Depends, Request
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from fest_portal.access.active_role import InvalidActiveRoleError
from fest_portal.access.context import AccessContext
from fest_portal.access.gate import AccessGate, GateDecision, GateOutcome, Routes
from fest_portal.access.roles import InvalidRoleError, role_label
from fest_portal.db.models import Role
from fest_portal.db.session import get_async_session
from fest_portal.services.profile_service import ProfileService
from fest_portal.utils.errors import (
    AccessBlockedError,
    AccessRedirect,
    AuthenticationError,
    AuthorizationError,
)
from fest_portal.utils.logging import get_logger
from fest_portal.utils.request_meta import get_request_meta

logger = get_logger()

ACTIVE_ROLE_HEADER = "X-Active-Role"


async def load_gate(request: Request, db: AsyncSession) -> AccessGate:
    """Drive a gate through session check and profile load for this request"""
    gate = AccessGate()
    auth = getattr(request.state, "auth", None)

    generation = gate.session_resolved(auth)
    if generation is None:
        return gate

    try:
        profile = await ProfileService(db).get_profile_by_user_id(auth.user_id)
    except SQLAlchemyError as e:
        gate.profile_failed(generation, e)
    else:
        gate.profile_loaded(generation, profile)
    return gate


def raise_for_decision(decision: GateDecision) -> None:
    if decision.granted:
        return

    if decision.outcome == GateOutcome.REDIRECT:
        if decision.redirect_to == Routes.SIGN_IN:
            raise AuthenticationError(decision.message or "Not authenticated", "NOT_AUTHENTICATED")
        raise AccessRedirect(decision.redirect_to, decision.message or "Redirect required")

    if decision.outcome == GateOutcome.DENY:
        raise AuthorizationError(decision.message, decision.error_code or "INSUFFICIENT_ROLE")

    if decision.outcome == GateOutcome.ERROR:
        raise AccessBlockedError(
            decision.message or "Access check failed",
            decision.error_code or "ACCESS_ERROR",
            decision.retryable,
        )

    raise AccessBlockedError("Access check did not complete", "ACCESS_PENDING", True)


def resolve_request_active_role(gate: AccessGate, request: Request) -> Role:
    requested = request.headers.get(ACTIVE_ROLE_HEADER)
    if requested and requested.strip():
        try:
            return gate.role_session.set_active_role(requested.strip())
        except (InvalidRoleError, InvalidActiveRoleError) as e:
            raise AuthorizationError(
                str(e).split(": ", 1)[-1], "ACTIVE_ROLE_NOT_AVAILABLE"
            )
    return gate.role_session.active_role


def require_access(
    route: str,
    allowed_roles: Optional[Iterable[Role]] = None,
    acting_roles: Optional[Iterable[Role]] = None,
):
    """
    Build a dependency guarding an endpoint.

    Args:
        route: front-end route the endpoint serves; drives the onboarding gates
        allowed_roles: roles of which the profile must hold at least one
        acting_roles: roles of which the active role must be one
    """
    allowed = tuple(allowed_roles) if allowed_roles is not None else None
    acting = tuple(acting_roles) if acting_roles is not None else None

    async def check_access(
        request: Request, db: AsyncSession = Depends(get_async_session)
    ) -> AccessContext:
        gate = await load_gate(request, db)
        raise_for_decision(gate.evaluate(route, allowed))

        active_role = resolve_request_active_role(gate, request)
        if acting is not None and active_role not in acting:
            labels = ", ".join(role_label(role) for role in acting)
            raise AuthorizationError(
                f"Switch to one of these roles to continue: {labels}",
                "INSUFFICIENT_ROLE",
            )

        return AccessContext(
            profile=gate.profile,
            active_role=active_role,
            roles=gate.role_session.available_roles,
            meta=get_request_meta(request),
        )

    return check_access
