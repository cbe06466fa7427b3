"""
Access gate.

A small state machine deciding whether an authenticated profile may use a
route. It moves BOOTING -> LOADING -> READY | ERROR, or to UNAUTHENTICATED
when no session exists, and only renders a decision once READY.

Decision order once READY:
    1. no session                 -> redirect to sign-in
    2. session without a profile  -> ERROR (retry offered)
    3. profile without roles      -> terminal error, needs an administrator
    4. exempt role (admin, coordinator) -> skip onboarding, leave onboarding
       routes, then apply the route's allowed roles
    5. student -> forced password change, then profile setup, then the
       route's allowed roles
"""

import enum
from dataclasses import dataclass
from typing import Any, Iterable, Optional, Union

from fest_portal.access.active_role import ActiveRoleSession
from fest_portal.access.roles import (
    COORDINATOR_YEARS,
    InvalidRoleError,
    has_any_role,
    has_role,
    is_exempt,
)
from fest_portal.config.settings import settings
from fest_portal.db.models import Role
from fest_portal.utils.logging import get_logger

logger = get_logger()


class Routes:
    SIGN_IN = "/auth"
    DASHBOARD = "/dashboard"
    FORCE_PASSWORD_CHANGE = "/force-password-change"
    SETUP_PROFILE = "/setup-profile"
    PROFILE = "/profile"
    EVENTS = "/events"
    STUDENTS = "/students"
    REGISTRATIONS = "/registrations"
    MY_REGISTRATIONS = "/my-registrations"
    SETTINGS = "/settings"
    ACTIVITY_LOGS = "/activity-logs"
    ANALYTICS = "/analytics"

    ONBOARDING = frozenset({FORCE_PASSWORD_CHANGE, SETUP_PROFILE})


COORDINATOR_ROLES = tuple(COORDINATOR_YEARS)
STAFF_ROLES = (Role.ADMIN, Role.EVENT_MANAGER, *COORDINATOR_ROLES)

# Routes missing here are open to every role
ROUTE_ROLES = {
    Routes.STUDENTS: STAFF_ROLES,
    Routes.REGISTRATIONS: STAFF_ROLES,
    Routes.ANALYTICS: STAFF_ROLES,
    Routes.MY_REGISTRATIONS: (Role.STUDENT,),
    Routes.SETTINGS: (Role.ADMIN,),
    Routes.ACTIVITY_LOGS: (Role.ADMIN,),
}


def allowed_roles_for(route: str) -> Optional[tuple]:
    return ROUTE_ROLES.get(route)


class GateState(str, enum.Enum):
    BOOTING = "booting"
    LOADING = "loading"
    READY = "ready"
    ERROR = "error"
    UNAUTHENTICATED = "unauthenticated"


class GateOutcome(str, enum.Enum):
    PENDING = "pending"
    GRANT = "grant"
    REDIRECT = "redirect"
    DENY = "deny"
    ERROR = "error"


@dataclass(frozen=True)
class GateDecision:
    outcome: GateOutcome
    redirect_to: Optional[str] = None
    error_code: Optional[str] = None
    message: Optional[str] = None
    retryable: bool = False

    @property
    def granted(self) -> bool:
        return self.outcome == GateOutcome.GRANT

    @classmethod
    def pending(cls) -> "GateDecision":
        return cls(GateOutcome.PENDING)

    @classmethod
    def grant(cls) -> "GateDecision":
        return cls(GateOutcome.GRANT)

    @classmethod
    def redirect(cls, route: str, message: str) -> "GateDecision":
        return cls(GateOutcome.REDIRECT, redirect_to=route, message=message)

    @classmethod
    def deny(cls, message: str) -> "GateDecision":
        return cls(GateOutcome.DENY, error_code="INSUFFICIENT_ROLE", message=message)

    @classmethod
    def error(cls, error_code: str, message: str, retryable: bool) -> "GateDecision":
        return cls(
            GateOutcome.ERROR,
            error_code=error_code,
            message=message,
            retryable=retryable,
        )


PROFILE_MISSING_MESSAGE = "User profile not found. Please contact support."
PROFILE_FETCH_FAILED_MESSAGE = "Could not load your profile. Please try again."
ROLE_MISSING_MESSAGE = (
    "No role is assigned to this account. An administrator must assign one."
)


class AccessGate:
    """
    Gate state for one session.

    Profile fetches are numbered. A result is applied in the order results
    arrive, except that a result from an older fetch never replaces one from
    a newer fetch that has already been applied.
    """

    def __init__(self, landing_route: Optional[str] = None):
        self.landing_route = landing_route or settings.DEFAULT_LANDING_ROUTE
        self.state = GateState.BOOTING
        self.session: Any = None
        self.profile: Any = None
        self.role_session = ActiveRoleSession()
        self.error_code: Optional[str] = None
        self.error_message: Optional[str] = None
        self.retryable = False
        self._issued_generation = 0
        self._applied_generation = 0

    # Transitions
    def session_resolved(self, session: Any) -> Optional[int]:
        """Record the outcome of the session check; returns a profile fetch generation."""
        if not session:
            self.signed_out()
            return None

        self.session = session
        return self.begin_profile_load()

    def begin_profile_load(self, revalidation: bool = False) -> int:
        """Start a profile fetch. Background revalidation keeps a READY gate READY."""
        self._issued_generation += 1
        if not (revalidation and self.state == GateState.READY):
            self.state = GateState.LOADING
        return self._issued_generation

    def profile_loaded(self, generation: int, profile: Any) -> bool:
        """Apply a fetched profile (None when no profile row exists)."""
        if self._is_stale(generation):
            return False
        self._applied_generation = generation

        if profile is None:
            self.profile = None
            self.role_session.clear()
            self._fail("PROFILE_NOT_FOUND", PROFILE_MISSING_MESSAGE, retryable=True)
            return True

        try:
            self.role_session.reload(profile.roles)
        except InvalidRoleError as e:
            logger.error(f"Profile {getattr(profile, 'id', '?')} has an invalid role: {e}")
            self.profile = profile
            self.role_session.clear()
            self._fail("ROLE_ASSIGNMENT_INVALID", str(e), retryable=False)
            return True

        self.profile = profile
        self.state = GateState.READY
        self.error_code = self.error_message = None
        self.retryable = False
        return True

    def profile_failed(
        self, generation: int, error: Exception, revalidation: bool = False
    ) -> bool:
        """Record a transient profile fetch failure."""
        if self._is_stale(generation):
            return False
        self._applied_generation = generation

        if revalidation and self.state == GateState.READY and self.profile is not None:
            logger.warning(f"Background profile revalidation failed, keeping current profile: {error}")
            return True

        logger.error(f"Profile fetch failed: {error}")
        self._fail("PROFILE_FETCH_FAILED", PROFILE_FETCH_FAILED_MESSAGE, retryable=True)
        return True

    def retry(self) -> Optional[int]:
        if not self.session:
            return None
        return self.begin_profile_load()

    def signed_out(self) -> None:
        self.state = GateState.UNAUTHENTICATED
        self.session = None
        self.profile = None
        self.role_session.clear()
        self.error_code = self.error_message = None
        self.retryable = False

    # Decision
    def evaluate(
        self,
        route: str,
        allowed_roles: Optional[Iterable[Union[str, Role]]] = None,
    ) -> GateDecision:
        if self.state in (GateState.BOOTING, GateState.LOADING):
            return GateDecision.pending()

        if self.state == GateState.UNAUTHENTICATED or not self.session:
            return GateDecision.redirect(Routes.SIGN_IN, "Sign in required")

        if self.state == GateState.ERROR:
            return GateDecision.error(
                self.error_code or "PROFILE_FETCH_FAILED",
                self.error_message or PROFILE_FETCH_FAILED_MESSAGE,
                self.retryable,
            )

        roles = self.role_session.available_roles
        if not roles:
            return GateDecision.error(
                "ROLE_ASSIGNMENT_MISSING", ROLE_MISSING_MESSAGE, retryable=False
            )

        if is_exempt(roles):
            if route in Routes.ONBOARDING:
                return GateDecision.redirect(
                    self.landing_route, "Onboarding does not apply to this account"
                )
            return self._check_allowed_roles(route, roles, allowed_roles)

        if has_role(roles, Role.STUDENT):
            # Password change strictly before profile completion
            if self.profile.is_first_login:
                if route != Routes.FORCE_PASSWORD_CHANGE:
                    return GateDecision.redirect(
                        Routes.FORCE_PASSWORD_CHANGE, "Password change required"
                    )
            elif not self.profile.profile_completed and route not in Routes.ONBOARDING:
                return GateDecision.redirect(
                    Routes.SETUP_PROFILE, "Profile setup required"
                )

        return self._check_allowed_roles(route, roles, allowed_roles)

    def _check_allowed_roles(self, route, roles, allowed_roles) -> GateDecision:
        if allowed_roles is None or has_any_role(roles, allowed_roles):
            return GateDecision.grant()

        if route == self.landing_route:
            # Redirecting to the page being refused would loop
            return GateDecision.deny("Your roles do not allow access to this page")

        return GateDecision.redirect(
            self.landing_route, "Your roles do not allow access to this page"
        )

    def _fail(self, error_code: str, message: str, retryable: bool) -> None:
        self.state = GateState.ERROR
        self.error_code = error_code
        self.error_message = message
        self.retryable = retryable

    def _is_stale(self, generation: int) -> bool:
        if generation < self._applied_generation:
            logger.debug(
                f"Ignoring profile result {generation}, newer result {self._applied_generation} already applied"
            )
            return True
        return False
