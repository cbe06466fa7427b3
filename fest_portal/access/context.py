import uuid
from dataclasses import dataclass, field
from typing import Any, List, Optional

from fest_portal.access.roles import coordinator_year
from fest_portal.db.models import AcademicYear, Role
from fest_portal.utils.request_meta import RequestMeta


@dataclass(frozen=True)
class AccessContext:
    """
    Who is acting on a request: the loaded profile, every role it holds and
    the single role it is acting as. Services receive this explicitly.
    """

    profile: Any
    active_role: Role
    roles: List[Role]
    meta: RequestMeta = field(default_factory=RequestMeta)

    @property
    def profile_id(self) -> uuid.UUID:
        return self.profile.id

    @property
    def user_id(self) -> uuid.UUID:
        return self.profile.user_id

    @property
    def managed_year(self) -> Optional[AcademicYear]:
        """Year managed by the active role; None unless acting as a coordinator"""
        return coordinator_year(self.active_role)

    def acting_as(self, *roles: Role) -> bool:
        return self.active_role in roles
