from typing import List, Optional
import uuid

from pydantic import Field, EmailStr
from .camel_base_model import CamelCaseBaseModel as BaseModel


class ProvisionAccountRequest(BaseModel):
    """Administrative account creation"""

    email: EmailStr = Field(..., description="Login email")
    full_name: str = Field(..., min_length=1, max_length=200, description="Full name")
    roles: List[str] = Field(..., description="Role names, first is the default")
    initial_password: str = Field(
        ..., min_length=8, max_length=128, description="Password to change at first login"
    )
    student_id: Optional[uuid.UUID] = Field(
        None, description="Student record to link to this login"
    )


class ProvisionStudentAccountRequest(BaseModel):
    initial_password: str = Field(..., min_length=8, max_length=128)


class UpdateRolesRequest(BaseModel):
    roles: List[str] = Field(..., description="Replacement role list, in order")


class UserResponse(BaseModel):
    user_id: uuid.UUID
    profile_id: uuid.UUID
    email: str
    full_name: str
    roles: List[str] = Field(default_factory=list)
    is_active: bool
    is_first_login: bool
    profile_completed: bool
