from typing import List, Optional
import uuid

from pydantic import Field, EmailStr
from .camel_base_model import CamelCaseBaseModel as BaseModel


class LoginRequest(BaseModel):
    """Login request schema"""

    identifier: str = Field(
        ..., min_length=1, max_length=320, description="Roll number or email"
    )
    password: str = Field(..., min_length=1, description="Password")


class LoginResponse(BaseModel):
    """Login response schema"""

    access_token: str = Field(..., description="Bearer access token")
    token_type: str = Field("bearer", description="Token type")
    user_id: uuid.UUID = Field(..., description="User ID")
    session_id: str = Field(..., description="Session identifier")


class ChangePasswordRequest(BaseModel):
    """Password change request schema"""

    current_password: str = Field(..., min_length=1, description="Current password")
    new_password: str = Field(
        ..., min_length=8, max_length=128, description="New password"
    )


class CompleteProfileRequest(BaseModel):
    """Profile setup request schema"""

    full_name: str = Field(..., min_length=1, max_length=200, description="Full name")
    email: EmailStr = Field(..., description="Contact email")
    phone: str = Field(..., min_length=5, max_length=30, description="Phone number")


class ProfileResponse(BaseModel):
    """Profile with its roles and the resolved active role"""

    id: uuid.UUID = Field(..., description="Profile ID")
    user_id: uuid.UUID = Field(..., description="User ID")
    full_name: str = Field(..., description="Full name")
    email: str = Field(..., description="Email")
    phone: Optional[str] = Field(None, description="Phone number")
    roles: List[str] = Field(default_factory=list, description="Held roles, in order")
    role_label: str = Field(..., description="Display label for all held roles")
    active_role: Optional[str] = Field(None, description="Role currently acted as")
    coordinator_year: Optional[str] = Field(
        None, description="Academic year managed by the active role"
    )
    is_first_login: bool = Field(..., description="Initial password not changed yet")
    profile_completed: bool = Field(..., description="Profile setup finished")


class AccessCheckResponse(BaseModel):
    """Access gate decision for a front-end route"""

    route: str = Field(..., description="Route that was checked")
    state: str = Field(..., description="Gate state")
    outcome: str = Field(..., description="grant, redirect, deny or error")
    redirect_to: Optional[str] = Field(None, description="Redirect target")
    error_code: Optional[str] = Field(None, description="Error code")
    message: Optional[str] = Field(None, description="Explanation for the user")
    retryable: bool = Field(False, description="Whether a retry may succeed")
