from typing import Optional

from pydantic import Field
from .camel_base_model import CamelCaseBaseModel as BaseModel


class RegistrationSettingsResponse(BaseModel):
    max_on_stage_registrations: int = Field(..., description="On-stage cap per student")
    max_off_stage_registrations: int = Field(..., description="Off-stage cap per student")
    auto_approve_registrations: bool = Field(..., description="Approve on creation")
    global_registration_open: bool = Field(..., description="Global registration switch")


class UpdateRegistrationSettingsRequest(BaseModel):
    """Partial update; omitted settings are left unchanged"""

    max_on_stage_registrations: Optional[int] = Field(None, ge=0, le=100)
    max_off_stage_registrations: Optional[int] = Field(None, ge=0, le=100)
    auto_approve_registrations: Optional[bool] = None
    global_registration_open: Optional[bool] = None
