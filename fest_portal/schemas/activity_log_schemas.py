from typing import Any, Dict, Optional
from datetime import datetime
import uuid

from pydantic import Field
from .camel_base_model import CamelCaseBaseModel as BaseModel


class ActivityLogQueryParams(BaseModel):
    action: Optional[str] = Field(None, description="Filter by action")
    user_id: Optional[uuid.UUID] = Field(None, description="Filter by acting profile")
    page: int = Field(1, ge=1, description="Page number, newest entries first")
    per_page: int = Field(50, ge=1, le=500, description="Entries per page")


class ActivityLogResponse(BaseModel):
    id: uuid.UUID
    user_id: Optional[uuid.UUID] = None
    action: str
    details: Dict[str, Any] = Field(default_factory=dict)
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    created_at: Optional[datetime] = None
