from typing import Optional
from datetime import datetime
import uuid

from pydantic import Field, field_validator
from fest_portal.db.models import AcademicYear
from .camel_base_model import CamelCaseBaseModel as BaseModel


class CreateStudentRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=200, description="Student name")
    roll_number: str = Field(..., min_length=1, max_length=50, description="Roll number")
    department: str = Field(..., min_length=1, max_length=100, description="Department")
    academic_year: AcademicYear = Field(..., description="Academic year")

    @field_validator("roll_number")
    @classmethod
    def normalize_roll_number(cls, v: str) -> str:
        return v.strip().upper()


class UpdateStudentRequest(BaseModel):
    """Partial update; omitted fields are left unchanged"""

    name: Optional[str] = Field(None, min_length=1, max_length=200)
    roll_number: Optional[str] = Field(None, min_length=1, max_length=50)
    department: Optional[str] = Field(None, min_length=1, max_length=100)
    academic_year: Optional[AcademicYear] = None

    @field_validator("roll_number")
    @classmethod
    def normalize_roll_number(cls, v: Optional[str]) -> Optional[str]:
        return v.strip().upper() if v else v


class StudentListQueryParams(BaseModel):
    academic_year: Optional[AcademicYear] = Field(None, description="Filter by year")
    search: Optional[str] = Field(None, description="Match name or roll number")


class StudentResponse(BaseModel):
    id: uuid.UUID = Field(..., description="Student ID")
    name: str = Field(..., description="Student name")
    roll_number: str = Field(..., description="Roll number")
    department: str = Field(..., description="Department")
    academic_year: AcademicYear = Field(..., description="Academic year")
    user_id: Optional[uuid.UUID] = Field(None, description="Linked login")
    created_at: Optional[datetime] = Field(None, description="Creation timestamp")
