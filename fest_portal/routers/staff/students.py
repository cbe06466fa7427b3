from typing import Annotated
import uuid

from fastapi import APIRouter, Depends, Path, Request, status

from fest_portal.access.context import AccessContext
from fest_portal.access.gate import COORDINATOR_ROLES, STAFF_ROLES, Routes
from fest_portal.db.models import Role
from fest_portal.middlewares.access_middleware import require_access
from fest_portal.schemas.student_schemas import (
    CreateStudentRequest,
    StudentListQueryParams,
    StudentResponse,
    UpdateStudentRequest,
)
from fest_portal.services.student_service import StudentService, get_student_service
from fest_portal.utils.error_handlers import handle_service_error
from fest_portal.utils.errors import BusinessLogicError
from fest_portal.utils.responses import ResponseBuilder

require_staff = require_access(Routes.STUDENTS, allowed_roles=STAFF_ROLES)
require_student_manager = require_access(
    Routes.STUDENTS,
    allowed_roles=STAFF_ROLES,
    acting_roles=(Role.ADMIN, *COORDINATOR_ROLES),
)

students_router = APIRouter()


@students_router.get(
    "/",
    response_model=None,
    status_code=status.HTTP_200_OK,
    summary="List students",
    description="Coordinators see the year they manage; administrators and event managers see every year.",
)
async def get_all_students(
    request: Request,
    query_params: Annotated[StudentListQueryParams, Depends()],
    actor: Annotated[AccessContext, Depends(require_staff)],
    student_service: StudentService = Depends(get_student_service),
):
    try:
        students = await student_service.list_students(query_params, actor)

        return ResponseBuilder.success(
            request=request,
            data=[student.model_dump(by_alias=True) for student in students],
            message=f"Retrieved {len(students)} students",
        )

    except (ValueError, RuntimeError) as e:
        return handle_service_error(request, e)
    except Exception:
        raise BusinessLogicError(
            message="Failed to retrieve students",
            error_code="STUDENTS_RETRIEVAL_FAILED",
        )


@students_router.post(
    "/",
    response_model=StudentResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create a student record",
)
async def create_student(
    request: Request,
    student_data: CreateStudentRequest,
    actor: Annotated[AccessContext, Depends(require_student_manager)],
    student_service: StudentService = Depends(get_student_service),
):
    try:
        student_response = await student_service.create_student(student_data, actor)

        return ResponseBuilder.success(
            request=request,
            data=student_response.model_dump(by_alias=True),
            message="Student created successfully",
            status_code=status.HTTP_201_CREATED,
        )

    except (ValueError, RuntimeError) as e:
        return handle_service_error(request, e)
    except Exception:
        raise BusinessLogicError(
            message="Failed to create student", error_code="STUDENT_CREATION_FAILED"
        )


@students_router.put(
    "/{student_id}",
    response_model=StudentResponse,
    status_code=status.HTTP_200_OK,
    summary="Update a student record",
    description="Partially update a student. Only administrators may change the academic year.",
)
async def update_student(
    request: Request,
    student_data: UpdateStudentRequest,
    student_id: Annotated[uuid.UUID, Path(description="Student ID to update")],
    actor: Annotated[AccessContext, Depends(require_student_manager)],
    student_service: StudentService = Depends(get_student_service),
):
    try:
        student_response = await student_service.update_student(
            student_id, student_data, actor
        )

        return ResponseBuilder.success(
            request=request,
            data=student_response.model_dump(by_alias=True),
            message="Student updated successfully",
        )

    except (ValueError, RuntimeError) as e:
        return handle_service_error(request, e)
    except Exception:
        raise BusinessLogicError(
            message="Failed to update student", error_code="STUDENT_UPDATE_FAILED"
        )


@students_router.delete(
    "/{student_id}",
    status_code=status.HTTP_200_OK,
    summary="Delete a student record",
    description="Delete a student together with their registrations",
)
async def delete_student(
    request: Request,
    student_id: Annotated[uuid.UUID, Path(description="Student ID to delete")],
    actor: Annotated[AccessContext, Depends(require_student_manager)],
    student_service: StudentService = Depends(get_student_service),
):
    try:
        await student_service.delete_student(student_id, actor)

        return ResponseBuilder.success(
            request=request, message="Student deleted successfully"
        )

    except (ValueError, RuntimeError) as e:
        return handle_service_error(request, e)
    except Exception:
        raise BusinessLogicError(
            message="Failed to delete student", error_code="STUDENT_DELETION_FAILED"
        )
