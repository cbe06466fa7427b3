from fastapi import APIRouter

from fest_portal.routers.admin import admin_router
from fest_portal.routers.shared import shared_router
from fest_portal.routers.staff import staff_router
from fest_portal.routers.student import student_router

main_router = APIRouter()

# Include domain-based routers
main_router.include_router(shared_router, prefix="/shared", tags=["Shared Services"])
main_router.include_router(staff_router, prefix="/staff", tags=["Staff"])
main_router.include_router(student_router, prefix="/student", tags=["Student"])
main_router.include_router(admin_router, prefix="/admin", tags=["Administration"])
