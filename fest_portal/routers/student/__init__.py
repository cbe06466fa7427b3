from fastapi import APIRouter

from .registrations import registrations_router

student_router = APIRouter()

# Include sub-routers
student_router.include_router(
    registrations_router, prefix="/registrations", tags=["Student - Registrations"]
)
