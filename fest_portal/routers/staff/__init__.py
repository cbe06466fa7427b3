from fastapi import APIRouter

from .events import events_router
from .registration_stats import registration_stats_router
from .registrations import registrations_router
from .students import students_router

staff_router = APIRouter()

# Include sub-routers
staff_router.include_router(
    events_router, prefix="/events", tags=["Staff - Event Management"]
)
staff_router.include_router(
    students_router, prefix="/students", tags=["Staff - Student Management"]
)
staff_router.include_router(
    registrations_router,
    prefix="/registrations",
    tags=["Staff - Registration Management"],
)
staff_router.include_router(
    registration_stats_router,
    prefix="/registration-stats",
    tags=["Staff - Registration Statistics"],
)
