from fastapi import APIRouter

from .access import access_router
from .auth import auth_router
from .events import events_router
from .health import health_router
from .profile import profile_router
from .settings import settings_router

shared_router = APIRouter()

# Include sub-routers
shared_router.include_router(
    auth_router, prefix="/auth", tags=["Shared - Authentication"]
)
shared_router.include_router(
    profile_router, prefix="/profile", tags=["Shared - Profile"]
)
shared_router.include_router(
    access_router, prefix="/access", tags=["Shared - Access Checks"]
)
shared_router.include_router(
    events_router, prefix="/events", tags=["Shared - Events"]
)
shared_router.include_router(
    settings_router, prefix="/settings", tags=["Shared - Registration Settings"]
)
shared_router.include_router(
    health_router, prefix="/health", tags=["Shared - Health Checks"]
)
