from fastapi import APIRouter

from .activity_logs import activity_logs_router
from .settings import settings_router
from .users import users_router

admin_router = APIRouter()

# Include sub-routers
admin_router.include_router(
    settings_router, prefix="/settings", tags=["Admin - Registration Settings"]
)
admin_router.include_router(
    activity_logs_router, prefix="/activity-logs", tags=["Admin - Activity Logs"]
)
admin_router.include_router(users_router, prefix="/users", tags=["Admin - Users"])
