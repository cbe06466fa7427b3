from fastapi import APIRouter, Request

from fest_portal.config.settings import settings
from fest_portal.utils.responses import ResponseBuilder

health_router = APIRouter()


@health_router.get("/")
async def health_check(request: Request):
    """
    Basic health check endpoint

    Returns application status and the audit worker's queue depth
    """
    trail = getattr(request.app.state, "activity_trail", None)
    return ResponseBuilder.success(
        request=request,
        data={
            "status": "healthy",
            "service": settings.NAME,
            "version": settings.VERSION,
            "audit_worker_running": bool(trail and trail.running),
            "audit_queue_depth": trail.pending if trail else 0,
        },
        message="Service is running",
    )
