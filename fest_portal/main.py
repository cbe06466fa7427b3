from contextlib import asynccontextmanager
from typing import Callable, Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.ext.asyncio import AsyncSession

from fest_portal.config.settings import settings
from fest_portal.db.db import init_db
from fest_portal.db.session import AsyncSessionLocal
from fest_portal.middlewares import (
    AuthMiddleware,
    RequestIDMiddleware,
    SecurityHeadersMiddleware,
)
from fest_portal.middlewares.access_middleware import ACTIVE_ROLE_HEADER
from fest_portal.routers import main_router
from fest_portal.services.activity_trail import build_activity_trail
from fest_portal.services.identity_service import SessionEvents, audit_session_changes
from fest_portal.utils.errors import setup_error_handlers
from fest_portal.utils.logging import get_logger

# Initialize the logger
logger = get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Fest Portal is starting up...")
    await init_db(app.state.session_factory)

    trail = app.state.activity_trail
    unsubscribe = app.state.session_events.subscribe(audit_session_changes(trail))
    await trail.start()

    yield

    logger.info("Fest Portal is shutting down...")
    unsubscribe()
    await trail.stop()


def create_application(
    session_factory: Optional[Callable[[], AsyncSession]] = None,
) -> FastAPI:
    """Initialize the FastAPI application with settings and lifespan events."""
    application = FastAPI(
        title=settings.NAME, version=settings.VERSION, lifespan=lifespan
    )

    # Shared state used by middlewares and dependencies
    application.state.session_factory = session_factory or AsyncSessionLocal
    application.state.activity_trail = build_activity_trail(
        application.state.session_factory
    )
    application.state.session_events = SessionEvents()

    # Setup error handlers
    setup_error_handlers(application)

    # Add CORS middleware
    application.add_middleware(
        CORSMiddleware,
        allow_origins=settings.ALLOWED_HOSTS,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
        allow_headers=[
            "Content-Type",
            "Authorization",
            ACTIVE_ROLE_HEADER,
            "X-Request-ID",
        ],
    )

    # Add custom middlewares
    application.add_middleware(
        SecurityHeadersMiddleware, environment=settings.ENVIRONMENT
    )
    application.add_middleware(AuthMiddleware)
    application.add_middleware(RequestIDMiddleware)

    # Routers
    application.include_router(main_router, prefix=settings.API_PREFIX, tags=["APIs"])

    return application


app = create_application()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "fest_portal.main:app",
        host="0.0.0.0",
        port=8000,
        reload=True,
        log_config=None,
        log_level=None,
    )
