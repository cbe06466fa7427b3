from typing import Annotated

from fastapi import APIRouter, Depends, Request

from fest_portal.middlewares.auth_middleware import AuthState, get_current_user
from fest_portal.services.settings_service import (
    SettingsService,
    get_settings_service,
)
from fest_portal.utils.responses import ResponseBuilder

settings_router = APIRouter()


@settings_router.get("/registration")
async def get_registration_settings(
    request: Request,
    current_user: Annotated[AuthState, Depends(get_current_user)],
    settings_service: SettingsService = Depends(get_settings_service),
):
    """Category caps, auto-approval and the global registration switch"""
    registration_settings = await settings_service.get_registration_settings()

    return ResponseBuilder.success(
        request=request,
        data=registration_settings.model_dump(by_alias=True),
        message="Registration settings retrieved",
    )
