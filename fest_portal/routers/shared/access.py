from typing import Annotated

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from fest_portal.access.gate import allowed_roles_for
from fest_portal.db.session import get_async_session
from fest_portal.middlewares.access_middleware import load_gate
from fest_portal.schemas.auth_schemas import AccessCheckResponse
from fest_portal.utils.responses import ResponseBuilder

access_router = APIRouter()


@access_router.get("/check")
async def check_route_access(
    request: Request,
    route: Annotated[str, Query(min_length=1, description="Front-end route")],
    db: Annotated[AsyncSession, Depends(get_async_session)],
):
    """
    Gate decision for a front-end route.

    The decision is returned, not enforced: a redirect or error is reported
    in the body with a 200 status so the client can act on it.
    """
    gate = await load_gate(request, db)
    decision = gate.evaluate(route, allowed_roles_for(route))

    access_data = AccessCheckResponse(
        route=route,
        state=gate.state.value,
        outcome=decision.outcome.value,
        redirect_to=decision.redirect_to,
        error_code=decision.error_code,
        message=decision.message,
        retryable=decision.retryable,
    )
    return ResponseBuilder.success(
        request=request,
        data=access_data.model_dump(by_alias=True),
        message="Access decision evaluated",
    )
