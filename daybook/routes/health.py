"""
Daybook Backend: Health Check Route
====================================

What:  Liveness/readiness probe for the service.
How:   Pings the hosted backend's auth health endpoint.

    Status levels:
    - healthy:   hosted backend reachable (HTTP 200)
    - degraded:  hosted backend unreachable (HTTP 200; local cache still served)
"""

import logging
import time

from fastapi import APIRouter, Depends

from daybook import __version__
from daybook.context import AppContext, get_app_context
from daybook.schemas.common import HealthResponse

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Health"])

_start_time = time.time()


@router.get(
    "/health",
    response_model=HealthResponse,
    summary="Service health check",
)
async def health_check(ctx: AppContext = Depends(get_app_context)) -> HealthResponse:
    reachable = await ctx.client.health_check()
    return HealthResponse(
        status="healthy" if reachable else "degraded",
        version=__version__,
        backend="reachable" if reachable else "unreachable",
        signed_in=ctx.sessions.is_authenticated,
        uptime_seconds=round(time.time() - _start_time, 2),
    )
