"""
Health check endpoints.

Liveness probe for load balancers; exempt from the token gate.
"""

from datetime import UTC, datetime
from typing import Any

from fastapi import APIRouter, Request

router = APIRouter(tags=["health"])


@router.get("/health")
@router.get("/healthz")
async def healthcheck(request: Request) -> dict[str, Any]:
    """Report liveness and uptime."""
    start_time = getattr(request.app.state, "start_time", None)
    uptime = None
    if start_time is not None:
        uptime = round((datetime.now(UTC) - start_time).total_seconds(), 3)
    return {
        "status": "ok",
        "timestamp": datetime.now(UTC).isoformat(),
        "uptime_seconds": uptime,
    }
