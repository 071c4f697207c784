"""API routers."""

from trustgate.api.health import router as health_router
from trustgate.api.tokens import router as tokens_router

__all__ = [
    "health_router",
    "tokens_router",
]
