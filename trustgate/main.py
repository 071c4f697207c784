"""
trustgate application.

FastAPI application wiring the request-trust gateway: anti-forgery tokens,
session cookie policy and the allowed cross-origin set, with structured
logging and a shared error envelope.
"""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from datetime import UTC, datetime
from typing import Optional

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from trustgate.api import health_router, tokens_router
from trustgate.config import Settings, get_settings
from trustgate.core import (
    RequestContextMiddleware,
    SecurityHeadersMiddleware,
    get_logger,
    setup_exception_handlers,
    setup_logging,
)
from trustgate.gate import RequestGateMiddleware, TrustedHeaderIdentityProvider, build_gateway

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan handler for startup/shutdown."""
    settings: Settings = _app.state.settings

    setup_logging(
        level=settings.log_level,
        json_output=not settings.debug,
        log_file=settings.log_file or None,
    )
    logger.info(
        "Starting trustgate",
        data={
            "environment": settings.environment,
            "host": settings.host,
            "port": settings.port,
            "limits_backend": settings.limits_backend,
        },
    )
    _app.state.gateway.log_startup_diagnostics()
    _app.state.start_time = datetime.now(UTC)

    yield

    logger.info("Shutting down trustgate")
    await _app.state.gateway.aclose()


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    """Create and configure the FastAPI application.

    The trust boundary is validated here, before any app object exists:
    a ConfigurationError propagates and nothing is served.
    """
    settings = settings or get_settings()
    gateway = build_gateway(settings)

    app = FastAPI(
        title="trustgate",
        description="Request-trust gateway: anti-forgery tokens, cookie policy and origin checks",
        version="0.1.0",
        lifespan=lifespan,
        docs_url=settings.docs_url,
        redoc_url=None,
        openapi_url=settings.openapi_url,
    )
    app.state.settings = settings
    app.state.gateway = gateway
    app.state.identity_provider = TrustedHeaderIdentityProvider(settings.identity_header_name)

    setup_exception_handlers(app)

    # Middleware order matters - last added = first executed
    # 1. Request gate (origin check, token check, cookie policy)
    app.add_middleware(RequestGateMiddleware)

    # 2. Request context (inject request ID, log requests)
    app.add_middleware(RequestContextMiddleware)

    # 3. Security headers on every response, rejections included
    app.add_middleware(SecurityHeadersMiddleware, include_hsts=settings.is_production)

    # 4. CORS response headers for the resolved origin set
    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(gateway.allowed_origins),
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization", settings.csrf_header_name],
        expose_headers=["X-Request-ID", "Retry-After"],
    )

    app.include_router(health_router)
    app.include_router(tokens_router)

    return app


def run() -> None:
    """Console entry point: serve the app with uvicorn."""
    settings = get_settings()
    uvicorn.run(create_app(settings), host=settings.host, port=settings.port)


if __name__ == "__main__":
    run()
