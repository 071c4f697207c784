"""The request gate.

Every inbound request walks this state machine before business logic runs::

    RECEIVED -> origin check -> CLASSIFIED{query|mutation}
      query    -> ADMITTED
      mutation -> TOKEN_CHECK -> missing  => REJECTED(missing_token)
                              -> invalid  => REJECTED(invalid_token)
                              -> valid    => ADMITTED
    ADMITTED -> business logic -> RESPONSE (session cookie policy enforced)

Malformed, expired, tampered and foreign tokens all leave as one
``invalid_token`` code; the precise reason is only logged.
"""

from typing import Callable

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from trustgate.core.exceptions import (
    GatewayException,
    InvalidTokenError,
    MissingTokenError,
    OriginNotAllowedError,
    gateway_error_response,
)
from trustgate.core.logging import get_logger
from trustgate.core.middleware import request_origin
from trustgate.gate.identity import resolve_identity
from trustgate.gate.service import TrustGateway
from trustgate.security.cookies import enforce_cookie_policy
from trustgate.security.origins import is_origin_allowed, normalize_origin
from trustgate.security.tokens import TokenCheck

logger = get_logger(__name__)

SAFE_METHODS = frozenset({"GET", "HEAD", "OPTIONS"})


def is_mutation(request: Request) -> bool:
    """Non-safe HTTP methods change state and need a token."""
    return request.method.upper() not in SAFE_METHODS


def _is_cross_origin(request: Request, origin: str) -> bool:
    return normalize_origin(origin) != normalize_origin(request_origin(request))


def _is_credentialed(request: Request) -> bool:
    return (
        "cookie" in request.headers
        or "authorization" in request.headers
        or is_mutation(request)
    )


class RequestGateMiddleware(BaseHTTPMiddleware):
    """Origin, anti-forgery token and cookie policy enforcement."""

    def _reject(self, request: Request, gateway: TrustGateway, exc: GatewayException, **data) -> Response:
        logger.warning(
            "Request rejected by gate",
            data={
                "path": request.url.path,
                "method": request.method,
                "reason": exc.code,
                **data,
            },
        )
        response = gateway_error_response(exc)
        enforce_cookie_policy(response, gateway.cookie_policy)
        return response

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        gateway: TrustGateway = request.app.state.gateway

        origin = request.headers.get("origin")
        if origin and _is_credentialed(request) and _is_cross_origin(request, origin):
            if not is_origin_allowed(origin, gateway.allowed_origins):
                return self._reject(request, gateway, OriginNotAllowedError(), origin=origin)

        if is_mutation(request) and not gateway.is_exempt(request.url.path):
            token = (request.headers.get(gateway.header_name) or "").strip()
            if not token:
                return self._reject(request, gateway, MissingTokenError())

            identity = await resolve_identity(request)
            check = gateway.check_token(token, identity)
            if check is not TokenCheck.VALID:
                return self._reject(
                    request,
                    gateway,
                    InvalidTokenError(),
                    sub_reason=check.value,
                    identity_id=identity.identity_id,
                )

        response = await call_next(request)
        enforce_cookie_policy(response, gateway.cookie_policy)
        return response
