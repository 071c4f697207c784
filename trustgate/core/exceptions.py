"""Error taxonomy and exception handlers for the gateway."""

from typing import Iterable, Optional

from fastapi import FastAPI, HTTPException, Request, status
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from trustgate.core.error_contract import error_response, http_status_to_code
from trustgate.core.logging import get_logger

logger = get_logger(__name__)


class ConfigurationError(Exception):
    """Raised when the trust boundary cannot be configured safely.

    Fatal: raised only while the application is being built, so a process
    with a malformed origin list, SameSite value or signing secret never
    starts serving traffic.
    """

    def __init__(self, errors: Iterable[str] | str):
        if isinstance(errors, str):
            errors = [errors]
        self.errors = list(errors)
        if len(self.errors) == 1:
            message = self.errors[0]
        else:
            message = "Configuration errors:\n" + "\n".join(f"  - {e}" for e in self.errors)
        super().__init__(message)


class GatewayException(Exception):
    """Base exception for per-request gateway failures."""

    def __init__(
        self,
        message: str,
        status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR,
        code: str = "E5000",
        details: Optional[dict] = None,
        headers: Optional[dict[str, str]] = None,
    ):
        self.message = message
        self.status_code = status_code
        self.code = code
        self.details = details or {}
        self.headers = headers
        super().__init__(message)


class AuthorizationError(GatewayException):
    """A request was refused by the trust gateway."""

    def __init__(
        self,
        message: str = "Access denied",
        status_code: int = status.HTTP_403_FORBIDDEN,
        code: str = "forbidden",
        headers: Optional[dict[str, str]] = None,
    ):
        super().__init__(message, status_code=status_code, code=code, headers=headers)


class MissingTokenError(AuthorizationError):
    """A state-changing request arrived without an anti-forgery token."""

    def __init__(self, message: str = "Anti-forgery token is required for this operation"):
        super().__init__(
            message,
            status_code=status.HTTP_428_PRECONDITION_REQUIRED,
            code="missing_token",
        )


class InvalidTokenError(AuthorizationError):
    """Malformed, expired, tampered or foreign token (one external code)."""

    def __init__(self, message: str = "Invalid or expired anti-forgery token. Please refresh and try again."):
        super().__init__(message, status_code=status.HTTP_403_FORBIDDEN, code="invalid_token")


class OriginNotAllowedError(AuthorizationError):
    """Credentialed cross-origin request from an origin outside the allowed set."""

    def __init__(self, message: str = "Origin not allowed"):
        super().__init__(message, status_code=status.HTTP_403_FORBIDDEN, code="origin_not_allowed")


class RateLimitedError(AuthorizationError):
    """Token issuance quota exhausted for this identity or address."""

    def __init__(self, retry_after_seconds: int, message: str = "Too many token requests"):
        self.retry_after_seconds = max(1, int(retry_after_seconds))
        super().__init__(
            message,
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            code="rate_limited",
            headers={"Retry-After": str(self.retry_after_seconds)},
        )
        self.details = {"retry_after_seconds": self.retry_after_seconds}


class TokenIssuanceError(GatewayException):
    """A token could not be minted for an authenticated identity."""

    def __init__(self, message: str = "Token issuance failed"):
        super().__init__(message, code="token_issuance_failed")


def gateway_error_response(exc: GatewayException) -> JSONResponse:
    """Render a gateway exception with the shared error envelope."""
    return error_response(
        status_code=exc.status_code,
        code=exc.code,
        message=exc.message,
        headers=exc.headers,
        extra=exc.details,
    )


def setup_exception_handlers(app: FastAPI) -> None:
    """Register exception handlers with FastAPI app."""

    @app.exception_handler(GatewayException)
    async def gateway_exception_handler(
        request: Request, exc: GatewayException
    ) -> JSONResponse:
        """Handle gateway-specific exceptions."""
        log = logger.warning if exc.status_code < 500 else logger.error
        log(
            f"Gateway error: {exc.message}",
            data={"status_code": exc.status_code, "code": exc.code, "path": request.url.path},
        )
        return gateway_error_response(exc)

    @app.exception_handler(ValidationError)
    async def validation_exception_handler(
        request: Request, exc: ValidationError
    ) -> JSONResponse:
        """Handle Pydantic validation errors."""
        logger.warning(
            "Validation error",
            data={"errors": exc.errors()},
        )
        return error_response(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            code="E4220",
            message="Validation error",
        )

    @app.exception_handler(HTTPException)
    async def http_exception_handler(
        request: Request, exc: HTTPException
    ) -> JSONResponse:
        return error_response(
            status_code=exc.status_code,
            code=http_status_to_code(exc.status_code),
            message=str(exc.detail),
            headers=exc.headers,
        )

    @app.exception_handler(Exception)
    async def generic_exception_handler(
        request: Request, exc: Exception
    ) -> JSONResponse:
        """Handle unexpected exceptions without leaking internals."""
        logger.error(
            f"Unhandled exception: {type(exc).__name__}: {exc}",
            exc_info=True,
        )
        return error_response(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            code="E5000",
            message="Internal server error",
        )
