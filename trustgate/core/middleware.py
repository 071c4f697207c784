"""Custom middleware and request helpers for trustgate."""

import ipaddress
import secrets
import time
from typing import Callable, List, Optional, Tuple

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from trustgate.core.logging import get_logger, request_context

logger = get_logger(__name__)

# Trusted proxy IP ranges for X-Forwarded-* and identity header validation
# Only trust forwarded headers from these sources
TRUSTED_PROXY_NETS: List[ipaddress.IPv4Network | ipaddress.IPv6Network] = [
    # Loopback
    ipaddress.ip_network("127.0.0.0/8"),
    ipaddress.ip_network("::1/128"),
    # Docker bridge (common internal networking)
    ipaddress.ip_network("172.17.0.0/16"),
    # Kubernetes pod network (if running in k8s)
    ipaddress.ip_network("10.244.0.0/16"),
]


def is_trusted_proxy(client_ip: Optional[str]) -> bool:
    """Check if the client IP is from a trusted proxy.

    Only IPs from trusted proxy ranges can provide X-Forwarded-* headers
    (or an upstream identity header) that we'll honour.
    """
    if not client_ip:
        return False
    try:
        ip = ipaddress.ip_address(client_ip)
    except ValueError:
        return False
    return any(ip in net for net in TRUSTED_PROXY_NETS)


def get_client_ip(request: Request) -> Tuple[str, bool]:
    """Get the real client IP, respecting X-Forwarded-For from trusted proxies.

    Returns:
        Tuple of (client_ip, is_trusted) where is_trusted indicates whether
        the IP was validated from a trusted proxy.
    """
    direct_ip = request.client.host if request.client else None

    forwarded_for = request.headers.get("x-forwarded-for", "")
    if forwarded_for:
        first_ip = forwarded_for.split(",")[0].strip()
        if first_ip:
            if is_trusted_proxy(direct_ip):
                return (first_ip, True)
            logger.warning(
                "Untrusted X-Forwarded-For header ignored",
                data={"forwarded_for": forwarded_for, "direct_ip": direct_ip},
            )
            return (direct_ip or "unknown", False)

    return (direct_ip or "unknown", False)


def request_origin(request: Request) -> str:
    """The origin this request was addressed to (scheme://host[:port])."""
    return f"{request.url.scheme}://{request.url.netloc}".lower()


class RequestContextMiddleware(BaseHTTPMiddleware):
    """Middleware to inject request context for logging."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        """Process request with context."""
        request_id = request.headers.get("X-Request-ID") or secrets.token_hex(8)
        start_time = time.perf_counter()

        ctx = {
            "request_id": request_id,
            "path": request.url.path,
            "method": request.method,
        }
        token = request_context.set(ctx)

        try:
            response = await call_next(request)

            duration_ms = (time.perf_counter() - start_time) * 1000
            logger.info(
                f"{request.method} {request.url.path} -> {response.status_code}",
                data={"duration_ms": round(duration_ms, 2)},
            )

            response.headers["X-Request-ID"] = request_id
            return response

        finally:
            request_context.reset(token)


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Add security headers to all responses, including errors.

    - X-Content-Type-Options: nosniff
    - X-Frame-Options: DENY
    - Referrer-Policy: no-referrer
    - Permissions-Policy: every sensitive browser feature disabled
    - Cross-Origin-Resource-Policy: same-site
    - Strict-Transport-Security: production only (plain HTTP in dev must keep working)
    """

    SECURITY_HEADERS = {
        "X-Content-Type-Options": "nosniff",
        "X-Frame-Options": "DENY",
        "Referrer-Policy": "no-referrer",
        "Permissions-Policy": ", ".join(
            f"{feature}=()"
            for feature in (
                "geolocation",
                "microphone",
                "camera",
                "payment",
                "usb",
                "magnetometer",
                "gyroscope",
                "speaker-selection",
                "xr-spatial-tracking",
            )
        ),
        "Cross-Origin-Resource-Policy": "same-site",
    }
    HSTS_VALUE = "max-age=31536000; includeSubDomains"

    def __init__(self, app, include_hsts: bool = False):
        super().__init__(app)
        self.include_hsts = include_hsts

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        """Add security headers to response."""
        response = await call_next(request)

        for header, value in self.SECURITY_HEADERS.items():
            if header not in response.headers:
                response.headers[header] = value

        if self.include_hsts:
            response.headers["Strict-Transport-Security"] = self.HSTS_VALUE

        return response
