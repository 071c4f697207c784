"""Trust primitives: tokens, rate limiting, cookie policy, allowed origins."""

from trustgate.security.cookies import SessionCookiePolicy, resolve_cookie_policy
from trustgate.security.origins import is_origin_allowed, resolve_allowed_origins
from trustgate.security.rate_limiter import RateLimitDecision, RateLimiter
from trustgate.security.tokens import TokenCheck, TokenIssuer, TokenValidator

__all__ = [
    "RateLimitDecision",
    "RateLimiter",
    "SessionCookiePolicy",
    "TokenCheck",
    "TokenIssuer",
    "TokenValidator",
    "is_origin_allowed",
    "resolve_allowed_origins",
    "resolve_cookie_policy",
]
