"""The gateway service object.

Everything the request gate needs (signing keys, counters, resolved cookie
policy and origins) lives on one ``TrustGateway`` built when the app is
created and handed to handlers through ``app.state``. There are no
module-level singletons, so tests and embedding apps can build as many
independent gateways as they like.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Optional

from trustgate.config.settings import Settings
from trustgate.core.exceptions import RateLimitedError
from trustgate.core.limits import RateLimitStore
from trustgate.core.limits.factory import get_store_from_settings
from trustgate.core.logging import get_logger
from trustgate.core.startup_checks import assert_gateway_settings
from trustgate.gate.identity import Identity
from trustgate.security.cookies import SessionCookiePolicy, resolve_cookie_policy
from trustgate.security.origins import resolve_allowed_origins
from trustgate.security.rate_limiter import RateLimiter
from trustgate.security.tokens import TokenCheck, TokenIssuer, TokenValidator

logger = get_logger(__name__)


@dataclass(frozen=True)
class IssuedToken:
    """Body of the token-fetch response."""

    token: Optional[str]
    authenticated: bool
    expires_in_seconds: int

    def as_response(self) -> dict:
        return {
            "token": self.token,
            "authenticated": self.authenticated,
            "expiresInSeconds": self.expires_in_seconds,
        }


class TrustGateway:
    """Issues and checks anti-forgery tokens and holds the resolved policy."""

    def __init__(
        self,
        *,
        issuer: TokenIssuer,
        validator: TokenValidator,
        rate_limiter: RateLimiter,
        cookie_policy: SessionCookiePolicy,
        allowed_origins: list[str],
        header_name: str = "X-CSRF-Token",
        exempt_paths: frozenset[str] = frozenset(),
    ):
        self.issuer = issuer
        self.validator = validator
        self.rate_limiter = rate_limiter
        self.cookie_policy = cookie_policy
        self.allowed_origins = tuple(allowed_origins)
        self.header_name = header_name
        self.exempt_paths = exempt_paths

    @property
    def token_ttl_seconds(self) -> int:
        return self.validator.ttl_seconds

    @staticmethod
    def rate_limit_key(identity: Identity, client_ip: str) -> str:
        if identity.is_authenticated:
            return f"csrf:user:{identity.identity_id}"
        return f"csrf:ip:{client_ip}"

    async def issue_token(self, identity: Identity, client_ip: str) -> IssuedToken:
        """Consume an issuance slot and mint a token for ``identity``.

        Anonymous callers also consume a slot (keyed by address) and get
        ``token=None``.

        Raises:
            RateLimitedError: When the quota is exhausted or the counter
                store is unavailable.
            TokenIssuanceError: When the identity cannot be bound.
        """
        key = self.rate_limit_key(identity, client_ip)
        decision = await self.rate_limiter.allow(key)
        if not decision.allowed:
            logger.warning(
                "Token issuance rate limited",
                data={
                    "key": key,
                    "reason": decision.reason,
                    "retry_after_seconds": decision.retry_after_seconds,
                },
            )
            raise RateLimitedError(decision.retry_after_seconds)

        token = self.issuer.issue(identity.identity_id)
        if token is None:
            return IssuedToken(token=None, authenticated=False, expires_in_seconds=0)
        return IssuedToken(
            token=token,
            authenticated=True,
            expires_in_seconds=self.token_ttl_seconds,
        )

    def check_token(self, token: Optional[str], identity: Identity) -> TokenCheck:
        return self.validator.inspect(token, identity.identity_id)

    def is_exempt(self, path: str) -> bool:
        return (path.rstrip("/") or "/") in self.exempt_paths

    def log_startup_diagnostics(self) -> None:
        """Report the resolved trust boundary for operators and audit."""
        logger.info(
            "Resolved session cookie policy",
            data=self.cookie_policy.as_log_data(),
        )
        logger.info(
            "Resolved allowed origins",
            data={"origins": list(self.allowed_origins)},
        )
        logger.info(
            "Anti-forgery token settings",
            data={
                "header": self.header_name,
                "ttl_seconds": self.token_ttl_seconds,
                "rate_limit_quota": self.rate_limiter.quota,
                "rate_limit_window_seconds": self.rate_limiter.window_seconds,
            },
        )

    async def aclose(self) -> None:
        await self.rate_limiter.aclose()


def build_gateway(
    settings: Settings,
    *,
    clock: Optional[Callable[[], int]] = None,
    store: Optional[RateLimitStore] = None,
) -> TrustGateway:
    """Validate configuration and assemble a gateway.

    Raises:
        ConfigurationError: If any part of the trust boundary is misconfigured.
    """
    assert_gateway_settings(settings)
    cookie_policy = resolve_cookie_policy(settings)
    allowed_origins = resolve_allowed_origins(
        settings.cors_origins,
        production=settings.is_production,
    )

    rate_limiter = RateLimiter(
        store or get_store_from_settings(settings),
        quota=settings.csrf_rate_limit_quota,
        window_seconds=settings.csrf_rate_limit_window_seconds,
        timeout_seconds=settings.limits_store_timeout_ms / 1000,
    )

    return TrustGateway(
        issuer=TokenIssuer(settings.csrf_secret, clock=clock),
        validator=TokenValidator(
            settings.csrf_secret,
            ttl_seconds=settings.csrf_token_ttl_seconds,
            clock=clock,
        ),
        rate_limiter=rate_limiter,
        cookie_policy=cookie_policy,
        allowed_origins=allowed_origins,
        header_name=settings.csrf_header_name,
        exempt_paths=frozenset(p.rstrip("/") or "/" for p in settings.exempt_paths),
    )
