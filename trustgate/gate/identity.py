"""Identity collaborator interface.

The gateway never authenticates credentials. An identity provider supplied
by the embedding application tells it, per request, who the caller is.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Protocol

from starlette.requests import Request

from trustgate.core.logging import get_logger
from trustgate.core.middleware import is_trusted_proxy

logger = get_logger(__name__)


@dataclass(frozen=True)
class Identity:
    """Authenticated identity id, or None for an anonymous caller."""

    identity_id: Optional[str] = None

    @classmethod
    def anonymous(cls) -> "Identity":
        return cls(None)

    @property
    def is_authenticated(self) -> bool:
        return bool(self.identity_id)


class IdentityProvider(Protocol):
    """Resolves the caller's identity for one request."""

    async def identify(self, request: Request) -> Identity:
        ...


class TrustedHeaderIdentityProvider:
    """Reads the identity asserted by an authenticating reverse proxy.

    The header is honoured only when the direct peer is a trusted proxy;
    from anyone else it is ignored and the caller is anonymous.
    """

    def __init__(self, header_name: str = "X-Authenticated-User"):
        self.header_name = header_name

    async def identify(self, request: Request) -> Identity:
        value = (request.headers.get(self.header_name) or "").strip()
        if not value:
            return Identity.anonymous()

        peer = request.client.host if request.client else None
        if not is_trusted_proxy(peer):
            logger.warning(
                "Identity header from untrusted peer ignored",
                data={"header": self.header_name, "client_ip": peer},
            )
            return Identity.anonymous()
        return Identity(value)


async def resolve_identity(request: Request) -> Identity:
    """Identify the caller once per request, caching on ``request.state``."""
    cached = getattr(request.state, "identity", None)
    if isinstance(cached, Identity):
        return cached
    provider: IdentityProvider = request.app.state.identity_provider
    identity = await provider.identify(request)
    request.state.identity = identity
    return identity
