"""Request gate: the composition point for the trust primitives."""

from trustgate.gate.identity import Identity, IdentityProvider, TrustedHeaderIdentityProvider
from trustgate.gate.middleware import RequestGateMiddleware
from trustgate.gate.service import IssuedToken, TrustGateway, build_gateway

__all__ = [
    "Identity",
    "IdentityProvider",
    "IssuedToken",
    "RequestGateMiddleware",
    "TrustGateway",
    "TrustedHeaderIdentityProvider",
    "build_gateway",
]
