"""Allowed cross-origin set: parsing, sanitizing and matching.

The set is resolved once at startup. Anything that cannot be reduced to a
clean ``scheme://host[:port]`` is a fatal configuration error rather than a
request-time rejection, so a typo never silently narrows or widens the trust
boundary.
"""

from __future__ import annotations

import ipaddress
from typing import Iterable, Optional
from urllib.parse import urlsplit

from trustgate.core.exceptions import ConfigurationError
from trustgate.core.logging import get_logger

logger = get_logger(__name__)

DEFAULT_ORIGIN = "http://localhost:5174"
WILDCARD = "*"
ALLOWED_SCHEMES = ("http", "https")
_DEFAULT_PORTS = {"http": 80, "https": 443}


def _is_loopback(hostname: str) -> bool:
    if hostname == "localhost" or hostname.endswith(".localhost"):
        return True
    try:
        return ipaddress.ip_address(hostname).is_loopback
    except ValueError:
        return False


def _format_origin(scheme: str, hostname: str, port: Optional[int]) -> str:
    host = f"[{hostname}]" if ":" in hostname else hostname
    if port is None or port == _DEFAULT_PORTS[scheme]:
        return f"{scheme}://{host}"
    return f"{scheme}://{host}:{port}"


def normalize_origin(origin: str) -> Optional[str]:
    """Reduce a presented Origin header to canonical form, or None.

    The literal ``null`` origin (opaque browser contexts), userinfo, unknown
    schemes and unparseable values never normalize.
    """
    if not origin or origin.strip().lower() == "null":
        return None
    try:
        parts = urlsplit(origin.strip())
        scheme = parts.scheme.lower()
        if scheme not in ALLOWED_SCHEMES or "@" in parts.netloc:
            return None
        hostname = parts.hostname
        if not hostname:
            return None
        return _format_origin(scheme, hostname.lower(), parts.port)
    except ValueError:
        return None


def _sanitize_entry(entry: str, *, production: bool) -> tuple[str, list[str]]:
    """Validate one configured origin; return it with any warnings."""
    warnings: list[str] = []

    try:
        parts = urlsplit(entry)
    except ValueError as exc:
        raise ConfigurationError(f'Invalid CORS origin "{entry}": {exc}') from exc

    scheme = parts.scheme.lower()
    if scheme not in ALLOWED_SCHEMES:
        raise ConfigurationError(
            f'Invalid CORS origin "{entry}": only http:// and https:// origins are allowed.'
        )

    if "@" in parts.netloc:
        raise ConfigurationError(
            f'Invalid CORS origin "{entry}": origins with embedded credentials '
            "(username:password@) are not allowed."
        )

    hostname = parts.hostname
    if not hostname:
        raise ConfigurationError(f'Invalid CORS origin "{entry}": missing host.')

    try:
        port = parts.port
    except ValueError as exc:
        raise ConfigurationError(f'Invalid CORS origin "{entry}": invalid port.') from exc

    if parts.path not in ("", "/") or parts.query or parts.fragment:
        warnings.append(
            f'CORS origin "{entry}" contains a path, query, or fragment; '
            "only scheme://host[:port] will be used."
        )

    hostname = hostname.lower()
    origin = _format_origin(scheme, hostname, port)

    if production and scheme == "http":
        warnings.append(f'CORS origin "{origin}" uses HTTP in production; HTTPS should be used.')

    if production and _is_loopback(hostname):
        warnings.append(
            f'CORS origin "{origin}" points to a loopback host in production; '
            "this is likely a misconfiguration."
        )

    return origin, warnings


def resolve_allowed_origins(raw: Optional[str], *, production: bool = False) -> list[str]:
    """Parse and validate a comma-separated allowed-origins list.

    Entries are kept in input order with trailing slashes stripped and
    duplicates dropped. An empty or unset list resolves to DEFAULT_ORIGIN.

    Raises:
        ConfigurationError: On the first malformed entry.
    """
    candidates = [c.strip() for c in (raw or "").split(",")]
    candidates = [c for c in candidates if c]

    if not candidates:
        logger.warning(
            "No CORS origins configured, using default",
            data={"default": DEFAULT_ORIGIN},
        )
        return [DEFAULT_ORIGIN]

    resolved: list[str] = []
    warnings: list[str] = []
    for candidate in candidates:
        if candidate == WILDCARD:
            warnings.append(
                "CORS_ORIGINS=* allows credentialed requests from ANY origin. "
                "This should never be used in production."
            )
            origin = WILDCARD
        else:
            origin, entry_warnings = _sanitize_entry(candidate, production=production)
            warnings.extend(entry_warnings)
        if origin not in resolved:
            resolved.append(origin)

    for message in warnings:
        logger.warning(message, data={"setting": "cors_origins"})

    return resolved


def is_origin_allowed(origin: Optional[str], allowed: Iterable[str]) -> bool:
    """Exact scheme+host+port match of a presented origin against the set.

    Prevents suffix and substring bypasses such as
    ``https://app.example.com.evil.test`` matching ``https://app.example.com``.
    """
    allowed = list(allowed)
    normalized = normalize_origin(origin or "")
    if normalized is None:
        return False
    if WILDCARD in allowed:
        return True
    return normalized in allowed
