"""Session cookie security attributes.

The identity collaborator owns the session cookie's value; this module owns
its SameSite/Secure/HttpOnly attributes. The policy is resolved once from
configuration when the app is built and never changes afterwards.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Literal, Optional

from starlette.responses import Response

from trustgate.config.settings import Settings
from trustgate.core.exceptions import ConfigurationError
from trustgate.core.logging import get_logger

logger = get_logger(__name__)

SameSite = Literal["strict", "lax", "none"]
SAME_SITE_VALUES: frozenset[str] = frozenset({"strict", "lax", "none"})


@dataclass(frozen=True)
class SessionCookiePolicy:
    """Resolved attributes applied to every session cookie we emit."""

    name: str
    same_site: SameSite
    secure: bool
    max_age_seconds: int
    domain: Optional[str] = None
    path: str = "/"
    http_only: bool = field(default=True, init=False)
    warnings: tuple[str, ...] = field(default=(), compare=False)

    def __post_init__(self) -> None:
        if self.same_site == "none" and not self.secure:
            raise ValueError("SameSite=None requires Secure")

    @property
    def header_same_site(self) -> str:
        """SameSite value as sent in Set-Cookie (browsers expect "None", "Lax", "Strict")."""
        return self.same_site.capitalize()

    def as_log_data(self) -> dict:
        return {
            "name": self.name,
            "same_site": self.same_site,
            "secure": self.secure,
            "http_only": self.http_only,
            "max_age_seconds": self.max_age_seconds,
            "domain": self.domain,
        }


def resolve_cookie_policy(settings: Settings) -> SessionCookiePolicy:
    """Derive the session cookie policy from configuration.

    Raises:
        ConfigurationError: If the SameSite override is not strict/lax/none.
    """
    production = settings.is_production
    warnings: list[str] = []

    override = settings.cookie_samesite
    if override is not None and override not in SAME_SITE_VALUES:
        raise ConfigurationError(
            f"COOKIE_SAMESITE must be one of: strict, lax, none (got {override!r})"
        )

    same_site = override or ("strict" if production else "lax")
    secure = settings.cookie_secure if settings.cookie_secure is not None else production

    if same_site == "none" and not secure:
        secure = True
        warnings.append(
            "COOKIE_SAMESITE=none requires Secure cookies; forcing Secure=true. "
            "Set COOKIE_SECURE=true explicitly to silence this warning."
        )

    if production and same_site == "lax":
        warnings.append(
            "COOKIE_SAMESITE=lax in production allows top-level navigation requests "
            "to carry the session cookie. Consider COOKIE_SAMESITE=strict."
        )

    if same_site == "none":
        warnings.append(
            "COOKIE_SAMESITE=none sends the session cookie on cross-site requests; "
            "anti-forgery tokens are the only remaining CSRF defence."
        )

    for message in warnings:
        logger.warning(message, data={"setting": "cookie_samesite"})

    return SessionCookiePolicy(
        name=settings.session_cookie_name,
        same_site=same_site,
        secure=secure,
        max_age_seconds=settings.session_ttl_seconds,
        domain=settings.cookie_domain or None,
        warnings=tuple(warnings),
    )


def set_session_cookie(response: Response, value: str, policy: SessionCookiePolicy) -> None:
    """Write the session cookie with the policy's attributes."""
    response.set_cookie(
        key=policy.name,
        value=value,
        max_age=policy.max_age_seconds,
        path=policy.path,
        domain=policy.domain,
        secure=policy.secure,
        httponly=policy.http_only,
        samesite=policy.same_site,
    )


def clear_session_cookie(response: Response, policy: SessionCookiePolicy) -> None:
    """Expire the session cookie; attributes must match for browsers to drop it."""
    response.delete_cookie(
        key=policy.name,
        path=policy.path,
        domain=policy.domain,
        secure=policy.secure,
        httponly=policy.http_only,
        samesite=policy.same_site,
    )


_MAX_AGE_RE = re.compile(r"-?[0-9]+")


def _is_header_safe(text: str) -> bool:
    return all(0x20 <= ord(ch) < 0x7F or 0xA0 <= ord(ch) <= 0xFF for ch in text)


def _split_set_cookie(header: str) -> tuple[str, str, dict[str, str]]:
    """Split a Set-Cookie value into name, raw value and lower-cased attributes."""
    pair, *attributes = header.split(";")
    name, _, value = pair.partition("=")
    attrs: dict[str, str] = {}
    for attribute in attributes:
        key, _, attr_value = attribute.partition("=")
        attrs[key.strip().lower()] = attr_value.strip()
    return name.strip(), value.strip(), attrs


def _render_cookie(
    value: str,
    max_age: Optional[str],
    expires: Optional[str],
    policy: SessionCookiePolicy,
) -> str:
    parts = [f"{policy.name}={value}", f"Path={policy.path}"]
    if policy.domain:
        parts.append(f"Domain={policy.domain}")
    if max_age:
        parts.append(f"Max-Age={max_age}")
    if expires:
        parts.append(f"expires={expires}")
    if policy.secure:
        parts.append("Secure")
    parts.append("HttpOnly")
    parts.append(f"SameSite={policy.header_same_site}")
    return "; ".join(parts)


def enforce_cookie_policy(response: Response, policy: SessionCookiePolicy) -> int:
    """Rewrite any session Set-Cookie header so its attributes match ``policy``.

    Business handlers may set the session cookie however they like; what
    leaves the gateway always carries the resolved attributes. The cookie's
    raw value and lifetime (Max-Age/Expires, used for deletion) are preserved.
    Every other attribute is discarded, unknown flags included. A session
    header whose value or lifetime cannot be carried over is dropped.

    Returns the number of headers rewritten.
    """
    raw_headers = response.raw_headers
    kept: list[tuple[bytes, bytes]] = []
    rewritten = 0
    for name, raw in raw_headers:
        if name.lower() != b"set-cookie":
            kept.append((name, raw))
            continue
        cookie_name, value, attrs = _split_set_cookie(raw.decode("latin-1"))
        if cookie_name != policy.name:
            kept.append((name, raw))
            continue

        max_age = attrs.get("max-age") or None
        expires = attrs.get("expires") or None
        if (
            not _is_header_safe(value)
            or (max_age is not None and not _MAX_AGE_RE.fullmatch(max_age))
            or (expires is not None and not _is_header_safe(expires))
        ):
            logger.warning(
                "Dropped unrepresentable session cookie",
                data={"cookie": policy.name},
            )
            continue

        header = _render_cookie(value, max_age, expires, policy)
        kept.append((name, header.encode("latin-1")))
        rewritten += 1
    raw_headers[:] = kept
    return rewritten
