"""Tests for session cookie policy resolution and enforcement."""

import logging

import pytest
from starlette.responses import Response

from trustgate.config import Settings
from trustgate.core.exceptions import ConfigurationError
from trustgate.security.cookies import (
    SessionCookiePolicy,
    clear_session_cookie,
    enforce_cookie_policy,
    resolve_cookie_policy,
    set_session_cookie,
)

pytestmark = pytest.mark.security

SECRET = "cookie-test-secret-0123456789abcdef012345"


def _settings(**overrides) -> Settings:
    overrides.setdefault("csrf_secret", SECRET)
    return Settings(**overrides)


def _set_cookie_headers(response: Response) -> list[str]:
    return [v.decode("latin-1") for k, v in response.raw_headers if k == b"set-cookie"]


class TestResolveCookiePolicy:
    """Tests for resolve_cookie_policy defaults and overrides."""

    def test_production_defaults_to_strict_and_secure(self):
        policy = resolve_cookie_policy(_settings(environment="production"))
        assert policy.same_site == "strict"
        assert policy.secure is True
        assert policy.http_only is True
        assert policy.warnings == ()

    @pytest.mark.parametrize("environment", ["development", "staging", "test"])
    def test_non_production_defaults_to_lax(self, environment):
        policy = resolve_cookie_policy(_settings(environment=environment))
        assert policy.same_site == "lax"
        assert policy.secure is False

    def test_override_is_case_insensitive(self):
        policy = resolve_cookie_policy(_settings(cookie_samesite="  STRICT "))
        assert policy.same_site == "strict"

    def test_blank_override_uses_default(self):
        policy = resolve_cookie_policy(_settings(environment="production", cookie_samesite=""))
        assert policy.same_site == "strict"

    def test_none_without_secure_forces_secure(self, caplog):
        with caplog.at_level(logging.WARNING):
            policy = resolve_cookie_policy(
                _settings(environment="production", cookie_samesite="none", cookie_secure=False)
            )
        assert policy.same_site == "none"
        assert policy.secure is True
        assert any("forcing Secure=true" in w for w in policy.warnings)
        assert "forcing Secure=true" in caplog.text

    def test_none_forces_secure_outside_production(self):
        policy = resolve_cookie_policy(_settings(environment="development", cookie_samesite="none"))
        assert policy.secure is True

    def test_none_with_secure_still_warns(self):
        policy = resolve_cookie_policy(_settings(cookie_samesite="none", cookie_secure=True))
        assert len(policy.warnings) == 1
        assert "cross-site" in policy.warnings[0]

    def test_lax_in_production_warns(self):
        policy = resolve_cookie_policy(_settings(environment="production", cookie_samesite="lax"))
        assert policy.same_site == "lax"
        assert any("Consider COOKIE_SAMESITE=strict" in w for w in policy.warnings)

    def test_lax_in_development_is_quiet(self):
        policy = resolve_cookie_policy(_settings(environment="development", cookie_samesite="lax"))
        assert policy.warnings == ()

    def test_invalid_override_is_fatal(self):
        with pytest.raises(ConfigurationError, match="COOKIE_SAMESITE"):
            resolve_cookie_policy(_settings(cookie_samesite="relaxed"))

    def test_explicit_secure_false_in_production(self):
        policy = resolve_cookie_policy(_settings(environment="production", cookie_secure=False))
        assert policy.same_site == "strict"
        assert policy.secure is False

    def test_policy_rejects_insecure_none(self):
        with pytest.raises(ValueError):
            SessionCookiePolicy(name="s", same_site="none", secure=False, max_age_seconds=60)

    def test_domain_and_lifetime_come_from_settings(self):
        policy = resolve_cookie_policy(
            _settings(cookie_domain="example.com", session_ttl_seconds=120, session_cookie_name="sid")
        )
        assert policy.domain == "example.com"
        assert policy.max_age_seconds == 120
        assert policy.name == "sid"


class TestCookieWriters:
    """Tests for set/clear helpers and response rewriting."""

    @pytest.fixture
    def policy(self):
        return SessionCookiePolicy(
            name="trustgate_session",
            same_site="strict",
            secure=True,
            max_age_seconds=3600,
        )

    def test_set_session_cookie_applies_policy(self, policy):
        response = Response()
        set_session_cookie(response, "abc", policy)
        (header,) = _set_cookie_headers(response)
        assert header.startswith("trustgate_session=abc")
        assert "HttpOnly" in header
        assert "Secure" in header
        assert "SameSite=strict" in header
        assert "Max-Age=3600" in header

    def test_clear_session_cookie_matches_attributes(self, policy):
        response = Response()
        clear_session_cookie(response, policy)
        (header,) = _set_cookie_headers(response)
        assert "Max-Age=0" in header
        assert "Secure" in header
        assert "SameSite=strict" in header

    def test_enforce_rewrites_weak_session_cookie(self, policy):
        response = Response()
        response.set_cookie("trustgate_session", "abc", samesite="lax", secure=False, httponly=False)
        assert enforce_cookie_policy(response, policy) == 1
        (header,) = _set_cookie_headers(response)
        assert header.startswith("trustgate_session=abc")
        assert "HttpOnly" in header
        assert "Secure" in header
        assert "SameSite=Strict" in header
        assert "SameSite=lax" not in header

    def test_enforce_preserves_deletion(self, policy):
        response = Response()
        response.delete_cookie("trustgate_session")
        enforce_cookie_policy(response, policy)
        (header,) = _set_cookie_headers(response)
        assert "Max-Age=0" in header
        assert "expires=" in header.lower()

    def test_enforce_leaves_other_cookies_alone(self, policy):
        response = Response()
        response.set_cookie("theme", "dark", samesite="lax")
        assert enforce_cookie_policy(response, policy) == 0
        (header,) = _set_cookie_headers(response)
        assert header == "theme=dark; Path=/; SameSite=lax"

    @pytest.mark.parametrize(
        "raw, value",
        [
            ("trustgate_session=abc; Path=/; SameSite=None; Partitioned", "abc"),
            ("trustgate_session=abc; Foo; SameSite=None", "abc"),
            ("trustgate_session=a b; SameSite=None", "a b"),
            ('trustgate_session=ab"c; SameSite=None', 'ab"c'),
        ],
    )
    def test_enforce_rewrites_nonstandard_session_headers(self, policy, raw, value):
        response = Response()
        response.raw_headers.append((b"set-cookie", raw.encode("latin-1")))
        assert enforce_cookie_policy(response, policy) == 1
        (header,) = _set_cookie_headers(response)
        assert header == f"trustgate_session={value}; Path=/; Secure; HttpOnly; SameSite=Strict"

    def test_enforce_keeps_lifetime_and_drops_other_attributes(self, policy):
        response = Response()
        response.raw_headers.append(
            (
                b"set-cookie",
                b"trustgate_session=; Max-Age=0; expires=Thu, 01 Jan 1970 00:00:00 GMT; "
                b"Domain=evil.example; Path=/other",
            )
        )
        enforce_cookie_policy(response, policy)
        (header,) = _set_cookie_headers(response)
        assert header == (
            "trustgate_session=; Path=/; Max-Age=0; expires=Thu, 01 Jan 1970 00:00:00 GMT; "
            "Secure; HttpOnly; SameSite=Strict"
        )

    @pytest.mark.parametrize(
        "raw",
        [
            b"trustgate_session=abc; Max-Age=soon",
            b"trustgate_session=a\x01b; SameSite=None",
        ],
    )
    def test_enforce_drops_unrepresentable_session_cookie(self, policy, raw):
        response = Response()
        response.set_cookie("theme", "dark")
        response.raw_headers.append((b"set-cookie", raw))
        assert enforce_cookie_policy(response, policy) == 0
        headers = _set_cookie_headers(response)
        assert len(headers) == 1
        assert headers[0].startswith("theme=dark")

    def test_enforce_matches_exact_cookie_name(self, policy):
        response = Response()
        response.raw_headers.append((b"set-cookie", b"trustgate_session_hint=1; SameSite=None"))
        assert enforce_cookie_policy(response, policy) == 0
        assert _set_cookie_headers(response) == ["trustgate_session_hint=1; SameSite=None"]
