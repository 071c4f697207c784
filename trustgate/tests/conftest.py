"""Shared fixtures for trustgate tests."""

from typing import Callable, Optional

import pytest
from fastapi import FastAPI, HTTPException, Request, Response
from fastapi.responses import JSONResponse
from fastapi.testclient import TestClient

from trustgate.config import get_settings
from trustgate.gate.identity import Identity
from trustgate.gate.service import build_gateway
from trustgate.main import create_app

TEST_USER_HEADER = "X-Test-User"


class FakeClock:
    """Manually advanced clock in epoch milliseconds."""

    def __init__(self, start_ms: int = 1_700_000_000_000):
        self.now_ms = start_ms

    def __call__(self) -> int:
        return self.now_ms

    def advance(self, seconds: float) -> None:
        self.now_ms += int(seconds * 1000)


class FakeMonotonic:
    """Manually advanced monotonic clock in seconds."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class HeaderIdentityProvider:
    """Test identity collaborator: trusts a header from any peer."""

    async def identify(self, request: Request) -> Identity:
        return Identity(request.headers.get(TEST_USER_HEADER) or None)


def add_business_routes(app: FastAPI) -> None:
    """Stand-in business endpoints guarded by the gate."""

    @app.get("/api/items")
    async def list_items():
        return {"items": []}

    @app.post("/api/items")
    async def create_item():
        return {"created": True}

    @app.delete("/api/items/{item_id}")
    async def delete_item(item_id: str):
        return {"deleted": item_id}

    @app.post("/api/login")
    async def login(response: Response):
        # Deliberately weak attributes; the gate must rewrite them
        response.set_cookie("trustgate_session", "session-value", samesite="none", secure=False)
        return {"ok": True}

    @app.post("/api/login-fails")
    async def login_fails():
        raise HTTPException(
            status_code=400,
            detail="bad credentials",
            headers={"Set-Cookie": "trustgate_session=; Max-Age=0; Path=/"},
        )

    @app.post("/api/login-partitioned")
    async def login_partitioned():
        response = JSONResponse({"ok": True})
        response.raw_headers.append(
            (b"set-cookie", b"trustgate_session=abc; Path=/; SameSite=None; Partitioned")
        )
        return response


@pytest.fixture
def fresh_settings(monkeypatch) -> Callable[..., None]:
    """Set environment overrides and reset the settings cache."""

    def _apply(**env: str) -> None:
        for key, value in env.items():
            monkeypatch.setenv(key.upper(), value)
        get_settings.cache_clear()

    yield _apply
    get_settings.cache_clear()


@pytest.fixture
def make_app(fresh_settings) -> Callable[..., FastAPI]:
    """Build an app with test identity provider and business routes."""

    def _make(clock: Optional[FakeClock] = None, **env: str) -> FastAPI:
        env.setdefault("CSRF_EXEMPT_PATHS", "/api/login,/api/login-fails,/api/login-partitioned")
        fresh_settings(**env)
        app = create_app()
        if clock is not None:
            app.state.gateway = build_gateway(get_settings(), clock=clock)
        app.state.identity_provider = HeaderIdentityProvider()
        add_business_routes(app)
        return app

    return _make


@pytest.fixture
def client_for(make_app) -> Callable[..., TestClient]:
    def _client(**kwargs) -> TestClient:
        return TestClient(make_app(**kwargs))

    return _client


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def fake_monotonic() -> FakeMonotonic:
    return FakeMonotonic()


@pytest.fixture
def get_token() -> Callable[[TestClient, str], str]:
    """Fetch a token for ``user`` through the token endpoint."""

    def _fetch(client: TestClient, user: str) -> str:
        res = client.get("/api/csrf/token", headers={TEST_USER_HEADER: user})
        assert res.status_code == 200, res.text
        body = res.json()
        assert body["authenticated"] is True
        return body["token"]

    return _fetch
