"""Async HTTP client that speaks the gateway's token protocol.

Keeps the current anti-forgery token in memory, attaches it to mutations,
and refreshes it at most once per request when the server reports
``invalid_token`` (typically expiry). It never loops: a second rejection is
returned to the caller as-is.
"""

from __future__ import annotations

import asyncio
from typing import Any, Optional

import httpx

from trustgate.config.settings import TOKEN_ENDPOINT_PATH
from trustgate.core.logging import get_logger

logger = get_logger(__name__)

SAFE_METHODS = frozenset({"GET", "HEAD", "OPTIONS"})


def _error_code(response: httpx.Response) -> Optional[str]:
    try:
        body = response.json()
    except ValueError:
        return None
    if isinstance(body, dict) and isinstance(body.get("error"), dict):
        return body["error"].get("code")
    return None


class GatewayClient:
    """Wraps an ``httpx.AsyncClient`` with token fetch and capped retry."""

    MAX_TOKEN_REFRESHES = 1

    def __init__(
        self,
        client: httpx.AsyncClient,
        *,
        header_name: str = "X-CSRF-Token",
        token_path: str = TOKEN_ENDPOINT_PATH,
    ):
        self._client = client
        self.header_name = header_name
        self.token_path = token_path
        self._token: Optional[str] = None
        self._lock = asyncio.Lock()

    @property
    def token(self) -> Optional[str]:
        return self._token

    def invalidate_token(self) -> None:
        self._token = None

    async def fetch_token(self) -> Optional[str]:
        """Fetch a fresh token; None when the caller is not authenticated.

        Raises:
            httpx.HTTPStatusError: If the token endpoint refuses (e.g. 429).
        """
        response = await self._client.get(self.token_path)
        response.raise_for_status()
        data = response.json()
        self._token = data.get("token") if data.get("authenticated") else None
        if self._token is None:
            logger.info("Token endpoint reports an unauthenticated caller")
        return self._token

    async def get_token(self) -> Optional[str]:
        """Current token, fetching one if none is held.

        Concurrent callers share a single fetch.
        """
        if self._token:
            return self._token
        async with self._lock:
            if self._token:
                return self._token
            return await self.fetch_token()

    async def request(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        """Send a request, attaching the token to mutations.

        On ``403 invalid_token`` the token is refreshed and the request
        retried once.
        """
        if method.upper() in SAFE_METHODS:
            return await self._client.request(method, url, **kwargs)

        refreshes = 0
        while True:
            token = await self.get_token()
            headers = dict(kwargs.pop("headers", None) or {})
            if token:
                headers[self.header_name] = token
            else:
                headers.pop(self.header_name, None)
            response = await self._client.request(method, url, headers=headers, **kwargs)
            kwargs["headers"] = headers

            if (
                response.status_code == 403
                and _error_code(response) == "invalid_token"
                and refreshes < self.MAX_TOKEN_REFRESHES
            ):
                refreshes += 1
                logger.info("Anti-forgery token rejected, refreshing once", data={"url": url})
                self.invalidate_token()
                continue
            return response

    async def post(self, url: str, **kwargs: Any) -> httpx.Response:
        return await self.request("POST", url, **kwargs)

    async def put(self, url: str, **kwargs: Any) -> httpx.Response:
        return await self.request("PUT", url, **kwargs)

    async def patch(self, url: str, **kwargs: Any) -> httpx.Response:
        return await self.request("PATCH", url, **kwargs)

    async def delete(self, url: str, **kwargs: Any) -> httpx.Response:
        return await self.request("DELETE", url, **kwargs)

    async def get(self, url: str, **kwargs: Any) -> httpx.Response:
        return await self.request("GET", url, **kwargs)
