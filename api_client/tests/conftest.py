"""
Fixtures for api_client tests: a scripted backend on httpx.MockTransport and a gateway factory.
"""
import asyncio
import json
from contextlib import asynccontextmanager

import httpx
import pytest

from api_client import events
from api_client.gateway import ApiGateway
from api_client.token_store import MemoryTokenStore
from dev_backend import store as dev_store

BASE_URL = "http://backend.test"
REFRESH_URL_PATH = "/api/auth/refresh-token"


class FakeBackend:
    """
    Accepts only `valid_token`; any other bearer token gets 401 TOKEN_EXPIRED.
    The refresh endpoint hands out the current `valid_token` for `refresh_token`.
    `refresh_gate` (an asyncio.Event) holds refresh responses until set; `hold` does the same per path.
    """

    def __init__(self, valid_token: str = "fresh-at", refresh_token: str = "rt"):
        self.valid_token = valid_token
        self.refresh_token = refresh_token
        self.refresh_status = 200
        self.refresh_delay = 0.0
        self.refresh_gate: asyncio.Event | None = None
        self.refresh_calls = 0
        self.fixed: dict[str, tuple[int, object]] = {}
        self.always_expired: set[str] = set()
        self.hold: dict[str, asyncio.Event] = {}
        # (method, path, bearer token or None, json body or None) in arrival order
        self.requests: list[tuple[str, str, str | None, object]] = []

    async def handler(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path
        if path == REFRESH_URL_PATH:
            return await self._refresh(request)

        auth = request.headers.get("Authorization", "")
        token = auth[len("Bearer "):] if auth.startswith("Bearer ") else None
        body = json.loads(request.content) if request.content else None
        self.requests.append((request.method, path, token, body))

        if path in self.hold:
            await self.hold[path].wait()
        if path in self.fixed:
            status, payload = self.fixed[path]
            if isinstance(payload, (bytes, str)):
                return httpx.Response(status, content=payload)
            return httpx.Response(status, json=payload)
        if path in self.always_expired or token != self.valid_token:
            return httpx.Response(401, json={"success": False, "code": "TOKEN_EXPIRED", "message": "Token expired"})
        return httpx.Response(200, json={"success": True, "data": {"path": path, "method": request.method}})

    async def _refresh(self, request: httpx.Request) -> httpx.Response:
        self.refresh_calls += 1
        if self.refresh_gate is not None:
            await self.refresh_gate.wait()
        elif self.refresh_delay:
            await asyncio.sleep(self.refresh_delay)
        sent = json.loads(request.content).get("refreshToken")
        if self.refresh_status != 200:
            return httpx.Response(self.refresh_status, json={"success": False, "message": "Refresh failed"})
        if sent != self.refresh_token:
            return httpx.Response(401, json={"success": False, "message": "Invalid refresh token"})
        return httpx.Response(200, json={"success": True, "data": {"accessToken": self.valid_token}})

    def replays(self) -> list[str]:
        """Paths requested with the currently valid token, in order."""
        return [path for _, path, token, _ in self.requests if token == self.valid_token]


@pytest.fixture
def backend():
    return FakeBackend()


@pytest.fixture
def token_store():
    return MemoryTokenStore(access_token="stale-at", refresh_token="rt")


@pytest.fixture
def make_gateway(backend, token_store):
    """Factory: `async with make_gateway(**kwargs) as gw` yields a gateway wired to the fake backend."""

    @asynccontextmanager
    async def _make(**kwargs):
        async with httpx.AsyncClient(transport=httpx.MockTransport(backend.handler)) as client:
            yield ApiGateway(BASE_URL, token_store=token_store, client=client, **kwargs)

    return _make


@pytest.fixture
def logout_events():
    """Collect auth:logout notifications for the duration of a test."""
    received: list[dict] = []

    def _handler(**payload):
        received.append(payload)

    events.subscribe(events.AUTH_LOGOUT, _handler)
    yield received
    events.unsubscribe(events.AUTH_LOGOUT, _handler)


@pytest.fixture
def fresh_dev_backend():
    """Reset the development backend's in-memory state around a test."""
    dev_store.reset()
    yield dev_store
    dev_store.reset()
