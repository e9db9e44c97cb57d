"""Shared doubles for gateway, shared store and clock."""

import asyncio
import json
from datetime import date

import httpx
import pytest

from paybroker.gateway.client import GatewayClient


BASE_URL = "https://gateway.test"
PAYMENT_PAGE_URL = "https://pay.gateway.test/checkout"
TODAY = date(2026, 10, 19)


class MemoryStore:
    """In-process stand-in for the shared store's SET NX EX."""

    def __init__(self) -> None:
        self.keys: dict[str, str] = {}
        self.calls: list[tuple[str, str, int]] = []
        self.fail: Exception | None = None

    async def set_if_absent(self, key: str, value: str, ttl_seconds: int) -> bool:
        self.calls.append((key, value, ttl_seconds))
        if self.fail is not None:
            raise self.fail
        if key in self.keys:
            return False
        self.keys[key] = value
        return True


class FakeClock:
    def __init__(self, now: float = 1_000_000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


class CredentialEndpoint:
    """Async credential source that counts calls and can be slowed down."""

    def __init__(self, response=None, delay: float = 0.01) -> None:
        self.response = response if response is not None else {"data": {"token": "tok-1", "expires_in": 3600}}
        self.delay = delay
        self.calls = 0

    async def fetch_credential(self, client_id: str, client_secret: str):
        self.calls += 1
        await asyncio.sleep(self.delay)
        if isinstance(self.response, Exception):
            raise self.response
        return self.response


class GatewayStub:
    """`httpx.MockTransport` handler serving the token and session endpoints.

    Replies are `(status, body)` pairs; a dict body is sent as JSON, a str body
    as raw text, and an exception is raised as a transport failure.
    """

    def __init__(self) -> None:
        self.token_reply = (200, {"data": {"token": "tok-1", "expires_in": 3600}})
        self.session_reply = (200, {"data": {"id": "sess-1", "sessionInfo": {"status": "Created"}}})
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if request.url.path == "/api/v1/token":
            return self._reply(request, self.token_reply)
        if request.url.path == "/api/v1/sessions":
            return self._reply(request, self.session_reply)
        return httpx.Response(404, text="not found")

    def _reply(self, request: httpx.Request, reply) -> httpx.Response:
        if isinstance(reply, Exception):
            raise reply
        status, body = reply
        if isinstance(body, str):
            return httpx.Response(status, text=body)
        return httpx.Response(status, json=body)

    def calls(self, path: str) -> list[httpx.Request]:
        return [r for r in self.requests if r.url.path == path]

    def session_bodies(self) -> list[dict]:
        return [json.loads(r.content) for r in self.calls("/api/v1/sessions")]


@pytest.fixture
def store() -> MemoryStore:
    return MemoryStore()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def gateway_stub() -> GatewayStub:
    return GatewayStub()


@pytest.fixture
def make_gateway():
    """Build a `GatewayClient` whose HTTP traffic goes to `handler`."""

    def factory(handler) -> GatewayClient:
        http = httpx.AsyncClient(base_url=BASE_URL, transport=httpx.MockTransport(handler))
        return GatewayClient(BASE_URL, http=http, service_name="test")

    return factory
