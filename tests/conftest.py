"""Shared fixtures: SQLite stores on tmp_path and a fake HTTP endpoint."""

import json

import httpx
import pytest

from jellyhook.config import DeliveryConfig
from jellyhook.store.analytics import PlaybackAnalytics
from jellyhook.store.webhooks import WebhookRegistry, WebhookStore
from jellyhook.webhooks.delivery import HttpSender
from jellyhook.webhooks.dispatcher import WebhookDispatcher


class FakeEndpoint:
    """Records every request; URLs can be set to fail or return a status."""

    def __init__(self) -> None:
        self.requests: list[httpx.Request] = []
        self.statuses: dict[str, int] = {}
        self.failing: set[str] = set()
        self.transport = httpx.MockTransport(self._handle)

    def _handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        url = str(request.url)
        if url in self.failing:
            raise httpx.ConnectError("connection refused", request=request)
        return httpx.Response(self.statuses.get(url, 200), text="ok")

    def to(self, url: str) -> list[httpx.Request]:
        return [r for r in self.requests if str(r.url) == url]

    @staticmethod
    def body(request: httpx.Request):
        return json.loads(request.content)


@pytest.fixture
async def store(tmp_path):
    s = WebhookStore(tmp_path / "jellyhook.db")
    await s.start()
    yield s
    await s.stop()


@pytest.fixture
async def analytics(tmp_path):
    a = PlaybackAnalytics(tmp_path / "jellyhook.db")
    await a.start()
    yield a
    await a.stop()


@pytest.fixture
def registry(store):
    return WebhookRegistry(store)


@pytest.fixture
def endpoint():
    return FakeEndpoint()


@pytest.fixture
def delivery_config():
    return DeliveryConfig()


@pytest.fixture
async def sender(endpoint, delivery_config):
    s = HttpSender(delivery_config, transport=endpoint.transport)
    yield s
    await s.close()


@pytest.fixture
def dispatcher(registry, sender, delivery_config):
    return WebhookDispatcher(registry, sender, delivery_config)
