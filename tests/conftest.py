"""
Shared fixtures: a scriptable fake network and fresh offline components per test.
"""

import asyncio
import json
from typing import Callable, Dict, List, Optional, Union

import pytest

from guardsync.cache.manager import CacheManager
from guardsync.cache.storage import InMemoryCacheStorage
from guardsync.cache.types import Request, Response
from guardsync.core.outbox import OutboxStore
from guardsync.worker.network import INetwork, NetworkError
from guardsync.worker.notifications import ClientRegistry, NotificationGateway, NotificationTray

TEST_ORIGIN = "https://trafficguard.test"

Route = Union[Response, Callable[[Request], Response]]


class FakeNetwork(INetwork):
    """INetwork double: answers from a route table, can go offline or hang per URL."""

    def __init__(self, online: bool = True):
        self.online = online
        self.routes: Dict[str, Route] = {}
        self.calls: List[Request] = []
        self.failing_urls = set()
        self.hanging_urls = set()

    async def init(self) -> None:
        pass

    async def teardown(self) -> None:
        pass

    def route(self, method: str, url: str, status: int = 200, json_body=None, body: bytes = b"",
              headers: Optional[Dict[str, str]] = None):
        if json_body is not None:
            self.routes[f"{method} {url}"] = Response.from_json(status, json_body, headers)
        else:
            self.routes[f"{method} {url}"] = Response(status=status, headers=headers or {}, body=body)

    async def fetch(self, request: Request, timeout: Optional[float] = None) -> Response:
        self.calls.append(request)
        if not self.online or request.url in self.failing_urls:
            raise NetworkError(f"offline: {request.method} {request.url}")
        if request.url in self.hanging_urls:
            await asyncio.sleep(3600)

        route = self.routes.get(f"{request.method} {request.url}")
        if route is None:
            return Response(status=404, body=b"not found")
        if callable(route):
            return route(request)
        return Response(status=route.status, headers=dict(route.headers), body=route.body)

    def sent(self, method: str, url: str) -> List[Request]:
        return [r for r in self.calls if r.method == method and r.url == url]

    def sent_json(self, method: str, url: str) -> List[dict]:
        return [json.loads(r.body) for r in self.sent(method, url)]


class RecordingClients(ClientRegistry):
    """ClientRegistry that remembers every window it opened."""

    def __init__(self):
        super().__init__()
        self.opened: List[str] = []

    async def open_window(self, url: str):
        self.opened.append(url)
        return await super().open_window(url)


@pytest.fixture
def network():
    return FakeNetwork()


@pytest.fixture
def outbox_path(tmp_path):
    return str(tmp_path / "outbox.db")


@pytest.fixture
async def outbox(outbox_path):
    store = OutboxStore(outbox_path)
    await store.init()
    yield store
    await store.teardown()


@pytest.fixture
def cache_storage():
    return InMemoryCacheStorage()


@pytest.fixture
async def cache_manager(cache_storage, network):
    manager = CacheManager(cache_storage, network, origin=TEST_ORIGIN)
    await manager.init()
    yield manager
    await manager.teardown()


@pytest.fixture
def tray():
    return NotificationTray("granted")


@pytest.fixture
def clients():
    return RecordingClients()


@pytest.fixture
def gateway(tray, clients):
    return NotificationGateway(tray, clients)
