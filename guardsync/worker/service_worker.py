"""
The offline layer as one explicit object.

Lifecycle: init -> install -> activate -> (intercept | sync | push | click)* -> teardown.
Every intercepted request gets exactly one Response.
"""

import json
from typing import Any, Dict, List, Optional, Tuple

from pydantic import BaseModel, ValidationError

from ..api.schemas import GenericMutationPayload, payload_model_for
from ..cache.fallbacks import (
    network_error_response,
    queued_mutation_response,
    storage_unavailable_response,
)
from ..cache.manager import CacheManager
from ..cache.sqlite_storage import SQLiteCacheStorage
from ..cache.storage import InMemoryCacheStorage
from ..cache.types import Request, Response, ResourceClass
from ..core.config import (
    CACHE_BACKEND,
    CACHE_DB_PATH,
    CONNECTIVITY_SYNC_TAG,
    OUTBOX_DB_PATH,
    PUSH_SUBSCRIBE_URL,
    mutation_routes,
)
from ..core.db import StorageUnavailable
from ..core.outbox import OutboxStore
from ..core.schema import ResourceKind
from ..util.logging import logger
from .connectivity import ConnectivityMonitor
from .network import HttpxNetwork, INetwork, NetworkError
from .notifications import (
    ClickOutcome,
    ClientRegistry,
    ClientWindow,
    Notification,
    NotificationGateway,
    NotificationTray,
    ShowResult,
)
from .router import RequestRouter
from .sync import SyncCoordinator, SyncReport

# Writes that can be saved for later; anything else non-GET is passed through or fails
QUEUEABLE_METHODS = {"POST", "PUT", "PATCH", "DELETE"}


class OfflineServiceWorker:
    """Wires the router, cache manager, outbox, sync coordinator and notification gateway."""

    def __init__(
        self,
        cache_manager: CacheManager,
        outbox: OutboxStore,
        coordinator: SyncCoordinator,
        gateway: NotificationGateway,
        router: Optional[RequestRouter] = None,
        network: Optional[INetwork] = None,
        connectivity: Optional[ConnectivityMonitor] = None,
    ):
        self.cache_manager = cache_manager
        self.outbox = outbox
        self.coordinator = coordinator
        self.gateway = gateway
        self.router = router or RequestRouter()
        self.network = network or cache_manager.network
        self.connectivity = connectivity
        self.offline_capable = False

        self.router.register(ResourceClass.API, self.cache_manager.network_first)
        self.router.register(ResourceClass.NAVIGATION, self.cache_manager.cache_first_shell)
        self.router.register(ResourceClass.RESOURCE, self.cache_manager.cache_first_populate)
        self.router.register(ResourceClass.UNKNOWN, self._pass_through)
        self.router.register_mutation_handler(self._handle_mutation)

    # Lifecycle

    async def init(self):
        """Open network and storage. A broken outbox leaves the worker running without offline writes."""
        await self.network.init()

        try:
            await self.cache_manager.init()
        except StorageUnavailable as e:
            logger.error(f"Cache storage unavailable, serving network only: {e}")

        try:
            await self.outbox.init()
            self.offline_capable = True
        except StorageUnavailable as e:
            self.offline_capable = False
            logger.error(f"Outbox storage unavailable, offline writes disabled: {e}")

        logger.log_operation("worker.init", "success" if self.offline_capable else "degraded")

    async def teardown(self):
        await self.cache_manager.teardown()
        await self.outbox.teardown()
        await self.network.teardown()
        logger.info("Offline worker stopped")

    async def install(self, precache_urls: Optional[List[str]] = None) -> List[str]:
        try:
            return await self.cache_manager.install(precache_urls)
        except StorageUnavailable as e:
            logger.error(f"Install skipped, cache storage unavailable: {e}")
            return []

    async def activate(self) -> List[str]:
        """Sweep older cache generations; announce the update if one was replaced."""
        try:
            deleted = await self.cache_manager.activate()
        except StorageUnavailable as e:
            logger.error(f"Activate skipped, cache storage unavailable: {e}")
            return []

        if deleted:
            await self.gateway.notify_update_available()
        return deleted

    # Events

    async def on_intercept(self, request: Request) -> Response:
        """Answer an intercepted fetch. Never raises."""
        try:
            return await self.router.dispatch(request)
        except Exception as e:
            logger.exception(f"Unhandled error intercepting {request.method} {request.url}: {e}")
            return network_error_response()

    async def on_sync_trigger(self, tag: str) -> Optional[SyncReport]:
        return await self.coordinator.on_sync_trigger(tag)

    async def on_push(self, raw: Any) -> ShowResult:
        return await self.gateway.on_push(raw)

    async def on_notification_click(self, notification_id: int, action: Optional[str] = None) -> Optional[ClickOutcome]:
        """Route a click on a displayed notification; None if it is no longer shown."""
        notification = self.find_notification(notification_id)
        if notification is None:
            return None
        return await self.gateway.on_notification_click(notification, action)

    async def subscribe_push(self, subscription: Dict[str, Any]) -> Response:
        """Forward a push subscription upstream like any other write; queued while offline."""
        request = Request(
            method="POST",
            url=PUSH_SUBSCRIBE_URL,
            headers={"content-type": "application/json"},
            body=json.dumps(subscription).encode("utf-8"),
        )
        return await self._handle_mutation(request)

    def find_notification(self, notification_id: int) -> Optional[Notification]:
        surface = self.gateway.surface
        if isinstance(surface, NotificationTray):
            return surface.get(notification_id)
        return None

    def active_notifications(self) -> List[Notification]:
        surface = self.gateway.surface
        return surface.active() if isinstance(surface, NotificationTray) else []

    def register_client(self, url: str) -> ClientWindow:
        """Record an open page so notification clicks can focus it."""
        if not isinstance(self.gateway.clients, ClientRegistry):
            raise TypeError("Client windows are managed by the platform")
        return self.gateway.clients.register(url)

    def unregister_client(self, client_id: str) -> bool:
        if not isinstance(self.gateway.clients, ClientRegistry):
            return False
        return self.gateway.clients.unregister(client_id)

    async def health(self) -> Dict[str, Any]:
        try:
            pending = await self.outbox.count() if self.offline_capable else 0
        except StorageUnavailable:
            pending = 0

        return {
            "offline_capable": self.offline_capable,
            "online": self.connectivity.online if self.connectivity else True,
            "pending_mutations": pending,
            "cache_names": list(self.cache_manager.current_names),
        }

    # Handlers

    async def _pass_through(self, request: Request) -> Response:
        response = await self.cache_manager.pass_through(request)
        return response if response is not None else network_error_response()

    async def _handle_mutation(self, request: Request) -> Response:
        """Writes go straight to the network; a transport failure saves them to the outbox."""
        try:
            return await self.network.fetch(request)
        except NetworkError as e:
            logger.debug(f"Write failed on the network, queueing: {e}")

        if self.connectivity is not None:
            await self.connectivity.set_online(False)
        return await self._queue_mutation(request)

    async def _queue_mutation(self, request: Request) -> Response:
        if request.method not in QUEUEABLE_METHODS or not self.router.is_api_path(request.path):
            return network_error_response()

        if not self.offline_capable:
            return storage_unavailable_response()

        kind, payload = self._mutation_for(request)
        try:
            mutation = await self.outbox.enqueue(kind, payload)
        except StorageUnavailable:
            return storage_unavailable_response()

        return queued_mutation_response(mutation.id, mutation.resource_kind.value)

    def _mutation_for(self, request: Request) -> Tuple[ResourceKind, BaseModel]:
        """Resource kind and payload for a write; a body that does not fit its kind is kept as generic."""
        body = _decode_body(request.body)
        kind = mutation_routes().get(request.path, ResourceKind.GENERIC.value)

        if kind != ResourceKind.GENERIC.value and request.method == "POST":
            try:
                return ResourceKind(kind), payload_model_for(kind).model_validate(body)
            except ValidationError as e:
                logger.warning(f"Body for {request.path} does not match {kind}, queued as generic: {e.error_count()} error(s)")

        return ResourceKind.GENERIC, GenericMutationPayload(
            method=request.method,
            url=request.url,
            body=body,
            content_type=request.headers.get("content-type"),
            raw_body=request.body.decode("utf-8", errors="replace") if request.body else None,
        )

    async def _on_connectivity_restored(self):
        await self.on_sync_trigger(CONNECTIVITY_SYNC_TAG)


def _decode_body(body: bytes) -> Any:
    if not body:
        return None
    try:
        return json.loads(body)
    except ValueError:
        return body.decode("utf-8", errors="replace")


def build_service_worker(
    cache_backend: str = None,
    outbox_db_path: str = None,
    cache_db_path: str = None,
    network: Optional[INetwork] = None,
    permission: str = None,
) -> OfflineServiceWorker:
    """Assemble a worker from configuration; arguments override the environment."""
    backend = cache_backend or CACHE_BACKEND
    if backend == "memory":
        storage = InMemoryCacheStorage()
    elif backend == "sqlite":
        storage = SQLiteCacheStorage(cache_db_path or CACHE_DB_PATH)
    else:
        raise ValueError(f"Unsupported cache backend: {backend}")

    network = network or HttpxNetwork()
    outbox = OutboxStore(outbox_db_path or OUTBOX_DB_PATH)
    gateway = NotificationGateway(NotificationTray(permission), ClientRegistry())
    connectivity = ConnectivityMonitor(network)

    worker = OfflineServiceWorker(
        cache_manager=CacheManager(storage, network),
        outbox=outbox,
        coordinator=SyncCoordinator(outbox, network, gateway),
        gateway=gateway,
        network=network,
        connectivity=connectivity,
    )
    connectivity.on_restore = worker._on_connectivity_restored
    return worker
