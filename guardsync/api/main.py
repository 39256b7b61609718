"""
Gateway - FastAPI adapter that puts the offline worker in front of the upstream API.

/__sw/*   control surface (health, outbox, sync, push, notifications, clients, connectivity)
/*        every other request is intercepted and answered by the worker
"""

from contextlib import asynccontextmanager
from typing import Callable, Optional

from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import Response

from .schemas import (
    CacheListResponse,
    ClickResponse,
    ClientRegisterRequest,
    ClientResponse,
    ConnectivityRequest,
    ConnectivityResponse,
    HealthResponse,
    NotificationActionModel,
    NotificationClickRequest,
    NotificationListResponse,
    NotificationResponse,
    OutboxListResponse,
    PendingMutationResponse,
    PushSubscriptionRequest,
    ShowResponse,
    SubscribeResponse,
    SyncRequest,
    SyncResponse,
    payload_to_dict,
)
from ..cache.fallbacks import FALLBACK_HEADER
from ..cache.types import Request as FetchRequest
from ..core.config import (
    APP_NAME,
    CONNECTIVITY_PROBE_SEC,
    DEBUG,
    PERIODIC_SYNC_TAG,
    SYNC_INTERVAL_SEC,
    VERSION,
)
from ..core.db import StorageUnavailable
from ..core.heartbeat import Heartbeat
from ..util.logging import logger
from ..worker.service_worker import OfflineServiceWorker, build_service_worker

INTERCEPT_METHODS = ["GET", "HEAD", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"]

# Never copied onto the gateway's own response
_RESPONSE_SKIP_HEADERS = {"content-length", "transfer-encoding", "connection"}


def to_fetch_request(request: Request, body: bytes) -> FetchRequest:
    """Translate an incoming HTTP request into the worker's request shape."""
    url = request.url.path
    if request.url.query:
        url += "?" + request.url.query

    headers = dict(request.headers)
    mode = headers.get("sec-fetch-mode")
    if not mode:
        # Clients without fetch metadata: an HTML GET is a page load
        accepts_html = "text/html" in headers.get("accept", "")
        mode = "navigate" if request.method == "GET" and accepts_html else "cors"

    destination = headers.get("sec-fetch-dest", "")
    if destination == "empty":
        destination = ""

    headers.pop("host", None)
    return FetchRequest(
        method=request.method,
        url=url,
        mode=mode,
        destination=destination,
        headers=headers,
        body=body,
    )


def create_app(worker_factory: Callable[[], OfflineServiceWorker] = build_service_worker,
               heartbeat: Optional[Heartbeat] = None) -> FastAPI:
    """Build the gateway app; tests pass their own worker factory."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        worker = worker_factory()
        await worker.init()
        await worker.install()
        await worker.activate()

        beat = heartbeat or Heartbeat()
        if worker.connectivity is not None:
            beat.register_task("connectivity_probe", CONNECTIVITY_PROBE_SEC, worker.connectivity.probe)

        async def periodic_sync():
            await worker.on_sync_trigger(PERIODIC_SYNC_TAG)

        beat.register_task("periodic_sync", SYNC_INTERVAL_SEC, periodic_sync)
        beat.start()

        app.state.worker = worker
        app.state.heartbeat = beat
        logger.info(f"{APP_NAME} offline gateway started (offline_capable={worker.offline_capable})")
        try:
            yield
        finally:
            await beat.stop()
            await worker.teardown()

    app = FastAPI(
        title=f"{APP_NAME} Offline Gateway",
        version=VERSION,
        description="Offline-first request interception, durable outbox and background sync",
        docs_url="/__sw/docs" if DEBUG else None,
        redoc_url=None,
        openapi_url="/__sw/openapi.json" if DEBUG else None,
        lifespan=lifespan,
    )

    def get_worker(request: Request) -> OfflineServiceWorker:
        return request.app.state.worker

    @app.get("/__sw/health", response_model=HealthResponse)
    async def health_endpoint(request: Request):
        """Check gateway health."""
        status = await get_worker(request).health()
        return HealthResponse(
            status="healthy" if status["offline_capable"] else "degraded",
            version=VERSION,
            **status,
        )

    @app.get("/__sw/outbox", response_model=OutboxListResponse)
    async def outbox_endpoint(request: Request, kind: Optional[str] = None):
        """List pending mutations in insertion order."""
        try:
            pending = await get_worker(request).outbox.list_pending(kind)
        except ValueError:
            raise HTTPException(status_code=400, detail=f"Unknown resource kind: {kind}")
        except StorageUnavailable as e:
            raise HTTPException(status_code=503, detail=f"Outbox unavailable: {e}")

        return OutboxListResponse(items=[
            PendingMutationResponse(
                id=m.id,
                resource_kind=m.resource_kind.value,
                payload=payload_to_dict(m.payload),
                created_at=m.created_at,
                attempt_count=m.attempt_count,
                last_error=m.last_error,
            )
            for m in pending
        ])

    @app.post("/__sw/sync", response_model=SyncResponse)
    async def sync_endpoint(request: Request, req: Optional[SyncRequest] = None):
        """Fire a sync trigger and wait for the drain to finish."""
        req = req or SyncRequest()
        report = await get_worker(request).on_sync_trigger(req.tag)
        if report is None:
            return SyncResponse(tag=req.tag, accepted=False)

        return SyncResponse(
            tag=req.tag,
            accepted=True,
            delivered=report.delivered,
            failed=report.failed,
            remaining=report.remaining,
        )

    @app.post("/__sw/push", response_model=ShowResponse)
    async def push_endpoint(request: Request):
        """Deliver a push message; malformed bodies still show a default notification."""
        raw = await request.body()
        result = await get_worker(request).on_push(raw or None)
        return ShowResponse(
            status=result.status,
            reason=result.reason,
            notification_id=result.notification.id if result.notification else None,
        )

    @app.post("/__sw/subscribe", response_model=SubscribeResponse)
    async def subscribe_endpoint(req: PushSubscriptionRequest, request: Request):
        """Register this device's push subscription with the upstream server."""
        answer = await get_worker(request).subscribe_push(req.model_dump(mode="json"))

        if answer.headers.get(FALLBACK_HEADER) == "outbox":
            return SubscribeResponse(status="queued", upstream_status=answer.status,
                                     outbox_id=answer.json()["outboxId"])
        if not answer.ok:
            raise HTTPException(status_code=503 if answer.status == 503 else 502,
                                detail=f"Subscription not accepted (HTTP {answer.status})")
        return SubscribeResponse(status="delivered", upstream_status=answer.status)

    @app.get("/__sw/notifications", response_model=NotificationListResponse)
    async def notifications_endpoint(request: Request):
        return NotificationListResponse(items=[
            NotificationResponse(
                id=n.id,
                title=n.title,
                body=n.body,
                icon=n.icon,
                url=n.url,
                require_interaction=n.require_interaction,
                urgency=n.urgency,
                actions=[NotificationActionModel(action=a.action, title=a.title, url=a.url, navigates=a.navigates)
                         for a in n.actions],
            )
            for n in get_worker(request).active_notifications()
        ])

    @app.post("/__sw/notifications/{notification_id}/click", response_model=ClickResponse)
    async def click_endpoint(notification_id: int, request: Request,
                             req: Optional[NotificationClickRequest] = None):
        req = req or NotificationClickRequest()
        outcome = await get_worker(request).on_notification_click(notification_id, req.action)
        if outcome is None:
            raise HTTPException(status_code=404, detail="Notification not found")
        return ClickResponse(outcome=outcome.outcome, url=outcome.url, client_id=outcome.client_id)

    @app.post("/__sw/clients", response_model=ClientResponse)
    async def register_client_endpoint(req: ClientRegisterRequest, request: Request):
        window = get_worker(request).register_client(req.url)
        return ClientResponse(id=window.id, url=window.url, focused=window.focused)

    @app.delete("/__sw/clients/{client_id}")
    async def unregister_client_endpoint(client_id: str, request: Request):
        if not get_worker(request).unregister_client(client_id):
            raise HTTPException(status_code=404, detail="Client not found")
        return {"success": True}

    @app.post("/__sw/connectivity", response_model=ConnectivityResponse)
    async def connectivity_endpoint(req: ConnectivityRequest, request: Request):
        """Report an online/offline event; going back online drains the outbox."""
        connectivity = get_worker(request).connectivity
        if connectivity is None:
            raise HTTPException(status_code=404, detail="Connectivity monitoring disabled")

        triggered = await connectivity.set_online(req.online)
        return ConnectivityResponse(online=connectivity.online, sync_triggered=triggered,
                                    last_checked=connectivity.last_checked)

    @app.get("/__sw/caches", response_model=CacheListResponse)
    async def caches_endpoint(request: Request):
        try:
            counts = await get_worker(request).cache_manager.cache_counts()
        except StorageUnavailable as e:
            raise HTTPException(status_code=503, detail=f"Cache storage unavailable: {e}")
        return CacheListResponse(caches=counts)

    # Defined last so the control routes above take precedence
    @app.api_route("/{path:path}", methods=INTERCEPT_METHODS, include_in_schema=False)
    async def intercept(path: str, request: Request):
        body = await request.body()
        answer = await get_worker(request).on_intercept(to_fetch_request(request, body))
        headers = {k: v for k, v in answer.headers.items() if k not in _RESPONSE_SKIP_HEADERS}
        return Response(content=answer.body, status_code=answer.status, headers=headers)

    return app


app = create_app()
