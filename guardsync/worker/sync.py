"""
Sync coordinator - drains the outbox against the network on a sync trigger.

Within one resource kind delivery is strictly sequential in insertion order
and stops at the first failure, so a later write never lands before an
earlier one. Different kinds drain concurrently.
"""

import asyncio
import json
import time
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from ..api.schemas import payload_to_dict
from ..cache.types import Request
from ..core.config import (
    CONNECTIVITY_SYNC_TAG,
    PERIODIC_SYNC_TAG,
    SYNC_TAG,
    SYNC_TIMEOUT_SEC,
    replay_targets,
)
from ..core.db import StorageUnavailable
from ..core.outbox import OutboxStore
from ..core.schema import PendingMutation, ResourceKind, SyncSource, SyncTrigger
from ..util.logging import logger
from .network import INetwork, NetworkError
from .notifications import NotificationGateway

TAG_SOURCES = {
    SYNC_TAG: SyncSource.MANUAL,
    PERIODIC_SYNC_TAG: SyncSource.PERIODIC,
    CONNECTIVITY_SYNC_TAG: SyncSource.CONNECTIVITY,
}


@dataclass
class SyncReport:
    trigger: SyncTrigger
    delivered: Dict[str, List[int]] = field(default_factory=dict)
    failed: Dict[str, int] = field(default_factory=dict)  # kind -> id that blocked the kind
    remaining: Dict[str, int] = field(default_factory=dict)

    @property
    def delivered_count(self) -> int:
        return sum(len(ids) for ids in self.delivered.values())

    @property
    def remaining_count(self) -> int:
        return sum(self.remaining.values())


class SyncCoordinator:
    """Replays pending mutations; the outbox keeps whatever could not be delivered."""

    def __init__(
        self,
        outbox: OutboxStore,
        network: INetwork,
        gateway: Optional[NotificationGateway] = None,
        targets: Optional[Dict[str, Optional[str]]] = None,
        timeout: float = None,
    ):
        self.outbox = outbox
        self.network = network
        self.gateway = gateway
        self.targets = replay_targets() if targets is None else targets
        self.timeout = SYNC_TIMEOUT_SEC if timeout is None else timeout
        self._kind_locks: Dict[str, asyncio.Lock] = {}

    async def on_sync_trigger(self, tag: str) -> Optional[SyncReport]:
        """Run one drain cycle for a recognised tag; unknown tags are ignored."""
        source = TAG_SOURCES.get(tag)
        if source is None:
            logger.warning(f"Ignoring unknown sync tag '{tag}'")
            return None

        report = await self.drain(SyncTrigger(tag=tag, source=source))
        await self._announce(report)
        return report

    async def drain(self, trigger: SyncTrigger) -> SyncReport:
        """Deliver every kind with a replay target; kinds run concurrently."""
        start = time.monotonic()
        report = SyncReport(trigger=trigger)

        kinds = [
            ResourceKind(kind) for kind, url in self.targets.items()
            if url is not None or kind == ResourceKind.GENERIC.value
        ]
        await asyncio.gather(*(self._drain_kind(kind, report) for kind in kinds))

        logger.log_sync_cycle(
            trigger.tag,
            delivered=report.delivered_count,
            failed=len(report.failed),
            remaining=report.remaining_count,
            duration_ms=(time.monotonic() - start) * 1000,
        )
        return report

    async def _drain_kind(self, kind: ResourceKind, report: SyncReport):
        lock = self._kind_locks.setdefault(kind.value, asyncio.Lock())
        async with lock:
            delivered: List[int] = []
            try:
                pending = await self.outbox.list_pending(kind)
            except StorageUnavailable as e:
                logger.error(f"Cannot read outbox for {kind.value}: {e}")
                return

            report.remaining[kind.value] = len(pending)
            try:
                for mutation in pending:
                    error = await self._deliver(mutation)
                    if error is None:
                        await self.outbox.remove(mutation.id)
                        delivered.append(mutation.id)
                        report.remaining[kind.value] -= 1
                        continue

                    await self.outbox.record_failure(mutation, error)
                    report.failed[kind.value] = mutation.id
                    # Head-of-line blocking: later writes wait for this one
                    break
            except StorageUnavailable as e:
                # A delivered record that could not be removed is sent again next cycle
                logger.error(f"Outbox unavailable while draining {kind.value}: {e}")

            if delivered:
                report.delivered[kind.value] = delivered

    def build_request(self, mutation: PendingMutation) -> Request:
        """The replay request for a mutation."""
        payload = mutation.payload
        headers = {
            "content-type": "application/json",
            "idempotency-key": mutation.client_ref,
            "x-outbox-id": str(mutation.id),
        }

        if mutation.resource_kind is ResourceKind.GENERIC:
            body = payload.body
            if payload.content_type:
                headers["content-type"] = payload.content_type
            if payload.raw_body is not None:
                content = payload.raw_body.encode("utf-8")
            elif body is None:
                content = b""
            elif isinstance(body, str):
                content = body.encode("utf-8")
            else:
                content = json.dumps(body).encode("utf-8")
            return Request(method=payload.method, url=payload.url, headers=headers, body=content)

        url = self.targets.get(mutation.resource_kind.value)
        return Request(
            method="POST",
            url=url,
            headers=headers,
            body=json.dumps(payload_to_dict(payload)).encode("utf-8"),
        )

    async def _deliver(self, mutation: PendingMutation) -> Optional[str]:
        """Attempt one delivery; returns None on success, else the failure reason."""
        request = self.build_request(mutation)
        try:
            response = await asyncio.wait_for(self.network.fetch(request), timeout=self.timeout)
        except asyncio.TimeoutError:
            return f"timeout after {self.timeout}s"
        except NetworkError as e:
            return str(e)

        if not response.ok:
            return f"HTTP {response.status}"
        return None

    async def _announce(self, report: SyncReport):
        if self.gateway is None:
            return

        if report.delivered_count:
            await self.gateway.show(
                "Offline data synced",
                f"{report.delivered_count} saved item(s) were sent successfully.",
                {"tag": "sync-complete"},
            )

        if ResourceKind.EMERGENCY_ALERT.value in report.failed:
            await self.gateway.show(
                "Emergency alert not yet delivered",
                "Your SOS alert is saved and will be retried. If you are in danger call 100 or 112 now.",
                {"tag": "sos-pending", "requireInteraction": True, "urgency": "high", "url": "/emergency"},
            )
