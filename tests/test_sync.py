"""
Sync coordinator: ordering, head-of-line blocking, timeouts and announcements.
"""

import asyncio
import json

import pytest

from guardsync.cache.types import Response
from guardsync.core.schema import SyncSource, SyncTrigger
from guardsync.worker.network import NetworkError
from guardsync.worker.sync import SyncCoordinator

from conftest import FakeNetwork

TARGETS = {
    "violation_report": "/api/traffic-violations",
    "emergency_alert": "/api/sos",
    "generic": None,
}


def report(n):
    return {"type": "no_helmet", "location": {"lat": 28.6, "lng": 77.2}, "description": f"report {n}"}


@pytest.fixture
def coordinator(outbox, network, gateway):
    return SyncCoordinator(outbox, network, gateway, targets=TARGETS, timeout=0.2)


class TestScenarioOfflineViolation:
    """Test the offline violation report end to end at the coordinator level."""

    async def test_queued_report_posted_exactly_once(self, outbox, network, coordinator):
        payload = {"type": "no_helmet", "location": {"lat": 28.6139, "lng": 77.209}}
        await outbox.enqueue("violation_report", payload)

        pending = await outbox.list_pending("violation_report")
        assert len(pending) == 1
        assert pending[0].attempt_count == 0

        network.route("POST", "/api/traffic-violations", status=201, json_body={"id": 99})
        result = await coordinator.on_sync_trigger("connectivity-restored")

        assert await outbox.list_pending() == []
        assert network.sent_json("POST", "/api/traffic-violations") == [payload]
        assert result.trigger.source is SyncSource.CONNECTIVITY
        assert result.delivered == {"violation_report": [pending[0].id]}

    async def test_replay_headers(self, outbox, network, coordinator):
        mutation = await outbox.enqueue("emergency_alert", {"location": {"lat": 1, "lng": 2}})
        network.route("POST", "/api/sos", json_body={"ok": True})

        await coordinator.on_sync_trigger("offline-sync")

        sent = network.sent("POST", "/api/sos")[0]
        assert sent.headers["idempotency-key"] == mutation.client_ref
        assert sent.headers["x-outbox-id"] == str(mutation.id)
        assert sent.headers["content-type"] == "application/json"


class TestOrdering:
    """Test per-kind sequential delivery."""

    async def test_failed_head_blocks_later_entries(self, outbox, network, coordinator):
        """Test B is never delivered before A succeeds."""
        a = await outbox.enqueue("violation_report", report("A"))
        b = await outbox.enqueue("violation_report", report("B"))

        network.route("POST", "/api/traffic-violations", status=500)
        first = await coordinator.on_sync_trigger("offline-sync")

        assert len(network.sent("POST", "/api/traffic-violations")) == 1
        assert first.failed == {"violation_report": a.id}
        pending = await outbox.list_pending("violation_report")
        assert [m.id for m in pending] == [a.id, b.id]
        assert pending[0].attempt_count == 1
        assert pending[1].attempt_count == 0

        network.route("POST", "/api/traffic-violations", status=201, json_body={})
        network.calls.clear()
        second = await coordinator.on_sync_trigger("offline-sync")

        descriptions = [body["description"] for body in network.sent_json("POST", "/api/traffic-violations")]
        assert descriptions == ["report A", "report B"]
        assert second.delivered == {"violation_report": [a.id, b.id]}
        assert await outbox.count() == 0

    async def test_blocked_kind_does_not_stall_other_kinds(self, outbox, network, coordinator):
        await outbox.enqueue("violation_report", report(1))
        alert = await outbox.enqueue("emergency_alert", {"location": {"lat": 0, "lng": 0}})
        network.failing_urls.add("/api/traffic-violations")
        network.route("POST", "/api/sos", json_body={"ok": True})

        result = await coordinator.on_sync_trigger("offline-sync")

        assert result.delivered == {"emergency_alert": [alert.id]}
        assert "violation_report" in result.failed
        assert result.remaining["violation_report"] == 1

    async def test_kinds_drain_concurrently(self, outbox, coordinator):
        """Test a slow kind does not delay delivery of another kind."""
        await outbox.enqueue("violation_report", report(1))
        await outbox.enqueue("emergency_alert", {"location": {"lat": 0, "lng": 0}})
        sos_delivered = asyncio.Event()
        order = []

        class SlowReports(FakeNetwork):
            async def fetch(self, request, timeout=None):
                if request.url == "/api/traffic-violations":
                    await asyncio.wait_for(sos_delivered.wait(), timeout=1)
                    order.append("report")
                else:
                    order.append("sos")
                    sos_delivered.set()
                return Response(status=200)

        coordinator.network = SlowReports()
        coordinator.timeout = 2
        result = await coordinator.on_sync_trigger("offline-sync")

        assert order == ["sos", "report"]
        assert result.delivered_count == 2

    async def test_same_kind_drains_never_overlap(self, outbox, network, coordinator):
        """Test two triggers at once deliver each record once."""
        for n in range(3):
            await outbox.enqueue("violation_report", report(n))
        network.route("POST", "/api/traffic-violations", json_body={})

        await asyncio.gather(
            coordinator.on_sync_trigger("offline-sync"),
            coordinator.on_sync_trigger("periodic-sync"),
        )

        assert len(network.sent("POST", "/api/traffic-violations")) == 3
        assert await outbox.count() == 0


class TestFailures:
    """Test failure classification."""

    async def test_timeout_is_failure(self, outbox, network, coordinator):
        mutation = await outbox.enqueue("emergency_alert", {"location": {"lat": 0, "lng": 0}})
        network.hanging_urls.add("/api/sos")

        result = await coordinator.on_sync_trigger("offline-sync")

        assert result.failed == {"emergency_alert": mutation.id}
        stored = (await outbox.list_pending())[0]
        assert stored.last_error.startswith("timeout")

    async def test_network_error_records_attempt(self, outbox, network, coordinator):
        await outbox.enqueue("violation_report", report(1))
        network.online = False

        await coordinator.on_sync_trigger("periodic-sync")

        stored = (await outbox.list_pending())[0]
        assert stored.attempt_count == 1
        assert "offline" in stored.last_error

    async def test_unknown_tag_ignored(self, outbox, network, coordinator):
        await outbox.enqueue("violation_report", report(1))

        assert await coordinator.on_sync_trigger("not-a-tag") is None
        assert network.calls == []
        assert await outbox.count() == 1

    async def test_kind_without_target_is_skipped(self, outbox, network, gateway):
        coordinator = SyncCoordinator(outbox, network, gateway, targets=dict(TARGETS, emergency_alert=None))
        await outbox.enqueue("emergency_alert", {"location": {"lat": 0, "lng": 0}})

        result = await coordinator.drain(SyncTrigger(tag="offline-sync", source=SyncSource.MANUAL))

        assert network.calls == []
        assert "emergency_alert" not in result.remaining
        assert await outbox.count() == 1


class TestGenericReplay:
    """Test generic writes go back to the endpoint they were aimed at."""

    async def test_generic_uses_own_method_and_url(self, outbox, network, coordinator):
        await outbox.enqueue("generic", {"method": "PUT", "url": "/api/profile/4", "body": {"name": "Asha"}})
        network.route("PUT", "/api/profile/4", json_body={"ok": True})

        result = await coordinator.on_sync_trigger("offline-sync")

        assert network.sent_json("PUT", "/api/profile/4") == [{"name": "Asha"}]
        assert result.delivered_count == 1

    async def test_generic_text_body(self, outbox, network, coordinator):
        await outbox.enqueue("generic", {"method": "POST", "url": "/api/feedback", "body": "great app",
                                         "content_type": "text/plain"})
        network.route("POST", "/api/feedback", status=204)

        await coordinator.on_sync_trigger("offline-sync")

        sent = network.sent("POST", "/api/feedback")[0]
        assert sent.body == b"great app"
        assert sent.headers["content-type"] == "text/plain"


class TestAnnouncements:
    """Test the user is told about sync outcomes."""

    async def test_synced_notification(self, outbox, network, coordinator, tray):
        await outbox.enqueue("violation_report", report(1))
        network.route("POST", "/api/traffic-violations", json_body={})

        await coordinator.on_sync_trigger("offline-sync")

        titles = [n.title for n in tray.active()]
        assert titles == ["Offline data synced"]

    async def test_undelivered_emergency_alert_requires_interaction(self, outbox, network, coordinator, tray):
        await outbox.enqueue("emergency_alert", {"location": {"lat": 0, "lng": 0}})
        network.online = False

        await coordinator.on_sync_trigger("offline-sync")

        (notice,) = tray.active()
        assert notice.require_interaction is True
        assert notice.url == "/emergency"

    async def test_nothing_to_announce(self, outbox, network, coordinator, tray):
        await coordinator.on_sync_trigger("offline-sync")

        assert tray.active() == []
