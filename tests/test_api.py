"""
Gateway API: control endpoints and the intercepting catch-all route.
"""

import pytest
from fastapi.testclient import TestClient

from guardsync.api.main import create_app
from guardsync.worker.service_worker import build_service_worker

SHELL_HTML = b"<!DOCTYPE html><html><body>TrafficGuard shell</body></html>"
REPORT = {"type": "no_helmet", "location": {"lat": 28.6139, "lng": 77.209}}


@pytest.fixture
def client(network, outbox_path):
    network.route("GET", "/", body=SHELL_HTML, headers={"content-type": "text/html"})

    def factory():
        return build_service_worker(cache_backend="memory", outbox_db_path=outbox_path,
                                    network=network, permission="granted")

    with TestClient(create_app(worker_factory=factory)) as client:
        yield client


class TestHealth:
    def test_health(self, client):
        response = client.get("/__sw/health")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert data["offline_capable"] is True
        assert data["pending_mutations"] == 0
        assert "static-cache-v1" in data["cache_names"]

    def test_caches_after_install(self, client):
        response = client.get("/__sw/caches")

        assert response.status_code == 200
        assert response.json()["caches"]["static-cache-v1"] == 1


class TestIntercept:
    """Test requests through the catch-all route."""

    def test_online_api_read_proxied(self, client, network):
        network.route("GET", "/api/stats?range=week", json_body={"reports": 3})

        response = client.get("/api/stats?range=week")

        assert response.status_code == 200
        assert response.json() == {"reports": 3}

    def test_offline_api_read(self, client, network):
        network.online = False

        response = client.get("/api/traffic/rewards/1")

        assert response.status_code == 200
        assert response.json()["offline"] is True
        assert response.headers["x-offline-fallback"] == "api"

    def test_offline_navigation_uses_fetch_metadata(self, client, network):
        network.online = False

        response = client.get("/emergency", headers={"Sec-Fetch-Mode": "navigate", "Sec-Fetch-Dest": "document"})

        assert response.content == SHELL_HTML

    def test_html_accept_treated_as_navigation(self, client, network):
        network.online = False

        response = client.get("/women-safety", headers={"Accept": "text/html,application/xhtml+xml"})

        assert response.content == SHELL_HTML

    def test_offline_image_placeholder(self, client, network):
        network.online = False

        response = client.get("/uploads/evidence.jpg", headers={"Sec-Fetch-Dest": "image"})

        assert response.status_code == 200
        assert response.headers["content-type"] == "image/svg+xml"


class TestOfflineReportFlow:
    """Test submit offline, inspect the outbox, reconnect and sync."""

    def test_report_queued_then_synced(self, client, network):
        network.online = False
        queued = client.post("/api/traffic-violations", json=REPORT)

        assert queued.status_code == 202
        assert queued.json()["queued"] is True

        outbox = client.get("/__sw/outbox", params={"kind": "violation_report"}).json()
        assert len(outbox["items"]) == 1
        assert outbox["items"][0]["payload"] == REPORT
        assert outbox["items"][0]["attempt_count"] == 0

        network.online = True
        network.route("POST", "/api/traffic-violations", status=201, json_body={"id": 1})
        restored = client.post("/__sw/connectivity", json={"online": True})

        assert restored.json()["sync_triggered"] is True
        assert client.get("/__sw/outbox").json()["items"] == []
        assert network.sent_json("POST", "/api/traffic-violations") == [REPORT]

    def test_manual_sync(self, client, network):
        network.online = False
        client.post("/api/sos", json={"location": {"lat": 1, "lng": 2}})

        network.online = True
        network.route("POST", "/api/sos", json_body={"ok": True})
        response = client.post("/__sw/sync", json={"tag": "offline-sync"})

        data = response.json()
        assert data["accepted"] is True
        assert list(data["delivered"]) == ["emergency_alert"]
        assert data["remaining"]["emergency_alert"] == 0

    def test_sync_without_body_uses_default_tag(self, client):
        response = client.post("/__sw/sync")

        assert response.json() == {"tag": "offline-sync", "accepted": True, "delivered": {}, "failed": {},
                                   "remaining": {"violation_report": 0, "emergency_alert": 0, "generic": 0}}

    def test_unknown_sync_tag(self, client):
        response = client.post("/__sw/sync", json={"tag": "bogus"})

        assert response.json()["accepted"] is False

    def test_outbox_unknown_kind(self, client):
        assert client.get("/__sw/outbox", params={"kind": "parking"}).status_code == 400


class TestNotifications:
    """Test push, listing and click routing over HTTP."""

    def test_push_list_click(self, client):
        pushed = client.post("/__sw/push", content=b'{"title": "SOS nearby", "type": "emergency", '
                                                    b'"data": {"url": "/emergency"}}')
        notification_id = pushed.json()["notification_id"]

        listed = client.get("/__sw/notifications").json()["items"]
        assert [n["id"] for n in listed] == [notification_id]
        assert listed[0]["urgency"] == "high"

        clicked = client.post(f"/__sw/notifications/{notification_id}/click")
        assert clicked.json()["outcome"] == "opened"
        assert clicked.json()["url"] == "/emergency"

    def test_malformed_push_still_shows(self, client):
        response = client.post("/__sw/push", content=b"not json at all")

        assert response.json()["status"] == "shown"

    def test_click_focuses_registered_client(self, client):
        window = client.post("/__sw/clients", json={"url": "/my-reports"}).json()
        pushed = client.post("/__sw/push", json={"title": "Report accepted", "data": {"url": "/my-reports"}})

        clicked = client.post(f"/__sw/notifications/{pushed.json()['notification_id']}/click", json={})

        assert clicked.json() == {"outcome": "focused", "url": "/my-reports", "client_id": window["id"]}

    def test_click_unknown_notification(self, client):
        assert client.post("/__sw/notifications/404/click").status_code == 404

    def test_unregister_client(self, client):
        window = client.post("/__sw/clients", json={"url": "/"}).json()

        assert client.delete(f"/__sw/clients/{window['id']}").status_code == 200
        assert client.delete(f"/__sw/clients/{window['id']}").status_code == 404


class TestPushSubscription:
    """Test forwarding the device's push subscription upstream."""

    SUBSCRIPTION = {
        "endpoint": "https://fcm.googleapis.com/fcm/send/abc123",
        "expirationTime": None,
        "keys": {"p256dh": "BNcRdreALRFXTkOOUHK1EtK2wtaz5Ry4YfYCA", "auth": "tBHItJI5svbpez7KI4CCXg"},
    }

    def test_online_subscription_delivered(self, client, network):
        network.route("POST", "/api/push/subscribe", status=201, json_body={"ok": True})

        response = client.post("/__sw/subscribe", json=self.SUBSCRIPTION)

        assert response.status_code == 200
        assert response.json() == {"status": "delivered", "upstream_status": 201, "outbox_id": None}
        assert network.sent_json("POST", "/api/push/subscribe") == [self.SUBSCRIPTION]

    def test_offline_subscription_queued_then_synced(self, client, network):
        network.online = False

        response = client.post("/__sw/subscribe", json=self.SUBSCRIPTION)

        assert response.json()["status"] == "queued"
        (item,) = client.get("/__sw/outbox", params={"kind": "generic"}).json()["items"]
        assert item["id"] == response.json()["outbox_id"]
        assert item["payload"]["url"] == "/api/push/subscribe"

        network.online = True
        network.calls.clear()
        network.route("POST", "/api/push/subscribe", json_body={"ok": True})
        client.post("/__sw/sync")

        assert network.sent_json("POST", "/api/push/subscribe") == [self.SUBSCRIPTION]

    def test_rejected_subscription(self, client, network):
        network.route("POST", "/api/push/subscribe", status=400, json_body={"error": "bad key"})

        assert client.post("/__sw/subscribe", json=self.SUBSCRIPTION).status_code == 502

    def test_insecure_endpoint_rejected(self, client):
        bad = dict(self.SUBSCRIPTION, endpoint="http://push.example.com/1")

        assert client.post("/__sw/subscribe", json=bad).status_code == 422
