"""
Connectivity monitor: transitions and restore triggers.
"""

from unittest.mock import AsyncMock

from guardsync.cache.types import Response
from guardsync.worker.connectivity import ConnectivityMonitor


class TestSetOnline:
    """Test online/offline transitions."""

    async def test_restore_fires_once(self, network):
        on_restore = AsyncMock()
        monitor = ConnectivityMonitor(network, on_restore=on_restore, online=False)

        assert await monitor.set_online(True) is True
        assert await monitor.set_online(True) is False

        on_restore.assert_awaited_once()

    async def test_going_offline_does_not_fire(self, network):
        on_restore = AsyncMock()
        monitor = ConnectivityMonitor(network, on_restore=on_restore)

        assert await monitor.set_online(False) is False
        assert monitor.online is False
        on_restore.assert_not_awaited()

    async def test_status(self, network):
        monitor = ConnectivityMonitor(network)
        assert monitor.status() == {"online": True, "last_checked": None}

        await monitor.set_online(True)
        assert monitor.status()["last_checked"] is not None


class TestProbe:
    """Test probing the upstream."""

    async def test_any_http_answer_is_reachable(self, network):
        network.route("HEAD", "/", status=405)
        monitor = ConnectivityMonitor(network, probe_path="/")

        assert await monitor.probe() is True
        assert network.calls[0].method == "HEAD"

    async def test_probe_failure_marks_offline(self, network):
        network.online = False
        monitor = ConnectivityMonitor(network)

        assert await monitor.probe() is False
        assert monitor.online is False

    async def test_probe_after_outage_triggers_restore(self, network):
        on_restore = AsyncMock()
        monitor = ConnectivityMonitor(network, on_restore=on_restore, online=False)
        network.route("HEAD", "/", status=200)

        await monitor.probe()

        on_restore.assert_awaited_once()
        assert monitor.online is True
