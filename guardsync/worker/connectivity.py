"""
Connectivity monitor - turns "back online" into a sync trigger.
"""

from datetime import datetime
from typing import Awaitable, Callable, Dict, Optional

from ..cache.types import Request
from ..core.config import CONNECTIVITY_PROBE_PATH, CONNECTIVITY_PROBE_TIMEOUT_SEC
from ..core.schema import utcnow
from ..util.logging import logger
from .network import INetwork, NetworkError

OnRestore = Callable[[], Awaitable[object]]


class ConnectivityMonitor:
    """Tracks online/offline state; an offline -> online transition fires on_restore once."""

    def __init__(self, network: INetwork, on_restore: Optional[OnRestore] = None,
                 probe_path: str = None, probe_timeout: float = None, online: bool = True):
        self.network = network
        self.on_restore = on_restore
        self.probe_path = probe_path or CONNECTIVITY_PROBE_PATH
        self.probe_timeout = probe_timeout or CONNECTIVITY_PROBE_TIMEOUT_SEC
        self.online = online
        self.last_checked: Optional[datetime] = None

    async def probe(self) -> bool:
        """Check the upstream; any HTTP answer means the network is reachable."""
        try:
            await self.network.fetch(Request(method="HEAD", url=self.probe_path), timeout=self.probe_timeout)
            reachable = True
        except NetworkError:
            reachable = False

        await self.set_online(reachable)
        return reachable

    async def set_online(self, online: bool) -> bool:
        """Record a connectivity observation. Returns True if it fired a restore."""
        was_online = self.online
        self.online = online
        self.last_checked = utcnow()

        if online == was_online:
            return False

        logger.log_operation("connectivity.change", "online" if online else "offline")
        if online and self.on_restore is not None:
            await self.on_restore()
            return True
        return False

    def status(self) -> Dict[str, object]:
        return {"online": self.online, "last_checked": self.last_checked}
