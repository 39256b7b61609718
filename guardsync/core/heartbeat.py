"""
Heartbeat - periodic wake-ups for the offline layer (connectivity probe, periodic sync).
Cooperative scheduling on the event loop; one failing task never stops the others.
"""

import asyncio
import time
from typing import Awaitable, Callable, Dict, List, Optional

from .config import is_heartbeat_enabled, validate_sync_config
from ..util.logging import logger

TaskFunc = Callable[[], Awaitable[object]]


class Heartbeat:
    """Registry of named periodic coroutines plus the loop that runs them."""

    def __init__(self, tick_sec: float = 0.5):
        self.tasks: Dict[str, Dict] = {}  # task_name -> {func, interval, last_run}
        self.running = False
        self.tick_sec = tick_sec
        self._loop_task: Optional[asyncio.Task] = None
        self._shutdown_event: Optional[asyncio.Event] = None

    def register_task(self, name: str, interval_sec: float, func: TaskFunc):
        """
        Register a task to be executed periodically.

        Args:
            name: Unique task identifier
            interval_sec: How often to run this task in seconds
            func: Coroutine function to await
        """
        if not callable(func):
            raise ValueError(f"Task function must be callable: {func}")

        if interval_sec < 1:
            raise ValueError(f"Interval must be >= 1 second: {interval_sec}")

        self.tasks[name] = {
            "func": func,
            "interval": interval_sec,
            "last_run": None
        }
        logger.info(f"Registered heartbeat task '{name}' (every {interval_sec}s)")

    def unregister_task(self, name: str):
        """Remove a task from the registry."""
        if name in self.tasks:
            del self.tasks[name]
            logger.info(f"Unregistered heartbeat task '{name}'")

    def list_tasks(self) -> List[str]:
        """Return list of registered task names."""
        return list(self.tasks.keys())

    def should_run_task(self, name: str, task_info: Dict) -> bool:
        """Check if a task should run this cycle."""
        if task_info["last_run"] is None:
            return True  # Run immediately if never run

        elapsed = time.monotonic() - task_info["last_run"]
        return elapsed >= task_info["interval"]

    async def run_task(self, name: str, task_info: Dict):
        """Execute a task and record timing; raises RuntimeError if it fails."""
        start_time = time.monotonic()

        try:
            await task_info["func"]()
        except Exception as e:
            end_time = time.monotonic()
            task_info["last_run"] = end_time
            logger.log_heartbeat_task(name, start_time, end_time, status="failed", details={"error": str(e)})
            raise RuntimeError(f"Task '{name}' failed after {end_time - start_time:.2f}s: {e}") from e

        end_time = time.monotonic()
        task_info["last_run"] = end_time
        logger.log_heartbeat_task(name, start_time, end_time)

    async def run_due_tasks(self) -> List[str]:
        """Run every task whose interval elapsed; returns the names that ran."""
        ran = []
        for name, task_info in list(self.tasks.items()):
            if self.should_run_task(name, task_info):
                try:
                    await self.run_task(name, task_info)
                except RuntimeError as e:
                    # Error isolation - log error but continue loop
                    logger.error(f"Heartbeat task '{name}' failed: {e}")
                ran.append(name)
        return ran

    def start(self, force: bool = False) -> bool:
        """Start the heartbeat loop on the running event loop. Returns False when disabled."""
        if not force and not is_heartbeat_enabled():
            logger.info("Heartbeat disabled (HEARTBEAT_ENABLED=false). Skipping start.")
            return False

        if self.running:
            raise RuntimeError("Heartbeat already running")

        issues = validate_sync_config()
        if issues:
            raise ValueError(f"Heartbeat configuration invalid: {issues}")

        self.running = True
        self._shutdown_event = asyncio.Event()
        self._loop_task = asyncio.create_task(self._loop())
        logger.info(f"Starting heartbeat loop with tasks: {self.list_tasks()}")
        return True

    async def _loop(self):
        try:
            while self.running and not self._shutdown_event.is_set():
                await self.run_due_tasks()
                try:
                    await asyncio.wait_for(self._shutdown_event.wait(), timeout=self.tick_sec)
                except asyncio.TimeoutError:
                    pass
        finally:
            self.running = False
            logger.info("Heartbeat loop stopped")

    async def stop(self):
        """Stop the heartbeat loop gracefully."""
        if not self.running:
            return

        self.running = False
        if self._shutdown_event:
            self._shutdown_event.set()
        if self._loop_task:
            await self._loop_task
            self._loop_task = None

    def reset_task(self, name: str):
        """Reset a task's last_run time to force immediate execution."""
        if name in self.tasks:
            self.tasks[name]["last_run"] = None

    def get_status(self) -> Dict:
        """Return current heartbeat status for monitoring."""
        if self.running:
            status = {"status": "running"}
        elif not is_heartbeat_enabled():
            status = {"status": "disabled", "reason": "HEARTBEAT_ENABLED=false"}
        else:
            status = {"status": "stopped"}

        return {
            **status,
            "tasks": {
                name: {
                    "interval_sec": info["interval"],
                    "last_run": info["last_run"],
                    "next_run": info["last_run"] + info["interval"] if info["last_run"] else None
                }
                for name, info in self.tasks.items()
            },
        }
