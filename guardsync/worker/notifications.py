"""
Notification gateway.

Deciding what to show (build_push_notification, resolve_click_url) is pure;
displaying and focusing/opening windows goes through the platform seams
INotificationSurface and IClientWindows.
"""

import itertools
import json
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional
from urllib.parse import urlsplit

from pydantic import ValidationError

from ..api.schemas import NotificationOptions, PushPayload
from ..core.config import (
    APP_NAME,
    NOTIFICATION_AUTO_CLOSE_SEC,
    NOTIFICATION_BADGE,
    NOTIFICATION_ICON,
    NOTIFICATION_PERMISSION,
)
from ..util.logging import logger

DEFAULT_BODY = "New notification"
ROOT_URL = "/"

# Presentation per push type; control flow is the same for every type
PUSH_PRESENTATION = {
    "emergency": {"icon": "/icons/emergency-192x192.png", "urgency": "high", "requireInteraction": True},
    "violation": {"icon": "/icons/violation-192x192.png", "urgency": "normal", "requireInteraction": False},
}


class PermissionState(str, Enum):
    GRANTED = "granted"
    DENIED = "denied"
    DEFAULT = "default"


@dataclass
class NotificationAction:
    action: str
    title: str
    url: Optional[str] = None
    navigates: bool = True


@dataclass
class Notification:
    title: str
    body: str
    icon: Optional[str] = None
    badge: Optional[str] = None
    tag: Optional[str] = None
    url: Optional[str] = None
    require_interaction: bool = False
    urgency: str = "normal"
    actions: List[NotificationAction] = field(default_factory=list)
    data: Dict[str, Any] = field(default_factory=dict)
    auto_close_after: Optional[float] = None
    id: Optional[int] = None
    shown_at: Optional[float] = None


@dataclass
class ShowResult:
    status: str  # shown | suppressed
    reason: Optional[str] = None
    notification: Optional[Notification] = None


@dataclass
class ClickOutcome:
    outcome: str  # focused | opened | dismissed
    url: Optional[str] = None
    client_id: Optional[str] = None


# Platform seams

class INotificationSurface(ABC):
    """Where notifications are displayed."""

    @abstractmethod
    def permission(self) -> PermissionState:
        pass

    @abstractmethod
    async def display(self, notification: Notification) -> Notification:
        """Display a notification; returns it with its surface id assigned."""
        pass

    @abstractmethod
    async def close(self, notification_id: int) -> None:
        pass


class ClientWindow:
    def __init__(self, client_id: str, url: str):
        self.id = client_id
        self.url = url
        self.focused = False

    async def focus(self) -> "ClientWindow":
        self.focused = True
        return self


class IClientWindows(ABC):
    """Open windows of the app."""

    @abstractmethod
    async def match_all(self) -> List[ClientWindow]:
        pass

    @abstractmethod
    async def open_window(self, url: str) -> ClientWindow:
        pass


class NotificationTray(INotificationSurface):
    """In-process notification surface; the gateway exposes its contents over HTTP."""

    def __init__(self, permission: str = None):
        self._permission = PermissionState(permission or NOTIFICATION_PERMISSION)
        self._notifications: Dict[int, Notification] = {}
        self._ids = itertools.count(1)

    def permission(self) -> PermissionState:
        return self._permission

    def set_permission(self, permission: str):
        self._permission = PermissionState(permission)

    async def display(self, notification: Notification) -> Notification:
        notification.id = next(self._ids)
        notification.shown_at = time.monotonic()
        self._notifications[notification.id] = notification
        return notification

    async def close(self, notification_id: int) -> None:
        self._notifications.pop(notification_id, None)

    def get(self, notification_id: int) -> Optional[Notification]:
        self._expire()
        return self._notifications.get(notification_id)

    def active(self) -> List[Notification]:
        self._expire()
        return list(self._notifications.values())

    def _expire(self):
        now = time.monotonic()
        expired = [
            n.id for n in self._notifications.values()
            if n.auto_close_after is not None and n.shown_at is not None and now - n.shown_at >= n.auto_close_after
        ]
        for notification_id in expired:
            del self._notifications[notification_id]


class ClientRegistry(IClientWindows):
    """Windows registered with the gateway by the pages that own them."""

    def __init__(self):
        self._windows: Dict[str, ClientWindow] = {}
        self._ids = itertools.count(1)

    def register(self, url: str) -> ClientWindow:
        window = ClientWindow(f"client-{next(self._ids)}", url)
        self._windows[window.id] = window
        return window

    def unregister(self, client_id: str) -> bool:
        return self._windows.pop(client_id, None) is not None

    async def match_all(self) -> List[ClientWindow]:
        return list(self._windows.values())

    async def open_window(self, url: str) -> ClientWindow:
        return self.register(url)


# Pure decisions

def build_push_notification(raw: Any) -> Notification:
    """Turn a push payload into a notification; malformed payloads get safe defaults."""
    if isinstance(raw, (bytes, str)):
        try:
            raw = json.loads(raw)
        except ValueError:
            logger.warning("Push payload is not JSON; using default notification")
            raw = {}

    try:
        payload = PushPayload.model_validate(raw if raw is not None else {})
    except ValidationError as e:
        logger.warning(f"Malformed push payload replaced with defaults: {e.error_count()} error(s)")
        payload = PushPayload()

    presentation = PUSH_PRESENTATION.get(payload.type or "", {})
    data = payload.data.model_dump(exclude_none=True)

    actions = []
    for item in payload.data.actions or []:
        if isinstance(item, dict) and item.get("action"):
            actions.append(NotificationAction(
                action=str(item["action"]),
                title=str(item.get("title") or item["action"]),
                url=item.get("url"),
                navigates=bool(item.get("navigates", True)),
            ))

    require_interaction = bool(presentation.get("requireInteraction", False))
    return Notification(
        title=payload.title or APP_NAME,
        body=payload.body or DEFAULT_BODY,
        icon=presentation.get("icon", NOTIFICATION_ICON),
        badge=NOTIFICATION_BADGE,
        url=payload.data.url,
        require_interaction=require_interaction,
        urgency=presentation.get("urgency", "normal"),
        actions=actions,
        data=data,
        tag=payload.type,
    )


def resolve_click_url(notification: Notification, action: Optional[str] = None) -> Optional[str]:
    """Per-action URL, else the notification URL, else the app root.

    Returns None when the chosen action does not navigate (e.g. "dismiss").
    """
    if action:
        for candidate in notification.actions:
            if candidate.action == action:
                if not candidate.navigates:
                    return None
                if candidate.url:
                    return candidate.url
                break

    return notification.url or notification.data.get("url") or ROOT_URL


def _same_location(window_url: str, target: str) -> bool:
    if window_url == target:
        return True
    window, wanted = urlsplit(window_url), urlsplit(target)
    if wanted.netloc and window.netloc != wanted.netloc:
        return False
    return (window.path or "/") == (wanted.path or "/") and window.query == wanted.query


class NotificationGateway:
    """Shows notifications and routes clicks back into app navigation."""

    def __init__(self, surface: INotificationSurface, clients: IClientWindows, auto_close_after: float = None):
        self.surface = surface
        self.clients = clients
        self.auto_close_after = NOTIFICATION_AUTO_CLOSE_SEC if auto_close_after is None else auto_close_after

    async def show(self, title: str, body: str, options: Optional[Dict[str, Any]] = None) -> ShowResult:
        """Display a notification.

        Raises ValueError if options are invalid (requireInteraction must be a bool).
        A denied permission is not an error: the result is suppressed/permission_denied.
        """
        try:
            opts = NotificationOptions.model_validate(options or {})
        except ValidationError as e:
            raise ValueError(f"Invalid notification options: {e}") from e

        notification = Notification(
            title=title,
            body=body,
            icon=opts.icon or NOTIFICATION_ICON,
            badge=opts.badge or NOTIFICATION_BADGE,
            tag=opts.tag,
            url=opts.url,
            require_interaction=opts.requireInteraction,
            urgency=opts.urgency,
            actions=[NotificationAction(**a.model_dump()) for a in opts.actions],
            data=opts.data,
        )
        return await self.display(notification)

    async def display(self, notification: Notification) -> ShowResult:
        if self.surface.permission() is not PermissionState.GRANTED:
            logger.log_notification(notification.title, "suppressed", {"reason": "permission_denied"})
            return ShowResult(status="suppressed", reason="permission_denied")

        if not notification.require_interaction and notification.auto_close_after is None:
            notification.auto_close_after = self.auto_close_after

        shown = await self.surface.display(notification)
        logger.log_notification(notification.title, "shown", {"id": shown.id, "urgency": shown.urgency})
        return ShowResult(status="shown", notification=shown)

    async def on_push(self, raw: Any) -> ShowResult:
        """Handle a push delivery; never raises for a bad payload."""
        return await self.display(build_push_notification(raw))

    async def on_notification_click(self, notification: Notification, action: Optional[str] = None) -> ClickOutcome:
        """Close the notification, then focus a matching window or open exactly one."""
        if notification.id is not None:
            await self.surface.close(notification.id)

        url = resolve_click_url(notification, action)
        if url is None:
            return ClickOutcome(outcome="dismissed")

        for window in await self.clients.match_all():
            if _same_location(window.url, url):
                await window.focus()
                return ClickOutcome(outcome="focused", url=url, client_id=window.id)

        window = await self.clients.open_window(url)
        return ClickOutcome(outcome="opened", url=url, client_id=window.id)

    async def notify_update_available(self) -> ShowResult:
        return await self.show(
            "App Update Available",
            f"A new version of {APP_NAME} is available. Refresh to update.",
            {
                "tag": "app-update",
                "requireInteraction": True,
                "url": ROOT_URL,
                "actions": [
                    {"action": "update", "title": "Update Now", "url": ROOT_URL},
                    {"action": "dismiss", "title": "Later", "navigates": False},
                ],
            },
        )
