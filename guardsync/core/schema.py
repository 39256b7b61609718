"""
Records owned by the offline layer.
The outbox owns PendingMutation, the cache manager owns CacheEntry; neither references the other.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional


class ResourceKind(str, Enum):
    VIOLATION_REPORT = "violation_report"
    EMERGENCY_ALERT = "emergency_alert"
    GENERIC = "generic"


class CacheClass(str, Enum):
    STATIC = "static"
    DYNAMIC = "dynamic"


class SyncSource(str, Enum):
    CONNECTIVITY = "connectivity"
    PERIODIC = "periodic"
    MANUAL = "manual"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class PendingMutation:
    id: int
    resource_kind: ResourceKind
    payload: Any  # one of the payload models in api.schemas, chosen by resource_kind
    created_at: datetime
    attempt_count: int = 0
    client_ref: str = ""
    last_error: Optional[str] = None
    last_attempt_at: Optional[datetime] = None


@dataclass
class CacheEntry:
    key: str
    status: int
    headers: Dict[str, str]
    body: bytes
    cached_at: datetime
    cache_class: CacheClass


@dataclass
class SyncTrigger:
    """Ephemeral "connectivity likely restored" / "replay window elapsed" event."""
    tag: str
    source: SyncSource
    fired_at: datetime = field(default_factory=utcnow)
