"""
Pydantic models for mutation payloads, push payloads and the gateway control API.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional, Type

from pydantic import BaseModel, ConfigDict, Field, StrictBool, field_validator


# Mutation payloads - one variant per resource kind.
# Extra fields are kept so a payload leaves the outbox exactly as it went in.

class ViolationReportPayload(BaseModel):
    model_config = ConfigDict(extra="allow")

    type: Optional[str] = None
    violationType: Optional[str] = None
    vehicleNumber: Optional[str] = None
    description: Optional[str] = None
    location: Optional[Dict[str, Any]] = None
    attachments: Optional[List[Any]] = None


class EmergencyAlertPayload(BaseModel):
    model_config = ConfigDict(extra="allow")

    location: Dict[str, Any]
    userId: Optional[int] = None
    type: Optional[str] = None
    status: Optional[str] = None


class GenericMutationPayload(BaseModel):
    """A write to any other API endpoint, replayed to the endpoint it was aimed at."""
    model_config = ConfigDict(extra="allow")

    method: str = "POST"
    url: str
    body: Any = None
    content_type: Optional[str] = "application/json"
    raw_body: Optional[str] = None  # exact text sent; replayed as-is when present

    @field_validator('method')
    @classmethod
    def method_must_be_write(cls, v):
        v = v.upper()
        if v not in ['POST', 'PUT', 'PATCH', 'DELETE']:
            raise ValueError('method must be one of: POST, PUT, PATCH, DELETE')
        return v

    @field_validator('url')
    @classmethod
    def url_must_not_be_empty(cls, v):
        if not v.strip():
            raise ValueError('url cannot be empty')
        return v


PAYLOAD_MODELS: Dict[str, Type[BaseModel]] = {
    "violation_report": ViolationReportPayload,
    "emergency_alert": EmergencyAlertPayload,
    "generic": GenericMutationPayload,
}


def payload_model_for(resource_kind: str) -> Type[BaseModel]:
    """Return the payload variant for a resource kind."""
    try:
        return PAYLOAD_MODELS[resource_kind]
    except KeyError:
        raise ValueError(f"Unknown resource kind: {resource_kind}")


def payload_to_dict(payload: BaseModel) -> Dict[str, Any]:
    """Serialize only what the caller set, so defaults never leak into the replayed body."""
    data = payload.model_dump(mode="json", exclude_unset=True)
    for key, value in (payload.model_extra or {}).items():
        data.setdefault(key, value)
    return data


# Push and notification payloads

class PushData(BaseModel):
    model_config = ConfigDict(extra="allow")

    url: Optional[str] = None
    actions: Optional[List[Dict[str, Any]]] = None


class PushPayload(BaseModel):
    """JSON delivered by the push service: {title, body, data, type}."""
    model_config = ConfigDict(extra="ignore")

    title: Optional[str] = None
    body: Optional[str] = None
    data: PushData = Field(default_factory=PushData)
    type: Optional[str] = None


class NotificationActionModel(BaseModel):
    action: str
    title: str
    url: Optional[str] = None
    navigates: bool = True


class NotificationOptions(BaseModel):
    """Options accepted by NotificationGateway.show."""
    model_config = ConfigDict(extra="forbid")

    requireInteraction: StrictBool = False
    url: Optional[str] = None
    actions: List[NotificationActionModel] = Field(default_factory=list)
    icon: Optional[str] = None
    badge: Optional[str] = None
    tag: Optional[str] = None
    urgency: str = "normal"
    data: Dict[str, Any] = Field(default_factory=dict)


# Gateway control API

class HealthResponse(BaseModel):
    status: str
    version: str
    offline_capable: bool
    online: bool
    pending_mutations: int
    cache_names: List[str]


class PendingMutationResponse(BaseModel):
    id: int
    resource_kind: str
    payload: Dict[str, Any]
    created_at: datetime
    attempt_count: int
    last_error: Optional[str] = None


class OutboxListResponse(BaseModel):
    items: List[PendingMutationResponse]


class SyncRequest(BaseModel):
    tag: str = "offline-sync"


class SyncResponse(BaseModel):
    tag: str
    accepted: bool
    delivered: Dict[str, List[int]] = Field(default_factory=dict)
    failed: Dict[str, int] = Field(default_factory=dict)
    remaining: Dict[str, int] = Field(default_factory=dict)


class ShowResponse(BaseModel):
    status: str
    reason: Optional[str] = None
    notification_id: Optional[int] = None


class NotificationResponse(BaseModel):
    id: int
    title: str
    body: str
    icon: Optional[str] = None
    url: Optional[str] = None
    require_interaction: bool
    urgency: str
    actions: List[NotificationActionModel] = Field(default_factory=list)


class NotificationListResponse(BaseModel):
    items: List[NotificationResponse]


class NotificationClickRequest(BaseModel):
    action: Optional[str] = None


class ClickResponse(BaseModel):
    outcome: str
    url: Optional[str] = None
    client_id: Optional[str] = None


class PushSubscriptionKeys(BaseModel):
    p256dh: str
    auth: str


class PushSubscriptionRequest(BaseModel):
    """The browser's PushSubscription.toJSON() shape."""
    endpoint: str
    expirationTime: Optional[int] = None
    keys: PushSubscriptionKeys

    @field_validator('endpoint')
    @classmethod
    def endpoint_must_be_https(cls, v):
        if not v.startswith("https://"):
            raise ValueError('endpoint must be an https URL')
        return v


class SubscribeResponse(BaseModel):
    status: str  # delivered|queued
    upstream_status: int
    outbox_id: Optional[int] = None


class ClientRegisterRequest(BaseModel):
    url: str


class ClientResponse(BaseModel):
    id: str
    url: str
    focused: bool


class ConnectivityRequest(BaseModel):
    online: bool


class ConnectivityResponse(BaseModel):
    online: bool
    sync_triggered: bool
    last_checked: Optional[datetime] = None


class CacheListResponse(BaseModel):
    caches: Dict[str, int]
