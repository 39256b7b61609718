"""
Request/response value objects passed between the router, the cache manager and the network.
"""

import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional
from urllib.parse import urlsplit


class ResourceClass(str, Enum):
    API = "api"
    NAVIGATION = "navigation"
    RESOURCE = "resource"
    UNKNOWN = "unknown"


@dataclass
class Request:
    """An intercepted fetch."""

    method: str
    """HTTP method, upper case"""

    url: str
    """Path (with query) or absolute URL as the page requested it"""

    mode: str = "cors"
    """Fetch mode; "navigate" marks full-page/route loads"""

    destination: str = ""
    """Fetch destination hint: image, script, style, font, document or empty"""

    headers: Dict[str, str] = field(default_factory=dict)
    body: bytes = b""

    def __post_init__(self):
        self.method = self.method.upper()
        self.headers = {k.lower(): v for k, v in self.headers.items()}

    @property
    def path(self) -> str:
        """URL path; raises ValueError for an unparsable URL."""
        if not self.url:
            raise ValueError("empty URL")
        return urlsplit(self.url).path or "/"

    def json(self) -> Any:
        return json.loads(self.body.decode("utf-8"))


@dataclass
class Response:
    status: int
    headers: Dict[str, str] = field(default_factory=dict)
    body: bytes = b""

    def __post_init__(self):
        self.headers = {k.lower(): v for k, v in self.headers.items()}

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300

    def json(self) -> Any:
        return json.loads(self.body.decode("utf-8"))

    def text(self) -> str:
        return self.body.decode("utf-8", errors="replace")

    @classmethod
    def from_json(cls, status: int, data: Any, headers: Optional[Dict[str, str]] = None) -> "Response":
        merged = {"content-type": "application/json"}
        if headers:
            merged.update({k.lower(): v for k, v in headers.items()})
        return cls(status=status, headers=merged, body=json.dumps(data).encode("utf-8"))


def request_key(request: Request, origin: str = "") -> str:
    """Cache identity of a request: method + URL, same-origin URLs reduced to path and query."""
    url = request.url
    parts = urlsplit(url)
    if parts.netloc and origin and parts.netloc == urlsplit(origin).netloc:
        url = parts.path or "/"
        if parts.query:
            url += "?" + parts.query
    return f"{request.method} {url}"
