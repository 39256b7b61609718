"""
Synthetic responses used when neither the network nor a cache can answer.
Every one is well formed for its resource class so the UI keeps rendering offline.
"""

from typing import Optional

from .types import Request, Response
from ..core.config import APP_NAME

FALLBACK_HEADER = "x-offline-fallback"

OFFLINE_MESSAGE = "You are offline. Showing what is available on this device."

OFFLINE_PAGE = """<!DOCTYPE html>
<html lang="en">
<head>
<meta charset="utf-8">
<meta name="viewport" content="width=device-width, initial-scale=1">
<title>{title} - Offline</title>
</head>
<body>
<main>
<h1>{title}</h1>
<p>You are offline. Reports you submit are saved on this device and sent when the connection returns.</p>
<p>In an emergency dial 100 (Police) or 112.</p>
</main>
</body>
</html>
"""

PLACEHOLDER_SVG = (
    '<svg xmlns="http://www.w3.org/2000/svg" width="200" height="200" viewBox="0 0 200 200">'
    '<rect width="200" height="200" fill="#e5e7eb"/>'
    '<text x="100" y="105" font-family="sans-serif" font-size="14" fill="#6b7280" text-anchor="middle">Offline</text>'
    '</svg>'
)

_EXTENSION_DESTINATIONS = {
    ".png": "image", ".jpg": "image", ".jpeg": "image", ".gif": "image",
    ".svg": "image", ".webp": "image", ".ico": "image",
    ".js": "script", ".mjs": "script",
    ".css": "style",
    ".woff": "font", ".woff2": "font", ".ttf": "font",
}


def _looks_like_identifier(segment: str) -> bool:
    return segment.isdigit() or (len(segment) == 36 and segment.count("-") == 4)


def offline_api_response(request: Request) -> Response:
    """Structurally valid JSON for an API read with no network and no cached copy."""
    try:
        segments = [s for s in request.path.split("/") if s]
    except ValueError:
        segments = []

    single_item = bool(segments) and _looks_like_identifier(segments[-1])
    return Response.from_json(
        200,
        {"offline": True, "data": None if single_item else [], "message": OFFLINE_MESSAGE},
        headers={FALLBACK_HEADER: "api"},
    )


def offline_page() -> Response:
    """Minimal HTML document for a route with no cached shell."""
    return Response(
        status=200,
        headers={"content-type": "text/html; charset=utf-8", FALLBACK_HEADER: "navigation"},
        body=OFFLINE_PAGE.format(title=APP_NAME).encode("utf-8"),
    )


def destination_of(request: Request) -> str:
    """Fetch destination from the request hint, else from the file extension."""
    if request.destination:
        return request.destination

    try:
        path = request.path.lower()
    except ValueError:
        return ""

    for extension, destination in _EXTENSION_DESTINATIONS.items():
        if path.endswith(extension):
            return destination
    return ""


def resource_placeholder(request: Request) -> Response:
    """Typed placeholder for a static asset that could not be loaded."""
    destination = destination_of(request)
    headers = {FALLBACK_HEADER: "resource"}

    if destination == "image":
        headers["content-type"] = "image/svg+xml"
        return Response(status=200, headers=headers, body=PLACEHOLDER_SVG.encode("utf-8"))
    if destination == "script":
        headers["content-type"] = "application/javascript"
        return Response(status=200, headers=headers, body=b"/* offline */")
    if destination == "style":
        headers["content-type"] = "text/css"
        return Response(status=200, headers=headers, body=b"/* offline */")

    headers["content-type"] = "text/plain"
    return Response(status=200, headers=headers, body=b"")


def queued_mutation_response(mutation_id: int, resource_kind: str) -> Response:
    """A write that was saved to the outbox: "saved, will sync"."""
    return Response.from_json(
        202,
        {
            "queued": True,
            "offline": True,
            "outboxId": mutation_id,
            "resourceKind": resource_kind,
            "message": "Saved on this device. It will be sent when you are back online.",
        },
        headers={FALLBACK_HEADER: "outbox"},
    )


def storage_unavailable_response() -> Response:
    """A write that could neither reach the network nor be saved locally."""
    return Response.from_json(
        503,
        {
            "error": "storage_unavailable",
            "offline": True,
            "message": "You are offline and this device cannot save the submission. Please submit again when online.",
        },
        headers={FALLBACK_HEADER: "storage-unavailable"},
    )


def network_error_response(detail: Optional[str] = None) -> Response:
    """Last-resort answer for a request nothing else could serve."""
    return Response.from_json(
        503,
        {"error": "network_unavailable", "offline": True, "message": detail or OFFLINE_MESSAGE},
        headers={FALLBACK_HEADER: "network"},
    )
