"""
Offline layer configuration.
Every setting is read from the environment (and an optional .env file) once, at import time.
"""

import os
from pathlib import Path
from typing import Dict, List, Optional

from dotenv import load_dotenv

load_dotenv()

APP_NAME = os.getenv("APP_NAME", "TrafficGuard Pro")
VERSION = "1.0.0"

DEBUG = os.getenv("DEBUG", "false").lower() == "true"
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

# Storage locations (Durable Outbox Store and Cache Manager own separate files)
OUTBOX_DB_PATH = os.getenv("OUTBOX_DB_PATH", "./data/outbox.db")
CACHE_DB_PATH = os.getenv("CACHE_DB_PATH", "./data/cache.db")
CACHE_BACKEND = os.getenv("CACHE_BACKEND", "sqlite")  # sqlite|memory
SQLITE_TIMEOUT_SEC = float(os.getenv("SQLITE_TIMEOUT_SEC", "5"))

# Cache versioning - bump CACHE_VERSION on deploy to roll every cache over
CACHE_VERSION = os.getenv("CACHE_VERSION", "v1")
APP_CACHE_NAME = f"trafficguard-pro-{CACHE_VERSION}"
STATIC_CACHE_NAME = f"static-cache-{CACHE_VERSION}"
DYNAMIC_CACHE_NAME = f"dynamic-cache-{CACHE_VERSION}"

# App shell entries cached at install time
PRECACHE_URLS = [u.strip() for u in os.getenv(
    "PRECACHE_URLS",
    "/,/manifest.json,/icons/icon-192x192.png,/icons/icon-72x72.png"
).split(",") if u.strip()]
SHELL_URL = os.getenv("SHELL_URL", "/")

# Request routing
API_PREFIXES = [p.strip() for p in os.getenv("API_PREFIXES", "/api/").split(",") if p.strip()]
APP_ORIGIN = os.getenv("APP_ORIGIN", "")

# Upstream REST API the gateway fronts
UPSTREAM_URL = os.getenv("UPSTREAM_URL", "http://localhost:5000")
NETWORK_TIMEOUT_SEC = float(os.getenv("NETWORK_TIMEOUT_SEC", "10"))

# Sync coordinator
SYNC_TIMEOUT_SEC = float(os.getenv("SYNC_TIMEOUT_SEC", "8"))
SYNC_INTERVAL_SEC = int(os.getenv("SYNC_INTERVAL_SEC", "300"))
SYNC_TAG = "offline-sync"
PERIODIC_SYNC_TAG = "periodic-sync"
CONNECTIVITY_SYNC_TAG = "connectivity-restored"
VIOLATION_REPLAY_URL = os.getenv("VIOLATION_REPLAY_URL", "/api/traffic-violations")
EMERGENCY_REPLAY_URL = os.getenv("EMERGENCY_REPLAY_URL", "/api/sos")

# Push subscriptions are forwarded here so the server can target this device
PUSH_SUBSCRIBE_URL = os.getenv("PUSH_SUBSCRIBE_URL", "/api/push/subscribe")

# Connectivity probing
CONNECTIVITY_PROBE_PATH = os.getenv("CONNECTIVITY_PROBE_PATH", "/")
CONNECTIVITY_PROBE_SEC = int(os.getenv("CONNECTIVITY_PROBE_SEC", "30"))
CONNECTIVITY_PROBE_TIMEOUT_SEC = float(os.getenv("CONNECTIVITY_PROBE_TIMEOUT_SEC", "3"))

# Heartbeat (periodic wake-ups; disabled by default)
HEARTBEAT_ENABLED = os.getenv("HEARTBEAT_ENABLED", "false").lower() == "true"

# Notifications
NOTIFICATION_PERMISSION = os.getenv("NOTIFICATION_PERMISSION", "granted")  # granted|denied|default
NOTIFICATION_ICON = os.getenv("NOTIFICATION_ICON", "/icons/icon-192x192.png")
NOTIFICATION_BADGE = os.getenv("NOTIFICATION_BADGE", "/icons/icon-72x72.png")
NOTIFICATION_AUTO_CLOSE_SEC = float(os.getenv("NOTIFICATION_AUTO_CLOSE_SEC", "5"))

# Gateway process
GATEWAY_HOST = os.getenv("GATEWAY_HOST", "127.0.0.1")
GATEWAY_PORT = int(os.getenv("GATEWAY_PORT", "8080"))


def current_cache_names() -> List[str]:
    """Return the cache names that survive activation."""
    return [APP_CACHE_NAME, STATIC_CACHE_NAME, DYNAMIC_CACHE_NAME]


def replay_targets() -> Dict[str, Optional[str]]:
    """Map resource kind -> endpoint its pending mutations are POSTed to.

    A value of None means the mutation carries its own endpoint (generic writes).
    """
    return {
        "violation_report": VIOLATION_REPLAY_URL,
        "emergency_alert": EMERGENCY_REPLAY_URL,
        "generic": None,
    }


def mutation_routes() -> Dict[str, str]:
    """Map API path -> resource kind for writes that are queued when offline."""
    return {
        VIOLATION_REPLAY_URL: "violation_report",
        EMERGENCY_REPLAY_URL: "emergency_alert",
    }


def is_heartbeat_enabled():
    """Check if the heartbeat loop is enabled."""
    return HEARTBEAT_ENABLED


def ensure_db_directory(db_path: str):
    """Ensure the directory for a database file exists."""
    Path(db_path).parent.mkdir(parents=True, exist_ok=True)


def validate_sync_config():
    """Validate sync and heartbeat configuration and return any issues."""
    issues = []

    if SYNC_TIMEOUT_SEC <= 0:
        issues.append("SYNC_TIMEOUT_SEC must be > 0")

    if SYNC_INTERVAL_SEC < 1:
        issues.append("SYNC_INTERVAL_SEC must be >= 1")

    if CONNECTIVITY_PROBE_SEC < 1:
        issues.append("CONNECTIVITY_PROBE_SEC must be >= 1")

    if CACHE_BACKEND not in ["sqlite", "memory"]:
        issues.append(f"Invalid CACHE_BACKEND: {CACHE_BACKEND}")

    if NOTIFICATION_PERMISSION not in ["granted", "denied", "default"]:
        issues.append(f"Invalid NOTIFICATION_PERMISSION: {NOTIFICATION_PERMISSION}")

    if not API_PREFIXES:
        issues.append("API_PREFIXES must name at least one prefix")

    return issues
