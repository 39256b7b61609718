"""
Structured logging for the offline layer.
Cache, outbox, sync and notification operations share one log format.
"""

import logging
from typing import Any, Dict, List, Optional

from ..core.config import LOG_LEVEL

# Fields of citizen-submitted payloads that must never reach the log verbatim
SENSITIVE_FIELDS = ['description', 'phone', 'phoneNumber', 'contact', 'body', 'message', 'attachments', 'password']


class StructuredLogger:
    """Structured logger for cache, outbox, sync and notification operations."""

    def __init__(self, name: str = "guardsync"):
        self.logger = logging.getLogger(name)
        self.logger.setLevel(getattr(logging, LOG_LEVEL, logging.INFO))

        # Create handler if not already set
        if not self.logger.handlers:
            handler = logging.StreamHandler()
            formatter = logging.Formatter(
                '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
            )
            handler.setFormatter(formatter)
            self.logger.addHandler(handler)

    def log_operation(self, operation: str, status: str, details: Dict[str, Any] = None):
        """Log a structured operation."""
        message = f"Operation: {operation}, Status: {status}"
        if details:
            message += f", Details: {details}"

        if status in ("failed", "error", "unavailable"):
            self.logger.warning(message)
        else:
            self.logger.info(message)

    def log_cache_operation(self, operation: str, cache_name: str, key: str = None, status: str = "success"):
        """Log a cache read/write/sweep."""
        details = {"cache": cache_name}
        if key is not None:
            details["key"] = key[:80] + "..." if len(key) > 80 else key

        self.log_operation(f"cache.{operation}", status, details)

    def log_outbox_operation(self, operation: str, mutation_id: Optional[int], resource_kind: str = None,
                             status: str = "success", details: Dict[str, Any] = None):
        """Log an outbox enqueue/remove/attempt."""
        log_details = {"id": mutation_id}
        if resource_kind:
            log_details["resource_kind"] = resource_kind
        if details:
            log_details.update(details)

        self.log_operation(f"outbox.{operation}", status, log_details)

    def log_sync_cycle(self, tag: str, delivered: int, failed: int, remaining: int, duration_ms: float):
        """Log one drain cycle of the sync coordinator."""
        status = "success" if failed == 0 else "partial"
        self.log_operation("sync.drain", status, {
            "tag": tag,
            "delivered": delivered,
            "failed": failed,
            "remaining": remaining,
            "duration_ms": round(duration_ms, 2),
        })

    def log_notification(self, title: str, status: str, details: Dict[str, Any] = None):
        """Log a notification decision."""
        log_details = {"title": title[:60]}
        if details:
            log_details.update(details)

        self.log_operation("notification.show", status, log_details)

    def log_heartbeat_task(self, task_name: str, start_time: float, end_time: float, status: str = "success", details: Dict[str, Any] = None):
        """Log heartbeat task execution."""
        duration_ms = round((end_time - start_time) * 1000, 2)
        log_details = {"duration_ms": duration_ms}
        if details:
            log_details.update(details)
        elif status == "success":
            log_details["message"] = f"Heartbeat task '{task_name}' completed in {duration_ms}ms"
        elif status == "failed":
            log_details["message"] = f"Heartbeat task '{task_name}' failed after {duration_ms}ms"

        self.log_operation(f"heartbeat.{task_name}", status, log_details)

    # Standard logging methods for compatibility
    def info(self, message: str) -> None:
        """Log an info message."""
        self.logger.info(message)

    def warning(self, message: str) -> None:
        """Log a warning message."""
        self.logger.warning(message)

    def error(self, message: str) -> None:
        """Log an error message."""
        self.logger.error(message)

    def debug(self, message: str) -> None:
        """Log a debug message."""
        self.logger.debug(message)

    def exception(self, message: str) -> None:
        """Log an error message with the active traceback."""
        self.logger.exception(message)


# Global logger instance
logger = StructuredLogger()


def sanitize_payload(payload: Any, reveal_sensitive: bool = False, sensitive_fields: List[str] = None) -> Any:
    """Sanitize payloads before they are logged."""
    if sensitive_fields is None:
        sensitive_fields = SENSITIVE_FIELDS

    if isinstance(payload, dict):
        sanitized = {}
        for k, v in payload.items():
            if reveal_sensitive or k not in sensitive_fields:
                sanitized[k] = sanitize_payload(v, reveal_sensitive, sensitive_fields)
            else:
                sanitized[k] = "[REDACTED]"
        return sanitized
    elif isinstance(payload, str):
        # Truncate long strings
        return payload[:100] + "..." if len(payload) > 100 else payload
    elif isinstance(payload, list):
        return [sanitize_payload(item, reveal_sensitive, sensitive_fields) for item in payload]
    else:
        return payload
