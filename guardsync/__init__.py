"""
Offline-first sync core for the TrafficGuard Pro citizen-safety app.
Request interception, durable outbox, background sync and notifications.
"""

__version__ = "1.0.0"
