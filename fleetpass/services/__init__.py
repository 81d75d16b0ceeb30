"""
FleetPass - Services Package

Adapters for collaborators outside the identity core.
"""

from fleetpass.services.notifications import (
    NotificationDispatcher,
    LogNotificationDispatcher,
    dispatch_safely,
)


__all__ = [
    "NotificationDispatcher",
    "LogNotificationDispatcher",
    "dispatch_safely",
]
