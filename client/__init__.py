"""
Client Package
Device-side reminder scheduling and API access
"""

from .device import (
    NotificationContent,
    ScheduledNotification,
    DeviceNotifier,
    InMemoryDeviceNotifier
)

from .local_scheduler import LocalNotificationScheduler

from .api_client import CareCompanionClient, CareCompanionAPIError


__all__ = [
    "NotificationContent",
    "ScheduledNotification",
    "DeviceNotifier",
    "InMemoryDeviceNotifier",
    "LocalNotificationScheduler",
    "CareCompanionClient",
    "CareCompanionAPIError",
]
