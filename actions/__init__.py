"""
Actions Module
Engines that act on materialized notifications
"""

from .reminder_engine import (
    DeliveryOutcome,
    DeliveryAttempt,
    DispatchReport,
    WebhookTransport,
    ReminderEngine,
    create_reminder_engine,
    notification_payload,
    reminder_engine
)


__all__ = [
    # Reminder Engine
    "DeliveryOutcome",
    "DeliveryAttempt",
    "DispatchReport",
    "WebhookTransport",
    "ReminderEngine",
    "create_reminder_engine",
    "notification_payload",
    "reminder_engine"
]
