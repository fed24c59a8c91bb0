"""
Services Module
Business logic layer for the CareCompanion application
"""

from services.access_control import AccessControl, access_control
from services.notification_service import NotificationService, notification_service
from services.medication_service import MedicationService, medication_service
from services.task_service import TaskService, task_service


__all__ = [
    # Service classes
    "AccessControl",
    "NotificationService",
    "MedicationService",
    "TaskService",
    # Singleton instances
    "access_control",
    "notification_service",
    "medication_service",
    "task_service",
]
