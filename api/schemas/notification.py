"""
Notification Schemas
Pydantic models for notification-related API requests and responses
"""

from typing import Optional, List
from datetime import datetime
from pydantic import Field

from api.schemas.common import CamelModel, ScheduleTimeSchema, NotificationTimeRequest, UtcDateTime
from models import NotificationType, RecurringType


# ==================== REQUEST SCHEMAS ====================

class MaterializeRequest(NotificationTimeRequest):
    """Body of POST /notifications/medication/{id} and /notifications/task/{id}"""


class NotificationCreate(CamelModel):
    """Ad-hoc notification (as-needed dose, appointment, free reminder)"""
    patient_id: int
    type: NotificationType = NotificationType.REMINDER
    title: str = Field(..., min_length=1, max_length=100)
    message: str = Field(..., min_length=1, max_length=500)
    scheduled_date: datetime


# ==================== RESPONSE SCHEMAS ====================

class RecurringSchema(CamelModel):
    type: RecurringType = RecurringType.NONE
    days: List[int] = Field(default_factory=list)


class NotificationResponse(CamelModel):
    """Schema for notification response"""
    id: int
    patient_id: int
    medication_id: Optional[int] = None
    task_id: Optional[int] = None
    type: NotificationType
    title: str
    message: str
    scheduled_date: UtcDateTime
    notification_time: ScheduleTimeSchema
    is_active: bool
    is_delivered: bool
    delivered_at: Optional[UtcDateTime] = None
    recurring: RecurringSchema
    created_by: int
    created_at: UtcDateTime
    updated_at: Optional[UtcDateTime] = None


class NotificationList(CamelModel):
    """Schema for list of notifications"""
    notifications: List[NotificationResponse]
    total: int


class MaterializeResponse(CamelModel):
    """Notifications for one source expansion"""
    message: str
    count: int
    notifications: List[NotificationResponse]


class DeliveryAttemptSchema(CamelModel):
    notification_id: int
    patient_id: int
    outcome: str
    channels: List[str] = Field(default_factory=list)
    error: Optional[str] = None


class DispatchResponse(CamelModel):
    """Summary of an on-demand reminder sweep"""
    started_at: UtcDateTime
    due: int
    delivered: int
    failed: int
    skipped: int
    attempts: List[DeliveryAttemptSchema]
