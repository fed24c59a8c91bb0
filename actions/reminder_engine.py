"""
Reminder Engine
Hands due notifications to delivery handlers and records delivery
"""

import inspect
import logging
from typing import Any, Awaitable, Callable, Dict, List, Optional, Union
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum

import httpx
from sqlalchemy.orm import Session

from config import settings
from database import get_db_context
import models
from services.notification_service import notification_service
from tools.trigger_evaluator import to_utc_naive, utcnow


logger = logging.getLogger(__name__)


DeliveryHandler = Callable[[models.Notification], Union[bool, Awaitable[bool]]]


class DeliveryOutcome(str, Enum):
    """Result of one delivery attempt"""
    DELIVERED = "delivered"
    FAILED = "failed"
    SKIPPED = "skipped"


@dataclass
class DeliveryAttempt:
    notification_id: int
    patient_id: int
    outcome: DeliveryOutcome
    channels: List[str] = field(default_factory=list)
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "notification_id": self.notification_id,
            "patient_id": self.patient_id,
            "outcome": self.outcome.value,
            "channels": self.channels,
            "error": self.error
        }


@dataclass
class DispatchReport:
    """Summary of one sweep"""
    started_at: datetime
    attempts: List[DeliveryAttempt] = field(default_factory=list)

    def _count(self, outcome: DeliveryOutcome) -> int:
        return sum(1 for a in self.attempts if a.outcome == outcome)

    @property
    def delivered(self) -> int:
        return self._count(DeliveryOutcome.DELIVERED)

    @property
    def failed(self) -> int:
        return self._count(DeliveryOutcome.FAILED)

    @property
    def skipped(self) -> int:
        return self._count(DeliveryOutcome.SKIPPED)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "started_at": self.started_at.isoformat(),
            "due": len(self.attempts),
            "delivered": self.delivered,
            "failed": self.failed,
            "skipped": self.skipped,
            "attempts": [a.to_dict() for a in self.attempts]
        }


def notification_payload(notification: models.Notification) -> Dict[str, Any]:
    """JSON body sent to push transports"""
    return {
        "id": notification.id,
        "patientId": notification.patient_id,
        "medicationId": notification.medication_id,
        "taskId": notification.task_id,
        "type": notification.type,
        "title": notification.title,
        "message": notification.message,
        "scheduledDate": notification.scheduled_date.isoformat() + "Z",
        "notificationTime": notification.notification_time.to_dict(),
    }


class WebhookTransport:
    """POSTs each due notification to a push gateway"""

    def __init__(
        self,
        url: str,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        self.url = url
        self.timeout = timeout
        self.transport = transport

    async def __call__(self, notification: models.Notification) -> bool:
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                response = await client.post(self.url, json=notification_payload(notification))

            if response.status_code >= 300:
                logger.warning(
                    f"Push gateway rejected notification {notification.id}: HTTP {response.status_code}"
                )
                return False
            return True

        except httpx.TimeoutException:
            logger.warning(f"Push gateway timeout for notification {notification.id}")
            return False
        except httpx.HTTPError as e:
            logger.error(f"Push gateway error for notification {notification.id}: {e}")
            return False


class ReminderEngine:
    """
    On-demand reminder dispatcher

    Responsibilities:
    - Find notifications whose trigger instant has passed
    - Hand them to every registered delivery handler
    - Mark delivered only after at least one handler succeeded

    Nothing runs on a timer; callers trigger a sweep. A failed hand-off
    leaves the notification undelivered so the next sweep retries it.
    """

    def __init__(self):
        self._delivery_handlers: Dict[str, DeliveryHandler] = {}

    def register_delivery_handler(self, channel: str, handler: DeliveryHandler):
        """Register a delivery handler for a channel"""
        self._delivery_handlers[channel] = handler
        logger.info(f"Registered delivery handler for {channel}")

    def unregister_delivery_handler(self, channel: str) -> bool:
        return self._delivery_handlers.pop(channel, None) is not None

    @property
    def channels(self) -> List[str]:
        return list(self._delivery_handlers)

    async def send_notification(self, notification: models.Notification) -> DeliveryAttempt:
        """Try every channel; success on any one counts as delivered"""
        attempt = DeliveryAttempt(
            notification_id=notification.id,
            patient_id=notification.patient_id,
            outcome=DeliveryOutcome.SKIPPED
        )

        if not self._delivery_handlers:
            logger.warning(f"No delivery handlers registered; notification {notification.id} left pending")
            return attempt

        errors = []
        for channel, handler in self._delivery_handlers.items():
            try:
                result = handler(notification)
                if inspect.isawaitable(result):
                    result = await result
                if result:
                    attempt.channels.append(channel)
                    logger.info(f"Notification {notification.id} sent via {channel}")
                else:
                    errors.append(f"{channel}: rejected")
            except Exception as e:
                logger.error(f"Failed to send notification {notification.id} via {channel}: {e}")
                errors.append(f"{channel}: {e}")

        if attempt.channels:
            attempt.outcome = DeliveryOutcome.DELIVERED
        else:
            attempt.outcome = DeliveryOutcome.FAILED
            attempt.error = "; ".join(errors)
        return attempt

    async def process_due_notifications(
        self,
        patient_id: Optional[int] = None,
        now: Optional[datetime] = None,
        db: Optional[Session] = None
    ) -> DispatchReport:
        """
        Run one sweep

        Args:
            patient_id: Restrict the sweep to one patient
            now: Evaluation instant (defaults to the current UTC time)
            db: Database session

        Returns:
            DispatchReport with one attempt per due notification
        """
        current = to_utc_naive(now or utcnow())

        async def _process(session: Session) -> DispatchReport:
            report = DispatchReport(started_at=current)
            due = await notification_service.get_due_notifications(patient_id, current, db=session)

            for notification in due:
                attempt = await self.send_notification(notification)
                if attempt.outcome == DeliveryOutcome.DELIVERED:
                    await notification_service.mark_delivered(notification.id, None, current, db=session)
                report.attempts.append(attempt)

            logger.info(
                f"Reminder sweep: {len(due)} due, {report.delivered} delivered, "
                f"{report.failed} failed, {report.skipped} skipped"
            )
            return report

        if db:
            return await _process(db)

        with get_db_context() as session:
            return await _process(session)


def create_reminder_engine() -> ReminderEngine:
    """Engine wired with the transports named in settings"""
    engine = ReminderEngine()
    if settings.PUSH_WEBHOOK_URL:
        engine.register_delivery_handler(
            "webhook",
            WebhookTransport(settings.PUSH_WEBHOOK_URL, settings.PUSH_TIMEOUT_SECONDS)
        )
    return engine


# Singleton instance
reminder_engine = create_reminder_engine()
