"""
Local Notification Scheduler
Device-side mirror of server materialization, in the device's time zone
"""

import logging
from contextlib import contextmanager
from typing import Any, Callable, Dict, Iterable, Iterator, List, Mapping, Optional, Union
from datetime import date, datetime, timezone, tzinfo
from zoneinfo import ZoneInfo

from config import settings, scheduling_config
from client.device import DeviceNotifier, Listener, NotificationContent
from tools.recurrence import ScheduleTime, expand, expand_due_date, parse_schedule


logger = logging.getLogger(__name__)


Clock = Callable[[], datetime]


def _read(source: Any, attr: str, key: Optional[str] = None) -> Any:
    """Attribute of a model object, or camelCase key of an API payload"""
    if isinstance(source, Mapping):
        return source.get(key or attr)
    return getattr(source, attr, None)


def _parse_datetime(value: Union[str, datetime, date, None]) -> Optional[datetime]:
    if value is None or isinstance(value, datetime):
        return value
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    return datetime.fromisoformat(text)


class LocalNotificationScheduler:
    """
    Schedules reminders on the device itself

    Uses the same expansion rules as the server, but stamps every instant in
    the device's zone. Triggers already in the past are skipped and logged.
    """

    def __init__(
        self,
        device: DeviceNotifier,
        tz: Union[str, tzinfo, None] = None,
        clock: Optional[Clock] = None
    ):
        self.device = device
        self.tz = ZoneInfo(tz or settings.DEVICE_TIMEZONE) if not isinstance(tz, tzinfo) else tz
        self._clock = clock or (lambda: datetime.now(self.tz))
        self._handles: List[str] = []
        self._listener_tokens: List[str] = []

    def now(self) -> datetime:
        current = self._clock()
        if current.tzinfo is None:
            current = current.replace(tzinfo=self.tz)
        return current.astimezone(self.tz)

    @property
    def handles(self) -> List[str]:
        return list(self._handles)

    def request_permissions(self) -> bool:
        return self.device.request_permissions()

    def schedule_local_notification(
        self,
        trigger: datetime,
        title: str,
        body: str,
        data: Optional[Dict[str, Any]] = None
    ) -> Optional[str]:
        """Hand one trigger to the device; None when the trigger has passed"""
        if trigger.tzinfo is None:
            trigger = trigger.replace(tzinfo=self.tz)

        if trigger < self.now():
            logger.warning(f"Invalid trigger date {trigger.isoformat()}: already passed, skipping")
            return None

        handle = self.device.schedule_at(trigger, NotificationContent(title, body, dict(data or {})))
        self._handles.append(handle)
        return handle

    def schedule_medication_notifications(
        self,
        medication: Any,
        horizon: Optional[int] = None
    ) -> List[str]:
        """
        Schedule a medication's reminders from today (device-local)

        Args:
            medication: Medication model or API payload with a schedule
            horizon: Days (daily) or weeks (weekly) to schedule

        Returns:
            Handles of the entries actually scheduled
        """
        schedule = parse_schedule(_read(medication, "schedule"))
        name = _read(medication, "name")
        dosage = _read(medication, "dosage")

        handles = []
        for instant in expand(schedule, horizon, self.now().date()):
            handle = self.schedule_local_notification(
                instant.at(self.tz),
                f"Medication Reminder: {name}",
                f"Time to take {name} ({dosage})",
                {"type": "medication", "medicationId": _read(medication, "id")}
            )
            if handle:
                handles.append(handle)

        logger.info(f"Scheduled {len(handles)} local reminders for medication {name}")
        return handles

    def schedule_task_notification(
        self,
        task: Any,
        notification_time: Optional[ScheduleTime] = None
    ) -> Optional[str]:
        """Reminder on the task's due day (device-local) at 09:00 or the override"""
        due = _parse_datetime(_read(task, "due_date", "dueDate"))
        if due is None:
            return None

        # Stored due dates are naive UTC
        if due.tzinfo is None:
            due = due.replace(tzinfo=timezone.utc)
        local_day = due.astimezone(self.tz).date()

        at = notification_time or ScheduleTime(
            scheduling_config.TASK_DEFAULT_HOUR,
            scheduling_config.TASK_DEFAULT_MINUTE
        )
        instant = next(expand_due_date(local_day, at))

        title = _read(task, "title")
        return self.schedule_local_notification(
            instant.at(self.tz),
            f"Task Reminder: {title}",
            _read(task, "description") or f"Don't forget to complete: {title}",
            {"type": "task", "taskId": _read(task, "id")}
        )

    def schedule_stored_notifications(self, notifications: Iterable[Any]) -> List[str]:
        """Mirror server-materialized notifications; their UTC instants become local triggers"""
        handles = []
        for notification in notifications:
            scheduled = _parse_datetime(_read(notification, "scheduled_date", "scheduledDate"))
            if scheduled.tzinfo is None:
                scheduled = scheduled.replace(tzinfo=timezone.utc)

            data = {
                "type": _read(notification, "type"),
                "notificationId": _read(notification, "id"),
            }
            medication_id = _read(notification, "medication_id", "medicationId")
            task_id = _read(notification, "task_id", "taskId")
            if medication_id is not None:
                data["medicationId"] = medication_id
            if task_id is not None:
                data["taskId"] = task_id

            handle = self.schedule_local_notification(
                scheduled.astimezone(self.tz),
                _read(notification, "title"),
                _read(notification, "message"),
                data
            )
            if handle:
                handles.append(handle)
        return handles

    def cancel(self, handle: str) -> bool:
        if handle in self._handles:
            self._handles.remove(handle)
        return self.device.cancel(handle)

    def cancel_all(self) -> int:
        self._handles.clear()
        count = self.device.cancel_all()
        logger.info(f"Cancelled {count} scheduled notifications")
        return count

    def setup_listeners(
        self,
        on_received: Optional[Listener] = None,
        on_tapped: Optional[Listener] = None
    ) -> None:
        def _received(entry):
            logger.info(f"Notification received in foreground: {entry.content.title}")
            if on_received:
                on_received(entry)

        def _tapped(entry):
            logger.info(f"Notification tapped: {entry.content.title}")
            if on_tapped:
                on_tapped(entry)

        self.remove_listeners()
        self._listener_tokens = [
            self.device.add_received_listener(_received),
            self.device.add_tap_listener(_tapped),
        ]

    def remove_listeners(self) -> None:
        while self._listener_tokens:
            self.device.remove_listener(self._listener_tokens.pop())

    @contextmanager
    def listen(
        self,
        on_received: Optional[Listener] = None,
        on_tapped: Optional[Listener] = None
    ) -> Iterator["LocalNotificationScheduler"]:
        """Listeners stay registered for the duration of the block"""
        self.setup_listeners(on_received, on_tapped)
        try:
            yield self
        finally:
            self.remove_listeners()
