"""
Trigger Evaluator
Decides whether a materialized notification is due, given an injected "now"
"""

from typing import Any, Iterable, List, Tuple
from datetime import datetime, time, timezone


def utcnow() -> datetime:
    """Current UTC time as a naive datetime"""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_utc_naive(moment: datetime) -> datetime:
    """Normalize to the naive-UTC representation used by stored rows"""
    if moment.tzinfo is not None:
        moment = moment.astimezone(timezone.utc).replace(tzinfo=None)
    return moment


def truncate_to_minute(moment: datetime) -> datetime:
    return to_utc_naive(moment).replace(second=0, microsecond=0)


def utc_day_bounds(now: datetime) -> Tuple[datetime, datetime]:
    """Start and end of the UTC calendar day containing `now` (inclusive)"""
    day = to_utc_naive(now).date()
    return datetime.combine(day, time.min), datetime.combine(day, time.max)


def should_trigger(notification: Any, now: datetime) -> bool:
    """
    True iff the notification is active, undelivered and its instant has passed

    Once true this stays true for any later `now` until the notification is
    delivered or deactivated.
    """
    if not notification.is_active or notification.is_delivered:
        return False
    return truncate_to_minute(now) >= to_utc_naive(notification.scheduled_date)


def is_within_day(notification: Any, now: datetime) -> bool:
    start, end = utc_day_bounds(now)
    return start <= to_utc_naive(notification.scheduled_date) <= end


def time_of_day_key(notification: Any) -> Tuple[int, int]:
    return notification.notification_hour, notification.notification_minute


def schedule_order_key(notification: Any) -> Tuple[datetime, int, int]:
    return (to_utc_naive(notification.scheduled_date),) + time_of_day_key(notification)


def todays_notifications(notifications: Iterable[Any], now: datetime) -> List[Any]:
    """Active notifications falling on today's UTC date, earliest wall-clock time first"""
    todays = [n for n in notifications if n.is_active and is_within_day(n, now)]
    todays.sort(key=time_of_day_key)
    return todays


def due_notifications(notifications: Iterable[Any], now: datetime) -> List[Any]:
    """Notifications that should fire at `now`, oldest first"""
    due = [n for n in notifications if should_trigger(n, now)]
    due.sort(key=schedule_order_key)
    return due


__all__ = [
    "utcnow",
    "to_utc_naive",
    "truncate_to_minute",
    "utc_day_bounds",
    "should_trigger",
    "is_within_day",
    "time_of_day_key",
    "schedule_order_key",
    "todays_notifications",
    "due_notifications",
]
