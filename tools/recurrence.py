"""
Recurrence Expander
Turns a medication schedule into concrete (date, hour, minute) trigger instants
"""

import logging
import re
from typing import Any, ClassVar, Dict, Iterable, Iterator, Mapping, Optional, Tuple, Union
from dataclasses import dataclass, field
from datetime import datetime, date, time, timedelta, timezone, tzinfo
from enum import Enum

from config import scheduling_config
from exceptions import ScheduleValidationError


logger = logging.getLogger(__name__)

_TIME_PATTERN = re.compile(r"^(\d{1,2}):(\d{2})(?::\d{2})?$")


class ScheduleType(str, Enum):
    """Schedule variants"""
    DAILY = "daily"
    WEEKLY = "weekly"
    AS_NEEDED = "as-needed"

    @classmethod
    def parse(cls, value: Any) -> "ScheduleType":
        if isinstance(value, cls):
            return value
        normalized = str(value or "").strip().lower().replace("_", "-")
        for member in cls:
            if member.value == normalized:
                return member
        raise ScheduleValidationError(
            "schedule.type",
            f"must be one of {', '.join(m.value for m in cls)}, got {value!r}"
        )


def _check_int(field_name: str, value: Any, low: int, high: int) -> int:
    # bool is an int subclass; True/False are never valid clock fields
    if isinstance(value, bool) or not isinstance(value, int):
        raise ScheduleValidationError(field_name, f"must be an integer, got {value!r}")
    if not low <= value <= high:
        raise ScheduleValidationError(field_name, f"must be between {low} and {high}, got {value}")
    return value


@dataclass(frozen=True, order=True)
class ScheduleTime:
    """Wall-clock time of day with minute precision"""
    hour: int
    minute: int = 0

    def __post_init__(self):
        _check_int("hour", self.hour, 0, 23)
        _check_int("minute", self.minute, 0, 59)

    @classmethod
    def from_value(cls, value: Any) -> "ScheduleTime":
        """Accepts a ScheduleTime, a datetime.time, {"hour", "minute"} or "HH:MM"."""
        if isinstance(value, cls):
            return value
        if isinstance(value, time):
            return cls(value.hour, value.minute)
        if isinstance(value, Mapping):
            if "hour" not in value:
                raise ScheduleValidationError("hour", "is required")
            return cls(value["hour"], value.get("minute", 0))
        if isinstance(value, str):
            match = _TIME_PATTERN.match(value.strip())
            if not match:
                raise ScheduleValidationError("time", f"expected HH:MM, got {value!r}")
            return cls(int(match.group(1)), int(match.group(2)))
        raise ScheduleValidationError("time", f"unsupported time value {value!r}")

    def to_time(self) -> time:
        return time(self.hour, self.minute)

    def to_dict(self) -> Dict[str, int]:
        return {"hour": self.hour, "minute": self.minute}

    def __str__(self) -> str:
        return f"{self.hour:02d}:{self.minute:02d}"


def _normalize_times(values: Iterable[Any], required: bool) -> Tuple[ScheduleTime, ...]:
    times = []
    for index, value in enumerate(values or ()):
        try:
            times.append(ScheduleTime.from_value(value))
        except ScheduleValidationError as e:
            raise ScheduleValidationError(f"schedule.times[{index}].{e.field}", e.detail) from e
    if required and not times:
        raise ScheduleValidationError("schedule.times", "at least one time is required")
    return tuple(times)


def _normalize_days(values: Iterable[Any]) -> Tuple[int, ...]:
    days = tuple(
        _check_int(f"schedule.days[{index}]", value, 0, 6)
        for index, value in enumerate(values or ())
    )
    if not days:
        raise ScheduleValidationError("schedule.days", "at least one weekday is required for weekly schedules")
    return days


@dataclass(frozen=True)
class DailySchedule:
    """Every day at each of `times`"""
    times: Tuple[ScheduleTime, ...]
    type: ClassVar[ScheduleType] = ScheduleType.DAILY

    def __post_init__(self):
        object.__setattr__(self, "times", _normalize_times(self.times, required=True))

    def to_dict(self) -> Dict[str, Any]:
        return {"type": self.type.value, "times": [t.to_dict() for t in self.times], "days": []}


@dataclass(frozen=True)
class WeeklySchedule:
    """On each weekday in `days` (0 = Sunday) at each of `times`"""
    times: Tuple[ScheduleTime, ...]
    days: Tuple[int, ...]
    type: ClassVar[ScheduleType] = ScheduleType.WEEKLY

    def __post_init__(self):
        object.__setattr__(self, "times", _normalize_times(self.times, required=True))
        object.__setattr__(self, "days", _normalize_days(self.days))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.type.value,
            "times": [t.to_dict() for t in self.times],
            "days": list(self.days),
        }


@dataclass(frozen=True)
class AsNeededSchedule:
    """Taken ad hoc; never expands into future instants"""
    times: Tuple[ScheduleTime, ...] = field(default_factory=tuple)
    type: ClassVar[ScheduleType] = ScheduleType.AS_NEEDED

    def __post_init__(self):
        object.__setattr__(self, "times", _normalize_times(self.times, required=False))

    def to_dict(self) -> Dict[str, Any]:
        return {"type": self.type.value, "times": [t.to_dict() for t in self.times], "days": []}


Schedule = Union[DailySchedule, WeeklySchedule, AsNeededSchedule]


@dataclass(frozen=True, order=True)
class RecurrenceInstant:
    """A calendar day plus a wall-clock hour and minute"""
    date: date
    hour: int
    minute: int

    @property
    def time(self) -> ScheduleTime:
        return ScheduleTime(self.hour, self.minute)

    def at(self, tz: tzinfo = timezone.utc) -> datetime:
        """Stamp the instant in `tz` field by field; seconds are always zero."""
        return datetime(
            self.date.year, self.date.month, self.date.day,
            self.hour, self.minute, 0, 0,
            tzinfo=tz,
        )

    def as_utc(self) -> datetime:
        """Naive UTC datetime, the representation stored in the database"""
        return self.at(timezone.utc).replace(tzinfo=None)

    def with_time(self, override: Optional[ScheduleTime]) -> "RecurrenceInstant":
        if override is None:
            return self
        return RecurrenceInstant(self.date, override.hour, override.minute)


def sunday_based_weekday(day: date) -> int:
    """Weekday with 0 = Sunday .. 6 = Saturday"""
    return (day.weekday() + 1) % 7


def days_until_weekday(anchor: date, target_day: int) -> int:
    """Offset to the next `target_day` on or after `anchor` (never negative)"""
    return (target_day - sunday_based_weekday(anchor) + 7) % 7


def _as_date(anchor_date: Union[date, datetime]) -> date:
    if isinstance(anchor_date, datetime):
        return anchor_date.date()
    return anchor_date


def _check_horizon(horizon: int) -> int:
    if isinstance(horizon, bool) or not isinstance(horizon, int) or horizon < 0:
        raise ScheduleValidationError("horizon", f"must be a non-negative integer, got {horizon!r}")
    return horizon


def expand_daily(
    schedule: DailySchedule,
    horizon_days: int,
    anchor_date: date
) -> Iterator[RecurrenceInstant]:
    """Yield one instant per day per time, starting on the anchor day"""
    anchor = _as_date(anchor_date)
    for offset in range(_check_horizon(horizon_days)):
        day = anchor + timedelta(days=offset)
        for t in schedule.times:
            yield RecurrenceInstant(day, t.hour, t.minute)


def expand_weekly(
    schedule: WeeklySchedule,
    horizon_weeks: int,
    anchor_date: date
) -> Iterator[RecurrenceInstant]:
    """Yield one instant per week per weekday per time"""
    anchor = _as_date(anchor_date)
    for week in range(_check_horizon(horizon_weeks)):
        for day in schedule.days:
            target = anchor + timedelta(days=days_until_weekday(anchor, day) + week * 7)
            for t in schedule.times:
                yield RecurrenceInstant(target, t.hour, t.minute)


def default_horizon(schedule: Schedule) -> int:
    """Days for daily schedules, weeks for weekly ones"""
    if isinstance(schedule, WeeklySchedule):
        return scheduling_config.WEEKLY_HORIZON_WEEKS
    if isinstance(schedule, DailySchedule):
        return scheduling_config.DAILY_HORIZON_DAYS
    return 0


def expand(
    schedule: Schedule,
    horizon: Optional[int] = None,
    anchor_date: Optional[date] = None
) -> Iterator[RecurrenceInstant]:
    """
    Expand a schedule into trigger instants

    Args:
        schedule: Daily, weekly or as-needed schedule
        horizon: Days (daily) or weeks (weekly); defaults from SchedulingConfig
        anchor_date: First calendar day considered, in the caller's zone

    Returns:
        Finite iterator; calling again with the same inputs yields the same instants
    """
    if anchor_date is None:
        raise ScheduleValidationError("anchor_date", "is required")
    if horizon is None:
        horizon = default_horizon(schedule)

    if isinstance(schedule, DailySchedule):
        return expand_daily(schedule, horizon, anchor_date)
    if isinstance(schedule, WeeklySchedule):
        return expand_weekly(schedule, horizon, anchor_date)
    if isinstance(schedule, AsNeededSchedule):
        return iter(())
    raise ScheduleValidationError("schedule", f"unsupported schedule {schedule!r}")


def expand_due_date(
    due_date: Union[date, datetime],
    at: ScheduleTime,
    recurring: Optional[str] = None,
    horizon: Optional[int] = None
) -> Iterator[RecurrenceInstant]:
    """
    Expand a task due date

    Without a recurring rule a due date is exactly one instant. A daily or
    weekly rule expands from the due date the same way medication schedules do.
    """
    day = _as_date(due_date)
    rule = (recurring or "none").lower()

    if rule == ScheduleType.DAILY.value:
        return expand(DailySchedule(times=(at,)), horizon, day)
    if rule == ScheduleType.WEEKLY.value:
        return expand(WeeklySchedule(times=(at,), days=(sunday_based_weekday(day),)), horizon, day)
    if rule != "none":
        logger.warning(f"Unsupported task recurrence {recurring!r}; using a single reminder")
    return iter((RecurrenceInstant(day, at.hour, at.minute),))


def parse_schedule(data: Union[Schedule, Mapping[str, Any]]) -> Schedule:
    """Build the schedule variant from its stored/JSON shape"""
    if isinstance(data, (DailySchedule, WeeklySchedule, AsNeededSchedule)):
        return data
    if not isinstance(data, Mapping):
        raise ScheduleValidationError("schedule", "must be an object")

    schedule_type = ScheduleType.parse(data.get("type", ScheduleType.DAILY.value))
    times = data.get("times") or []

    if schedule_type == ScheduleType.DAILY:
        return DailySchedule(times=times)
    if schedule_type == ScheduleType.WEEKLY:
        return WeeklySchedule(times=times, days=data.get("days") or [])
    return AsNeededSchedule(times=times)


__all__ = [
    "ScheduleType",
    "ScheduleTime",
    "DailySchedule",
    "WeeklySchedule",
    "AsNeededSchedule",
    "Schedule",
    "RecurrenceInstant",
    "sunday_based_weekday",
    "days_until_weekday",
    "expand",
    "expand_daily",
    "expand_weekly",
    "expand_due_date",
    "default_horizon",
    "parse_schedule",
]
