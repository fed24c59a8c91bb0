"""
Tools Package
Pure scheduling helpers for the CareCompanion system
"""

from .recurrence import (
    ScheduleType,
    ScheduleTime,
    DailySchedule,
    WeeklySchedule,
    AsNeededSchedule,
    Schedule,
    RecurrenceInstant,
    expand,
    expand_due_date,
    parse_schedule,
    sunday_based_weekday,
)

from .trigger_evaluator import (
    utcnow,
    to_utc_naive,
    truncate_to_minute,
    utc_day_bounds,
    should_trigger,
    todays_notifications,
    due_notifications,
)

__all__ = [
    # Recurrence Expander
    "ScheduleType",
    "ScheduleTime",
    "DailySchedule",
    "WeeklySchedule",
    "AsNeededSchedule",
    "Schedule",
    "RecurrenceInstant",
    "expand",
    "expand_due_date",
    "parse_schedule",
    "sunday_based_weekday",

    # Trigger Evaluator
    "utcnow",
    "to_utc_naive",
    "truncate_to_minute",
    "utc_day_bounds",
    "should_trigger",
    "todays_notifications",
    "due_notifications",
]
