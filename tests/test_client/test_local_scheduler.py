"""
Tests for the Local Notification Scheduler
Tests device-local expansion, past-trigger skipping and listener lifetime
"""

import logging
import pytest
from datetime import datetime, timedelta
from zoneinfo import ZoneInfo

from client.device import InMemoryDeviceNotifier
from client.local_scheduler import LocalNotificationScheduler
from exceptions import ScheduleValidationError
from tools.recurrence import ScheduleTime


NEW_YORK = ZoneInfo("America/New_York")


# =============================================================================
# Fixtures
# =============================================================================

@pytest.fixture
def device():
    return InMemoryDeviceNotifier()


def make_scheduler(device, hour: int, minute: int = 0) -> LocalNotificationScheduler:
    """Scheduler whose clock reads Thursday 2024-01-04 at hour:minute in New York"""
    fixed = datetime(2024, 1, 4, hour, minute, tzinfo=NEW_YORK)
    return LocalNotificationScheduler(device, tz="America/New_York", clock=lambda: fixed)


@pytest.fixture
def scheduler(device):
    return make_scheduler(device, 7)


@pytest.fixture
def medication_payload():
    """Medication as returned by the API"""
    return {
        "id": 5,
        "name": "Metformin",
        "dosage": "500mg",
        "schedule": {"type": "daily", "times": [{"hour": 8, "minute": 0}], "days": []}
    }


# =============================================================================
# Medication Reminders
# =============================================================================

class TestMedicationNotifications:

    @pytest.mark.unit
    def test_daily_thirty_days_local(self, scheduler, device, medication_payload):
        handles = scheduler.schedule_medication_notifications(medication_payload)

        assert len(handles) == 30
        entries = device.scheduled()
        assert entries[0].trigger == datetime(2024, 1, 4, 8, 0, tzinfo=NEW_YORK)
        assert entries[-1].trigger == datetime(2024, 2, 2, 8, 0, tzinfo=NEW_YORK)
        assert entries[0].content.title == "Medication Reminder: Metformin"
        assert entries[0].content.body == "Time to take Metformin (500mg)"
        assert entries[0].content.data == {"type": "medication", "medicationId": 5}

    @pytest.mark.unit
    def test_wall_clock_kept_across_dst(self, scheduler, device, medication_payload):
        scheduler.schedule_medication_notifications(medication_payload, horizon=80)

        assert {(e.trigger.hour, e.trigger.minute) for e in device.scheduled()} == {(8, 0)}

    @pytest.mark.unit
    def test_past_trigger_skipped(self, device, medication_payload, caplog):
        late = make_scheduler(device, 9)

        with caplog.at_level(logging.WARNING):
            handles = late.schedule_medication_notifications(medication_payload)

        assert len(handles) == 29
        assert device.scheduled()[0].trigger.day == 5
        assert "Invalid trigger date" in caplog.text

    @pytest.mark.unit
    def test_weekly_model(self, scheduler, device, weekly_medication):
        handles = scheduler.schedule_medication_notifications(weekly_medication)

        assert len(handles) == 16
        first = device.scheduled()[0].trigger
        assert first == datetime(2024, 1, 8, 20, 30, tzinfo=NEW_YORK)

    @pytest.mark.unit
    def test_as_needed_schedules_nothing(self, scheduler, medication_payload):
        medication_payload["schedule"] = {"type": "as_needed"}
        assert scheduler.schedule_medication_notifications(medication_payload) == []

    @pytest.mark.unit
    def test_invalid_schedule(self, scheduler, medication_payload):
        medication_payload["schedule"] = {"type": "weekly", "times": [{"hour": 8}], "days": []}

        with pytest.raises(ScheduleValidationError):
            scheduler.schedule_medication_notifications(medication_payload)


# =============================================================================
# Task Reminders
# =============================================================================

class TestTaskNotification:

    @pytest.mark.unit
    def test_default_nine_am_on_local_due_day(self, scheduler, device):
        # 02:00 UTC on the 10th is still the 9th in New York
        handle = scheduler.schedule_task_notification(
            {"id": 3, "title": "Blood pressure check", "dueDate": "2024-01-10T02:00:00Z"}
        )

        entry = device.scheduled()[0]
        assert entry.handle == handle
        assert entry.trigger == datetime(2024, 1, 9, 9, 0, tzinfo=NEW_YORK)
        assert entry.content.body == "Don't forget to complete: Blood pressure check"
        assert entry.content.data == {"type": "task", "taskId": 3}

    @pytest.mark.unit
    def test_model_with_override(self, scheduler, device, test_task):
        scheduler.schedule_task_notification(test_task, ScheduleTime(18, 45))

        assert device.scheduled()[0].trigger == datetime(2024, 1, 10, 18, 45, tzinfo=NEW_YORK)

    @pytest.mark.unit
    def test_overdue_task_skipped(self, scheduler, device):
        handle = scheduler.schedule_task_notification({"id": 4, "title": "Old", "dueDate": "2023-12-01T12:00:00Z"})

        assert handle is None
        assert device.scheduled() == []


# =============================================================================
# Stored Notifications
# =============================================================================

class TestStoredNotifications:

    @pytest.mark.unit
    def test_utc_instants_become_local_triggers(self, scheduler, device):
        handles = scheduler.schedule_stored_notifications([
            {
                "id": 11,
                "type": "medication",
                "medicationId": 5,
                "taskId": None,
                "title": "Medication Reminder: Metformin",
                "message": "Time to take Metformin (500mg)",
                "scheduledDate": "2024-01-04T13:00:00"
            },
            {
                "id": 12,
                "type": "reminder",
                "title": "Yesterday",
                "message": "Already passed",
                "scheduledDate": "2024-01-03T13:00:00Z"
            },
        ])

        assert len(handles) == 1
        entry = device.scheduled()[0]
        assert entry.trigger == datetime(2024, 1, 4, 8, 0, tzinfo=NEW_YORK)
        assert entry.content.data == {"type": "medication", "notificationId": 11, "medicationId": 5}


# =============================================================================
# Cancellation and Listeners
# =============================================================================

class TestLifecycle:

    @pytest.mark.unit
    def test_cancel_and_cancel_all(self, scheduler, device, medication_payload):
        handles = scheduler.schedule_medication_notifications(medication_payload, horizon=3)

        assert scheduler.cancel(handles[0]) is True
        assert scheduler.cancel(handles[0]) is False
        assert scheduler.handles == handles[1:]

        assert scheduler.cancel_all() == 2
        assert device.scheduled() == []
        assert scheduler.handles == []

    @pytest.mark.unit
    def test_naive_trigger_uses_device_zone(self, scheduler, device):
        scheduler.schedule_local_notification(datetime(2024, 1, 4, 12, 0), "Lunch", "Take with food")
        assert device.scheduled()[0].trigger.tzinfo == NEW_YORK

    @pytest.mark.unit
    def test_listen_dispatches_and_cleans_up(self, scheduler, device):
        received, tapped = [], []
        handle = scheduler.schedule_local_notification(
            datetime(2024, 1, 4, 8, 0, tzinfo=NEW_YORK), "Medication Reminder: Metformin", "Time to take"
        )

        with scheduler.listen(on_received=received.append, on_tapped=tapped.append):
            assert device.listener_count == 2
            device.fire_due(datetime(2024, 1, 4, 8, 0, tzinfo=NEW_YORK))
            device.tap(handle)

        assert [e.handle for e in received] == [handle]
        assert [e.handle for e in tapped] == [handle]
        assert device.listener_count == 0

    @pytest.mark.unit
    def test_listeners_removed_on_error(self, scheduler, device):
        with pytest.raises(RuntimeError):
            with scheduler.listen():
                raise RuntimeError("screen unmounted")

        assert device.listener_count == 0

    @pytest.mark.unit
    def test_setup_twice_does_not_leak(self, scheduler, device):
        scheduler.setup_listeners()
        scheduler.setup_listeners()

        assert device.listener_count == 2
        scheduler.remove_listeners()
        assert device.listener_count == 0

    @pytest.mark.unit
    def test_system_clock_default(self, device):
        scheduler = LocalNotificationScheduler(device, tz="UTC")
        assert abs(scheduler.now() - datetime.now(ZoneInfo("UTC"))) < timedelta(seconds=5)
