"""
Tests for Task Service
"""

import pytest
from datetime import datetime

from exceptions import AuthorizationError, NotFoundError, ScheduleValidationError
from models import Notification
from services.task_service import TaskService
from tools.recurrence import ScheduleTime


@pytest.fixture
def task_service():
    """Create task service instance"""
    return TaskService()


class TestAddTask:

    @pytest.mark.asyncio
    @pytest.mark.database
    async def test_creates_task_with_reminder(self, task_service, db_session, test_patient, test_caregiver):
        task = await task_service.add_task(
            test_patient.id, "Refill prescription", datetime(2024, 1, 12, 17, 0), test_caregiver,
            priority="high", category="medication", db=db_session
        )

        assert task.priority == "high"
        notifications = db_session.query(Notification).filter_by(task_id=task.id).all()
        assert len(notifications) == 1
        assert notifications[0].scheduled_date == datetime(2024, 1, 12, 9, 0)
        assert notifications[0].message == "Don't forget to complete: Refill prescription"

    @pytest.mark.asyncio
    @pytest.mark.database
    async def test_override_time(self, task_service, db_session, test_patient):
        task = await task_service.add_task(
            test_patient.id, "Walk", datetime(2024, 1, 12), test_patient,
            notification_time=ScheduleTime(18, 0), db=db_session
        )

        notification = db_session.query(Notification).filter_by(task_id=task.id).one()
        assert notification.scheduled_date == datetime(2024, 1, 12, 18, 0)

    @pytest.mark.asyncio
    @pytest.mark.database
    async def test_daily_recurring_task(self, task_service, db_session, test_patient):
        task = await task_service.add_task(
            test_patient.id, "Stretch", datetime(2024, 1, 12), test_patient,
            recurring_type="daily", db=db_session
        )

        assert db_session.query(Notification).filter_by(task_id=task.id).count() == 30

    @pytest.mark.asyncio
    @pytest.mark.database
    async def test_invalid_priority(self, task_service, db_session, test_patient):
        with pytest.raises(ScheduleValidationError) as exc_info:
            await task_service.add_task(
                test_patient.id, "Walk", datetime(2024, 1, 12), test_patient, priority="urgent", db=db_session
            )
        assert exc_info.value.field == "priority"

    @pytest.mark.asyncio
    @pytest.mark.database
    async def test_unlinked_caregiver_denied(self, task_service, db_session, test_patient, unlinked_caregiver):
        with pytest.raises(AuthorizationError):
            await task_service.add_task(
                test_patient.id, "Walk", datetime(2024, 1, 12), unlinked_caregiver, db=db_session
            )


class TestTaskLifecycle:

    @pytest.mark.asyncio
    @pytest.mark.database
    async def test_complete_and_reopen(self, task_service, db_session, test_task, test_patient):
        completed = await task_service.mark_completed(
            test_task.id, test_patient, notes="Done at the clinic", now=datetime(2024, 1, 10, 16, 0), db=db_session
        )
        assert completed.completed is True
        assert completed.completed_at == datetime(2024, 1, 10, 16, 0)
        assert completed.completion_notes == "Done at the clinic"

        reopened = await task_service.mark_incomplete(test_task.id, test_patient, db=db_session)
        assert reopened.completed is False
        assert reopened.completed_at is None
        assert reopened.completion_notes is None

    @pytest.mark.asyncio
    @pytest.mark.database
    async def test_filters(self, task_service, db_session, test_task, test_patient):
        await task_service.mark_completed(test_task.id, test_patient, db=db_session)

        assert await task_service.get_patient_tasks(test_patient.id, test_patient, completed=False, db=db_session) == []
        assert len(await task_service.get_patient_tasks(test_patient.id, test_patient, completed=True, db=db_session)) == 1

    @pytest.mark.asyncio
    @pytest.mark.database
    async def test_delete_requires_caregiver(self, task_service, db_session, test_task, test_patient, test_caregiver):
        with pytest.raises(AuthorizationError):
            await task_service.delete_task(test_task.id, test_patient, db=db_session)

        deleted = await task_service.delete_task(test_task.id, test_caregiver, db=db_session)
        assert deleted.is_active is False

        with pytest.raises(NotFoundError):
            await task_service.mark_completed(test_task.id, test_patient, db=db_session)

    @pytest.mark.asyncio
    @pytest.mark.database
    async def test_other_patient_cannot_read(self, task_service, db_session, test_task, other_patient):
        with pytest.raises(AuthorizationError):
            await task_service.get_task(test_task.id, other_patient, db=db_session)
