"""
Task Service
Business logic for care tasks and their due-date reminders
"""

import logging
from typing import List, Optional
from datetime import datetime

from sqlalchemy.orm import Session

from database import get_db_context
import models
from exceptions import MaterializationFailure, NotFoundError, ScheduleValidationError
from services.access_control import access_control
from services.notification_service import notification_service
from tools.recurrence import ScheduleTime
from tools.trigger_evaluator import to_utc_naive, utcnow


logger = logging.getLogger(__name__)


def _enum_value(enum_cls, field: str, value: Optional[str], default) -> str:
    if value is None:
        return default.value
    try:
        return enum_cls(value).value
    except ValueError:
        raise ScheduleValidationError(
            field, f"must be one of {', '.join(m.value for m in enum_cls)}, got {value!r}"
        )


class TaskService:
    """
    Service for task-related operations
    """

    def _ensure_can_change(self, actor: models.User, task: models.Task) -> None:
        if actor.is_caregiver:
            access_control.ensure_caregiver_for(actor, task.patient_id, task.created_by)
        else:
            access_control.ensure_access(actor, task.patient_id, "Access denied. You can only update your own tasks.")

    async def add_task(
        self,
        patient_id: int,
        title: str,
        due_date: datetime,
        actor: models.User,
        description: Optional[str] = None,
        priority: Optional[str] = None,
        category: Optional[str] = None,
        recurring_type: Optional[str] = None,
        notes: Optional[str] = None,
        notification_time: Optional[ScheduleTime] = None,
        db: Optional[Session] = None
    ) -> models.Task:
        """
        Create a task and its reminder

        The task is committed first; a reminder failure is logged and the
        task is still returned.
        """
        values = {
            "priority": _enum_value(models.TaskPriority, "priority", priority, models.TaskPriority.MEDIUM),
            "category": _enum_value(models.TaskCategory, "category", category, models.TaskCategory.OTHER),
            "recurring_type": _enum_value(
                models.RecurringType, "recurringType", recurring_type, models.RecurringType.NONE
            ),
        }

        def _add(session: Session) -> models.Task:
            access_control.get_patient(session, patient_id)
            access_control.ensure_access(actor, patient_id)

            task = models.Task(
                patient_id=patient_id,
                title=title.strip(),
                description=description,
                due_date=to_utc_naive(due_date),
                notes=notes,
                completed=False,
                is_active=True,
                created_by=actor.id,
                **values
            )

            session.add(task)
            session.commit()
            session.refresh(task)

            logger.info(f"New task created: {task.title} for patient {patient_id}")
            return task

        async def _with_reminder(session: Session) -> models.Task:
            task = _add(session)
            try:
                await notification_service.materialize_task(
                    task, actor.id, notification_time, db=session
                )
            except MaterializationFailure:
                logger.error(f"Failed to create notification for task {task.id}", exc_info=True)
            return task

        if db:
            return await _with_reminder(db)

        with get_db_context() as session:
            return await _with_reminder(session)

    async def get_task(
        self,
        task_id: int,
        actor: models.User,
        db: Optional[Session] = None
    ) -> models.Task:
        """Get task by ID"""
        def _get(session: Session) -> models.Task:
            task = session.get(models.Task, task_id)
            if not task:
                raise NotFoundError("Task", task_id)
            access_control.ensure_access(actor, task.patient_id)
            return task

        if db:
            return _get(db)

        with get_db_context() as session:
            return _get(session)

    async def get_patient_tasks(
        self,
        patient_id: int,
        actor: models.User,
        completed: Optional[bool] = None,
        category: Optional[str] = None,
        priority: Optional[str] = None,
        is_active: bool = True,
        db: Optional[Session] = None
    ) -> List[models.Task]:
        """Tasks of a patient, soonest due first"""
        def _get(session: Session) -> List[models.Task]:
            access_control.ensure_access(actor, patient_id)

            query = session.query(models.Task).filter(
                models.Task.patient_id == patient_id,
                models.Task.is_active == is_active
            )

            if completed is not None:
                query = query.filter(models.Task.completed == completed)
            if category:
                query = query.filter(models.Task.category == category)
            if priority:
                query = query.filter(models.Task.priority == priority)

            return query.order_by(models.Task.due_date).all()

        if db:
            return _get(db)

        with get_db_context() as session:
            return _get(session)

    async def mark_completed(
        self,
        task_id: int,
        actor: models.User,
        notes: Optional[str] = None,
        now: Optional[datetime] = None,
        db: Optional[Session] = None
    ) -> models.Task:
        """Mark a task completed"""
        completed_at = to_utc_naive(now or utcnow())

        def _complete(session: Session) -> models.Task:
            task = session.get(models.Task, task_id)
            if not task or not task.is_active:
                raise NotFoundError("Task", task_id)
            self._ensure_can_change(actor, task)

            task.completed = True
            task.completed_at = completed_at
            if notes:
                task.completion_notes = notes

            session.commit()
            session.refresh(task)

            logger.info(f"Task {task_id} marked as completed")
            return task

        if db:
            return _complete(db)

        with get_db_context() as session:
            return _complete(session)

    async def mark_incomplete(
        self,
        task_id: int,
        actor: models.User,
        db: Optional[Session] = None
    ) -> models.Task:
        def _reopen(session: Session) -> models.Task:
            task = session.get(models.Task, task_id)
            if not task or not task.is_active:
                raise NotFoundError("Task", task_id)
            self._ensure_can_change(actor, task)

            task.completed = False
            task.completed_at = None
            task.completion_notes = None

            session.commit()
            session.refresh(task)

            logger.info(f"Task {task_id} marked as incomplete")
            return task

        if db:
            return _reopen(db)

        with get_db_context() as session:
            return _reopen(session)

    async def delete_task(
        self,
        task_id: int,
        actor: models.User,
        db: Optional[Session] = None
    ) -> models.Task:
        """Soft delete (caregivers only); reminders are left in place"""
        def _delete(session: Session) -> models.Task:
            task = session.get(models.Task, task_id)
            if not task:
                raise NotFoundError("Task", task_id)
            access_control.ensure_caregiver_for(actor, task.patient_id, task.created_by)

            task.is_active = False
            session.commit()
            session.refresh(task)

            logger.info(f"Task deleted: {task.title}")
            return task

        if db:
            return _delete(db)

        with get_db_context() as session:
            return _delete(session)


# Singleton instance
task_service = TaskService()
