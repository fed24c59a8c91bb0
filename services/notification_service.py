"""
Notification Service
Materializes schedules into notification rows, answers "what is due" queries
and tracks delivery
"""

import logging
import threading
from contextlib import contextmanager
from typing import Dict, Iterator, List, Optional, Tuple
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy.orm import Session
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from config import scheduling_config
from database import get_db_context
import models
from exceptions import MaterializationFailure, NotFoundError, ScheduleValidationError
from services.access_control import access_control
from tools.recurrence import (
    RecurrenceInstant,
    ScheduleTime,
    WeeklySchedule,
    expand,
    expand_due_date,
    sunday_based_weekday,
)
from tools.trigger_evaluator import (
    should_trigger,
    to_utc_naive,
    truncate_to_minute,
    utc_day_bounds,
    utcnow,
)


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PlannedNotification:
    """One row the materializer intends to persist"""
    instant: RecurrenceInstant
    recurring_type: str
    recurring_days: Tuple[int, ...] = ()

    @property
    def scheduled_date(self) -> datetime:
        return self.instant.as_utc()


def make_dedupe_key(kind: str, source_id: int, scheduled_date: datetime) -> str:
    return f"{kind}:{source_id}:{scheduled_date.isoformat()}"


def _clip(text: str, limit: int) -> str:
    text = (text or "").strip()
    return text if len(text) <= limit else text[:limit - 1].rstrip() + "…"


class SourceLocks:
    """One lock per (kind, source id); serializes materialization of a source"""

    def __init__(self):
        self._guard = threading.Lock()
        # key -> [lock, holders]; an entry lives only while someone holds or waits
        self._locks: Dict[Tuple[str, int], list] = {}

    def __len__(self) -> int:
        return len(self._locks)

    @contextmanager
    def hold(self, kind: str, source_id: int) -> Iterator[None]:
        key = (kind, source_id)
        with self._guard:
            entry = self._locks.setdefault(key, [threading.Lock(), 0])
            entry[1] += 1

        try:
            with entry[0]:
                yield
        finally:
            with self._guard:
                entry[1] -= 1
                if entry[1] == 0:
                    del self._locks[key]


class NotificationService:
    """
    Service for reminder notifications

    Responsibilities:
    - Materialize medication schedules and task due dates into rows
    - Never create two rows for the same source and instant
    - Answer patient, upcoming, today and due queries
    - Track delivery and soft deletion
    """

    def __init__(self):
        self._locks = SourceLocks()

    # ==================== MATERIALIZATION ====================

    def plan_medication(
        self,
        medication: models.Medication,
        anchor_date,
        notification_time: Optional[ScheduleTime] = None,
        horizon: Optional[int] = None
    ) -> List[PlannedNotification]:
        """Expand a medication's schedule; the override time wins for every instant"""
        schedule = medication.schedule
        weekly = isinstance(schedule, WeeklySchedule)

        planned = []
        for instant in expand(schedule, horizon, anchor_date):
            if weekly:
                recurring = (models.RecurringType.WEEKLY.value, (sunday_based_weekday(instant.date),))
            else:
                recurring = (models.RecurringType.DAILY.value, ())
            planned.append(PlannedNotification(instant.with_time(notification_time), *recurring))
        return planned

    def plan_task(
        self,
        task: models.Task,
        notification_time: Optional[ScheduleTime] = None,
        horizon: Optional[int] = None
    ) -> List[PlannedNotification]:
        """One instant on the due date unless the task carries a daily/weekly rule"""
        at = notification_time or ScheduleTime(
            scheduling_config.TASK_DEFAULT_HOUR,
            scheduling_config.TASK_DEFAULT_MINUTE
        )
        due_date = to_utc_naive(task.due_date)
        rule = task.recurring_type or models.RecurringType.NONE.value

        planned = []
        for instant in expand_due_date(due_date, at, rule, horizon):
            if rule == models.RecurringType.WEEKLY.value:
                planned.append(PlannedNotification(instant, rule, (sunday_based_weekday(instant.date),)))
            elif rule == models.RecurringType.DAILY.value:
                planned.append(PlannedNotification(instant, rule))
            else:
                planned.append(PlannedNotification(instant, models.RecurringType.NONE.value))
        return planned

    def _persist_plan(
        self,
        session: Session,
        kind: str,
        source_id: int,
        plan: List[PlannedNotification],
        template: Dict[str, object]
    ) -> List[models.Notification]:
        """Insert rows for planned instants that do not exist yet; return the whole batch"""
        keyed: Dict[str, PlannedNotification] = {}
        for item in plan:
            keyed.setdefault(make_dedupe_key(kind, source_id, item.scheduled_date), item)

        if not keyed:
            return []

        with self._locks.hold(kind, source_id):
            seen: set = set()
            conflict: Optional[IntegrityError] = None

            for attempt in range(2):
                existing = self._rows_by_key(session, list(keyed))
                if attempt and not set(existing) - seen:
                    # Nothing new appeared, so the conflict was not another writer's batch
                    raise MaterializationFailure(kind, source_id, conflict) from conflict
                seen = set(existing)

                created = []
                for key, item in keyed.items():
                    if key in existing:
                        continue
                    notification = models.Notification(
                        scheduled_date=item.scheduled_date,
                        notification_hour=item.instant.hour,
                        notification_minute=item.instant.minute,
                        recurring_type=item.recurring_type,
                        recurring_days=list(item.recurring_days),
                        dedupe_key=key,
                        is_active=True,
                        is_delivered=False,
                        **template
                    )
                    session.add(notification)
                    created.append(notification)

                try:
                    session.commit()
                    break
                except IntegrityError as e:
                    session.rollback()
                    conflict = e
                    logger.warning(
                        f"Concurrent materialization detected for {kind} {source_id}; "
                        f"inserting the instants still missing"
                    )
                except SQLAlchemyError as e:
                    session.rollback()
                    raise MaterializationFailure(kind, source_id, e) from e
            else:
                raise MaterializationFailure(kind, source_id, conflict) from conflict

            for notification in created:
                session.refresh(notification)
                existing[notification.dedupe_key] = notification

        logger.info(
            f"Materialized {kind} {source_id}: {len(created)} created, "
            f"{len(keyed) - len(created)} already present"
        )
        return [existing[key] for key in keyed]

    def _rows_by_key(self, session: Session, keys: List[str]) -> Dict[str, models.Notification]:
        rows = session.query(models.Notification).filter(
            models.Notification.dedupe_key.in_(keys)
        ).all()
        return {row.dedupe_key: row for row in rows}

    async def materialize_medication(
        self,
        medication: models.Medication,
        created_by: int,
        notification_time: Optional[ScheduleTime] = None,
        now: Optional[datetime] = None,
        horizon: Optional[int] = None,
        db: Optional[Session] = None
    ) -> List[models.Notification]:
        """
        Expand a medication schedule into persisted notifications

        Args:
            medication: Source medication (already committed)
            created_by: User recorded as creator of the rows
            notification_time: Optional wall-clock override for every instance
            now: Current time; its UTC date anchors the expansion
            horizon: Days (daily) or weeks (weekly); SchedulingConfig by default
            db: Database session

        Returns:
            Notifications for the expansion, in schedule order. Calling this
            again for the same inputs returns the same rows without inserting.
        """
        anchor = to_utc_naive(now or utcnow()).date()

        def _materialize(session: Session) -> List[models.Notification]:
            plan = self.plan_medication(medication, anchor, notification_time, horizon)
            template = {
                "patient_id": medication.patient_id,
                "medication_id": medication.id,
                "type": models.NotificationType.MEDICATION.value,
                "title": _clip(f"Medication Reminder: {medication.name}", scheduling_config.TITLE_MAX_LENGTH),
                "message": _clip(
                    f"Time to take {medication.name} ({medication.dosage})",
                    scheduling_config.MESSAGE_MAX_LENGTH
                ),
                "created_by": created_by,
            }
            return self._persist_plan(session, "medication", medication.id, plan, template)

        if db:
            return _materialize(db)

        with get_db_context() as session:
            return _materialize(session)

    async def materialize_task(
        self,
        task: models.Task,
        created_by: int,
        notification_time: Optional[ScheduleTime] = None,
        horizon: Optional[int] = None,
        db: Optional[Session] = None
    ) -> List[models.Notification]:
        """Expand a task due date (default 09:00 UTC) into persisted notifications"""
        def _materialize(session: Session) -> List[models.Notification]:
            plan = self.plan_task(task, notification_time, horizon)
            template = {
                "patient_id": task.patient_id,
                "task_id": task.id,
                "type": models.NotificationType.TASK.value,
                "title": _clip(f"Task Reminder: {task.title}", scheduling_config.TITLE_MAX_LENGTH),
                "message": _clip(
                    task.description or f"Don't forget to complete: {task.title}",
                    scheduling_config.MESSAGE_MAX_LENGTH
                ),
                "created_by": created_by,
            }
            return self._persist_plan(session, "task", task.id, plan, template)

        if db:
            return _materialize(db)

        with get_db_context() as session:
            return _materialize(session)

    def _ensure_can_manage(self, actor: models.User, patient_id: int, created_by: Optional[int]) -> None:
        if actor.is_caregiver:
            access_control.ensure_caregiver_for(actor, patient_id, created_by)
        else:
            access_control.ensure_access(actor, patient_id)

    async def create_medication_notifications(
        self,
        medication_id: int,
        actor: models.User,
        notification_time: Optional[ScheduleTime] = None,
        now: Optional[datetime] = None,
        db: Optional[Session] = None
    ) -> List[models.Notification]:
        """Explicit materialization request for a medication"""
        def _load(session: Session) -> models.Medication:
            medication = session.get(models.Medication, medication_id)
            if not medication or not medication.is_active:
                raise NotFoundError("Medication", medication_id)
            self._ensure_can_manage(actor, medication.patient_id, medication.created_by)
            return medication

        if db:
            medication = _load(db)
            return await self.materialize_medication(medication, actor.id, notification_time, now, db=db)

        with get_db_context() as session:
            medication = _load(session)
            return await self.materialize_medication(medication, actor.id, notification_time, now, db=session)

    async def create_task_notifications(
        self,
        task_id: int,
        actor: models.User,
        notification_time: Optional[ScheduleTime] = None,
        db: Optional[Session] = None
    ) -> List[models.Notification]:
        """Explicit materialization request for a task"""
        def _load(session: Session) -> models.Task:
            task = session.get(models.Task, task_id)
            if not task or not task.is_active:
                raise NotFoundError("Task", task_id)
            self._ensure_can_manage(actor, task.patient_id, task.created_by)
            return task

        if db:
            task = _load(db)
            return await self.materialize_task(task, actor.id, notification_time, db=db)

        with get_db_context() as session:
            task = _load(session)
            return await self.materialize_task(task, actor.id, notification_time, db=session)

    async def create_notification(
        self,
        patient_id: int,
        actor: models.User,
        notification_type: str,
        title: str,
        message: str,
        scheduled_date: datetime,
        db: Optional[Session] = None
    ) -> models.Notification:
        """Create a single ad-hoc notification (as-needed doses, appointments)"""
        if notification_type not in {t.value for t in models.NotificationType}:
            raise ScheduleValidationError("type", f"unknown notification type {notification_type!r}")
        scheduled = to_utc_naive(scheduled_date).replace(second=0, microsecond=0)

        def _create(session: Session) -> models.Notification:
            access_control.get_patient(session, patient_id)
            access_control.ensure_access(actor, patient_id)

            notification = models.Notification(
                patient_id=patient_id,
                type=notification_type,
                title=_clip(title, scheduling_config.TITLE_MAX_LENGTH),
                message=_clip(message, scheduling_config.MESSAGE_MAX_LENGTH),
                scheduled_date=scheduled,
                notification_hour=scheduled.hour,
                notification_minute=scheduled.minute,
                recurring_type=models.RecurringType.NONE.value,
                recurring_days=[],
                is_active=True,
                is_delivered=False,
                created_by=actor.id
            )
            session.add(notification)
            session.commit()
            session.refresh(notification)

            logger.info(f"Created {notification_type} notification {notification.id} for patient {patient_id}")
            return notification

        if db:
            return _create(db)

        with get_db_context() as session:
            return _create(session)

    # ==================== QUERIES ====================

    async def get_notification(
        self,
        notification_id: int,
        actor: models.User,
        db: Optional[Session] = None
    ) -> models.Notification:
        def _get(session: Session) -> models.Notification:
            notification = session.get(models.Notification, notification_id)
            if not notification:
                raise NotFoundError("Notification", notification_id)
            access_control.ensure_access(actor, notification.patient_id, "Access denied.")
            return notification

        if db:
            return _get(db)

        with get_db_context() as session:
            return _get(session)

    async def get_patient_notifications(
        self,
        patient_id: int,
        actor: models.User,
        is_active: bool = True,
        upcoming: bool = False,
        now: Optional[datetime] = None,
        db: Optional[Session] = None
    ) -> List[models.Notification]:
        """List a patient's notifications sorted by scheduled time"""
        def _get(session: Session) -> List[models.Notification]:
            access_control.ensure_access(actor, patient_id)

            query = session.query(models.Notification).filter(
                models.Notification.patient_id == patient_id,
                models.Notification.is_active == is_active
            )

            if upcoming:
                current = to_utc_naive(now or utcnow())
                query = query.filter(
                    models.Notification.scheduled_date >= current,
                    models.Notification.is_delivered == False  # noqa: E712
                )

            return query.order_by(
                models.Notification.scheduled_date,
                models.Notification.notification_hour,
                models.Notification.notification_minute
            ).all()

        if db:
            return _get(db)

        with get_db_context() as session:
            return _get(session)

    def resolve_today_patient(self, actor: models.User, patient_id: Optional[int]) -> int:
        """Patients see their own day; caregivers name a patient or get their first linked one"""
        if actor.is_patient:
            if patient_id is not None and patient_id != actor.id:
                access_control.ensure_access(actor, patient_id)
            return actor.id

        if patient_id is None:
            if not actor.linked_patients:
                raise ScheduleValidationError("patientId", "Patient ID is required for caregivers.")
            patient_id = sorted(p.id for p in actor.linked_patients)[0]

        access_control.ensure_access(actor, patient_id)
        return patient_id

    async def get_today_notifications(
        self,
        actor: models.User,
        patient_id: Optional[int] = None,
        now: Optional[datetime] = None,
        db: Optional[Session] = None
    ) -> List[models.Notification]:
        """Active notifications on today's UTC date, ordered by wall-clock time"""
        start, end = utc_day_bounds(now or utcnow())

        def _get(session: Session) -> List[models.Notification]:
            target = self.resolve_today_patient(actor, patient_id)
            return session.query(models.Notification).filter(
                models.Notification.patient_id == target,
                models.Notification.is_active == True,  # noqa: E712
                models.Notification.scheduled_date >= start,
                models.Notification.scheduled_date <= end
            ).order_by(
                models.Notification.notification_hour,
                models.Notification.notification_minute
            ).all()

        if db:
            return _get(db)

        with get_db_context() as session:
            return _get(session)

    async def get_due_notifications(
        self,
        patient_id: Optional[int] = None,
        now: Optional[datetime] = None,
        db: Optional[Session] = None
    ) -> List[models.Notification]:
        """Notifications whose trigger instant has passed and that are not delivered yet"""
        current = now or utcnow()
        cutoff = truncate_to_minute(current)

        def _get(session: Session) -> List[models.Notification]:
            query = session.query(models.Notification).filter(
                models.Notification.is_active == True,  # noqa: E712
                models.Notification.is_delivered == False,  # noqa: E712
                models.Notification.scheduled_date <= cutoff
            )
            if patient_id is not None:
                query = query.filter(models.Notification.patient_id == patient_id)

            rows = query.order_by(models.Notification.scheduled_date).all()
            return [n for n in rows if should_trigger(n, current)]

        if db:
            return _get(db)

        with get_db_context() as session:
            return _get(session)

    def resolve_source(self, session: Session, notification: models.Notification):
        """Medication or task behind a notification, or None if it no longer exists"""
        if notification.medication_id is not None:
            source = session.get(models.Medication, notification.medication_id)
            label = f"medication {notification.medication_id}"
        elif notification.task_id is not None:
            source = session.get(models.Task, notification.task_id)
            label = f"task {notification.task_id}"
        else:
            return None

        if source is None:
            logger.warning(f"Notification {notification.id} references missing {label}")
        return source

    # ==================== DELIVERY ====================

    async def mark_delivered(
        self,
        notification_id: int,
        actor: Optional[models.User],
        now: Optional[datetime] = None,
        db: Optional[Session] = None
    ) -> models.Notification:
        """
        Record delivery. Repeated calls keep is_delivered=True and move
        delivered_at to the latest call. `actor=None` is the system dispatcher.
        """
        delivered_at = to_utc_naive(now or utcnow())

        def _mark(session: Session) -> models.Notification:
            notification = session.get(models.Notification, notification_id)
            if not notification:
                raise NotFoundError("Notification", notification_id)
            if actor is not None:
                access_control.ensure_access(actor, notification.patient_id, "Access denied.")

            notification.is_delivered = True
            notification.delivered_at = delivered_at
            session.commit()
            session.refresh(notification)

            logger.info(f"Notification {notification_id} marked as delivered")
            return notification

        if db:
            return _mark(db)

        with get_db_context() as session:
            return _mark(session)

    async def deactivate_notification(
        self,
        notification_id: int,
        actor: models.User,
        db: Optional[Session] = None
    ) -> models.Notification:
        """Soft delete (caregivers only); the row is kept for history"""
        def _deactivate(session: Session) -> models.Notification:
            notification = session.get(models.Notification, notification_id)
            if not notification:
                raise NotFoundError("Notification", notification_id)
            access_control.ensure_caregiver_for(actor, notification.patient_id, notification.created_by)

            notification.is_active = False
            session.commit()
            session.refresh(notification)

            logger.info(f"Notification {notification_id} deactivated")
            return notification

        if db:
            return _deactivate(db)

        with get_db_context() as session:
            return _deactivate(session)


# Singleton instance
notification_service = NotificationService()
