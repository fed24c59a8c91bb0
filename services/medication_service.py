"""
Medication Service
Business logic for medication management and the adherence ledger
"""

import logging
import math
from typing import Dict, List, Optional, Any
from datetime import datetime, date, timedelta

from sqlalchemy.orm import Session
from sqlalchemy.exc import IntegrityError

from database import get_db_context
import models
from exceptions import MaterializationFailure, NotFoundError, ScheduleValidationError
from services.access_control import access_control
from services.notification_service import notification_service
from tools.recurrence import ScheduleTime, parse_schedule
from tools.trigger_evaluator import to_utc_naive, utcnow


logger = logging.getLogger(__name__)


class MedicationService:
    """
    Service for medication-related operations
    """

    async def add_medication(
        self,
        patient_id: int,
        name: str,
        dosage: str,
        schedule: Dict[str, Any],
        actor: models.User,
        notes: Optional[str] = None,
        notification_time: Optional[ScheduleTime] = None,
        now: Optional[datetime] = None,
        db: Optional[Session] = None
    ) -> models.Medication:
        """
        Add a new medication for a patient and materialize its reminders

        Args:
            patient_id: Patient ID
            name: Medication name
            dosage: Dosage (e.g., "500mg")
            schedule: {"type", "times", "days"} mapping
            actor: Caregiver creating the medication
            notes: Free-text notes
            notification_time: Optional override for every reminder
            now: Anchor for the reminder expansion
            db: Database session

        Returns:
            Created Medication object. Reminder failures are logged and do
            not undo the medication.
        """
        parsed = parse_schedule(schedule)

        def _add(session: Session) -> models.Medication:
            access_control.get_patient(session, patient_id)
            access_control.ensure_caregiver(actor)
            access_control.ensure_access(actor, patient_id)

            medication = models.Medication(
                patient_id=patient_id,
                name=name.strip(),
                dosage=dosage.strip(),
                schedule_type=parsed.type.value,
                schedule_times=[t.to_dict() for t in parsed.times],
                schedule_days=list(getattr(parsed, "days", ())),
                notes=notes,
                is_active=True,
                created_by=actor.id
            )

            session.add(medication)
            session.commit()
            session.refresh(medication)

            logger.info(f"New medication created: {medication.name} for patient {patient_id}")
            return medication

        async def _with_reminders(session: Session) -> models.Medication:
            medication = _add(session)
            try:
                await notification_service.materialize_medication(
                    medication, actor.id, notification_time, now, db=session
                )
            except MaterializationFailure:
                logger.error(
                    f"Failed to create notifications for medication {medication.id}",
                    exc_info=True
                )
            return medication

        if db:
            return await _with_reminders(db)

        with get_db_context() as session:
            return await _with_reminders(session)

    async def get_medication(
        self,
        medication_id: int,
        actor: models.User,
        db: Optional[Session] = None
    ) -> models.Medication:
        """Get medication by ID"""
        def _get(session: Session) -> models.Medication:
            medication = session.get(models.Medication, medication_id)
            if not medication:
                raise NotFoundError("Medication", medication_id)
            access_control.ensure_access(actor, medication.patient_id)
            return medication

        if db:
            return _get(db)

        with get_db_context() as session:
            return _get(session)

    async def get_patient_medications(
        self,
        patient_id: int,
        actor: models.User,
        active_only: bool = True,
        db: Optional[Session] = None
    ) -> List[models.Medication]:
        """Get all medications for a patient"""
        def _get(session: Session) -> List[models.Medication]:
            access_control.ensure_access(actor, patient_id)

            query = session.query(models.Medication).filter(
                models.Medication.patient_id == patient_id
            )

            if active_only:
                query = query.filter(models.Medication.is_active == True)  # noqa: E712

            return query.order_by(models.Medication.created_at.desc()).all()

        if db:
            return _get(db)

        with get_db_context() as session:
            return _get(session)

    async def update_medication(
        self,
        medication_id: int,
        updates: Dict[str, Any],
        actor: models.User,
        db: Optional[Session] = None
    ) -> models.Medication:
        """
        Update medication information

        Existing notifications are left as they are; a schedule change takes
        effect on the next explicit materialization.
        """
        def _update(session: Session) -> models.Medication:
            medication = session.get(models.Medication, medication_id)
            if not medication:
                raise NotFoundError("Medication", medication_id)
            access_control.ensure_caregiver_for(actor, medication.patient_id, medication.created_by)

            allowed_fields = {'name', 'dosage', 'notes', 'is_active'}

            for field, value in updates.items():
                if field in allowed_fields:
                    setattr(medication, field, value)

            if updates.get("schedule") is not None:
                parsed = parse_schedule(updates["schedule"])
                medication.schedule_type = parsed.type.value
                medication.schedule_times = [t.to_dict() for t in parsed.times]
                medication.schedule_days = list(getattr(parsed, "days", ()))

            session.commit()
            session.refresh(medication)

            logger.info(f"Medication updated: {medication.name}")
            return medication

        if db:
            return _update(db)

        with get_db_context() as session:
            return _update(session)

    async def delete_medication(
        self,
        medication_id: int,
        actor: models.User,
        db: Optional[Session] = None
    ) -> models.Medication:
        """Soft delete; reminders already materialized are not touched"""
        return await self.update_medication(medication_id, {"is_active": False}, actor, db)

    # ==================== ADHERENCE LEDGER ====================

    def _record_intake(
        self,
        session: Session,
        medication: models.Medication,
        on_date: date,
        taken: bool,
        notes: Optional[str],
        stamped_at: datetime
    ) -> models.MedicationIntake:
        def _find() -> Optional[models.MedicationIntake]:
            return session.query(models.MedicationIntake).filter(
                models.MedicationIntake.medication_id == medication.id,
                models.MedicationIntake.intake_date == on_date
            ).first()

        def _apply(entry: models.MedicationIntake) -> None:
            entry.taken = taken
            entry.skipped = not taken
            entry.notes = notes or ""
            entry.taken_at = stamped_at if taken else None

        entry = _find()
        if entry is None:
            entry = models.MedicationIntake(intake_date=on_date)
            _apply(entry)
            medication.intakes.append(entry)
            try:
                session.commit()
            except IntegrityError:
                # Another request created the day's entry first
                session.rollback()
                entry = _find()
                _apply(entry)
                session.commit()
        else:
            _apply(entry)
            session.commit()

        session.refresh(entry)
        return entry

    async def _mark(
        self,
        medication_id: int,
        actor: models.User,
        taken: bool,
        on_date: Optional[date],
        notes: Optional[str],
        now: Optional[datetime],
        db: Optional[Session]
    ) -> models.MedicationIntake:
        current = to_utc_naive(now or utcnow())
        day = on_date or current.date()

        def _mark_day(session: Session) -> models.MedicationIntake:
            medication = session.get(models.Medication, medication_id)
            if not medication or not medication.is_active:
                raise NotFoundError("Medication", medication_id)
            access_control.ensure_access(actor, medication.patient_id)

            entry = self._record_intake(session, medication, day, taken, notes, current)
            logger.info(f"Medication {medication_id} marked as {entry.status} for {day.isoformat()}")
            return entry

        if db:
            return _mark_day(db)

        with get_db_context() as session:
            return _mark_day(session)

    async def mark_taken(
        self,
        medication_id: int,
        actor: models.User,
        on_date: Optional[date] = None,
        notes: Optional[str] = None,
        now: Optional[datetime] = None,
        db: Optional[Session] = None
    ) -> models.MedicationIntake:
        """Record the day's dose as taken (clears a previous skip)"""
        return await self._mark(medication_id, actor, True, on_date, notes, now, db)

    async def mark_skipped(
        self,
        medication_id: int,
        actor: models.User,
        on_date: Optional[date] = None,
        notes: Optional[str] = None,
        now: Optional[datetime] = None,
        db: Optional[Session] = None
    ) -> models.MedicationIntake:
        """Record the day's dose as skipped (clears a previous taken)"""
        return await self._mark(medication_id, actor, False, on_date, notes, now, db)

    def get_day_status(self, medication: models.Medication, day: date) -> str:
        """pending, taken or skipped for one calendar day"""
        for entry in medication.intakes:
            if entry.intake_date == day:
                return entry.status
        return "pending"

    async def get_stats(
        self,
        medication_id: int,
        actor: models.User,
        days: int = 30,
        now: Optional[datetime] = None,
        db: Optional[Session] = None
    ) -> Dict[str, Any]:
        """
        Adherence statistics over the last `days` days

        Returns:
            {"medication", "stats", "weekly_breakdown"}; the window is
            today and the `days - 1` days before it. Days without an entry
            count as missed.
        """
        if isinstance(days, bool) or not isinstance(days, int) or days < 1:
            raise ScheduleValidationError("days", f"must be a positive integer, got {days!r}")

        current = to_utc_naive(now or utcnow())
        today = current.date()
        start = today - timedelta(days=days - 1)

        def _stats(session: Session) -> Dict[str, Any]:
            medication = session.get(models.Medication, medication_id)
            if not medication:
                raise NotFoundError("Medication", medication_id)
            access_control.ensure_access(actor, medication.patient_id)

            recent = session.query(models.MedicationIntake).filter(
                models.MedicationIntake.medication_id == medication.id,
                models.MedicationIntake.intake_date >= start,
                models.MedicationIntake.intake_date <= today
            ).all()
            taken = sum(1 for e in recent if e.taken)
            skipped = sum(1 for e in recent if e.skipped)

            weekly = []
            for week in range(math.ceil(days / 7)):
                week_start = start + timedelta(days=week * 7)
                week_end = min(week_start + timedelta(days=6), today)
                week_days = (week_end - week_start).days + 1
                entries = [e for e in recent if week_start <= e.intake_date <= week_end]
                week_taken = sum(1 for e in entries if e.taken)
                week_skipped = sum(1 for e in entries if e.skipped)

                weekly.append({
                    "week": week + 1,
                    "start_date": week_start,
                    "end_date": week_end,
                    "taken": week_taken,
                    "skipped": week_skipped,
                    "missed": week_days - week_taken - week_skipped,
                    "adherence_rate": round(week_taken / week_days * 100)
                })

            return {
                "medication": {
                    "id": medication.id,
                    "name": medication.name,
                    "dosage": medication.dosage
                },
                "stats": {
                    "total_days": days,
                    "taken": taken,
                    "skipped": skipped,
                    "missed": days - taken - skipped,
                    "adherence_rate": round(taken / days * 100)
                },
                "weekly_breakdown": weekly
            }

        if db:
            return _stats(db)

        with get_db_context() as session:
            return _stats(session)


# Singleton instance
medication_service = MedicationService()
