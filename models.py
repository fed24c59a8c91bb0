"""
Database Models
SQLAlchemy ORM models for CareCompanion
"""

from sqlalchemy import (
    Column, Integer, String, Boolean, DateTime, Date, ForeignKey, Text, Table,
    Index, UniqueConstraint, CheckConstraint, JSON
)
from sqlalchemy.orm import relationship
from datetime import datetime
from enum import Enum as PyEnum

from config import TableNames
from database import Base
from tools.recurrence import ScheduleTime, parse_schedule
from tools.trigger_evaluator import utcnow


# ==================== ENUMS ====================

class UserRole(str, PyEnum):
    """Who is acting on the system"""
    PATIENT = "patient"
    CAREGIVER = "caregiver"


class NotificationType(str, PyEnum):
    """Kinds of reminder a notification can carry"""
    MEDICATION = "medication"
    TASK = "task"
    REMINDER = "reminder"
    APPOINTMENT = "appointment"


class RecurringType(str, PyEnum):
    """Rule that generated a notification (informational only)"""
    NONE = "none"
    DAILY = "daily"
    WEEKLY = "weekly"


class TaskPriority(str, PyEnum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class TaskCategory(str, PyEnum):
    MEDICATION = "medication"
    APPOINTMENT = "appointment"
    EXERCISE = "exercise"
    SOCIAL = "social"
    PERSONAL = "personal"
    OTHER = "other"


# ==================== MODELS ====================

caregiver_links = Table(
    TableNames.CAREGIVER_LINKS,
    Base.metadata,
    Column("caregiver_id", Integer, ForeignKey("users.id"), primary_key=True),
    Column("patient_id", Integer, ForeignKey("users.id"), primary_key=True),
)


class User(Base):
    """Patient or caregiver account (authentication lives elsewhere)"""
    __tablename__ = TableNames.USERS

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(50), nullable=False)
    email = Column(String(255), unique=True, index=True, nullable=False)
    role = Column(String(20), nullable=False, default=UserRole.PATIENT.value)
    timezone = Column(String(50), default="UTC")
    is_active = Column(Boolean, default=True)

    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    # Caregiver -> patients they look after
    linked_patients = relationship(
        "User",
        secondary=caregiver_links,
        primaryjoin=id == caregiver_links.c.caregiver_id,
        secondaryjoin=id == caregiver_links.c.patient_id,
        backref="linked_caregivers",
    )

    @property
    def is_caregiver(self) -> bool:
        return self.role == UserRole.CAREGIVER.value

    @property
    def is_patient(self) -> bool:
        return self.role == UserRole.PATIENT.value


class Medication(Base):
    """Medication with its recurring reminder schedule"""
    __tablename__ = TableNames.MEDICATIONS

    id = Column(Integer, primary_key=True, index=True)
    patient_id = Column(Integer, ForeignKey("users.id"), nullable=False)

    name = Column(String(100), nullable=False)
    dosage = Column(String(50), nullable=False)

    # Schedule: "daily" | "weekly" | "as-needed"
    schedule_type = Column(String(20), nullable=False, default="daily")
    schedule_times = Column(JSON, default=list)  # [{"hour": 8, "minute": 0}]
    schedule_days = Column(JSON, default=list)   # [0-6], 0 = Sunday

    notes = Column(Text)
    is_active = Column(Boolean, default=True)
    created_by = Column(Integer, ForeignKey("users.id"), nullable=False)

    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    intakes = relationship(
        "MedicationIntake",
        back_populates="medication",
        cascade="all, delete-orphan",
        order_by="MedicationIntake.intake_date",
    )

    __table_args__ = (
        Index("ix_medications_patient_active", "patient_id", "is_active"),
    )

    @property
    def schedule(self):
        """Stored schedule as its tagged variant (validates on access)"""
        return parse_schedule({
            "type": self.schedule_type,
            "times": self.schedule_times or [],
            "days": self.schedule_days or [],
        })


class MedicationIntake(Base):
    """Adherence ledger entry: one row per medication per calendar day"""
    __tablename__ = TableNames.MEDICATION_INTAKES

    id = Column(Integer, primary_key=True, index=True)
    medication_id = Column(Integer, ForeignKey("medications.id"), nullable=False)
    intake_date = Column(Date, nullable=False)

    taken = Column(Boolean, default=False, nullable=False)
    taken_at = Column(DateTime)
    skipped = Column(Boolean, default=False, nullable=False)
    notes = Column(Text)

    medication = relationship("Medication", back_populates="intakes")

    __table_args__ = (
        UniqueConstraint("medication_id", "intake_date", name="uq_intake_medication_day"),
    )

    @property
    def status(self) -> str:
        if self.taken:
            return "taken"
        if self.skipped:
            return "skipped"
        return "pending"


class Task(Base):
    """Care task with a due date"""
    __tablename__ = TableNames.TASKS

    id = Column(Integer, primary_key=True, index=True)
    patient_id = Column(Integer, ForeignKey("users.id"), nullable=False)

    title = Column(String(100), nullable=False)
    description = Column(String(500))
    due_date = Column(DateTime, nullable=False)

    completed = Column(Boolean, default=False)
    completed_at = Column(DateTime)
    completion_notes = Column(String(500))

    priority = Column(String(10), default=TaskPriority.MEDIUM.value)
    category = Column(String(20), default=TaskCategory.OTHER.value)
    recurring_type = Column(String(10), default=RecurringType.NONE.value)

    notes = Column(String(500))
    is_active = Column(Boolean, default=True)
    created_by = Column(Integer, ForeignKey("users.id"), nullable=False)

    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    __table_args__ = (
        Index("ix_tasks_patient_active", "patient_id", "is_active"),
        Index("ix_tasks_due_date", "due_date"),
    )

    def is_overdue(self, now: datetime) -> bool:
        return not self.completed and now > self.due_date


class Notification(Base):
    """A materialized reminder instance"""
    __tablename__ = TableNames.NOTIFICATIONS

    id = Column(Integer, primary_key=True, index=True)
    patient_id = Column(Integer, ForeignKey("users.id"), nullable=False)

    # Weak references: sources are soft-deleted, never cascaded
    medication_id = Column(Integer, index=True)
    task_id = Column(Integer, index=True)

    type = Column(String(20), nullable=False)
    title = Column(String(100), nullable=False)
    message = Column(String(500), nullable=False)

    # Absolute UTC instant (stored naive)
    scheduled_date = Column(DateTime, nullable=False, index=True)
    notification_hour = Column(Integer, nullable=False)
    notification_minute = Column(Integer, nullable=False, default=0)

    is_active = Column(Boolean, default=True, nullable=False)
    is_delivered = Column(Boolean, default=False, nullable=False)
    delivered_at = Column(DateTime)

    recurring_type = Column(String(10), default=RecurringType.NONE.value)
    recurring_days = Column(JSON, default=list)

    # "<kind>:<source_id>:<iso instant>" for sourced rows, NULL for ad-hoc ones
    dedupe_key = Column(String(120), unique=True)

    created_by = Column(Integer, ForeignKey("users.id"), nullable=False)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    __table_args__ = (
        Index("ix_notifications_patient_active", "patient_id", "is_active"),
        CheckConstraint(
            "medication_id IS NULL OR task_id IS NULL",
            name="ck_notification_single_source",
        ),
        CheckConstraint(
            "notification_hour >= 0 AND notification_hour <= 23 "
            "AND notification_minute >= 0 AND notification_minute <= 59",
            name="ck_notification_time_bounds",
        ),
    )

    @property
    def notification_time(self) -> ScheduleTime:
        return ScheduleTime(self.notification_hour, self.notification_minute)

    @property
    def recurring(self) -> dict:
        return {"type": self.recurring_type, "days": list(self.recurring_days or [])}
