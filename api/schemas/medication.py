"""
Medication Schemas
Pydantic models for medication-related API requests and responses
"""

from typing import Optional, List, Dict, Any
from datetime import datetime, date
from pydantic import Field

from api.schemas.common import CamelModel, ScheduleTimeSchema
from tools.recurrence import ScheduleType


# ==================== BASE SCHEMAS ====================

class ScheduleSchema(CamelModel):
    """Stored schedule shape; combinations are checked by the recurrence module"""
    type: ScheduleType = ScheduleType.DAILY
    times: List[ScheduleTimeSchema] = Field(default_factory=list)
    days: List[int] = Field(default_factory=list)

    def to_mapping(self) -> Dict[str, Any]:
        return {
            "type": self.type.value,
            "times": [t.model_dump() for t in self.times],
            "days": list(self.days),
        }


class MedicationBase(CamelModel):
    """Base medication schema"""
    name: str = Field(..., min_length=1, max_length=100)
    dosage: str = Field(..., min_length=1, max_length=50)


# ==================== REQUEST SCHEMAS ====================

class MedicationCreate(MedicationBase):
    """Schema for creating a new medication"""
    patient_id: int
    schedule: ScheduleSchema
    notes: Optional[str] = Field(None, max_length=500)
    notification_time: Optional[ScheduleTimeSchema] = None


class MedicationUpdate(CamelModel):
    """Schema for updating medication"""
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    dosage: Optional[str] = Field(None, min_length=1, max_length=50)
    schedule: Optional[ScheduleSchema] = None
    notes: Optional[str] = Field(None, max_length=500)
    is_active: Optional[bool] = None


class IntakeRequest(CamelModel):
    """Body of POST /medications/{id}/taken and /skipped"""
    on_date: Optional[date] = Field(None, alias="date")
    notes: Optional[str] = Field(None, max_length=500)


# ==================== RESPONSE SCHEMAS ====================

class MedicationResponse(MedicationBase):
    """Schema for medication response"""
    id: int
    patient_id: int
    schedule: ScheduleSchema
    notes: Optional[str] = None
    is_active: bool
    today_status: str = "pending"
    created_by: int
    created_at: datetime
    updated_at: Optional[datetime] = None


class MedicationList(CamelModel):
    """Schema for list of medications"""
    medications: List[MedicationResponse]
    total: int
    active_count: int


class IntakeResponse(CamelModel):
    """One adherence ledger entry"""
    medication_id: int
    intake_date: date
    taken: bool
    taken_at: Optional[datetime] = None
    skipped: bool
    notes: Optional[str] = None
    status: str


class MedicationRef(CamelModel):
    id: int
    name: str
    dosage: str


class AdherenceStats(CamelModel):
    total_days: int
    taken: int
    skipped: int
    missed: int
    adherence_rate: int


class WeeklyAdherence(CamelModel):
    week: int
    start_date: date
    end_date: date
    taken: int
    skipped: int
    missed: int
    adherence_rate: int


class MedicationStatsResponse(CamelModel):
    """Adherence statistics for one medication"""
    medication: MedicationRef
    stats: AdherenceStats
    weekly_breakdown: List[WeeklyAdherence]
