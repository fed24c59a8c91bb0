"""
Medications API Router
Endpoints for medication management and the adherence ledger
"""

from typing import Optional
from fastapi import APIRouter, Depends, status, Query
from sqlalchemy.orm import Session

from api.deps import get_db, get_current_user, services
from api.schemas.medication import (
    MedicationCreate,
    MedicationUpdate,
    IntakeRequest,
    MedicationResponse,
    MedicationList,
    IntakeResponse,
    MedicationStatsResponse,
)
import models
from tools.trigger_evaluator import utcnow


router = APIRouter(prefix="/medications", tags=["medications"])


def _to_response(medication: models.Medication) -> MedicationResponse:
    medication_service = services.get_medication_service()
    today_status = medication_service.get_day_status(medication, utcnow().date())

    return MedicationResponse(
        id=medication.id,
        patient_id=medication.patient_id,
        name=medication.name,
        dosage=medication.dosage,
        schedule=medication.schedule.to_dict(),
        notes=medication.notes,
        is_active=medication.is_active,
        today_status=today_status,
        created_by=medication.created_by,
        created_at=medication.created_at,
        updated_at=medication.updated_at
    )


@router.post("/", response_model=MedicationResponse, status_code=status.HTTP_201_CREATED)
async def create_medication(
    medication_data: MedicationCreate,
    user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """
    Add a new medication for a patient (caregivers only)

    - **patientId**: Patient ID
    - **name**: Medication name
    - **dosage**: Dosage (e.g., "500mg")
    - **schedule**: `{type, times, days}`

    Reminders are materialized right after the medication is saved; a
    failure there is logged and does not fail this request.
    """
    medication_service = services.get_medication_service()

    medication = await medication_service.add_medication(
        patient_id=medication_data.patient_id,
        name=medication_data.name,
        dosage=medication_data.dosage,
        schedule=medication_data.schedule.to_mapping(),
        actor=user,
        notes=medication_data.notes,
        notification_time=(
            medication_data.notification_time.to_schedule_time()
            if medication_data.notification_time else None
        ),
        db=db
    )
    return _to_response(medication)


@router.get("/patient/{patient_id}", response_model=MedicationList)
async def get_patient_medications(
    patient_id: int,
    active_only: bool = Query(True, alias="activeOnly", description="Only return active medications"),
    user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """
    Get all medications for a patient
    """
    medication_service = services.get_medication_service()

    medications = await medication_service.get_patient_medications(
        patient_id,
        user,
        active_only=active_only,
        db=db
    )

    return MedicationList(
        medications=[_to_response(m) for m in medications],
        total=len(medications),
        active_count=sum(1 for m in medications if m.is_active)
    )


@router.get("/{medication_id}", response_model=MedicationResponse)
async def get_medication(
    medication_id: int,
    user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    medication_service = services.get_medication_service()

    medication = await medication_service.get_medication(medication_id, user, db=db)
    return _to_response(medication)


@router.put("/{medication_id}", response_model=MedicationResponse)
async def update_medication(
    medication_id: int,
    updates: MedicationUpdate,
    user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """
    Update medication information

    Existing reminders are not rewritten; call
    `POST /notifications/medication/{id}` to materialize a changed schedule.
    """
    medication_service = services.get_medication_service()

    update_data = updates.model_dump(exclude_unset=True)
    if updates.schedule is not None:
        update_data["schedule"] = updates.schedule.to_mapping()

    medication = await medication_service.update_medication(medication_id, update_data, user, db=db)
    return _to_response(medication)


@router.delete("/{medication_id}", response_model=MedicationResponse)
async def delete_medication(
    medication_id: int,
    user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """
    Soft delete a medication (caregivers only)
    """
    medication_service = services.get_medication_service()

    medication = await medication_service.delete_medication(medication_id, user, db=db)
    return _to_response(medication)


@router.post("/{medication_id}/taken", response_model=IntakeResponse)
async def mark_medication_taken(
    medication_id: int,
    request: Optional[IntakeRequest] = None,
    user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """
    Record today's (or `date`'s) dose as taken
    """
    medication_service = services.get_medication_service()

    entry = await medication_service.mark_taken(
        medication_id,
        user,
        on_date=request.on_date if request else None,
        notes=request.notes if request else None,
        db=db
    )
    return IntakeResponse.model_validate(entry)


@router.post("/{medication_id}/skipped", response_model=IntakeResponse)
async def mark_medication_skipped(
    medication_id: int,
    request: Optional[IntakeRequest] = None,
    user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """
    Record today's (or `date`'s) dose as skipped
    """
    medication_service = services.get_medication_service()

    entry = await medication_service.mark_skipped(
        medication_id,
        user,
        on_date=request.on_date if request else None,
        notes=request.notes if request else None,
        db=db
    )
    return IntakeResponse.model_validate(entry)


@router.get("/{medication_id}/stats", response_model=MedicationStatsResponse)
async def get_medication_stats(
    medication_id: int,
    days: int = Query(30, ge=1, le=365),
    user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """
    Adherence statistics with a weekly breakdown
    """
    medication_service = services.get_medication_service()

    stats = await medication_service.get_stats(medication_id, user, days=days, db=db)
    return MedicationStatsResponse.model_validate(stats)
