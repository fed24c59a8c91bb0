"""
Notifications API Router
Endpoints for materializing, querying and acknowledging reminders
"""

from typing import List, Optional
from fastapi import APIRouter, Depends, status, Query
from sqlalchemy.orm import Session

from api.deps import get_db, get_current_user, services
from api.schemas.notification import (
    MaterializeRequest,
    NotificationCreate,
    NotificationResponse,
    NotificationList,
    MaterializeResponse,
    DispatchResponse,
)
import models


router = APIRouter(prefix="/notifications", tags=["notifications"])


def _to_list(notifications: List[models.Notification]) -> NotificationList:
    return NotificationList(
        notifications=[NotificationResponse.model_validate(n) for n in notifications],
        total=len(notifications)
    )


def _batch(notifications: List[models.Notification], source: str) -> MaterializeResponse:
    return MaterializeResponse(
        message=f"{len(notifications)} notifications scheduled for {source}",
        count=len(notifications),
        notifications=[NotificationResponse.model_validate(n) for n in notifications]
    )


@router.post(
    "/medication/{medication_id}",
    response_model=MaterializeResponse,
    status_code=status.HTTP_201_CREATED
)
async def create_medication_notifications(
    medication_id: int,
    request: Optional[MaterializeRequest] = None,
    user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """
    Materialize reminders for a medication

    - **notificationTime**: optional `{hour, minute}` used for every reminder

    Calling this again returns the same reminders without duplicating them.
    """
    notification_service = services.get_notification_service()

    notifications = await notification_service.create_medication_notifications(
        medication_id,
        user,
        notification_time=request.override() if request else None,
        db=db
    )
    return _batch(notifications, f"medication {medication_id}")


@router.post(
    "/task/{task_id}",
    response_model=MaterializeResponse,
    status_code=status.HTTP_201_CREATED
)
async def create_task_notifications(
    task_id: int,
    request: Optional[MaterializeRequest] = None,
    user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """
    Materialize the reminder for a task (09:00 UTC on the due date by default)
    """
    notification_service = services.get_notification_service()

    notifications = await notification_service.create_task_notifications(
        task_id,
        user,
        notification_time=request.override() if request else None,
        db=db
    )
    return _batch(notifications, f"task {task_id}")


@router.post("/", response_model=NotificationResponse, status_code=status.HTTP_201_CREATED)
async def create_notification(
    notification_data: NotificationCreate,
    user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """
    Create a single ad-hoc notification (as-needed dose, appointment, reminder)
    """
    notification_service = services.get_notification_service()

    notification = await notification_service.create_notification(
        patient_id=notification_data.patient_id,
        actor=user,
        notification_type=notification_data.type.value,
        title=notification_data.title,
        message=notification_data.message,
        scheduled_date=notification_data.scheduled_date,
        db=db
    )
    return NotificationResponse.model_validate(notification)


@router.get("/today", response_model=NotificationList)
async def get_today_notifications(
    patient_id: Optional[int] = Query(None, alias="patientId"),
    user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """
    Active notifications for today's UTC date, ordered by time of day

    Caregivers without `patientId` get their first linked patient.
    """
    notification_service = services.get_notification_service()

    notifications = await notification_service.get_today_notifications(user, patient_id, db=db)
    return _to_list(notifications)


@router.get("/patient/{patient_id}", response_model=NotificationList)
async def get_patient_notifications(
    patient_id: int,
    upcoming: bool = Query(False, description="Only future, undelivered notifications"),
    is_active: bool = Query(True, alias="isActive"),
    user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """
    Get a patient's notifications sorted by scheduled time
    """
    notification_service = services.get_notification_service()

    notifications = await notification_service.get_patient_notifications(
        patient_id,
        user,
        is_active=is_active,
        upcoming=upcoming,
        db=db
    )
    return _to_list(notifications)


@router.post("/dispatch", response_model=DispatchResponse)
async def dispatch_due_notifications(
    patient_id: Optional[int] = Query(None, alias="patientId"),
    user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """
    Run one reminder sweep for the caller's patient through the configured transports
    """
    notification_service = services.get_notification_service()
    reminder_engine = services.get_reminder_engine()

    target = notification_service.resolve_today_patient(user, patient_id)
    report = await reminder_engine.process_due_notifications(target, db=db)
    return DispatchResponse.model_validate(report.to_dict())


@router.get("/{notification_id}", response_model=NotificationResponse)
async def get_notification(
    notification_id: int,
    user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    notification_service = services.get_notification_service()

    notification = await notification_service.get_notification(notification_id, user, db=db)
    return NotificationResponse.model_validate(notification)


@router.put("/{notification_id}/delivered", response_model=NotificationResponse)
async def mark_notification_delivered(
    notification_id: int,
    user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """
    Acknowledge delivery; repeating the call only refreshes `deliveredAt`
    """
    notification_service = services.get_notification_service()

    notification = await notification_service.mark_delivered(notification_id, user, db=db)
    return NotificationResponse.model_validate(notification)


@router.delete("/{notification_id}", response_model=NotificationResponse)
async def delete_notification(
    notification_id: int,
    user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """
    Soft delete a notification (caregivers only)
    """
    notification_service = services.get_notification_service()

    notification = await notification_service.deactivate_notification(notification_id, user, db=db)
    return NotificationResponse.model_validate(notification)
