"""
Tasks API Router
Endpoints for care tasks
"""

from typing import Optional
from fastapi import APIRouter, Depends, status, Query
from sqlalchemy.orm import Session

from api.deps import get_db, get_current_user, services
from api.schemas.task import TaskCreate, TaskComplete, TaskResponse, TaskList
import models
from tools.trigger_evaluator import utcnow


router = APIRouter(prefix="/tasks", tags=["tasks"])


def _to_response(task: models.Task) -> TaskResponse:
    data = {column.name: getattr(task, column.name) for column in task.__table__.columns}
    data["is_overdue"] = task.is_overdue(utcnow())
    return TaskResponse.model_validate(data)


@router.post("/", response_model=TaskResponse, status_code=status.HTTP_201_CREATED)
async def create_task(
    task_data: TaskCreate,
    user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """
    Create a task; its reminder is materialized after the task is saved
    """
    task_service = services.get_task_service()

    task = await task_service.add_task(
        patient_id=task_data.patient_id,
        title=task_data.title,
        due_date=task_data.due_date,
        actor=user,
        description=task_data.description,
        priority=task_data.priority.value,
        category=task_data.category.value,
        recurring_type=task_data.recurring_type.value,
        notes=task_data.notes,
        notification_time=(
            task_data.notification_time.to_schedule_time()
            if task_data.notification_time else None
        ),
        db=db
    )
    return _to_response(task)


@router.get("/patient/{patient_id}", response_model=TaskList)
async def get_patient_tasks(
    patient_id: int,
    completed: Optional[bool] = Query(None),
    category: Optional[str] = Query(None),
    priority: Optional[str] = Query(None),
    is_active: bool = Query(True, alias="isActive"),
    user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """
    Get a patient's tasks, soonest due first
    """
    task_service = services.get_task_service()

    tasks = await task_service.get_patient_tasks(
        patient_id,
        user,
        completed=completed,
        category=category,
        priority=priority,
        is_active=is_active,
        db=db
    )
    return TaskList(tasks=[_to_response(t) for t in tasks], total=len(tasks))


@router.get("/{task_id}", response_model=TaskResponse)
async def get_task(
    task_id: int,
    user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    task_service = services.get_task_service()

    task = await task_service.get_task(task_id, user, db=db)
    return _to_response(task)


@router.post("/{task_id}/complete", response_model=TaskResponse)
async def complete_task(
    task_id: int,
    request: Optional[TaskComplete] = None,
    user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    task_service = services.get_task_service()

    task = await task_service.mark_completed(
        task_id,
        user,
        notes=request.notes if request else None,
        db=db
    )
    return _to_response(task)


@router.post("/{task_id}/incomplete", response_model=TaskResponse)
async def reopen_task(
    task_id: int,
    user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    task_service = services.get_task_service()

    task = await task_service.mark_incomplete(task_id, user, db=db)
    return _to_response(task)


@router.delete("/{task_id}", response_model=TaskResponse)
async def delete_task(
    task_id: int,
    user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """
    Soft delete a task (caregivers only)
    """
    task_service = services.get_task_service()

    task = await task_service.delete_task(task_id, user, db=db)
    return _to_response(task)
