"""
Task Schemas
Pydantic models for task-related API requests and responses
"""

from typing import Optional, List
from datetime import datetime
from pydantic import Field

from api.schemas.common import CamelModel, ScheduleTimeSchema
from models import RecurringType, TaskCategory, TaskPriority


class TaskCreate(CamelModel):
    """Schema for creating a task"""
    patient_id: int
    title: str = Field(..., min_length=1, max_length=100)
    description: Optional[str] = Field(None, max_length=500)
    due_date: datetime
    priority: TaskPriority = TaskPriority.MEDIUM
    category: TaskCategory = TaskCategory.OTHER
    recurring_type: RecurringType = RecurringType.NONE
    notes: Optional[str] = Field(None, max_length=500)
    notification_time: Optional[ScheduleTimeSchema] = None


class TaskComplete(CamelModel):
    notes: Optional[str] = Field(None, max_length=500)


class TaskResponse(CamelModel):
    """Schema for task response"""
    id: int
    patient_id: int
    title: str
    description: Optional[str] = None
    due_date: datetime
    completed: bool
    completed_at: Optional[datetime] = None
    completion_notes: Optional[str] = None
    priority: TaskPriority
    category: TaskCategory
    recurring_type: RecurringType
    notes: Optional[str] = None
    is_active: bool
    is_overdue: bool = False
    created_by: int
    created_at: datetime
    updated_at: Optional[datetime] = None


class TaskList(CamelModel):
    """Schema for list of tasks"""
    tasks: List[TaskResponse]
    total: int
