"""
Shared Schemas
Base model and value types reused across the API
"""

from typing import Annotated, Optional
from datetime import datetime, timezone
from pydantic import AfterValidator, BaseModel, Field, ConfigDict
from pydantic.alias_generators import to_camel

from tools.recurrence import ScheduleTime


class CamelModel(BaseModel):
    """JSON uses camelCase; Python code uses snake_case"""
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True
    )


def _as_utc(value: datetime) -> datetime:
    # Stored instants are naive UTC
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


UtcDateTime = Annotated[datetime, AfterValidator(_as_utc)]


class ScheduleTimeSchema(CamelModel):
    """Wall-clock time of day"""
    hour: int = Field(..., ge=0, le=23)
    minute: int = Field(default=0, ge=0, le=59)

    def to_schedule_time(self) -> ScheduleTime:
        return ScheduleTime(self.hour, self.minute)


class NotificationTimeRequest(CamelModel):
    """Optional override applied to every materialized reminder"""
    notification_time: Optional[ScheduleTimeSchema] = None

    def override(self) -> Optional[ScheduleTime]:
        if self.notification_time is None:
            return None
        return self.notification_time.to_schedule_time()


class MessageResponse(CamelModel):
    message: str
