"""
API Dependencies
Common dependencies for FastAPI endpoints
"""

from typing import Generator, Optional
from fastapi import Depends, HTTPException, status, Header
from sqlalchemy.orm import Session

from database import SessionLocal
import models


def get_db() -> Generator[Session, None, None]:
    """
    Database session dependency
    Yields a SQLAlchemy session and ensures cleanup
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


async def get_current_user(
    x_user_id: Optional[int] = Header(None, alias="X-User-Id"),
    db: Session = Depends(get_db)
) -> models.User:
    """
    Resolve the acting user from the X-User-Id header
    Authentication happens upstream; this only loads the account
    """
    if x_user_id is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="X-User-Id header required",
        )

    user = db.get(models.User, x_user_id)
    if not user or not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=f"User {x_user_id} not found or inactive",
        )

    return user


class ServiceDependency:
    """
    Dependency injection for services
    """

    @staticmethod
    def get_notification_service():
        from services.notification_service import notification_service
        return notification_service

    @staticmethod
    def get_medication_service():
        from services.medication_service import medication_service
        return medication_service

    @staticmethod
    def get_task_service():
        from services.task_service import task_service
        return task_service

    @staticmethod
    def get_reminder_engine():
        from actions.reminder_engine import reminder_engine
        return reminder_engine


# Service dependency instances
services = ServiceDependency()
