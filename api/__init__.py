"""
API Module
FastAPI routers for the CareCompanion application
"""

from api.notifications import router as notifications_router
from api.medications import router as medications_router
from api.tasks import router as tasks_router

from api.deps import (
    get_db,
    get_current_user,
    services,
)


__all__ = [
    # Routers
    "notifications_router",
    "medications_router",
    "tasks_router",
    # Dependencies
    "get_db",
    "get_current_user",
    "services",
]


def include_routers(app, prefix: str = "/api/v1"):
    """
    Include all API routers in the FastAPI app

    Usage:
        from api import include_routers
        include_routers(app)
    """
    app.include_router(notifications_router, prefix=prefix)
    app.include_router(medications_router, prefix=prefix)
    app.include_router(tasks_router, prefix=prefix)
