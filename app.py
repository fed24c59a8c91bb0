"""
CareCompanion Backend
Main FastAPI application for medication and task reminders
"""

import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

# Configuration and database
from config import settings, scheduling_config
from database import init_db, DatabaseHealthCheck
from exceptions import (
    AuthorizationError,
    MaterializationFailure,
    NotFoundError,
    ScheduleValidationError,
)
from api import include_routers
from tools.trigger_evaluator import utcnow

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL),
    format=settings.LOG_FORMAT
)
logger = logging.getLogger(__name__)


# ==================== LIFESPAN ====================

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler for startup and shutdown"""
    # Startup
    logger.info(f"Starting {settings.APP_NAME} v{settings.APP_VERSION}")
    logger.info(f"Environment: {settings.ENV}")

    # Initialize database
    try:
        init_db()
        logger.info("Database initialized successfully")
    except Exception as e:
        logger.error(f"Database initialization failed: {e}")
        raise

    yield

    # Shutdown
    logger.info(f"Shutting down {settings.APP_NAME}")


# ==================== APP INITIALIZATION ====================

app = FastAPI(
    title=settings.APP_NAME,
    description="""
    ## CareCompanion API

    Medication and task reminders for patients and their caregivers.

    ### Features
    - **Reminder materialization**: daily and weekly schedules expanded into stored notifications
    - **Today / upcoming views**: pull-based queries over stored notifications
    - **Delivery tracking**: idempotent acknowledgement and on-demand dispatch
    - **Adherence ledger**: one taken/skipped entry per medication per day
    """,
    version=settings.APP_VERSION,
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Attach modular API routers
include_routers(app, prefix=settings.API_PREFIX)


# ==================== EXCEPTION HANDLERS ====================

def error_response(status_code: int, message: str, **extra) -> JSONResponse:
    content = {
        "error": True,
        "message": message,
        "status_code": status_code,
        "timestamp": utcnow().isoformat()
    }
    content.update(extra)
    return JSONResponse(status_code=status_code, content=content)


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException):
    return error_response(exc.status_code, exc.detail)


@app.exception_handler(ScheduleValidationError)
async def schedule_validation_handler(request: Request, exc: ScheduleValidationError):
    return error_response(422, str(exc), errors=[exc.to_dict()])


@app.exception_handler(NotFoundError)
async def not_found_handler(request: Request, exc: NotFoundError):
    return error_response(404, str(exc))


@app.exception_handler(AuthorizationError)
async def authorization_handler(request: Request, exc: AuthorizationError):
    return error_response(403, exc.message)


@app.exception_handler(MaterializationFailure)
async def materialization_failure_handler(request: Request, exc: MaterializationFailure):
    logger.error(f"Materialization failed: {exc}", exc_info=exc.cause)
    message = str(exc) if settings.DEBUG else f"Failed to create notifications for {exc.source} {exc.source_id}"
    return error_response(500, message)


@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception):
    logger.error(f"Unexpected error: {exc}", exc_info=True)
    return error_response(500, "An unexpected error occurred" if not settings.DEBUG else str(exc))


# ==================== HEALTH ENDPOINTS ====================

@app.get("/", tags=["Health"])
async def root():
    """Root endpoint - basic health check"""
    return {
        "name": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "status": "healthy",
        "timestamp": utcnow().isoformat()
    }


@app.get("/health", tags=["Health"])
async def health_check():
    """Detailed health check endpoint"""
    db_connected = DatabaseHealthCheck.is_connected()

    return {
        "status": "healthy" if db_connected else "degraded",
        "timestamp": utcnow().isoformat(),
        "checks": {
            "database": {
                "status": "up" if db_connected else "down",
                "type": "sqlite" if "sqlite" in settings.DATABASE_URL else "postgresql"
            },
            "push": {
                "configured": bool(settings.PUSH_WEBHOOK_URL)
            }
        },
        "config": {
            "daily_horizon_days": scheduling_config.DAILY_HORIZON_DAYS,
            "weekly_horizon_weeks": scheduling_config.WEEKLY_HORIZON_WEEKS
        },
        "version": settings.APP_VERSION,
        "environment": settings.ENV
    }


@app.get("/health/tables", tags=["Health"])
async def table_counts():
    """Row counts per table"""
    return DatabaseHealthCheck.get_table_counts()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "app:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=settings.DEBUG,
        log_level=settings.LOG_LEVEL.lower()
    )
