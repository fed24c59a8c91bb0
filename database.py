"""
Database connection and session management for CareCompanion
"""

import logging
from sqlalchemy import create_engine, event, inspect, select, func
from sqlalchemy.orm import declarative_base, sessionmaker, Session
from sqlalchemy.pool import StaticPool
from contextlib import contextmanager
from typing import Generator

from config import settings


logger = logging.getLogger(__name__)


# Create SQLAlchemy engine
if settings.DATABASE_URL.startswith("sqlite"):
    # SQLite specific configuration
    engine = create_engine(
        settings.DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        echo=settings.DATABASE_ECHO
    )

    # Enable foreign keys for SQLite
    @event.listens_for(engine, "connect")
    def set_sqlite_pragma(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()
else:
    # PostgreSQL or other databases
    engine = create_engine(
        settings.DATABASE_URL,
        echo=settings.DATABASE_ECHO,
        pool_size=10,
        max_overflow=20,
        pool_pre_ping=True
    )

# Create session factory
SessionLocal = sessionmaker(
    autocommit=False,
    autoflush=False,
    expire_on_commit=False,
    bind=engine
)

# Base class for ORM models
Base = declarative_base()


@contextmanager
def get_db_context() -> Generator[Session, None, None]:
    """
    Context manager for database session.
    Use this for background tasks or non-FastAPI contexts.

    Usage:
        with get_db_context() as db:
            db.query(Notification).all()
    """
    db = SessionLocal()
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


def init_db() -> None:
    """
    Initialize database tables.
    Creates all tables defined in models.
    """
    # Import models to register them with Base
    import models  # noqa: F401

    Base.metadata.create_all(bind=engine)
    logger.info(f"Database initialized at: {settings.DATABASE_URL}")


class DatabaseHealthCheck:
    """Database health check utilities"""

    @staticmethod
    def is_connected() -> bool:
        """Check if database is connected"""
        try:
            with engine.connect() as conn:
                conn.execute(select(1))
            return True
        except Exception as e:
            logger.warning(f"Database health check failed: {e}")
            return False

    @staticmethod
    def get_table_counts() -> dict:
        """Get row counts for all mapped tables"""
        existing = set(inspect(engine).get_table_names())

        counts = {}
        with get_db_context() as db:
            for table in Base.metadata.sorted_tables:
                if table.name in existing:
                    counts[table.name] = db.execute(
                        select(func.count()).select_from(table)
                    ).scalar()

        return counts


# Export commonly used items
__all__ = [
    "engine",
    "SessionLocal",
    "Base",
    "get_db_context",
    "init_db",
    "DatabaseHealthCheck"
]
