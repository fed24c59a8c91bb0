"""
Pytest Configuration and Shared Fixtures
========================================

This module provides shared fixtures for all CareCompanion tests.
Fixtures include database sessions, test clients, users and sample sources.
"""

import os
import sys
from datetime import datetime
from typing import Generator, Dict

# Keep the application engine off the filesystem
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.pool import StaticPool

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from database import Base
from api.deps import get_db
from models import User, UserRole, Medication, Task
from app import app


# ==================== DATABASE FIXTURES ====================

@pytest.fixture(scope="function")
def test_engine():
    """Create a test database engine with in-memory SQLite"""
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        echo=False
    )

    # Enable foreign keys for SQLite
    @event.listens_for(engine, "connect")
    def set_sqlite_pragma(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    # Create all tables
    Base.metadata.create_all(bind=engine)

    yield engine

    # Cleanup
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture(scope="function")
def db_session(test_engine) -> Generator[Session, None, None]:
    """Create a test database session"""
    TestingSessionLocal = sessionmaker(
        autocommit=False,
        autoflush=False,
        expire_on_commit=False,
        bind=test_engine
    )

    session = TestingSessionLocal()

    try:
        yield session
    finally:
        session.rollback()
        session.close()


@pytest.fixture(scope="function")
def client(db_session: Session) -> Generator[TestClient, None, None]:
    """Create a FastAPI test client with database override"""

    def override_get_db():
        try:
            yield db_session
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()


def auth_headers(user: User) -> Dict[str, str]:
    """Headers identifying the acting user"""
    return {"X-User-Id": str(user.id)}


# ==================== USER FIXTURES ====================

def _make_user(session: Session, name: str, email: str, role: UserRole) -> User:
    user = User(name=name, email=email, role=role.value)
    session.add(user)
    session.commit()
    session.refresh(user)
    return user


@pytest.fixture
def test_patient(db_session: Session) -> User:
    """Create and return a test patient"""
    return _make_user(db_session, "John Doe", "john.doe@example.com", UserRole.PATIENT)


@pytest.fixture
def other_patient(db_session: Session) -> User:
    """A patient nobody in the tests is linked to"""
    return _make_user(db_session, "Carol Williams", "carol.williams@example.com", UserRole.PATIENT)


@pytest.fixture
def test_caregiver(db_session: Session, test_patient: User) -> User:
    """Caregiver linked to the test patient"""
    caregiver = _make_user(db_session, "Alice Smith", "alice.smith@example.com", UserRole.CAREGIVER)
    caregiver.linked_patients.append(test_patient)
    db_session.commit()
    return caregiver


@pytest.fixture
def unlinked_caregiver(db_session: Session) -> User:
    """Caregiver with no linked patients"""
    return _make_user(db_session, "Bob Johnson", "bob.johnson@example.com", UserRole.CAREGIVER)


# ==================== SOURCE FIXTURES ====================

@pytest.fixture
def thursday_morning() -> datetime:
    """Fixed clock: Thursday 2024-01-04 07:00 UTC"""
    return datetime(2024, 1, 4, 7, 0)


@pytest.fixture
def daily_medication(db_session: Session, test_patient: User, test_caregiver: User) -> Medication:
    """Metformin at 08:00 and 20:00 every day (no notifications materialized)"""
    medication = Medication(
        patient_id=test_patient.id,
        name="Metformin",
        dosage="500mg",
        schedule_type="daily",
        schedule_times=[{"hour": 8, "minute": 0}, {"hour": 20, "minute": 0}],
        schedule_days=[],
        created_by=test_caregiver.id
    )
    db_session.add(medication)
    db_session.commit()
    db_session.refresh(medication)
    return medication


@pytest.fixture
def weekly_medication(db_session: Session, test_patient: User, test_caregiver: User) -> Medication:
    """Methotrexate on Mondays and Wednesdays at 20:30"""
    medication = Medication(
        patient_id=test_patient.id,
        name="Methotrexate",
        dosage="2.5mg",
        schedule_type="weekly",
        schedule_times=[{"hour": 20, "minute": 30}],
        schedule_days=[1, 3],
        created_by=test_caregiver.id
    )
    db_session.add(medication)
    db_session.commit()
    db_session.refresh(medication)
    return medication


@pytest.fixture
def test_task(db_session: Session, test_patient: User, test_caregiver: User) -> Task:
    """Task due 2024-01-10 15:00 UTC"""
    task = Task(
        patient_id=test_patient.id,
        title="Blood pressure check",
        description=None,
        due_date=datetime(2024, 1, 10, 15, 0),
        created_by=test_caregiver.id
    )
    db_session.add(task)
    db_session.commit()
    db_session.refresh(task)
    return task


# ==================== MARKERS ====================

def pytest_configure(config):
    """Register custom markers"""
    config.addinivalue_line("markers", "unit: mark test as a unit test")
    config.addinivalue_line("markers", "integration: mark test as an integration test")
    config.addinivalue_line("markers", "api: mark test as an API test")
    config.addinivalue_line("markers", "database: mark test as requiring database")
