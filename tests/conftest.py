"""Shared pytest fixtures and configuration."""

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool
from datetime import date, timedelta
from faker import Faker

from common.db import Base, get_db
from common.enums import HealthPlan
from main import app
from services.cases.repository import CaseRecordRepository
from services.tasks.dates import utcnow
from services.tasks.dependencies import reset_orchestrator
from services.tasks.prioritizer import SmartTaskHub
from services.tasks.processor import TaskProcessor
from services.tasks.schemas import HealthNetTask, KaiserTask, OtherTask
from services.workflow.engine import WorkflowAutomationEngine

fake = Faker()

TASK_CLASSES = {
    HealthPlan.KAISER: KaiserTask,
    HealthPlan.HEALTH_NET: HealthNetTask,
    HealthPlan.OTHER: OtherTask,
}


@pytest.fixture(scope="function")
def db_session():
    """Create a test database session with in-memory SQLite."""
    # Use SQLite in-memory for testing
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture(scope="function")
def client(db_session):
    """Create a test client with database dependency override."""
    def override_get_db():
        try:
            yield db_session
        finally:
            pass

    reset_orchestrator()
    app.dependency_overrides[get_db] = override_get_db
    test_client = TestClient(app)
    yield test_client
    app.dependency_overrides.clear()
    reset_orchestrator()


@pytest.fixture
def today():
    return date.today()


@pytest.fixture
def engine():
    return WorkflowAutomationEngine()


@pytest.fixture
def hub():
    return SmartTaskHub()


@pytest.fixture
def processor(engine, hub):
    return TaskProcessor(engine, hub)


@pytest.fixture
def make_kaiser_record(today):
    """Build a raw Kaiser case record as the source system delivers it."""
    def _make(status="T2038 Requested", due_in_days=5, **overrides):
        client_id = fake.bothify(text="CL-#####")
        record = {
            "id": client_id,
            "client_ID2": client_id,
            "memberFirstName": fake.first_name(),
            "memberLastName": fake.last_name(),
            "memberMrn": fake.numerify(text="MRN########"),
            "memberCounty": "Los Angeles",
            "pathway": "SNF Transition",
            "healthPlan": "Kaiser Permanente",
            "Kaiser_Status": status,
            "CalAIM_Status": "Authorized",
            "kaiser_user_assignment": fake.email(),
            "next_steps_date": (today + timedelta(days=due_in_days)).isoformat() if due_in_days is not None else "",
            "last_updated": (utcnow() - timedelta(days=2)).isoformat(),
            "created_at": (utcnow() - timedelta(days=40)).isoformat(),
            "workflow_notes": fake.sentence(),
        }
        record.update(overrides)
        return record

    return _make


@pytest.fixture
def make_health_net_record(today):
    """Build a raw Health Net case record."""
    def _make(status="Scheduling ISP", due_in_days=10, **overrides):
        client_id = fake.bothify(text="HN-#####")
        record = {
            "client_ID2": client_id,
            "memberFirstName": fake.first_name(),
            "memberLastName": fake.last_name(),
            "memberMrn": fake.numerify(text="MRN########"),
            "memberCounty": "Sacramento",
            "pathway": "SNF Diversion",
            "healthPlan": "Health Net",
            "healthNetStatus": status,
            "Staff_Assigned": fake.name(),
            "Next_Step_Due_Date": (today + timedelta(days=due_in_days)).strftime("%m/%d/%Y")
            if due_in_days is not None else None,
            "last_updated": (utcnow() - timedelta(days=1)).isoformat(),
            "createdDate": (utcnow() - timedelta(days=20)).isoformat(),
            "notes": "",
        }
        record.update(overrides)
        return record

    return _make


@pytest.fixture
def make_task(today):
    """
    Build a task with consistent date-derived fields.

    ``due_in_days=None`` produces a task without a due date.
    """
    def _make(
        status="T2038 Requested",
        due_in_days=5,
        health_plan=HealthPlan.KAISER,
        task_id=None,
        **overrides,
    ):
        has_due_date = due_in_days is not None
        fields = {
            "id": task_id or fake.bothify(text="T-#####"),
            "client_id": fake.bothify(text="CL-#####"),
            "member_first_name": fake.first_name(),
            "member_last_name": fake.last_name(),
            "member_mrn": fake.numerify(text="MRN########"),
            "current_status": status,
            "due_date": today + timedelta(days=due_in_days) if has_due_date else None,
            "days_until_due": due_in_days if has_due_date else 999,
            "has_due_date": has_due_date,
            "is_overdue": has_due_date and due_in_days < 0,
            "last_updated": utcnow() - timedelta(days=1),
            "created_date": utcnow() - timedelta(days=30),
        }
        fields.update(overrides)
        return TASK_CLASSES[health_plan](**fields)

    return _make


@pytest.fixture
def stored_records(db_session, make_kaiser_record, make_health_net_record):
    """Persist one overdue Kaiser case and one upcoming Health Net case."""
    repository = CaseRecordRepository(db_session)
    kaiser = make_kaiser_record(
        status="T2038 Requested", due_in_days=-5, id="K-1001", client_ID2="K-1001",
        memberFirstName="Maria", memberLastName="Lopez", kaiser_user_assignment="jdoe@example.org",
    )
    health_net = make_health_net_record(
        status="Scheduling ISP", due_in_days=10, client_ID2="HN-2002",
        memberFirstName="James", memberLastName="Carter", Staff_Assigned="Ann Smith",
    )
    repository.upsert_case_record(kaiser)
    repository.upsert_case_record(health_net)
    return {"kaiser": kaiser, "health_net": health_net}
