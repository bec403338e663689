import os
import uuid

# Must be set before config is imported anywhere
os.environ["EDUSPACE_DATABASE_URL"] = "sqlite://"
os.environ["EDUSPACE_FUNCTIONS_URL"] = ""

import pytest
from fastapi.testclient import TestClient

from core import database
from core import dependencies
from models.access_request import AccessRequestModel
from models.base import Base
from models.class_model import ClassModel
from models.class_student import ClassStudentModel
from models.user import UserModel
from utils.converters import now_iso
from utils.function_client import FunctionClient


class RecordingFunctionClient(FunctionClient):
    """Function client that records calls instead of POSTing them."""

    def __init__(self, succeed: bool = True):
        super().__init__(base_url="http://functions.test")
        self.succeed = succeed
        self.calls = []

    def invoke(self, name, payload):
        self.calls.append((name, payload))
        return self.succeed

    def names(self):
        return [name for name, _ in self.calls]


@pytest.fixture(autouse=True)
def clean_database():
    Base.metadata.drop_all(bind=database.engine)
    Base.metadata.create_all(bind=database.engine)
    yield
    if dependencies._inbox_registry_instance is not None:
        dependencies._inbox_registry_instance.close_all()
        dependencies._inbox_registry_instance = None


@pytest.fixture
def db():
    session = database.SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def other_db():
    """A second session, standing in for a concurrent client."""
    session = database.SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def feed():
    return database.change_feed


@pytest.fixture
def functions():
    return RecordingFunctionClient()


@pytest.fixture
def client(functions):
    from app import app

    app.dependency_overrides[dependencies.get_function_client] = lambda: functions
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def make_user(db):
    def _make(email, role="student", username=None, notifications_enabled=True):
        user = UserModel(
            user_id=str(uuid.uuid4()),
            username=username or email.split("@")[0],
            password_hash="x",
            role=role,
            display_name=None,
            email=email,
            notifications_enabled=notifications_enabled,
            create_at=now_iso(),
        )
        db.add(user)
        db.commit()
        return user

    return _make


@pytest.fixture
def make_class(db):
    def _make(course_code="CS101", lecturer_id="L1", class_name="Intro", lecturer_name="Dr. Ada"):
        now = now_iso()
        model = ClassModel(
            id=str(uuid.uuid4()),
            course_code=course_code,
            class_name=class_name,
            lecturer_id=lecturer_id,
            lecturer_name=lecturer_name,
            created_at=now,
            updated_at=now,
        )
        db.add(model)
        db.commit()
        return model

    return _make


@pytest.fixture
def make_roster_entry(db):
    def _make(class_id, email, student_id=None, register_number=None, student_name=None):
        entry = ClassStudentModel(
            id=str(uuid.uuid4()),
            class_id=class_id,
            student_id=student_id,
            register_number=register_number or uuid.uuid4().hex[:8],
            student_name=student_name,
            email=email,
            enrollment_status="pending",
            import_source="test",
            added_at=now_iso(),
        )
        db.add(entry)
        db.commit()
        return entry

    return _make


@pytest.fixture
def make_request(db):
    def _make(class_id, email, status="pending", lecturer_id="L1", student_id=None, request_id=None):
        request = AccessRequestModel(
            id=request_id or str(uuid.uuid4()),
            class_id=class_id,
            lecturer_id=lecturer_id,
            student_id=student_id,
            student_email=email,
            status=status,
            sent_at=now_iso(),
            invitation_email_sent=False,
        )
        db.add(request)
        db.commit()
        return request

    return _make
