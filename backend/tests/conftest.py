import os

# Keep the module-level engine in memory; tests bind their own engine below
os.environ.setdefault("DATABASE_URL", "sqlite://")

import json

import httpx
import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

import ctportal.models  # noqa: F401
from ctportal.database import Base, get_db, get_session_factory, set_sqlite_pragma
from ctportal.services.courses import create_course, import_roster
from ctportal.services.notifications import PushGateway, get_push_gateway, save_push_token
from ctportal.services.users import register_user

TEACHER_EMAIL = "rahim@cuet.ac.bd"


def student_email(student_id):
    return f"u{student_id}@student.cuet.ac.bd"


class GatewayRecorder:
    """
    Stand-in for the Expo push endpoint behind httpx.MockTransport.

    Every request body is recorded; `responder` turns the list of messages
    into either a list of tickets or a full httpx.Response.
    """

    def __init__(self):
        self.requests = []
        self.responder = lambda messages: [{"status": "ok", "id": f"ticket-{i}"}
                                           for i, _ in enumerate(messages)]

    def handler(self, request: httpx.Request) -> httpx.Response:
        messages = json.loads(request.content)
        self.requests.append(messages)
        result = self.responder(messages)
        if isinstance(result, httpx.Response):
            return result
        return httpx.Response(200, json={"data": result})

    @property
    def messages(self):
        return [m for batch in self.requests for m in batch]


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    event.listen(engine, "connect", set_sqlite_pragma)
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def recorder():
    return GatewayRecorder()


@pytest.fixture
def gateway(recorder):
    return PushGateway(url="https://push.test/--/api/v2/push/send",
                       transport=httpx.MockTransport(recorder.handler))


@pytest.fixture
def course(db):
    return create_course(db, "Data Structures", TEACHER_EMAIL, code="CSE-203", best_ct_count=2)


@pytest.fixture
def add_student(db):
    """Register a student (optionally with a push token) and return the email."""
    def _add(student_id, token=None, name="Student"):
        email = student_email(student_id)
        assert register_user(db, email, name) is not None
        if token:
            assert save_push_token(db, email, token)
        return email
    return _add


@pytest.fixture
def enroll(db):
    """Import roster rows; pass (student_id, email_or_None) pairs."""
    def _enroll(course_id, *entries):
        rows = [{"student_id": sid, "student_email": email} for sid, email in entries]
        assert import_roster(db, course_id, rows) == len(rows)
    return _enroll


@pytest.fixture
def client(session_factory, gateway):
    from ctportal.main import app

    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_push_gateway] = lambda: gateway
    app.dependency_overrides[get_session_factory] = lambda: session_factory
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()
