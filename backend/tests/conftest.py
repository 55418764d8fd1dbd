"""Pytest fixtures: file-backed SQLite database per test for fast, isolated tests."""
import os

# Keep the app module from touching a real database at import/startup
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")

import pytest  # noqa: E402
from sqlalchemy import event
from sqlalchemy.orm import sessionmaker
from fastapi.testclient import TestClient

from app.database import Base, get_db, make_engine
from app.identity import Identity
from app.main import app
from app.services.email_sender import get_email_sender

# Import all models so they register with Base.metadata
from app.models.user import User                      # noqa: F401
from app.models.group import Group, GroupMember       # noqa: F401
from app.models.invitation import GroupInvitation     # noqa: F401
from app.models.meeting import Meeting, MeetingAttendee  # noqa: F401


class FakeEmailSender:
    """Records sends; can be told to fail or raise."""

    def __init__(self):
        self.sent = []
        self.fail = False
        self.raise_error = False

    def send(self, to_address, template_data):
        if self.raise_error:
            raise ConnectionError("mail relay unreachable")
        if self.fail:
            return False
        self.sent.append((to_address, template_data))
        return True


@pytest.fixture(scope="function")
def db_engine(tmp_path):
    """Create a fresh SQLite engine for each test."""
    engine = make_engine(f"sqlite:///{tmp_path / 'test.db'}")

    @event.listens_for(engine, "connect")
    def _set_sqlite_pragma(dbapi_conn, connection_record):
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA journal_mode=WAL")
        cursor.close()

    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture(scope="function")
def session_factory(db_engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=db_engine)


@pytest.fixture(scope="function")
def db(session_factory):
    """Yield a database session, closed after the test."""
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture(scope="function")
def email_sender():
    return FakeEmailSender()


@pytest.fixture(scope="function")
def client(session_factory, email_sender):
    """FastAPI TestClient with the database and email dependencies overridden."""

    def _override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = _override_get_db
    app.dependency_overrides[get_email_sender] = lambda: email_sender
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------
def auth(user: dict) -> dict:
    """Request headers identifying ``user`` as the caller."""
    return {"X-User-Id": user["user_id"]}


def identity_of(user: dict) -> Identity:
    return Identity(user_id=user["user_id"], email=user["email"])


def create_test_user(client: TestClient, name: str = "Test User", email: str | None = None) -> dict:
    """POST /api/users and return response JSON."""
    resp = client.post("/api/users/", json={
        "display_name": name,
        "email": email or f"{name.lower().replace(' ', '.')}@example.com",
    })
    assert resp.status_code == 201, resp.text
    return resp.json()


def create_test_group(client: TestClient, owner: dict, name: str = "Test Group") -> dict:
    """POST /api/groups as ``owner`` and return response JSON."""
    resp = client.post("/api/groups/", json={"name": name}, headers=auth(owner))
    assert resp.status_code == 201, resp.text
    return resp.json()


def invite(client: TestClient, owner: dict, group: dict, email: str):
    return client.post("/api/invitations/", json={
        "group_id": group["group_id"],
        "email": email,
    }, headers=auth(owner))
