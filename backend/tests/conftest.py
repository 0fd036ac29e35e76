"""Pytest fixtures: file-backed SQLite database, recording email sender, account/event helpers."""
import os
import re
from datetime import date, timedelta

# Settings are read at import time, so configure the app before importing it.
os.environ["DATABASE_URL"] = "sqlite:///./test.db"
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ["EMAIL_BACKEND"] = "console"
os.environ["BCRYPT_ROUNDS"] = "4"
os.environ["EVENT_TIMEZONE"] = "UTC"

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from fastapi.testclient import TestClient

from student_events.database import Base, get_db
from student_events.dependencies import get_email_sender
from student_events.main import app
from student_events.models.event import Event, EventCategory, EventStatus
from student_events.models.user import User, UserRole
from student_events.security import hash_password
from student_events.services.email_service import EmailMessage, EmailSender

# Import all models so they register with Base.metadata
from student_events.models.rsvp import RSVP  # noqa: F401
from student_events.models.otp import OTP    # noqa: F401

SQLITE_URL = "sqlite:///./test.db"
DEFAULT_PASSWORD = "Passw0rd"


class RecordingEmailSender(EmailSender):
    """Keeps every message in memory so tests can read the codes that were sent."""

    def __init__(self):
        self.outbox: list[EmailMessage] = []

    def send(self, message: EmailMessage) -> None:
        self.outbox.append(message)

    def messages_to(self, email: str) -> list[EmailMessage]:
        return [m for m in self.outbox if m.to == email.lower()]

    def last_code(self, email: str) -> str:
        messages = self.messages_to(email)
        assert messages, f"no email sent to {email}"
        match = re.search(r"\b(\d{6})\b", messages[-1].text)
        assert match, messages[-1].text
        return match.group(1)


@pytest.fixture(scope="function")
def db_engine():
    """Create a fresh SQLite engine for each test."""
    engine = create_engine(SQLITE_URL, connect_args={"check_same_thread": False})
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture(scope="function")
def session_factory(db_engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=db_engine)


@pytest.fixture(scope="function")
def db(session_factory):
    """Yield a database session for service-level tests."""
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture(scope="function")
def mailer():
    return RecordingEmailSender()


@pytest.fixture(scope="function")
def client(session_factory, mailer):
    """FastAPI TestClient with the database and email sender overridden."""

    def _override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = _override_get_db
    app.dependency_overrides[get_email_sender] = lambda: mailer
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


# ---------------------------------------------------------------------------
# Helpers: accounts
# ---------------------------------------------------------------------------
def auth_headers(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}


def registration_payload(email: str, **overrides) -> dict:
    payload = {
        "first_name": "Sam",
        "last_name": "Student",
        "email": email,
        "password": DEFAULT_PASSWORD,
        "department": "Computer Science",
        "graduation_year": 2027,
    }
    payload.update(overrides)
    return payload


def register_student(client: TestClient, mailer: RecordingEmailSender, email: str = "sam@campus.edu", **overrides) -> dict:
    """Helper: register + verify via the API. Returns the token response with ready-made headers."""
    resp = client.post("/api/auth/register", json=registration_payload(email, **overrides))
    assert resp.status_code == 201, resp.text
    resp = client.post("/api/auth/verify-otp", json={"email": email, "otp": mailer.last_code(email)})
    assert resp.status_code == 200, resp.text
    data = resp.json()
    data["headers"] = auth_headers(data["access_token"])
    return data


def create_admin(client: TestClient, session_factory, email: str = "admin@campus.edu") -> dict:
    """Helper: admins are provisioned directly in the database, then log in through the API."""
    session = session_factory()
    try:
        add_user(session, email, role=UserRole.admin)
        session.commit()
    finally:
        session.close()
    resp = client.post("/api/auth/login", json={"email": email, "password": DEFAULT_PASSWORD})
    assert resp.status_code == 200, resp.text
    data = resp.json()
    data["headers"] = auth_headers(data["access_token"])
    return data


# ---------------------------------------------------------------------------
# Helpers: events
# ---------------------------------------------------------------------------
def event_payload(days_ahead: int = 7, **overrides) -> dict:
    payload = {
        "title": "Intro to Robotics",
        "description": "Hands-on session building a line-following robot.",
        "date": (date.today() + timedelta(days=days_ahead)).isoformat(),
        "time": "18:00",
        "location": "Engineering Hall 101",
        "category": "workshop",
        "capacity": 20,
    }
    payload.update(overrides)
    return payload


def create_approved_event(client: TestClient, owner_headers: dict, admin_headers: dict, **overrides) -> dict:
    """Helper: submit an event as ``owner`` and approve it as admin."""
    resp = client.post("/api/events/", json=event_payload(**overrides), headers=owner_headers)
    assert resp.status_code == 201, resp.text
    event_id = resp.json()["event_id"]
    resp = client.patch(f"/api/events/{event_id}/approve", headers=admin_headers)
    assert resp.status_code == 200, resp.text
    return resp.json()


# ---------------------------------------------------------------------------
# Helpers: direct database rows for service-level tests
# ---------------------------------------------------------------------------
def add_user(session, email: str, role: UserRole = UserRole.student, is_active: bool = True) -> User:
    user = User(
        first_name="Test",
        last_name="User",
        email=email,
        password_hash=hash_password(DEFAULT_PASSWORD),
        role=role,
        is_active=is_active,
    )
    session.add(user)
    session.flush()
    return user


def add_event(
    session,
    owner: User,
    capacity: int = 5,
    status: EventStatus = EventStatus.approved,
    days_ahead: int = 7,
) -> Event:
    event = Event(
        title="Campus Hackathon",
        description="Twenty-four hours of building things with friends.",
        date=date.today() + timedelta(days=days_ahead),
        time="09:00",
        location="Student Union",
        category=EventCategory.career,
        capacity=capacity,
        current_attendees=0,
        status=status,
        contact_email=owner.email,
        created_by=owner.user_id,
    )
    session.add(event)
    session.commit()
    session.refresh(event)
    return event
