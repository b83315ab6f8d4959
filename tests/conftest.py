"""
Pytest configuration and shared fixtures for the submission gateway tests.

Environment is pinned before any gateway module is imported: an in-memory
SQLite database, every outbound integration unconfigured and a known admin
secret. Collaborators are replaced by the fakes in fakes.py, so no test talks to the
network.
"""

import os

os.environ["DATABASE_URL"] = "sqlite://"
os.environ["DB_LOG_SLOW_QUERIES"] = "false"
os.environ["RATE_LIMIT_BACKEND"] = "memory"
os.environ["ADMIN_API_SECRET"] = "test-admin-secret"
for _name in (
    "TELEGRAM_BOT_TOKEN",
    "TELEGRAM_CHAT_ID",
    "TWILIO_ACCOUNT_SID",
    "TWILIO_AUTH_TOKEN",
    "TWILIO_PHONE_NUMBER",
    "ADMIN_PHONE",
    "RESEND_API_KEY",
    "GOOGLE_CLIENT_ID",
    "GOOGLE_CLIENT_SECRET",
    "GOOGLE_REFRESH_TOKEN",
    "SQUARE_ACCESS_TOKEN",
    "SQUARE_LOCATION_ID",
):
    os.environ[_name] = ""

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402

from fakes import (  # noqa: E402
    BROWSER_UA,
    FakeBilling,
    FakeCalendar,
    FakeClock,
    FakeMailer,
    FakeNotifier,
    FakeWebhook,
)
from submission_gateway import models  # noqa: E402,F401
from submission_gateway.database import Base, SessionLocal, engine  # noqa: E402
from submission_gateway.domain.submissions.repository import SubmissionRepository  # noqa: E402
from submission_gateway.domain.submissions.router import (  # noqa: E402
    get_security_gate,
    get_submission_orchestrator,
)
from submission_gateway.domain.submissions.service import SubmissionOrchestrator  # noqa: E402
from submission_gateway.main import app  # noqa: E402
from submission_gateway.rate_limiter import RateLimiter  # noqa: E402
from submission_gateway.security_gate import SecurityGate  # noqa: E402

SITE_ORIGIN = "https://cleanupbros.com.au"


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def db_session():
    Base.metadata.create_all(bind=engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def repository(db_session) -> SubmissionRepository:
    return SubmissionRepository(db_session)


@pytest.fixture
def notifier() -> FakeNotifier:
    return FakeNotifier()


@pytest.fixture
def webhook() -> FakeWebhook:
    return FakeWebhook()


@pytest.fixture
def calendar() -> FakeCalendar:
    return FakeCalendar()


@pytest.fixture
def billing() -> FakeBilling:
    return FakeBilling()


@pytest.fixture
def mailer() -> FakeMailer:
    return FakeMailer()


@pytest.fixture
def orchestrator(repository, notifier, webhook, calendar, billing, mailer) -> SubmissionOrchestrator:
    return SubmissionOrchestrator(
        repository,
        notifier=notifier,
        webhook=webhook,
        calendar=calendar,
        billing=billing,
        mailer=mailer,
    )


@pytest.fixture
def residential_quote() -> dict:
    return {
        "fullName": "Jordan Smith",
        "email": "jordan@example.com",
        "phone": "0412 345 678",
        "suburb": "Parramatta",
        "serviceType": "End of Lease",
        "bedrooms": 3,
        "bathrooms": 2,
        "agreedToTerms": True,
    }


@pytest.fixture
def commercial_quote() -> dict:
    return {
        "quoteType": "Commercial",
        "companyName": "Acme Pty Ltd",
        "contactPerson": "Morgan Reid",
        "email": "morgan@acme.example",
        "phone": "02 9876 5432",
        "suburb": "Parramatta",
        "facilityType": "Office",
        "squareMeters": "450",
        "cleaningFrequency": "Weekly",
    }


@pytest.fixture
def job_application() -> dict:
    return {
        "fullName": "Sam Taylor",
        "email": "sam@example.com",
        "phone": "+61 412 345 678",
        "experience": "Three years of residential and end of lease cleaning.",
        "hasWorkRights": True,
        "agreedToChecks": True,
        "availability": ["Monday", "Wednesday"],
    }


@pytest.fixture
def feedback_payload() -> dict:
    return {
        "fullName": "Alex Lee",
        "email": "alex@example.com",
        "rating": 5,
        "comments": "The team was on time and the kitchen looks brand new.",
    }


@pytest.fixture
def security_gate(clock) -> SecurityGate:
    return SecurityGate(
        rate_limiter=RateLimiter(clock=clock),
        allowed_origins=[SITE_ORIGIN],
        require_origin=True,
    )


@pytest.fixture
def client(orchestrator, security_gate):
    """API client wired to the in-memory database, the fakes and a test clock"""
    app.dependency_overrides[get_submission_orchestrator] = lambda: orchestrator
    app.dependency_overrides[get_security_gate] = lambda: security_gate
    try:
        yield TestClient(app, headers={"User-Agent": BROWSER_UA, "Origin": SITE_ORIGIN})
    finally:
        app.dependency_overrides.clear()
