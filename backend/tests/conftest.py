"""
Test configuration and fixtures.

Provides:
- SQLite in-memory database (StaticPool), schema created and dropped per test
- TestClient with get_db overridden and a known trigger secret
- Recording fake email transport and a zero-delay rate limiter
- Small factories for periods, settings, doctors and month rows
"""
import os
from datetime import datetime, timezone
from typing import Generator

# Point the app at SQLite and keep the in-process scheduler off before app modules are imported
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["SCHEDULER_ENABLED"] = "false"

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

import app.models  # noqa: F401
from app.config import settings
from app.db.base import Base
from app.db.session import get_db
from app.main import app
from app.models.doctor_period_month import DoctorPeriodMonth
from app.models.period import Period
from app.models.profile import Profile
from app.services.automation_settings import upsert_automation_settings
from app.services.email.transport import SendOutcome
from app.services.reminders.dispatcher import RateLimiter

TEST_CRON_SECRET = "test-cron-secret"


# =============================================================================
# Database
# =============================================================================


@pytest.fixture(scope="function")
def engine():
    eng = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(eng)
    yield eng
    Base.metadata.drop_all(eng)
    eng.dispose()


@pytest.fixture(scope="function")
def db(engine) -> Generator[Session, None, None]:
    session = sessionmaker(bind=engine, autocommit=False, autoflush=False)()
    yield session
    session.close()


@pytest.fixture(scope="function")
def client(db, monkeypatch) -> Generator[TestClient, None, None]:
    monkeypatch.setattr(settings, "cron_secret", TEST_CRON_SECRET)
    monkeypatch.setattr(settings, "trusted_cron_header", "x-vercel-cron")

    def override_get_db():
        yield db

    app.dependency_overrides[get_db] = override_get_db
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def auth_headers() -> dict[str, str]:
    return {"Authorization": f"Bearer {TEST_CRON_SECRET}"}


# =============================================================================
# Email doubles
# =============================================================================


class FakeTransport:
    """Records every send. outcomes: email -> SendOutcome, or a list consumed one per call."""

    def __init__(self, outcomes: dict | None = None):
        self.outcomes = outcomes or {}
        self.calls: list[dict] = []

    def send(self, to, subject, html, text=None):
        self.calls.append({"to": to, "subject": subject})
        outcome = self.outcomes.get(to, SendOutcome.SUCCESS)
        if isinstance(outcome, list):
            return outcome.pop(0) if outcome else SendOutcome.SUCCESS
        return outcome

    def sent_to(self) -> list[str]:
        return [c["to"] for c in self.calls]


@pytest.fixture
def fake_transport() -> FakeTransport:
    return FakeTransport()


@pytest.fixture
def no_wait() -> RateLimiter:
    return RateLimiter(0)


# =============================================================================
# Factories
# =============================================================================


def utc(*args) -> datetime:
    return datetime(*args, tzinfo=timezone.utc)


@pytest.fixture
def make_period(db):
    def _make(
        label: str = "T4 2025",
        open_at: datetime = utc(2025, 10, 1),
        close_at: datetime | None = utc(2025, 12, 31, 23, 59, 59),
        tz: str = "Europe/Paris",
        settings_payload: dict | None = None,
    ) -> Period:
        period = Period(label=label, open_at=open_at, close_at=close_at, timezone=tz)
        db.add(period)
        db.commit()
        db.refresh(period)
        if settings_payload is not None:
            upsert_automation_settings(db, period.id, settings_payload)
            db.refresh(period)
        return period

    return _make


@pytest.fixture
def make_doctor(db):
    def _make(
        user_id: str,
        email: str | None = None,
        full_name: str | None = None,
        role: str = "doctor",
        opted_out: bool = False,
    ) -> Profile:
        profile = Profile(
            user_id=user_id,
            email=email if email is not None else f"{user_id}@hospital.test",
            full_name=full_name,
            role=role,
            reminders_opted_out=opted_out,
        )
        db.add(profile)
        db.commit()
        return profile

    return _make


@pytest.fixture
def add_month(db):
    def _add(
        user_id: str,
        period_id: int,
        month: str = "2025-10",
        validated_at: datetime | None = None,
        locked: bool = False,
        opted_out: bool | None = False,
    ) -> DoctorPeriodMonth:
        row = DoctorPeriodMonth(
            user_id=user_id,
            period_id=period_id,
            month=month,
            validated_at=validated_at,
            locked=locked,
            opted_out=opted_out,
        )
        db.add(row)
        db.commit()
        return row

    return _add
