from __future__ import annotations

import uuid
from collections.abc import Generator

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from leaddesk import audit, events
from leaddesk.core.auth import ActorUser, get_current_user
from leaddesk.core.config import get_settings
from leaddesk.core.database import Base, get_db
from leaddesk.core.policy import Role
from leaddesk.departments.models import Department
from leaddesk.main import app
from leaddesk.middleware.rate_limit import reset_rate_limiter
from leaddesk.users.models import User


@pytest.fixture()
def db_session() -> Generator[Session, None, None]:
    engine = create_engine(
        "sqlite+pysqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    SessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False)
    Base.metadata.create_all(bind=engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture(autouse=True)
def clear_stubs() -> Generator[None, None, None]:
    audit.audit_entries.clear()
    events.published_events.clear()
    reset_rate_limiter()
    get_settings.cache_clear()
    yield
    audit.audit_entries.clear()
    events.published_events.clear()
    reset_rate_limiter()
    get_settings.cache_clear()


@pytest.fixture()
def actor(db_session: Session) -> ActorUser:
    user = User(email="root@example.com", password_hash="unused", role=Role.SUPER.value)
    db_session.add(user)
    db_session.commit()
    return ActorUser(user_id=user.id, email=user.email, role=Role.SUPER)


@pytest.fixture()
def department_id(db_session: Session) -> uuid.UUID:
    department = Department(name="Sales")
    db_session.add(department)
    db_session.commit()
    return department.id


@pytest.fixture()
def client(db_session: Session, actor: ActorUser) -> Generator[TestClient, None, None]:
    def override_get_db() -> Generator[Session, None, None]:
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_current_user] = lambda: actor
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


def test_generated_correlation_id_returned_in_header(client: TestClient) -> None:
    response = client.get(f"/api/leads/{uuid.uuid4()}")
    assert response.status_code == 404
    header_value = response.headers.get("x-correlation-id")
    assert header_value
    uuid.UUID(header_value)
    assert "correlation_id" not in response.json()


def test_correlation_id_respected_when_provided(client: TestClient) -> None:
    response = client.get(f"/api/leads/{uuid.uuid4()}", headers={"X-Correlation-Id": "abc-123"})
    assert response.status_code == 404
    assert response.headers.get("x-correlation-id") == "abc-123"

    fallback = client.get("/health", headers={"X-Request-Id": "req-9"})
    assert fallback.headers.get("x-correlation-id") == "req-9"


def test_malformed_correlation_id_is_replaced(client: TestClient) -> None:
    response = client.get("/health", headers={"X-Correlation-Id": "bad value with spaces"})
    assert response.headers.get("x-correlation-id") != "bad value with spaces"
    uuid.UUID(response.headers["x-correlation-id"])


def test_audit_uses_request_correlation_id(client: TestClient, department_id: uuid.UUID) -> None:
    response = client.post(
        "/api/statuses",
        json={"name": "New", "department_id": str(department_id)},
        headers={"X-Correlation-Id": "corr-audit-1"},
    )
    assert response.status_code == 201

    status_audits = [entry for entry in audit.audit_entries if entry.get("entity_type") == "status"]
    assert status_audits
    assert status_audits[-1]["correlation_id"] == "corr-audit-1"


def test_event_envelope_includes_correlation_id(client: TestClient, department_id: uuid.UUID) -> None:
    response = client.post(
        "/api/leads",
        json={"name": "Corr Lead", "department_id": str(department_id)},
        headers={"X-Correlation-Id": "corr-event-1"},
    )
    assert response.status_code == 201

    created_events = [item for item in events.published_events if item.get("event_type") == "lead.created"]
    assert created_events
    assert created_events[-1].get("correlation_id") == "corr-event-1"


def test_rate_limited_response_includes_correlation_id(
    client: TestClient,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    monkeypatch.setenv("RATE_LIMIT_DISABLED", "false")
    monkeypatch.setenv("RATE_LIMIT_PUBLIC_LEADS_PER_MINUTE", "1")
    get_settings.cache_clear()
    reset_rate_limiter()

    payload = {"token": "unknown", "name": "Visitor"}
    first = client.post("/api/leads/from-site", json=payload, headers={"X-Correlation-Id": "corr-rate-1"})
    assert first.status_code == 404

    second = client.post("/api/leads/from-site", json=payload, headers={"X-Correlation-Id": "corr-rate-1"})
    assert second.status_code == 429
    assert second.headers.get("x-correlation-id") == "corr-rate-1"
