from __future__ import annotations

from collections.abc import Generator

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from leaddesk.core.auth import ActorUser, get_current_user
from leaddesk.core.config import get_settings
from leaddesk.core.database import Base, get_db
from leaddesk.core.policy import Role
from leaddesk.dashboard.service import dashboard_service
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
def setup_env(monkeypatch: pytest.MonkeyPatch) -> Generator[None, None, None]:
    monkeypatch.setenv("RATE_LIMIT_DISABLED", "true")
    get_settings.cache_clear()
    reset_rate_limiter()
    yield
    get_settings.cache_clear()


@pytest.fixture()
def client(db_session: Session) -> Generator[TestClient, None, None]:
    user = User(email="root@example.com", password_hash="unused", role=Role.SUPER.value)
    db_session.add(user)
    db_session.commit()
    actor = ActorUser(user_id=user.id, email=user.email, role=Role.SUPER)

    def override_get_db() -> Generator[Session, None, None]:
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_current_user] = lambda: actor
    with TestClient(app, raise_server_exceptions=False) as test_client:
        yield test_client
    app.dependency_overrides.clear()


def test_unknown_route_uses_error_envelope(client: TestClient) -> None:
    response = client.get("/api/nothing-here", headers={"X-Correlation-Id": "err-404"})
    assert response.status_code == 404
    body = response.json()
    assert body["statusCode"] == 404
    assert body["error"] == "Not Found"
    assert body["message"] == "Not Found"
    assert body["timestamp"]
    assert response.headers["X-Correlation-Id"] == "err-404"


def test_service_http_error_keeps_detail_as_message(client: TestClient) -> None:
    response = client.get("/api/leads/00000000-0000-0000-0000-000000000000")
    assert response.status_code == 404
    body = response.json()
    assert body["error"] == "Not Found"
    assert body["message"] == "Lead not found"
    assert "data" not in body


def test_validation_errors_become_bad_request_with_message_list(client: TestClient) -> None:
    response = client.post("/api/departments", json={"name": 5})
    assert response.status_code == 400
    body = response.json()
    assert body["error"] == "Bad Request"
    assert isinstance(body["message"], list)
    assert any(message.startswith("name:") for message in body["message"])

    bad_uuid = client.get("/api/leads/not-a-uuid")
    assert bad_uuid.status_code == 400
    assert isinstance(bad_uuid.json()["message"], list)


def test_unhandled_errors_are_masked(client: TestClient, monkeypatch: pytest.MonkeyPatch) -> None:
    def explode(*args: object, **kwargs: object) -> None:
        raise RuntimeError("secret connection string")

    monkeypatch.setattr(dashboard_service, "summary", explode)
    response = client.get("/api/dashboard/summary")

    assert response.status_code == 500
    body = response.json()
    assert body["statusCode"] == 500
    assert body["error"] == "Internal Server Error"
    assert body["message"] == "Internal server error"
    assert "secret" not in response.text
