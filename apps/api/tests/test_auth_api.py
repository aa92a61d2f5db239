from __future__ import annotations

from collections.abc import Generator

import httpx
import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine, select
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from leaddesk.core.auth import build_claims, create_access_token
from leaddesk.core.config import get_settings
from leaddesk.core.database import Base, get_db
from leaddesk.core.policy import Role
from leaddesk.core.security import hash_password
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
def setup_env(monkeypatch: pytest.MonkeyPatch) -> Generator[None, None, None]:
    monkeypatch.setenv("RATE_LIMIT_DISABLED", "true")
    monkeypatch.setenv("PASSWORD_HASH_ITERATIONS", "1000")
    monkeypatch.setenv("JWT_SECRET", "test-secret")
    monkeypatch.setenv("SUPER_USER_EMAIL", "root@example.com")
    monkeypatch.setenv("SUPER_USER_PASSWORD", "root-pass")
    get_settings.cache_clear()
    reset_rate_limiter()
    yield
    get_settings.cache_clear()
    reset_rate_limiter()


@pytest.fixture()
def client(db_session: Session) -> Generator[TestClient, None, None]:
    def override_get_db() -> Generator[Session, None, None]:
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


def _add_user(session: Session, email: str, password: str, **fields: object) -> User:
    user = User(email=email, password_hash=hash_password(password), **fields)
    session.add(user)
    session.commit()
    session.refresh(user)
    return user


def _login(test_client: TestClient, email: str, password: str) -> httpx.Response:
    return test_client.post("/api/auth/login", json={"email": email, "password": password})


def test_startup_bootstraps_super_user(client: TestClient, db_session: Session) -> None:
    users = db_session.scalars(select(User)).all()
    assert [(user.email, user.role) for user in users] == [("root@example.com", Role.SUPER.value)]

    response = _login(client, "ROOT@example.com", "root-pass")
    assert response.status_code == 200
    assert response.json()["data"]["access_token"]


def test_login_me_and_last_login(client: TestClient, db_session: Session) -> None:
    department = Department(name="Sales")
    db_session.add(department)
    db_session.commit()
    user = _add_user(
        db_session,
        "worker@example.com",
        "secret-1",
        role=Role.EMPLOYEE.value,
        first_name="Eve",
        department_id=department.id,
    )

    response = _login(client, "worker@example.com", "secret-1")
    assert response.status_code == 200
    tokens = response.json()["data"]
    assert set(tokens) == {"access_token", "refresh_token"}
    db_session.refresh(user)
    assert user.last_login_at is not None

    me = client.get("/api/auth/me", headers={"Authorization": f"Bearer {tokens['access_token']}"})
    assert me.status_code == 200
    assert me.json()["data"] == {
        "user_id": str(user.id),
        "email": "worker@example.com",
        "role": "employee",
        "first_name": "Eve",
        "last_name": "",
        "phone": "",
        "department_id": str(department.id),
    }


def test_login_rejections_share_one_message(client: TestClient, db_session: Session) -> None:
    _add_user(db_session, "worker@example.com", "secret-1", role=Role.EMPLOYEE.value)
    _add_user(db_session, "gone@example.com", "secret-1", role=Role.EMPLOYEE.value, is_active=False)

    for email, password in (
        ("worker@example.com", "wrong"),
        ("nobody@example.com", "secret-1"),
        ("gone@example.com", "secret-1"),
    ):
        response = _login(client, email, password)
        assert response.status_code == 401
        assert response.json()["error"] == "Unauthorized"
        assert response.json()["message"] == "Invalid credentials"

    assert _login(client, "worker@example.com", "").status_code == 400


def test_refresh_issues_new_access_token(client: TestClient, db_session: Session) -> None:
    _add_user(db_session, "worker@example.com", "secret-1", role=Role.EMPLOYEE.value)
    tokens = _login(client, "worker@example.com", "secret-1").json()["data"]

    refreshed = client.post("/api/auth/refresh", json={"refresh_token": tokens["refresh_token"]})
    assert refreshed.status_code == 200
    access_token = refreshed.json()["data"]["access_token"]
    assert client.get("/api/auth/me", headers={"Authorization": f"Bearer {access_token}"}).status_code == 200

    wrong_type = client.post("/api/auth/refresh", json={"refresh_token": tokens["access_token"]})
    assert wrong_type.status_code == 401
    assert wrong_type.json()["message"] == "Invalid refresh token"
    assert client.post("/api/auth/refresh", json={"refresh_token": "garbage"}).status_code == 401


def test_protected_routes_reject_bad_tokens(client: TestClient, db_session: Session) -> None:
    user = _add_user(db_session, "worker@example.com", "secret-1", role=Role.EMPLOYEE.value)
    tokens = _login(client, "worker@example.com", "secret-1").json()["data"]

    assert client.get("/api/auth/me").status_code == 401
    assert client.get("/api/auth/me", headers={"Authorization": "Bearer nonsense"}).status_code == 401
    as_refresh = client.get("/api/auth/me", headers={"Authorization": f"Bearer {tokens['refresh_token']}"})
    assert as_refresh.status_code == 401
    assert as_refresh.json()["message"] == "Unauthorized"

    issued = create_access_token(build_claims(user.id, user.email, Role.EMPLOYEE))
    assert client.get("/api/auth/me", headers={"Authorization": f"Bearer {issued}"}).status_code == 200
