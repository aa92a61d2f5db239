from __future__ import annotations

import uuid
from collections.abc import Callable, Generator

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from leaddesk import audit
from leaddesk.core.auth import ActorUser, get_current_user
from leaddesk.core.config import get_settings
from leaddesk.core.database import Base, get_db
from leaddesk.core.policy import Role
from leaddesk.departments.models import Department
from leaddesk.main import app
from leaddesk.middleware.rate_limit import reset_rate_limiter
from leaddesk.sites.widget import render_widget_script
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
    audit.audit_entries.clear()
    yield
    get_settings.cache_clear()
    reset_rate_limiter()
    audit.audit_entries.clear()


@pytest.fixture()
def world(db_session: Session) -> dict[str, uuid.UUID]:
    manager = User(email="boss@example.com", password_hash="unused", role=Role.MANAGER.value)
    other_manager = User(email="boss2@example.com", password_hash="unused", role=Role.MANAGER.value)
    db_session.add_all([manager, other_manager])
    db_session.commit()

    sales = Department(name="Sales", manager_id=manager.id)
    support = Department(name="Support", manager_id=other_manager.id)
    db_session.add_all([sales, support])
    db_session.commit()

    employee = User(email="worker@example.com", password_hash="unused", role=Role.EMPLOYEE.value, department_id=sales.id)
    super_user = User(email="root@example.com", password_hash="unused", role=Role.SUPER.value)
    db_session.add_all([employee, super_user])
    manager.department_id = sales.id
    db_session.commit()
    return {
        "sales": sales.id,
        "support": support.id,
        "manager": manager.id,
        "other_manager": other_manager.id,
        "employee": employee.id,
        "super": super_user.id,
    }


@pytest.fixture()
def client(
    db_session: Session,
    world: dict[str, uuid.UUID],
) -> Generator[tuple[TestClient, Callable[[str], None]], None, None]:
    def override_get_db() -> Generator[Session, None, None]:
        yield db_session

    roles = {"manager": Role.MANAGER, "other_manager": Role.MANAGER, "employee": Role.EMPLOYEE, "super": Role.SUPER}
    state = {"current": "manager"}

    def override_get_current_user() -> ActorUser:
        name = state["current"]
        return ActorUser(user_id=world[name], email=f"{name}@example.com", role=roles[name])

    def set_actor(name: str) -> None:
        state["current"] = name

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_current_user] = override_get_current_user
    with TestClient(app) as test_client:
        yield test_client, set_actor
    app.dependency_overrides.clear()


def test_status_order_is_appended_per_department(
    client: tuple[TestClient, Callable[[str], None]],
    world: dict[str, uuid.UUID],
) -> None:
    test_client, _ = client
    first = test_client.post("/api/statuses", json={"name": "New", "department_id": str(world["sales"])})
    second = test_client.post(
        "/api/statuses",
        json={"name": "Won", "color": "#00ff00", "department_id": str(world["sales"])},
    )
    assert first.status_code == 201
    assert first.json()["data"]["order"] == 0
    assert first.json()["data"]["color"] == "#9ca3af"
    assert second.json()["data"]["order"] == 1

    listed = test_client.get("/api/statuses", params={"department_id": str(world["sales"])})
    assert [item["name"] for item in listed.json()["data"]] == ["New", "Won"]
    assert audit.audit_entries[-1]["entity_type"] == "status"


def test_status_permissions(
    client: tuple[TestClient, Callable[[str], None]],
    world: dict[str, uuid.UUID],
) -> None:
    test_client, set_actor = client
    created = test_client.post("/api/statuses", json={"name": "New", "department_id": str(world["sales"])})
    status_id = created.json()["data"]["id"]

    assert test_client.post(
        "/api/statuses",
        json={"name": "Nope", "department_id": str(world["support"])},
    ).status_code == 403
    moved = test_client.patch(f"/api/statuses/{status_id}", json={"department_id": str(world["support"])})
    assert moved.status_code == 403
    assert moved.json()["message"] == "Cannot assign status to that department"

    set_actor("employee")
    assert test_client.get("/api/statuses", params={"department_id": str(world["sales"])}).status_code == 200
    assert test_client.get(f"/api/statuses/{status_id}").status_code == 200
    assert test_client.patch(f"/api/statuses/{status_id}", json={"name": "Mine"}).status_code == 403
    assert test_client.get("/api/statuses", params={"department_id": str(world["support"])}).status_code == 403
    assert test_client.get("/api/statuses").status_code == 403

    set_actor("super")
    super_move = test_client.patch(f"/api/statuses/{status_id}", json={"department_id": str(world["support"])})
    assert super_move.status_code == 200
    assert test_client.delete(f"/api/statuses/{status_id}").json()["data"]["message"] == "Status deleted"


def test_site_token_is_generated_and_kept_on_update(
    client: tuple[TestClient, Callable[[str], None]],
    world: dict[str, uuid.UUID],
) -> None:
    test_client, _ = client
    created = test_client.post(
        "/api/sites",
        json={"url": "https://shop.example.com", "department_id": str(world["sales"])},
    )
    assert created.status_code == 201
    site = created.json()["data"]
    assert len(site["token"]) == 64
    int(site["token"], 16)

    updated = test_client.patch(f"/api/sites/{site['id']}", json={"url": "https://new.example.com", "token": "x"})
    assert updated.status_code == 200
    assert updated.json()["data"]["token"] == site["token"]
    assert updated.json()["data"]["url"] == "https://new.example.com"

    site_audit = audit.audit_entries[-1]
    assert site_audit["entity_type"] == "site"
    assert "url" in site_audit["changed_fields"]
    assert "token" not in site_audit["before"]
    assert "token" not in site_audit["after"]


def test_site_permissions(
    client: tuple[TestClient, Callable[[str], None]],
    world: dict[str, uuid.UUID],
) -> None:
    test_client, set_actor = client
    assert test_client.post(
        "/api/sites",
        json={"url": "https://x.example.com", "department_id": str(world["support"])},
    ).status_code == 403
    site_id = test_client.post(
        "/api/sites",
        json={"url": "https://x.example.com", "department_id": str(world["sales"])},
    ).json()["data"]["id"]

    set_actor("other_manager")
    assert test_client.get(f"/api/sites/{site_id}").status_code == 403
    assert test_client.delete(f"/api/sites/{site_id}").status_code == 403

    set_actor("employee")
    listed = test_client.get("/api/sites", params={"department_id": str(world["sales"])})
    assert listed.status_code == 200
    assert len(listed.json()["data"]) == 1


def test_widget_script_is_public_and_carries_only_its_token(
    client: tuple[TestClient, Callable[[str], None]],
    world: dict[str, uuid.UUID],
) -> None:
    test_client, _ = client
    first = test_client.post(
        "/api/sites",
        json={"url": "https://a.example.com", "department_id": str(world["sales"])},
    ).json()["data"]
    second = test_client.post(
        "/api/sites",
        json={"url": "https://b.example.com", "department_id": str(world["sales"])},
    ).json()["data"]

    app.dependency_overrides.pop(get_current_user)
    response = test_client.get(
        f"/api/sites/{first['id']}/widget.js",
        headers={"x-forwarded-proto": "https", "x-forwarded-host": "crm.example.com"},
    )
    assert response.status_code == 200
    assert response.headers["content-type"] == "application/javascript; charset=utf-8"
    assert response.headers["cache-control"] == "public, max-age=300"
    assert 'var API_BASE="https://crm.example.com/api";' in response.text
    assert f'var TOKEN="{first["token"]}";' in response.text
    assert second["token"] not in response.text

    missing = test_client.get(f"/api/sites/{uuid.uuid4()}/widget.js")
    assert missing.status_code == 404


def test_widget_falls_back_to_request_host() -> None:
    script = render_widget_script("http://testserver/api", 'abc"</script>')
    assert 'var API_BASE="http://testserver/api";' in script
    assert 'var TOKEN="abc\\"</script>";' in script
