from __future__ import annotations

import uuid
from collections.abc import Callable, Generator

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
from leaddesk.leads.models import Lead
from leaddesk.main import app
from leaddesk.middleware.rate_limit import reset_rate_limiter
from leaddesk.statuses.models import Status
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
    events.published_events.clear()
    yield
    get_settings.cache_clear()
    reset_rate_limiter()
    audit.audit_entries.clear()
    events.published_events.clear()


def _lead(name: str, department_id: uuid.UUID, status_id: uuid.UUID | None, assignees: list[uuid.UUID]) -> Lead:
    lead = Lead(name=name, phone=name, department_id=department_id, status_id=status_id)
    lead.assigned_to = assignees
    return lead


@pytest.fixture()
def world(db_session: Session) -> dict[str, uuid.UUID]:
    manager = User(email="boss@example.com", password_hash="unused", role=Role.MANAGER.value, first_name="Mia", last_name="Boss")
    other_manager = User(email="boss2@example.com", password_hash="unused", role=Role.MANAGER.value)
    admin = User(email="admin@example.com", password_hash="unused", role=Role.ADMIN.value)
    db_session.add_all([manager, other_manager, admin])
    db_session.commit()

    sales = Department(name="Sales", manager_id=manager.id)
    support = Department(name="Support", manager_id=other_manager.id)
    db_session.add_all([sales, support])
    db_session.commit()
    manager.department_id = sales.id

    employee = User(
        email="worker@example.com",
        password_hash="unused",
        role=Role.EMPLOYEE.value,
        department_id=sales.id,
        first_name="Eve",
    )
    db_session.add(employee)
    db_session.commit()
    colleague = User(email="mate@example.com", password_hash="unused", role=Role.EMPLOYEE.value, department_id=sales.id)
    new_status = Status(name="New", department_id=sales.id, order=0)
    won_status = Status(name="Won", department_id=sales.id, order=1)
    db_session.add_all([colleague, new_status, won_status])
    db_session.commit()

    db_session.add_all(
        [
            _lead("L1", sales.id, new_status.id, [employee.id]),
            _lead("L2", sales.id, won_status.id, [employee.id, manager.id]),
            _lead("L3", sales.id, new_status.id, []),
            _lead("L4", support.id, None, [employee.id]),
        ]
    )
    db_session.commit()
    return {
        "sales": sales.id,
        "support": support.id,
        "manager": manager.id,
        "other_manager": other_manager.id,
        "admin": admin.id,
        "employee": employee.id,
        "colleague": colleague.id,
        "new_status": new_status.id,
        "won_status": won_status.id,
    }


ROLES = {
    "manager": Role.MANAGER,
    "other_manager": Role.MANAGER,
    "admin": Role.ADMIN,
    "employee": Role.EMPLOYEE,
    "colleague": Role.EMPLOYEE,
}


@pytest.fixture()
def client(
    db_session: Session,
    world: dict[str, uuid.UUID],
) -> Generator[tuple[TestClient, Callable[[str], None]], None, None]:
    def override_get_db() -> Generator[Session, None, None]:
        yield db_session

    state = {"current": "manager"}

    def override_get_current_user() -> ActorUser:
        name = state["current"]
        return ActorUser(user_id=world[name], email=f"{name}@example.com", role=ROLES[name])

    def set_actor(name: str) -> None:
        state["current"] = name

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_current_user] = override_get_current_user
    with TestClient(app) as test_client:
        yield test_client, set_actor
    app.dependency_overrides.clear()


def test_department_stats_rows(
    client: tuple[TestClient, Callable[[str], None]],
    world: dict[str, uuid.UUID],
) -> None:
    test_client, _ = client
    response = test_client.get("/api/leads/stats", params={"department_id": str(world["sales"])})
    assert response.status_code == 200
    stats = response.json()["data"]
    assert stats["department_name"] == "Sales"
    assert [item["name"] for item in stats["statuses"]] == ["New", "Won"]

    rows = stats["rows"]
    assert [row["assignee_id"] for row in rows] == [
        str(world["manager"]),
        str(world["employee"]),
        str(world["colleague"]),
    ]
    manager_row, employee_row, colleague_row = rows
    assert manager_row["is_manager"] is True
    assert manager_row["assignee_name"] == "Mia Boss"
    assert [item["count"] for item in manager_row["by_status"]] == [0, 1]
    assert manager_row["total"] == 1
    assert employee_row["assignee_name"] == "Eve"
    assert [item["count"] for item in employee_row["by_status"]] == [1, 1]
    assert employee_row["total"] == 2
    assert colleague_row["total"] == 0

    filtered = test_client.get(
        "/api/leads/stats",
        params={"department_id": str(world["sales"]), "status_id": str(world["won_status"])},
    ).json()["data"]
    assert filtered["rows"][1]["total"] == 1
    assert filtered["filters"]["status_id"] == str(world["won_status"])


def test_department_stats_access(
    client: tuple[TestClient, Callable[[str], None]],
    world: dict[str, uuid.UUID],
) -> None:
    test_client, set_actor = client
    sales = {"department_id": str(world["sales"])}
    assert test_client.get("/api/leads/stats").status_code == 403

    set_actor("employee")
    assert test_client.get("/api/leads/stats", params=sales).status_code == 200
    assert test_client.get("/api/leads/stats", params={"department_id": str(world["support"])}).status_code == 403

    set_actor("other_manager")
    assert test_client.get("/api/leads/stats", params=sales).status_code == 403

    set_actor("admin")
    assert test_client.get("/api/leads/stats", params=sales).status_code == 200


def test_export_roles_and_filters(
    client: tuple[TestClient, Callable[[str], None]],
    world: dict[str, uuid.UUID],
) -> None:
    test_client, set_actor = client
    sales = {"department_id": str(world["sales"])}
    exported = test_client.get("/api/leads/export", params=sales)
    assert exported.status_code == 200
    assert sorted(item["name"] for item in exported.json()["data"]) == ["L1", "L2", "L3"]

    assigned = test_client.get("/api/leads/export", params={**sales, "assigned_to": str(world["employee"])})
    assert sorted(item["name"] for item in assigned.json()["data"]) == ["L1", "L2"]

    set_actor("employee")
    denied = test_client.get("/api/leads/export", params=sales)
    assert denied.status_code == 403
    assert denied.json()["message"] == "Export is available only to managers, admins and super"

    set_actor("other_manager")
    assert test_client.get("/api/leads/export", params=sales).status_code == 403

    set_actor("admin")
    assert len(test_client.get("/api/leads/export", params=sales).json()["data"]) == 3


def test_user_leads_are_limited_to_visible_departments(
    client: tuple[TestClient, Callable[[str], None]],
    world: dict[str, uuid.UUID],
) -> None:
    test_client, set_actor = client
    set_actor("employee")
    own = test_client.get(f"/api/users/{world['employee']}/leads").json()["data"]
    assert own["total"] == 2
    assert {item["name"] for item in own["items"]} == {"L1", "L2"}
    assert test_client.get(f"/api/users/{world['colleague']}/leads").status_code == 403

    set_actor("admin")
    everywhere = test_client.get(f"/api/users/{world['employee']}/leads").json()["data"]
    assert everywhere["total"] == 3
    support_only = test_client.get(
        f"/api/users/{world['employee']}/leads",
        params={"department_id": str(world["support"])},
    ).json()["data"]
    assert [item["name"] for item in support_only["items"]] == ["L4"]
    assert test_client.get(f"/api/users/{uuid.uuid4()}/leads").status_code == 404


def test_user_lead_stats(
    client: tuple[TestClient, Callable[[str], None]],
    world: dict[str, uuid.UUID],
) -> None:
    test_client, set_actor = client
    set_actor("employee")
    stats = test_client.get(f"/api/users/{world['employee']}/lead-stats").json()["data"]
    assert stats["total"] == 2
    assert sorted((item["status_name"], item["count"]) for item in stats["by_status"]) == [("New", 1), ("Won", 1)]
    assert len(stats["over_time"]) == 14
    assert stats["over_time"][-1]["count"] == 2
    assert sum(item["count"] for item in stats["over_time"]) == 2

    clamped = test_client.get(f"/api/users/{world['employee']}/lead-stats", params={"days": 3}).json()["data"]
    assert len(clamped["over_time"]) == 7

    set_actor("admin")
    with_unstatused = test_client.get(f"/api/users/{world['employee']}/lead-stats").json()["data"]
    assert with_unstatused["total"] == 3
    assert ("No status", 1) in [(item["status_name"], item["count"]) for item in with_unstatused["by_status"]]
