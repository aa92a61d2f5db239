from __future__ import annotations

import uuid
from collections.abc import Callable, Generator

import pytest
from fastapi.testclient import TestClient
from prometheus_client import REGISTRY
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from leaddesk import audit, events
from leaddesk.core.auth import ActorUser, get_current_user
from leaddesk.core.config import get_settings
from leaddesk.core.database import Base, get_db
from leaddesk.core.policy import Role
from leaddesk.departments.models import Department
from leaddesk.departments.service import department_service
from leaddesk.leads.models import Lead
from leaddesk.main import app
from leaddesk.middleware.rate_limit import reset_rate_limiter
from leaddesk.sites.models import Site
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


def _add_user(session: Session, email: str, role: Role, department_id: uuid.UUID | None = None) -> User:
    user = User(email=email, password_hash="unused", role=role.value, department_id=department_id)
    session.add(user)
    session.commit()
    session.refresh(user)
    return user


@pytest.fixture()
def people(db_session: Session) -> dict[str, User]:
    return {
        "super": _add_user(db_session, "root@example.com", Role.SUPER),
        "admin": _add_user(db_session, "admin@example.com", Role.ADMIN),
        "manager": _add_user(db_session, "boss@example.com", Role.MANAGER),
        "manager2": _add_user(db_session, "boss2@example.com", Role.MANAGER),
        "employee": _add_user(db_session, "worker@example.com", Role.EMPLOYEE),
    }


@pytest.fixture()
def client(
    db_session: Session,
    people: dict[str, User],
) -> Generator[tuple[TestClient, Callable[[str], None]], None, None]:
    def override_get_db() -> Generator[Session, None, None]:
        yield db_session

    state = {"current": "super"}

    def override_get_current_user() -> ActorUser:
        person = people[state["current"]]
        return ActorUser(user_id=person.id, email=person.email, role=Role(person.role))

    def set_actor(name: str) -> None:
        state["current"] = name

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_current_user] = override_get_current_user
    with TestClient(app) as test_client:
        yield test_client, set_actor
    app.dependency_overrides.clear()


def test_create_department_links_manager(
    client: tuple[TestClient, Callable[[str], None]],
    db_session: Session,
    people: dict[str, User],
) -> None:
    test_client, _ = client
    response = test_client.post(
        "/api/departments",
        json={"name": "  Sales  ", "manager_id": str(people["manager"].id)},
    )
    assert response.status_code == 201
    data = response.json()["data"]
    assert data["name"] == "Sales"
    assert data["manager_id"] == str(people["manager"].id)

    db_session.expire_all()
    assert db_session.get(User, people["manager"].id).department_id == uuid.UUID(data["id"])
    assert any(item["event_type"] == "department.manager_changed" for item in events.published_events)


def test_create_department_duplicate_name_conflict(client: tuple[TestClient, Callable[[str], None]]) -> None:
    test_client, _ = client
    assert test_client.post("/api/departments", json={"name": "Support"}).status_code == 201
    duplicate = test_client.post("/api/departments", json={"name": " Support "})
    assert duplicate.status_code == 409


def test_create_department_with_unknown_manager_still_succeeds(
    client: tuple[TestClient, Callable[[str], None]],
) -> None:
    test_client, _ = client
    response = test_client.post("/api/departments", json={"name": "Ghosts", "manager_id": str(uuid.uuid4())})
    assert response.status_code == 201


def test_only_super_creates_and_deletes(client: tuple[TestClient, Callable[[str], None]]) -> None:
    test_client, set_actor = client
    created = test_client.post("/api/departments", json={"name": "Ops"})
    department_id = created.json()["data"]["id"]

    set_actor("admin")
    assert test_client.post("/api/departments", json={"name": "Other"}).status_code == 403
    assert test_client.delete(f"/api/departments/{department_id}").status_code == 403


def test_list_departments_by_role(
    client: tuple[TestClient, Callable[[str], None]],
    people: dict[str, User],
) -> None:
    test_client, set_actor = client
    test_client.post("/api/departments", json={"name": "A", "manager_id": str(people["manager"].id)})
    test_client.post("/api/departments", json={"name": "B", "manager_id": str(people["manager2"].id)})

    set_actor("admin")
    assert [item["name"] for item in test_client.get("/api/departments").json()["data"]] == ["A", "B"]

    set_actor("manager")
    assert [item["name"] for item in test_client.get("/api/departments").json()["data"]] == ["A"]

    set_actor("employee")
    assert test_client.get("/api/departments").status_code == 403


def test_department_detail_access_and_counts(
    client: tuple[TestClient, Callable[[str], None]],
    db_session: Session,
    people: dict[str, User],
) -> None:
    test_client, set_actor = client
    department_id = test_client.post(
        "/api/departments",
        json={"name": "Sales", "manager_id": str(people["manager"].id)},
    ).json()["data"]["id"]
    employee = db_session.get(User, people["employee"].id)
    employee.department_id = uuid.UUID(department_id)
    db_session.add(Status(name="New", department_id=uuid.UUID(department_id)))
    db_session.commit()

    set_actor("employee")
    detail = test_client.get(f"/api/departments/{department_id}")
    assert detail.status_code == 200
    data = detail.json()["data"]
    assert data["manager"]["email"] == "boss@example.com"
    assert data["employees_count"] == 2
    assert data["statuses_count"] == 1
    assert data["sites_count"] == 0

    set_actor("manager2")
    assert test_client.get(f"/api/departments/{department_id}").status_code == 403
    set_actor("super")
    assert test_client.get(f"/api/departments/{uuid.uuid4()}").status_code == 404


def test_detail_read_repairs_manager_department(
    db_session: Session,
    people: dict[str, User],
) -> None:
    department = Department(name="Drifted", manager_id=people["manager"].id)
    db_session.add(department)
    db_session.commit()
    assert db_session.get(User, people["manager"].id).department_id is None

    detail = department_service.get_detail(db_session, department.id)
    assert detail is not None
    assert detail.manager is not None
    assert detail.manager.department_id == department.id

    db_session.expire_all()
    assert db_session.get(User, people["manager"].id).department_id == department.id


def test_detail_read_leaves_dangling_manager_alone(db_session: Session) -> None:
    department = Department(name="Orphaned", manager_id=uuid.uuid4())
    db_session.add(department)
    db_session.commit()
    failed = {"step": "repair_on_read", "outcome": "failed"}
    before = REGISTRY.get_sample_value("department_reconciliation_total", failed) or 0.0

    for _ in range(2):
        detail = department_service.get_detail(db_session, department.id)
        assert detail is not None
        assert detail.manager is None

    assert (REGISTRY.get_sample_value("department_reconciliation_total", failed) or 0.0) == before


def test_manager_change_reconciles_both_users(
    client: tuple[TestClient, Callable[[str], None]],
    db_session: Session,
    people: dict[str, User],
) -> None:
    test_client, _ = client
    department_id = test_client.post(
        "/api/departments",
        json={"name": "Sales", "manager_id": str(people["manager"].id)},
    ).json()["data"]["id"]

    response = test_client.patch(
        f"/api/departments/{department_id}",
        json={"manager_id": str(people["manager2"].id)},
    )
    assert response.status_code == 200

    db_session.expire_all()
    assert db_session.get(User, people["manager"].id).department_id is None
    assert db_session.get(User, people["manager2"].id).department_id == uuid.UUID(department_id)

    cleared = test_client.patch(f"/api/departments/{department_id}", json={"manager_id": ""})
    assert cleared.status_code == 200
    assert cleared.json()["data"]["manager_id"] is None
    db_session.expire_all()
    assert db_session.get(User, people["manager2"].id).department_id is None


def test_previous_manager_moved_elsewhere_is_left_alone(
    client: tuple[TestClient, Callable[[str], None]],
    db_session: Session,
    people: dict[str, User],
) -> None:
    test_client, _ = client
    department_id = test_client.post(
        "/api/departments",
        json={"name": "Sales", "manager_id": str(people["manager"].id)},
    ).json()["data"]["id"]
    elsewhere = test_client.post("/api/departments", json={"name": "Elsewhere"}).json()["data"]["id"]
    manager = db_session.get(User, people["manager"].id)
    manager.department_id = uuid.UUID(elsewhere)
    db_session.commit()

    test_client.patch(f"/api/departments/{department_id}", json={"manager_id": str(people["manager2"].id)})

    db_session.expire_all()
    assert db_session.get(User, people["manager"].id).department_id == uuid.UUID(elsewhere)


def test_manager_may_rename_own_department_only(
    client: tuple[TestClient, Callable[[str], None]],
    people: dict[str, User],
) -> None:
    test_client, set_actor = client
    own = test_client.post(
        "/api/departments",
        json={"name": "Own", "manager_id": str(people["manager"].id)},
    ).json()["data"]["id"]
    foreign = test_client.post("/api/departments", json={"name": "Foreign"}).json()["data"]["id"]

    set_actor("manager")
    renamed = test_client.patch(f"/api/departments/{own}", json={"name": "Renamed"})
    assert renamed.status_code == 200
    assert renamed.json()["data"]["name"] == "Renamed"
    assert test_client.patch(f"/api/departments/{foreign}", json={"name": "Mine"}).status_code == 403
    assert test_client.patch(f"/api/departments/{own}", json={"name": "Foreign"}).status_code == 409


def test_delete_department_unlinks_members(
    client: tuple[TestClient, Callable[[str], None]],
    db_session: Session,
    people: dict[str, User],
) -> None:
    test_client, _ = client
    department_id = test_client.post(
        "/api/departments",
        json={"name": "Temp", "manager_id": str(people["manager"].id)},
    ).json()["data"]["id"]
    department_uuid = uuid.UUID(department_id)
    status_row = Status(name="New", department_id=department_uuid, order=0)
    site = Site(url="https://temp.example.com", token="b" * 64, department_id=department_uuid)
    lead = Lead(name="Left behind", phone="555", department_id=department_uuid)
    db_session.add_all([status_row, site, lead])
    db_session.commit()
    status_id, site_id, lead_id = status_row.id, site.id, lead.id

    response = test_client.delete(f"/api/departments/{department_id}")
    assert response.status_code == 200
    assert response.json()["data"]["message"] == "Department deleted"

    db_session.expire_all()
    assert db_session.get(User, people["manager"].id).department_id is None
    assert db_session.get(Department, department_uuid) is None
    assert audit.audit_entries[-1]["action"] == "delete"

    # Department-owned rows stay behind with the dangling department id.
    assert db_session.get(Status, status_id).department_id == department_uuid
    assert db_session.get(Site, site_id).department_id == department_uuid
    assert db_session.get(Lead, lead_id).department_id == department_uuid
