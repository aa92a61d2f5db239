from __future__ import annotations

import uuid
from collections.abc import Callable, Generator
from datetime import timedelta

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine, select
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from leaddesk import audit, events
from leaddesk.core.auth import ActorUser, get_current_user
from leaddesk.core.config import get_settings
from leaddesk.core.database import Base, get_db, utcnow
from leaddesk.core.policy import Role
from leaddesk.departments.models import Department
from leaddesk.leads.models import Lead, LeadHistory
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
    audit.audit_entries.clear()
    events.published_events.clear()
    yield
    get_settings.cache_clear()
    reset_rate_limiter()
    audit.audit_entries.clear()
    events.published_events.clear()


@pytest.fixture()
def world(db_session: Session) -> dict[str, uuid.UUID]:
    manager = User(email="boss@example.com", password_hash="unused", role=Role.MANAGER.value)
    db_session.add(manager)
    db_session.commit()
    sales = Department(name="Sales", manager_id=manager.id)
    support = Department(name="Support")
    db_session.add_all([sales, support])
    db_session.commit()

    employee = User(email="worker@example.com", password_hash="unused", role=Role.EMPLOYEE.value, department_id=sales.id)
    colleague = User(email="mate@example.com", password_hash="unused", role=Role.EMPLOYEE.value, department_id=sales.id)
    outsider = User(email="far@example.com", password_hash="unused", role=Role.EMPLOYEE.value, department_id=support.id)
    lead = Lead(name="Ann", phone="1", department_id=sales.id)
    other_lead = Lead(name="Bob", phone="2", department_id=sales.id)
    db_session.add_all([employee, colleague, outsider, lead, other_lead])
    db_session.commit()
    return {
        "manager": manager.id,
        "employee": employee.id,
        "colleague": colleague.id,
        "outsider": outsider.id,
        "lead": lead.id,
        "other_lead": other_lead.id,
    }


ROLES = {"manager": Role.MANAGER, "employee": Role.EMPLOYEE, "colleague": Role.EMPLOYEE, "outsider": Role.EMPLOYEE}


@pytest.fixture()
def client(
    db_session: Session,
    world: dict[str, uuid.UUID],
) -> Generator[tuple[TestClient, Callable[[str], None]], None, None]:
    def override_get_db() -> Generator[Session, None, None]:
        yield db_session

    state = {"current": "employee"}

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


def _actions(session: Session, lead_id: uuid.UUID) -> list[str]:
    return list(
        session.scalars(
            select(LeadHistory.action).where(LeadHistory.lead_id == lead_id).order_by(LeadHistory.created_at.asc())
        ).all()
    )


def test_note_author_or_manager_may_moderate(
    client: tuple[TestClient, Callable[[str], None]],
    world: dict[str, uuid.UUID],
    db_session: Session,
) -> None:
    test_client, set_actor = client
    lead_id = world["lead"]
    created = test_client.post(f"/api/leads/{lead_id}/notes", json={"content": "  first call  "})
    assert created.status_code == 201
    note = created.json()["data"]
    assert note["content"] == "first call"
    assert note["author_id"] == str(world["employee"])

    assert test_client.post(f"/api/leads/{lead_id}/notes", json={"content": "   "}).status_code == 400

    set_actor("colleague")
    foreign_edit = test_client.patch(f"/api/leads/{lead_id}/notes/{note['id']}", json={"content": "mine"})
    assert foreign_edit.status_code == 403
    assert foreign_edit.json()["message"] == "Only the author or a manager can edit this note"
    assert test_client.delete(f"/api/leads/{lead_id}/notes/{note['id']}").status_code == 403

    set_actor("employee")
    edited = test_client.patch(f"/api/leads/{lead_id}/notes/{note['id']}", json={"content": "second call"})
    assert edited.json()["data"]["content"] == "second call"
    wrong_lead = test_client.patch(f"/api/leads/{world['other_lead']}/notes/{note['id']}", json={"content": "x"})
    assert wrong_lead.status_code == 404

    set_actor("manager")
    removed = test_client.delete(f"/api/leads/{lead_id}/notes/{note['id']}")
    assert removed.json()["data"]["message"] == "Note deleted"
    assert test_client.get(f"/api/leads/{lead_id}/notes").json()["data"] == []
    assert _actions(db_session, lead_id) == ["note_added", "note_edited", "note_deleted"]


def test_activity_requires_department_access(
    client: tuple[TestClient, Callable[[str], None]],
    world: dict[str, uuid.UUID],
) -> None:
    test_client, set_actor = client
    set_actor("outsider")
    lead_id = world["lead"]
    assert test_client.get(f"/api/leads/{lead_id}/notes").status_code == 403
    assert test_client.post(f"/api/leads/{lead_id}/tasks", json={"title": "Call"}).status_code == 403
    assert test_client.get(f"/api/leads/{lead_id}/reminders").status_code == 403
    assert test_client.get(f"/api/leads/{uuid.uuid4()}/notes").status_code == 404


def test_lead_task_lifecycle(
    client: tuple[TestClient, Callable[[str], None]],
    world: dict[str, uuid.UUID],
    db_session: Session,
) -> None:
    test_client, _ = client
    lead_id = world["lead"]
    created = test_client.post(
        f"/api/leads/{lead_id}/tasks",
        json={"title": "Send offer", "due_at": "2030-01-02T10:00:00Z"},
    )
    assert created.status_code == 201
    task = created.json()["data"]
    assert task["completed"] is False
    assert test_client.post(f"/api/leads/{lead_id}/tasks", json={"title": " "}).status_code == 400

    updated = test_client.patch(
        f"/api/leads/{lead_id}/tasks/{task['id']}",
        json={"completed": True, "due_at": None, "title": "  "},
    )
    assert updated.status_code == 200
    assert updated.json()["data"]["completed"] is True
    assert updated.json()["data"]["due_at"] is None
    assert updated.json()["data"]["title"] == "Send offer"

    listed = test_client.get(f"/api/leads/{lead_id}/tasks").json()["data"]
    assert [item["id"] for item in listed] == [task["id"]]
    assert test_client.delete(f"/api/leads/{lead_id}/tasks/{task['id']}").json()["data"]["message"] == "Task deleted"
    assert test_client.delete(f"/api/leads/{lead_id}/tasks/{task['id']}").status_code == 404
    assert _actions(db_session, lead_id) == ["task_added", "task_updated", "task_deleted"]


def test_reminders_and_upcoming_feed(
    client: tuple[TestClient, Callable[[str], None]],
    world: dict[str, uuid.UUID],
    db_session: Session,
) -> None:
    test_client, set_actor = client
    lead_id = world["lead"]
    soon = (utcnow() + timedelta(hours=2)).strftime("%Y-%m-%dT%H:%M:%SZ")
    later = (utcnow() + timedelta(days=3)).strftime("%Y-%m-%dT%H:%M:%SZ")
    first = test_client.post(f"/api/leads/{lead_id}/reminders", json={"title": "Call back", "remind_at": soon})
    test_client.post(f"/api/leads/{lead_id}/reminders", json={"title": "Follow up", "remind_at": later})
    assert first.status_code == 201
    reminder = first.json()["data"]
    assert reminder["done"] is False

    upcoming = test_client.get("/api/leads/reminders/upcoming").json()["data"]
    assert [item["title"] for item in upcoming] == ["Call back"]
    assert upcoming[0]["lead_name"] == "Ann"

    set_actor("outsider")
    assert test_client.get("/api/leads/reminders/upcoming").json()["data"] == []

    set_actor("employee")
    done = test_client.patch(f"/api/leads/{lead_id}/reminders/{reminder['id']}/done")
    assert done.json()["data"]["done"] is True
    assert test_client.get("/api/leads/reminders/upcoming").json()["data"] == []

    listed = test_client.get(f"/api/leads/{lead_id}/reminders").json()["data"]
    assert [item["title"] for item in listed] == ["Call back", "Follow up"]
    removed = test_client.delete(f"/api/leads/{lead_id}/reminders/{reminder['id']}")
    assert removed.json()["data"]["message"] == "Reminder deleted"
    assert _actions(db_session, lead_id) == ["reminder_added", "reminder_added", "reminder_done", "reminder_deleted"]
