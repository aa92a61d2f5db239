from collections.abc import Generator
from datetime import datetime, timezone

from sqlalchemy import DateTime, create_engine
from sqlalchemy.engine import make_url
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker

from leaddesk.core.config import get_settings


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """Attach UTC to naive values read back from backends without timezone storage."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class Base(DeclarativeBase):
    type_annotation_map = {
        datetime: DateTime(timezone=True),
    }


def _connect_args(database_url: str) -> dict[str, object]:
    backend = make_url(database_url).get_backend_name()
    if backend.startswith("postgresql"):
        return {"options": "-c timezone=utc"}
    if backend == "sqlite":
        return {"check_same_thread": False}
    return {}


_database_url = get_settings().database_url
engine = create_engine(_database_url, pool_pre_ping=True, connect_args=_connect_args(_database_url))
SessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False)


def get_db() -> Generator[Session, None, None]:
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
