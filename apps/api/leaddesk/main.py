from contextlib import asynccontextmanager, contextmanager
import logging

from fastapi import FastAPI
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor

from leaddesk.api.routes import router as api_router
from leaddesk.core.config import get_settings
from leaddesk.core.context import RequestContextMiddleware
from leaddesk.core.database import SessionLocal, get_db
from leaddesk.core.events import InternalEvent, event_bus
from leaddesk.core.responses import register_exception_handlers
from leaddesk.events import DOMAIN_EVENT_TYPES
from leaddesk.logging import configure_logging
from leaddesk.middleware.correlation_id import CorrelationIdMiddleware
from leaddesk.middleware.rate_limit import PublicIntakeRateLimitMiddleware
from leaddesk.middleware.request_logging import RequestLoggingMiddleware
from leaddesk.otel import correlation_request_hook, setup_otel
from leaddesk.users.service import user_service


configure_logging()
logger = logging.getLogger("leaddesk.lifecycle")


def _on_system_started(event: InternalEvent) -> None:
    logger.info("system_event", extra={"event_name": event.name, "event_payload": event.payload})


def _on_domain_event(event: InternalEvent) -> None:
    logger.info("domain_event", extra={"event_name": event.name, "event_payload": event.payload.get("payload")})


@contextmanager
def _bootstrap_session():
    # Tests swap the database through the get_db override; startup has to honour it too.
    provider = app.dependency_overrides.get(get_db)
    if provider is None:
        session = SessionLocal()
        try:
            yield session
        finally:
            session.close()
        return

    sessions = provider()
    try:
        yield next(sessions)
    finally:
        sessions.close()


def _bootstrap_super_user() -> None:
    settings = get_settings()
    if not settings.super_user_email or not settings.super_user_password:
        return
    try:
        with _bootstrap_session() as session:
            user_service.ensure_super_user(session, settings.super_user_email, settings.super_user_password)
    except Exception as exc:
        logger.exception("super_user_bootstrap_failed", extra={"error": str(exc)})


@asynccontextmanager
async def lifespan(app: FastAPI):
    event_bus.subscribe(_on_system_started, "system.started")
    event_bus.subscribe(_on_domain_event, *DOMAIN_EVENT_TYPES)
    _bootstrap_super_user()
    event_bus.publish("system.started", {"service": "api", "environment": get_settings().app_env})
    yield


app = FastAPI(title="LeadDesk API", version=get_settings().app_version, lifespan=lifespan)
app.add_middleware(PublicIntakeRateLimitMiddleware)
app.add_middleware(RequestContextMiddleware)
app.add_middleware(RequestLoggingMiddleware)
app.add_middleware(CorrelationIdMiddleware)
register_exception_handlers(app)
app.include_router(api_router)

setup_otel("api")
if not getattr(app, "_is_instrumented_by_opentelemetry", False):
    FastAPIInstrumentor().instrument_app(app, server_request_hook=correlation_request_hook)
