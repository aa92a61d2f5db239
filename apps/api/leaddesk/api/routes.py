from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.responses import Response

from leaddesk.auth.api import router as auth_router
from leaddesk.core.auth import ActorUser, get_current_user
from leaddesk.core.config import get_settings
from leaddesk.core.policy import Role
from leaddesk.dashboard.api import router as dashboard_router
from leaddesk.departments.api import router as departments_router
from leaddesk.leads.api import router as leads_router
from leaddesk.leads.public_api import router as public_leads_router
from leaddesk.metrics import generate_metrics_payload, metrics_content_type
from leaddesk.sites.api import router as sites_router
from leaddesk.sites.api import widget_router
from leaddesk.statuses.api import router as statuses_router
from leaddesk.tasks.api import task_priorities_router, task_statuses_router, tasks_router
from leaddesk.users.api import router as users_router

router = APIRouter()
router.include_router(auth_router)
router.include_router(users_router)
router.include_router(departments_router)
router.include_router(statuses_router)
router.include_router(widget_router)
router.include_router(sites_router)
router.include_router(public_leads_router)
router.include_router(leads_router)
router.include_router(task_statuses_router)
router.include_router(task_priorities_router)
router.include_router(tasks_router)
router.include_router(dashboard_router)


@router.get("/health", tags=["system"])
def health() -> dict[str, str]:
    settings = get_settings()
    return {
        "status": "ok",
        "service": settings.app_name,
        "environment": settings.app_env,
    }


@router.get("/metrics", tags=["system"])
def metrics(user: ActorUser = Depends(get_current_user)) -> Response:
    settings = get_settings()
    if not settings.metrics_enabled:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Not found")
    if user.role is not Role.SUPER:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Forbidden")
    return Response(content=generate_metrics_payload(), media_type=metrics_content_type())
