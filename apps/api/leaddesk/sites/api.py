from __future__ import annotations

import uuid
from typing import Any

from fastapi import APIRouter, Depends, Query, Request, status
from fastapi.responses import Response
from sqlalchemy.orm import Session

from leaddesk.core.auth import ActorUser, get_current_user
from leaddesk.core.database import get_db
from leaddesk.core.responses import Envelope, MessageRead, deleted, ok
from leaddesk.sites.schemas import SiteCreate, SiteRead, SiteUpdate
from leaddesk.sites.service import site_service
from leaddesk.sites.widget import (
    WIDGET_CACHE_CONTROL,
    WIDGET_CONTENT_TYPE,
    render_widget_script,
    resolve_api_base,
)

router = APIRouter(prefix="/api/sites", tags=["sites"])
widget_router = APIRouter(prefix="/api/sites", tags=["sites"])


@router.post("", response_model=Envelope[SiteRead], status_code=status.HTTP_201_CREATED)
def create_site(
    dto: SiteCreate,
    db: Session = Depends(get_db),
    user: ActorUser = Depends(get_current_user),
) -> dict[str, Any]:
    return ok(site_service.create_site(db, user, dto), status.HTTP_201_CREATED)


@router.get("", response_model=Envelope[list[SiteRead]])
def list_sites(
    department_id: uuid.UUID | None = Query(default=None),
    db: Session = Depends(get_db),
    user: ActorUser = Depends(get_current_user),
) -> dict[str, Any]:
    return ok(site_service.list_sites(db, user, department_id))


@router.get("/{site_id}", response_model=Envelope[SiteRead])
def get_site(
    site_id: uuid.UUID,
    db: Session = Depends(get_db),
    user: ActorUser = Depends(get_current_user),
) -> dict[str, Any]:
    return ok(site_service.get_site(db, user, site_id))


@router.patch("/{site_id}", response_model=Envelope[SiteRead])
def update_site(
    site_id: uuid.UUID,
    dto: SiteUpdate,
    db: Session = Depends(get_db),
    user: ActorUser = Depends(get_current_user),
) -> dict[str, Any]:
    return ok(site_service.update_site(db, user, site_id, dto))


@router.delete("/{site_id}", response_model=Envelope[MessageRead])
def delete_site(
    site_id: uuid.UUID,
    db: Session = Depends(get_db),
    user: ActorUser = Depends(get_current_user),
) -> dict[str, Any]:
    site_service.delete_site(db, user, site_id)
    return deleted("Site")


@widget_router.get("/{site_id}/widget.js", include_in_schema=False)
def get_widget_script(site_id: uuid.UUID, request: Request, db: Session = Depends(get_db)) -> Response:
    site = site_service.require(db, site_id)
    script = render_widget_script(resolve_api_base(request), site.token)
    return Response(
        content=script,
        media_type=WIDGET_CONTENT_TYPE,
        headers={"Cache-Control": WIDGET_CACHE_CONTROL},
    )
