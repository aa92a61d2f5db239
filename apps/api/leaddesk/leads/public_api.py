from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from leaddesk.core.context import RequestContext, request_context
from leaddesk.core.database import get_db
from leaddesk.core.responses import Envelope, ok
from leaddesk.leads.schemas import LeadFromSite, LeadRead
from leaddesk.leads.service import lead_service

router = APIRouter(prefix="/api/leads", tags=["public-leads"])


@router.post("/from-site", response_model=Envelope[LeadRead], status_code=status.HTTP_201_CREATED)
def create_lead_from_site(
    dto: LeadFromSite,
    db: Session = Depends(get_db),
    context: RequestContext = Depends(request_context),
) -> dict[str, Any]:
    lead = lead_service.create_from_site(
        db,
        dto,
        client_ip=context.client_ip,
        user_agent=context.user_agent,
        referrer=context.referrer,
    )
    return ok(lead, status.HTTP_201_CREATED)
