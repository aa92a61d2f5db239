from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from leaddesk.auth.schemas import AccessToken, LoginRequest, MeRead, RefreshRequest, TokenPair
from leaddesk.auth.service import auth_service
from leaddesk.core.auth import ActorUser, get_current_user
from leaddesk.core.database import get_db
from leaddesk.core.responses import Envelope, ok

router = APIRouter(prefix="/api/auth", tags=["auth"])


@router.post("/login", response_model=Envelope[TokenPair])
def login(dto: LoginRequest, db: Session = Depends(get_db)) -> dict[str, Any]:
    return ok(auth_service.login(db, dto.email, dto.password))


@router.post("/refresh", response_model=Envelope[AccessToken])
def refresh(dto: RefreshRequest) -> dict[str, Any]:
    return ok(auth_service.refresh(dto.refresh_token))


@router.get("/me", response_model=Envelope[MeRead])
def me(db: Session = Depends(get_db), user: ActorUser = Depends(get_current_user)) -> dict[str, Any]:
    return ok(auth_service.me(db, user))
