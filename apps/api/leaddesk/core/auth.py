from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any

from fastapi import HTTPException, status
from jose import JWTError, jwt
from starlette.requests import Request

from leaddesk.core.config import get_settings
from leaddesk.core.policy import Role

ACCESS_TOKEN_TYPE = "access"
REFRESH_TOKEN_TYPE = "refresh"


@dataclass
class ActorUser:
    user_id: uuid.UUID
    email: str
    role: Role
    correlation_id: str | None = None

    @property
    def is_super(self) -> bool:
        return self.role is Role.SUPER


def _issue_token(claims: dict[str, Any], token_type: str, ttl_seconds: int) -> str:
    settings = get_settings()
    issued_at = datetime.now(timezone.utc)
    payload = {
        **claims,
        "typ": token_type,
        "iat": int(issued_at.timestamp()),
        "exp": int((issued_at + timedelta(seconds=ttl_seconds)).timestamp()),
    }
    return jwt.encode(payload, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def build_claims(user_id: uuid.UUID | str, email: str, role: Role | str) -> dict[str, str]:
    return {"sub": str(user_id), "email": email, "role": Role(role).value}


def create_access_token(claims: dict[str, str]) -> str:
    return _issue_token(claims, ACCESS_TOKEN_TYPE, get_settings().jwt_access_ttl_seconds)


def create_refresh_token(claims: dict[str, str]) -> str:
    return _issue_token(claims, REFRESH_TOKEN_TYPE, get_settings().jwt_refresh_ttl_seconds)


def decode_token(token: str, expected_type: str) -> dict[str, Any]:
    settings = get_settings()
    payload: dict[str, Any] = jwt.decode(token, settings.jwt_secret, algorithms=[settings.jwt_algorithm])
    if payload.get("typ") != expected_type:
        raise JWTError("unexpected token type")
    return payload


def claims_of(payload: dict[str, Any]) -> dict[str, str]:
    return {"sub": str(payload["sub"]), "email": str(payload.get("email", "")), "role": str(payload["role"])}


async def get_current_user(request: Request) -> ActorUser:
    auth_header = request.headers.get("authorization", "")
    token = auth_header[len("Bearer ") :] if auth_header.startswith("Bearer ") else ""
    if not token:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")

    try:
        payload = decode_token(token, ACCESS_TOKEN_TYPE)
        user_id = uuid.UUID(str(payload["sub"]))
        role = Role(str(payload["role"]))
    except (JWTError, KeyError, ValueError):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized") from None

    context = getattr(request.state, "context", None)
    if context is not None:
        context.user_id = str(user_id)
    return ActorUser(
        user_id=user_id,
        email=str(payload.get("email", "")),
        role=role,
        correlation_id=getattr(context, "correlation_id", None) or None,
    )
