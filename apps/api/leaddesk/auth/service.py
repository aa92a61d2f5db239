from __future__ import annotations

import logging

from fastapi import HTTPException, status
from jose import JWTError
from sqlalchemy.orm import Session

from leaddesk.auth.schemas import AccessToken, MeRead, TokenPair
from leaddesk.core.auth import (
    REFRESH_TOKEN_TYPE,
    ActorUser,
    build_claims,
    claims_of,
    create_access_token,
    create_refresh_token,
    decode_token,
)
from leaddesk.core.security import verify_password
from leaddesk.metrics import observe_login_attempt
from leaddesk.users.models import User
from leaddesk.users.service import user_service

logger = logging.getLogger("leaddesk.auth")

INVALID_CREDENTIALS_DETAIL = "Invalid credentials"
INVALID_REFRESH_DETAIL = "Invalid refresh token"


class AuthService:
    def validate_user(self, session: Session, email: str, password: str) -> User | None:
        user = user_service.find_by_email(session, email)
        if user is None or not user.is_active:
            return None
        if not verify_password(password, user.password_hash):
            return None
        return user

    def login(self, session: Session, email: str, password: str) -> TokenPair:
        user = self.validate_user(session, email, password)
        if user is None:
            observe_login_attempt("rejected")
            logger.info("auth.login.rejected")
            raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=INVALID_CREDENTIALS_DETAIL)

        user_service.update_last_login(session, user.id)
        claims = build_claims(user.id, user.email, user.role)
        observe_login_attempt("success")
        logger.info("auth.login", extra={"user_id": str(user.id)})
        return TokenPair(access_token=create_access_token(claims), refresh_token=create_refresh_token(claims))

    def refresh(self, refresh_token: str) -> AccessToken:
        # Claims are re-signed as-is; role changes take effect on the next login.
        try:
            payload = decode_token(refresh_token, REFRESH_TOKEN_TYPE)
            claims = claims_of(payload)
        except (JWTError, KeyError):
            raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=INVALID_REFRESH_DETAIL) from None
        return AccessToken(access_token=create_access_token(claims))

    def me(self, session: Session, actor_user: ActorUser) -> MeRead:
        me = MeRead(user_id=actor_user.user_id, email=actor_user.email, role=actor_user.role)
        user = user_service.find_by_id(session, actor_user.user_id)
        if user is None:
            return me
        return me.model_copy(
            update={
                "first_name": user.first_name,
                "last_name": user.last_name,
                "phone": user.phone,
                "department_id": user.department_id,
            }
        )


auth_service = AuthService()
