from collections.abc import Callable

from fastapi import Depends, HTTPException, status

from leaddesk.core.auth import ActorUser, get_current_user
from leaddesk.core.policy import Role


def require_roles(*roles: Role) -> Callable[[ActorUser], ActorUser]:
    allowed = frozenset(roles)

    async def checker(user: ActorUser = Depends(get_current_user)) -> ActorUser:
        if user.role not in allowed:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Forbidden")
        return user

    return checker
