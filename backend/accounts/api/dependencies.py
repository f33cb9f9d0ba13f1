from typing import Any, Iterable, Optional
from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from pymongo.database import Database
from accounts.core.database import get_db
from accounts.core.errors import ForbiddenError
from accounts.models.user import Role
from accounts.services.auth_service import AuthService

# Bearer scheme - extracts token from "Authorization: Bearer <token>"
# auto_error=False so a missing header falls back to the jwt cookie
bearer_scheme = HTTPBearer(auto_error=False)

SESSION_COOKIE = "jwt"


def get_token(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
) -> Optional[str]:
    """Session token from the Authorization header, else from the jwt cookie"""
    if credentials is not None and credentials.credentials:
        return credentials.credentials
    return request.cookies.get(SESSION_COOKIE)


def protect(
    request: Request,
    token: Optional[str] = Depends(get_token),
    db: Database = Depends(get_db),
) -> dict[str, Any]:
    """
    Require an authenticated user.

    This is a FastAPI dependency used on every route that needs identity.
    Resolves the token to its user, rejects stale tokens (issued before the
    last password change) and attaches the user to request.state.user.
    """
    user = AuthService(db).resolve_session(token)
    request.state.user = user
    return user


def is_permitted(user: dict[str, Any], roles: Iterable[str]) -> bool:
    """Pure role check over a resolved user"""
    return user.get("role") in set(roles)


def restrict_to(*roles: Role):
    """
    Dependency factory allowing only the given roles.

    Depends on protect, so identity is always resolved first.
    """
    allowed = frozenset(role.value if isinstance(role, Role) else role for role in roles)

    def check_role(user: dict[str, Any] = Depends(protect)) -> dict[str, Any]:
        if not is_permitted(user, allowed):
            raise ForbiddenError("You don't have permission to perform this action.")
        return user

    return check_role
