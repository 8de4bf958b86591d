"""Auth dependencies: get_current_user (access guard) and require_roles (authorization)."""

from collections.abc import Callable
from typing import Annotated

from fastapi import Depends
from fastapi.security import APIKeyCookie, HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from app.core.database import get_db
from app.models.user import Role
from app.schemas.auth import AccountView
from app.services.guard import authenticate, authorize, extract_token

ACCESS_TOKEN_COOKIE = "accessToken"
REFRESH_TOKEN_COOKIE = "refreshToken"

# auto_error=False: a missing credential is the guard's call (401 with our error body)
access_cookie_scheme = APIKeyCookie(name=ACCESS_TOKEN_COOKIE, auto_error=False)
bearer_scheme = HTTPBearer(auto_error=False)


def get_current_user(
    db: Annotated[Session, Depends(get_db)],
    access_cookie: Annotated[str | None, Depends(access_cookie_scheme)] = None,
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(bearer_scheme)] = None,
) -> AccountView:
    """Dependency: require a valid access token (cookie or Bearer header) and return the account."""
    bearer_token = credentials.credentials if credentials else None
    token = extract_token(access_cookie, bearer_token)
    user = authenticate(db, token)
    return AccountView.model_validate(user)


def require_roles(*roles: Role) -> Callable[..., AccountView]:
    """Build a dependency that runs the access guard, then checks the role against roles."""

    def dependency(
        current_user: Annotated[AccountView, Depends(get_current_user)],
    ) -> AccountView:
        authorize(current_user, roles)
        return current_user

    return dependency


require_admin = require_roles(Role.ADMIN)
