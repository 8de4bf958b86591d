"""Access guard: authenticate a presented access token and authorize by role."""

import logging
from collections.abc import Iterable

from sqlalchemy.orm import Session

from app.core.errors import Forbidden, Unauthenticated
from app.core.security import TokenInvalid, TokenKind, verify_token
from app.models.user import Role, User
from app.schemas.auth import AccountView
from app.services import accounts

logger = logging.getLogger(__name__)


def extract_token(cookie_token: str | None, bearer_token: str | None) -> str | None:
    """Pick the access token from the accessToken cookie, else the Bearer credentials."""
    return cookie_token or bearer_token or None


def authenticate(db: Session, token: str | None) -> User:
    """Resolve a token to its account. Blocked accounts are Forbidden, everything else Unauthenticated."""
    if not token:
        raise Unauthenticated("Not authenticated")
    try:
        claims = verify_token(token, TokenKind.ACCESS)
    except TokenInvalid as e:
        raise Unauthenticated("Invalid or expired token") from e

    user = accounts.get_by_id(db, claims.user_id)
    if user is None:
        raise Unauthenticated("Invalid access token")
    if user.is_blocked:
        logger.info("Denied request from blocked account id=%s", user.id)
        raise Forbidden("Account is blocked")
    return user


def authorize(user: User | AccountView, allowed_roles: Iterable[Role]) -> None:
    """Raise Forbidden unless the account's role (User row or AccountView) is in allowed_roles."""
    try:
        role = Role(user.role)
    except ValueError:
        raise Forbidden("Unknown role")
    if role not in set(allowed_roles):
        raise Forbidden(f"Role {role.value} is not allowed to access this resource")
