"""Session manager: registration, login with lockout, logout and refresh-token rotation."""

import logging
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta

from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.errors import (
    Conflict,
    InvalidCredentials,
    InvalidToken,
    Unauthenticated,
    ValidationError,
)
from app.core.security import (
    PASSWORD_MAX_LEN,
    PASSWORD_MIN_LEN,
    USERNAME_MAX_LEN,
    USERNAME_MIN_LEN,
    TokenInvalid,
    TokenKind,
    TokenPair,
    burn_password_check,
    hash_password,
    issue_tokens,
    verify_password,
    verify_token,
)
from app.models.user import Role, User
from app.services import accounts
from app.services.lockout import check_login_allowed, record_failure, record_success

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LoginResult:
    tokens: TokenPair
    user_id: int
    username: str
    role: str


def normalize_email(email: str) -> str:
    return email.strip().lower()


def register(
    db: Session,
    *,
    name: str,
    username: str,
    email: str,
    password: str,
    role: Role = Role.USER,
) -> User:
    """Create an account with a hashed password. ADMIN accounts cannot self-register."""
    name = (name or "").strip()
    username = (username or "").strip()
    email = normalize_email(email or "")
    if not all([name, username, email, password]):
        raise ValidationError("All fields are required")
    if not (USERNAME_MIN_LEN <= len(username) <= USERNAME_MAX_LEN):
        raise ValidationError("Invalid username length.")
    if not (PASSWORD_MIN_LEN <= len(password) <= PASSWORD_MAX_LEN):
        raise ValidationError("Invalid password length.")
    if "@" not in email:
        raise ValidationError("Invalid email address.")
    if role is Role.ADMIN:
        raise ValidationError("ADMIN accounts cannot be self-registered")

    user = accounts.create_account(
        db,
        name=name,
        username=username,
        email=email,
        password_hash=hash_password(password),
        role=role,
    )
    logger.info("Registered account id=%s role=%s", user.id, user.role)
    return user


def _record_failed_login(db: Session, user: User, now: datetime) -> None:
    """
    Read-modify-write the failure counter with compare-and-update against the
    stored value. Best effort: after MAX_CAS_RETRIES lost races the attempt is dropped.
    """
    lock_duration = timedelta(minutes=settings.LOGIN_LOCK_MINUTES)
    state = accounts.lockout_state(user)
    for _ in range(accounts.MAX_CAS_RETRIES):
        new_state = record_failure(
            state,
            now,
            max_attempts=settings.LOGIN_MAX_ATTEMPTS,
            lock_duration=lock_duration,
        )
        if accounts.compare_and_set_lockout(db, user.id, state, new_state):
            if new_state.lock_until is not None and new_state.lock_until != state.lock_until:
                logger.warning(
                    "Account id=%s locked until %s after %s failed logins",
                    user.id,
                    new_state.lock_until.isoformat(),
                    new_state.failed_attempts,
                )
            else:
                logger.info(
                    "Failed login for account id=%s (attempts=%s)",
                    user.id,
                    new_state.failed_attempts,
                )
            return
        state = accounts.reload_lockout_state(db, user)
    logger.warning("Dropped failed-login update for account id=%s after concurrent writes", user.id)


def login(
    db: Session,
    *,
    password: str,
    username: str | None = None,
    email: str | None = None,
    now: datetime | None = None,
) -> LoginResult:
    """
    Authenticate by username or email. Unknown identifiers and wrong passwords
    both raise InvalidCredentials; a locked account raises AccountLocked. If a
    concurrent login for the same account saves first, this one raises Conflict
    so only one refresh token is ever handed out per race.
    """
    username = (username or "").strip() or None
    email = normalize_email(email) if email else None
    if (not username and not email) or not password:
        raise ValidationError("Email/Username and password are required")

    now = now or datetime.now(UTC)
    user = accounts.get_by_identifier(db, username=username, email=email)
    if user is None:
        # Unknown accounts cost one bcrypt check, like known ones
        burn_password_check(password)
        raise InvalidCredentials()

    check_login_allowed(accounts.lockout_state(user), now)

    if not verify_password(password, user.password_hash):
        _record_failed_login(db, user, now)
        raise InvalidCredentials()

    user_id, username, role = user.id, user.username, user.role
    expected_attempts = user.login_attempts or 0
    expected_token = user.refresh_token
    tokens = issue_tokens(user_id, role, now=now)
    saved = accounts.save_login_success(
        db,
        user_id,
        expected_attempts=expected_attempts,
        expected_token=expected_token,
        state=record_success(),
        refresh_token=tokens.refresh_token,
        now=now,
    )
    if not saved:
        # Another login or failure for this account landed first; its refresh token stays live
        logger.warning("Login for account id=%s lost a concurrent update", user_id)
        raise Conflict("Another login for this account completed concurrently. Try again")
    logger.info("Login succeeded for account id=%s", user_id)
    return LoginResult(tokens=tokens, user_id=user_id, username=username, role=role)


def logout(db: Session, user_id: int) -> None:
    """Drop the stored refresh token. Idempotent."""
    accounts.clear_refresh_token(db, user_id)
    logger.info("Logged out account id=%s", user_id)


def refresh(db: Session, presented: str | None) -> TokenPair:
    """
    Exchange a refresh token for a new pair and rotate the stored token, so
    each refresh token can be used at most once.
    """
    if not presented:
        raise Unauthenticated("Unauthorized request")
    try:
        claims = verify_token(presented, TokenKind.REFRESH)
    except TokenInvalid as e:
        raise InvalidToken() from e

    user = accounts.get_by_id(db, claims.user_id)
    if user is None or user.refresh_token != presented:
        logger.warning("Rejected refresh token for account id=%s (stale or unknown)", claims.user_id)
        raise InvalidToken()

    tokens = issue_tokens(user.id, user.role)
    if not accounts.rotate_refresh_token(db, user.id, presented, tokens.refresh_token):
        logger.warning("Refresh token for account id=%s was rotated concurrently", claims.user_id)
        raise InvalidToken()
    logger.info("Rotated refresh token for account id=%s", user.id)
    return tokens
