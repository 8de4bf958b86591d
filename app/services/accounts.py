"""Credential store: account lookups and atomic updates on the users table."""

import logging
from datetime import datetime

from sqlalchemy import or_, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.core.errors import Conflict
from app.models.user import Role, User
from app.services.lockout import LockoutState

logger = logging.getLogger(__name__)

# Bounded compare-and-update retries when a concurrent login moved the counter.
MAX_CAS_RETRIES = 3


def get_by_id(db: Session, user_id: int) -> User | None:
    return db.get(User, user_id)


def get_by_identifier(
    db: Session, *, username: str | None = None, email: str | None = None
) -> User | None:
    """Find an account by exact username or (lowercased) email."""
    clauses = []
    if username:
        clauses.append(User.username == username)
    if email:
        clauses.append(User.email == email)
    if not clauses:
        return None
    return db.query(User).filter(or_(*clauses)).first()


def create_account(
    db: Session,
    *,
    name: str,
    username: str,
    email: str,
    password_hash: str,
    role: Role,
) -> User:
    """Insert a new account. Raises Conflict on a duplicate username or email."""
    user = User(
        name=name,
        username=username,
        email=email,
        password_hash=password_hash,
        role=role.value,
        is_active=True,
        is_blocked=False,
        login_attempts=0,
        lock_until=None,
        refresh_token=None,
    )
    db.add(user)
    try:
        db.commit()
    except IntegrityError as e:
        db.rollback()
        raise Conflict("Email or username already exists") from e
    db.refresh(user)
    return user


def lockout_state(user: User) -> LockoutState:
    return LockoutState(failed_attempts=user.login_attempts or 0, lock_until=user.lock_until)


def compare_and_set_lockout(
    db: Session, user_id: int, expected: LockoutState, new: LockoutState
) -> bool:
    """
    Persist new lockout state only if the stored attempt counter still equals
    expected.failed_attempts. Returns False when another request got there first.
    """
    result = db.execute(
        update(User)
        .where(User.id == user_id, User.login_attempts == expected.failed_attempts)
        .values(login_attempts=new.failed_attempts, lock_until=new.lock_until)
        .execution_options(synchronize_session=False)
    )
    db.commit()
    return result.rowcount == 1


def reload_lockout_state(db: Session, user: User) -> LockoutState:
    """Re-read the stored counter after a lost compare-and-update."""
    db.refresh(user)
    return LockoutState(failed_attempts=user.login_attempts or 0, lock_until=user.lock_until)


def save_login_success(
    db: Session,
    user_id: int,
    *,
    expected_attempts: int,
    expected_token: str | None,
    state: LockoutState,
    refresh_token: str,
    now: datetime,
) -> bool:
    """
    Reset lockout, store the new refresh token and last-login time in one UPDATE,
    only if the attempt counter and refresh token still hold the values read at
    the start of this login. Returns False when a concurrent login or failure won.
    """
    token_clause = (
        User.refresh_token.is_(None)
        if expected_token is None
        else User.refresh_token == expected_token
    )
    result = db.execute(
        update(User)
        .where(User.id == user_id, User.login_attempts == expected_attempts, token_clause)
        .values(
            login_attempts=state.failed_attempts,
            lock_until=state.lock_until,
            refresh_token=refresh_token,
            last_login_at=now,
        )
        .execution_options(synchronize_session=False)
    )
    db.commit()
    return result.rowcount == 1


def clear_refresh_token(db: Session, user_id: int) -> None:
    db.execute(
        update(User)
        .where(User.id == user_id)
        .values(refresh_token=None)
        .execution_options(synchronize_session=False)
    )
    db.commit()


def rotate_refresh_token(db: Session, user_id: int, presented: str, new_token: str) -> bool:
    """
    Swap the stored refresh token for new_token only if it still equals the
    presented one. Of two concurrent rotations of the same token, one wins.
    """
    result = db.execute(
        update(User)
        .where(User.id == user_id, User.refresh_token == presented)
        .values(refresh_token=new_token)
        .execution_options(synchronize_session=False)
    )
    db.commit()
    return result.rowcount == 1


def list_accounts_for_admin(db: Session, exclude_user_id: int) -> list[User]:
    """Non-admin accounts other than the caller, newest first."""
    return (
        db.query(User)
        .filter(
            User.role.in_([Role.USER.value, Role.ARTIST.value]),
            User.id != exclude_user_id,
        )
        .order_by(User.created_at.desc(), User.id.desc())
        .all()
    )
