"""ORM model for platform accounts (auth, lockout and session state)."""

import enum

from sqlalchemy import Boolean, CheckConstraint, Column, DateTime, Integer, String, Text

from app.models.base import Base, TimestampMixin


class Role(str, enum.Enum):
    """Closed set of account roles."""

    USER = "USER"
    ARTIST = "ARTIST"
    ADMIN = "ADMIN"


class User(TimestampMixin, Base):
    """
    Account record for JWT authentication and role-based access control.

    login_attempts / lock_until hold lockout state; refresh_token is the single
    live refresh token (single session per account). password_hash and
    refresh_token never leave the store.
    """

    __tablename__ = "users"
    __table_args__ = (
        CheckConstraint("login_attempts >= 0", name="ck_users_login_attempts_non_negative"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(255), nullable=False)
    username = Column(String(255), nullable=False, unique=True, index=True)
    email = Column(String(320), nullable=False, unique=True, index=True)
    password_hash = Column(String(255), nullable=False)
    role = Column(String(32), nullable=False, default=Role.USER.value)
    is_active = Column(Boolean, nullable=False, default=True)
    is_blocked = Column(Boolean, nullable=False, default=False)
    login_attempts = Column(Integer, nullable=False, default=0)
    lock_until = Column(DateTime(timezone=True), nullable=True)
    refresh_token = Column(Text, nullable=True)
    last_login_at = Column(DateTime(timezone=True), nullable=True)
