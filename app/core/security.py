"""Password hashing and JWT issuance/verification for authentication."""

import enum
import logging
import uuid
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from functools import lru_cache
from typing import Any

import bcrypt
import jwt

from app.core.config import settings

logger = logging.getLogger(__name__)

# Min/max lengths for username and password validation (input validation).
USERNAME_MIN_LEN = 1
USERNAME_MAX_LEN = 255
PASSWORD_MIN_LEN = 8
PASSWORD_MAX_LEN = 128


class PasswordHashError(Exception):
    """Raised when a password cannot be hashed. Aborts the calling operation."""


class TokenInvalid(Exception):
    """Token signature, structure or claims are not acceptable."""


class TokenExpired(TokenInvalid):
    """Token was valid but its exp claim has passed."""


class TokenKind(str, enum.Enum):
    ACCESS = "access"
    REFRESH = "refresh"


@dataclass(frozen=True)
class TokenPair:
    access_token: str
    refresh_token: str


@dataclass(frozen=True)
class TokenClaims:
    """Verified claims. role is None for refresh tokens."""

    user_id: int
    kind: TokenKind
    role: str | None
    expires_at: datetime


def hash_password(plain_password: str) -> str:
    """Hash a plain-text password for storage. Do not store plain passwords."""
    # bcrypt has a 72-byte limit; truncate to avoid errors (validation already limits length).
    pw_bytes = plain_password.encode("utf-8")[:72]
    try:
        salt = bcrypt.gensalt(rounds=settings.BCRYPT_ROUNDS)
        return bcrypt.hashpw(pw_bytes, salt).decode("utf-8")
    except (ValueError, TypeError) as e:
        raise PasswordHashError("Password hashing failed") from e


def verify_password(plain_password: str, hashed: str) -> bool:
    """Verify a plain password against a stored hash."""
    pw_bytes = plain_password.encode("utf-8")[:72]
    try:
        return bcrypt.checkpw(pw_bytes, hashed.encode("utf-8"))
    except (ValueError, TypeError):
        logger.warning("Stored password hash is malformed; treating as mismatch")
        return False


@lru_cache
def _dummy_hash() -> bytes:
    return bcrypt.hashpw(b"no-such-account", bcrypt.gensalt(rounds=settings.BCRYPT_ROUNDS))


def burn_password_check(plain_password: str) -> None:
    """Run one bcrypt check against a fixed hash, for logins naming no account."""
    bcrypt.checkpw(plain_password.encode("utf-8")[:72], _dummy_hash())


def _secret_for(kind: TokenKind) -> str:
    if kind is TokenKind.ACCESS:
        return settings.ACCESS_TOKEN_SECRET.get_secret_value()
    return settings.REFRESH_TOKEN_SECRET.get_secret_value()


def _encode(payload: dict[str, Any], kind: TokenKind) -> str:
    return jwt.encode(payload, _secret_for(kind), algorithm=settings.JWT_ALGORITHM)


def create_access_token(sub: int, role: str, now: datetime | None = None) -> str:
    """Create a short-lived access token with sub (user id), role, type, jti, iat and exp."""
    now = now or datetime.now(UTC)
    payload: dict[str, Any] = {
        "sub": str(sub),
        "role": role,
        "type": TokenKind.ACCESS.value,
        "jti": uuid.uuid4().hex,
        "iat": now,
        "exp": now + timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES),
    }
    return _encode(payload, TokenKind.ACCESS)


def create_refresh_token(sub: int, now: datetime | None = None) -> str:
    """Create a long-lived refresh token; it carries no role and is only good for rotation."""
    now = now or datetime.now(UTC)
    payload: dict[str, Any] = {
        "sub": str(sub),
        "type": TokenKind.REFRESH.value,
        # jti keeps two tokens minted in the same second distinct
        "jti": uuid.uuid4().hex,
        "iat": now,
        "exp": now + timedelta(days=settings.REFRESH_TOKEN_EXPIRE_DAYS),
    }
    return _encode(payload, TokenKind.REFRESH)


def issue_tokens(user_id: int, role: str, now: datetime | None = None) -> TokenPair:
    """Mint a fresh access/refresh pair for an account."""
    return TokenPair(
        access_token=create_access_token(user_id, role, now=now),
        refresh_token=create_refresh_token(user_id, now=now),
    )


def verify_token(token: str, kind: TokenKind) -> TokenClaims:
    """
    Decode and validate a token of the expected kind.
    Raises TokenExpired on expiry and TokenInvalid for anything else that is wrong.
    """
    try:
        payload = jwt.decode(
            token,
            _secret_for(kind),
            algorithms=[settings.JWT_ALGORITHM],
            options={"require": ["exp", "sub", "type"]},
        )
    except jwt.ExpiredSignatureError as e:
        raise TokenExpired("Token has expired") from e
    except jwt.PyJWTError as e:
        raise TokenInvalid("Token is invalid") from e

    if payload.get("type") != kind.value:
        raise TokenInvalid("Unexpected token type")
    try:
        user_id = int(payload["sub"])
    except (TypeError, ValueError) as e:
        raise TokenInvalid("Invalid token subject") from e

    return TokenClaims(
        user_id=user_id,
        kind=kind,
        role=payload.get("role"),
        expires_at=datetime.fromtimestamp(payload["exp"], UTC),
    )
