"""Error taxonomy for the auth core.

Every error carries a stable machine-readable ``kind`` and the HTTP status the
boundary translates it to (see ``app.api.errors``). The core raises these and
never builds HTTP responses itself.
"""

from datetime import datetime


class AppError(Exception):
    """Base class for errors surfaced to API clients."""

    kind: str = "internal_error"
    status_code: int = 500

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


class ValidationError(AppError):
    """Malformed or missing input; client-fixable."""

    kind = "validation_error"
    status_code = 400


class InvalidCredentials(AppError):
    """Unknown identifier or wrong password. Deliberately non-specific."""

    kind = "invalid_credentials"
    status_code = 401

    def __init__(self, message: str = "Invalid credentials") -> None:
        super().__init__(message)


class AccountLocked(AppError):
    """Too many failed logins; account is temporarily locked."""

    kind = "account_locked"
    status_code = 403

    def __init__(
        self, message: str = "Account locked. Try again later", *, lock_until: datetime | None = None
    ) -> None:
        super().__init__(message)
        self.lock_until = lock_until


class Unauthenticated(AppError):
    """Missing, invalid or expired credential on a protected request."""

    kind = "unauthenticated"
    status_code = 401


class InvalidToken(Unauthenticated):
    """Refresh token failed verification or no longer matches the stored one."""

    kind = "invalid_token"

    def __init__(self, message: str = "Invalid or expired refresh token") -> None:
        super().__init__(message)


class Forbidden(AppError):
    kind = "forbidden"
    status_code = 403


class Conflict(AppError):
    kind = "conflict"
    status_code = 409


class NotFound(AppError):
    kind = "not_found"
    status_code = 404
