"""Login lockout policy: pure functions over an account's failed-attempt state.

Callers read the state from the store, compute the next state here, and persist
it with a single atomic update (see app.services.accounts).
"""

from dataclasses import dataclass
from datetime import UTC, datetime, timedelta

from app.core.errors import AccountLocked


@dataclass(frozen=True)
class LockoutState:
    failed_attempts: int = 0
    lock_until: datetime | None = None


def as_utc(value: datetime | None) -> datetime | None:
    """Interpret naive datetimes read back from the store as UTC."""
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=UTC)


def is_locked(state: LockoutState, now: datetime) -> bool:
    """True while lock_until lies strictly in the future; a stale past value means unlocked."""
    lock_until = as_utc(state.lock_until)
    return lock_until is not None and lock_until > now


def check_login_allowed(state: LockoutState, now: datetime) -> None:
    """Raise AccountLocked if the account is currently locked. Does not reset attempts."""
    if is_locked(state, now):
        lock_until = as_utc(state.lock_until)
        raise AccountLocked(
            f"Account locked. Try again after {lock_until.isoformat()}",
            lock_until=lock_until,
        )


def record_failure(
    state: LockoutState,
    now: datetime,
    *,
    max_attempts: int,
    lock_duration: timedelta,
) -> LockoutState:
    """
    Count one failed login. The lock threshold is checked against the
    post-increment count, so the max_attempts-th failure engages the lock.
    """
    attempts = state.failed_attempts + 1
    if attempts >= max_attempts:
        return LockoutState(failed_attempts=attempts, lock_until=now + lock_duration)
    return LockoutState(failed_attempts=attempts, lock_until=state.lock_until)


def record_success() -> LockoutState:
    return LockoutState(failed_attempts=0, lock_until=None)
