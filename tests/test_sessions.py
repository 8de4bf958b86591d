"""Tests for app.services.sessions against an in-memory SQLite credential store."""

import unittest
from datetime import UTC, datetime, timedelta
from unittest.mock import patch

import bcrypt
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.core.config import settings
from app.core.errors import (
    AccountLocked,
    Conflict,
    InvalidCredentials,
    InvalidToken,
    Unauthenticated,
    ValidationError,
)
from app.core.security import TokenKind, issue_tokens, verify_password, verify_token
from app.models import Base, Role, User
from app.services import accounts, sessions
from app.services.lockout import LockoutState, as_utc


def _session_factory() -> sessionmaker:
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


class SessionTestCase(unittest.TestCase):
    def setUp(self) -> None:
        self.SessionLocal = _session_factory()
        self.db = self.SessionLocal()
        self.user = sessions.register(
            self.db,
            name="A",
            username="a1",
            email="a@x.com",
            password="secret123",
        )
        self.user_id = self.user.id

    def tearDown(self) -> None:
        self.db.close()

    def reload(self) -> User:
        with self.SessionLocal() as fresh:
            user = fresh.get(User, self.user_id)
            fresh.expunge(user)
            return user

    def fail_login(self, times: int) -> None:
        for _ in range(times):
            with self.assertRaises(InvalidCredentials):
                sessions.login(self.db, username="a1", password="wrong-password")


class TestRegister(SessionTestCase):
    def test_creates_user_with_hashed_password(self) -> None:
        stored = self.reload()
        self.assertNotEqual(stored.password_hash, "secret123")
        self.assertTrue(verify_password("secret123", stored.password_hash))
        self.assertEqual(stored.role, Role.USER.value)
        self.assertEqual(stored.login_attempts, 0)
        self.assertIsNone(stored.lock_until)
        self.assertIsNone(stored.refresh_token)
        self.assertFalse(stored.is_blocked)
        self.assertTrue(stored.is_active)
        self.assertIsNotNone(stored.created_at)
        self.assertIsNotNone(stored.updated_at)

    def test_email_is_lowercased_and_fields_trimmed(self) -> None:
        user = sessions.register(
            self.db, name=" B ", username=" b2 ", email=" B@X.COM ", password="secret123"
        )
        self.assertEqual(user.email, "b@x.com")
        self.assertEqual(user.username, "b2")
        self.assertEqual(user.name, "B")

    def test_duplicate_username_conflicts(self) -> None:
        with self.assertRaises(Conflict):
            sessions.register(
                self.db, name="A", username="a1", email="other@x.com", password="secret123"
            )

    def test_duplicate_email_conflicts(self) -> None:
        with self.assertRaises(Conflict):
            sessions.register(
                self.db, name="A", username="other", email="A@x.com", password="secret123"
            )

    def test_missing_fields(self) -> None:
        with self.assertRaises(ValidationError):
            sessions.register(self.db, name="", username="c", email="c@x.com", password="secret123")

    def test_admin_cannot_self_register(self) -> None:
        with self.assertRaises(ValidationError):
            sessions.register(
                self.db,
                name="Root",
                username="root",
                email="root@x.com",
                password="secret123",
                role=Role.ADMIN,
            )

    def test_artist_can_register(self) -> None:
        user = sessions.register(
            self.db,
            name="Artist",
            username="artist",
            email="artist@x.com",
            password="secret123",
            role=Role.ARTIST,
        )
        self.assertEqual(user.role, Role.ARTIST.value)


class TestLogin(SessionTestCase):
    def test_login_by_username(self) -> None:
        result = sessions.login(self.db, username="a1", password="secret123")
        self.assertEqual(result.user_id, self.user_id)
        self.assertEqual(result.username, "a1")
        self.assertEqual(result.role, "USER")
        claims = verify_token(result.tokens.access_token, TokenKind.ACCESS)
        self.assertEqual(claims.user_id, self.user_id)
        stored = self.reload()
        self.assertEqual(stored.refresh_token, result.tokens.refresh_token)
        self.assertIsNotNone(stored.last_login_at)

    def test_login_by_email_is_case_insensitive(self) -> None:
        result = sessions.login(self.db, email="A@X.com", password="secret123")
        self.assertEqual(result.user_id, self.user_id)

    def test_unknown_identifier_is_generic(self) -> None:
        with self.assertRaises(InvalidCredentials) as ctx:
            sessions.login(self.db, username="nobody", password="secret123")
        self.assertEqual(ctx.exception.message, "Invalid credentials")

    def test_wrong_password_is_generic_and_counted(self) -> None:
        with self.assertRaises(InvalidCredentials) as ctx:
            sessions.login(self.db, username="a1", password="wrong-password")
        self.assertEqual(ctx.exception.message, "Invalid credentials")
        self.assertEqual(self.reload().login_attempts, 1)

    def test_requires_identifier_and_password(self) -> None:
        with self.assertRaises(ValidationError):
            sessions.login(self.db, password="secret123")
        with self.assertRaises(ValidationError):
            sessions.login(self.db, username="a1", password="")

    def test_five_failures_lock_the_account(self) -> None:
        self.fail_login(5)
        stored = self.reload()
        self.assertEqual(stored.login_attempts, 5)
        self.assertIsNotNone(stored.lock_until)
        self.assertGreater(as_utc(stored.lock_until), datetime.now(UTC))

    def test_sixth_attempt_is_locked_even_with_correct_password(self) -> None:
        self.fail_login(5)
        with self.assertRaises(AccountLocked):
            sessions.login(self.db, username="a1", password="secret123")
        # The locked attempt has no side effect on the counter
        self.assertEqual(self.reload().login_attempts, 5)

    def test_success_resets_lockout_state(self) -> None:
        self.fail_login(3)
        sessions.login(self.db, username="a1", password="secret123")
        stored = self.reload()
        self.assertEqual(stored.login_attempts, 0)
        self.assertIsNone(stored.lock_until)

    def test_expired_lock_allows_login_and_resets(self) -> None:
        past = datetime.now(UTC) - timedelta(minutes=1)
        accounts.compare_and_set_lockout(
            self.db,
            self.user_id,
            LockoutState(failed_attempts=0),
            LockoutState(failed_attempts=5, lock_until=past),
        )
        sessions.login(self.db, username="a1", password="secret123")
        stored = self.reload()
        self.assertEqual(stored.login_attempts, 0)
        self.assertIsNone(stored.lock_until)

    def test_lost_compare_and_update_rereads_current_counter(self) -> None:
        # Another request bumps the counter between our read and our write
        with self.SessionLocal() as other:
            accounts.compare_and_set_lockout(
                other, self.user_id, LockoutState(0), LockoutState(2)
            )
        with patch.object(accounts, "lockout_state", return_value=LockoutState(0)):
            with self.assertRaises(InvalidCredentials):
                sessions.login(self.db, username="a1", password="wrong-password")
        self.assertEqual(self.reload().login_attempts, 3)


    def test_unknown_identifier_still_runs_bcrypt(self) -> None:
        with patch("app.core.security.bcrypt.checkpw", wraps=bcrypt.checkpw) as checkpw:
            with self.assertRaises(InvalidCredentials):
                sessions.login(self.db, username="nobody", password="secret123")
        checkpw.assert_called_once()

    def test_exhausted_compare_and_update_drops_failure_with_warning(self) -> None:
        with patch.object(accounts, "compare_and_set_lockout", return_value=False) as cas:
            with self.assertLogs("app.services.sessions", level="WARNING") as logs:
                with self.assertRaises(InvalidCredentials):
                    sessions.login(self.db, username="a1", password="wrong-password")
        self.assertEqual(cas.call_count, accounts.MAX_CAS_RETRIES)
        self.assertEqual(self.reload().login_attempts, 0)
        self.assertTrue(any("Dropped failed-login update" in line for line in logs.output))

    def test_concurrent_login_keeps_a_single_live_refresh_token(self) -> None:
        winners = []

        def issue_after_competing_login(user_id, role, now=None):
            # A second login for the same account completes between our read and our write
            with patch.object(sessions, "issue_tokens", issue_tokens):
                with self.SessionLocal() as other:
                    winners.append(sessions.login(other, username="a1", password="secret123"))
            return issue_tokens(user_id, role, now=now)

        with patch.object(sessions, "issue_tokens", side_effect=issue_after_competing_login):
            with self.assertRaises(Conflict):
                sessions.login(self.db, username="a1", password="secret123")

        self.assertEqual(len(winners), 1)
        winner_token = winners[0].tokens.refresh_token
        self.assertEqual(self.reload().refresh_token, winner_token)
        rotated = sessions.refresh(self.db, winner_token)
        self.assertEqual(self.reload().refresh_token, rotated.refresh_token)


class TestLogout(SessionTestCase):
    def test_clears_refresh_token_and_is_idempotent(self) -> None:
        sessions.login(self.db, username="a1", password="secret123")
        sessions.logout(self.db, self.user_id)
        self.assertIsNone(self.reload().refresh_token)
        sessions.logout(self.db, self.user_id)
        self.assertIsNone(self.reload().refresh_token)

    def test_refresh_after_logout_fails(self) -> None:
        result = sessions.login(self.db, username="a1", password="secret123")
        sessions.logout(self.db, self.user_id)
        with self.assertRaises(InvalidToken):
            sessions.refresh(self.db, result.tokens.refresh_token)


class TestRefresh(SessionTestCase):
    def test_rotates_and_rejects_replay(self) -> None:
        first = sessions.login(self.db, username="a1", password="secret123").tokens
        second = sessions.refresh(self.db, first.refresh_token)
        self.assertNotEqual(second.refresh_token, first.refresh_token)
        self.assertEqual(self.reload().refresh_token, second.refresh_token)
        with self.assertRaises(InvalidToken):
            sessions.refresh(self.db, first.refresh_token)
        # The rotated-in token keeps working
        third = sessions.refresh(self.db, second.refresh_token)
        self.assertEqual(
            verify_token(third.access_token, TokenKind.ACCESS).user_id, self.user_id
        )

    def test_missing_token_is_unauthenticated(self) -> None:
        with self.assertRaises(Unauthenticated) as ctx:
            sessions.refresh(self.db, None)
        self.assertNotIsInstance(ctx.exception, InvalidToken)

    def test_garbage_token(self) -> None:
        with self.assertRaises(InvalidToken):
            sessions.refresh(self.db, "garbage")

    def test_access_token_cannot_refresh(self) -> None:
        tokens = sessions.login(self.db, username="a1", password="secret123").tokens
        with self.assertRaises(InvalidToken):
            sessions.refresh(self.db, tokens.access_token)

    def test_valid_but_unstored_token(self) -> None:
        sessions.login(self.db, username="a1", password="secret123")
        forged = issue_tokens(self.user_id, "USER").refresh_token
        with self.assertRaises(InvalidToken):
            sessions.refresh(self.db, forged)

    def test_unknown_account(self) -> None:
        token = issue_tokens(9999, "USER").refresh_token
        with self.assertRaises(InvalidToken):
            sessions.refresh(self.db, token)

    def test_expired_stored_token(self) -> None:
        past = datetime.now(UTC) - timedelta(days=settings.REFRESH_TOKEN_EXPIRE_DAYS + 1)
        tokens = sessions.login(self.db, username="a1", password="secret123", now=past).tokens
        self.assertEqual(self.reload().refresh_token, tokens.refresh_token)
        with self.assertRaises(InvalidToken):
            sessions.refresh(self.db, tokens.refresh_token)

    def test_losing_concurrent_rotation(self) -> None:
        tokens = sessions.login(self.db, username="a1", password="secret123").tokens
        with patch.object(accounts, "rotate_refresh_token", return_value=False):
            with self.assertRaises(InvalidToken):
                sessions.refresh(self.db, tokens.refresh_token)


class TestLockoutSettings(SessionTestCase):
    def test_threshold_comes_from_settings(self) -> None:
        with patch.object(settings, "LOGIN_MAX_ATTEMPTS", 2):
            self.fail_login(2)
        self.assertIsNotNone(self.reload().lock_until)


if __name__ == "__main__":
    unittest.main()
