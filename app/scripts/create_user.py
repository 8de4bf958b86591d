"""
Create an account, including ADMIN accounts that cannot self-register. Run from project root:
  python -m app.scripts.create_user NAME USERNAME EMAIL PASSWORD [role]
Example:
  python -m app.scripts.create_user "Site Admin" admin admin@example.com your-secure-password ADMIN
"""
import argparse
import logging
import sys

from app.core.database import SessionLocal
from app.core.errors import Conflict
from app.core.security import PASSWORD_MAX_LEN, PASSWORD_MIN_LEN, USERNAME_MAX_LEN, hash_password
from app.models.user import Role
from app.services import accounts

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)s %(name)s %(message)s",
    datefmt="%Y-%m-%dT%H:%M:%SZ",
)
logger = logging.getLogger(__name__)


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Create a Resonance account.")
    parser.add_argument("name", help="Display name")
    parser.add_argument("username", help="Username (1-255 chars)")
    parser.add_argument("email", help="Email address")
    parser.add_argument("password", help="Password (8-128 chars)")
    parser.add_argument(
        "role", nargs="?", default=Role.USER.value, choices=[r.value for r in Role]
    )
    args = parser.parse_args(argv)

    username = args.username.strip()
    if not username or len(username) > USERNAME_MAX_LEN:
        print("Invalid username length.", file=sys.stderr)
        return 1
    if not (PASSWORD_MIN_LEN <= len(args.password) <= PASSWORD_MAX_LEN):
        print(f"Password must be {PASSWORD_MIN_LEN}-{PASSWORD_MAX_LEN} characters.", file=sys.stderr)
        return 1
    email = args.email.strip().lower()
    if "@" not in email:
        print("Invalid email address.", file=sys.stderr)
        return 1

    db = SessionLocal()
    try:
        accounts.create_account(
            db,
            name=args.name.strip() or username,
            username=username,
            email=email,
            password_hash=hash_password(args.password),
            role=Role(args.role),
        )
    except Conflict:
        print(f"User '{username}' or email '{email}' already exists.", file=sys.stderr)
        return 1
    finally:
        db.close()
    logger.info("Created user '%s' with role '%s'", username, args.role)
    return 0


if __name__ == "__main__":
    sys.exit(main())
