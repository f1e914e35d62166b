"""Ensure the admin user exists in the DB with the correct password.

Reads ADMIN_EMAIL and ADMIN_PASSWORD from .env.
Creates the user if missing, or updates the password hash and promotes the
account to admin if it already exists.

    python -m ipguard.scripts.ensure_admin
"""
import os
import sys

from dotenv import load_dotenv

from ipguard.domain.enums import UserRole
from ipguard.domain.user import User
from ipguard.infrastructure.auth.password import hash_password

PROJECT_DIR = os.path.join(os.path.dirname(os.path.abspath(__file__)), "..", "..")


def ensure_admin(user_repo, email: str, password: str, rounds: int | None = None) -> tuple[User, bool]:
    """Returns (admin user, created)."""
    pwd_hash = hash_password(password) if rounds is None else hash_password(password, rounds=rounds)
    existing = user_repo.find_by_email(email)
    if existing:
        admin = User(
            email=existing.email,
            password_hash=pwd_hash,
            role=UserRole.ADMIN,
            user_id=existing.id,
        )
        user_repo.save(admin)
        return admin, False

    admin = User(email=email, password_hash=pwd_hash, role=UserRole.ADMIN)
    user_repo.save(admin)
    return admin, True


def main() -> int:
    load_dotenv(os.path.join(PROJECT_DIR, ".env"))

    email = os.environ.get("ADMIN_EMAIL", "").strip()
    password = os.environ.get("ADMIN_PASSWORD", "").strip()
    if not email or not password:
        print("ERROR: ADMIN_EMAIL and ADMIN_PASSWORD must be set in .env")
        return 1

    from ipguard.infrastructure.database import connection
    from ipguard.infrastructure.repositories.pg_user_repository import PgUserRepository

    connection.init_engine()
    connection.create_tables()
    admin, created = ensure_admin(PgUserRepository(connection.get_session_factory()), email, password)
    if created:
        print(f"Admin user '{admin.email}' created. id={admin.id}")
    else:
        print(f"Admin user '{admin.email}' updated. id={admin.id}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
