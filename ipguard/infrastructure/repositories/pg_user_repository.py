"""PostgreSQL-backed user lookup for the login path."""
from typing import Optional

from ipguard.domain.user import User
from ipguard.infrastructure.database.models import UserModel


class PgUserRepository:
    """User persistence via PostgreSQL."""

    def __init__(self, session_factory):
        self._sf = session_factory

    def save(self, user: User) -> None:
        """Insert or update a user record."""
        data = user.to_dict()
        with self._sf() as session:
            existing = session.get(UserModel, data["id"])
            if existing:
                existing.email = data["email"]
                existing.password_hash = data["password_hash"]
                existing.role = data["role"]
            else:
                session.add(UserModel(
                    id=data["id"],
                    email=data["email"],
                    password_hash=data["password_hash"],
                    role=data["role"],
                ))
            session.commit()

    def find_by_email(self, email: str) -> Optional[User]:
        target = email.lower().strip()
        with self._sf() as session:
            row = session.query(UserModel).filter(UserModel.email == target).first()
            return self._to_domain(row) if row else None

    def find_by_id(self, user_id: str) -> Optional[User]:
        with self._sf() as session:
            row = session.get(UserModel, user_id)
            return self._to_domain(row) if row else None

    @staticmethod
    def _to_domain(row: UserModel) -> User:
        return User(
            user_id=str(row.id),
            email=row.email,
            password_hash=row.password_hash,
            role=row.role,
            created_at=row.created_at.isoformat() if row.created_at else None,
        )
