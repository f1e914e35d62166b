"""User entity -- the identity returned by a successful login."""
from datetime import datetime, timezone
from uuid import uuid4

from ipguard.domain.enums import UserRole


class User:
    """Registered user with a hashed password."""

    def __init__(
        self,
        email: str,
        password_hash: str,
        role: UserRole = UserRole.USER,
        user_id: str | None = None,
        created_at: str | None = None,
    ):
        self._id = user_id or str(uuid4())
        self._email = email.lower().strip()
        self._password_hash = password_hash
        self._role = UserRole(role)
        self._created_at = created_at or datetime.now(timezone.utc).isoformat()

    @property
    def id(self) -> str:
        return self._id

    @property
    def email(self) -> str:
        return self._email

    @property
    def password_hash(self) -> str:
        return self._password_hash

    @property
    def role(self) -> UserRole:
        return self._role

    @property
    def is_admin(self) -> bool:
        return self._role == UserRole.ADMIN

    def to_dict(self) -> dict:
        return {
            "id": self._id,
            "email": self._email,
            "password_hash": self._password_hash,
            "role": self._role.value,
            "created_at": self._created_at,
        }

    def to_public_dict(self) -> dict:
        """Safe representation without credentials."""
        return {
            "id": self._id,
            "email": self._email,
            "role": self._role.value,
        }
