"""Tests for the User entity and error taxonomy."""
from ipguard.domain.enums import UserRole
from ipguard.domain.errors import (
    AlreadyBlockedError,
    BlockNotFoundError,
    InvalidTokenError,
    IPGuardError,
    TokenExpiredError,
)
from ipguard.domain.user import User


class TestUser:
    def test_email_normalised(self):
        u = User(email="  Alice@Example.COM ", password_hash="h")
        assert u.email == "alice@example.com"

    def test_default_role(self):
        u = User(email="a@b.com", password_hash="h")
        assert u.role == UserRole.USER
        assert not u.is_admin

    def test_admin_role_from_string(self):
        u = User(email="a@b.com", password_hash="h", role="admin")
        assert u.is_admin

    def test_public_dict_hides_hash(self):
        u = User(email="a@b.com", password_hash="secret-hash")
        public = u.to_public_dict()
        assert "password_hash" not in public
        assert public == {"id": u.id, "email": "a@b.com", "role": "user"}

    def test_to_dict_keeps_hash(self):
        u = User(email="a@b.com", password_hash="secret-hash", user_id="u1")
        d = u.to_dict()
        assert d["password_hash"] == "secret-hash"
        assert d["id"] == "u1"


class TestErrors:
    def test_already_blocked_carries_ip(self):
        exc = AlreadyBlockedError("10.0.0.1")
        assert exc.ip == "10.0.0.1"
        assert "10.0.0.1" in str(exc)

    def test_not_found_message_with_store(self):
        assert str(BlockNotFoundError("abc")) == "IP block with id abc not found"
        assert str(BlockNotFoundError("abc", store="redis")) == "IP block with id abc not found in redis"

    def test_token_expired_is_invalid_token(self):
        exc = TokenExpiredError()
        assert isinstance(exc, InvalidTokenError)
        assert isinstance(exc, IPGuardError)
