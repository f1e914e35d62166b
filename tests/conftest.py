"""
Shared pytest fixtures for the ipguard test suite.

Strategy:
- Domain tests: pure in-memory, zero I/O.
- Durable store: SQLAlchemy against an in-memory SQLite engine.
- Ephemeral store: fakeredis.
- Time: a FakeClock injected into repositories, service and guard. Redis
  native expiry does not follow the fake clock, so tests that need a key to
  vanish call expire_block() to simulate it.
"""
import os
from datetime import datetime, timedelta, timezone

import fakeredis
import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

os.environ.setdefault("JWT_SECRET_KEY", "test-secret-key-not-for-production-123456")

from ipguard.application.bruteforce_config import BruteforceConfig
from ipguard.application.ip_block_service import IPBlockService
from ipguard.domain.enums import BlockKind, BlockReason, UserRole
from ipguard.domain.errors import InvalidCredentialsError
from ipguard.domain.ip_block import IPBlock
from ipguard.domain.user import User
from ipguard.infrastructure.auth.password import hash_password
from ipguard.infrastructure.database.connection import SessionFactory
from ipguard.infrastructure.database.models import Base
from ipguard.infrastructure.repositories.pg_ip_block_repository import PgIPBlockRepository
from ipguard.infrastructure.repositories.redis_ip_block_repository import RedisIPBlockRepository

T0 = datetime(2026, 3, 2, 9, 0, 0, tzinfo=timezone.utc)


# ---------------------------------------------------------------------------
# Helpers (reusable across many test modules)
# ---------------------------------------------------------------------------

class FakeClock:
    """Callable clock that only moves when told to."""

    def __init__(self, start: datetime = T0):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now = self.now + timedelta(seconds=seconds)


class InMemoryUserRepo:
    def __init__(self, users=()):
        self._by_email = {u.email: u for u in users}

    def find_by_email(self, email: str):
        return self._by_email.get(email.lower().strip())


class StubAuthenticator:
    """Base authenticator double: one valid e-mail/password pair."""

    def __init__(self, email="alice@example.com", password="correct-horse"):
        self.user = User(email=email, password_hash="unused")
        self._password = password
        self.calls = 0

    def authenticate(self, email, password):
        self.calls += 1
        if email == self.user.email and password == self._password:
            return self.user, "token-for-" + self.user.id
        raise InvalidCredentialsError()

    def generate_token(self, user, duration):
        return f"generated:{user.id}:{int(duration.total_seconds())}"

    def verify_password(self, password, hashed):
        return password == hashed

    def validate_token(self, token):
        return {"sub": "stub", "token": token}

    def hash_password(self, password):
        return "hashed:" + password


def make_block(
    ip="10.0.0.1",
    kind=BlockKind.TEMPORARY,
    reason=BlockReason.MANUAL,
    now=T0,
    seconds=1800,
    comment="",
) -> IPBlock:
    expires_at = now + timedelta(seconds=seconds) if kind == BlockKind.TEMPORARY else None
    return IPBlock.new(ip=ip, kind=kind, reason=reason, expires_at=expires_at, comment=comment, now=now)


def make_user(email="admin@example.com", password="Secret123!", role=UserRole.USER) -> User:
    return User(email=email, password_hash=hash_password(password, rounds=4), role=role)


def expire_block(redis_client, ip: str) -> None:
    """Simulate Redis dropping a block key when its TTL runs out."""
    redis_client.delete(f"block:{ip}")


# ---------------------------------------------------------------------------
# pytest fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def config():
    return BruteforceConfig(max_attempts=5, window_seconds=300, block_duration_seconds=1800)


@pytest.fixture
def engine():
    eng = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=eng)
    yield eng
    eng.dispose()


@pytest.fixture
def session_factory(engine):
    return SessionFactory(sessionmaker(bind=engine, expire_on_commit=False))


@pytest.fixture
def redis_client():
    # Fresh server per test: FakeRedis instances otherwise share state.
    return fakeredis.FakeRedis(server=fakeredis.FakeServer(), decode_responses=True)


@pytest.fixture
def pg_repo(session_factory, clock):
    return PgIPBlockRepository(session_factory, clock=clock)


@pytest.fixture
def redis_repo(redis_client, clock):
    return RedisIPBlockRepository(redis_client, clock=clock)


@pytest.fixture
def service(pg_repo, redis_repo, config, clock):
    return IPBlockService(pg_repo, redis_repo, config=config, clock=clock)


# ---------------------------------------------------------------------------
# API fixtures
# ---------------------------------------------------------------------------

API_SECRET = "api-test-secret"


@pytest.fixture
def users():
    return {
        "alice": make_user(email="alice@example.com", password="Secret123!"),
        "root": make_user(email="root@example.com", password="RootPass1!", role=UserRole.ADMIN),
    }


@pytest.fixture
def api(service, users, clock, monkeypatch, tmp_path):
    """TestClient over the full app: SQLite + fakeredis stores, real JWT auth."""
    import ipguard.infrastructure.audit as audit_mod
    from fastapi.testclient import TestClient

    from ipguard.infrastructure.auth.jwt_service import JWTAuthService
    from ipguard.infrastructure.auth.secured_auth_service import SecuredAuthService
    from ipguard.main import create_app

    for name in ("TRUST_FORWARDED_HEADERS", "TRUSTED_PROXIES", "ADMIN_EMAILS", "ALLOWED_ORIGINS"):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setattr(audit_mod, "LOG_DIR", tmp_path)
    monkeypatch.setattr(audit_mod, "LOG_FILE", tmp_path / "audit.log")

    base = JWTAuthService(InMemoryUserRepo(users.values()), API_SECRET)
    guard = SecuredAuthService(base, service, clock=clock)
    app = create_app(guard, service, health_checks={"database": lambda: True, "redis": lambda: True})
    client = TestClient(app)
    client.base_auth = base
    return client


def bearer(api_client, user) -> dict:
    token = api_client.base_auth.generate_token(user, timedelta(minutes=30))
    return {"Authorization": f"Bearer {token}"}


def from_ip(ip: str) -> dict:
    return {"X-Forwarded-For": ip}
