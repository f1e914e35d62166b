"""Database engine and session factory for the durable block store.

Repositories receive a session factory (any callable returning a session
context manager) and never touch the engine directly:

    with session_factory() as session:
        ...
"""
import logging
import os
import re
from contextlib import contextmanager

from sqlalchemy import create_engine, text
from sqlalchemy.orm import sessionmaker

logger = logging.getLogger("ipguard.startup")

_engine = None
_SessionLocal = None

# Matches a postgres(ql):// URL anywhere inside a string.
_PG_URL_RE = re.compile(r"(postgres(?:ql)?://\S+)")


def resolve_database_url(env_var: str = "DATABASE_URL") -> str:
    """Read a database URL from environment and return a clean SQLAlchemy URL.

    Handles robustly:
    - Leading/trailing whitespace or newlines from copy-paste.
    - Literal surrounding quotes pasted in dashboards.
    - Full ``psql`` command pasted instead of just the URL.
    - ``postgres://`` scheme that SQLAlchemy rejects (needs ``postgresql://``).
    """
    raw = os.environ.get(env_var, "").strip()

    if len(raw) >= 2 and raw[0] == raw[-1] and raw[0] in ('"', "'"):
        raw = raw[1:-1].strip()

    match = _PG_URL_RE.search(raw)
    url = match.group(1) if match else raw
    url = url.rstrip("'\"").strip()

    if url.startswith("postgres://"):
        url = url.replace("postgres://", "postgresql://", 1)
    # psycopg 3 driver unless the URL names one explicitly
    if url.startswith("postgresql://"):
        url = url.replace("postgresql://", "postgresql+psycopg://", 1)

    return url


def build_engine(url: str, **overrides):
    """Create a pooled SQLAlchemy engine, logging the masked host only."""
    masked = url.split("@")[-1].split("?")[0] if "@" in url else "<no-host>"
    logger.info("Initialising database engine -> %s", masked)
    options = dict(
        pool_size=5,
        max_overflow=10,
        pool_timeout=15,
        pool_recycle=1800,
        pool_pre_ping=True,
        echo=False,
    )
    options.update(overrides)
    return create_engine(url, **options)


def init_engine(url: str | None = None) -> None:
    """Initialise the process engine from ``url`` or DATABASE_URL."""
    global _engine, _SessionLocal

    url = url or resolve_database_url()
    if not url:
        raise RuntimeError("DATABASE_URL is empty -- the durable block store is required.")

    _engine = build_engine(url)
    _SessionLocal = sessionmaker(bind=_engine, expire_on_commit=False)


def get_engine():
    return _engine


def get_session_factory() -> "SessionFactory":
    if _SessionLocal is None:
        raise RuntimeError("Database not initialised. Call init_engine() first.")
    return SessionFactory(_SessionLocal)


def create_tables(engine=None) -> None:
    """Create all tables (idempotent)."""
    from ipguard.infrastructure.database.models import Base

    engine = engine or _engine
    Base.metadata.create_all(bind=engine)
    logger.info("Tables verified on durable store.")


def check_health(engine=None) -> bool:
    """Lightweight connectivity probe."""
    engine = engine or _engine
    if engine is None:
        return False
    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
        return True
    except Exception:
        return False


class SessionFactory:
    """Callable wrapper around a sessionmaker.

    Rolls back on any exception and always closes the session; the error
    itself propagates to the repository, which translates it.
    """

    def __init__(self, sessionmaker_):
        self._sm = sessionmaker_

    def __call__(self):
        return self._managed_session()

    @contextmanager
    def _managed_session(self):
        session = self._sm()
        try:
            yield session
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()
