"""SQLAlchemy ORM models -- PostgreSQL schema definition."""
import uuid
from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, Index, String, Text, Uuid, text
from sqlalchemy.orm import DeclarativeBase


def _utcnow():
    return datetime.now(timezone.utc)


def _new_uuid():
    return str(uuid.uuid4())


# ---------------------------------------------------------------------------
# Base
# ---------------------------------------------------------------------------

class Base(DeclarativeBase):
    pass


# ---------------------------------------------------------------------------
# Users (read by the login path only)
# ---------------------------------------------------------------------------

class UserModel(Base):
    __tablename__ = "users"

    id = Column(Uuid(as_uuid=False), primary_key=True, default=_new_uuid)
    email = Column(String(120), unique=True, nullable=False, index=True)
    password_hash = Column(String(255), nullable=False)
    role = Column(String(20), nullable=False, default="user")
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)


# ---------------------------------------------------------------------------
# IP blocks (authoritative record, audit-grade)
# ---------------------------------------------------------------------------

class IPBlockModel(Base):
    __tablename__ = "ip_blocks"

    id = Column(Uuid(as_uuid=False), primary_key=True, default=_new_uuid)
    # 45 chars fits the longest textual IPv6 form
    ip = Column(String(45), nullable=False)
    kind = Column(String(20), nullable=False)
    reason = Column(String(30), nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    # NULL means the block never expires
    expires_at = Column(DateTime(timezone=True), nullable=True)
    created_by = Column(Uuid(as_uuid=False), nullable=True)
    comment = Column(Text, nullable=False, default="")

    __table_args__ = (
        # At most one never-expiring block per IP.
        Index(
            "uq_ip_blocks_active_ip",
            "ip",
            unique=True,
            postgresql_where=text("expires_at IS NULL"),
            sqlite_where=text("expires_at IS NULL"),
        ),
        Index("idx_ip_blocks_ip_created", "ip", "created_at"),
    )
