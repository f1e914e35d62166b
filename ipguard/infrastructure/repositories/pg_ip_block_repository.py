"""PostgreSQL-backed IP block registry (authoritative, durable)."""
from datetime import datetime
from typing import Callable

from sqlalchemy import func, or_
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from ipguard.domain.errors import AlreadyBlockedError, BlockNotFoundError, StoreUnavailableError
from ipguard.domain.invariant import validate_block
from ipguard.domain.ip_block import IPBlock, as_utc, utcnow
from ipguard.infrastructure.database.models import IPBlockModel


class PgIPBlockRepository:
    """Block persistence via PostgreSQL.

    Rows are never updated in place. Expired rows stay in the table and keep
    counting toward escalation until an explicit removal deletes them.
    """

    def __init__(self, session_factory, clock: Callable[[], datetime] = utcnow):
        self._sf = session_factory
        self._clock = clock

    # ------------------------------------------------------------------
    # Write
    # ------------------------------------------------------------------

    def create(self, block: IPBlock) -> None:
        now = self._clock()
        validate_block(block, now)
        try:
            with self._sf() as session:
                if self._active_query(session, block.ip, now).first() is not None:
                    raise AlreadyBlockedError(block.ip)
                session.add(self._to_model(block))
                session.commit()
        except IntegrityError as exc:
            raise AlreadyBlockedError(block.ip) from exc
        except SQLAlchemyError as exc:
            raise StoreUnavailableError(f"failed to create IP block: {exc}") from exc

    def remove(self, block_id: str) -> None:
        try:
            with self._sf() as session:
                deleted = (
                    session.query(IPBlockModel)
                    .filter(IPBlockModel.id == block_id)
                    .delete(synchronize_session=False)
                )
                session.commit()
        except SQLAlchemyError as exc:
            raise StoreUnavailableError(f"failed to delete IP block: {exc}") from exc
        if not deleted:
            raise BlockNotFoundError(block_id)

    # ------------------------------------------------------------------
    # Read
    # ------------------------------------------------------------------

    def is_blocked(self, ip: str) -> tuple[bool, IPBlock | None]:
        try:
            with self._sf() as session:
                row = (
                    self._active_query(session, ip, self._clock())
                    .order_by(IPBlockModel.created_at.desc())
                    .first()
                )
                block = self._to_domain(row) if row else None
        except SQLAlchemyError as exc:
            raise StoreUnavailableError(f"failed to check IP block status: {exc}") from exc
        return block is not None, block

    def list_active(self, offset: int, limit: int) -> list[IPBlock]:
        now = self._clock()
        try:
            with self._sf() as session:
                rows = (
                    session.query(IPBlockModel)
                    .filter(or_(IPBlockModel.expires_at.is_(None), IPBlockModel.expires_at > now))
                    .order_by(IPBlockModel.created_at.desc())
                    .offset(offset)
                    .limit(limit)
                    .all()
                )
                return [self._to_domain(r) for r in rows]
        except SQLAlchemyError as exc:
            raise StoreUnavailableError(f"failed to query IP blocks: {exc}") from exc

    def count_since(self, ip: str, since: datetime) -> int:
        """Every block row recorded for ``ip`` since ``since``, expired or not."""
        try:
            with self._sf() as session:
                return (
                    session.query(func.count(IPBlockModel.id))
                    .filter(IPBlockModel.ip == ip, IPBlockModel.created_at >= since)
                    .scalar()
                ) or 0
        except SQLAlchemyError as exc:
            raise StoreUnavailableError(f"failed to get IP block count: {exc}") from exc

    # ------------------------------------------------------------------
    # Mapping
    # ------------------------------------------------------------------

    @staticmethod
    def _active_query(session, ip: str, now: datetime):
        return session.query(IPBlockModel).filter(
            IPBlockModel.ip == ip,
            or_(IPBlockModel.expires_at.is_(None), IPBlockModel.expires_at > now),
        )

    @staticmethod
    def _to_model(block: IPBlock) -> IPBlockModel:
        return IPBlockModel(
            id=block.id,
            ip=block.ip,
            kind=block.kind.value,
            reason=block.reason.value,
            created_at=block.created_at,
            expires_at=block.expires_at,
            created_by=block.created_by,
            comment=block.comment,
        )

    @staticmethod
    def _to_domain(row: IPBlockModel) -> IPBlock:
        return IPBlock(
            block_id=str(row.id),
            ip=row.ip,
            kind=row.kind,
            reason=row.reason,
            created_at=as_utc(row.created_at),
            expires_at=as_utc(row.expires_at),
            created_by=str(row.created_by) if row.created_by else None,
            comment=row.comment or "",
        )
