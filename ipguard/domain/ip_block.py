"""IP block entity -- one block record for one subject address."""
from datetime import datetime, timezone
from uuid import uuid4

from ipguard.domain.enums import BlockKind, BlockReason
from ipguard.domain.invariant import parse_ip


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime | None) -> datetime | None:
    """Attach UTC to naive datetimes (SQLite drops tzinfo on the way back)."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _parse_ts(value) -> datetime | None:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return as_utc(value)
    return as_utc(datetime.fromisoformat(value))


class IPBlock:
    """A permanent or temporary block on a single IP address.

    Temporary blocks always carry a future ``expires_at``; permanent blocks
    never do. The invariant is enforced by the stores on create, not here,
    so that expired records can still be loaded and inspected.
    """

    def __init__(
        self,
        ip: str,
        kind: BlockKind,
        reason: BlockReason,
        expires_at: datetime | None = None,
        created_by: str | None = None,
        comment: str = "",
        block_id: str | None = None,
        created_at: datetime | None = None,
    ):
        self._id = block_id or str(uuid4())
        self._ip = parse_ip(ip)
        self._kind = BlockKind(kind)
        self._reason = BlockReason(reason)
        self._created_at = as_utc(created_at) or utcnow()
        self._expires_at = as_utc(expires_at)
        self._created_by = str(created_by) if created_by else None
        self._comment = comment or ""

    @classmethod
    def new(
        cls,
        ip: str,
        kind: BlockKind,
        reason: BlockReason,
        expires_at: datetime | None = None,
        created_by: str | None = None,
        comment: str = "",
        now: datetime | None = None,
    ) -> "IPBlock":
        return cls(
            ip=ip,
            kind=kind,
            reason=reason,
            expires_at=expires_at,
            created_by=created_by,
            comment=comment,
            created_at=now or utcnow(),
        )

    @property
    def id(self) -> str:
        return self._id

    @property
    def ip(self) -> str:
        return self._ip

    @property
    def kind(self) -> BlockKind:
        return self._kind

    @property
    def reason(self) -> BlockReason:
        return self._reason

    @property
    def created_at(self) -> datetime:
        return self._created_at

    @property
    def expires_at(self) -> datetime | None:
        return self._expires_at

    @property
    def created_by(self) -> str | None:
        return self._created_by

    @property
    def comment(self) -> str:
        return self._comment

    @property
    def is_permanent(self) -> bool:
        return self._kind == BlockKind.PERMANENT

    def is_expired(self, now: datetime | None = None) -> bool:
        if self._expires_at is None:
            return False
        return (now or utcnow()) > self._expires_at

    def is_active(self, now: datetime | None = None) -> bool:
        return self.is_permanent or not self.is_expired(now)

    def remaining_seconds(self, now: datetime | None = None) -> float | None:
        """Seconds until expiry, or None for blocks that never expire."""
        if self._expires_at is None:
            return None
        return (self._expires_at - (now or utcnow())).total_seconds()

    def to_dict(self) -> dict:
        return {
            "id": self._id,
            "ip": self._ip,
            "kind": self._kind.value,
            "reason": self._reason.value,
            "created_at": self._created_at.isoformat(),
            "expires_at": self._expires_at.isoformat() if self._expires_at else None,
            "created_by": self._created_by,
            "comment": self._comment,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "IPBlock":
        return cls(
            block_id=data["id"],
            ip=data["ip"],
            kind=BlockKind(data["kind"]),
            reason=BlockReason(data["reason"]),
            created_at=_parse_ts(data.get("created_at")),
            expires_at=_parse_ts(data.get("expires_at")),
            created_by=data.get("created_by"),
            comment=data.get("comment", ""),
        )

    def __eq__(self, other) -> bool:
        return isinstance(other, IPBlock) and other.id == self._id

    def __hash__(self) -> int:
        return hash(self._id)

    def __repr__(self) -> str:
        return f"<IPBlock {self._kind.value} {self._ip} id={self._id}>"
