"""Redis-backed registry for temporary blocks and login attempts.

Key layout:
  block:<ip>          JSON block, TTL = time left until expiry (SET NX)
  block_id:<id>       secondary index id -> ip, same TTL as the block
  attempts:<ip>       sorted set of attempt timestamps (sliding window)
  block_history:<ip>  sorted set of temporary block creation times
"""
import json
import logging
from contextlib import contextmanager
from datetime import datetime
from typing import Callable
from uuid import uuid4

from redis.exceptions import RedisError

from ipguard.domain.enums import BlockKind
from ipguard.domain.errors import (
    AlreadyBlockedError,
    BlockNotFoundError,
    StoreUnavailableError,
    ValidationError,
)
from ipguard.domain.invariant import validate_block
from ipguard.domain.ip_block import IPBlock, utcnow

BLOCK_KEY = "block:{ip}"
BLOCK_ID_KEY = "block_id:{block_id}"
ATTEMPTS_KEY = "attempts:{ip}"
HISTORY_KEY = "block_history:{ip}"

SCAN_BATCH = 100
DEFAULT_HISTORY_SECONDS = 86400

logger = logging.getLogger("ipguard.ip_block")


@contextmanager
def _store_call(action: str):
    try:
        yield
    except RedisError as exc:
        raise StoreUnavailableError(f"failed to {action}: {exc}") from exc


def _decode(raw) -> IPBlock:
    if isinstance(raw, bytes):
        raw = raw.decode("utf-8")
    return IPBlock.from_dict(json.loads(raw))


class RedisIPBlockRepository:
    """Temporary blocks with native expiry plus the attempt counter.

    ``count_block_history`` selects how escalation counts this store:
    True counts every temporary block created since the given time, False
    reports only current presence (0 or 1).
    """

    def __init__(
        self,
        client,
        clock: Callable[[], datetime] = utcnow,
        count_block_history: bool = True,
        history_seconds: int = DEFAULT_HISTORY_SECONDS,
    ):
        self._r = client
        self._clock = clock
        self._count_history = count_block_history
        self._history_seconds = history_seconds

    # ------------------------------------------------------------------
    # Blocks
    # ------------------------------------------------------------------

    def create(self, block: IPBlock) -> None:
        if block.kind != BlockKind.TEMPORARY:
            raise ValidationError("Only temporary IP blocks can be stored with an expiry.")
        now = self._clock()
        validate_block(block, now)

        ttl_ms = max(1, int(block.remaining_seconds(now) * 1000))
        key = BLOCK_KEY.format(ip=block.ip)
        index_key = BLOCK_ID_KEY.format(block_id=block.id)
        history = HISTORY_KEY.format(ip=block.ip)
        with _store_call("store IP block in Redis"):
            # Index and history go first: a live block is always removable by id.
            pipe = self._r.pipeline()
            pipe.set(index_key, block.ip, px=ttl_ms)
            pipe.zadd(history, {block.id: block.created_at.timestamp()})
            pipe.zremrangebyscore(history, "-inf", now.timestamp() - self._history_seconds)
            pipe.expire(history, self._history_seconds)
            pipe.execute()

            stored = self._r.set(key, json.dumps(block.to_dict()), px=ttl_ms, nx=True)
            if not stored:
                cleanup = self._r.pipeline()
                cleanup.delete(index_key)
                cleanup.zrem(history, block.id)
                cleanup.execute()
                raise AlreadyBlockedError(block.ip)

    def is_blocked(self, ip: str) -> tuple[bool, IPBlock | None]:
        with _store_call("check IP block in Redis"):
            raw = self._r.get(BLOCK_KEY.format(ip=ip))
        if raw is None:
            return False, None
        try:
            block = _decode(raw)
        except (ValueError, KeyError, TypeError) as exc:
            raise StoreUnavailableError(f"failed to decode IP block data: {exc}") from exc
        # Redis and the application clock can disagree near the boundary.
        if block.is_expired(self._clock()):
            return False, None
        return True, block

    def remove(self, block_id: str) -> None:
        index_key = BLOCK_ID_KEY.format(block_id=block_id)
        with _store_call("delete IP block from Redis"):
            ip = self._r.get(index_key)
            if ip is None:
                raise BlockNotFoundError(block_id, store="redis")
            if isinstance(ip, bytes):
                ip = ip.decode("utf-8")

            key = BLOCK_KEY.format(ip=ip)
            raw = self._r.get(key)
            if raw is not None and self._matches(raw, block_id):
                self._r.delete(key, index_key)
                return
            # Stale index entry: the block was replaced or has expired.
            self._r.delete(index_key)
        raise BlockNotFoundError(block_id, store="redis")

    def list_active(self, offset: int, limit: int) -> list[IPBlock]:
        """Scan every live block key; O(n) in the number of blocked IPs."""
        with _store_call("scan Redis keys"):
            keys = sorted(self._r.scan_iter(match=BLOCK_KEY.format(ip="*"), count=SCAN_BATCH))
            values = self._r.mget(keys) if keys else []

        now = self._clock()
        blocks = []
        for key, raw in zip(keys, values):
            if raw is None:
                continue  # expired between SCAN and MGET
            try:
                block = _decode(raw)
            except (ValueError, KeyError, TypeError):
                logger.warning("Skipping undecodable IP block entry %s", key)
                continue
            if not block.is_expired(now):
                blocks.append(block)

        blocks.sort(key=lambda b: b.created_at, reverse=True)
        return blocks[offset:offset + limit]

    def count_since(self, ip: str, since: datetime) -> int:
        if not self._count_history:
            blocked, _ = self.is_blocked(ip)
            return 1 if blocked else 0
        with _store_call("count IP block history"):
            return int(self._r.zcount(HISTORY_KEY.format(ip=ip), since.timestamp(), "+inf"))

    # ------------------------------------------------------------------
    # Attempt counter (sliding window)
    # ------------------------------------------------------------------

    def record_attempt(self, ip: str, window_seconds: int) -> int:
        """Add one attempt, prune the window and return the attempts left in it."""
        key = ATTEMPTS_KEY.format(ip=ip)
        now = self._clock().timestamp()
        # Unique member so that attempts within the same second all count.
        member = f"{now:.6f}:{uuid4().hex[:8]}"
        with _store_call("record login attempt"):
            pipe = self._r.pipeline()
            pipe.zadd(key, {member: now})
            pipe.zremrangebyscore(key, "-inf", now - window_seconds)
            pipe.expire(key, window_seconds)
            pipe.zcard(key)
            return int(pipe.execute()[-1])

    def get_attempts(self, ip: str, window_seconds: int) -> int:
        key = ATTEMPTS_KEY.format(ip=ip)
        cutoff = self._clock().timestamp() - window_seconds
        with _store_call("count login attempts"):
            pipe = self._r.pipeline()
            pipe.zremrangebyscore(key, "-inf", cutoff)
            pipe.zcount(key, f"({cutoff}", "+inf")
            return int(pipe.execute()[-1])

    @staticmethod
    def _matches(raw, block_id: str) -> bool:
        try:
            return _decode(raw).id == block_id
        except (ValueError, KeyError, TypeError):
            return False
