"""IP block orchestration over the durable and the ephemeral registry.

The durable registry (PostgreSQL) is authoritative and holds permanent
blocks. The ephemeral registry (Redis) holds temporary blocks with native
expiry plus the sliding-window attempt counter. No transaction spans both
stores: every cross-store operation is two independent calls.
"""
import logging
from datetime import datetime, timedelta
from typing import Callable, Protocol

from ipguard.application.bruteforce_config import BruteforceConfig
from ipguard.domain.enums import BlockKind, BlockReason
from ipguard.domain.errors import AlreadyBlockedError, BlockNotFoundError, StoreUnavailableError
from ipguard.domain.invariant import (
    parse_ip,
    validate_actor_id,
    validate_block_id,
    validate_page,
)
from ipguard.domain.ip_block import IPBlock, utcnow


class BlockRegistry(Protocol):
    """Capability set shared by the durable and the ephemeral registry."""

    def create(self, block: IPBlock) -> None: ...

    def is_blocked(self, ip: str) -> tuple[bool, IPBlock | None]: ...

    def remove(self, block_id: str) -> None: ...

    def list_active(self, offset: int, limit: int) -> list[IPBlock]: ...

    def count_since(self, ip: str, since: datetime) -> int: ...


class EphemeralBlockRegistry(BlockRegistry, Protocol):
    def record_attempt(self, ip: str, window_seconds: int) -> int: ...

    def get_attempts(self, ip: str, window_seconds: int) -> int: ...


class IPBlockService:
    """Block checks, block management, attempt recording and escalation."""

    def __init__(
        self,
        durable: BlockRegistry,
        ephemeral: EphemeralBlockRegistry,
        config: BruteforceConfig | None = None,
        logger: logging.Logger | None = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self._durable = durable
        self._ephemeral = ephemeral
        self._config = config or BruteforceConfig()
        self._log = logger or logging.getLogger("ipguard.ip_block")
        self._clock = clock

    @property
    def config(self) -> BruteforceConfig:
        return self._config

    # ------------------------------------------------------------------
    # Block checks
    # ------------------------------------------------------------------

    def is_blocked(self, ip) -> tuple[bool, IPBlock | None]:
        """Durable store first; a durable block overrides any ephemeral entry."""
        ip = parse_ip(ip)
        blocked, block = self._durable.is_blocked(ip)
        if blocked:
            return True, block
        return self._ephemeral.is_blocked(ip)

    # ------------------------------------------------------------------
    # Block management
    # ------------------------------------------------------------------

    def create_permanent_block(
        self,
        ip,
        reason: BlockReason,
        created_by: str | None = None,
        comment: str = "",
    ) -> IPBlock:
        block = IPBlock.new(
            ip=parse_ip(ip),
            kind=BlockKind.PERMANENT,
            reason=reason,
            created_by=validate_actor_id(created_by),
            comment=comment,
            now=self._clock(),
        )
        self._durable.create(block)
        self._log.warning(
            "Permanent block %s created for %s (reason=%s)", block.id, block.ip, block.reason.value
        )
        return block

    def create_temporary_block(
        self,
        ip,
        reason: BlockReason,
        duration_seconds: int,
        created_by: str | None = None,
        comment: str = "",
    ) -> IPBlock:
        now = self._clock()
        block = IPBlock.new(
            ip=parse_ip(ip),
            kind=BlockKind.TEMPORARY,
            reason=reason,
            expires_at=now + timedelta(seconds=duration_seconds),
            created_by=validate_actor_id(created_by),
            comment=comment,
            now=now,
        )
        self._ephemeral.create(block)
        self._log.info(
            "Temporary block %s created for %s until %s (reason=%s)",
            block.id, block.ip, block.expires_at.isoformat(), block.reason.value,
        )
        return block

    def remove_block(self, block_id: str) -> None:
        """Remove a block from whichever store holds it.

        Both stores are always tried. Succeeds if at least one removed the
        id; a store failure surfaces only when nothing was removed.
        """
        block_id = validate_block_id(block_id)
        removed = False
        failure = None
        for label, registry in (("durable", self._durable), ("ephemeral", self._ephemeral)):
            try:
                registry.remove(block_id)
                removed = True
            except BlockNotFoundError:
                continue
            except StoreUnavailableError as exc:
                self._log.error("Removing block %s from %s store failed: %s", block_id, label, exc)
                failure = failure or exc

        if removed:
            self._log.info("Block %s removed", block_id)
            return
        if failure is not None:
            raise failure
        raise BlockNotFoundError(block_id)

    def list_active_blocks(self, offset: int = 0, limit: int = 50) -> list[IPBlock]:
        """Active blocks from both stores, newest first.

        Each store is read from the start up to ``offset + limit`` so the
        merged page is globally ordered by creation time.
        """
        validate_page(offset, limit)
        window = offset + limit
        merged = self._durable.list_active(0, window) + self._ephemeral.list_active(0, window)
        merged.sort(key=lambda b: b.created_at, reverse=True)
        return merged[offset:offset + limit]

    # ------------------------------------------------------------------
    # Attempts and escalation
    # ------------------------------------------------------------------

    def record_login_attempt(self, ip) -> tuple[int, bool]:
        """Count one attempt; auto-block once the window threshold is hit.

        A blocked IP returns ``(0, True)`` and does not accumulate attempts.
        Concurrent callers may overshoot ``max_attempts`` slightly.
        """
        ip = parse_ip(ip)
        blocked, _ = self.is_blocked(ip)
        if blocked:
            return 0, True

        cfg = self._config
        count = self._ephemeral.record_attempt(ip, cfg.window_seconds)
        should_block = count >= cfg.max_attempts
        if should_block:
            self._log.warning(
                "IP %s reached %d login attempts within %ds -- blocking", ip, count, cfg.window_seconds
            )
            try:
                self.create_temporary_block(
                    ip,
                    BlockReason.BRUTEFORCE_ATTEMPT,
                    cfg.block_duration_seconds,
                    comment=(
                        f"Automated block after {count} failed login attempts "
                        f"within {cfg.window_seconds} seconds"
                    ),
                )
            except AlreadyBlockedError:
                # A concurrent attempt created the block first.
                self._log.info("IP %s already blocked by a concurrent attempt", ip)
        return count, should_block

    def get_login_attempts(self, ip) -> int:
        return self._ephemeral.get_attempts(parse_ip(ip), self._config.window_seconds)

    def should_block_permanently(self, ip) -> bool:
        """True once both stores together hold enough recent block episodes."""
        ip = parse_ip(ip)
        since = self._clock() - timedelta(seconds=self._config.escalation_window_seconds)
        total = self._ephemeral.count_since(ip, since) + self._durable.count_since(ip, since)
        return total >= self._config.escalation_threshold
