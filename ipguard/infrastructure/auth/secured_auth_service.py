"""Auth guard -- wraps a base authenticator with IP block enforcement.

Only ``authenticate`` is intercepted. Every other method delegates to the
base authenticator unchanged, so the guard is a drop-in replacement.
"""
import logging
from datetime import datetime, timedelta
from typing import Callable

from ipguard.application.ip_block_service import IPBlockService
from ipguard.domain.enums import BlockReason
from ipguard.domain.errors import InvalidCredentialsError, IPBlockedError, TooManyAttemptsError
from ipguard.domain.ip_block import utcnow
from ipguard.domain.user import User
from ipguard.infrastructure.auth.client_ip import get_client_ip

ESCALATION_COMMENT = "Automatic permanent block after multiple temporary blocks"


class SecuredAuthService:
    def __init__(
        self,
        base_service,
        ip_block_service: IPBlockService,
        logger: logging.Logger | None = None,
        on_escalation=None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self._base = base_service
        self._blocks = ip_block_service
        self._log = logger or logging.getLogger("ipguard.auth")
        # Optional callback(block) fired after an automatic permanent block.
        self._on_escalation = on_escalation
        self._clock = clock

    def authenticate(self, email: str, password: str) -> tuple[User, str]:
        ip = get_client_ip()

        blocked, block = self._blocks.is_blocked(ip)
        if blocked and (block is None or block.is_permanent or not block.is_expired(self._clock())):
            self._log.info("Login refused for blocked IP %s", ip)
            raise IPBlockedError()

        _, should_block = self._blocks.record_login_attempt(ip)
        if should_block:
            self._log.warning("Login refused for %s: attempt limit reached", ip)
            raise TooManyAttemptsError()

        try:
            return self._base.authenticate(email, password)
        except InvalidCredentialsError:
            self._escalate(ip)
            raise

    def _escalate(self, ip: str) -> None:
        """Best effort: never replaces the credential error being raised."""
        try:
            if not self._blocks.should_block_permanently(ip):
                return
            block = self._blocks.create_permanent_block(
                ip, BlockReason.BRUTEFORCE_ATTEMPT, comment=ESCALATION_COMMENT
            )
        except Exception:
            self._log.exception("Escalating %s to a permanent block failed", ip)
            return
        if self._on_escalation is not None:
            try:
                self._on_escalation(block)
            except Exception:
                self._log.exception("Escalation callback failed for %s", ip)

    # ------------------------------------------------------------------
    # Pass-through
    # ------------------------------------------------------------------

    def generate_token(self, user: User, duration: timedelta) -> str:
        return self._base.generate_token(user, duration)

    def verify_password(self, password: str, hashed: str) -> bool:
        return self._base.verify_password(password, hashed)

    def validate_token(self, token: str) -> dict:
        return self._base.validate_token(token)

    def hash_password(self, password: str) -> str:
        return self._base.hash_password(password)
