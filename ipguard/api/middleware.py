"""HTTP middleware: client IP resolution and IP block enforcement."""
import ipaddress
import logging

from starlette.concurrency import run_in_threadpool
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse

from ipguard.api.errors import FORBIDDEN_DETAIL
from ipguard.domain.errors import IPGuardError, ValidationError
from ipguard.domain.invariant import parse_ip
from ipguard.infrastructure.auth.client_ip import client_ip_var, get_client_ip

logger = logging.getLogger("ipguard.http")

FORWARDED_HEADERS = ("x-forwarded-for", "x-real-ip")


def _peer_is_trusted(peer: str | None, trusted: list) -> bool:
    if not trusted:
        return True
    if not peer:
        return False
    try:
        addr = ipaddress.ip_address(parse_ip(peer))
    except ValidationError:
        return False
    return any(addr in net for net in trusted)


def extract_client_ip(request: Request, trust_headers: bool = True, trusted_proxies=None) -> str | None:
    """X-Forwarded-For (first hop), then X-Real-IP, then the socket peer.

    Forwarded headers are attacker-controlled unless a proxy in front of the
    service overwrites them; they are only read when ``trust_headers`` is set
    and, with ``trusted_proxies``, only from a peer inside those networks.
    """
    peer = request.client.host if request.client else None
    if trust_headers and _peer_is_trusted(peer, trusted_proxies or []):
        for header in FORWARDED_HEADERS:
            value = request.headers.get(header)
            if value:
                return value.split(",")[0].strip()
    return peer


class ClientIPMiddleware(BaseHTTPMiddleware):
    """Store the resolved client IP in the request context."""

    def __init__(self, app, trust_headers: bool = True, trusted_proxies=None):
        super().__init__(app)
        self._trust_headers = trust_headers
        self._trusted = list(trusted_proxies or [])

    async def dispatch(self, request: Request, call_next):
        ip = extract_client_ip(request, self._trust_headers, self._trusted)
        token = client_ip_var.set(ip)
        try:
            return await call_next(request)
        finally:
            client_ip_var.reset(token)


class IPBlockMiddleware(BaseHTTPMiddleware):
    """403 for every request from a blocked IP. Store failures fail open."""

    def __init__(self, app, ip_block_service, exempt_paths=("/health",)):
        super().__init__(app)
        self._blocks = ip_block_service
        self._exempt = tuple(exempt_paths)

    async def dispatch(self, request: Request, call_next):
        if request.url.path in self._exempt:
            return await call_next(request)

        ip = get_client_ip()
        try:
            blocked, block = await run_in_threadpool(self._blocks.is_blocked, ip)
        except IPGuardError as exc:
            logger.error("IP block check failed for %s, letting request through: %s", ip, exc)
            return await call_next(request)

        if blocked:
            logger.info("Rejected request from blocked IP %s to %s", ip, request.url.path)
            return JSONResponse(status_code=403, content={"detail": FORBIDDEN_DETAIL})
        return await call_next(request)
