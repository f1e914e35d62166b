"""Request-scoped client IP.

The HTTP middleware stores the resolved address in a context variable; the
auth guard reads it back. Anything missing or unparsable resolves to the
loopback address, so the edge must be the one resolving IPs it can trust.
"""
from contextlib import contextmanager
from contextvars import ContextVar

from ipguard.domain.errors import ValidationError
from ipguard.domain.invariant import parse_ip

LOOPBACK = "127.0.0.1"

client_ip_var: ContextVar[str | None] = ContextVar("client_ip", default=None)


def get_client_ip() -> str:
    raw = client_ip_var.get()
    if not raw:
        return LOOPBACK
    try:
        return parse_ip(raw)
    except ValidationError:
        return LOOPBACK


@contextmanager
def client_ip_context(ip: str | None):
    """Bind ``ip`` as the current client IP for the duration of the block."""
    token = client_ip_var.set(ip)
    try:
        yield
    finally:
        client_ip_var.reset(token)
