"""Validation guards for block state and login input."""
import ipaddress
import uuid
from datetime import datetime

from ipguard.domain.enums import BlockKind
from ipguard.domain.errors import ValidationError

MAX_PAGE_SIZE = 500


def parse_ip(value) -> str:
    """Return the normalised textual form of an IPv4/IPv6 address.

    IPv4-mapped IPv6 addresses (``::ffff:10.0.0.1``, as reported by sockets
    bound to ``::``) collapse to their IPv4 form.
    """
    if isinstance(value, (ipaddress.IPv4Address, ipaddress.IPv6Address)):
        addr = value
    else:
        try:
            addr = ipaddress.ip_address(str(value).strip())
        except ValueError:
            raise ValidationError(f"Invalid IP address: {value!r}") from None
    if addr.version == 6 and addr.ipv4_mapped:
        return str(addr.ipv4_mapped)
    return str(addr)


def validate_uuid(value, field: str = "block id") -> str:
    """Return the canonical UUID string, or raise for anything else."""
    try:
        return str(uuid.UUID(str(value)))
    except (ValueError, TypeError, AttributeError):
        raise ValidationError(f"Invalid {field}: {value!r}") from None


def validate_block_id(value) -> str:
    return validate_uuid(value, "block id")


def validate_actor_id(value) -> str | None:
    """Creator identity is optional; when given it must be a user UUID."""
    if value is None or value == "":
        return None
    return validate_uuid(value, "creator id")


def validate_block(block, now: datetime) -> None:
    """Raises if a block violates the kind/expiry invariant.

    A temporary block must expire strictly after ``now``; a permanent block
    never carries an expiry.
    """
    if block.kind == BlockKind.TEMPORARY:
        if block.expires_at is None:
            raise ValidationError("Temporary IP blocks must have an expiry time.")
        if block.expires_at <= now:
            raise ValidationError("Block expiration must be in the future.")
    elif block.expires_at is not None:
        raise ValidationError("Permanent IP blocks cannot have an expiry time.")


def validate_credentials(email: str | None, password: str | None) -> None:
    if not email or not email.strip():
        raise ValidationError("Email is required.")
    if not password:
        raise ValidationError("Password is required.")


def validate_page(offset: int, limit: int) -> None:
    if offset < 0:
        raise ValidationError("offset must be >= 0")
    if limit < 1 or limit > MAX_PAGE_SIZE:
        raise ValidationError(f"limit must be between 1 and {MAX_PAGE_SIZE}")
