"""Environment-driven settings.

Single place that reads process environment for the block subsystem.
Malformed or non-positive integers fall back to the defaults instead of
crashing startup.
"""
import ipaddress
import logging
import os

from ipguard.application.bruteforce_config import BruteforceConfig

logger = logging.getLogger("ipguard.startup")

ESCALATION_COUNT_HISTORY = "history"
ESCALATION_COUNT_PRESENCE = "presence"


def _env_int(name: str, default: int, minimum: int = 1) -> int:
    raw = os.environ.get(name, "").strip()
    if not raw:
        return default
    try:
        value = int(raw)
    except ValueError:
        logger.warning("Ignoring non-integer %s=%r, using %d", name, raw, default)
        return default
    if value < minimum:
        logger.warning("Ignoring %s=%d below %d, using %d", name, value, minimum, default)
        return default
    return value


def _env_bool(name: str, default: bool) -> bool:
    raw = os.environ.get(name, "").strip().lower()
    if not raw:
        return default
    return raw in ("1", "true", "yes", "on")


def load_bruteforce_config() -> BruteforceConfig:
    defaults = BruteforceConfig()
    return BruteforceConfig(
        max_attempts=_env_int("BRUTEFORCE_MAX_ATTEMPTS", defaults.max_attempts),
        window_seconds=_env_int("BRUTEFORCE_WINDOW_SECONDS", defaults.window_seconds),
        block_duration_seconds=_env_int("BRUTEFORCE_BLOCK_DURATION", defaults.block_duration_seconds),
        escalation_threshold=_env_int("ESCALATION_THRESHOLD", defaults.escalation_threshold),
        escalation_window_seconds=_env_int(
            "ESCALATION_WINDOW_SECONDS", defaults.escalation_window_seconds
        ),
    )


def escalation_counts_history() -> bool:
    """True unless ESCALATION_COUNT_MODE=presence selects the 0/1 approximation."""
    mode = os.environ.get("ESCALATION_COUNT_MODE", ESCALATION_COUNT_HISTORY).strip().lower()
    return mode != ESCALATION_COUNT_PRESENCE


def jwt_secret_key() -> str:
    secret = os.environ.get("JWT_SECRET_KEY", "").strip()
    if not secret:
        raise RuntimeError(
            "Missing JWT_SECRET_KEY environment variable. "
            "Add JWT_SECRET_KEY=<strong-random-value> to your .env file before starting."
        )
    return secret


def jwt_expiration_hours() -> int:
    return _env_int("JWT_EXPIRATION_HOURS", 24)


def trust_forwarded_headers() -> bool:
    return _env_bool("TRUST_FORWARDED_HEADERS", True)


def trusted_proxies() -> list:
    """Parsed TRUSTED_PROXIES networks; empty means any peer may forward."""
    networks = []
    for item in os.environ.get("TRUSTED_PROXIES", "").split(","):
        item = item.strip()
        if not item:
            continue
        try:
            networks.append(ipaddress.ip_network(item, strict=False))
        except ValueError:
            logger.warning("Ignoring invalid TRUSTED_PROXIES entry %r", item)
    return networks


def warn_if_forwarding_unrestricted(trust_headers: bool, proxies: list) -> bool:
    """Log once at startup when any client may set its own forwarded IP."""
    if trust_headers and not proxies:
        logger.warning(
            "X-Forwarded-For/X-Real-IP are trusted from any peer; clients can spoof "
            "their IP and evade blocking. Set TRUSTED_PROXIES or TRUST_FORWARDED_HEADERS=false."
        )
        return True
    return False


def configured_admin_emails() -> set[str]:
    """Normalised admin e-mails from ADMIN_EMAILS (comma-separated)."""
    emails: set[str] = set()
    for item in os.environ.get("ADMIN_EMAILS", "").split(","):
        value = item.strip().lower()
        if value:
            emails.add(value)
    return emails


def allowed_origins() -> list[str]:
    raw = os.environ.get("ALLOWED_ORIGINS", "").strip()
    if not raw:
        return ["*"]
    return [o.strip() for o in raw.split(",") if o.strip()]
