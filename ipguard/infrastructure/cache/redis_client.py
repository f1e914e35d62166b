"""Redis client for the ephemeral block store."""
import logging
import os

import redis
from redis.backoff import NoBackoff
from redis.exceptions import RedisError
from redis.retry import Retry

logger = logging.getLogger("ipguard.startup")

DEFAULT_REDIS_URL = "redis://localhost:6379/0"

# Every Redis call fails fast instead of hanging the login path.
SOCKET_TIMEOUT = 2.0
SOCKET_CONNECT_TIMEOUT = 2.0


def get_redis_client(url: str | None = None) -> redis.Redis:
    """Build a client from ``url`` or REDIS_URL. No retries on failure."""
    url = url or os.environ.get("REDIS_URL", "").strip() or DEFAULT_REDIS_URL
    masked = url.split("@")[-1]
    logger.info("Initialising Redis client -> %s", masked)
    return redis.Redis.from_url(
        url,
        decode_responses=True,
        socket_timeout=SOCKET_TIMEOUT,
        socket_connect_timeout=SOCKET_CONNECT_TIMEOUT,
        retry=Retry(NoBackoff(), 0),
    )


def check_health(client) -> bool:
    if client is None:
        return False
    try:
        return bool(client.ping())
    except RedisError:
        return False
