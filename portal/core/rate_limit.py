"""Rate limiting configuration for the portal API."""

import logging
import os

from slowapi import Limiter
from slowapi.util import get_remote_address

from portal.core.config import settings

# Falls back to in-memory storage when Redis is not configured or unreachable
REDIS_URL = os.getenv("REDIS_URL", "")
IS_TESTING = os.getenv("TESTING", "").lower() in ("1", "true", "yes")
DEFAULT_LIMITS = (
    []
    if IS_TESTING or settings.RATE_LIMIT_API <= 0
    else [f"{settings.RATE_LIMIT_API}/minute"]
)


def webhook_limit() -> str:
    """Per-minute limit applied to inbound webhooks."""
    if IS_TESTING or settings.RATE_LIMIT_WEBHOOK <= 0:
        return "1000000/minute"
    return f"{settings.RATE_LIMIT_WEBHOOK}/minute"


if IS_TESTING or not REDIS_URL:
    limiter = Limiter(
        key_func=get_remote_address,
        storage_uri="memory://",
        default_limits=DEFAULT_LIMITS,
    )
else:
    try:
        import redis

        r = redis.from_url(REDIS_URL, socket_connect_timeout=1)
        r.ping()
        limiter = Limiter(
            key_func=get_remote_address,
            storage_uri=REDIS_URL,
            default_limits=DEFAULT_LIMITS,
        )
    except Exception as e:
        logging.warning(f"Redis unavailable for rate limiting, using in-memory: {e}")
        limiter = Limiter(
            key_func=get_remote_address,
            storage_uri="memory://",
            default_limits=DEFAULT_LIMITS,
        )
