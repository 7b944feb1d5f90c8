"""Rate limiting (slowapi) shared by all routers."""

import logging
import os

from slowapi import Limiter
from slowapi.util import get_remote_address

from servicedesk.core.config import settings

logger = logging.getLogger(__name__)

REDIS_URL = os.getenv("REDIS_URL", "redis://localhost:6379/0")
IS_TESTING = os.getenv("TESTING", "").lower() in ("1", "true", "yes")
MEMORY_STORAGE = "memory://"


def _default_limits() -> list[str]:
    if IS_TESTING or settings.RATE_LIMIT_API <= 0:
        return []
    return [f"{settings.RATE_LIMIT_API}/minute"]


def _storage_uri() -> str:
    """Redis when reachable (shared across workers), otherwise in-process memory."""
    if IS_TESTING:
        return MEMORY_STORAGE
    try:
        import redis

        redis.from_url(REDIS_URL, socket_connect_timeout=1).ping()
    except Exception as e:
        logger.warning("Redis unavailable for rate limiting, using in-memory: %s", e)
        return MEMORY_STORAGE
    return REDIS_URL


limiter = Limiter(
    key_func=get_remote_address,
    storage_uri=_storage_uri(),
    default_limits=_default_limits(),
)
