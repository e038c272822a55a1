"""Per-user request throttling and checkout idempotency, backed by Redis."""
from __future__ import annotations

import logging
import time
from typing import Optional

import redis.asyncio as redis

from streamsub.core.config import settings
from streamsub.core.exceptions import AppException, ConflictException


logger = logging.getLogger(__name__)

_redis_client: redis.Redis | None = None


class RateLimitExceeded(AppException):
    status_code = 429
    code = "rate_limit_exceeded"
    default_message = "Too many subscription requests; try again shortly"


async def _get_client() -> redis.Redis:
    global _redis_client
    if _redis_client is None:
        _redis_client = redis.from_url(str(settings.REDIS_URI), decode_responses=True)
    return _redis_client


async def close_client() -> None:
    global _redis_client
    if _redis_client is not None:
        await _redis_client.aclose()
    _redis_client = None


async def check_rate_limit(user_id: str, scope: str = "subscriptions") -> None:
    """Fixed one-minute window per user and scope."""

    client = await _get_client()
    window = int(time.time() // 60)
    key = f"rl:{scope}:{user_id}:{window}"
    hits = await client.incr(key)
    if hits == 1:
        await client.expire(key, 60)
    if hits > settings.RATE_LIMIT_RPM:
        logger.warning(f"Rate limit hit for user {user_id} on {scope} ({hits} requests this minute)")
        raise RateLimitExceeded()


async def ensure_idempotent(user_id: str, key: Optional[str], scope: str = "checkout") -> None:
    """Claim ``key`` for this user; a replay inside the TTL is a conflict.

    Requests without an ``Idempotency-Key`` header are never deduplicated.
    """

    if not key:
        return
    client = await _get_client()
    claimed = await client.set(
        f"idemp:{scope}:{user_id}:{key}",
        "1",
        ex=settings.limits.idempotency_ttl_seconds,
        nx=True,
    )
    if not claimed:
        raise ConflictException("Duplicate request (idempotency)")
