import logging

import redis.asyncio as redis

from gtreinamento.config import settings

logger = logging.getLogger(__name__)

_pool: redis.Redis | None = None


async def get_redis() -> redis.Redis:
    """Shared async Redis connection, created on first use."""
    global _pool
    if _pool is None:
        logger.info("Conectando ao Redis em %s", settings.redis_url.rsplit("@", 1)[-1])
        _pool = redis.from_url(
            settings.redis_url,
            decode_responses=True,
            socket_connect_timeout=5,
        )
    return _pool


async def close_redis() -> None:
    global _pool
    if _pool is not None:
        await _pool.aclose()
        _pool = None
