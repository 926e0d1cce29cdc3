"""Revoked-session registry backed by Redis.

Logging out stores ``revoked:<jti>`` with a TTL equal to what is left of the
token lifetime, so the key disappears on its own once the token would have
expired anyway.
"""

import logging
from datetime import datetime, timezone

from gtreinamento.redis import get_redis

logger = logging.getLogger(__name__)

_KEY_PREFIX = "revoked:"


def _remaining_seconds(exp: int) -> int:
    return exp - int(datetime.now(timezone.utc).timestamp())


async def revoke_token(jti: str, exp: int) -> None:
    ttl = _remaining_seconds(exp)
    if ttl <= 0:
        return

    r = await get_redis()
    await r.setex(f"{_KEY_PREFIX}{jti}", ttl, "1")
    logger.info("Sessão revogada: jti=%s, ttl=%ds", jti, ttl)


async def revoke_payload(payload: dict) -> bool:
    """Revoke a decoded access token; returns False when claims are missing."""
    jti = payload.get("jti")
    exp = payload.get("exp")
    if not jti or not exp:
        return False
    await revoke_token(jti, int(exp))
    return True


async def is_token_revoked(jti: str) -> bool:
    r = await get_redis()
    return await r.exists(f"{_KEY_PREFIX}{jti}") > 0
