from __future__ import annotations
import logging
import redis.asyncio as redis
from .config import get_settings

logger = logging.getLogger(__name__)

_settings = get_settings()
_r: redis.Redis | None = None

def get_redis() -> redis.Redis:
    global _r
    if _r is None:
        _r = redis.from_url(_settings.redis_url, decode_responses=True)
    return _r

async def ping_redis() -> bool:
    try:
        r = get_redis()
        pong = await r.ping()
        return bool(pong)
    except Exception as e:
        logger.warning(f"Redis ping failed: {e}")
        return False

# ---- Fixed-window request throttle per IP/route ----
async def allow_request(ip: str, route_key: str) -> bool:
    """
    Throttles request bursts (double taps, scripted retries) before any
    database work. The daily check-in caps are enforced in the database,
    not here.
    """
    if not _settings.rl_enabled:
        return True
    r = get_redis()
    key = f"rl:{route_key}:{ip}"
    # INCR and refresh the window expiry
    pipe = r.pipeline()
    pipe.incr(key)
    pipe.expire(key, _settings.rl_window_seconds)
    count, _ = await pipe.execute()
    return int(count) <= _settings.rl_max_reqs
