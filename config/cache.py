# config/cache.py
import asyncio
from typing import Optional
from redis.asyncio import Redis, from_url
from config.settings import settings
from util.enums import ResultBackend

_client: Optional[Redis] = None
# Item tasks in one window can hit an unwarmed client at the same time
_connect_lock = asyncio.Lock()


def redis_required() -> bool:
    """Redis backs rate limiting and, optionally, result storage; nothing else."""
    return settings.RATE_LIMIT_ENABLED or settings.RESULT_BACKEND == ResultBackend.REDIS


async def get_redis() -> Redis:
    global _client
    if _client is not None:
        return _client
    async with _connect_lock:
        if _client is None:
            client = from_url(
                settings.REDIS_URL,
                decode_responses=False,  # result payloads are stored as JSON bytes
                socket_keepalive=True,
                health_check_interval=30,
            )
            await client.ping()
            _client = client
    return _client


async def close_redis() -> None:
    global _client
    async with _connect_lock:
        if _client is not None:
            await _client.aclose()
            _client = None
