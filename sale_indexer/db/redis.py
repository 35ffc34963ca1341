"""Redis connection plus the small cursor helper used by the pollers.

Cursors (last processed block, last seen comment id) live under
``sale_indexer:cursor:<name>``. When Redis is unavailable the cursor falls back
to process memory, so a restart replays from the configured start point.
"""

from loguru import logger
from redis.asyncio import Redis

CURSOR_KEY_PREFIX = "sale_indexer:cursor:"

_redis_client: Redis | None = None


async def get_redis(redis_url: str) -> Redis | None:
    """Connect once; return None if the server does not answer a ping."""
    global _redis_client
    if _redis_client is None:
        client = Redis.from_url(redis_url, decode_responses=True)
        try:
            await client.ping()
        except Exception as e:
            logger.warning(f"[REDIS] Unavailable ({e}), cursors kept in memory")
            await client.aclose()
            return None
        _redis_client = client
    return _redis_client


async def close_redis() -> None:
    global _redis_client
    if _redis_client:
        await _redis_client.aclose()
        _redis_client = None


class Cursor:
    """Integer high-water mark, persisted in Redis when available."""

    def __init__(self, name: str, redis: Redis | None = None, default: int = 0) -> None:
        self._key = f"{CURSOR_KEY_PREFIX}{name}"
        self._redis = redis
        self._value = default
        self._loaded = False

    async def get(self) -> int:
        if not self._loaded:
            self._loaded = True
            if self._redis is not None:
                try:
                    raw = await self._redis.get(self._key)
                    if raw is not None:
                        self._value = int(raw)
                except Exception as e:
                    logger.warning(f"[REDIS] Cursor read failed for {self._key}: {e}")
        return self._value

    async def set(self, value: int) -> None:
        self._value = value
        self._loaded = True
        if self._redis is not None:
            try:
                await self._redis.set(self._key, str(value))
            except Exception as e:
                logger.warning(f"[REDIS] Cursor write failed for {self._key}: {e}")
