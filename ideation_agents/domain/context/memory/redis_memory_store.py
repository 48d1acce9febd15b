from typing import Any, Optional
import json

import redis.asyncio as redis
import structlog

from .cache_memory_store import MemoryStore

logger = structlog.get_logger(__name__)


class RedisMemoryStore(MemoryStore):
    """Memory blobs as JSON strings in Redis"""

    def __init__(self, url: str, client: Optional[redis.Redis] = None):
        self._redis = client or redis.Redis.from_url(url, decode_responses=True)

    async def get(self, key: str) -> Optional[Any]:
        raw = await self._redis.get(key)
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except json.JSONDecodeError:
            logger.warning("Discarding undecodable blob", key=key)
            return None

    async def set(self, key: str, value: Any, ttl: int = 3600) -> None:
        await self._redis.set(key, json.dumps(value, ensure_ascii=False), ex=ttl)

    async def delete(self, key: str) -> bool:
        return bool(await self._redis.delete(key))

    async def close(self) -> None:
        await self._redis.aclose()
