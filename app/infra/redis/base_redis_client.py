# app/infra/redis/base_redis_client.py

import json
from typing import Any, Optional, Set

from loguru import logger
from redis.asyncio.client import Redis as AsyncRedis


class BaseRedisClient:
    """
    Redis 命令的薄封装：JSON 序列化 + Set 操作。
    不管理连接，接收一个已经建立好的 client 实例。
    """

    def __init__(self, client: AsyncRedis, serializer: str = "json"):
        if serializer != "json":
            raise ValueError(f"Unsupported serializer: {serializer}")
        self._client = client

    async def set_obj(self, key: str, obj: Any, ex: Optional[int] = None):
        await self._client.set(name=key, value=json.dumps(obj), ex=ex)

    async def get_obj(self, key: str) -> Optional[Any]:
        val = await self._client.get(name=key)
        if not val:
            return None
        try:
            return json.loads(val)
        except (json.JSONDecodeError, TypeError) as e:
            logger.warning(f"Redis get_obj deserialization failed for key '{key}': {e}")
            return None

    async def delete(self, *keys: str):
        return await self._client.delete(*keys)

    async def exists(self, *keys: str) -> bool:
        return await self._client.exists(*keys) > 0

    async def expire(self, key: str, seconds: int):
        return await self._client.expire(key, seconds)

    # ==================== Set ====================
    async def sadd(self, name: str, *values: Any) -> int:
        return await self._client.sadd(name, *values)

    async def srem(self, name: str, *values: Any) -> int:
        return await self._client.srem(name, *values)

    async def smembers(self, name: str) -> Set:
        return await self._client.smembers(name)

    async def scard(self, name: str) -> int:
        return await self._client.scard(name)

    # ==================== 分布式锁 ====================
    async def acquire_lock(self, key: str, timeout: int = 10, value: str = "1") -> bool:
        return bool(await self._client.set(name=key, value=value, ex=timeout, nx=True))

    async def release_lock(self, key: str):
        await self._client.delete(key)
