# app/infra/redis/redis_factory.py

from typing import Dict

import redis.asyncio as aioredis
from loguru import logger

from app.config.config_settings.config_schema import RedisConfig


class RedisFactory:
    """
    管理所有 Redis 客户端连接的工厂，进程内单例。
    只有分片会话使用 redis 后端时才会在 lifespan 中初始化。
    """
    def __init__(self):
        self._clients: Dict[str, aioredis.Redis] = {}

    async def init_clients(self, redis_config: RedisConfig, names=None):
        """
        按配置初始化客户端；names 为空时初始化配置中的全部客户端。
        """
        wanted = names or list(redis_config.clients.keys())
        for name in wanted:
            config = redis_config.clients.get(name)
            if config is None:
                raise RuntimeError(f"Redis client '{name}' is not configured.")
            try:
                pool = aioredis.ConnectionPool.from_url(
                    config.url,
                    max_connections=config.max_connections,
                    socket_timeout=config.socket_timeout,
                    socket_connect_timeout=config.socket_connect_timeout,
                    retry_on_timeout=True,
                )
                client = aioredis.Redis(connection_pool=pool)
                await client.ping()
                self._clients[name] = client
                logger.info(f"✅ Redis client '{name}' connected successfully.")
            except Exception as e:
                logger.error(f"❌ Failed to initialize Redis client '{name}': {e}")
                raise RuntimeError(f"Could not connect to Redis client '{name}'") from e

    def register_client(self, name: str, client: aioredis.Redis) -> None:
        """直接登记一个已建立的客户端 (例如测试中的内存替身)。"""
        self._clients[name] = client

    def get_client(self, name: str = "default") -> aioredis.Redis:
        client = self._clients.get(name)
        if not client:
            raise RuntimeError(f"❌ Redis client '{name}' is not initialized or configured.")
        return client

    async def close_clients(self):
        for name, client in self._clients.items():
            await client.aclose()
            logger.info(f"🔌 Redis client '{name}' connection closed.")
        self._clients.clear()


redis_factory = RedisFactory()
