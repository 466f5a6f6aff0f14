import asyncio
from typing import Dict, Optional

import redis.asyncio as aioredis
from redis.exceptions import RedisError

from constants import REDIS_HOST, REDIS_PORT, REDIS_PASSWORD, STORE_BACKEND
from errors import StoreUnavailable
from redis_keys import NAMESPACED_KEY
from logging_config import get_logger

logger = get_logger(__name__)


class RedisBackend:
    """Namespaced string key-value store on top of a single Redis database."""

    def __init__(self, host: str = REDIS_HOST, port: int = REDIS_PORT, password: Optional[str] = REDIS_PASSWORD, client: Optional[aioredis.Redis] = None):
        logger.info(f"Initializing RedisBackend with connection to {host}:{port}")
        self.host = host
        self.port = port
        self.redis_client = client or aioredis.Redis(host=host, port=port, password=password, decode_responses=True)

    async def connect(self):
        try:
            await self.redis_client.ping()
            logger.info(f"Redis client connected successfully to {self.host}:{self.port}")
        except RedisError as e:
            logger.error(f"Failed to connect to Redis at {self.host}:{self.port}: {e}", exc_info=True)
            raise StoreUnavailable(f"Redis unavailable at {self.host}:{self.port}") from e

    async def close(self):
        await self.redis_client.aclose()
        logger.info("Redis client closed")

    async def get(self, namespace: str, key: str) -> Optional[str]:
        full_key = NAMESPACED_KEY.format(namespace=namespace, key=key)
        logger.debug(f"Fetching {full_key}")
        try:
            return await self.redis_client.get(full_key)
        except RedisError as e:
            logger.error(f"Redis get failed for {full_key}: {e}")
            raise StoreUnavailable(f"Failed to read {key}: {e}") from e

    async def put(self, namespace: str, key: str, value: str) -> bool:
        full_key = NAMESPACED_KEY.format(namespace=namespace, key=key)
        logger.debug(f"Writing {full_key} ({len(value)} bytes)")
        try:
            await self.redis_client.set(full_key, value)
        except RedisError as e:
            logger.error(f"Redis put failed for {full_key}: {e}")
            raise StoreUnavailable(f"Failed to write {key}: {e}") from e
        return True

    async def delete(self, namespace: str, key: str) -> bool:
        full_key = NAMESPACED_KEY.format(namespace=namespace, key=key)
        logger.debug(f"Deleting {full_key}")
        try:
            deleted = await self.redis_client.delete(full_key)
        except RedisError as e:
            logger.error(f"Redis delete failed for {full_key}: {e}")
            raise StoreUnavailable(f"Failed to delete {key}: {e}") from e
        return bool(deleted)


class MemoryBackend:
    """In-process store with the same contract as RedisBackend. Used by tests and local runs."""

    def __init__(self):
        self.data: Dict[str, Dict[str, str]] = {}
        self._lock = asyncio.Lock()

    async def connect(self):
        logger.info("Using in-memory store, data will not survive a restart")

    async def close(self):
        pass

    async def get(self, namespace: str, key: str) -> Optional[str]:
        return self.data.get(namespace, {}).get(key)

    async def put(self, namespace: str, key: str, value: str) -> bool:
        if not isinstance(value, str):
            raise TypeError(f"Store values must be strings, got {type(value).__name__}")
        async with self._lock:
            self.data.setdefault(namespace, {})[key] = value
        return True

    async def delete(self, namespace: str, key: str) -> bool:
        async with self._lock:
            return self.data.get(namespace, {}).pop(key, None) is not None


def build_backend(kind: str = STORE_BACKEND):
    if kind == "redis":
        return RedisBackend()
    if kind == "memory":
        return MemoryBackend()
    raise ValueError(f"Unknown STORE_BACKEND: {kind}")
