"""
Redis Cache Module

JSON read-through cache for the warehouse analytics endpoints. Keys live
under a namespace (``analytics:kpis``, ``analytics:top_customers:5``) so a
rebuild can drop all of them at once.
"""

import json
from typing import Any, Awaitable, Callable, Optional

import structlog
from redis.asyncio import Redis

logger = structlog.get_logger(__name__)


async def cache_get(client: Redis, key: str) -> Optional[Any]:
    """Decoded JSON value at ``key``, or None when absent."""
    raw = await client.get(key)
    return None if raw is None else json.loads(raw)


async def cache_set(client: Redis, key: str, value: Any, ttl: Optional[int] = None) -> None:
    """Store ``value`` as JSON, expiring after ``ttl`` seconds when given."""
    payload = json.dumps(value, default=str)
    if ttl:
        await client.setex(key, ttl, payload)
    else:
        await client.set(key, payload)


async def cache_delete_pattern(client: Redis, pattern: str) -> int:
    """Delete every key matching a glob pattern; returns the number removed."""
    keys = [key async for key in client.scan_iter(match=pattern)]
    return await client.delete(*keys) if keys else 0


class CacheManager:
    """
    Namespaced cache with a default TTL.

    ``invalidate_all`` bumps a generation counter kept in Redis, outside the
    namespace. A read that started before an invalidation does not write
    its result back, so a slow query over old data cannot outlive the
    invalidation.

    Example:
        cache = CacheManager(redis, "analytics", default_ttl=600)
        kpis = await cache.get_or_set("kpis", analytics.kpis)
    """

    def __init__(self, client: Redis, namespace: str, default_ttl: int = 600):
        self.client = client
        self.namespace = namespace
        self.default_ttl = default_ttl
        self.generation_key = f"cache-generation:{namespace}"

    def key(self, name: str) -> str:
        return f"{self.namespace}:{name}"

    async def get(self, name: str) -> Optional[Any]:
        return await cache_get(self.client, self.key(name))

    async def set(self, name: str, value: Any, ttl: Optional[int] = None) -> None:
        await cache_set(self.client, self.key(name), value, ttl or self.default_ttl)

    async def generation(self) -> int:
        raw = await self.client.get(self.generation_key)
        return 0 if raw is None else int(raw)

    async def invalidate_all(self) -> int:
        """Start a new generation and drop every key in the namespace."""
        await self.client.incr(self.generation_key)
        return await cache_delete_pattern(self.client, f"{self.namespace}:*")

    async def get_or_set(
        self,
        name: str,
        factory: Callable[[], Awaitable[Any]],
        ttl: Optional[int] = None,
    ) -> Any:
        """
        Cached value, or the factory's result stored for next time.

        The result is not stored when the namespace was invalidated while
        the factory ran. Redis being unavailable degrades to calling the
        factory; it never fails the caller.
        """
        try:
            generation = await self.generation()
            cached = await self.get(name)
        except Exception as e:
            logger.warning("Cache read failed", key=self.key(name), error=str(e))
            return await factory()

        if cached is not None:
            return cached

        value = await factory()
        try:
            if await self.generation() == generation:
                await self.set(name, value, ttl)
            else:
                logger.debug("Cache write skipped, namespace invalidated during read", key=self.key(name))
        except Exception as e:
            logger.warning("Cache write failed", key=self.key(name), error=str(e))
        return value
