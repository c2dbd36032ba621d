"""
Redis Lookup Cache

Hash-per-row cache of dimension rows:
- One Redis hash per (table, id), one hash field per dimension column
- Per-key TTL set in the same transaction that populates a row
- Field-level writes so partially cached rows can be repaired in place
"""

from typing import Dict, Mapping, Optional

import structlog
from redis import ConnectionPool, Redis
from redis.exceptions import RedisError

from sku_enrichment.config.settings import RedisSettings

logger = structlog.get_logger(__name__)


def cache_key(table: str, entity_id: str) -> str:
    """Cache key of a dimension row"""
    return f"{table}:{entity_id}"


class LookupCache:
    """
    Thin wrapper over one Redis client handle.

    Every write that can create a hash also gives it a TTL, in the same
    MULTI/EXEC transaction, so no entry outlives the configured expiry.

    Example:
        cache = factory.acquire()
        if cache.exists(key):
            row = cache.get_all(key)
        cache.close()
    """

    def __init__(self, client: Redis):
        self._client = client

    def exists(self, key: str) -> bool:
        return bool(self._client.exists(key))

    def get_all(self, key: str) -> Dict[str, str]:
        return dict(self._client.hgetall(key))

    def set_field(self, key: str, field: str, value: str, ttl_seconds: int) -> None:
        """
        Write one field of an existing entry.

        The entry keeps its remaining TTL; ``ttl_seconds`` only applies when
        the key had expired in the meantime and the write recreated it.
        Needs Redis 7+ for ``EXPIRE ... NX``.
        """
        pipe = self._client.pipeline(transaction=True)
        pipe.hset(key, field, value)
        pipe.expire(key, ttl_seconds, nx=True)
        pipe.execute()

    def set_fields(self, key: str, values: Mapping[str, str], ttl_seconds: int) -> None:
        """Write a full row and (re)start its TTL"""
        if not values:
            return
        pipe = self._client.pipeline(transaction=True)
        pipe.hset(key, mapping=dict(values))
        pipe.expire(key, ttl_seconds)
        pipe.execute()

    def close(self) -> None:
        self._client.close()


class RedisCacheFactory:
    """
    Hands out single-connection cache handles backed by a shared pool.

    Each handle pins one pooled connection until it is closed, so a partition
    worker talks to Redis over exactly one connection.
    """

    def __init__(self, config: RedisSettings):
        self._pool: Optional[ConnectionPool] = ConnectionPool.from_url(
            config.get_url(),
            max_connections=config.max_connections,
            socket_timeout=config.socket_timeout,
            socket_connect_timeout=config.socket_timeout,
            decode_responses=True,
        )

    def acquire(self) -> LookupCache:
        """Open a cache handle; connection failures propagate."""
        if self._pool is None:
            raise RuntimeError("Cache factory is closed")
        client = Redis(connection_pool=self._pool, single_connection_client=True)
        return LookupCache(client)

    def ping(self) -> bool:
        if self._pool is None:
            return False
        client = Redis(connection_pool=self._pool)
        try:
            return bool(client.ping())
        except RedisError as e:
            logger.error("Redis ping failed", error=str(e))
            return False
        finally:
            client.close()

    def close(self) -> None:
        if self._pool is not None:
            self._pool.disconnect()
            self._pool = None
            logger.info("Redis connection pool closed")
