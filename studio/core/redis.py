"""
Redis Connection Manager
Pooled Redis connections for the RQ batch queue.
"""

import logging
from typing import Optional
from redis import Redis, ConnectionPool
from redis.exceptions import ConnectionError, TimeoutError
from functools import lru_cache

from studio.core.config import settings

logger = logging.getLogger(__name__)


class RedisManager:
    """
    Lazily creates one connection pool per process and hands out a shared client.
    Only used when batch jobs are dispatched through RQ.
    """

    _instance: Optional["RedisManager"] = None

    def __init__(self, url: str = None):
        self.url = url or settings.REDIS_URL
        self._pool: Optional[ConnectionPool] = None
        self._client: Optional[Redis] = None

    @classmethod
    def get_instance(cls) -> "RedisManager":
        """Get singleton instance of RedisManager."""
        if cls._instance is None:
            cls._instance = cls()
        return cls._instance

    def get_connection(self) -> Redis:
        """Get a Redis client backed by the shared pool."""
        if self._pool is None:
            self._pool = ConnectionPool.from_url(
                self.url,
                max_connections=10,
                socket_connect_timeout=5,
                socket_timeout=5,
                retry_on_timeout=True,
                decode_responses=False  # RQ needs bytes
            )
            logger.info(f"Created Redis connection pool for {self.mask_url(self.url)}")

        if self._client is None:
            self._client = Redis(connection_pool=self._pool)

        return self._client

    def health_check(self) -> dict:
        """Ping Redis and report server version."""
        try:
            client = self.get_connection()
            ping_result = client.ping()
            info = client.info("server")
            return {
                "status": "healthy" if ping_result else "unhealthy",
                "connected": True,
                "redis_version": info.get("redis_version", "unknown"),
                "url": self.mask_url(self.url)
            }
        except (ConnectionError, TimeoutError) as e:
            logger.error(f"Redis health check failed: {e}")
            return {
                "status": "unhealthy",
                "connected": False,
                "error": str(e),
                "url": self.mask_url(self.url)
            }

    @staticmethod
    def mask_url(url: str) -> str:
        """Hide credentials in a Redis URL before it reaches the logs."""
        if "@" in url:
            scheme = url.split("://", 1)[0] if "://" in url else "redis"
            return f"{scheme}://***@{url.rsplit('@', 1)[-1]}"
        return url

    def close(self):
        """Close all connections in the pool."""
        if self._pool:
            self._pool.disconnect()
            self._pool = None
            self._client = None
            logger.info("Redis connection pool closed")


@lru_cache()
def get_redis_manager() -> RedisManager:
    """Get the singleton Redis manager instance."""
    return RedisManager.get_instance()


def get_redis() -> Redis:
    """Get a Redis connection (convenience function)."""
    return get_redis_manager().get_connection()


def redis_health_check() -> dict:
    """Check Redis health (convenience function)."""
    return get_redis_manager().health_check()


class Queues:
    """Queue names used by the batch dispatcher and the worker script."""
    BATCH = "batch"


__all__ = [
    "RedisManager",
    "get_redis_manager",
    "get_redis",
    "redis_health_check",
    "Queues"
]
