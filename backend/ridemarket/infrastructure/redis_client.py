"""
Redis client for admission control.
Separated from business logic for clean architecture.
"""

from typing import Optional

import redis.asyncio as redis

from ridemarket.core.config import get_settings


class RedisClient:
    """Process-wide async Redis client with connection pooling."""

    _instance: Optional[redis.Redis] = None

    @classmethod
    def get_client(cls) -> redis.Redis:
        """Get or create Redis client instance."""
        if cls._instance is None:
            cls._instance = redis.from_url(
                get_settings().REDIS_URL,
                decode_responses=True,
                socket_connect_timeout=5,
                socket_timeout=5,
                retry_on_timeout=True,
                health_check_interval=30,
            )
        return cls._instance

    @classmethod
    async def close(cls):
        """Close Redis connection."""
        if cls._instance:
            await cls._instance.aclose()
            cls._instance = None


# Convenience function
def get_redis() -> redis.Redis:
    """Get Redis client instance."""
    return RedisClient.get_client()
