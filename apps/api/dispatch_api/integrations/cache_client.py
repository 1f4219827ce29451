from typing import Protocol

from dispatch_api.config import settings
from dispatch_api.errors import IntegrationUnavailableError
from dispatch_api.integrations.redis_client import RedisClient, RedisProtocolError


class CacheInvalidator(Protocol):
    def invalidate(self, key: str) -> bool: ...


class NoopCacheInvalidator:
    def invalidate(self, key: str) -> bool:
        return True


class RedisCacheInvalidator:
    """Drop cached order views so readers refetch after a status change."""

    def __init__(self, client: RedisClient) -> None:
        self._client = client

    def invalidate(self, key: str) -> bool:
        try:
            self._client.delete(key)
        except (OSError, RedisProtocolError) as err:
            raise IntegrationUnavailableError("cache", str(err)) from err
        return True


def order_cache_keys(order_id: object, customer_id: str) -> list[str]:
    return [f"order:{order_id}", f"orders:{customer_id}", f"user-orders:{customer_id}"]


def get_cache_invalidator() -> CacheInvalidator:
    if settings.redis_url.strip():
        return RedisCacheInvalidator(RedisClient(settings.redis_url))
    return NoopCacheInvalidator()
