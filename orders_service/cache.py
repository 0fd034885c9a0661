"""
Best-effort Redis accelerator for per-user order lists.

Every redis failure is caught here: get() degrades to a miss and set() to a
no-op. Nothing from this module ever fails a request.

Entries are not invalidated when an order is created. A list read right after
a create may miss the new order until the entry's TTL runs out.
"""

import json
import logging
from typing import Dict, List, Optional

import redis
from pydantic import ValidationError

from orders_service.schemas import Order

logger = logging.getLogger(__name__)


def orders_cache_key(user_id: int) -> str:
    return f"orders:user:{user_id}"


class CacheClient:
    def __init__(self, client: redis.Redis):
        self._client = client
        self.metrics = {"hits": 0, "misses": 0, "errors": 0}

    @classmethod
    def from_url(cls, url: str, timeout: float = 2.0) -> "CacheClient":
        client = redis.Redis.from_url(
            url,
            socket_timeout=timeout,
            socket_connect_timeout=timeout,
        )
        return cls(client)

    def get(self, key: str) -> Optional[bytes]:
        """Return the cached bytes, or None on a miss or any cache failure."""
        try:
            value = self._client.get(key)
        except redis.RedisError as e:
            self.metrics["errors"] += 1
            logger.warning(f"cache degraded: GET {key} failed: {e}")
            return None

        if value is None:
            self.metrics["misses"] += 1
        else:
            self.metrics["hits"] += 1
        return value

    def set_with_ttl(self, key: str, value: bytes, ttl: int) -> bool:
        try:
            self._client.setex(key, ttl, value)
            return True
        except redis.RedisError as e:
            self.metrics["errors"] += 1
            logger.warning(f"cache degraded: SETEX {key} failed: {e}")
            return False

    def get_metrics(self) -> Dict[str, int]:
        return self.metrics.copy()

    def close(self):
        try:
            self._client.close()
        except redis.RedisError as e:
            logger.warning(f"Error closing redis client: {e}")


class OrderListCache:
    """Serializes order lists in and out of the cache under orders:user:<id>."""

    def __init__(self, cache: CacheClient, ttl: int = 3600):
        self.cache = cache
        self.ttl = ttl

    def get(self, user_id: int) -> Optional[List[Order]]:
        raw = self.cache.get(orders_cache_key(user_id))
        if raw is None:
            return None
        try:
            return [Order.model_validate(o) for o in json.loads(raw)]
        except (ValueError, TypeError, ValidationError) as e:
            # unreadable entry: treat as a miss, the store refill overwrites it
            logger.warning(f"cache degraded: bad entry for user {user_id}: {e}")
            return None

    def put(self, user_id: int, orders: List[Order]) -> bool:
        body = json.dumps([o.model_dump(mode="json") for o in orders]).encode("utf-8")
        return self.cache.set_with_ttl(orders_cache_key(user_id), body, self.ttl)
