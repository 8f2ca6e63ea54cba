import threading
from typing import Optional

from cachetools import TTLCache

from utils.redis import RedisClient


class EventDedupCache:
    """
    Fast-path memory of fully processed dedup keys.

    Backed by redis when enabled, otherwise by an in-process TTL cache. This only
    short-circuits redeliveries; the processed-event rows written with each tile
    update remain the authoritative record.
    """
    KEY_PREFIX = "bingo:event:"

    def __init__(self, ttl: int = 86400, redis_client: Optional[RedisClient] = None, maxsize: int = 100_000):
        self.ttl = ttl
        self.redis_client = redis_client
        self._cache = TTLCache(maxsize=maxsize, ttl=ttl)
        self._guard = threading.Lock()

    def seen(self, dedup_key: str) -> bool:
        if self.redis_client is not None:
            return self.redis_client.exists(self.KEY_PREFIX + dedup_key)
        with self._guard:
            return dedup_key in self._cache

    def remember(self, dedup_key: str) -> None:
        if self.redis_client is not None:
            self.redis_client.set_if_absent(self.KEY_PREFIX + dedup_key, "1", self.ttl)
            return
        with self._guard:
            self._cache[dedup_key] = True
