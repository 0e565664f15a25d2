"""
Lookup cache shared by the indexer resolvers.

Values are stored as JSON under a ``littlefish:`` key prefix in Redis when
REDIS_HOST is set and reachable. Otherwise they go to a bounded in-process store
that evicts least recently used entries once MEMORY_CACHE_MAX_SIZE bytes are held.
An unreachable Redis is retried at most every REDIS_RECHECK_INTERVAL seconds.
"""

import json
import logging
import time
from collections import OrderedDict
from threading import Lock
from typing import Any, Dict, Optional, Tuple

from redis import Connection, ConnectionPool, Redis, RedisError, SSLConnection

from littlefish.core.config import settings

logger = logging.getLogger(__name__)

KEY_PREFIX = "littlefish:"

# cache type -> ttl in seconds, None never expires
CACHE_TYPE: Dict[str, Optional[int]] = {
    'no-exp': None,
    'in-1m': 60,
    'in-5m': 300,
    'in-1h': 3600,
}


def resolve_cache_ttl(cache_type: str) -> Optional[int]:
    if cache_type not in CACHE_TYPE:
        raise ValueError(f"unknown cache type: {cache_type}")
    return CACHE_TYPE[cache_type]


class HybridCacheManager:
    """Redis with an in-memory fallback, one instance per process"""

    _instance: Optional['HybridCacheManager'] = None
    _lock = Lock()

    def __new__(cls):
        if cls._instance is None:
            with cls._lock:
                if cls._instance is None:
                    cls._instance = super().__new__(cls)
                    cls._instance._initialized = False
        return cls._instance

    def __init__(self):
        if self._initialized:
            return
        self.pool: Optional[ConnectionPool] = None
        if settings.REDIS_HOST and settings.REDIS_HOST.strip():
            self.pool = ConnectionPool(
                host=settings.REDIS_HOST,
                port=settings.REDIS_PORT,
                socket_connect_timeout=0.05,
                socket_timeout=5,
                max_connections=settings.REDIS_MAX_CONNECTIONS,
                connection_class=SSLConnection if settings.REDIS_SSL else Connection,
            )
        self._redis_down_since: Optional[float] = None
        # key -> (payload, expires_at)
        self._memory: "OrderedDict[str, Tuple[bytes, Optional[float]]]" = OrderedDict()
        self._memory_bytes = 0
        self._memory_lock = Lock()
        self._initialized = True

    def _redis(self) -> Optional[Redis]:
        if self.pool is None:
            return None
        if self._redis_down_since is not None:
            if time.time() - self._redis_down_since < settings.REDIS_RECHECK_INTERVAL:
                return None
        client = Redis(connection_pool=self.pool)
        try:
            client.ping()
        except RedisError as e:
            if self._redis_down_since is None:
                logger.warning("redis unavailable, using memory cache: %s", e)
            self._redis_down_since = time.time()
            return None
        if self._redis_down_since is not None:
            logger.info("redis reachable again")
            self._redis_down_since = None
        return client

    def get(self, key: str) -> Optional[Any]:
        key = KEY_PREFIX + key
        payload: Optional[bytes] = None
        client = self._redis()
        if client is not None:
            try:
                payload = client.get(key)
            except RedisError as e:
                logger.warning("redis get %s failed: %s", key, e)
        if payload is None:
            payload = self._memory_get(key)
        if payload is None:
            return None
        try:
            return json.loads(payload)
        except ValueError:
            return None

    def set(self, key: str, value: Any, cache_type: str = 'in-5m') -> None:
        key = KEY_PREFIX + key
        ttl = resolve_cache_ttl(cache_type)
        payload = json.dumps(value, default=str).encode('utf-8')
        client = self._redis()
        if client is not None:
            try:
                client.set(key, payload, ex=ttl)
                return
            except RedisError as e:
                logger.warning("redis set %s failed: %s", key, e)
        self._memory_set(key, payload, ttl)

    def clear_memory(self) -> None:
        with self._memory_lock:
            self._memory.clear()
            self._memory_bytes = 0

    def _memory_get(self, key: str) -> Optional[bytes]:
        with self._memory_lock:
            entry = self._memory.get(key)
            if entry is None:
                return None
            payload, expires_at = entry
            if expires_at is not None and expires_at <= time.time():
                del self._memory[key]
                self._memory_bytes -= len(payload)
                return None
            self._memory.move_to_end(key)
            return payload

    def _memory_set(self, key: str, payload: bytes, ttl: Optional[int]) -> None:
        expires_at = None if ttl is None else time.time() + ttl
        with self._memory_lock:
            old = self._memory.pop(key, None)
            if old is not None:
                self._memory_bytes -= len(old[0])
            while self._memory and self._memory_bytes + len(payload) > settings.MEMORY_CACHE_MAX_SIZE:
                _, (evicted, _) = self._memory.popitem(last=False)
                self._memory_bytes -= len(evicted)
            self._memory[key] = (payload, expires_at)
            self._memory_bytes += len(payload)


cache_manager = HybridCacheManager()
