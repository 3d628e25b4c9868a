from __future__ import annotations

import json
import logging
import threading
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any

from app.config import settings
from app.metrics import record_cache_event


logger = logging.getLogger(__name__)


def _utc_now() -> datetime:
    return datetime.utcnow()


def cache_key(prefix: str, identifier: str | int | None = None) -> str:
    if identifier is None or identifier == '':
        return prefix
    return f"{prefix}:{identifier}"


def normalize_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if value is None:
        return False
    return str(value).strip().lower() in ('1', 'true', 'yes', 'y', 'on')


class CacheBackend:
    # True when every worker process reads and invalidates the same store.
    shared = False

    def get(self, key: str) -> Any | None:
        raise NotImplementedError

    def set(self, key: str, value: Any, ttl: int) -> None:
        raise NotImplementedError

    def delete(self, key: str) -> None:
        raise NotImplementedError

    def delete_prefix(self, prefix: str) -> None:
        raise NotImplementedError


class MemoryCacheBackend(CacheBackend):
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._store: dict[str, tuple[datetime, Any]] = {}

    def get(self, key: str) -> Any | None:
        with self._lock:
            item = self._store.get(key)
            if not item:
                return None
            expires_at, value = item
            if _utc_now() >= expires_at:
                self._store.pop(key, None)
                return None
            return value

    def set(self, key: str, value: Any, ttl: int) -> None:
        expires_at = _utc_now() + timedelta(seconds=max(1, int(ttl)))
        with self._lock:
            self._store[key] = (expires_at, value)

    def delete(self, key: str) -> None:
        with self._lock:
            self._store.pop(key, None)

    def delete_prefix(self, prefix: str) -> None:
        with self._lock:
            keys = [key for key in self._store.keys() if key.startswith(prefix)]
            for key in keys:
                self._store.pop(key, None)


class RedisCacheBackend(CacheBackend):
    shared = True

    def __init__(self, redis_url: str) -> None:
        import redis

        self._client = redis.Redis.from_url(redis_url, decode_responses=True)

    def get(self, key: str) -> Any | None:
        raw = self._client.get(key)
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except json.JSONDecodeError:
            return raw

    def set(self, key: str, value: Any, ttl: int) -> None:
        payload = json.dumps(value, default=str)
        self._client.setex(key, max(1, int(ttl)), payload)

    def delete(self, key: str) -> None:
        self._client.delete(key)

    def delete_prefix(self, prefix: str) -> None:
        cursor = 0
        pattern = f"{prefix}*"
        while True:
            cursor, keys = self._client.scan(cursor=cursor, match=pattern, count=200)
            if keys:
                self._client.delete(*keys)
            if cursor == 0:
                break


@dataclass
class CacheManager:
    backend: CacheBackend

    @property
    def shared(self) -> bool:
        return bool(self.backend.shared)

    def get_cached(self, key: str) -> Any | None:
        value = self.backend.get(key)
        if value is not None:
            record_cache_event('cache_hit')
            logger.debug('cache hit: %s', key)
        else:
            record_cache_event('cache_miss')
            logger.debug('cache miss: %s', key)
        return value

    def set_cached(self, key: str, value: Any, ttl: int) -> None:
        self.backend.set(key, value, ttl)
        logger.debug('cache set: %s ttl=%s', key, ttl)

    def invalidate_prefix(self, prefix: str) -> None:
        self.backend.delete_prefix(prefix)
        record_cache_event('cache_invalidate')
        logger.debug('cache invalidate prefix: %s', prefix)


def _build_cache_backend() -> CacheBackend:
    if settings.cache_backend == 'redis' and settings.cache_redis_url:
        try:
            return RedisCacheBackend(settings.cache_redis_url)
        except Exception:
            logger.exception('redis_cache_init_failed_falling_back_to_memory')
    return MemoryCacheBackend()


cache = CacheManager(backend=_build_cache_backend())
