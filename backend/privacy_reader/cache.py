"""Key-value cache fronting fetched HTML and AI analysis results.

Two interchangeable backends: an in-process store (default / development) and
Valkey (Redis-compatible, production). Cache failures never fail a request:
errors are logged and treated as a miss, and a Valkey connection failure
permanently downgrades the process to the in-process store.
"""

from __future__ import annotations

import json
import logging
import time
from abc import ABC, abstractmethod
from typing import Any, TypeVar

from pydantic import BaseModel, ValidationError as PydanticValidationError
from redis import exceptions as redis_exceptions
from redis.asyncio import Redis

from privacy_reader.core.config import Settings

logger = logging.getLogger(__name__)

T = TypeVar("T", bound=BaseModel)

HTML_NAMESPACE = "html"
ANALYSIS_NAMESPACE = "analysis"

_VALKEY_PREFIX = "cache:"
_CONNECTION_ERRORS = (redis_exceptions.ConnectionError, redis_exceptions.TimeoutError, OSError)


def cache_key(namespace: str, key: str) -> str:
    """Namespaced key, e.g. ``html:https://example.com/privacy``."""
    return f"{namespace}:{key}"


class CacheBackend(ABC):
    name: str

    @abstractmethod
    async def get(self, key: str) -> str | None: ...

    @abstractmethod
    async def set(self, key: str, value: str, ttl_seconds: int) -> None: ...

    @abstractmethod
    async def delete(self, key: str) -> None: ...

    @abstractmethod
    async def clear(self) -> None: ...

    async def close(self) -> None:
        return None

    def stats(self) -> dict[str, Any]:
        return {"type": self.name}


class MemoryCacheBackend(CacheBackend):
    """Process-local store with per-key expiry; expired keys are dropped lazily and by a periodic sweep."""

    name = "memory"

    def __init__(self, *, check_period_seconds: float = 600.0, clock=time.monotonic) -> None:
        self._entries: dict[str, tuple[str, float]] = {}
        self._check_period = check_period_seconds
        self._clock = clock
        self._last_sweep = clock()
        self._hits = 0
        self._misses = 0

    async def get(self, key: str) -> str | None:
        entry = self._entries.get(key)
        if entry is None:
            self._misses += 1
            return None
        value, expires_at = entry
        if expires_at <= self._clock():
            self._entries.pop(key, None)
            self._misses += 1
            return None
        self._hits += 1
        return value

    async def set(self, key: str, value: str, ttl_seconds: int) -> None:
        now = self._clock()
        self._entries[key] = (value, now + ttl_seconds)
        if now - self._last_sweep >= self._check_period:
            self.sweep()

    async def delete(self, key: str) -> None:
        self._entries.pop(key, None)

    async def clear(self) -> None:
        self._entries.clear()

    def sweep(self) -> int:
        """Drop every expired entry; returns how many were removed."""
        now = self._clock()
        expired = [k for k, (_, expires_at) in self._entries.items() if expires_at <= now]
        for k in expired:
            del self._entries[k]
        self._last_sweep = now
        return len(expired)

    def stats(self) -> dict[str, Any]:
        return {"type": self.name, "keys": len(self._entries), "hits": self._hits, "misses": self._misses}


class ValkeyCacheBackend(CacheBackend):
    name = "valkey"

    def __init__(self, client: Redis) -> None:
        self._client = client

    @classmethod
    def from_url(cls, url: str) -> "ValkeyCacheBackend":
        return cls(Redis.from_url(url, decode_responses=False, socket_timeout=5, socket_connect_timeout=5))

    async def ping(self) -> None:
        await self._client.ping()

    async def get(self, key: str) -> str | None:
        raw = await self._client.get(f"{_VALKEY_PREFIX}{key}")
        if raw is None:
            return None
        return raw.decode("utf-8") if isinstance(raw, bytes) else raw

    async def set(self, key: str, value: str, ttl_seconds: int) -> None:
        await self._client.set(f"{_VALKEY_PREFIX}{key}", value.encode("utf-8"), ex=ttl_seconds)

    async def delete(self, key: str) -> None:
        await self._client.delete(f"{_VALKEY_PREFIX}{key}")

    async def clear(self) -> None:
        keys = [k async for k in self._client.scan_iter(match=f"{_VALKEY_PREFIX}*")]
        if keys:
            await self._client.delete(*keys)

    async def close(self) -> None:
        await self._client.aclose()


class PolicyCache:
    """
    Cache facade used by the Fetcher and the AI Analyzer.

    Values are stored as JSON in every backend. ``get`` returns ``None`` on a
    miss or on any backend error; ``set`` returns ``False`` instead of raising.
    """

    def __init__(self, backend: CacheBackend) -> None:
        self._backend = backend
        self.degraded = False

    @property
    def backend_name(self) -> str:
        return self._backend.name

    async def get(self, key: str) -> Any | None:
        try:
            raw = await self._backend.get(key)
        except _CONNECTION_ERRORS as e:
            await self.downgrade(e)
            return None
        except Exception as e:
            logger.warning("Cache get error for key %s: %s", key, e)
            return None
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except json.JSONDecodeError:
            logger.warning("Discarding undecodable cache entry %s", key)
            return None

    async def set(self, key: str, value: Any, ttl_seconds: int) -> bool:
        try:
            payload = value.model_dump_json() if isinstance(value, BaseModel) else json.dumps(value)
            await self._backend.set(key, payload, ttl_seconds)
            return True
        except _CONNECTION_ERRORS as e:
            await self.downgrade(e)
            return False
        except Exception as e:
            logger.warning("Cache set error for key %s: %s", key, e)
            return False

    async def delete(self, key: str) -> bool:
        try:
            await self._backend.delete(key)
            return True
        except _CONNECTION_ERRORS as e:
            await self.downgrade(e)
            return False
        except Exception as e:
            logger.warning("Cache delete error for key %s: %s", key, e)
            return False

    async def clear(self) -> bool:
        try:
            await self._backend.clear()
            return True
        except _CONNECTION_ERRORS as e:
            await self.downgrade(e)
            return False
        except Exception as e:
            logger.warning("Cache clear error: %s", e)
            return False

    async def get_model(self, key: str, model: type[T]) -> T | None:
        """Retrieve a value by key and validate it into *model*; invalid entries count as a miss."""
        data = await self.get(key)
        if data is None:
            return None
        try:
            return model.model_validate(data)
        except PydanticValidationError as e:
            logger.warning("Cached value for %s does not match %s: %s", key, model.__name__, e)
            return None

    async def set_model(self, key: str, value: BaseModel, ttl_seconds: int) -> bool:
        return await self.set(key, value.model_dump(mode="json"), ttl_seconds)

    def stats(self) -> dict[str, Any]:
        return {**self._backend.stats(), "degraded": self.degraded}

    async def close(self) -> None:
        try:
            await self._backend.close()
        except Exception as e:
            logger.warning("Error closing cache backend: %s", e)

    async def downgrade(self, error: BaseException) -> None:
        if isinstance(self._backend, MemoryCacheBackend):
            return
        logger.error("Cache backend %s unavailable (%s)", self._backend.name, error)
        logger.warning("Falling back to memory cache for the rest of this process")
        previous = self._backend
        self._backend = MemoryCacheBackend()
        self.degraded = True
        try:
            await previous.close()
        except Exception as e:
            logger.debug("Error closing %s backend after downgrade: %s", previous.name, e)


async def create_cache(settings: Settings) -> PolicyCache:
    """Pick the backend once at startup: Valkey in production when configured, memory otherwise."""
    if settings.valkey_url and settings.is_production:
        backend = ValkeyCacheBackend.from_url(settings.valkey_url)
        cache = PolicyCache(backend)
        try:
            await backend.ping()
        except _CONNECTION_ERRORS as e:
            await cache.downgrade(e)
            return cache
        logger.info("Valkey cache initialized")
        return cache
    logger.info("Using in-memory cache")
    return PolicyCache(MemoryCacheBackend())
