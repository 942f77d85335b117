"""
In-Process Cache Module

Session-scoped caching layer with:
- Namespaced keys
- TTL management with an injectable clock
- Manual invalidation

Caches are plain objects created once at start-up and handed to the
repositories and services that use them; nothing here is a module global.
"""

import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Optional

import structlog

logger = structlog.get_logger(__name__)

Clock = Callable[[], float]


@dataclass
class _Entry:
    value: Any
    stored_at: float
    ttl: Optional[float]


class CacheManager:
    """
    Cache manager with namespace support and optional expiry.

    A ``default_ttl`` of ``None`` keeps entries until they are invalidated.

    Example:
        cache = CacheManager("catalog", default_ttl=300)
        cache.set("/data/catalog.csv", snapshot)
        snapshot = cache.get("/data/catalog.csv")
    """

    def __init__(
        self,
        namespace: str,
        default_ttl: Optional[float] = None,
        clock: Clock = time.monotonic,
    ):
        self.namespace = namespace
        self.default_ttl = default_ttl
        self.clock = clock
        self._entries: Dict[str, _Entry] = {}

    def _key(self, key: str) -> str:
        """Generate namespaced key"""
        return f"{self.namespace}:{key}"

    def _expired(self, entry: _Entry) -> bool:
        if entry.ttl is None:
            return False
        return (self.clock() - entry.stored_at) >= entry.ttl

    def get(self, key: str) -> Optional[Any]:
        """Get value from cache, ``None`` when missing or expired"""
        full_key = self._key(key)
        entry = self._entries.get(full_key)
        if entry is None:
            return None
        if self._expired(entry):
            del self._entries[full_key]
            logger.debug("Cache entry expired", key=full_key)
            return None
        return entry.value

    def set(self, key: str, value: Any, ttl: Optional[float] = None) -> None:
        """Set value in cache"""
        self._entries[self._key(key)] = _Entry(
            value=value,
            stored_at=self.clock(),
            ttl=ttl if ttl is not None else self.default_ttl,
        )

    def invalidate_all(self) -> int:
        """Invalidate all keys in namespace"""
        count = len(self._entries)
        self._entries.clear()
        if count:
            logger.debug("Cache invalidated", namespace=self.namespace, entries=count)
        return count

    def __contains__(self, key: str) -> bool:
        return self.get(key) is not None

    def __len__(self) -> int:
        return len(self._entries)

    async def get_or_set(
        self,
        key: str,
        factory: Callable[[], Awaitable[Any]],
        ttl: Optional[float] = None,
    ) -> Any:
        """
        Get from cache or compute and cache.

        Args:
            key: Cache key
            factory: Async function to compute value if not cached
            ttl: Time-to-live

        Returns:
            Cached or computed value; a ``None`` result is not cached
        """
        value = self.get(key)

        if value is not None:
            return value

        value = await factory()
        if value is not None:
            self.set(key, value, ttl)

        return value
