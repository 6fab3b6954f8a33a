"""In-memory response caching for GET requests.

Successful GET responses are memoised per client instance for a fixed
time-to-live. Expiry is checked lazily: a stale entry is dropped the next
time its key is looked up. There is no size bound and no invalidation API;
a mutation does not evict cached reads, so callers see at most ``ttl``
seconds of read-after-write staleness.

Cache keys are ``path`` plus the JSON-serialised query parameters with
sorted keys, so two parameter dicts with the same content share an entry
regardless of insertion order.

See Also:
    :class:`~bamboohr_shim.models.CacheConfig` -- the Pydantic model that
    controls ``enabled`` and ``ttl_seconds``.
"""

from __future__ import annotations

import copy
import json
import time
from typing import Any, Callable, NamedTuple, Optional

from bamboohr_shim.models import CacheConfig


class CacheEntry(NamedTuple):
    data: Any
    stored_at: float


class ResponseCache:
    """TTL cache for parsed GET response bodies.

    The cache is owned by a single client; two clients never share
    entries. Values are deep-copied on the way in and out so that a caller
    mutating a returned dict cannot corrupt the cached copy.

    Args:
        config: Cache configuration (``enabled`` flag and ``ttl_seconds``).
        clock: Monotonic time source, in seconds. Tests substitute a fake.

    Example::

        cache = ResponseCache(CacheConfig(ttl_seconds=300))
        cache.set("/employees/directory", None, {"employees": []})
        hit = cache.get("/employees/directory")
    """

    def __init__(
        self,
        config: Optional[CacheConfig] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._config = config or CacheConfig()
        self._clock = clock
        self._entries: dict[str, CacheEntry] = {}

    @property
    def ttl_seconds(self) -> float:
        return self._config.ttl_seconds

    def get(self, path: str, params: Optional[dict[str, Any]] = None) -> Optional[Any]:
        """Look up a cached body.

        Args:
            path: The request path relative to the API base URL.
            params: Query parameters used to form the cache key.

        Returns:
            A copy of the cached body, or ``None`` on a miss, on an expired
            entry (which is removed), or when caching is disabled. A cached
            JSON ``null`` is indistinguishable from a miss here; use
            :meth:`lookup` when that matters.
        """
        entry = self.lookup(path, params)
        return entry.data if entry is not None else None

    def lookup(self, path: str, params: Optional[dict[str, Any]] = None) -> Optional[CacheEntry]:
        """Like :meth:`get`, but return the whole entry, or ``None`` on a miss.

        The entry's ``data`` is a copy and may itself be ``None`` or falsy.
        """
        if not self._config.enabled:
            return None

        key = self.make_key(path, params)
        entry = self._entries.get(key)
        if entry is None:
            return None
        if self._clock() - entry.stored_at > self._config.ttl_seconds:
            del self._entries[key]
            return None
        return CacheEntry(copy.deepcopy(entry.data), entry.stored_at)

    def set(self, path: str, params: Optional[dict[str, Any]], data: Any) -> None:
        """Store *data* under ``(path, params)`` stamped with the current time."""
        if not self._config.enabled:
            return
        key = self.make_key(path, params)
        self._entries[key] = CacheEntry(copy.deepcopy(data), self._clock())

    def stats(self) -> dict[str, Any]:
        """Return cache statistics.

        Returns:
            A ``dict`` with ``enabled`` (bool), ``size`` (number of stored
            entries, stale ones included until they are looked up), and
            ``ttl_seconds``.
        """
        return {
            "enabled": self._config.enabled,
            "size": len(self._entries),
            "ttl_seconds": self._config.ttl_seconds,
        }

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: object) -> bool:
        return key in self._entries

    @staticmethod
    def make_key(path: str, params: Optional[dict[str, Any]] = None) -> str:
        """Generate a cache key from the path and sorted params."""
        if not params:
            return path
        return f"{path}{json.dumps(params, sort_keys=True, default=str)}"
