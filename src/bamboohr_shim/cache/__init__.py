"""In-memory response caching for bamboohr-shim.

This package provides :class:`ResponseCache`, a per-client TTL cache for
successful GET responses keyed by request path and query parameters.

The cache is consumed by :class:`~bamboohr_shim.client.BambooHRClient`
and controlled by :class:`~bamboohr_shim.models.CacheConfig`.
"""

from bamboohr_shim.cache.cache import CacheEntry, ResponseCache

__all__ = ["CacheEntry", "ResponseCache"]
