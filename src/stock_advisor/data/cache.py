"""Disk cache for computed recommendations."""

import hashlib
from datetime import datetime, timezone
from typing import Any

import diskcache

from stock_advisor.config import Settings
from stock_advisor.utils.normalize import canonical_dumps
from stock_advisor.utils.validators import RecommendationParams


class RecommendationCache:
    """
    Cache stores canonical Recommendation dicts keyed by input hash.

    A Recommendation is a pure function of its inputs, so a hit is always
    correct; TTL only bounds disk usage.
    """

    def __init__(self, cache_dir: str | None = None, default_ttl: int | None = None):
        settings = Settings.from_env()
        if cache_dir is None:
            cache_dir = settings.cache_dir
        self.cache: diskcache.Cache = diskcache.Cache(cache_dir)
        self._default_ttl = default_ttl if default_ttl is not None else settings.cache_ttl

    def store(
        self,
        params: RecommendationParams,
        recommendation: dict[str, Any],
        ttl: int | None = None,
    ) -> str:
        """
        Store a canonical recommendation dict + metadata, return cache key.

        Args:
            params: Recommendation parameters (used to generate key)
            recommendation: Sanitized Recommendation dict
            ttl: Cache TTL in seconds (default: CACHE_TTL)

        Returns:
            Canonical cache key
        """
        key = params.to_cache_key()
        payload = canonical_dumps(recommendation)

        entry: dict[str, Any] = {
            "recommendation": recommendation,
            "size_bytes": len(payload.encode("utf-8")),
            "hash": hashlib.sha256(payload.encode("utf-8")).hexdigest()[:16],
            "stored_at": datetime.now(timezone.utc).isoformat(),
        }

        expire = ttl if ttl is not None else self._default_ttl
        self.cache.set(key, entry, expire=expire)

        return key

    def get(self, key: str) -> dict[str, Any] | None:
        """Get the cached recommendation dict by key, or None."""
        entry = self.cache.get(key)
        if not entry:
            return None
        return entry["recommendation"]

    def get_metadata(self, key: str) -> dict[str, Any] | None:
        """Get cache metadata without the payload."""
        entry = self.cache.get(key)
        if not entry:
            return None
        return {
            "size_bytes": entry["size_bytes"],
            "hash": entry["hash"],
            "stored_at": entry["stored_at"],
        }

    def exists(self, key: str) -> bool:
        """Check if key exists in cache."""
        return key in self.cache

    def clear(self) -> None:
        """Clear all cached data."""
        self.cache.clear()

    def close(self) -> None:
        self.cache.close()
