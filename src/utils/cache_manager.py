"""Response caching for the revenue endpoints using Redis.

Revenue reports are recomputed from the whole year of hours on every request,
so the read endpoints cache their JSON body per query string. Any write that
changes report input (a sync, a target, a previous-year consumption) drops the
whole cache. Without Redis the cache is simply disabled.
"""

import functools
import hashlib
import json
import logging
import os
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

import redis
from flask import jsonify, request

from config.settings import settings

logger = logging.getLogger(__name__)

KEY_PREFIX = "iris_cache"


class CacheManager:
    """Stores endpoint responses in Redis under ``iris_cache:<prefix>[:params:<hash>]``."""

    def __init__(self, redis_url: Optional[str] = None):
        self.redis_url = redis_url or os.getenv("REDIS_URL", "redis://localhost:6379/0")
        self._client = None
        self._enabled = True

        try:
            self._connect()
            logger.info(f"Cache manager initialized: {self._mask_url(self.redis_url)}")
        except Exception as e:
            logger.warning(f"Redis connection failed (caching disabled): {e}")
            self._client = None
            self._enabled = False

    @property
    def enabled(self) -> bool:
        return self._enabled

    @staticmethod
    def _mask_url(url: str) -> str:
        """Hide credentials in a Redis URL before logging it."""
        if "://" in url:
            protocol, rest = url.split("://", 1)
            if "@" in rest:
                _, host = rest.rsplit("@", 1)
                return f"{protocol}://***:***@{host}"
        return url

    def _connect(self):
        if self._client is None:
            client = redis.from_url(
                self.redis_url,
                decode_responses=True,
                socket_connect_timeout=5,
                socket_timeout=5,
                retry_on_timeout=True,
                health_check_interval=30,
            )
            client.ping()
            self._client = client

    @staticmethod
    def make_key(prefix: str, **params) -> str:
        key = f"{KEY_PREFIX}:{prefix}"
        if params:
            param_str = json.dumps(params, sort_keys=True)
            key += f":params:{hashlib.md5(param_str.encode()).hexdigest()[:8]}"
        return key

    def get(self, prefix: str, **params) -> Optional[Dict[str, Any]]:
        """Return the cached envelope ``{"data", "cached_at", "ttl"}`` or None."""
        if not self._enabled:
            return None

        key = self.make_key(prefix, **params)
        try:
            self._connect()
            raw = self._client.get(key)
        except redis.RedisError as e:
            logger.error(f"Error reading cache key {key}: {e}")
            return None

        if raw is None:
            logger.debug(f"Cache MISS: {key}")
            return None

        logger.debug(f"Cache HIT: {key}")
        try:
            return json.loads(raw)
        except ValueError:
            logger.warning(f"Dropping unreadable cache entry {key}")
            return None

    def set(self, data: Any, prefix: str, ttl: Optional[int] = None, **params) -> bool:
        if not self._enabled:
            return False

        ttl = ttl or settings.revenue.cache_ttl_seconds
        key = self.make_key(prefix, **params)
        envelope = {
            "data": data,
            "cached_at": datetime.now(timezone.utc).isoformat(),
            "ttl": ttl,
        }
        try:
            self._connect()
            self._client.setex(key, ttl, json.dumps(envelope))
        except (redis.RedisError, TypeError) as e:
            logger.error(f"Error writing cache key {key}: {e}")
            return False

        logger.debug(f"Cache SET: {key} (TTL: {ttl}s)")
        return True

    def invalidate(self, pattern: str) -> int:
        """Delete keys matching a glob pattern, e.g. ``iris_cache:revenue*``."""
        if not self._enabled:
            return 0

        try:
            self._connect()
            keys = list(self._client.scan_iter(match=pattern, count=500))
            deleted = self._client.delete(*keys) if keys else 0
        except redis.RedisError as e:
            logger.error(f"Error invalidating cache pattern {pattern}: {e}")
            return 0

        logger.info(f"Cache INVALIDATE: {pattern} ({deleted} keys deleted)")
        return deleted

    def clear_all(self) -> int:
        return self.invalidate(f"{KEY_PREFIX}:*")


_cache_manager: Optional[CacheManager] = None


def get_cache_manager(redis_url: Optional[str] = None) -> CacheManager:
    """Get or create the process-wide cache manager."""
    global _cache_manager

    if _cache_manager is None:
        _cache_manager = CacheManager(redis_url=redis_url)

    return _cache_manager


def cached_endpoint(
    prefix: str, ttl: Optional[int] = None, exclude_params: Optional[List[str]] = None
):
    """Cache a Flask view's successful JSON response per query string.

    Usage:
        @iris_bp.route("/revenue-combined")
        @cached_endpoint("revenue-combined")
        def get_combined_revenue():
            ...
    """

    def decorator(func: Callable) -> Callable:
        @functools.wraps(func)
        def wrapper(*args, **kwargs):
            cache = get_cache_manager()

            excluded = set(exclude_params or [])
            params = {k: v for k, v in request.args.items() if k not in excluded}
            params.update({f"path_{k}": v for k, v in kwargs.items()})

            cached = cache.get(prefix, **params)
            if cached is not None:
                response = jsonify(cached["data"])
                response.headers["X-Cache"] = "HIT"
                response.headers["X-Cache-Time"] = cached.get("cached_at", "")
                return response

            result = func(*args, **kwargs)

            # Views return (response, status) tuples
            response, status = result if isinstance(result, tuple) else (result, None)
            status = status or response.status_code
            if 200 <= status < 300 and cache.enabled:
                if cache.set(response.get_json(), prefix, ttl, **params):
                    response.headers["X-Cache"] = "MISS"

            return result

        return wrapper

    return decorator


def invalidate_cache(pattern: Optional[str] = None) -> int:
    """Drop cached responses; everything when no pattern is given."""
    cache = get_cache_manager()
    if pattern is None:
        return cache.clear_all()
    return cache.invalidate(pattern)
