"""
Scraper Rate Limiter - Domain-keyed rate limiting for outbound requests.

Covers page fetches and metered API calls (LLM, geocoder) alike. Uses Redis
when REDIS_URL is set so concurrent batch invocations share one budget;
otherwise an in-process sliding window guarded by a lock (the fetch worker
pool shares it).

Key format: scrape:{domain}:{route_group}
"""
import logging
import os
import threading
import time
from collections import defaultdict
from pathlib import Path
from typing import Any, Dict, Optional
from urllib.parse import urlparse

import redis
import yaml

logger = logging.getLogger(__name__)

DEFAULT_LIMITS = {
    "requests_per_minute": 10,
    "requests_per_hour": 100,
}

MAX_WAIT_ATTEMPTS = 60


class RateLimitTimeout(RuntimeError):
    """Raised when a domain stays over its budget for too long."""


def domain_of(url: str) -> str:
    """'https://www.example.com/shows' -> 'example.com'."""
    host = urlparse(url).hostname or url
    return host[4:] if host.startswith("www.") else host


class ScraperRateLimiter:
    """Sliding-window rate limiter with domain/route granularity."""

    def __init__(self, config_path: Optional[str] = None, redis_url: Optional[str] = None,
                 sleep=time.sleep):
        """
        Args:
            config_path: YAML config. Defaults to backend/config/scraper_rate_limits.yaml
            redis_url: Redis connection URL (defaults to $REDIS_URL)
            sleep: injectable for tests
        """
        self.config_path = config_path or str(
            Path(__file__).parent.parent / "config" / "scraper_rate_limits.yaml"
        )
        self.redis_url = redis_url if redis_url is not None else os.environ.get("REDIS_URL")
        self._sleep = sleep
        self._config = None
        self._redis = None
        self._lock = threading.Lock()
        self._memory_store: Dict[str, list] = defaultdict(list)

    @property
    def config(self) -> Dict[str, Any]:
        if self._config is None:
            self._config = self._load_config()
        return self._config

    def _load_config(self) -> Dict[str, Any]:
        try:
            with open(self.config_path, "r") as f:
                config = yaml.safe_load(f) or {}
                logger.info(f"Loaded rate limits from {self.config_path}")
                return config
        except FileNotFoundError:
            logger.warning(
                f"Rate limit config not found at {self.config_path}, using defaults"
            )
            return {"defaults": dict(DEFAULT_LIMITS), "domains": {}}

    @property
    def redis(self):
        """Redis client, or None when not configured or unreachable."""
        if self._redis is None and self.redis_url:
            try:
                client = redis.from_url(self.redis_url)
                client.ping()
                self._redis = client
                logger.info("Scraper rate limiter using Redis")
            except redis.RedisError as e:
                logger.warning(f"Failed to connect to Redis, using in-memory limits: {e}")
                self._redis = False
        return self._redis or None

    def get_limits(self, domain: str, route_group: str = "default") -> Dict[str, int]:
        """Defaults, overridden by domain config, overridden by route config."""
        defaults = self.config.get("defaults", {})
        domain_config = (self.config.get("domains") or {}).get(domain, {})
        route_config = (domain_config.get("routes") or {}).get(route_group, {})

        limits = {}
        for key, fallback in DEFAULT_LIMITS.items():
            limits[key] = route_config.get(
                key, domain_config.get(key, defaults.get(key, fallback))
            )
        return limits

    def _make_key(self, domain: str, route_group: str) -> str:
        return f"scrape:{domain}:{route_group}"

    def wait(self, domain: str, route_group: str = "default"):
        """
        Block until a request to `domain` is allowed, then record it.

        Raises:
            RateLimitTimeout: budget still exhausted after MAX_WAIT_ATTEMPTS waits
        """
        limits = self.get_limits(domain, route_group)
        for _ in range(MAX_WAIT_ATTEMPTS):
            if self._try_acquire(domain, route_group, limits):
                return
            wait_time = 60 / limits["requests_per_minute"]
            logger.debug(f"Rate limited for {domain}/{route_group}, waiting {wait_time:.1f}s")
            self._sleep(wait_time)
        raise RateLimitTimeout(f"Rate limit wait timeout for {domain}")

    def _try_acquire(self, domain: str, route_group: str, limits: Dict[str, int]) -> bool:
        key = self._make_key(domain, route_group)
        now = time.time()

        if self.redis:
            minute_key = f"{key}:minute"
            hour_key = f"{key}:hour"
            pipe = self.redis.pipeline()
            pipe.zremrangebyscore(minute_key, 0, now - 60)
            pipe.zremrangebyscore(hour_key, 0, now - 3600)
            pipe.zcard(minute_key)
            pipe.zcard(hour_key)
            results = pipe.execute()
            if results[2] >= limits["requests_per_minute"] or results[3] >= limits["requests_per_hour"]:
                return False
            pipe = self.redis.pipeline()
            pipe.zadd(minute_key, {str(now): now})
            pipe.zadd(hour_key, {str(now): now})
            pipe.expire(minute_key, 120)
            pipe.expire(hour_key, 7200)
            pipe.execute()
            return True

        with self._lock:
            recent = [t for t in self._memory_store[key] if now - t < 3600]
            self._memory_store[key] = recent
            minute_count = len([t for t in recent if now - t < 60])
            if minute_count >= limits["requests_per_minute"] or len(recent) >= limits["requests_per_hour"]:
                return False
            recent.append(now)
            return True

    def get_status(self, domain: str, route_group: str = "default") -> Dict:
        """Current counts and limits for a domain (in-memory store only)."""
        limits = self.get_limits(domain, route_group)
        key = self._make_key(domain, route_group)
        now = time.time()
        with self._lock:
            entries = list(self._memory_store[key])
        return {
            "domain": domain,
            "route_group": route_group,
            "minute": {
                "current": len([t for t in entries if now - t < 60]),
                "limit": limits["requests_per_minute"],
            },
            "hour": {
                "current": len([t for t in entries if now - t < 3600]),
                "limit": limits["requests_per_hour"],
            },
        }


# Global instance (lazy init)
_rate_limiter = None


def get_scraper_rate_limiter() -> ScraperRateLimiter:
    """Get the process-wide rate limiter."""
    global _rate_limiter
    if _rate_limiter is None:
        _rate_limiter = ScraperRateLimiter()
    return _rate_limiter
