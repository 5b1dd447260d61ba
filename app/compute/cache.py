"""
Compute — Score Cache Layer

Every aggregated trust response is cached in Redis so repeated lookups do
not re-query the graph, the attestation source and every RPC endpoint.

Cache Strategy:
    - Scored responses:      TTL = CACHE_TTL_SCORE (default 1 hour)
    - No-data responses:     TTL = 5 min (retry quickly once sources recover)
    - Global recompute:      drops every cached score

Key Schema:
    trust:score:{address}:{chain}:{depth}        → Full JSON TrustResponse
    lock:trust:score:{address}:{chain}:{depth}   → Compute-in-flight lock

The cache fails open: when Redis is unreachable every lookup is a miss
and every write is a no-op.

Dependencies: redis >= 5.0.0
"""
import json
import time
from typing import Optional, Dict, Any

import redis
import structlog

logger = structlog.get_logger()

TTL_FAILED = 300
LOCK_TTL = 30  # seconds, max time to hold a compute lock
KEY_PREFIX = "trust:score:"
LOCK_PREFIX = "lock:"


def cache_key(address: str, chain: str, depth: int) -> str:
    return f"{KEY_PREFIX}{address.strip().lower()}:{chain.lower()}:{int(depth)}"


class ScoreCache:
    """
    Usage:
        cache = ScoreCache(settings.REDIS_URL, ttl=settings.CACHE_TTL_SCORE)

        cached = cache.get(address, "ethereum", 3)
        if cached:
            return TrustResponse.from_dict(cached)

        # ... aggregate ...

        cache.set(address, "ethereum", 3, response.to_dict())
    """

    def __init__(self, redis_url: str = "redis://localhost:6379/0", ttl: int = 3600, client=None):
        self._url = redis_url
        self.ttl = ttl
        self._pool = None
        self._client = client
        self._enabled = True

    def _connect(self) -> "Optional[redis.Redis]":
        """Lazy connect; only opens a connection when first used."""
        if self._client is None and self._enabled:
            try:
                self._pool = redis.ConnectionPool.from_url(
                    self._url,
                    max_connections=20,
                    decode_responses=True,
                    socket_connect_timeout=3,
                    socket_timeout=2,
                    retry_on_timeout=True,
                )
                client = redis.Redis(connection_pool=self._pool)
                client.ping()
                self._client = client
                logger.info("score_cache_connected", url=self._url.split("@")[-1])
            except redis.RedisError as e:
                logger.warning("score_cache_unavailable", error=str(e))
                self._enabled = False
                self._client = None
        return self._client

    def get(self, address: str, chain: str, depth: int) -> Optional[Dict[str, Any]]:
        """Cached response dict, or None on miss or when Redis is down."""
        client = self._connect()
        if not client:
            return None

        key = cache_key(address, chain, depth)
        try:
            raw = client.get(key)
            if raw:
                logger.debug("cache_hit", key=key)
                return json.loads(raw)
        except (redis.RedisError, ValueError) as e:
            logger.debug("cache_get_error", error=str(e))
        return None

    def set(self, address: str, chain: str, depth: int, data: Dict[str, Any], failed: bool = False) -> bool:
        client = self._connect()
        if not client:
            return False

        key = cache_key(address, chain, depth)
        ttl = TTL_FAILED if failed else self.ttl
        try:
            client.setex(key, ttl, json.dumps(data, default=str))
            logger.debug("cache_set", key=key, ttl=ttl)
            return True
        except redis.RedisError as e:
            logger.debug("cache_set_error", error=str(e))
            return False

    def acquire_lock(self, address: str, chain: str, depth: int) -> bool:
        """
        Compute lock: when two requests miss on the same key, only one
        aggregates; the other waits briefly and reads the cache.
        Always granted when Redis is down.
        """
        client = self._connect()
        if not client:
            return True
        try:
            return bool(client.set(LOCK_PREFIX + cache_key(address, chain, depth), "1", nx=True, ex=LOCK_TTL))
        except redis.RedisError:
            return True

    def release_lock(self, address: str, chain: str, depth: int):
        client = self._connect()
        if not client:
            return
        try:
            client.delete(LOCK_PREFIX + cache_key(address, chain, depth))
        except redis.RedisError as e:
            logger.debug("cache_unlock_error", error=str(e))

    def invalidate_all(self) -> int:
        """Drop every cached score, e.g. after global scores were recomputed."""
        client = self._connect()
        if not client:
            return 0
        try:
            keys = list(client.scan_iter(match=f"{KEY_PREFIX}*"))
            if not keys:
                return 0
            return int(client.delete(*keys))
        except redis.RedisError as e:
            logger.warning("cache_invalidate_error", error=str(e))
            return 0

    def stats(self) -> Dict[str, Any]:
        client = self._connect()
        if not client:
            return {"enabled": False}
        try:
            return {
                "enabled": True,
                "connected": True,
                "cached_scores": sum(1 for _ in client.scan_iter(match=f"{KEY_PREFIX}*")),
                "checked_at": time.time(),
            }
        except redis.RedisError as e:
            return {"enabled": True, "connected": False, "error": str(e)}

    def close(self):
        if self._pool:
            self._pool.disconnect()
            logger.info("score_cache_disconnected")
