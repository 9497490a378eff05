"""Cache manager with Redis connection and TTL support"""

import json
from decimal import Decimal
from typing import Any, Dict, Optional

import redis.asyncio as redis
import structlog

logger = structlog.get_logger()

LATEST_SCAN_TTL_SECONDS = 900


class CacheManager:
    """
    Caches the latest discovery scan report per network in Redis.

    The cache is optional: every operation logs and degrades to a no-op
    when Redis is unreachable.
    """

    def __init__(self, redis_url: str, scan_ttl: int = LATEST_SCAN_TTL_SECONDS):
        """
        Initialize cache manager.

        Args:
            redis_url: Redis connection URL (e.g., redis://localhost:6379)
            scan_ttl: Seconds a cached scan report stays valid
        """
        self.redis_url = redis_url
        self.scan_ttl = scan_ttl
        self.client: Optional[redis.Redis] = None
        self._logger = logger.bind(component="cache_manager")

    async def connect(self) -> None:
        """Establish connection to Redis"""
        try:
            self.client = await redis.from_url(
                self.redis_url,
                encoding="utf-8",
                decode_responses=True,
            )
            await self.client.ping()
            self._logger.info("redis_connected")
        except Exception as e:
            self._logger.error("redis_connection_failed", error=str(e))
            raise

    async def disconnect(self) -> None:
        """Close Redis connection"""
        if self.client:
            await self.client.close()
            self._logger.info("redis_disconnected")

    def _serialize_value(self, value: Any) -> str:
        def decimal_default(obj):
            if isinstance(obj, Decimal):
                return str(obj)
            raise TypeError(f"Object of type {type(obj)} is not JSON serializable")

        return json.dumps(value, default=decimal_default)

    @staticmethod
    def _scan_key(network: str) -> str:
        return f"scans:latest:{network.upper()}"

    async def cache_scan_report(self, network: str, report: Dict[str, Any]) -> None:
        """Store a scan report dict as the latest for its network"""
        if not self.client:
            self._logger.warning("cache_scan_report_skipped", reason="redis_not_connected")
            return

        try:
            await self.client.setex(self._scan_key(network), self.scan_ttl, self._serialize_value(report))
            self._logger.debug("scan_report_cached", network=network, ttl=self.scan_ttl)
        except Exception as e:
            self._logger.error("cache_scan_report_failed", network=network, error=str(e))

    async def get_latest_scan_report(self, network: str) -> Optional[Dict[str, Any]]:
        """Latest cached report, or None when missing, expired or Redis is down"""
        if not self.client:
            self._logger.warning("get_latest_scan_report_skipped", reason="redis_not_connected")
            return None

        try:
            value = await self.client.get(self._scan_key(network))
        except Exception as e:
            self._logger.error("get_latest_scan_report_failed", network=network, error=str(e))
            return None

        if value is None:
            return None
        return json.loads(value)

    async def invalidate_scan_reports(self) -> int:
        """Drop every cached scan report; returns the number of keys deleted"""
        if not self.client:
            self._logger.warning("invalidate_cache_skipped", reason="redis_not_connected")
            return 0

        try:
            keys = [key async for key in self.client.scan_iter(match="scans:latest:*")]
            deleted = await self.client.delete(*keys) if keys else 0
            self._logger.info("cache_invalidated", pattern="scans:latest:*", deleted_count=deleted)
            return deleted
        except Exception as e:
            self._logger.error("invalidate_cache_failed", error=str(e))
            return 0
