"""
爬取结果缓存

以爬取目标指纹为键缓存结果包，超过 TTL 的条目视为不存在。
除 TTL 过期外不做淘汰，条目数随进程内爬取过的不同目标增长。
"""
import time
from dataclasses import dataclass
from typing import Callable, Dict, Optional

from loguru import logger

from core.models import CrawlResult, Source

DEFAULT_TTL_SECONDS = 15 * 60


@dataclass
class CacheEntry:
    key: str
    data: CrawlResult
    timestamp: float


class CrawlCache:
    """TTL 缓存"""

    def __init__(
        self,
        ttl_seconds: float = DEFAULT_TTL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Args:
            ttl_seconds: 有效期（秒）
            clock: 时间源，测试中可替换
        """
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: Dict[str, CacheEntry] = {}
        self.stats = {
            "hits": 0,
            "misses": 0,
            "expired": 0,
        }

    def _is_valid(self, entry: CacheEntry) -> bool:
        return self._clock() - entry.timestamp < self.ttl_seconds

    def get(self, key: str) -> Optional[CrawlResult]:
        """返回未过期的结果包；不存在或已过期返回 None"""
        entry = self._entries.get(key)
        if entry is None:
            self.stats["misses"] += 1
            return None
        if not self._is_valid(entry):
            del self._entries[key]
            self.stats["expired"] += 1
            self.stats["misses"] += 1
            logger.debug(f"Cache entry expired: {key}")
            return None
        self.stats["hits"] += 1
        return entry.data

    def put(self, key: str, data: CrawlResult) -> None:
        """以当前时间写入"""
        self._entries[key] = CacheEntry(key=key, data=data, timestamp=self._clock())

    def delete(self, key: str) -> bool:
        """无条件删除；返回是否存在过"""
        return self._entries.pop(key, None) is not None

    def invalidate_source(self, source: Source) -> int:
        """
        删除与来源相关的缓存：以来源 URL 为键的条目，
        以及结果包中 newSource 为该来源的条目（多页指纹）

        Returns:
            删除的条目数
        """
        keys = {source.url}
        keys.update(
            key for key, entry in self._entries.items()
            if entry.data.new_source.id == source.id
        )
        removed = sum(1 for key in keys if self.delete(key))
        if removed:
            logger.debug(f"Cache invalidated for source {source.id}: {removed} entries")
        return removed

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: str) -> bool:
        entry = self._entries.get(key)
        return entry is not None and self._is_valid(entry)

    def get_stats(self) -> dict:
        stats = self.stats.copy()
        stats["entries"] = len(self._entries)
        return stats
