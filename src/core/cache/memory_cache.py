"""In-memory TTL cache with an entry cap, a memory budget and a background sweep.

Two eviction policies:
  • count cap  -> drop the single entry with the oldest last access (LRU by one)
  • memory cap -> drop least-used entries until 30% of the aggregate is freed
Both are checked on every set(); either, both or neither may fire.
"""
from __future__ import annotations

import asyncio
import dataclasses
import json
import threading
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable

import psutil
import structlog

logger = structlog.get_logger()

MB = 1024 * 1024
PRESSURE_FREE_RATIO = 0.3


@dataclass
class CacheEntry:
    value: Any
    expires_at: float
    size_bytes: int
    inserted_at: datetime
    access_count: int = 0
    last_accessed_at: float = 0.0
    access_seq: int = 0   # tie-breaker for entries touched within one clock tick


def _json_default(value: Any) -> Any:
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return dataclasses.asdict(value)
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, Enum):
        return value.value
    return str(value)


def estimate_size(value: Any) -> int:
    """Serialized JSON length x2, a UTF-16 upper bound."""
    return len(json.dumps(value, default=_json_default)) * 2


def _process_rss() -> int:
    return psutil.Process().memory_info().rss


class MemoryCache:

    def __init__(
        self,
        max_size: int = 50,
        max_memory_bytes: int = 100 * MB,
        memory_check_interval: float = 300.0,
        memory_high_water_bytes: int = 400 * MB,
        clock: Callable[[], float] = time.time,
        memory_probe: Callable[[], int] = _process_rss,
    ):
        self.max_size = max_size
        self.max_memory_bytes = max_memory_bytes
        self.memory_check_interval = memory_check_interval
        self.memory_high_water_bytes = memory_high_water_bytes
        self._clock = clock
        self._memory_probe = memory_probe
        self._entries: dict[str, CacheEntry] = {}
        self._lock = threading.RLock()
        self._seq = 0
        self._monitor_task: asyncio.Task | None = None

    # ── Core operations ──────────────────────────────────────────────────

    def set(self, key: str, value: Any, ttl_seconds: int = 3600) -> bool:
        size = estimate_size(value)
        if size > self.max_memory_bytes:
            logger.warning("cache.entry_too_large", key=key, size_bytes=size,
                           max_memory_bytes=self.max_memory_bytes)
            return False

        with self._lock:
            self._entries.pop(key, None)

            if len(self._entries) >= self.max_size:
                self.evict_oldest_entries(1)

            current = self.memory_usage()
            if current + size > self.max_memory_bytes:
                logger.warning("cache.memory_limit", current_bytes=current, incoming_bytes=size)
                self.evict_by_memory_pressure(min_free_bytes=current + size - self.max_memory_bytes)

            now = self._clock()
            self._entries[key] = CacheEntry(
                value=value,
                expires_at=now + ttl_seconds,
                size_bytes=size,
                inserted_at=datetime.fromtimestamp(now, tz=timezone.utc),
                last_accessed_at=now,
                access_seq=self._next_seq(),
            )
        logger.info("cache.set", key=key, ttl_seconds=ttl_seconds, size_kb=round(size / 1024))
        return True

    def get(self, key: str) -> Any | None:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                logger.debug("cache.miss", key=key)
                return None

            now = self._clock()
            if now > entry.expires_at:
                del self._entries[key]
                logger.info("cache.expired", key=key)
                return None

            entry.access_count += 1
            entry.last_accessed_at = now
            entry.access_seq = self._next_seq()
            logger.debug("cache.hit", key=key, access_count=entry.access_count)
            return entry.value

    def delete(self, key: str) -> bool:
        with self._lock:
            removed = self._entries.pop(key, None) is not None
        if removed:
            logger.info("cache.delete", key=key)
        return removed

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
        logger.info("cache.cleared")

    def has(self, key: str) -> bool:
        with self._lock:
            entry = self._entries.get(key)
            return entry is not None and self._clock() <= entry.expires_at

    def get_inserted_at(self, key: str) -> datetime | None:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None or self._clock() > entry.expires_at:
                return None
            return entry.inserted_at

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def memory_usage(self) -> int:
        with self._lock:
            return sum(e.size_bytes for e in self._entries.values())

    def purge_expired(self) -> int:
        now = self._clock()
        with self._lock:
            expired = [k for k, e in self._entries.items() if now > e.expires_at]
            for k in expired:
                del self._entries[k]
        if expired:
            logger.info("cache.purged_expired", count=len(expired))
        return len(expired)

    def get_status(self) -> dict:
        now = self._clock()
        with self._lock:
            live = {k: e for k, e in self._entries.items() if now <= e.expires_at}
            keys = list(live)
            inserted = {k: e.inserted_at.isoformat() for k, e in live.items()}
            usage = self.memory_usage()
        return {
            "size": len(keys),
            "max_size": self.max_size,
            "memory_usage_bytes": usage,
            "max_memory_bytes": self.max_memory_bytes,
            "process_memory_bytes": self._memory_probe(),
            "keys": keys,
            "inserted_at": inserted,
        }

    # ── Eviction ─────────────────────────────────────────────────────────

    def evict_oldest_entries(self, count: int = 5) -> list[str]:
        with self._lock:
            ordered = sorted(
                self._entries.items(),
                key=lambda kv: (kv[1].last_accessed_at, kv[1].access_seq),
            )
            evicted = [k for k, _ in ordered[:count]]
            for k in evicted:
                del self._entries[k]
        for k in evicted:
            logger.info("cache.evicted", key=k, policy="lru")
        return evicted

    def evict_by_memory_pressure(self, min_free_bytes: int = 0) -> int:
        """Drop least-used entries until 30% of the aggregate (or ``min_free_bytes``) is freed."""
        with self._lock:
            target = max(self.memory_usage() * PRESSURE_FREE_RATIO, min_free_bytes)
            ordered = sorted(
                self._entries.items(),
                key=lambda kv: (kv[1].access_count, kv[1].last_accessed_at, kv[1].access_seq),
            )
            freed = 0
            evicted = []
            for key, entry in ordered:
                if freed >= target:
                    break
                freed += entry.size_bytes
                evicted.append(key)
                del self._entries[key]
        logger.info("cache.memory_pressure_eviction", freed_kb=round(freed / 1024), evicted=evicted)
        return freed

    def _next_seq(self) -> int:
        self._seq += 1
        return self._seq

    # ── Background memory sweep ──────────────────────────────────────────

    def check_memory_pressure(self) -> bool:
        self.purge_expired()
        rss = self._memory_probe()
        if rss > self.memory_high_water_bytes:
            logger.warning(
                "cache.high_process_memory",
                process_mb=round(rss / MB),
                cache_mb=round(self.memory_usage() / MB),
            )
            self.evict_by_memory_pressure()
            return True
        logger.debug("cache.memory_status", process_mb=round(rss / MB), cache_mb=round(self.memory_usage() / MB))
        return False

    def start_monitoring(self) -> None:
        if self._monitor_task is None or self._monitor_task.done():
            self._monitor_task = asyncio.create_task(self._monitor_loop(), name="cache-memory-monitor")

    def stop_monitoring(self) -> None:
        if self._monitor_task is not None:
            self._monitor_task.cancel()
            self._monitor_task = None

    async def _monitor_loop(self) -> None:
        while True:
            await asyncio.sleep(self.memory_check_interval)
            try:
                self.check_memory_pressure()
            except Exception as e:
                logger.error("cache.monitor_failed", error=str(e))
