"""Daily refresh scheduler: one single-flight refresh cycle per UTC day.

The recurring trigger is an asyncio task that sleeps until the next daily
boundary, fires, and re-arms itself. Ad-hoc triggers (startup bootstrap, API
cache misses, forced refreshes) call the same ``perform_refresh`` entry point;
the ``is_running`` flag drops any trigger that arrives mid-cycle.
"""
from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import Enum

import structlog

from src.core.cache.memory_cache import MemoryCache
from src.core.refresh.pipeline import RefreshPipeline

logger = structlog.get_logger()


class RefreshOutcome(str, Enum):
    UPDATED = "updated"
    NO_UPDATE = "no_update"   # pipeline produced no cacheable record
    FAILED = "failed"         # pipeline raised despite its contract
    SKIPPED = "skipped"       # another cycle was already in flight


@dataclass
class SchedulerState:
    is_running: bool = False
    last_run_at: datetime | None = None
    next_run_at: datetime | None = None
    job_active: bool = False


def next_daily_run(now: datetime, hour: int = 0, minute: int = 0) -> datetime:
    """Next ``hour:minute`` UTC strictly after ``now``."""
    now = now.astimezone(timezone.utc)
    candidate = now.replace(hour=hour, minute=minute, second=0, microsecond=0)
    if candidate <= now:
        candidate += timedelta(days=1)
    return candidate


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class RefreshScheduler:

    def __init__(
        self,
        cache: MemoryCache,
        pipeline: RefreshPipeline,
        cache_key: str = "walrus-data",
        hour: int = 0,
        minute: int = 0,
        clock: Callable[[], datetime] = _utcnow,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.cache = cache
        self.pipeline = pipeline
        self.cache_key = cache_key
        self.hour = hour
        self.minute = minute
        self._clock = clock
        self._sleep = sleep
        self.state = SchedulerState()
        self._job: asyncio.Task | None = None
        self._inflight: asyncio.Future | None = None

    async def start(self) -> None:
        logger.info("scheduler.starting", hour=self.hour, minute=self.minute)
        self.state.next_run_at = next_daily_run(self._clock(), self.hour, self.minute)
        if self._job is None or self._job.done():
            self._job = asyncio.create_task(self._run_daily(), name="daily-metrics-refresh")
        self.state.job_active = True
        logger.info("scheduler.started", next_run_at=self.state.next_run_at.isoformat())

        if not self.cache.has(self.cache_key):
            logger.info("scheduler.bootstrap", reason="no cached data")
            await self.perform_refresh()
        else:
            inserted = self.cache.get_inserted_at(self.cache_key)
            logger.info("scheduler.bootstrap_skipped",
                        cached_at=inserted.isoformat() if inserted else None)

    def stop(self) -> None:
        if self._job is not None:
            self._job.cancel()
            self._job = None
            logger.info("scheduler.stopped")
        self.state.job_active = False

    async def perform_refresh(self) -> RefreshOutcome:
        # No await between the check and the set: this is the single-flight guard
        if self.state.is_running:
            logger.warning("scheduler.refresh_skipped", reason="refresh already in progress")
            return RefreshOutcome.SKIPPED
        self.state.is_running = True
        started_at = self._clock()

        try:
            logger.info("scheduler.refresh_started", started_at=started_at.isoformat())
            self.cache.delete(self.cache_key)
            record = await self.pipeline.run()
            if record is None:
                logger.error("scheduler.refresh_failed", reason="no cacheable record")
                return RefreshOutcome.NO_UPDATE
            logger.info("scheduler.refresh_completed", provenance=record.provenance.value)
            return RefreshOutcome.UPDATED
        except Exception as e:
            logger.error("scheduler.refresh_error", error=str(e))
            return RefreshOutcome.FAILED
        finally:
            self.state.is_running = False
            self.state.last_run_at = started_at
            self.state.next_run_at = next_daily_run(self._clock(), self.hour, self.minute)

    async def _run_daily(self) -> None:
        target = next_daily_run(self._clock(), self.hour, self.minute)
        while True:
            delay = (target - self._clock()).total_seconds()
            if delay > 0:
                await self._sleep(delay)
                continue
            # Shielded: stop() cancels the trigger, never a cycle already running
            self._inflight = asyncio.ensure_future(self.perform_refresh())
            await asyncio.shield(self._inflight)
            target = next_daily_run(max(target, self._clock()), self.hour, self.minute)

    def get_status(self) -> dict:
        active = self.cache.has(self.cache_key)
        inserted = self.cache.get_inserted_at(self.cache_key) if active else None
        return {
            "is_running": self.state.is_running,
            "last_run_at": self.state.last_run_at.isoformat() if self.state.last_run_at else None,
            "next_run_at": self.state.next_run_at.isoformat() if self.state.next_run_at else None,
            "job_active": self.state.job_active,
            "cache_status": "active" if active else "empty",
            "cache_inserted_at": inserted.isoformat() if inserted else None,
        }
