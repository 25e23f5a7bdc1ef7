"""Composition root: builds the cache, fetcher, pipeline and scheduler from Settings."""
from __future__ import annotations

from dataclasses import dataclass

import structlog

from src.core.cache.memory_cache import MB, MemoryCache
from src.core.config import Settings
from src.core.fetchers.base import PageFetcher
from src.core.fetchers.browser import BrowserPageFetcher
from src.core.fetchers.http import HttpPageFetcher
from src.core.refresh.pipeline import RefreshPipeline
from src.core.refresh.scheduler import RefreshScheduler
from src.core.sources.registry import SourceConfig, get_sources

logger = structlog.get_logger()


@dataclass
class Services:
    settings: Settings
    cache: MemoryCache
    pipeline: RefreshPipeline
    scheduler: RefreshScheduler


def build_fetcher(settings: Settings) -> PageFetcher:
    if settings.fetcher_backend == "http":
        return HttpPageFetcher(
            retries=settings.fetch_retries,
            retry_backoff_seconds=settings.fetch_retry_backoff_seconds,
        )
    return BrowserPageFetcher(
        retries=settings.fetch_retries,
        retry_backoff_seconds=settings.fetch_retry_backoff_seconds,
        settle_timeout_ms=settings.content_settle_timeout_ms,
    )


def build_services(
    settings: Settings,
    fetcher: PageFetcher | None = None,
    sources: list[SourceConfig] | None = None,
) -> Services:
    cache = MemoryCache(
        max_size=settings.cache_max_entries,
        max_memory_bytes=settings.cache_max_memory_mb * MB,
        memory_check_interval=settings.cache_memory_check_interval_seconds,
        memory_high_water_bytes=settings.process_memory_high_water_mb * MB,
    )
    fetcher = fetcher or build_fetcher(settings)
    if sources is None:
        sources = get_sources(settings.enabled_sources)

    pipeline = RefreshPipeline(
        fetcher=fetcher,
        sources=sources,
        cache=cache,
        cache_key=settings.metrics_cache_key,
        ttl_seconds=settings.cache_ttl_seconds,
        fetch_timeout_ms=settings.fetch_timeout_ms,
    )
    scheduler = RefreshScheduler(
        cache=cache,
        pipeline=pipeline,
        cache_key=settings.metrics_cache_key,
        hour=settings.refresh_hour_utc,
        minute=settings.refresh_minute_utc,
    )
    logger.info("services.built", fetcher=fetcher.name, sources=[s.name for s in sources])
    return Services(settings=settings, cache=cache, pipeline=pipeline, scheduler=scheduler)
