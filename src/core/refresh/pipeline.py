"""RefreshPipeline: fetch → extract → sanitize → strict validate → cache, per source."""
from __future__ import annotations

import structlog

from src.core.cache.memory_cache import MemoryCache
from src.core.errors import FetchFailure, ValidationRejected
from src.core.fetchers.base import PageFetcher
from src.core.metrics.extractor import MetricsExtractor
from src.core.metrics.models import MetricsRecord
from src.core.metrics.sanitizer import sanitize
from src.core.metrics.validator import MetricsValidator
from src.core.sources.registry import SourceConfig

logger = structlog.get_logger()


class RefreshPipeline:
    """Tries each source in priority order; the first strictly valid record is cached.

    Every per-source failure is absorbed here, so ``run()`` either returns the
    cached record or ``None`` and never raises into the scheduler.
    """

    def __init__(
        self,
        fetcher: PageFetcher,
        sources: list[SourceConfig],
        cache: MemoryCache,
        cache_key: str = "walrus-data",
        ttl_seconds: int = 86400,
        fetch_timeout_ms: int = 45000,
        extractor: MetricsExtractor | None = None,
        validator: MetricsValidator | None = None,
    ):
        self.fetcher = fetcher
        self.sources = sources
        self.cache = cache
        self.cache_key = cache_key
        self.ttl_seconds = ttl_seconds
        self.fetch_timeout_ms = fetch_timeout_ms
        self.extractor = extractor or MetricsExtractor()
        self.validator = validator or MetricsValidator()

    async def run(self) -> MetricsRecord | None:
        for source in self.sources:
            try:
                record = await self.refresh_from(source)
            except FetchFailure as e:
                logger.warning("pipeline.fetch_failed", source=source.name, url=e.url,
                               attempts=e.attempts, error=e.reason)
                continue
            except ValidationRejected as e:
                logger.warning("pipeline.validation_rejected", source=source.name, errors=e.errors)
                continue
            except Exception as e:
                logger.error("pipeline.source_failed", source=source.name, error=str(e))
                continue

            if not self.cache.set(self.cache_key, record, self.ttl_seconds):
                logger.error("pipeline.cache_refused", source=source.name, key=self.cache_key)
                continue
            logger.info("pipeline.ok", source=source.name, provenance=record.provenance.value)
            return record

        logger.error("pipeline.exhausted", sources=[s.name for s in self.sources])
        return None

    async def refresh_from(self, source: SourceConfig) -> MetricsRecord:
        logger.info("pipeline.fetching", source=source.name, url=source.url)
        content = await self.fetcher.fetch_rendered(source.url, self.fetch_timeout_ms)

        extracted = self.extractor.extract(content)
        if extracted.is_empty():
            logger.warning("pipeline.extraction_empty", source=source.name, chars=len(content))

        record = sanitize(extracted)
        if record is None:
            raise ValidationRejected(source.name, ["record could not be sanitized"])

        result = self.validator.validate_strict(record)
        if not result.is_valid:
            raise ValidationRejected(source.name, result.errors)
        for warning in result.warnings:
            logger.info("pipeline.validation_warning", source=source.name, warning=warning)
        return record
