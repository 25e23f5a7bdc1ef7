"""Metrics endpoints: serve the cached record, force refreshes, report status."""
from __future__ import annotations

import structlog
from fastapi import APIRouter, Depends, Request, Response

from src.api.v2.models import (
    LastUpdateResponse,
    MetricsResponse,
    RefreshResponse,
    StatusResponse,
)
from src.core.errors import MetricsUnavailableError
from src.core.metrics.models import MetricsRecord
from src.core.metrics.validator import is_servable
from src.core.refresh.scheduler import RefreshOutcome
from src.core.services import Services

router = APIRouter(tags=["Metrics"])
logger = structlog.get_logger()


def get_services(request: Request) -> Services:
    return request.app.state.services


def _servable_record(services: Services) -> MetricsRecord | None:
    record = services.cache.get(services.settings.metrics_cache_key)
    if isinstance(record, MetricsRecord) and is_servable(record):
        return record
    return None


def _last_update(services: Services) -> str | None:
    inserted = services.cache.get_inserted_at(services.settings.metrics_cache_key)
    return inserted.isoformat() if inserted else None


@router.get("/metrics", response_model=MetricsResponse)
async def get_metrics(services: Services = Depends(get_services)):
    """Cached metrics; on a miss, one refresh is attempted before giving up."""
    record = _servable_record(services)
    if record is not None:
        return {"source": "cache", "last_update": _last_update(services), "data": record.to_dict()}

    logger.info("api.metrics_cache_miss")
    outcome = await services.scheduler.perform_refresh()
    record = _servable_record(services)
    if record is None:
        raise MetricsUnavailableError(f"No valid metrics available (refresh outcome: {outcome.value})")
    return {"source": "fresh", "last_update": _last_update(services), "data": record.to_dict()}


@router.post("/refresh", response_model=RefreshResponse)
async def force_refresh(response: Response, services: Services = Depends(get_services)):
    """Drop the cached record and scrape again."""
    outcome = await services.scheduler.perform_refresh()
    if outcome == RefreshOutcome.SKIPPED:
        response.status_code = 202
        return {"message": "Refresh already in progress", "outcome": outcome.value}

    record = _servable_record(services)
    if outcome != RefreshOutcome.UPDATED or record is None:
        raise MetricsUnavailableError(f"Refresh produced no cacheable record ({outcome.value})")
    return {"message": "Metrics refreshed", "outcome": outcome.value, "data": record.to_dict()}


@router.get("/last-update", response_model=LastUpdateResponse)
async def last_update(services: Services = Depends(get_services)):
    active = services.cache.has(services.settings.metrics_cache_key)
    return {
        "last_update": _last_update(services) if active else None,
        "cache_status": "active" if active else "empty",
    }


@router.get("/status", response_model=StatusResponse)
async def status(services: Services = Depends(get_services)):
    return {
        "scheduler": services.scheduler.get_status(),
        "cache": services.cache.get_status(),
    }
