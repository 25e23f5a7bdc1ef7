"""Pydantic response models for the metrics API."""
from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, Field


# ── Metrics ──────────────────────────────────────────────────────────────


class PriceOut(BaseModel):
    value: int
    unit: str
    display: str | None = None


class CapacityOut(BaseModel):
    percentage: float
    used: int | None = None
    total: int | None = None
    display: str | None = None


class EpochOut(BaseModel):
    number: int
    display: str | None = None


class MetricsOut(BaseModel):
    storage_price: PriceOut | None = None
    write_price: PriceOut | None = None
    storage_capacity: CapacityOut | None = None
    epoch: EpochOut | None = None
    provenance: str
    observed_at: str


class MetricsResponse(BaseModel):
    source: Literal["cache", "fresh"]
    last_update: str | None = None
    data: MetricsOut


# ── Refresh ──────────────────────────────────────────────────────────────


class RefreshResponse(BaseModel):
    message: str
    outcome: str
    data: MetricsOut | None = None


class LastUpdateResponse(BaseModel):
    last_update: str | None = None
    cache_status: Literal["active", "empty"]


# ── Status ───────────────────────────────────────────────────────────────


class SchedulerStatus(BaseModel):
    is_running: bool
    last_run_at: str | None = None
    next_run_at: str | None = None
    job_active: bool
    cache_status: Literal["active", "empty"]
    cache_inserted_at: str | None = None


class CacheStatus(BaseModel):
    size: int
    max_size: int
    memory_usage_bytes: int
    max_memory_bytes: int
    process_memory_bytes: int
    keys: list[str] = Field(default_factory=list)
    inserted_at: dict[str, str] = Field(default_factory=dict)


class StatusResponse(BaseModel):
    scheduler: SchedulerStatus
    cache: CacheStatus
