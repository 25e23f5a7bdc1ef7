"""Sanitizer: projects an untyped record onto a bounded MetricsRecord.

This is the only place a dynamically shaped record is tolerated. Every field is
re-checked for type and range; a field that fails is dropped, never clamped.
The projection is stable: ``sanitize(sanitize(r)) == sanitize(r)``.
"""
from __future__ import annotations

import math
from collections.abc import Mapping
from datetime import datetime, timezone
from typing import Any

from src.core.metrics.models import (
    EPOCH_RANGE,
    PERCENTAGE_RANGE,
    PRICE_RANGE,
    STORAGE_PRICE_UNIT,
    WRITE_PRICE_UNIT,
    Capacity,
    Epoch,
    MetricsRecord,
    Price,
    Provenance,
)

MAX_STRING_LENGTH = 64

_RECOGNIZED_PROVENANCE = {
    Provenance.REALTIME.value,
    Provenance.FALLBACK.value,
    Provenance.ESTIMATED.value,
    Provenance.CACHED.value,
}


def sanitize(raw: Any, now: datetime | None = None) -> MetricsRecord | None:
    if isinstance(raw, MetricsRecord):
        raw = raw.to_dict()
    if not isinstance(raw, Mapping):
        return None

    return MetricsRecord(
        storage_price=_price(raw.get("storage_price"), STORAGE_PRICE_UNIT),
        write_price=_price(raw.get("write_price"), WRITE_PRICE_UNIT),
        storage_capacity=_capacity(raw.get("storage_capacity")),
        epoch=_epoch(raw.get("epoch")),
        provenance=_provenance(raw.get("provenance")),
        observed_at=_timestamp(raw.get("observed_at"), now),
    )


# ── Field projections ────────────────────────────────────────────────────


def _price(raw: Any, default_unit: str) -> Price | None:
    if not isinstance(raw, Mapping):
        return None
    value = _int_in_range(raw.get("value"), *PRICE_RANGE)
    if value is None:
        return None
    unit = _text(raw.get("unit")) or default_unit
    return Price(value=value, unit=unit, display=_text(raw.get("display")))


def _capacity(raw: Any) -> Capacity | None:
    if not isinstance(raw, Mapping):
        return None
    percentage = _float_in_range(raw.get("percentage"), *PERCENTAGE_RANGE)
    if percentage is None:
        return None
    return Capacity(
        percentage=percentage,
        used=_int_in_range(raw.get("used"), 0, None),
        total=_int_in_range(raw.get("total"), 1, None),
        display=_text(raw.get("display")),
    )


def _epoch(raw: Any) -> Epoch | None:
    if not isinstance(raw, Mapping):
        return None
    number = _int_in_range(raw.get("number"), *EPOCH_RANGE)
    if number is None:
        return None
    return Epoch(number=number, display=_text(raw.get("display")))


def _provenance(raw: Any) -> Provenance:
    if isinstance(raw, str) and raw in _RECOGNIZED_PROVENANCE:
        return Provenance(raw)
    return Provenance.UNKNOWN


def _timestamp(raw: Any, now: datetime | None) -> datetime:
    parsed = None
    if isinstance(raw, datetime):
        parsed = raw
    elif isinstance(raw, str):
        try:
            parsed = datetime.fromisoformat(raw.strip())
        except ValueError:
            parsed = None
    if parsed is None:
        return now or datetime.now(timezone.utc)
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    try:
        return parsed.astimezone(timezone.utc)
    except OverflowError:
        # Offset pushes the instant past datetime.min / datetime.max
        return now or datetime.now(timezone.utc)


# ── Scalar checks ────────────────────────────────────────────────────────


def _int_in_range(value: Any, low: int, high: int | None) -> int | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, float):
        if not math.isfinite(value) or not value.is_integer():
            return None
        value = int(value)
    if not isinstance(value, int):
        return None
    if value < low or (high is not None and value > high):
        return None
    return value


def _float_in_range(value: Any, low: float, high: float) -> float | None:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    try:
        value = float(value)
    except OverflowError:
        return None
    if not math.isfinite(value) or not low <= value <= high:
        return None
    return value


def _text(value: Any) -> str | None:
    if not isinstance(value, str):
        return None
    return value[:MAX_STRING_LENGTH]
