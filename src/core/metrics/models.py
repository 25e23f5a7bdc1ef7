"""Metrics record: the unit of value moved through the refresh pipeline."""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum


class Provenance(str, Enum):
    REALTIME = "realtime"    # every resolved field came from the page
    FALLBACK = "fallback"    # capacity scraped, prices substituted with constants
    ESTIMATED = "estimated"
    CACHED = "cached"
    UNKNOWN = "unknown"


# Plausible ranges; anything outside is treated as absent
PRICE_RANGE = (1_000, 100_000)
PERCENTAGE_RANGE = (0.0, 100.0)
EPOCH_RANGE = (1, 10_000)

STORAGE_PRICE_UNIT = "FROST/MiB/EPOCH"
WRITE_PRICE_UNIT = "FROST/MiB"


@dataclass(frozen=True)
class Price:
    value: int
    unit: str
    display: str | None = None


@dataclass(frozen=True)
class Capacity:
    percentage: float
    used: int | None = None    # TB
    total: int | None = None   # TB
    display: str | None = None


@dataclass(frozen=True)
class Epoch:
    number: int
    display: str | None = None


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class MetricsRecord:
    storage_price: Price | None = None
    write_price: Price | None = None
    storage_capacity: Capacity | None = None
    epoch: Epoch | None = None
    provenance: Provenance = Provenance.REALTIME
    observed_at: datetime = field(default_factory=_utcnow)

    def is_empty(self) -> bool:
        return (
            self.storage_price is None
            and self.write_price is None
            and self.storage_capacity is None
            and self.epoch is None
        )

    def to_dict(self) -> dict:
        """JSON-ready representation; also the input shape the sanitizer accepts."""
        return {
            "storage_price": _price_dict(self.storage_price),
            "write_price": _price_dict(self.write_price),
            "storage_capacity": (
                {
                    "used": self.storage_capacity.used,
                    "total": self.storage_capacity.total,
                    "percentage": self.storage_capacity.percentage,
                    "display": self.storage_capacity.display,
                }
                if self.storage_capacity
                else None
            ),
            "epoch": (
                {"number": self.epoch.number, "display": self.epoch.display}
                if self.epoch
                else None
            ),
            "provenance": self.provenance.value,
            "observed_at": self.observed_at.isoformat(),
        }


def _price_dict(price: Price | None) -> dict | None:
    if price is None:
        return None
    return {"value": price.value, "unit": price.unit, "display": price.display}
