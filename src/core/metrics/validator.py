"""Two-tier validation for scraped metrics.

The loose check decides whether a record is good enough to serve; the strict
check decides whether it is good enough to cache. Strict implies loose, so the
cache never holds a record the serve path would later refuse.
"""
from dataclasses import dataclass, field

from src.core.metrics.models import (
    EPOCH_RANGE,
    PERCENTAGE_RANGE,
    PRICE_RANGE,
    MetricsRecord,
    Price,
    Provenance,
)


@dataclass
class ValidationResult:
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return not self.errors


class MetricsValidator:

    REALTIME_MIN_FIELDS = 2
    DEFAULT_MIN_FIELDS = 3

    def count_present(self, record: MetricsRecord) -> int:
        capacity = record.storage_capacity
        checks = [
            record.storage_price is not None and record.storage_price.value > 0,
            record.write_price is not None and record.write_price.value > 0,
            capacity is not None and (
                bool(capacity.used and capacity.total) or capacity.percentage > 0
            ),
            record.epoch is not None and record.epoch.number > 0,
        ]
        return sum(checks)

    def is_servable(self, record: MetricsRecord) -> bool:
        required = (
            self.REALTIME_MIN_FIELDS
            if record.provenance == Provenance.REALTIME
            else self.DEFAULT_MIN_FIELDS
        )
        return self.count_present(record) >= required

    def validate_strict(self, record: MetricsRecord) -> ValidationResult:
        r = ValidationResult()

        _check_price(r, "storage_price", record.storage_price)
        _check_price(r, "write_price", record.write_price)

        capacity = record.storage_capacity
        if capacity is None:
            r.errors.append("storage_capacity missing")
        elif not PERCENTAGE_RANGE[0] <= capacity.percentage <= PERCENTAGE_RANGE[1]:
            r.errors.append(f"storage_capacity.percentage out of range: {capacity.percentage}")
        elif capacity.used is None or capacity.total is None:
            r.warnings.append("storage_capacity has percentage only")

        if record.epoch is None:
            r.errors.append("epoch missing")
        elif not EPOCH_RANGE[0] <= record.epoch.number <= EPOCH_RANGE[1]:
            r.errors.append(f"epoch out of range: {record.epoch.number}")

        if record.provenance == Provenance.FALLBACK:
            r.warnings.append("prices are fallback constants")
        return r

    def is_cacheable(self, record: MetricsRecord) -> bool:
        return self.validate_strict(record).is_valid


def _check_price(r: ValidationResult, name: str, price: Price | None) -> None:
    if price is None:
        r.errors.append(f"{name} missing")
    elif not PRICE_RANGE[0] <= price.value <= PRICE_RANGE[1]:
        r.errors.append(f"{name} out of range: {price.value}")


_default = MetricsValidator()


def is_servable(record: MetricsRecord) -> bool:
    return _default.is_servable(record)


def is_cacheable(record: MetricsRecord) -> bool:
    return _default.is_cacheable(record)
