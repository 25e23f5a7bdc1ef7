"""Unit tests for the record sanitizer."""
from datetime import datetime, timedelta, timezone

import pytest

from src.core.metrics.models import (
    STORAGE_PRICE_UNIT,
    Capacity,
    Epoch,
    MetricsRecord,
    Price,
    Provenance,
)
from src.core.metrics.sanitizer import MAX_STRING_LENGTH, sanitize

NOW = datetime(2025, 3, 1, 0, 0, tzinfo=timezone.utc)


def _raw(**overrides) -> dict:
    raw = {
        "storage_price": {"value": 11_000, "unit": "FROST/MiB/EPOCH", "display": "11,000"},
        "write_price": {"value": 20_000, "unit": "FROST/MiB"},
        "storage_capacity": {"used": 644, "total": 4167, "percentage": 15.45},
        "epoch": {"number": 150},
        "provenance": "realtime",
        "observed_at": "2025-02-28T23:59:00+00:00",
    }
    raw.update(overrides)
    return raw


# ── Range projection tests ───────────────────────────────────────────────


class TestRanges:

    def test_valid_record_passes_through(self):
        record = sanitize(_raw(), now=NOW)
        assert record.storage_price == Price(11_000, "FROST/MiB/EPOCH", "11,000")
        assert record.write_price.value == 20_000
        assert record.storage_capacity == Capacity(15.45, 644, 4167)
        assert record.epoch == Epoch(150)
        assert record.provenance == Provenance.REALTIME

    @pytest.mark.parametrize("value", [999, 100_001, -5, 0, "11000", None, True, float("nan"), 11_000.5])
    def test_out_of_range_or_mistyped_price_is_dropped(self, value):
        record = sanitize(_raw(storage_price={"value": value, "unit": "FROST/MiB/EPOCH"}))
        assert record.storage_price is None
        assert record.write_price is not None

    def test_price_bounds_are_inclusive(self):
        record = sanitize(_raw(
            storage_price={"value": 1_000},
            write_price={"value": 100_000.0},
        ))
        assert record.storage_price.value == 1_000
        assert record.write_price.value == 100_000
        assert isinstance(record.write_price.value, int)

    def test_missing_unit_gets_default(self):
        record = sanitize(_raw(storage_price={"value": 12_000}))
        assert record.storage_price.unit == STORAGE_PRICE_UNIT

    @pytest.mark.parametrize("pct", [-0.1, 100.5, float("inf"), "15%"])
    def test_bad_percentage_drops_capacity(self, pct):
        record = sanitize(_raw(storage_capacity={"used": 1, "total": 2, "percentage": pct}))
        assert record.storage_capacity is None

    def test_bad_used_total_keep_percentage(self):
        record = sanitize(_raw(storage_capacity={"used": -1, "total": 0, "percentage": 40}))
        assert record.storage_capacity.percentage == 40.0
        assert record.storage_capacity.used is None
        assert record.storage_capacity.total is None

    @pytest.mark.parametrize("number", [0, 10_001, -1, "150"])
    def test_out_of_range_epoch_is_dropped(self, number):
        record = sanitize(_raw(epoch={"number": number}))
        assert record.epoch is None

    def test_huge_integer_percentage_is_dropped(self):
        record = sanitize(_raw(storage_capacity={"used": 1, "total": 2, "percentage": 10**400}))
        assert record.storage_capacity is None
        assert record.epoch == Epoch(150)

    def test_long_strings_are_truncated(self):
        record = sanitize(_raw(storage_price={"value": 11_000, "display": "x" * 500}))
        assert len(record.storage_price.display) == MAX_STRING_LENGTH


# ── Shape, provenance & timestamp tests ──────────────────────────────────


class TestShape:

    @pytest.mark.parametrize("raw", [None, "walrus", 42, ["storage_price"]])
    def test_non_mapping_input(self, raw):
        assert sanitize(raw) is None

    def test_non_mapping_fields_are_absent(self):
        record = sanitize(_raw(storage_price=11_000, epoch=[150], storage_capacity="15%"))
        assert record.storage_price is None
        assert record.epoch is None
        assert record.storage_capacity is None

    def test_unrecognized_provenance_becomes_unknown(self):
        assert sanitize(_raw(provenance="scraped")).provenance == Provenance.UNKNOWN
        assert sanitize(_raw(provenance=None)).provenance == Provenance.UNKNOWN

    @pytest.mark.parametrize("value", ["fallback", "estimated", "cached"])
    def test_recognized_provenance_is_kept(self, value):
        assert sanitize(_raw(provenance=value)).provenance == Provenance(value)

    def test_timestamp_is_normalized_to_utc(self):
        record = sanitize(_raw(observed_at="2025-03-01T02:00:00+02:00"))
        assert record.observed_at == NOW
        assert record.observed_at.utcoffset() == timedelta(0)

    def test_naive_timestamp_is_treated_as_utc(self):
        record = sanitize(_raw(observed_at=datetime(2025, 3, 1)))
        assert record.observed_at == NOW

    def test_unparsable_timestamp_uses_now(self):
        record = sanitize(_raw(observed_at="yesterday"), now=NOW)
        assert record.observed_at == NOW

    @pytest.mark.parametrize("value", ["9999-12-31T23:00:00-05:00", "0001-01-01T00:00:00+05:00"])
    def test_timestamp_outside_utc_range_uses_now(self, value):
        record = sanitize(_raw(observed_at=value), now=NOW)
        assert record.observed_at == NOW


# ── Idempotence tests ────────────────────────────────────────────────────


class TestIdempotence:

    @pytest.mark.parametrize("raw", [
        _raw(),
        _raw(provenance="bogus", observed_at=None),
        _raw(storage_price={"value": 5}, storage_capacity={"percentage": 99.5}),
        _raw(epoch=None, write_price={"value": 30_000, "display": "y" * 200}),
    ])
    def test_sanitize_is_a_projection(self, raw):
        once = sanitize(raw, now=NOW)
        assert sanitize(once, now=NOW) == once

    def test_record_input_is_accepted(self):
        record = MetricsRecord(
            storage_price=Price(11_000, STORAGE_PRICE_UNIT),
            epoch=Epoch(3),
            provenance=Provenance.FALLBACK,
            observed_at=NOW,
        )
        assert sanitize(record) == record
