"""Extractor: turns rendered page content into a best-effort MetricsRecord.

Strategies run in order and each field is first-match-wins:

1. Full-text scan of the document for price, capacity and epoch patterns.
2. Structural scan of text-bearing elements, only for fields still unset.
3. Repair: capacity found but no price at all -> constant prices, provenance
   ``fallback``.

Prices are disambiguated by position: the first ``<n> FROST / MB`` match is the
storage price and the second is the write price. A page that swaps the two
cards would swap the values.
"""
from __future__ import annotations

import re
from datetime import datetime, timezone
from typing import Callable

import structlog
from bs4 import BeautifulSoup, Tag

from src.core.metrics.models import (
    STORAGE_PRICE_UNIT,
    WRITE_PRICE_UNIT,
    Capacity,
    Epoch,
    MetricsRecord,
    Price,
    Provenance,
)

logger = structlog.get_logger()

_NUMBER = r"(?<![\d,.])\d+(?:,\d{3})*"
_DECIMAL = r"\d+(?:\.\d+)?"

PRICE_PATTERN = re.compile(rf"({_NUMBER})\s*FROST\s*/\s*Mi?B", re.IGNORECASE)
EPOCH_PATTERN = re.compile(r"(?<![/\w])Epoch\s*#?\s*(\d+)", re.IGNORECASE)
RATIO_PATTERN = re.compile(rf"({_NUMBER})\s*/\s*({_NUMBER})\s*TB", re.IGNORECASE)
PERCENT_PATTERN = re.compile(rf"({_DECIMAL})\s*%")
USED_OF_TOTAL_PATTERN = re.compile(rf"({_NUMBER})\s*TB\D{{1,40}}?({_NUMBER})\s*TB", re.IGNORECASE)
TB_PB_PATTERN = re.compile(rf"({_DECIMAL})\s*TB\s*/?\s*({_DECIMAL})\s*PB", re.IGNORECASE)
LEADING_NUMBER = re.compile(_NUMBER)

# Used when the capacity card rendered but neither price did
FALLBACK_STORAGE_PRICE = 11_000
FALLBACK_WRITE_PRICE = 20_000

_SKIP_TAGS = ["script", "style", "noscript", "template"]
_MAX_ANCESTOR_CLIMB = 2


def _to_int(text: str) -> int:
    return int(text.replace(",", ""))


def _compact(text: str) -> str:
    return re.sub(r"\s+", "", text).upper()


def _clean(text: str) -> str:
    return re.sub(r"\s+", " ", text).strip()


class MetricsExtractor:

    def __init__(self, clock: Callable[[], datetime] | None = None):
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    def extract(self, raw_content: str) -> MetricsRecord:
        fields: dict = {}
        soup = self._parse(raw_content)
        if soup is not None:
            for name, strategy in (("text", self._scan_text), ("structure", self._scan_nodes)):
                try:
                    strategy(soup, fields)
                except Exception as e:
                    logger.warning("extractor.strategy_failed", strategy=name, error=str(e))

        provenance = Provenance.REALTIME
        if (
            "storage_capacity" in fields
            and "storage_price" not in fields
            and "write_price" not in fields
        ):
            logger.warning("extractor.fallback_prices", reason="capacity found without prices")
            provenance = Provenance.FALLBACK
            fields["storage_price"] = Price(FALLBACK_STORAGE_PRICE, STORAGE_PRICE_UNIT, "11,000")
            fields["write_price"] = Price(FALLBACK_WRITE_PRICE, WRITE_PRICE_UNIT, "20,000")

        return MetricsRecord(
            storage_price=fields.get("storage_price"),
            write_price=fields.get("write_price"),
            storage_capacity=fields.get("storage_capacity"),
            epoch=fields.get("epoch"),
            provenance=provenance,
            observed_at=self._clock(),
        )

    def _parse(self, raw_content: str) -> BeautifulSoup | None:
        if not isinstance(raw_content, str) or not raw_content.strip():
            return None
        try:
            soup = BeautifulSoup(raw_content, "html.parser")
        except Exception as e:
            logger.warning("extractor.parse_failed", error=str(e))
            return None
        for tag in soup.find_all(_SKIP_TAGS):
            tag.decompose()
        return soup

    # ── Strategy 1: full-document text ───────────────────────────────────

    def _scan_text(self, soup: BeautifulSoup, fields: dict) -> None:
        text = soup.get_text("\n")

        prices = PRICE_PATTERN.findall(text)
        if len(prices) >= 2:
            fields["storage_price"] = Price(_to_int(prices[0]), STORAGE_PRICE_UNIT, prices[0])
            fields["write_price"] = Price(_to_int(prices[1]), WRITE_PRICE_UNIT, prices[1])

        epoch = EPOCH_PATTERN.search(text)
        if epoch:
            fields["epoch"] = Epoch(int(epoch.group(1)), f"Epoch {epoch.group(1)}")

        ratio = RATIO_PATTERN.search(text)
        if ratio and _to_int(ratio.group(2)) > 0:
            used, total = _to_int(ratio.group(1)), _to_int(ratio.group(2))
            fields["storage_capacity"] = Capacity(
                percentage=round(used / total * 100, 2),
                used=used,
                total=total,
                display=f"{ratio.group(1)} / {ratio.group(2)} TB",
            )
            return

        percent = PERCENT_PATTERN.search(text)
        if percent:
            used = total = None
            display = f"{percent.group(1)}%"
            usage = TB_PB_PATTERN.search(text)
            if usage:
                used = round(float(usage.group(1)))
                total = round(float(usage.group(2)) * 1000)
                display = f"{usage.group(1)} TB / {usage.group(2)} PB"
            fields["storage_capacity"] = Capacity(
                percentage=float(percent.group(1)), used=used, total=total, display=display
            )

    # ── Strategy 2: text-bearing elements ────────────────────────────────

    def _scan_nodes(self, soup: BeautifulSoup, fields: dict) -> None:
        if "storage_price" not in fields or "write_price" not in fields:
            for text in self._anchored_texts(soup, lambda t: "FROST" in _compact(t)):
                compact = _compact(text)
                number = LEADING_NUMBER.search(text)
                if number is None:
                    continue
                if "FROST/MIB/EPOCH" in compact and "storage_price" not in fields:
                    fields["storage_price"] = Price(_to_int(number.group(0)), STORAGE_PRICE_UNIT, number.group(0))
                elif ("FROST/MIB" in compact and "EPOCH" not in compact
                      and "write_price" not in fields):
                    fields["write_price"] = Price(_to_int(number.group(0)), WRITE_PRICE_UNIT, number.group(0))

        if "epoch" not in fields:
            for text in self._anchored_texts(soup, lambda t: "EPOCH" in _compact(t)):
                match = re.search(r"Epoch\D{0,20}?(\d+)", text, re.IGNORECASE)
                if match and "FROST" not in _compact(text):
                    fields["epoch"] = Epoch(int(match.group(1)), f"Epoch {match.group(1)}")
                    break

        if "storage_capacity" not in fields:
            # "Used 644 TB of 4,167 TB" style cards
            for text in self._anchored_texts(soup, lambda t: "CAPACITY" in _compact(t)):
                match = USED_OF_TOTAL_PATTERN.search(text)
                if match and _to_int(match.group(2)) > 0:
                    used, total = _to_int(match.group(1)), _to_int(match.group(2))
                    fields["storage_capacity"] = Capacity(
                        percentage=round(used / total * 100, 2),
                        used=used,
                        total=total,
                        display=f"{match.group(1)} / {match.group(2)} TB",
                    )
                    break

    def _anchored_texts(self, soup: BeautifulSoup, has_anchor: Callable[[str], bool]):
        """Yield the text around the deepest elements carrying an anchor token.

        When the anchor element holds no number (``<span>FROST/MiB</span>`` next
        to ``<span>11,000</span>``) the search climbs a couple of ancestors.
        """
        for el in soup.find_all(True):
            own = el.get_text(" ")
            if not has_anchor(own):
                continue
            if any(isinstance(child, Tag) and has_anchor(child.get_text(" ")) for child in el.children):
                continue
            node: Tag | None = el
            for _ in range(_MAX_ANCESTOR_CLIMB + 1):
                if node is None:
                    break
                text = _clean(node.get_text(" "))
                if LEADING_NUMBER.search(text):
                    yield text
                    break
                node = node.parent if isinstance(node.parent, Tag) else None
