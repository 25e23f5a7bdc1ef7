"""
Source Registry: candidate pages the refresh pipeline scrapes, in priority order.
Adding a source = add one SourceConfig entry here.
"""
from __future__ import annotations
from dataclasses import dataclass


@dataclass(frozen=True)
class SourceConfig:
    name:         str
    url:          str
    description:  str = ""


SOURCE_REGISTRY: list[SourceConfig] = [
    SourceConfig(
        name="walruscan",
        url="https://walruscan.com/mainnet/home",
        description="Walruscan mainnet explorer dashboard",
    ),
    SourceConfig(
        name="stake_wal",
        url="https://stake-wal.wal.app/",
        description="Walrus staking app",
    ),
]


def get_source(name: str) -> SourceConfig:
    for source in SOURCE_REGISTRY:
        if source.name == name:
            return source
    raise ValueError(f"Unknown source: {name!r}. Available: {[s.name for s in SOURCE_REGISTRY]}")


def get_sources(names: list[str] | None = None) -> list[SourceConfig]:
    """Registered sources in priority order, optionally restricted to ``names``."""
    if not names:
        return list(SOURCE_REGISTRY)
    wanted = {get_source(n).name for n in names}
    return [s for s in SOURCE_REGISTRY if s.name in wanted]
