"""Tier compilation and selection for the reaction board (core domain)."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, List, Optional


@dataclass(frozen=True)
class Tier:
    """A board tier, active from ``threshold`` reactions upwards."""

    threshold: int
    label: str


def build_tiers(tiers_config: Iterable[dict]) -> List[Tier]:
    """Normalize tier configs and sort them by threshold.

    Each entry is ``{"min": <int>, "label": <str>}``. Duplicate or negative
    thresholds are rejected so selection stays unambiguous.
    """

    compiled: List[Tier] = []
    seen: set[int] = set()
    for tier in tiers_config:
        threshold = int(tier["min"])
        if threshold < 0:
            raise ValueError(f"Tier threshold must be >= 0: {threshold}")
        if threshold in seen:
            raise ValueError(f"Duplicate tier threshold: {threshold}")
        seen.add(threshold)
        compiled.append(Tier(threshold=threshold, label=str(tier.get("label", ""))))
    compiled.sort(key=lambda item: item.threshold)
    return compiled


def select_tier(count: int, tiers: Iterable[Tier]) -> Optional[Tier]:
    """Return the highest tier whose threshold is <= count."""

    selected: Optional[Tier] = None
    for tier in tiers:
        if tier.threshold <= count and (selected is None or tier.threshold > selected.threshold):
            selected = tier
    return selected
