"""Core configuration dataclasses.

We keep config parsing outside the core, but these dataclasses define the
shape the core expects so adapters and app layers can build safely.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class BoardConfig:
    """Reaction board settings."""

    scope_id: str
    emoji: str
    min_count: int
    # How many recent board messages the resolver scans for a tag.
    lookback: int
    snippet_chars: int


@dataclass(frozen=True)
class ReconcileConfig:
    """Settings shared by every reconciliation engine."""

    timeout_seconds: float
