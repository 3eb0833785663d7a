"""Threshold-gated reaction board (core domain)."""

from __future__ import annotations

import logging
from typing import Awaitable, Callable, Iterable, List, Optional

from huskboard.core.engine import ReconciliationEngine
from huskboard.core.keys import board_source_id
from huskboard.core.models import ABSENT, CountChanged, Desired, Event, Outcome, ReconcileKey, SourceRemoved
from huskboard.core.tiers import Tier, select_tier

LOGGER = logging.getLogger(__name__)

# compose(key, count, tier) -> Content or ABSENT
Composer = Callable[[ReconcileKey, int, Optional[Tier]], Awaitable[Desired]]


class ThresholdRenderer:
    """Gate on a minimum count and hand the tier to a content composer.

    Tier boundaries and the content itself belong to the caller; this class
    only decides whether a representation should exist at all.
    """

    def __init__(self, min_count: int, tiers: Iterable[Tier], compose: Composer) -> None:
        self._min_count = min_count
        self._tiers: List[Tier] = list(tiers)
        self._compose = compose

    async def render(self, key: ReconcileKey, state: Optional[int]) -> Desired:
        if state is None or state < self._min_count:
            return ABSENT
        return await self._compose(key, state, select_tier(state, self._tiers))


class ReactionBoard:
    """Mirror source messages with enough reactions into one board chat."""

    def __init__(self, engine: ReconciliationEngine, scope_id: str) -> None:
        self._engine = engine
        self._scope_id = scope_id

    @property
    def scope_id(self) -> str:
        return self._scope_id

    def initialize(self) -> int:
        return self._engine.load()

    def key_for(self, source_scope_id: str, message_id: int) -> ReconcileKey:
        return ReconcileKey(self._scope_id, board_source_id(source_scope_id, message_id))

    async def handle_count(self, source_scope_id: str, message_id: int, count: int) -> Outcome:
        """Reconcile a source message after its reaction count changed."""

        key = self.key_for(source_scope_id, message_id)
        outcome = await self._engine.reconcile(Event(key, CountChanged(count)))
        LOGGER.debug("Board count %s for %s -> %s", count, key, outcome.kind.value)
        return outcome

    async def handle_removed(self, source_scope_id: str, message_id: int) -> Outcome:
        """Drop the board entry of a deleted source message."""

        key = self.key_for(source_scope_id, message_id)
        return await self._engine.reconcile(Event(key, SourceRemoved()))
