"""Sticky messages that stay at the bottom of a chat (core domain).

A sticky is reposted (deleted, then sent again) after every new message in
its chat so it remains the newest one. Editing in place cannot move a
message, which is why sticky entries use the REPOST policy.
"""

from __future__ import annotations

import logging
from typing import List, Optional

from huskboard.core.engine import ReconciliationEngine
from huskboard.core.errors import CheckpointWriteFailure
from huskboard.core.models import (
    ABSENT,
    Content,
    Desired,
    Event,
    NewActivity,
    Outcome,
    ReconcileKey,
    TrackedEntry,
)

LOGGER = logging.getLogger(__name__)


class PinnedTextRenderer:
    """Render the configured sticky text as-is."""

    async def render(self, key: ReconcileKey, state: Optional[str]) -> Desired:
        if not state:
            return ABSENT
        return Content(text=state)


class StickyManager:
    """Per-chat sticky configuration on top of a REPOST engine."""

    def __init__(self, engine: ReconciliationEngine) -> None:
        self._engine = engine

    @staticmethod
    def key_for(scope_id: str) -> ReconcileKey:
        return ReconcileKey(scope_id, scope_id)

    def initialize(self) -> int:
        count = self._engine.load()
        LOGGER.info("Loaded %s sticky configs", count)
        return count

    async def set_sticky(self, scope_id: str, content: str, owner_scope_id: Optional[str] = None) -> Outcome:
        """Save the sticky text for a chat and repost it immediately."""

        if not content or not content.strip():
            raise ValueError("Sticky content cannot be empty")
        key = self.key_for(scope_id)
        try:
            await self._engine.configure(key, content, owner_scope_id)
        except CheckpointWriteFailure as exc:
            LOGGER.error("Error setting sticky for %s: %s", scope_id, exc)
            return Outcome.failed(key, f"checkpoint write failure: {exc}")
        return await self._engine.reconcile(Event(key, NewActivity()))

    async def disable_sticky(self, scope_id: str) -> Outcome:
        """Forget the sticky for a chat and delete its last message."""

        return await self._engine.forget(self.key_for(scope_id))

    def get_sticky(self, scope_id: str) -> Optional[TrackedEntry]:
        return self._engine.cache.get(self.key_for(scope_id))

    def list_stickies(self) -> List[TrackedEntry]:
        return sorted(self._engine.cache.entries(), key=lambda entry: entry.key.scope_id)

    async def handle_message(self, scope_id: str, message_id: int) -> Optional[Outcome]:
        """Repost the sticky of a chat after new activity there.

        Returns None when the chat has no sticky configured.
        """

        key = self.key_for(scope_id)
        if key not in self._engine.cache:
            return None
        return await self._engine.reconcile(Event(key, NewActivity(message_id=str(message_id))))
