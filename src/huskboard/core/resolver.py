"""Scan-based recovery of representations that the cache lost track of."""

from __future__ import annotations

import logging
from typing import Optional

from huskboard.core.identity import decode_tag
from huskboard.core.ports import TransportPort

LOGGER = logging.getLogger(__name__)

DEFAULT_LOOKBACK = 100


class IdentityResolver:
    """Find a tagged representation among the recent messages of a scope.

    The scan window is fixed so a cold start costs one bounded history
    request per key. A miss returns None; callers treat it as "no existing
    representation".
    """

    def __init__(self, transport: TransportPort, lookback: int = DEFAULT_LOOKBACK) -> None:
        if lookback <= 0:
            raise ValueError("lookback must be positive")
        self._transport = transport
        self._lookback = lookback

    async def resolve(self, scope_id: str, source_id: str) -> Optional[str]:
        recent = await self._transport.list_recent(scope_id, self._lookback)
        for message in recent:
            if decode_tag(message.tag) == source_id:
                LOGGER.info("Resolved %s in %s to message %s", source_id, scope_id, message.representation_id)
                return message.representation_id
        LOGGER.debug("No tagged message for %s in last %s of %s", source_id, self._lookback, scope_id)
        return None
