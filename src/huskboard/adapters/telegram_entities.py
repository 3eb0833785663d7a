"""Per-chat entity cache for Telethon.

Resolving an entity costs a network round trip the first time, so each
scope is resolved once and reused for the lifetime of the process.
"""

from __future__ import annotations

import logging
from typing import Any, Dict

from telethon import errors

from huskboard.core.errors import TransportFailure
from huskboard.core.keys import parse_scope_key, scope_key_from_chat

LOGGER = logging.getLogger(__name__)


class EntityCache:
    """Resolve scope keys to input entities and chat ids to scope keys."""

    def __init__(self, client) -> None:
        self._client = client
        self._entities: Dict[str, Any] = {}
        self._scope_keys: Dict[int, str] = {}

    async def resolve(self, scope_id: str) -> Any:
        """Return the input entity for a scope key, resolving it on first use."""

        if scope_id in self._entities:
            return self._entities[scope_id]
        try:
            reference = parse_scope_key(scope_id)
        except ValueError as exc:
            raise TransportFailure(str(exc)) from exc
        try:
            entity = await self._client.get_input_entity(reference)
        except (ValueError, errors.RPCError) as exc:
            raise TransportFailure(f"Cannot resolve {scope_id}: {exc}") from exc
        self._entities[scope_id] = entity
        return entity

    async def scope_key(self, chat_id: int) -> str:
        """Return the scope key for a marked chat id.

        Public chats are keyed by username so configuration can use
        ``@name``. Failed lookups fall back to ``chat_id:`` and are retried
        on the next call.
        """

        if chat_id in self._scope_keys:
            return self._scope_keys[chat_id]
        try:
            entity = await self._client.get_entity(chat_id)
        except (ValueError, errors.RPCError):
            LOGGER.debug("Could not resolve chat %s, using chat_id key", chat_id)
            return scope_key_from_chat(chat_id)
        username = getattr(entity, "username", None)
        key = scope_key_from_chat(chat_id, username if isinstance(username, str) else None)
        self._scope_keys[chat_id] = key
        return key
