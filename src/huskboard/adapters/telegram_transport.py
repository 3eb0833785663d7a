"""Telethon transport adapter.

Posts, edits and deletes representations as plain Markdown messages. Links
are rendered as Markdown link lines and the identity tag, when present, is
the last line of the message in inline code.
"""

from __future__ import annotations

import logging
from typing import List, Optional

from telethon import errors

from huskboard.adapters.telegram_entities import EntityCache
from huskboard.core.errors import RepresentationNotFound, TransportFailure
from huskboard.core.models import Content, RecentMessage

LOGGER = logging.getLogger(__name__)


def _escape_label(value: str) -> str:
    for ch in "[]":
        value = value.replace(ch, "")
    return value


def render_message(content: Content) -> str:
    """Return the Markdown body sent for a Content bundle."""

    lines = [content.text.rstrip()]
    if content.links:
        lines.append("")
        lines.extend(f"[{_escape_label(link.label)}]({link.url})" for link in content.links)
    if content.tag:
        lines.extend(["", f"`{content.tag}`"])
    return "\n".join(lines)


def extract_tag(raw_text: Optional[str]) -> Optional[str]:
    """Return the candidate tag line of a posted message (its last line)."""

    if not raw_text:
        return None
    lines = [line.strip() for line in raw_text.splitlines() if line.strip()]
    if not lines:
        return None
    return lines[-1].strip("`")


class TelegramTransport:
    """TransportPort implementation on top of a Telethon client."""

    def __init__(self, client, entities: EntityCache) -> None:
        self._client = client
        self._entities = entities

    async def create(self, scope_id: str, content: Content) -> str:
        entity = await self._entities.resolve(scope_id)
        try:
            message = await self._client.send_message(
                entity,
                render_message(content),
                parse_mode="md",
                link_preview=False,
            )
        except errors.RPCError as exc:
            raise TransportFailure(f"send to {scope_id} failed: {exc}") from exc
        return str(message.id)

    async def update(self, scope_id: str, representation_id: str, content: Content) -> None:
        entity = await self._entities.resolve(scope_id)
        try:
            await self._client.edit_message(
                entity,
                int(representation_id),
                render_message(content),
                parse_mode="md",
                link_preview=False,
            )
        except errors.MessageNotModifiedError:
            LOGGER.debug("Message %s in %s already up to date", representation_id, scope_id)
        except errors.MessageIdInvalidError as exc:
            raise RepresentationNotFound(f"message {representation_id} in {scope_id} is gone") from exc
        except errors.RPCError as exc:
            raise TransportFailure(f"edit of {representation_id} in {scope_id} failed: {exc}") from exc

    async def delete(self, scope_id: str, representation_id: str) -> None:
        entity = await self._entities.resolve(scope_id)
        try:
            affected = await self._client.delete_messages(entity, [int(representation_id)])
        except errors.MessageIdInvalidError as exc:
            raise RepresentationNotFound(f"message {representation_id} in {scope_id} is gone") from exc
        except errors.RPCError as exc:
            raise TransportFailure(f"delete of {representation_id} in {scope_id} failed: {exc}") from exc
        # Telegram reports zero affected messages for ids that no longer exist.
        if not sum(getattr(item, "pts_count", 0) for item in affected or []):
            raise RepresentationNotFound(f"message {representation_id} in {scope_id} is gone")

    async def list_recent(self, scope_id: str, limit: int) -> List[RecentMessage]:
        """Return our own recent messages in a chat, newest first."""

        entity = await self._entities.resolve(scope_id)
        recent: List[RecentMessage] = []
        try:
            async for message in self._client.iter_messages(entity, limit=limit):
                if not getattr(message, "out", False):
                    continue
                recent.append(
                    RecentMessage(
                        representation_id=str(message.id),
                        tag=extract_tag(getattr(message, "raw_text", None)),
                    )
                )
        except errors.RPCError as exc:
            raise TransportFailure(f"history of {scope_id} failed: {exc}") from exc
        return recent
