"""Telegram-to-core update mapping adapter.

This keeps Telethon-specific details out of the board and sticky logic.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any, List, Optional

from telethon import utils
from telethon.tl.types import UpdateMessageReactions

from huskboard.adapters.telegram_entities import EntityCache

CUSTOM_EMOJI_PREFIX = "custom:"


@dataclass(frozen=True)
class ReactionUpdate:
    """Reaction count of one emoji on one source message."""

    scope_id: str
    message_id: int
    count: int


def reaction_name(reaction: Any) -> Optional[str]:
    """Return the configured-name form of a reaction.

    Plain emoji map to themselves, custom emoji to ``custom:<document_id>``.
    """

    emoticon = getattr(reaction, "emoticon", None)
    if isinstance(emoticon, str):
        return emoticon
    document_id = getattr(reaction, "document_id", None)
    if document_id is not None:
        return f"{CUSTOM_EMOJI_PREFIX}{document_id}"
    return None


def reaction_count(reactions: Any, emoji: str) -> int:
    """Return how many times ``emoji`` was used in a MessageReactions value."""

    results = getattr(reactions, "results", None) or []
    for result in results:
        if reaction_name(getattr(result, "reaction", None)) == emoji:
            return int(getattr(result, "count", 0) or 0)
    return 0


async def reaction_update_from_raw(update: Any, emoji: str, entities: EntityCache) -> Optional[ReactionUpdate]:
    """Map a raw UpdateMessageReactions to a ReactionUpdate, else None."""

    if not isinstance(update, UpdateMessageReactions):
        return None
    chat_id = utils.get_peer_id(update.peer)
    scope_id = await entities.scope_key(chat_id)
    return ReactionUpdate(
        scope_id=scope_id,
        message_id=update.msg_id,
        count=reaction_count(update.reactions, emoji),
    )


async def deleted_sources(chat_id: Optional[int], deleted_ids: List[int], entities: EntityCache) -> List[tuple[str, int]]:
    """Return (scope_id, message_id) pairs for a MessageDeleted event.

    Telegram only reports the chat for channel and supergroup deletions;
    without it the source cannot be identified and nothing is returned.
    """

    if chat_id is None:
        return []
    scope_id = await entities.scope_key(chat_id)
    return [(scope_id, message_id) for message_id in deleted_ids]


STICKY_COMMAND = "!sticky"
UNSTICKY_COMMAND = "!unsticky"

_COMMAND_RE = re.compile(r"^(?P<command>![A-Za-z]+)(?:\s+(?P<rest>.*))?$", re.DOTALL)


@dataclass(frozen=True)
class StickyCommand:
    """A sticky command typed by the session owner in a chat."""

    action: str
    content: str = ""


def parse_sticky_command(text: Optional[str]) -> Optional[StickyCommand]:
    """Parse ``!sticky <text>`` and ``!unsticky``; anything else is None."""

    if not text:
        return None
    match = _COMMAND_RE.match(text.strip())
    if not match:
        return None
    head = match.group("command").lower()
    rest = match.group("rest") or ""
    if head == UNSTICKY_COMMAND:
        return StickyCommand(action="clear")
    if head == STICKY_COMMAND:
        content = rest.strip()
        if not content:
            return None
        return StickyCommand(action="set", content=content)
    return None
