"""Board entry formatting and the Telethon-backed board composer.

Keeping formatting here prevents drift between the composer and tests and
keeps board entries consistent regardless of the source chat.
"""

from __future__ import annotations

import logging
from typing import List, Optional

from telethon import errors, utils

from huskboard.adapters.telegram_entities import EntityCache
from huskboard.core.errors import TransportFailure
from huskboard.core.keys import CHAT_ID_PREFIX, split_board_source_id
from huskboard.core.models import ABSENT, Content, Desired, LinkButton, ReconcileKey
from huskboard.core.tiers import Tier

LOGGER = logging.getLogger(__name__)

DIVIDER = "──────────────"


def escape_md(value: str) -> str:
    for ch in ("*", "_", "`", "[", "~"):
        value = value.replace(ch, f"\\{ch}")
    return value


def format_source_label(scope_key: str, source_aliases: dict[str, str]) -> str:
    """Return a human-friendly source label, using configured aliases."""

    alias = source_aliases.get(scope_key)
    if not alias:
        return scope_key
    return f"{alias} ({scope_key})"


def build_permalink(scope_key: str, message_id: int) -> Optional[str]:
    """Return a t.me link for a message, when the chat allows one."""

    # Prefer public usernames for permalinks when available.
    if scope_key.startswith("@"):
        return f"https://t.me/{scope_key[1:]}/{message_id}"
    if scope_key.startswith(f"{CHAT_ID_PREFIX}-100"):
        # Private supergroups/channels can use the /c/ links.
        channel_id = scope_key[len(CHAT_ID_PREFIX) + 4:]
        if channel_id.isdigit():
            return f"https://t.me/c/{channel_id}/{message_id}"
    # Basic groups and private chats have no public link form.
    return None


def format_board_entry(
    *,
    tier: Optional[Tier],
    count: int,
    source_label: str,
    author: Optional[str],
    text: str,
    snippet_chars: int,
    has_media: bool,
    permalink: Optional[str],
    reply_permalink: Optional[str] = None,
) -> Content:
    """Create the board entry for one source message."""

    header = f"**{count}** | {escape_md(source_label)}"
    if tier and tier.label:
        header = f"{tier.label} {header}"
    lines = [header, DIVIDER]
    if author:
        lines.append(f"**{escape_md(author)}**")
    snippet = text[:snippet_chars].strip()
    if snippet:
        if len(text) > snippet_chars:
            snippet = f"{snippet}…"
        lines.append(escape_md(snippet))
    if has_media:
        lines.append("[media]" if not snippet else "+ media")

    links: List[LinkButton] = []
    if permalink:
        links.append(LinkButton(label="Jump", url=permalink))
    if reply_permalink:
        links.append(LinkButton(label="Jump to referenced message", url=reply_permalink))
    return Content(text="\n".join(lines), links=tuple(links))


class TelegramBoardComposer:
    """Fetch the source message and compose its board entry.

    Returns ABSENT for source messages that are gone or have neither text
    nor media, so the engine removes any board entry they still have.
    """

    def __init__(
        self,
        client,
        entities: EntityCache,
        source_aliases: dict[str, str],
        snippet_chars: int,
    ) -> None:
        self._client = client
        self._entities = entities
        self._source_aliases = source_aliases
        self._snippet_chars = snippet_chars

    async def __call__(self, key: ReconcileKey, count: int, tier: Optional[Tier]) -> Desired:
        source_scope, message_id = split_board_source_id(key.source_id)
        entity = await self._entities.resolve(source_scope)
        try:
            message = await self._client.get_messages(entity, ids=message_id)
        except errors.RPCError as exc:
            raise TransportFailure(f"fetch of {key.source_id} failed: {exc}") from exc
        if message is None:
            LOGGER.info("Source message %s is gone", key.source_id)
            return ABSENT

        text = message.raw_text or ""
        has_media = message.media is not None
        if not text.strip() and not has_media:
            return ABSENT

        author = None
        try:
            sender = await message.get_sender()
        except errors.RPCError:
            sender = None
        if sender is not None:
            author = utils.get_display_name(sender) or None

        reply_to_id = getattr(message, "reply_to_msg_id", None)
        return format_board_entry(
            tier=tier,
            count=count,
            source_label=format_source_label(source_scope, self._source_aliases),
            author=author,
            text=text,
            snippet_chars=self._snippet_chars,
            has_media=has_media,
            permalink=build_permalink(source_scope, message_id),
            reply_permalink=build_permalink(source_scope, reply_to_id) if reply_to_id else None,
        )
