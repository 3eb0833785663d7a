"""Helpers for working with huskboard scope keys.

A scope key names a chat: ``@username`` for public chats, otherwise
``chat_id:<marked id>``. Board sources are a scope key plus a message id.
"""

from __future__ import annotations

from typing import Tuple, Union

CHAT_ID_PREFIX = "chat_id:"
MESSAGE_SEPARATOR = "/"


def scope_key_from_chat(chat_id: int, username: "str | None" = None) -> str:
    """Normalize a scope key using the single rule enforced across the app."""

    if username:
        return f"@{username.lower()}"
    return f"{CHAT_ID_PREFIX}{chat_id}"


def parse_scope_key(scope_key: str) -> Union[int, str]:
    """Return what Telethon accepts as an entity reference for a scope key."""

    if scope_key.startswith("@") and len(scope_key) > 1:
        return scope_key[1:]
    if scope_key.startswith(CHAT_ID_PREFIX):
        try:
            return int(scope_key[len(CHAT_ID_PREFIX):])
        except ValueError:
            pass
    raise ValueError(f"Unsupported scope key: {scope_key!r}")


def board_source_id(scope_key: str, message_id: int) -> str:
    return f"{scope_key}{MESSAGE_SEPARATOR}{message_id}"


def split_board_source_id(source_id: str) -> Tuple[str, int]:
    """Split a board source id into (scope_key, message_id)."""

    scope_key, separator, message_part = source_id.rpartition(MESSAGE_SEPARATOR)
    if not separator or not scope_key:
        raise ValueError(f"Malformed board source id: {source_id!r}")
    return scope_key, int(message_part)


def _expand_chat_id_variants(raw_chat_id: int) -> set[int]:
    """Return equivalent chat id variants (peer id, chat id, channel id)."""

    variants: set[int] = {raw_chat_id}
    if raw_chat_id < 0:
        raw_text = str(raw_chat_id)
        if raw_text.startswith("-100"):
            # Channel/supergroup peer id: -100<channel_id>
            channel_part = raw_text[4:]
            if channel_part.isdigit():
                variants.add(int(channel_part))
        else:
            variants.add(abs(raw_chat_id))
        return variants

    variants.add(-raw_chat_id)
    variants.add(-1000000000000 - raw_chat_id)
    return variants


def expand_scope_key_variants(scope_key: str) -> set[str]:
    """Expand a scope key to include equivalent chat_id spellings."""

    if not scope_key.startswith(CHAT_ID_PREFIX):
        return {scope_key.lower()} if scope_key.startswith("@") else {scope_key}
    try:
        raw_chat_id = int(scope_key[len(CHAT_ID_PREFIX):])
    except ValueError:
        return {scope_key}
    return {f"{CHAT_ID_PREFIX}{variant}" for variant in _expand_chat_id_variants(raw_chat_id)}
