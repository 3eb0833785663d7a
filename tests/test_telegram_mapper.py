from __future__ import annotations

import asyncio

from telethon.tl import types

from huskboard.adapters.telegram_mapper import (
    ReactionUpdate,
    StickyCommand,
    deleted_sources,
    parse_sticky_command,
    reaction_count,
    reaction_update_from_raw,
)


class DummyEntities:
    def __init__(self) -> None:
        self.calls = []

    async def scope_key(self, chat_id: int) -> str:
        self.calls.append(chat_id)
        return f"chat_id:{chat_id}"


def _reactions(*pairs) -> types.MessageReactions:
    return types.MessageReactions(
        results=[types.ReactionCount(reaction=reaction, count=count) for reaction, count in pairs]
    )


def test_reaction_count_matches_emoji_and_custom_emoji() -> None:
    reactions = _reactions(
        (types.ReactionEmoji(emoticon="🔥"), 5),
        (types.ReactionEmoji(emoticon="👍"), 2),
        (types.ReactionCustomEmoji(document_id=555), 7),
    )

    assert reaction_count(reactions, "🔥") == 5
    assert reaction_count(reactions, "custom:555") == 7
    assert reaction_count(reactions, "💀") == 0
    assert reaction_count(None, "🔥") == 0


def test_reaction_update_from_raw_maps_channel_peer() -> None:
    entities = DummyEntities()
    update = types.UpdateMessageReactions(
        peer=types.PeerChannel(channel_id=123),
        msg_id=10,
        reactions=_reactions((types.ReactionEmoji(emoticon="🔥"), 5)),
    )

    result = asyncio.run(reaction_update_from_raw(update, "🔥", entities))

    assert result == ReactionUpdate(scope_id="chat_id:-1000000000123", message_id=10, count=5)
    assert entities.calls == [-1000000000123]


def test_reaction_update_from_raw_ignores_other_updates() -> None:
    entities = DummyEntities()
    update = types.UpdateReadHistoryInbox(
        peer=types.PeerChat(chat_id=1),
        max_id=10,
        still_unread_count=0,
        pts=1,
        pts_count=1,
    )

    assert asyncio.run(reaction_update_from_raw(update, "🔥", entities)) is None
    assert entities.calls == []


def test_cleared_reactions_count_as_zero() -> None:
    update = types.UpdateMessageReactions(
        peer=types.PeerChat(chat_id=42),
        msg_id=3,
        reactions=_reactions(),
    )

    result = asyncio.run(reaction_update_from_raw(update, "🔥", DummyEntities()))

    assert result == ReactionUpdate(scope_id="chat_id:-42", message_id=3, count=0)


def test_deleted_sources_needs_chat_id() -> None:
    entities = DummyEntities()

    assert asyncio.run(deleted_sources(None, [1, 2], entities)) == []
    assert asyncio.run(deleted_sources(-100123, [1, 2], entities)) == [
        ("chat_id:-100123", 1),
        ("chat_id:-100123", 2),
    ]


def test_parse_sticky_command() -> None:
    assert parse_sticky_command("!sticky Read the rules") == StickyCommand(action="set", content="Read the rules")
    assert parse_sticky_command("!STICKY line one\nline two") == StickyCommand(
        action="set", content="line one\nline two"
    )
    assert parse_sticky_command("!unsticky") == StickyCommand(action="clear")


def test_parse_sticky_command_ignores_other_text() -> None:
    assert parse_sticky_command(None) is None
    assert parse_sticky_command("!sticky") is None
    assert parse_sticky_command("!stickyfoo bar") is None
    assert parse_sticky_command("hello !sticky") is None
    assert parse_sticky_command("!help") is None
