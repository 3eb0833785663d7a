"""Application entry point for the huskboard watcher."""

from __future__ import annotations

import argparse
import logging
import os
from logging.handlers import RotatingFileHandler
from typing import Optional

from art import tprint
from dotenv import load_dotenv
from telethon import events
from telethon.tl.types import UpdateMessageReactions

from huskboard import settings
from huskboard.adapters.board_formatting import TelegramBoardComposer
from huskboard.adapters.sqlite_checkpoints import SQLiteCheckpointStore
from huskboard.adapters.telegram_entities import EntityCache
from huskboard.adapters.telegram_mapper import deleted_sources, parse_sticky_command, reaction_update_from_raw
from huskboard.adapters.telegram_transport import TelegramTransport
from huskboard.core.board import ReactionBoard, ThresholdRenderer
from huskboard.core.config import BoardConfig, ReconcileConfig
from huskboard.core.engine import ReconciliationEngine
from huskboard.core.keys import expand_scope_key_variants
from huskboard.core.models import UpdatePolicy
from huskboard.core.resolver import IdentityResolver
from huskboard.core.sticky import PinnedTextRenderer, StickyManager
from huskboard.core.tiers import build_tiers
from huskboard.session import authorize, build_client

NAME = "HUSKBOARD"
FONT = "tarty-1"

BOARD_TABLE = "board_entries"
STICKY_TABLE = "sticky_messages"


def _print_banner() -> None:
    tprint(NAME, FONT, space=1)


class _RedactingFormatter(logging.Formatter):
    def __init__(self, secrets: list[str], fmt: str, datefmt: Optional[str] = None) -> None:
        super().__init__(fmt=fmt, datefmt=datefmt)
        self._secrets = [secret for secret in secrets if secret]

    def format(self, record: logging.LogRecord) -> str:
        message = super().format(record)
        for secret in self._secrets:
            message = message.replace(secret, "***")
        return message


def _collect_redaction_values(config: dict) -> list[str]:
    redact_cfg = config.get("redact", {}) if config else {}
    if not redact_cfg.get("enabled", False):
        return []
    values = [os.getenv(name) for name in redact_cfg.get("patterns", ["API_HASH", "2FA", "PHONE"])]
    return sorted({value for value in values if value}, key=len, reverse=True)


def _configure_logging() -> None:
    config = settings.LOGGING or {}
    if not config.get("enabled", False):
        return

    load_dotenv()
    level_name = str(config.get("level", "INFO")).upper()
    level = getattr(logging, level_name, logging.INFO)
    formatter = _RedactingFormatter(
        _collect_redaction_values(config),
        fmt="%(asctime)s %(levelname)s %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    handlers: list[logging.Handler] = []
    if config.get("console", True):
        handlers.append(logging.StreamHandler())

    file_cfg = config.get("file", {})
    if file_cfg.get("enabled", False):
        path = file_cfg.get("path", "logs/huskboard.log")
        if not os.path.isabs(path):
            path = os.path.join(settings.PROJECT_ROOT, path)
        directory = os.path.dirname(path)
        if directory:
            os.makedirs(directory, exist_ok=True)
        handlers.append(
            RotatingFileHandler(
                path,
                maxBytes=int(file_cfg.get("max_bytes", 5 * 1024 * 1024)),
                backupCount=int(file_cfg.get("backup_count", 5)),
                encoding="utf-8",
            )
        )

    if not handlers:
        return
    for handler in handlers:
        handler.setLevel(level)
        handler.setFormatter(formatter)
    logging.basicConfig(level=level, handlers=handlers)


def _open_store(table: str) -> SQLiteCheckpointStore:
    store = SQLiteCheckpointStore(settings.DB_PATH, table)
    store.init_db()
    return store


def _board_config() -> BoardConfig:
    if not settings.BOARD_CHAT:
        raise RuntimeError("board.chat is required when the board is enabled")
    return BoardConfig(
        scope_id=settings.BOARD_CHAT,
        emoji=settings.BOARD_EMOJI,
        min_count=settings.BOARD_MIN_COUNT,
        lookback=settings.BOARD_LOOKBACK,
        snippet_chars=settings.BOARD_SNIPPET_CHARS,
    )


def _build_board(
    client,
    entities: EntityCache,
    transport: TelegramTransport,
    config: BoardConfig,
    reconcile: ReconcileConfig,
) -> ReactionBoard:
    composer = TelegramBoardComposer(client, entities, settings.SOURCE_ALIASES, config.snippet_chars)
    engine = ReconciliationEngine(
        transport,
        _open_store(BOARD_TABLE),
        ThresholdRenderer(config.min_count, build_tiers(settings.BOARD_TIERS_CONFIG), composer),
        policy=UpdatePolicy.EDIT_IN_PLACE,
        resolver=IdentityResolver(transport, config.lookback),
        timeout_seconds=reconcile.timeout_seconds,
        name="board",
    )
    return ReactionBoard(engine, config.scope_id)


def _build_sticky(transport: TelegramTransport, reconcile: ReconcileConfig) -> StickyManager:
    engine = ReconciliationEngine(
        transport,
        _open_store(STICKY_TABLE),
        PinnedTextRenderer(),
        policy=UpdatePolicy.REPOST,
        timeout_seconds=reconcile.timeout_seconds,
        name="sticky",
    )
    return StickyManager(engine)


def _is_board_source(scope_id: str, board: ReactionBoard) -> bool:
    # Reactions on board entries themselves are never mirrored.
    if scope_id in expand_scope_key_variants(board.scope_id):
        return False
    if not settings.BOARD_SOURCES:
        return True
    return scope_id in settings.BOARD_SOURCES


def _register_board_handlers(client, board: ReactionBoard, entities: EntityCache) -> None:
    logger = logging.getLogger(__name__)

    @client.on(events.Raw(types=UpdateMessageReactions))
    async def on_reactions(update) -> None:
        try:
            reaction = await reaction_update_from_raw(update, settings.BOARD_EMOJI, entities)
            if reaction is None or not _is_board_source(reaction.scope_id, board):
                return
            outcome = await board.handle_count(reaction.scope_id, reaction.message_id, reaction.count)
            if not outcome.ok:
                logger.warning("Board update failed for %s: %s", outcome.key, outcome.reason)
        except Exception:
            logger.exception("Error while processing reactions")

    @client.on(events.MessageDeleted)
    async def on_deleted(event) -> None:
        try:
            for scope_id, message_id in await deleted_sources(event.chat_id, event.deleted_ids, entities):
                if _is_board_source(scope_id, board):
                    await board.handle_removed(scope_id, message_id)
        except Exception:
            logger.exception("Error while processing deleted messages")


def _register_sticky_handlers(client, sticky: StickyManager, entities: EntityCache) -> None:
    logger = logging.getLogger(__name__)

    @client.on(events.NewMessage())
    async def on_message(event) -> None:
        try:
            scope_id = await entities.scope_key(event.chat_id)
            command = parse_sticky_command(event.raw_text) if event.out else None
            if command is not None and settings.STICKY_COMMANDS_ENABLED:
                # The command itself should not linger above the sticky.
                await event.delete()
                if command.action == "set":
                    outcome = await sticky.set_sticky(scope_id, command.content, str(event.sender_id))
                else:
                    outcome = await sticky.disable_sticky(scope_id)
                logger.info("Sticky %s for %s: %s", command.action, scope_id, outcome.kind.value)
                return
            outcome = await sticky.handle_message(scope_id, event.id)
            if outcome is not None and not outcome.ok:
                logger.warning("Sticky repost failed for %s: %s", scope_id, outcome.reason)
        except Exception:
            logger.exception("Error while processing message")


def _run() -> None:
    _print_banner()
    _configure_logging()
    logger = logging.getLogger(__name__)

    logger.info("Starting huskboard")
    reconcile = ReconcileConfig(timeout_seconds=settings.RECONCILE_TIMEOUT_SECONDS)

    client = build_client()
    client.loop.run_until_complete(client.connect())
    client.loop.run_until_complete(authorize(client))

    entities = EntityCache(client)
    transport = TelegramTransport(client, entities)

    if settings.BOARD_ENABLED:
        board = _build_board(client, entities, transport, _board_config(), reconcile)
        logger.info("Board ready in %s with %s tracked entries", board.scope_id, board.initialize())
        _register_board_handlers(client, board, entities)

    if settings.STICKY_ENABLED:
        sticky = _build_sticky(transport, reconcile)
        sticky.initialize()
        _register_sticky_handlers(client, sticky, entities)

    logger.info("Client connected. Listening for updates...")
    client.run_until_disconnected()


def _login() -> None:
    _print_banner()
    client = build_client()

    async def _run_login() -> None:
        await client.connect()
        await authorize(client)
        await client.disconnect()

    client.loop.run_until_complete(_run_login())


def _list_stickies() -> None:
    store = _open_store(STICKY_TABLE)
    records = store.load()
    if not records:
        print("No stickies configured.")
        return
    for index, record in enumerate(records, start=1):
        preview = (record.content or "").splitlines()[0][:60] if record.content else ""
        print(f"{index}. {record.scope_id} | message {record.representation_id or '-'} | {preview}")


def main(argv: Optional[list[str]] = None) -> None:
    parser = argparse.ArgumentParser(prog="huskboard")
    subparsers = parser.add_subparsers(dest="command")

    subparsers.add_parser("run", help="Start the watcher")
    subparsers.add_parser("login", help="Authorize the Telegram session and exit")
    subparsers.add_parser("stickies", help="List configured sticky messages")

    args = parser.parse_args(argv)
    if args.command == "login":
        _login()
        return
    if args.command == "stickies":
        _list_stickies()
        return
    _run()


if __name__ == "__main__":
    main()
