"""Static configuration for huskboard.

All user-editable settings (board, stickies, reconciliation, logging) live
in a single JSON file for quick edits without touching Python. The file is
``config.json`` in the working directory unless HUSKBOARD_CONFIG points
elsewhere.
"""

import json
import os

from huskboard.core.keys import expand_scope_key_variants

CONFIG_PATH = os.path.abspath(os.getenv("HUSKBOARD_CONFIG", "config.json"))

PROJECT_ROOT = os.path.dirname(CONFIG_PATH)

DEFAULT_TIERS = [
    {"min": 1, "label": "🌱"},
    {"min": 6, "label": "🔥"},
    {"min": 10, "label": "🌋"},
]


def _load_json_config() -> dict:
    """Load the config file with a flat, user-friendly schema."""

    if not os.path.exists(CONFIG_PATH):
        raise FileNotFoundError(f"Config file not found: {CONFIG_PATH}")

    with open(CONFIG_PATH, "r", encoding="utf-8") as handle:
        return json.load(handle)


def _normalize_sources(raw_sources: list[dict]) -> tuple[set[str], dict[str, str]]:
    """Normalize board sources and build an alias map keyed by scope key."""

    sources: set[str] = set()
    aliases: dict[str, str] = {}
    for entry in raw_sources:
        scope_key = entry.get("scope_key")
        if not scope_key:
            continue
        if not entry.get("enabled", True):
            continue
        expanded_keys = expand_scope_key_variants(scope_key)
        sources.update(expanded_keys)
        alias = entry.get("alias")
        if alias:
            aliases[scope_key] = alias
            # Mirror aliases onto equivalent chat_id forms to avoid mismatches.
            for key in expanded_keys:
                aliases.setdefault(key, alias)
    return sources, aliases


def _resolve_path(path: str) -> str:
    if os.path.isabs(path):
        return path
    return os.path.join(PROJECT_ROOT, path)


_CONFIG = _load_json_config()

# Expose the raw config for modules that need structured access.
CONFIG = _CONFIG

# Where to store the SQLite checkpoint database.
DB_PATH = _resolve_path(_CONFIG.get("database", {}).get("path", "huskboard.db"))

# Reaction board. An empty source list means every chat except the board.
# - BOARD_CHAT: scope key of the chat that receives board entries
# - BOARD_EMOJI: plain emoji or "custom:<document_id>"
# - BOARD_MIN_COUNT: reactions needed before an entry is posted
# - BOARD_LOOKBACK: recent board messages scanned to recover lost entries
_board = _CONFIG.get("board", {})
BOARD_ENABLED = bool(_board.get("enabled", False))
BOARD_CHAT = _board.get("chat")
BOARD_EMOJI = _board.get("emoji", "🔥")
BOARD_MIN_COUNT = int(_board.get("min_count", 4))
BOARD_LOOKBACK = int(_board.get("lookback", 100))
BOARD_SNIPPET_CHARS = int(_board.get("snippet_chars", 600))
BOARD_TIERS_CONFIG = _board.get("tiers") or DEFAULT_TIERS
BOARD_SOURCES, SOURCE_ALIASES = _normalize_sources(_board.get("sources", []))

# Sticky messages are configured from chat with !sticky / !unsticky.
_sticky = _CONFIG.get("sticky", {})
STICKY_ENABLED = bool(_sticky.get("enabled", True))
STICKY_COMMANDS_ENABLED = bool(_sticky.get("commands", True))

# Upper bound for one reconciliation cycle against Telegram.
_reconcile = _CONFIG.get("reconcile", {})
RECONCILE_TIMEOUT_SECONDS = float(_reconcile.get("timeout_seconds", 15))

# Logging configuration (optional).
LOGGING = _CONFIG.get("logging", {})
