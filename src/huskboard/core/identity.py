"""Identity tags embedded in posted representations.

A tag lets the resolver map a posted message back to the source it mirrors
after the in-memory index is lost. Tags are versioned so a format change
never matches stale messages by accident.
"""

from __future__ import annotations

import re
from typing import Optional

TAG_PREFIX = "hb"
TAG_VERSION = 1

_TAG_RE = re.compile(r"^hb(?P<version>\d+):(?P<source>\S+)$")


def encode_tag(source_id: str) -> str:
    """Return the tag for a source id."""

    if not source_id or any(ch.isspace() for ch in source_id):
        raise ValueError(f"Source id cannot be tagged: {source_id!r}")
    return f"{TAG_PREFIX}{TAG_VERSION}:{source_id}"


def decode_tag(tag: Optional[str]) -> Optional[str]:
    """Return the source id encoded in a tag, or None for anything else."""

    if not tag:
        return None
    match = _TAG_RE.match(tag.strip())
    if not match or int(match.group("version")) != TAG_VERSION:
        return None
    return match.group("source")
