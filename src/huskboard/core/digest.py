"""Content digests used for change detection (core domain)."""

from __future__ import annotations

import hashlib

from huskboard.core.models import Content


def content_digest(content: Content) -> str:
    """Return a deterministic hash of exactly what the transport would post.

    Whitespace is kept as-is: a spacing-only edit of the source still has to
    reach the posted message.
    """

    parts = [content.text]
    parts.extend(f"{link.label}\t{link.url}" for link in content.links)
    parts.append(content.tag or "")
    payload = "\n".join(parts)
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()
