"""In-memory mirror of the checkpoint store."""

from __future__ import annotations

from typing import Dict, Iterable, List, Optional

from huskboard.core.models import CheckpointRecord, ReconcileKey, TrackedEntry


class RepresentationCache:
    """Plain key -> entry mapping, rebuilt from checkpoints at startup.

    There is no eviction: the number of tracked chats and board messages is
    expected to stay small.
    """

    def __init__(self) -> None:
        self._entries: Dict[ReconcileKey, TrackedEntry] = {}

    def load(self, records: Iterable[CheckpointRecord]) -> int:
        """Replace the cache content with the given records."""

        self._entries = {record.key: TrackedEntry.from_record(record) for record in records}
        return len(self._entries)

    def get(self, key: ReconcileKey) -> Optional[TrackedEntry]:
        return self._entries.get(key)

    def put(self, entry: TrackedEntry) -> None:
        self._entries[entry.key] = entry

    def remove(self, key: ReconcileKey) -> Optional[TrackedEntry]:
        return self._entries.pop(key, None)

    def entries(self, scope_id: Optional[str] = None) -> List[TrackedEntry]:
        if scope_id is None:
            return list(self._entries.values())
        return [entry for entry in self._entries.values() if entry.key.scope_id == scope_id]

    def __contains__(self, key: object) -> bool:
        return key in self._entries

    def __len__(self) -> int:
        return len(self._entries)
